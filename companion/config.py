from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

CONFIG_ENV = "ROBLOX_MCP_CONFIG"
ADAPTER_ENV = "ROBLOX_MCP_ADAPTER"
MODEL_ENV = "ROBLOX_MCP_MODEL"
DEFAULT_ADAPTER = "gemini"
DEFAULT_SETTINGS = {"model": "gemini-2.0-flash", "temperature": 0.8, "max_tokens": 8000}


@dataclass
class AdapterConfig:
    name: str
    type: str
    enabled: bool = True
    settings: Dict[str, Any] = field(default_factory=dict)


@dataclass
class AppConfig:
    version: str = "1"
    default_adapter: Optional[str] = None
    adapters: List[AdapterConfig] = field(default_factory=list)

    def get(self, name: str) -> Optional[AdapterConfig]:
        for adapter in self.adapters:
            if adapter.name == name:
                return adapter
        return None


def _adapter_from_json(raw: Any, where: str) -> AdapterConfig:
    if not isinstance(raw, dict):
        raise ValueError(f"{where}: adapter entries must be objects")
    name = str(raw.get("name") or raw.get("type") or "").strip()
    kind = str(raw.get("type") or "").strip()
    if not name or not kind:
        raise ValueError(f"{where}: adapter entries need a name and a type")
    settings = raw.get("settings") or {}
    if not isinstance(settings, dict):
        raise ValueError(f"{where}: settings for adapter {name!r} must be an object")
    return AdapterConfig(name=name, type=kind, enabled=bool(raw.get("enabled", True)), settings=dict(settings))


def load_config(path: str | Path) -> AppConfig:
    """Read a JSON config file; malformed files raise ValueError naming the path."""
    path = Path(path)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"{path}: invalid JSON ({exc.msg} at line {exc.lineno})") from exc
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be an object")
    return AppConfig(
        version=str(data.get("version", "1")),
        default_adapter=data.get("default_adapter"),
        adapters=[_adapter_from_json(raw, str(path)) for raw in data.get("adapters") or []],
    )


def default_config() -> AppConfig:
    """One Gemini adapter; the key comes from settings or GEMINI_API_KEY."""
    return AppConfig(
        default_adapter=DEFAULT_ADAPTER,
        adapters=[AdapterConfig(name=DEFAULT_ADAPTER, type="gemini", settings=dict(DEFAULT_SETTINGS))],
    )


def apply_env_overrides(config: AppConfig) -> AppConfig:
    """$ROBLOX_MCP_ADAPTER picks the default adapter; $ROBLOX_MCP_MODEL sets its model."""
    adapter_name = os.environ.get(ADAPTER_ENV, "").strip()
    if adapter_name:
        config.default_adapter = adapter_name
    model = os.environ.get(MODEL_ENV, "").strip()
    if model:
        chosen = select_adapter(config, None)
        if chosen is not None:
            chosen.settings["model"] = model
    return config


def resolve_config(path: Optional[str | Path] = None) -> AppConfig:
    """Explicit path, then $ROBLOX_MCP_CONFIG, then the built-in default."""
    candidate = path or os.environ.get(CONFIG_ENV)
    config = load_config(candidate) if candidate else default_config()
    return apply_env_overrides(config)


def select_adapter(config: AppConfig, name: Optional[str]) -> Optional[AdapterConfig]:
    # An explicit name wins even when disabled; the caller asked for it.
    if name:
        return config.get(name)
    if config.default_adapter:
        preferred = config.get(config.default_adapter)
        if preferred is not None and preferred.enabled:
            return preferred
    return next((a for a in config.adapters if a.enabled), None)
