from __future__ import annotations

import logging
from typing import Dict, Optional, Type

from .adapters.base import BaseAdapter
from .adapters.echo import EchoAdapter
from .adapters.gemini import GeminiAdapter
from .config import AdapterConfig, AppConfig, resolve_config, select_adapter

logger = logging.getLogger(__name__)

Secrets = Dict[str, Dict[str, str]]


class AdapterRegistry:
    """Maps the config `type` field to an adapter class."""

    def __init__(self) -> None:
        self._factories: Dict[str, Type[BaseAdapter]] = {
            "echo": EchoAdapter,
            "gemini": GeminiAdapter,
        }

    def types(self) -> list:
        return sorted(self._factories)

    def create(self, cfg: AdapterConfig, settings: Optional[Dict] = None) -> BaseAdapter:
        try:
            adapter_cls = self._factories[cfg.type]
        except KeyError:
            raise ValueError(f"Unknown adapter type: {cfg.type}") from None
        return adapter_cls(cfg.name, cfg.settings if settings is None else settings)


class HeadlessService:
    """Builds model adapters from an AppConfig and caches them by name.

    API keys arrive separately from the config file (command line, environment)
    through apply_secrets; they are layered over the configured settings, type
    secrets first, then per-adapter secrets.
    """

    def __init__(self, config: AppConfig) -> None:
        self.config = config
        self.registry = AdapterRegistry()
        self.adapters: Dict[str, BaseAdapter] = {}
        self._secrets: Dict[str, Secrets] = {"type": {}, "adapter": {}}

    @classmethod
    def from_path(cls, path: Optional[str] = None) -> "HeadlessService":
        return cls(resolve_config(path))

    def resolve_adapter(self, name: Optional[str] = None) -> BaseAdapter:
        cfg = select_adapter(self.config, name)
        if cfg is None:
            raise RuntimeError(f"Unknown adapter: {name}" if name else "No enabled adapters in config")
        if not cfg.enabled:
            raise RuntimeError(f"Adapter is disabled: {cfg.name}")
        if cfg.name not in self.adapters:
            logger.debug("Building %s adapter %r", cfg.type, cfg.name)
            self.adapters[cfg.name] = self.registry.create(cfg, self._settings_for(cfg))
        return self.adapters[cfg.name]

    def apply_secrets(self, by_adapter: Optional[Secrets] = None, by_type: Optional[Secrets] = None) -> None:
        """Overlay secrets onto adapter settings; affected cached adapters are dropped."""
        stale = set()
        for name, payload in (by_adapter or {}).items():
            if payload:
                self._secrets["adapter"][name] = dict(payload)
                stale.add(name)
        for kind, payload in (by_type or {}).items():
            if payload:
                self._secrets["type"][kind] = dict(payload)
                stale.update(cfg.name for cfg in self.config.adapters if cfg.type == kind)
        for name in stale:
            self.adapters.pop(name, None)

    def complete(self, prompt: str, system: Optional[str] = None, adapter_name: Optional[str] = None) -> str:
        return self.resolve_adapter(adapter_name).complete(prompt, system=system)

    def _settings_for(self, cfg: AdapterConfig) -> Dict:
        settings = dict(cfg.settings or {})
        settings.update(self._secrets["type"].get(cfg.type, {}))
        settings.update(self._secrets["adapter"].get(cfg.name, {}))
        return settings
