from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional


class BaseAdapter(ABC):
    """A model backend that answers a place-edit prompt with plan text."""

    default_model: Optional[str] = None

    def __init__(self, name: str, settings: Optional[Dict] = None) -> None:
        self.name = name
        self.settings = settings or {}

    @property
    @abstractmethod
    def type(self) -> str:
        raise NotImplementedError

    @property
    def model(self) -> Optional[str]:
        return self.settings.get("model") or self.default_model

    def is_available(self) -> bool:
        return True

    @abstractmethod
    def complete(self, prompt: str, system: str | None = None) -> str:
        raise NotImplementedError

    def stream(self, prompt: str, system: str | None = None) -> Iterable[str]:
        """Default streaming: yield the full completion once."""
        yield self.complete(prompt, system=system)

    def list_models(self) -> List[Dict]:
        raise NotImplementedError(f"Model listing not supported by {self.type} adapters.")
