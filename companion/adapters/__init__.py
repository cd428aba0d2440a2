# Explicit exports keep adapter discovery predictable.
from .base import BaseAdapter
from .echo import EchoAdapter
from .gemini import GeminiAdapter

__all__ = [
    "BaseAdapter",
    "EchoAdapter",
    "GeminiAdapter",
]
