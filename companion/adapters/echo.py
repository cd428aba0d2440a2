from __future__ import annotations

import json

from .base import BaseAdapter


class EchoAdapter(BaseAdapter):
    @property
    def type(self) -> str:
        return "echo"

    # Offline runs: return a canned plan from settings, else echo the prompt.
    def complete(self, prompt: str, system: str | None = None) -> str:
        response = self.settings.get("response")
        if response is not None:
            return response if isinstance(response, str) else json.dumps(response)
        prefix = str(self.settings.get("prefix", ""))
        if system:
            return f"{prefix}{system}\n{prompt}"
        return f"{prefix}{prompt}"
