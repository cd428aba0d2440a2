from __future__ import annotations

import json
import os
import ssl
import urllib.error
import urllib.parse
import urllib.request
from typing import Iterable, List, Optional

from .base import BaseAdapter


class GeminiAdapter(BaseAdapter):
    default_model = "gemini-2.0-flash"

    @property
    def type(self) -> str:
        return "gemini"

    def is_available(self) -> bool:
        return bool(self._api_key())

    def complete(self, prompt: str, system: Optional[str] = None) -> str:
        payload = self._build_payload(prompt, system=system)
        data = self._post_json(self._model_url("generateContent"), payload)
        return self._extract_text(data)

    def stream(self, prompt: str, system: Optional[str] = None) -> Iterable[str]:
        payload = self._build_payload(prompt, system=system)
        url = self._model_url("streamGenerateContent", alt="sse")
        req = self._request(url, payload)
        try:
            with urllib.request.urlopen(req, context=ssl.create_default_context(), timeout=self._timeout()) as resp:
                for raw in resp:
                    line = raw.decode("utf-8").strip()
                    if not line.startswith("data:"):
                        continue
                    try:
                        data = json.loads(line[5:].strip())
                    except json.JSONDecodeError:
                        continue
                    text = self._extract_text(data)
                    if text:
                        yield text
        except urllib.error.HTTPError as exc:
            detail = exc.read().decode("utf-8") if exc.fp else str(exc)
            raise RuntimeError(f"Gemini request failed: {exc.code} {detail}") from exc

    def list_models(self) -> List[dict]:
        url = f"{self._base_url()}/models?{urllib.parse.urlencode({'key': self._require_key()})}"
        req = urllib.request.Request(url, headers={"Content-Type": "application/json"}, method="GET")
        try:
            with urllib.request.urlopen(req, context=ssl.create_default_context(), timeout=self._timeout()) as resp:
                data = json.loads(resp.read().decode("utf-8"))
        except urllib.error.HTTPError as exc:
            detail = exc.read().decode("utf-8") if exc.fp else str(exc)
            raise RuntimeError(f"Gemini request failed: {exc.code} {detail}") from exc
        models = data.get("models") or []
        return [{"id": str(item.get("name", "")).split("/")[-1]} for item in models if item.get("name")]

    def _api_key(self) -> Optional[str]:
        return self.settings.get("api_key") or os.environ.get("GEMINI_API_KEY")

    def _require_key(self) -> str:
        api_key = self._api_key()
        if not api_key:
            raise RuntimeError("Gemini API key missing")
        return api_key

    def _base_url(self) -> str:
        return str(self.settings.get("base_url") or "https://generativelanguage.googleapis.com/v1beta").rstrip("/")

    def _timeout(self) -> float:
        return float(self.settings.get("timeout") or 120)

    def _model_url(self, method: str, **params: str) -> str:
        query = dict(params)
        query["key"] = self._require_key()
        return f"{self._base_url()}/models/{self.model}:{method}?{urllib.parse.urlencode(query)}"

    def _build_payload(self, prompt: str, system: Optional[str]) -> dict:
        config = {
            "temperature": float(self.settings.get("temperature", 0.8)),
            "maxOutputTokens": int(self.settings.get("max_tokens", 8000)),
        }
        # Plans are JSON; ask the API to enforce it unless turned off.
        if self.settings.get("json_mode", True):
            config["response_mime_type"] = "application/json"
        payload = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": config,
        }
        if system:
            payload["system_instruction"] = {"parts": [{"text": system}]}
        return payload

    def _request(self, url: str, payload: dict) -> urllib.request.Request:
        data = json.dumps(payload).encode("utf-8")
        return urllib.request.Request(url, data=data, headers={"Content-Type": "application/json"}, method="POST")

    def _post_json(self, url: str, payload: dict) -> dict:
        req = self._request(url, payload)
        try:
            with urllib.request.urlopen(req, context=ssl.create_default_context(), timeout=self._timeout()) as resp:
                return json.loads(resp.read().decode("utf-8"))
        except urllib.error.HTTPError as exc:
            detail = exc.read().decode("utf-8") if exc.fp else str(exc)
            raise RuntimeError(f"Gemini request failed: {exc.code} {detail}") from exc

    @staticmethod
    def _extract_text(data: dict) -> str:
        candidates = data.get("candidates") or []
        if not candidates:
            return ""
        content = candidates[0].get("content") or {}
        parts = content.get("parts") or []
        return "".join(str(part.get("text", "")) for part in parts if isinstance(part, dict))
