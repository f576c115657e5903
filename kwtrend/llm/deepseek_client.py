"""Client wrapper around the DeepSeek chat-completions API.

The client is intentionally thin; callers own prompt construction and the
validation of whatever JSON the model returns.
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Mapping
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from kwtrend.settings import DeepSeekSettings, get_deepseek_settings


class DeepSeekError(RuntimeError):
    """Raised when the DeepSeek API responds with an error payload."""


@dataclass(slots=True)
class DeepSeekResponse:
    """Structured response from the DeepSeek API."""

    content: str
    usage: Mapping[str, Any]
    model: str


def _completions_url(base_url: str) -> str:
    base = base_url.rstrip("/")
    if base.endswith("/chat/completions"):
        return base
    if base.endswith("/v1"):
        return f"{base}/chat/completions"
    return f"{base}/v1/chat/completions"


class DeepSeekClient:
    def __init__(self, base_url: str, api_key: str, model: str, timeout: float = 30.0) -> None:
        self._url = _completions_url(base_url)
        self._api_key = api_key
        self._model = model
        self._timeout = timeout

    @property
    def model(self) -> str:
        return self._model

    def generate(
        self,
        prompt: str,
        facts: Mapping[str, Any],
        *,
        temperature: float = 0.1,
        response_format: Mapping[str, Any] | str = "json_object",
    ) -> DeepSeekResponse:
        """Send ``prompt`` as the system message and ``facts`` as JSON user content."""

        if isinstance(response_format, str):
            response_format_payload: Mapping[str, Any] = {"type": response_format}
        else:
            response_format_payload = response_format

        payload = {
            "model": self._model,
            "temperature": temperature,
            "response_format": response_format_payload,
            "messages": [
                {"role": "system", "content": prompt},
                {"role": "user", "content": json.dumps(facts, ensure_ascii=False)},
            ],
        }
        request = Request(
            self._url,
            data=json.dumps(payload).encode("utf-8"),
            headers={
                "Authorization": f"Bearer {self._api_key}",
                "Content-Type": "application/json",
            },
            method="POST",
        )
        try:
            with urlopen(request, timeout=self._timeout) as response:
                raw = response.read().decode("utf-8")
        except HTTPError as exc:
            body = exc.read().decode("utf-8", errors="replace") if exc.fp is not None else ""
            if not body:
                body = " ".join(str(part) for part in (exc.code, exc.reason) if part).strip()
            raise DeepSeekError(f"DeepSeek error: {body}") from exc
        except URLError as exc:
            raise DeepSeekError(f"DeepSeek network error: {exc.reason}") from exc

        try:
            data = json.loads(raw)
            content = data["choices"][0]["message"]["content"]
        except (json.JSONDecodeError, KeyError, IndexError, TypeError) as exc:
            raise DeepSeekError(f"Malformed DeepSeek response: {raw[:200]}") from exc
        return DeepSeekResponse(content=content, usage=data.get("usage", {}), model=data.get("model", self._model))


def create_client_from_env(*, settings: DeepSeekSettings | None = None) -> DeepSeekClient:
    """Factory that instantiates ``DeepSeekClient`` using ``.env`` settings."""

    if settings is None:
        settings = get_deepseek_settings()
    return DeepSeekClient(
        base_url=settings.base_url,
        api_key=settings.api_key,
        model=settings.model,
        timeout=settings.timeout,
    )


__all__ = [
    "DeepSeekClient",
    "DeepSeekError",
    "DeepSeekResponse",
    "create_client_from_env",
]
