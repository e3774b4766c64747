from __future__ import annotations

import json
import logging
import socket
import time
import urllib.error
import urllib.request

from infrastructure.settings import Settings

logger = logging.getLogger(__name__)


class LLMClient:
    """Chat-completions client for an OpenAI-compatible endpoint, asking for JSON objects."""

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        model: str | None = None,
        timeout_seconds: float | None = None,
        temperature: float | None = None,
    ) -> None:
        defaults = Settings()
        self.api_key = api_key
        self.base_url = (base_url or defaults.openai_base_url).rstrip("/")
        self.model = model or defaults.openai_model
        self.timeout_seconds = timeout_seconds or defaults.openai_timeout_seconds
        self.temperature = defaults.openai_temperature if temperature is None else temperature

    @classmethod
    def from_settings(cls, settings: Settings) -> "LLMClient":
        return cls(
            api_key=settings.openai_api_key,
            base_url=settings.openai_base_url,
            model=settings.openai_model,
            timeout_seconds=settings.openai_timeout_seconds,
            temperature=settings.openai_temperature,
        )

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def complete(self, system: str, user: str) -> str:
        if not self.configured:
            logger.info("LLMClient not configured; skipping completion")
            return ""

        started = time.perf_counter()
        payload = {
            "model": self.model,
            "response_format": {"type": "json_object"},
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            "temperature": self.temperature,
        }
        req = urllib.request.Request(
            url=f"{self.base_url}/chat/completions",
            data=json.dumps(payload).encode("utf-8"),
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {self.api_key}",
            },
            method="POST",
        )

        try:
            logger.info(
                "LLMClient request start model=%s base_url=%s prompt_chars=%d timeout=%.1fs",
                self.model,
                self.base_url,
                len(system) + len(user),
                self.timeout_seconds,
            )
            with urllib.request.urlopen(req, timeout=self.timeout_seconds) as resp:
                body = json.loads(resp.read().decode("utf-8"))
        except (socket.timeout, urllib.error.URLError, TimeoutError, json.JSONDecodeError) as exc:
            elapsed = time.perf_counter() - started
            logger.warning("LLMClient request failed after %.2fs: %s", elapsed, exc)
            # Fail-soft: the LLM planner falls back to context hints.
            return ""

        try:
            content = body["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            logger.warning("LLMClient response missing choices[0].message.content")
            return ""

        elapsed = time.perf_counter() - started
        logger.info("LLMClient request complete in %.2fs response_chars=%d", elapsed, len(str(content)))
        return content.strip() if isinstance(content, str) else ""
