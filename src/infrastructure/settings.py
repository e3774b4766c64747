from __future__ import annotations

import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    database_url: str = "sqlite:///./shop_planner.db"
    log_level: str = "INFO"
    default_planner_kind: str = "openai"
    openai_api_key: str | None = None
    openai_base_url: str = "https://api.openai.com/v1"
    openai_model: str = "gpt-4o-mini"
    openai_timeout_seconds: float = 60.0
    openai_temperature: float = 0.2
    events_poll_seconds: float = 0.9

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            database_url=os.getenv("DATABASE_URL", cls.database_url),
            log_level=os.getenv("LOG_LEVEL", cls.log_level).upper(),
            default_planner_kind=os.getenv("PLANNER_DEFAULT_KIND", cls.default_planner_kind).strip().lower(),
            openai_api_key=os.getenv("OPENAI_API_KEY") or None,
            openai_base_url=os.getenv("OPENAI_BASE_URL", cls.openai_base_url).rstrip("/"),
            openai_model=os.getenv("OPENAI_MODEL", cls.openai_model),
            openai_timeout_seconds=float(os.getenv("OPENAI_TIMEOUT_SECONDS", str(cls.openai_timeout_seconds))),
            openai_temperature=float(os.getenv("OPENAI_TEMPERATURE", str(cls.openai_temperature))),
            events_poll_seconds=float(os.getenv("PLANNER_EVENTS_POLL_SECONDS", str(cls.events_poll_seconds))),
        )
