from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class RunStatus(str, Enum):
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self is not RunStatus.RUNNING


class JobType(str, Enum):
    MAINTENANCE = "maintenance"
    REPAIR = "repair"
    DIAGNOSIS = "diagnosis"
    INSPECTION = "inspection"


@dataclass(frozen=True)
class RunHandle:
    run_id: str
    tenant_id: str
    actor_id: str
    goal: str
    strategy_kind: str
    context: dict[str, Any] = field(default_factory=dict)
    already_exists: bool = False


@dataclass(frozen=True)
class RunOutcome:
    run_id: str
    status: RunStatus
    already_exists: bool = False
    error: str | None = None


@dataclass(frozen=True)
class RunRecord:
    id: str
    tenant_id: str
    actor_id: str
    goal: str
    strategy_kind: str
    context: dict[str, Any]
    idempotency_key: str | None
    status: RunStatus
    error: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
