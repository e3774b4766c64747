from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, TypeVar

from pydantic import BaseModel
from sqlalchemy.orm import Session

from domain.errors import ToolExecutionError
from domain.schemas import ToolContext
from infrastructure.mail.outbox import Mailer

RowT = TypeVar("RowT")


@dataclass(frozen=True)
class ToolSpec:
    name: str
    description: str
    args_schema: dict[str, Any]


@dataclass(frozen=True)
class ToolEnvironment:
    """Per-run collaborators handed to tools alongside the caller's ToolContext."""

    session: Session
    mailer: Mailer


class Tool(ABC):
    name: str
    description: str = ""
    input_model: type[BaseModel]
    output_model: type[BaseModel]

    @abstractmethod
    def run(self, payload: Any, context: ToolContext, env: ToolEnvironment) -> BaseModel:
        raise NotImplementedError

    def spec(self) -> ToolSpec:
        return ToolSpec(name=self.name, description=self.description, args_schema=self.input_model.model_json_schema())

    def fail(self, reason: str, message: str) -> ToolExecutionError:
        return ToolExecutionError(reason, message, tool=self.name)

    def get_scoped(self, env: ToolEnvironment, model: type[RowT], row_id: str, context: ToolContext, label: str) -> RowT:
        """Load a tenant-owned row or fail with not_found / cross_tenant."""
        row = env.session.get(model, row_id)
        if row is None:
            raise self.fail("not_found", f"{label} not found: {row_id}")
        if getattr(row, "tenant_id", None) != context.tenant_id:
            raise self.fail("cross_tenant", f"Cross-shop access denied for {label} {row_id}")
        return row
