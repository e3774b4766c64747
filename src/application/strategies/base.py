from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from application.event_log import Emit
from application.tool_executor import ToolExecutor
from domain.errors import UnknownStrategyError
from domain.models import JobType
from domain.schemas import ToolContext

ORDER_TYPES = ("inspection", "maintenance", "repair", "diagnosis")

# Checked in order; the first keyword found in the goal picks the order type.
GOAL_KEYWORDS = (
    ("inspect", "inspection"),
    ("diagnos", "diagnosis"),
    ("check engine", "diagnosis"),
    ("maintenance", "maintenance"),
    ("oil change", "maintenance"),
    ("service", "maintenance"),
    ("repair", "repair"),
    ("replace", "repair"),
    ("fix", "repair"),
)


class PlannerStrategy(ABC):
    """Turns a goal into tool calls.

    Strategies call tools only through `tools.call(...)`, which brackets each call with
    tool_call/tool_result events. They may emit plan and domain events, return an optional
    summary for the final event, and raise to fail the run. Run status is not theirs to touch.
    """

    kind: str

    @abstractmethod
    def run(
        self,
        goal: str,
        context: dict[str, Any],
        tool_context: ToolContext,
        emit: Emit,
        tools: ToolExecutor,
    ) -> str | None:
        raise NotImplementedError


class StrategyRegistry:
    def __init__(self, strategies: list[PlannerStrategy] | None = None):
        self._strategies: dict[str, PlannerStrategy] = {}
        for strategy in strategies or []:
            self.register(strategy)

    def register(self, strategy: PlannerStrategy) -> None:
        self._strategies[strategy.kind] = strategy

    def get(self, kind: str) -> PlannerStrategy:
        strategy = self._strategies.get((kind or "").strip().lower())
        if strategy is None:
            raise UnknownStrategyError(kind, list(self._strategies))
        return strategy

    def kinds(self) -> list[str]:
        return sorted(self._strategies)


def get_str(context: dict[str, Any], *keys: str) -> str | None:
    for key in keys:
        value = context.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def get_bool(context: dict[str, Any], *keys: str) -> bool:
    return any(context.get(key) is True for key in keys)


def coerce_job_type(value: Any) -> str:
    if isinstance(value, str) and value.lower() in {j.value for j in JobType}:
        return value.lower()
    return JobType.REPAIR.value


def coerce_labor_hours(value: Any, default: float = 1.0) -> float:
    try:
        hours = float(value)
    except (TypeError, ValueError):
        return default
    return hours if hours >= 0 else default


def coerce_order_type(value: Any, goal: str = "") -> str:
    if isinstance(value, str) and value.lower() in ORDER_TYPES:
        return value.lower()
    text = goal.lower()
    for keyword, order_type in GOAL_KEYWORDS:
        if keyword in text:
            return order_type
    return "inspection"
