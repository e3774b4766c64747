from __future__ import annotations


class PlannerError(Exception):
    """Base class for planner engine failures."""


class UnauthenticatedError(PlannerError):
    pass


class InvalidGoalError(PlannerError):
    pass


class ScopeResolutionError(PlannerError):
    """Caller or tenant scope could not be resolved."""


class UnknownStrategyError(PlannerError):
    def __init__(self, kind: str, available: list[str] | None = None):
        self.kind = kind
        self.available = sorted(available or [])
        super().__init__(f"Unknown planner kind: {kind!r} (available: {', '.join(self.available) or 'none'})")


class UnknownToolError(PlannerError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Tool not registered: {name}")


class ToolExecutionError(PlannerError):
    """A tool ran and failed.

    `reason` is machine-readable (e.g. "not_found", "duplicate"), `message` is for humans.
    """

    def __init__(self, reason: str, message: str, tool: str | None = None):
        self.reason = reason
        self.message = message
        self.tool = tool
        super().__init__(message)


class EventLogWriteError(PlannerError):
    pass


class IdempotencyConflictError(PlannerError):
    def __init__(self, actor_id: str, idempotency_key: str):
        self.actor_id = actor_id
        self.idempotency_key = idempotency_key
        super().__init__(f"Run already exists for actor={actor_id} key={idempotency_key}")


class RunNotFoundError(PlannerError):
    def __init__(self, run_id: str):
        self.run_id = run_id
        super().__init__(f"Run not found: {run_id}")
