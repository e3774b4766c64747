from __future__ import annotations

import logging
import time
from typing import Any, Callable

from sqlalchemy.orm import Session, sessionmaker

from application.event_log import EventLog
from application.strategies.base import StrategyRegistry
from application.tool_executor import ToolExecutor
from domain.errors import IdempotencyConflictError, InvalidGoalError, RunNotFoundError, ScopeResolutionError
from domain.models import RunHandle, RunOutcome, RunRecord, RunStatus
from domain.schemas import ErrorEvent, FinalEvent, PlanEvent, StoredEvent, ToolContext
from infrastructure.identity import TenantResolver
from infrastructure.mail.outbox import Mailer, OutboxMailer
from infrastructure.persistence.stores import RunStore
from tools.base import ToolEnvironment
from tools.registry import ToolRegistry

logger = logging.getLogger(__name__)

MailerFactory = Callable[[Session], Mailer]


def _handle(record: RunRecord, already_exists: bool) -> RunHandle:
    return RunHandle(
        run_id=record.id,
        tenant_id=record.tenant_id,
        actor_id=record.actor_id,
        goal=record.goal,
        strategy_kind=record.strategy_kind,
        context=record.context,
        already_exists=already_exists,
    )


class RunCoordinator:
    """Owns the run lifecycle: scope and idempotency checks, strategy dispatch, terminal status.

    Errors before a run exists propagate to the caller. Once a run exists, strategy failures
    become an `error` event plus `failed` status and are returned, not raised.
    """

    def __init__(
        self,
        runs: RunStore,
        events: EventLog,
        strategies: StrategyRegistry,
        tools: ToolRegistry,
        tenants: TenantResolver,
        session_factory: sessionmaker[Session],
        mailer_factory: MailerFactory = OutboxMailer,
    ):
        self._runs = runs
        self._events = events
        self._strategies = strategies
        self._tools = tools
        self._tenants = tenants
        self._session_factory = session_factory
        self._mailer_factory = mailer_factory

    @property
    def strategy_kinds(self) -> list[str]:
        return self._strategies.kinds()

    def start_run(
        self,
        actor_id: str,
        goal: str,
        strategy_kind: str,
        context: dict[str, Any] | None = None,
        idempotency_key: str | None = None,
        tenant_id: str | None = None,
    ) -> RunHandle:
        goal = (goal or "").strip()
        if not goal:
            raise InvalidGoalError("goal required")

        kind = (strategy_kind or "").strip().lower()
        self._strategies.get(kind)

        resolved_tenant = self._tenants.resolve(actor_id)
        if tenant_id is not None and tenant_id != resolved_tenant:
            raise ScopeResolutionError(f"Tenant {tenant_id} is not available to this account.")

        if idempotency_key:
            existing = self._runs.find_by_idempotency_key(actor_id, idempotency_key)
            if existing is not None:
                logger.info("RunCoordinator reusing run_id=%s actor_id=%s key=%s", existing.id, actor_id, idempotency_key)
                return _handle(existing, already_exists=True)

        try:
            record = self._runs.create(
                tenant_id=resolved_tenant,
                actor_id=actor_id,
                goal=goal,
                strategy_kind=kind,
                context=dict(context or {}),
                idempotency_key=idempotency_key or None,
            )
        except IdempotencyConflictError:
            # Lost the insert race; the winner's run is the canonical one.
            winner = self._runs.find_by_idempotency_key(actor_id, idempotency_key or "")
            if winner is None:
                raise
            logger.info("RunCoordinator lost idempotency race run_id=%s key=%s", winner.id, idempotency_key)
            return _handle(winner, already_exists=True)

        logger.info("RunCoordinator created run_id=%s tenant_id=%s kind=%s", record.id, resolved_tenant, kind)
        return _handle(record, already_exists=False)

    def execute(self, handle: RunHandle) -> RunOutcome:
        if handle.already_exists:
            record = self._runs.get(handle.run_id)
            status = record.status if record is not None else RunStatus.RUNNING
            error = record.error if record is not None else None
            return RunOutcome(run_id=handle.run_id, status=status, already_exists=True, error=error)

        strategy = self._strategies.get(handle.strategy_kind)
        emit = self._events.emitter(handle.run_id)
        tool_context = ToolContext(tenant_id=handle.tenant_id, actor_id=handle.actor_id, run_id=handle.run_id)

        logger.info("RunCoordinator run start run_id=%s kind=%s", handle.run_id, strategy.kind)
        t0 = time.perf_counter()
        emit(PlanEvent(text=f"Started {strategy.kind} planner"))

        with self._session_factory() as session:
            executor = ToolExecutor(self._tools, ToolEnvironment(session=session, mailer=self._mailer_factory(session)))
            try:
                summary = strategy.run(handle.goal, dict(handle.context), tool_context, emit, executor)
            except Exception as exc:
                message = str(exc) or exc.__class__.__name__
                logger.exception("RunCoordinator strategy failed run_id=%s kind=%s", handle.run_id, strategy.kind)
                emit(ErrorEvent(message=message))
                self._finish(handle.run_id, RunStatus.FAILED, error=message)
                logger.info(
                    "RunCoordinator run failed run_id=%s in %.2fs tool_calls=%d", handle.run_id, time.perf_counter() - t0, executor.calls_made
                )
                return RunOutcome(run_id=handle.run_id, status=RunStatus.FAILED, error=message)

        emit(FinalEvent(text=summary or "Planner finished."))
        self._finish(handle.run_id, RunStatus.SUCCEEDED)
        logger.info(
            "RunCoordinator run succeeded run_id=%s in %.2fs tool_calls=%d dropped_events=%d",
            handle.run_id,
            time.perf_counter() - t0,
            executor.calls_made,
            emit.failed_writes,
        )
        return RunOutcome(run_id=handle.run_id, status=RunStatus.SUCCEEDED)

    def _finish(self, run_id: str, status: RunStatus, error: str | None = None) -> None:
        # Status write failures are logged only; the returned outcome is unaffected.
        try:
            self._runs.finish(run_id, status, error=error)
        except Exception:
            logger.exception("RunCoordinator could not record status run_id=%s status=%s", run_id, status.value)

    def submit(
        self,
        actor_id: str,
        goal: str,
        strategy_kind: str,
        context: dict[str, Any] | None = None,
        idempotency_key: str | None = None,
        tenant_id: str | None = None,
    ) -> RunOutcome:
        handle = self.start_run(actor_id, goal, strategy_kind, context, idempotency_key, tenant_id)
        return self.execute(handle)

    def read_run(self, actor_id: str, run_id: str, after_step: int = 0) -> tuple[RunRecord, list[StoredEvent]]:
        tenant_id = self._tenants.resolve(actor_id)
        record = self._runs.get(run_id)
        if record is None or record.tenant_id != tenant_id:
            raise RunNotFoundError(run_id)
        return record, self._events.read(run_id, after_step=after_step)

    def run_status(self, run_id: str) -> RunStatus | None:
        record = self._runs.get(run_id)
        return record.status if record is not None else None
