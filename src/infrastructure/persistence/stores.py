from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from domain.errors import EventLogWriteError, IdempotencyConflictError
from domain.models import RunRecord, RunStatus
from domain.schemas import PlannerEvent, StoredEvent, planner_event_adapter
from infrastructure.persistence.tables import PlannerEventRow, PlannerRunRow, utcnow

logger = logging.getLogger(__name__)


def _to_record(row: PlannerRunRow) -> RunRecord:
    return RunRecord(
        id=row.id,
        tenant_id=row.tenant_id,
        actor_id=row.actor_id,
        goal=row.goal,
        strategy_kind=row.strategy_kind,
        context=dict(row.context or {}),
        idempotency_key=row.idempotency_key,
        status=RunStatus(row.status),
        error=row.error,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


class RunStore:
    """Run records. Each call runs in its own short transaction."""

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    def find_by_idempotency_key(self, actor_id: str, idempotency_key: str) -> RunRecord | None:
        stmt = (
            select(PlannerRunRow)
            .where(PlannerRunRow.actor_id == actor_id, PlannerRunRow.idempotency_key == idempotency_key)
            .order_by(PlannerRunRow.created_at.desc())
            .limit(1)
        )
        with self._session_factory() as session:
            row = session.scalars(stmt).first()
            return _to_record(row) if row is not None else None

    def create(
        self,
        *,
        tenant_id: str,
        actor_id: str,
        goal: str,
        strategy_kind: str,
        context: dict[str, Any],
        idempotency_key: str | None,
    ) -> RunRecord:
        row = PlannerRunRow(
            tenant_id=tenant_id,
            actor_id=actor_id,
            goal=goal,
            strategy_kind=strategy_kind,
            context=context,
            idempotency_key=idempotency_key,
            status=RunStatus.RUNNING.value,
        )
        session = self._session_factory()
        try:
            session.add(row)
            session.commit()
        except IntegrityError as exc:
            session.rollback()
            if idempotency_key is not None:
                raise IdempotencyConflictError(actor_id, idempotency_key) from exc
            raise
        finally:
            session.close()
        return _to_record(row)

    def get(self, run_id: str) -> RunRecord | None:
        with self._session_factory() as session:
            row = session.get(PlannerRunRow, run_id)
            return _to_record(row) if row is not None else None

    def finish(self, run_id: str, status: RunStatus, error: str | None = None) -> bool:
        """Move a running run to a terminal status. Returns False if it was already terminal."""
        if not status.terminal:
            raise ValueError(f"finish() needs a terminal status, got {status.value}")
        stmt = (
            update(PlannerRunRow)
            .where(PlannerRunRow.id == run_id, PlannerRunRow.status == RunStatus.RUNNING.value)
            .values(status=status.value, error=error, updated_at=utcnow())
        )
        with self._session_factory() as session, session.begin():
            result = session.execute(stmt)
            changed = result.rowcount == 1
        if not changed:
            logger.warning("RunStore finish ignored run_id=%s status=%s (not running)", run_id, status.value)
        return changed


class EventStore:
    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    def append(self, run_id: str, step: int, event: PlannerEvent) -> None:
        try:
            row = PlannerEventRow(
                run_id=run_id,
                step=step,
                kind=event.kind,
                content=event.model_dump(mode="json"),
            )
            with self._session_factory() as session, session.begin():
                session.add(row)
        except SQLAlchemyError as exc:
            raise EventLogWriteError(f"append failed run_id={run_id} step={step}: {exc}") from exc

    def last_step(self, run_id: str) -> int:
        stmt = (
            select(PlannerEventRow.step)
            .where(PlannerEventRow.run_id == run_id)
            .order_by(PlannerEventRow.step.desc())
            .limit(1)
        )
        try:
            with self._session_factory() as session:
                return session.scalars(stmt).first() or 0
        except SQLAlchemyError as exc:
            raise EventLogWriteError(f"last_step failed run_id={run_id}: {exc}") from exc

    def list_events(self, run_id: str, after_step: int = 0) -> list[StoredEvent]:
        stmt = (
            select(PlannerEventRow)
            .where(PlannerEventRow.run_id == run_id, PlannerEventRow.step > after_step)
            .order_by(PlannerEventRow.step.asc())
        )
        with self._session_factory() as session:
            rows = session.scalars(stmt).all()
            return [
                StoredEvent(
                    run_id=row.run_id,
                    step=row.step,
                    kind=row.kind,
                    event=planner_event_adapter.validate_python(row.content),
                    created_at=row.created_at,
                )
                for row in rows
            ]
