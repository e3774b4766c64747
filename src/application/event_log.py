from __future__ import annotations

import logging
from typing import Callable

from domain.errors import EventLogWriteError
from domain.schemas import PlannerEvent, StoredEvent
from infrastructure.persistence.stores import EventStore

logger = logging.getLogger(__name__)

Emit = Callable[[PlannerEvent], bool]


class RunEmitter:
    """Assigns gap-free steps for one run and writes events best-effort.

    The step counter advances only after a successful write, so a failed append never
    leaves a hole in 1..N. Write failures of any kind are logged and swallowed; they never
    reach the strategy or the coordinator's success/failure decision. After a failure the
    counter is resynced from the store, since a write can land and still report an error.
    """

    def __init__(self, run_id: str, store: EventStore, start_step: int = 0):
        self.run_id = run_id
        self._store = store
        self._last_step = start_step
        self.failed_writes = 0

    @property
    def last_step(self) -> int:
        return self._last_step

    def emit(self, event: PlannerEvent) -> bool:
        step = self._last_step + 1
        try:
            self._store.append(self.run_id, step, event)
        except EventLogWriteError as exc:
            self.failed_writes += 1
            logger.warning("Event log write failed run_id=%s step=%d kind=%s: %s", self.run_id, step, event.kind, exc)
            self._resync()
            return False
        except Exception:
            self.failed_writes += 1
            logger.exception("Event log write crashed run_id=%s step=%d kind=%s", self.run_id, step, event.kind)
            self._resync()
            return False
        self._last_step = step
        logger.debug("Event appended run_id=%s step=%d kind=%s", self.run_id, step, event.kind)
        return True

    __call__ = emit

    def _resync(self) -> None:
        try:
            persisted = self._store.last_step(self.run_id)
        except Exception as exc:
            logger.warning("Event log step resync failed run_id=%s: %s", self.run_id, exc)
            return
        if persisted > self._last_step:
            logger.info("Event log step resynced run_id=%s from=%d to=%d", self.run_id, self._last_step, persisted)
            self._last_step = persisted


class EventLog:
    def __init__(self, store: EventStore):
        self._store = store

    def emitter(self, run_id: str) -> RunEmitter:
        try:
            start = self._store.last_step(run_id)
        except Exception as exc:
            logger.warning("Event log step lookup failed run_id=%s: %s", run_id, exc)
            start = 0
        return RunEmitter(run_id, self._store, start_step=start)

    def read(self, run_id: str, after_step: int = 0) -> list[StoredEvent]:
        return self._store.list_events(run_id, after_step=after_step)
