from __future__ import annotations

import unittest

from pydantic import BaseModel
from sqlalchemy import func, select

from application.strategies import SimplePlanner
from application.strategies.base import StrategyRegistry
from domain.errors import InvalidGoalError, RunNotFoundError, ScopeResolutionError, UnknownStrategyError
from domain.models import RunStatus
from domain.schemas import ToolContext
from infrastructure.persistence.stores import RunStore
from infrastructure.persistence.tables import Customer, PlannerRunRow, Vehicle, WorkOrder
from support import (
    ACTOR,
    ORPHAN_ACTOR,
    OTHER_ACTOR,
    OTHER_TENANT,
    TENANT,
    AckLostEventStore,
    CrashingEventStore,
    DatabaseTestCase,
    FailingEventStore,
    make_coordinator,
    registry_with,
)
from tools.base import Tool, ToolEnvironment


class _CountingPlanner(SimplePlanner):
    def __init__(self):
        self.invocations = 0

    def run(self, goal, context, tool_context, emit, tools):
        self.invocations += 1
        return super().run(goal, context, tool_context, emit, tools)


class _RaisingPlanner(SimplePlanner):
    kind = "raising"

    def run(self, goal, context, tool_context, emit, tools):
        raise RuntimeError("planner exploded")


class _WorkOrderIn(BaseModel):
    customer_id: str
    vehicle_id: str
    type: str = "inspection"
    notes: str | None = None


class _WorkOrderOut(BaseModel):
    work_order_id: str
    status: str


class _AlwaysFailingWorkOrderTool(Tool):
    name = "create_work_order"
    input_model = _WorkOrderIn
    output_model = _WorkOrderOut

    def run(self, payload: _WorkOrderIn, context: ToolContext, env: ToolEnvironment) -> _WorkOrderOut:
        raise self.fail("unavailable", "work order service is down")


class _StaleLookupRunStore(RunStore):
    """The first idempotency lookup misses, as if another caller inserted in between."""

    def __init__(self, session_factory):
        super().__init__(session_factory)
        self.stale_reads = 1

    def find_by_idempotency_key(self, actor_id, idempotency_key):
        if self.stale_reads:
            self.stale_reads -= 1
            return None
        return super().find_by_idempotency_key(actor_id, idempotency_key)


class _BrokenFinishRunStore(RunStore):
    """Terminal status writes fail; everything else works."""

    def finish(self, run_id, status, error=None):
        raise RuntimeError("run status table unavailable")


class RunCoordinatorTests(DatabaseTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.counting = _CountingPlanner()
        self.coordinator = make_coordinator(self.session_factory, strategies=StrategyRegistry([self.counting, _RaisingPlanner()]))
        self.context = {"customerId": self.seed.customer_id, "vehicleId": self.seed.vehicle_id}

    def _run_count(self) -> int:
        with self.session_factory() as session:
            return session.scalar(select(func.count()).select_from(PlannerRunRow))

    def _work_order_count(self) -> int:
        with self.session_factory() as session:
            return session.scalar(select(func.count()).select_from(WorkOrder))

    # --- happy path ---------------------------------------------------------------

    def test_brake_inspection_run_succeeds(self) -> None:
        outcome = self.coordinator.submit(ACTOR, "Create a work order for a brake inspection", "simple", self.context)

        self.assertEqual(outcome.status, RunStatus.SUCCEEDED)
        self.assertFalse(outcome.already_exists)
        self.assertIsNone(outcome.error)

        events = self.events_of(outcome.run_id)
        kinds = [e.kind for e in events]
        self.assertEqual(kinds[0], "plan")
        self.assertEqual(kinds[-1], "final")
        self.assertIn("wo.created", kinds)
        self.assertEqual([e.step for e in events], list(range(1, len(events) + 1)))

        call = next(e for e in events if e.kind == "tool_call")
        self.assertEqual(call.event.name, "create_work_order")
        self.assertEqual(call.event.input["type"], "inspection")

        record = self.run_record(outcome.run_id)
        self.assertEqual(record.status, RunStatus.SUCCEEDED)
        self.assertEqual(record.tenant_id, TENANT)
        self.assertEqual(self._work_order_count(), 1)

    def test_every_tool_call_is_followed_by_its_result(self) -> None:
        context = {**self.context, "lineDescription": "Replace front pads", "photoUrl": "https://img.example.com/pads.jpg"}
        outcome = self.coordinator.submit(ACTOR, "Brake job", "simple", context)

        events = self.events_of(outcome.run_id)
        for index, stored in enumerate(events):
            if stored.kind == "tool_call":
                following = events[index + 1]
                self.assertEqual(following.kind, "tool_result")
                self.assertEqual(following.event.name, stored.event.name)
        self.assertEqual(sum(1 for e in events if e.kind in ("final", "error")), 1)

    # --- rejected before a run exists ------------------------------------------------

    def test_empty_goal_is_rejected_without_a_run(self) -> None:
        with self.assertRaises(InvalidGoalError):
            self.coordinator.submit(ACTOR, "   ", "simple", self.context)
        self.assertEqual(self._run_count(), 0)

    def test_unknown_strategy_is_rejected_without_a_run(self) -> None:
        with self.assertRaises(UnknownStrategyError) as ctx:
            self.coordinator.submit(ACTOR, "Do something", "quantum", self.context)
        self.assertIn("simple", ctx.exception.available)
        self.assertEqual(self._run_count(), 0)

    def test_actor_without_shop_is_rejected_without_a_run(self) -> None:
        with self.assertRaises(ScopeResolutionError):
            self.coordinator.submit(ORPHAN_ACTOR, "Do something", "simple", self.context)
        with self.assertRaises(ScopeResolutionError):
            self.coordinator.submit("u_unknown", "Do something", "simple", self.context)
        self.assertEqual(self._run_count(), 0)

    def test_mismatched_tenant_is_rejected(self) -> None:
        with self.assertRaises(ScopeResolutionError):
            self.coordinator.start_run(ACTOR, "Do something", "simple", self.context, tenant_id=OTHER_TENANT)
        self.assertEqual(self._run_count(), 0)

    # --- failures after the run exists -------------------------------------------------

    def test_always_failing_tool_fails_the_run(self) -> None:
        coordinator = make_coordinator(self.session_factory, tools=registry_with(_AlwaysFailingWorkOrderTool()))

        outcome = coordinator.submit(ACTOR, "Create a work order", "simple", self.context)

        self.assertEqual(outcome.status, RunStatus.FAILED)
        self.assertIn("work order service is down", outcome.error)
        events = self.events_of(outcome.run_id)
        self.assertEqual(events[-1].kind, "error")
        self.assertIn("work order service is down", events[-1].event.message)
        self.assertNotIn("final", [e.kind for e in events])
        self.assertEqual(self.run_record(outcome.run_id).status, RunStatus.FAILED)
        self.assertEqual(self.run_record(outcome.run_id).error, outcome.error)

    def test_strategy_crash_fails_the_run(self) -> None:
        outcome = self.coordinator.submit(ACTOR, "Explode", "raising", {})

        self.assertEqual(outcome.status, RunStatus.FAILED)
        self.assertEqual(outcome.error, "planner exploded")
        self.assertEqual([e.kind for e in self.events_of(outcome.run_id)], ["plan", "error"])

    def test_terminal_status_is_set_once(self) -> None:
        outcome = self.coordinator.submit(ACTOR, "Brake inspection", "simple", self.context)
        runs = RunStore(self.session_factory)

        self.assertFalse(runs.finish(outcome.run_id, RunStatus.FAILED, error="late failure"))
        record = runs.get(outcome.run_id)
        self.assertEqual(record.status, RunStatus.SUCCEEDED)
        self.assertIsNone(record.error)

        with self.assertRaises(ValueError):
            runs.finish(outcome.run_id, RunStatus.RUNNING)

    # --- event log outages ------------------------------------------------------------

    def test_event_log_outage_does_not_change_success(self) -> None:
        coordinator = make_coordinator(
            self.session_factory,
            strategies=StrategyRegistry([SimplePlanner()]),
            event_store=FailingEventStore(self.session_factory),
        )

        outcome = coordinator.submit(ACTOR, "Brake inspection", "simple", self.context)

        self.assertEqual(outcome.status, RunStatus.SUCCEEDED)
        self.assertEqual(self.run_record(outcome.run_id).status, RunStatus.SUCCEEDED)
        self.assertEqual(self.events_of(outcome.run_id), [])
        self.assertEqual(self._work_order_count(), 1)

    def test_event_log_outage_does_not_change_failure(self) -> None:
        coordinator = make_coordinator(
            self.session_factory,
            tools=registry_with(_AlwaysFailingWorkOrderTool()),
            event_store=FailingEventStore(self.session_factory),
        )

        outcome = coordinator.submit(ACTOR, "Create a work order", "simple", self.context)

        self.assertEqual(outcome.status, RunStatus.FAILED)
        self.assertEqual(self.run_record(outcome.run_id).status, RunStatus.FAILED)

    def test_untranslated_event_store_error_does_not_change_success(self) -> None:
        coordinator = make_coordinator(
            self.session_factory,
            strategies=StrategyRegistry([SimplePlanner()]),
            event_store=CrashingEventStore(self.session_factory),
        )

        outcome = coordinator.submit(ACTOR, "Brake inspection", "simple", self.context)

        self.assertEqual(outcome.status, RunStatus.SUCCEEDED)
        self.assertEqual(self.run_record(outcome.run_id).status, RunStatus.SUCCEEDED)
        self.assertEqual(self.events_of(outcome.run_id), [])
        self.assertEqual(self._work_order_count(), 1)

    def test_event_write_that_lands_but_reports_failure_keeps_the_log_whole(self) -> None:
        coordinator = make_coordinator(
            self.session_factory,
            strategies=StrategyRegistry([SimplePlanner()]),
            event_store=AckLostEventStore(self.session_factory),
        )

        outcome = coordinator.submit(ACTOR, "Brake inspection", "simple", self.context)

        self.assertEqual(outcome.status, RunStatus.SUCCEEDED)
        events = self.events_of(outcome.run_id)
        self.assertEqual(events[0].kind, "plan")
        self.assertEqual(events[-1].kind, "final")
        self.assertIn("wo.created", [e.kind for e in events])
        self.assertEqual([e.step for e in events], list(range(1, len(events) + 1)))

    # --- run status outages -------------------------------------------------------------

    def test_status_write_failure_keeps_the_success_outcome(self) -> None:
        coordinator = make_coordinator(
            self.session_factory,
            strategies=StrategyRegistry([SimplePlanner()]),
            runs=_BrokenFinishRunStore(self.session_factory),
        )

        outcome = coordinator.submit(ACTOR, "Brake inspection", "simple", self.context)

        self.assertEqual(outcome.status, RunStatus.SUCCEEDED)
        self.assertEqual(self.run_record(outcome.run_id).status, RunStatus.RUNNING)
        self.assertEqual(self.events_of(outcome.run_id)[-1].kind, "final")

    def test_status_write_failure_keeps_the_failure_outcome(self) -> None:
        coordinator = make_coordinator(
            self.session_factory,
            tools=registry_with(_AlwaysFailingWorkOrderTool()),
            runs=_BrokenFinishRunStore(self.session_factory),
        )

        outcome = coordinator.submit(ACTOR, "Create a work order", "simple", self.context)

        self.assertEqual(outcome.status, RunStatus.FAILED)
        self.assertIn("work order service is down", outcome.error)
        self.assertEqual(self.run_record(outcome.run_id).status, RunStatus.RUNNING)
        self.assertEqual(self.events_of(outcome.run_id)[-1].kind, "error")

    # --- idempotency ------------------------------------------------------------------

    def test_repeated_idempotency_key_reuses_the_run(self) -> None:
        first = self.coordinator.submit(ACTOR, "Brake inspection", "simple", self.context, idempotency_key="req-1")
        events_after_first = len(self.events_of(first.run_id))

        for _ in range(3):
            again = self.coordinator.submit(ACTOR, "Brake inspection", "simple", self.context, idempotency_key="req-1")
            self.assertEqual(again.run_id, first.run_id)
            self.assertTrue(again.already_exists)
            self.assertEqual(again.status, RunStatus.SUCCEEDED)

        self.assertEqual(self.counting.invocations, 1)
        self.assertEqual(self._run_count(), 1)
        self.assertEqual(self._work_order_count(), 1)
        self.assertEqual(len(self.events_of(first.run_id)), events_after_first)

    def test_idempotency_keys_are_scoped_per_actor(self) -> None:
        with self.session_factory() as session, session.begin():
            customer = Customer(tenant_id=OTHER_TENANT, name="Sam Lee")
            session.add(customer)
            session.flush()
            vehicle = Vehicle(tenant_id=OTHER_TENANT, customer_id=customer.id, license_plate="SAM001")
            session.add(vehicle)
            session.flush()
            other_context = {"customerId": customer.id, "vehicleId": vehicle.id}

        mine = self.coordinator.submit(ACTOR, "Brake inspection", "simple", self.context, idempotency_key="shared")
        theirs = self.coordinator.submit(OTHER_ACTOR, "Brake inspection", "simple", other_context, idempotency_key="shared")

        self.assertNotEqual(mine.run_id, theirs.run_id)
        self.assertFalse(theirs.already_exists)

    def test_lost_insert_race_returns_the_winner(self) -> None:
        winner = self.coordinator.submit(ACTOR, "Brake inspection", "simple", self.context, idempotency_key="race")
        racer = make_coordinator(
            self.session_factory,
            strategies=StrategyRegistry([self.counting]),
            runs=_StaleLookupRunStore(self.session_factory),
        )

        handle = racer.start_run(ACTOR, "Brake inspection", "simple", self.context, idempotency_key="race")
        outcome = racer.execute(handle)

        self.assertEqual(handle.run_id, winner.run_id)
        self.assertTrue(handle.already_exists)
        self.assertTrue(outcome.already_exists)
        self.assertEqual(self.counting.invocations, 1)
        self.assertEqual(self._run_count(), 1)

    # --- reads -------------------------------------------------------------------------

    def test_read_run_is_tenant_scoped(self) -> None:
        outcome = self.coordinator.submit(ACTOR, "Brake inspection", "simple", self.context)

        record, events = self.coordinator.read_run(ACTOR, outcome.run_id)
        self.assertEqual(record.id, outcome.run_id)
        self.assertTrue(events)

        with self.assertRaises(RunNotFoundError):
            self.coordinator.read_run(OTHER_ACTOR, outcome.run_id)
        with self.assertRaises(RunNotFoundError):
            self.coordinator.read_run(ACTOR, "missing-run")

        _, tail = self.coordinator.read_run(ACTOR, outcome.run_id, after_step=len(events) - 1)
        self.assertEqual([e.kind for e in tail], ["final"])


if __name__ == "__main__":
    unittest.main()
