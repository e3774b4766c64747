from __future__ import annotations

import tempfile
import unittest
from typing import Any

from sqlalchemy.orm import Session, sessionmaker

from application.coordinator import RunCoordinator
from application.event_log import EventLog
from application.strategies import build_strategies
from application.strategies.base import StrategyRegistry
from domain.errors import EventLogWriteError
from domain.schemas import PlannerEvent
from infrastructure.identity import TenantResolver
from infrastructure.persistence.database import build_engine, build_session_factory, init_db
from infrastructure.persistence.stores import EventStore, RunStore
from infrastructure.persistence.tables import (
    Customer,
    Fleet,
    FleetProgram,
    FleetProgramTask,
    FleetVehicle,
    Profile,
    Vehicle,
    WorkOrder,
    WorkOrderLine,
)
from llm.goal_parser import GoalParserLLM
from tools.registry import ToolRegistry, registry

TENANT = "shop_1"
OTHER_TENANT = "shop_2"
ACTOR = "u_1"
OTHER_ACTOR = "u_2"
ORPHAN_ACTOR = "u_orphan"


class StubLLMClient:
    def __init__(self, response: str = "", configured: bool = True):
        self._response = response
        self.configured = configured
        self.prompts: list[tuple[str, str]] = []

    def complete(self, system: str, user: str) -> str:
        self.prompts.append((system, user))
        return self._response


class FailingEventStore(EventStore):
    """Every write fails, like a datastore that is down for event inserts."""

    def append(self, run_id: str, step: int, event: PlannerEvent) -> None:
        raise EventLogWriteError(f"simulated write failure run_id={run_id} step={step}")

    def last_step(self, run_id: str) -> int:
        raise EventLogWriteError("simulated read failure")


class CrashingEventStore(EventStore):
    """Writes fail with an error the store does not translate."""

    def append(self, run_id: str, step: int, event: PlannerEvent) -> None:
        raise RuntimeError("event sink unavailable")


class AckLostEventStore(EventStore):
    """The first write lands but still reports a failure."""

    def __init__(self, session_factory):
        super().__init__(session_factory)
        self.appends = 0

    def append(self, run_id: str, step: int, event: PlannerEvent) -> None:
        self.appends += 1
        super().append(run_id, step, event)
        if self.appends == 1:
            raise EventLogWriteError("ack lost")


class Seed:
    customer_id: str
    vehicle_id: str
    other_customer_id: str
    other_vehicle_id: str
    fleet_id: str
    fleet_vehicle_ids: list[str]


def seed_shop(session_factory: sessionmaker[Session]) -> Seed:
    seed = Seed()
    with session_factory() as session, session.begin():
        session.add_all(
            [
                Profile(actor_id=ACTOR, tenant_id=TENANT, full_name="Advisor One"),
                Profile(actor_id=OTHER_ACTOR, tenant_id=OTHER_TENANT, full_name="Advisor Two"),
                Profile(actor_id=ORPHAN_ACTOR, tenant_id=None, full_name="No Shop"),
            ]
        )

        jane = Customer(tenant_id=TENANT, name="Jane Doe", email="jane@example.com")
        other = Customer(tenant_id=OTHER_TENANT, name="Jane Doe", email="jane@elsewhere.example")
        fleet_owner = Customer(tenant_id=TENANT, name="Acme Logistics")
        session.add_all([jane, other, fleet_owner])
        session.flush()

        truck = Vehicle(tenant_id=TENANT, customer_id=jane.id, year=2018, make="Ford", model="F-150", vin="1FTEW1EP5JFA00001", license_plate="ABC123")
        other_truck = Vehicle(tenant_id=OTHER_TENANT, customer_id=other.id, year=2020, make="Ram", model="1500", license_plate="XYZ999")
        unit_1 = Vehicle(tenant_id=TENANT, customer_id=fleet_owner.id, year=2019, make="Freightliner", model="M2", license_plate="FLT001")
        unit_2 = Vehicle(tenant_id=TENANT, customer_id=fleet_owner.id, year=2021, make="Freightliner", model="M2", license_plate="FLT002")
        session.add_all([truck, other_truck, unit_1, unit_2])
        session.flush()

        fleet = Fleet(tenant_id=TENANT, name="Acme Fleet")
        session.add(fleet)
        session.flush()
        session.add_all(
            [
                FleetVehicle(fleet_id=fleet.id, vehicle_id=unit_1.id, active=True),
                FleetVehicle(fleet_id=fleet.id, vehicle_id=unit_2.id, active=True),
            ]
        )
        program = FleetProgram(fleet_id=fleet.id, name="PM Service A")
        session.add(program)
        session.flush()
        session.add_all(
            [
                FleetProgramTask(program_id=program.id, description="Oil and filter change", job_type="maintenance", default_labor_hours=1.5, display_order=1),
                FleetProgramTask(program_id=program.id, description="Brake inspection", job_type="inspection", default_labor_hours=0.5, display_order=2),
            ]
        )

        seed.customer_id = jane.id
        seed.vehicle_id = truck.id
        seed.other_customer_id = other.id
        seed.other_vehicle_id = other_truck.id
        seed.fleet_id = fleet.id
        seed.fleet_vehicle_ids = [unit_1.id, unit_2.id]
    return seed


def add_pending_work_order(session_factory: sessionmaker[Session], seed: Seed, descriptions: list[str]) -> tuple[str, list[str]]:
    with session_factory() as session, session.begin():
        work_order = WorkOrder(tenant_id=TENANT, customer_id=seed.customer_id, vehicle_id=seed.vehicle_id, type="repair")
        session.add(work_order)
        session.flush()
        lines = [
            WorkOrderLine(tenant_id=TENANT, work_order_id=work_order.id, description=d, labor_hours=1.0, labor_rate=120.0, parts_cost=40.0)
            for d in descriptions
        ]
        session.add_all(lines)
        session.flush()
        return work_order.id, [line.id for line in lines]


def registry_with(*overrides: Any) -> ToolRegistry:
    import tools  # noqa: F401

    custom = ToolRegistry()
    for name in registry.names():
        custom.register(registry.get_tool(name))
    for tool in overrides:
        custom.register(tool)
    return custom


def make_coordinator(
    session_factory: sessionmaker[Session],
    *,
    tools: ToolRegistry | None = None,
    strategies: StrategyRegistry | None = None,
    runs: RunStore | None = None,
    event_store: EventStore | None = None,
    llm_client: Any = None,
) -> RunCoordinator:
    import tools as _tools  # noqa: F401

    return RunCoordinator(
        runs=runs or RunStore(session_factory),
        events=EventLog(event_store or EventStore(session_factory)),
        strategies=strategies or build_strategies(GoalParserLLM(llm_client or StubLLMClient(configured=False))),
        tools=tools or registry,
        tenants=TenantResolver(session_factory),
        session_factory=session_factory,
    )


class DatabaseTestCase(unittest.TestCase):
    """Fresh SQLite file per test, seeded with two shops."""

    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.engine = build_engine(f"sqlite:///{self._tmp.name}/planner.db")
        init_db(self.engine)
        self.session_factory = build_session_factory(self.engine)
        self.seed = seed_shop(self.session_factory)

    def tearDown(self) -> None:
        self.engine.dispose()
        self._tmp.cleanup()

    def events_of(self, run_id: str):
        return EventStore(self.session_factory).list_events(run_id)

    def run_record(self, run_id: str):
        return RunStore(self.session_factory).get(run_id)
