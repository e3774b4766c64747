from __future__ import annotations

import json
import os
from dataclasses import dataclass

from sqlalchemy.orm import Session, sessionmaker

from application.coordinator import RunCoordinator
from application.event_log import EventLog
from application.strategies import build_strategies
from infrastructure.identity import TenantResolver
from infrastructure.llm.llm_client import LLMClient
from infrastructure.persistence.database import build_engine, build_session_factory, init_db
from infrastructure.persistence.stores import EventStore, RunStore
from infrastructure.settings import Settings
from llm.goal_parser import GoalParserLLM
from tools.registry import registry


@dataclass
class PlannerServices:
    settings: Settings
    session_factory: sessionmaker[Session]
    coordinator: RunCoordinator


def build_coordinator(
    settings: Settings,
    session_factory: sessionmaker[Session] | None = None,
    llm_client: LLMClient | None = None,
) -> PlannerServices:
    import tools  # noqa: F401

    if session_factory is None:
        engine = build_engine(settings.database_url)
        init_db(engine)
        session_factory = build_session_factory(engine)

    goal_parser = GoalParserLLM(llm_client or LLMClient.from_settings(settings))
    coordinator = RunCoordinator(
        runs=RunStore(session_factory),
        events=EventLog(EventStore(session_factory)),
        strategies=build_strategies(goal_parser),
        tools=registry,
        tenants=TenantResolver(session_factory),
        session_factory=session_factory,
    )
    return PlannerServices(settings=settings, session_factory=session_factory, coordinator=coordinator)


def main() -> None:
    goal = input("Planner > ").strip()
    if not goal:
        goal = "Create a work order for a brake inspection"

    settings = Settings.from_env()
    services = build_coordinator(settings)
    actor_id = os.getenv("PLANNER_ACTOR_ID", "u_cli")
    planner = os.getenv("PLANNER_KIND", "simple")
    context = json.loads(os.getenv("PLANNER_CONTEXT", "{}"))

    outcome = services.coordinator.submit(
        actor_id=actor_id,
        goal=goal,
        strategy_kind=planner,
        context=context,
    )
    print(json.dumps({"runId": outcome.run_id, "status": outcome.status.value, "error": outcome.error}, indent=2))
    _, events = services.coordinator.read_run(actor_id, outcome.run_id)
    for stored in events:
        print(f"{stored.step:>3} {stored.kind:<28} {json.dumps(stored.event.model_dump(exclude={'kind'}), default=str)}")


if __name__ == "__main__":
    main()
