from __future__ import annotations

import json
import logging
import time
from typing import Any, Iterator

from fastapi import Depends, FastAPI, Header, Query, Request
from fastapi.responses import JSONResponse, StreamingResponse

from domain.errors import InvalidGoalError, RunNotFoundError, ScopeResolutionError, UnauthenticatedError, UnknownStrategyError
from domain.models import RunStatus
from domain.schemas import PlannerRequest, PlannerResponse
from infrastructure.identity import HeaderIdentityResolver
from infrastructure.settings import Settings
from interface.cli import PlannerServices, build_coordinator

logger = logging.getLogger(__name__)

ERROR_STATUS: dict[type[Exception], int] = {
    UnauthenticatedError: 401,
    InvalidGoalError: 400,
    ScopeResolutionError: 400,
    UnknownStrategyError: 400,
    RunNotFoundError: 404,
}


def _sse(step: int, data: dict[str, Any]) -> str:
    return f"id: {step}\ndata: {json.dumps(data, default=str)}\n\n"


def _sse_error(message: str) -> str:
    return f"event: error\ndata: {json.dumps({'message': message})}\n\n"


def create_app(services: PlannerServices | None = None, identity: HeaderIdentityResolver | None = None) -> FastAPI:
    services = services or build_coordinator(Settings.from_env())
    identity = identity or HeaderIdentityResolver()
    coordinator = services.coordinator
    settings = services.settings

    app = FastAPI(title="Shop Planner API")

    def _error_response(request: Request, exc: Exception) -> JSONResponse:
        status = ERROR_STATUS.get(type(exc), 400)
        logger.info("Request rejected path=%s status=%d: %s", request.url.path, status, exc)
        return JSONResponse(status_code=status, content={"error": str(exc)})

    for error_type in ERROR_STATUS:
        app.add_exception_handler(error_type, _error_response)

    def current_actor(request: Request) -> str:
        return identity.current_actor(request.headers)

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.post("/planner")
    def run_planner(body: PlannerRequest, actor_id: str = Depends(current_actor)) -> dict:
        outcome = coordinator.submit(
            actor_id=actor_id,
            goal=body.goal,
            strategy_kind=body.planner or settings.default_planner_kind,
            context=body.context,
            idempotency_key=body.idempotency_key,
        )
        response = PlannerResponse(run_id=outcome.run_id, already_exists=outcome.already_exists, error=outcome.error)
        return response.model_dump(by_alias=True, exclude_none=True)

    @app.get("/planner/runs/{run_id}")
    def get_run(run_id: str, actor_id: str = Depends(current_actor)) -> dict:
        record, events = coordinator.read_run(actor_id, run_id)
        return {
            "runId": record.id,
            "status": record.status.value,
            "goal": record.goal,
            "planner": record.strategy_kind,
            "error": record.error,
            "createdAt": record.created_at.isoformat() if record.created_at else None,
            "events": [stored.sse_payload() for stored in events],
        }

    @app.get("/planner/events")
    def stream_events(
        run_id: str = Query(alias="runId"),
        last_event_id: int = Header(default=0, alias="last-event-id"),
        actor_id: str = Depends(current_actor),
    ) -> StreamingResponse:
        # Scope check up front so foreign runs 404 instead of streaming.
        coordinator.read_run(actor_id, run_id, after_step=last_event_id)

        def _stream() -> Iterator[str]:
            step = last_event_id
            while True:
                try:
                    status = coordinator.run_status(run_id)
                    _, events = coordinator.read_run(actor_id, run_id, after_step=step)
                except Exception as exc:
                    logger.warning("Planner event stream failed run_id=%s: %s", run_id, exc)
                    yield _sse_error(str(exc) or exc.__class__.__name__)
                    return
                for stored in events:
                    step = stored.step
                    yield _sse(stored.step, stored.sse_payload())
                if status is not RunStatus.RUNNING:
                    return
                time.sleep(settings.events_poll_seconds)

        return StreamingResponse(
            _stream(),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache, no-transform", "Connection": "keep-alive"},
        )

    return app
