from __future__ import annotations

import logging
import time
from typing import Any

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from application.event_log import Emit
from domain.errors import ToolExecutionError
from domain.schemas import ToolCallEvent, ToolContext, ToolResultEvent
from tools.base import ToolEnvironment
from tools.registry import ToolRegistry

logger = logging.getLogger(__name__)


def _first_error(exc: ValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return str(exc)
    first = errors[0]
    loc = ".".join(str(part) for part in first.get("loc", ()))
    return f"{loc}: {first.get('msg', 'invalid')}" if loc else str(first.get("msg", "invalid"))


class ToolExecutor:
    """Runs one tool call per logical step, bracketed by tool_call/tool_result events.

    Every call goes through the registry (unknown names raise UnknownToolError before any
    event), runs exactly once, and is committed on success so completed calls survive a
    later failure in the same run.
    """

    def __init__(self, registry: ToolRegistry, env: ToolEnvironment):
        self._registry = registry
        self._env = env
        self.calls_made = 0

    def call(self, name: str, payload: dict[str, Any], context: ToolContext, emit: Emit) -> dict[str, Any]:
        tool = self._registry.get_tool(name)
        emit(ToolCallEvent(name=name, input=payload))
        logger.info("ToolExecutor running tool=%s run_id=%s", name, context.run_id)
        t = time.perf_counter()
        self.calls_made += 1

        try:
            try:
                parsed = tool.input_model.model_validate(payload)
            except ValidationError as exc:
                raise ToolExecutionError("invalid_input", f"{name}: {_first_error(exc)}", tool=name) from exc

            result = tool.run(parsed, context, self._env)

            try:
                output = tool.output_model.model_validate(result.model_dump()).model_dump(mode="json")
            except ValidationError as exc:
                raise ToolExecutionError("invalid_output", f"{name}: {_first_error(exc)}", tool=name) from exc

            self._env.session.commit()
        except ToolExecutionError as exc:
            self._env.session.rollback()
            logger.warning("ToolExecutor failed tool=%s reason=%s in %.2fs: %s", name, exc.reason, time.perf_counter() - t, exc.message)
            raise
        except SQLAlchemyError as exc:
            self._env.session.rollback()
            logger.exception("ToolExecutor datastore error tool=%s", name)
            raise ToolExecutionError("unexpected", f"{name}: datastore error: {exc}", tool=name) from exc
        except Exception as exc:
            self._env.session.rollback()
            logger.exception("ToolExecutor crashed tool=%s", name)
            raise ToolExecutionError("unexpected", f"{name}: {str(exc) or exc.__class__.__name__}", tool=name) from exc

        emit(ToolResultEvent(name=name, output=output))
        logger.info("ToolExecutor finished tool=%s in %.2fs", name, time.perf_counter() - t)
        return output
