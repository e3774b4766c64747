from __future__ import annotations

import logging
from typing import Any

from application.event_log import Emit
from application.strategies.base import (
    PlannerStrategy,
    coerce_job_type,
    coerce_labor_hours,
    coerce_order_type,
    get_bool,
    get_str,
)
from application.strategies.simple import SimplePlanner
from application.tool_executor import ToolExecutor
from domain.errors import ToolExecutionError
from domain.schemas import ParsedGoal, ParsedInspection, PlanEvent, ToolContext, ToolResultEvent, WorkOrderCreatedEvent
from llm.goal_parser import GoalParserLLM

logger = logging.getLogger(__name__)

VIN_MIN_LENGTH = 11


def coerce_approval_method(value: Any) -> str:
    if isinstance(value, str):
        text = value.lower()
        for method in ("fleet", "advisor", "customer"):
            if method in text:
                return method
    return "other"


class LLMPlanner(PlannerStrategy):
    """LLM-parsed goal, then resolve customer/vehicle and build out the work order.

    Parsing is best-effort: an empty or invalid reply leaves only context hints. When no
    LLM is configured the run is handed to the simple planner unchanged.
    """

    kind = "openai"

    def __init__(self, goal_parser: GoalParserLLM, fallback: PlannerStrategy | None = None):
        self._parser = goal_parser
        self._fallback = fallback or SimplePlanner()

    def run(self, goal: str, context: dict[str, Any], tool_context: ToolContext, emit: Emit, tools: ToolExecutor) -> str | None:
        if not self._parser.available:
            logger.info("LLMPlanner no LLM configured; falling back to %s", self._fallback.kind)
            emit(PlanEvent(text=f"No LLM configured; using the {self._fallback.kind} planner."))
            return self._fallback.run(goal, context, tool_context, emit, tools)

        emit(PlanEvent(text=f"Goal: {goal}"))
        parsed = self._parser.parse_goal(goal, context)

        customer_id, vehicle_id, stop_reason = self._resolve_customer_vehicle(parsed, context, tool_context, emit, tools)
        if stop_reason:
            emit(PlanEvent(text=stop_reason))
            return stop_reason

        created = tools.call(
            "create_work_order",
            {
                "customer_id": customer_id,
                "vehicle_id": vehicle_id,
                "type": coerce_order_type(parsed.order_type or context.get("type"), goal),
                "notes": parsed.notes or get_str(context, "notes"),
            },
            tool_context,
            emit,
        )
        work_order_id = created["work_order_id"]
        emit(WorkOrderCreatedEvent(work_order_id=work_order_id, customer_id=customer_id, vehicle_id=vehicle_id))

        self._add_lines(work_order_id, parsed, context, tool_context, emit, tools)

        photo_url = parsed.photo_url or get_str(context, "imageUrl", "photoUrl")
        if photo_url:
            tools.call(
                "attach_photo_to_work_order",
                {"work_order_id": work_order_id, "image_url": photo_url, "kind": "photo"},
                tool_context,
                emit,
            )

        inspection = parsed.inspection or self._context_inspection(context)
        if inspection is not None:
            tools.call(
                "create_custom_inspection",
                {
                    "work_order_id": work_order_id,
                    "title": inspection.title or "Custom Inspection",
                    "selections": inspection.selections,
                    "services": inspection.services,
                    "vehicle_type": inspection.vehicle_type or "truck",
                    "include_axle": True if inspection.include_axle is None else inspection.include_axle,
                    "include_oil": bool(inspection.include_oil),
                },
                tool_context,
                emit,
            )

        email_to = parsed.email_invoice_to or get_str(context, "emailInvoiceTo")
        if email_to:
            invoice = tools.call("generate_invoice_html", {"work_order_id": work_order_id}, tool_context, emit)
            tools.call(
                "email_invoice",
                {
                    "to_email": email_to,
                    "subject": parsed.email_subject or get_str(context, "emailSubject") or "Your invoice",
                    "html": invoice["html"],
                },
                tool_context,
                emit,
            )

        if parsed.auto_approve is True or get_bool(context, "autoApprove"):
            tools.call(
                "record_work_order_approval",
                {
                    "work_order_id": work_order_id,
                    "method": coerce_approval_method(parsed.approval_method or get_str(context, "approvalMethod")),
                    "decision": "approved",
                },
                tool_context,
                emit,
            )

        return f"Work order {work_order_id[:8]} created."

    def _resolve_customer_vehicle(
        self,
        parsed: ParsedGoal,
        context: dict[str, Any],
        tool_context: ToolContext,
        emit: Emit,
        tools: ToolExecutor,
    ) -> tuple[str | None, str | None, str | None]:
        customer_id = get_str(context, "customerId")
        vehicle_id = get_str(context, "vehicleId")
        if customer_id and vehicle_id:
            return customer_id, vehicle_id, None

        query = parsed.customer_query or get_str(context, "customerQuery")
        plate_or_vin = parsed.plate_or_vin or get_str(context, "plateOrVin")
        found = tools.call("find_customer_vehicle", {"customer_query": query, "plate_or_vin": plate_or_vin}, tool_context, emit)
        customer_id = customer_id or found.get("customer_id")
        vehicle_id = vehicle_id or found.get("vehicle_id")

        if not customer_id:
            name = (query or "").strip() or "Default Customer"
            try:
                customer_id = tools.call("create_customer", {"name": name}, tool_context, emit)["customer_id"]
            except ToolExecutionError as exc:
                if exc.reason != "duplicate":
                    raise
                # Someone else owns that name already: close the call and look the customer up again.
                emit(ToolResultEvent(name="create_customer", output={"skipped": True, "reason": exc.message}))
                retry = tools.call("find_customer_vehicle", {"customer_query": name}, tool_context, emit)
                customer_id = retry.get("customer_id")
                if not plate_or_vin:
                    vehicle_id = vehicle_id or retry.get("vehicle_id")

        if not vehicle_id and customer_id and plate_or_vin:
            is_vin = len(plate_or_vin) >= VIN_MIN_LENGTH
            created = tools.call(
                "create_vehicle",
                {
                    "customer_id": customer_id,
                    "vin": plate_or_vin if is_vin else None,
                    "license_plate": None if is_vin else plate_or_vin,
                },
                tool_context,
                emit,
            )
            vehicle_id = created["vehicle_id"]

        if not customer_id or not vehicle_id:
            return None, None, "Need a specific customer and vehicle to proceed."
        return customer_id, vehicle_id, None

    def _add_lines(
        self,
        work_order_id: str,
        parsed: ParsedGoal,
        context: dict[str, Any],
        tool_context: ToolContext,
        emit: Emit,
        tools: ToolExecutor,
    ) -> None:
        lines = [
            {
                "description": line.description.strip(),
                "job_type": coerce_job_type(line.job_type),
                "labor_hours": coerce_labor_hours(line.labor_hours),
                "notes": line.notes,
            }
            for line in parsed.lines
        ]
        legacy = get_str(context, "lineDescription")
        if not lines and legacy:
            lines = [
                {
                    "description": legacy,
                    "job_type": coerce_job_type(context.get("jobType")),
                    "labor_hours": coerce_labor_hours(context.get("laborHours")),
                    "notes": get_str(context, "lineNotes"),
                }
            ]
        for line in lines:
            tools.call("add_work_order_line", {"work_order_id": work_order_id, **line}, tool_context, emit)

    def _context_inspection(self, context: dict[str, Any]) -> ParsedInspection | None:
        raw = context.get("inspection") or context.get("customInspection")
        if not isinstance(raw, dict):
            return None
        return ParsedInspection.model_validate(raw)
