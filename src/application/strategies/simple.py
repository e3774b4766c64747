from __future__ import annotations

import logging
from typing import Any

from application.event_log import Emit
from application.strategies.base import PlannerStrategy, coerce_job_type, coerce_labor_hours, coerce_order_type, get_str
from application.tool_executor import ToolExecutor
from domain.schemas import PlanEvent, ToolContext, WorkOrderCreatedEvent

logger = logging.getLogger(__name__)


class SimplePlanner(PlannerStrategy):
    """Deterministic work-order flow driven entirely by context fields.

    create_work_order, then optional add_work_order_line (lineDescription),
    attach_photo_to_work_order (photoUrl) and generate_invoice_html + email_invoice
    (emailInvoiceTo). A customer/vehicle lookup runs first when ids are missing but a
    customerQuery or plateOrVin hint is present.
    """

    kind = "simple"

    def run(self, goal: str, context: dict[str, Any], tool_context: ToolContext, emit: Emit, tools: ToolExecutor) -> str | None:
        emit(PlanEvent(text=f"Goal: {goal}"))

        customer_id = get_str(context, "customerId")
        vehicle_id = get_str(context, "vehicleId")
        query = get_str(context, "customerQuery")
        plate_or_vin = get_str(context, "plateOrVin")

        if (not customer_id or not vehicle_id) and (query or plate_or_vin):
            found = tools.call(
                "find_customer_vehicle",
                {"customer_query": query, "plate_or_vin": plate_or_vin},
                tool_context,
                emit,
            )
            customer_id = customer_id or found.get("customer_id")
            vehicle_id = vehicle_id or found.get("vehicle_id")

        if not customer_id or not vehicle_id:
            text = "Need customerId and vehicleId (or a customerQuery/plateOrVin that matches) to create a work order."
            emit(PlanEvent(text=text))
            return text

        created = tools.call(
            "create_work_order",
            {
                "customer_id": customer_id,
                "vehicle_id": vehicle_id,
                "type": coerce_order_type(context.get("type"), goal),
                "notes": get_str(context, "notes"),
            },
            tool_context,
            emit,
        )
        work_order_id = created["work_order_id"]
        emit(WorkOrderCreatedEvent(work_order_id=work_order_id, customer_id=customer_id, vehicle_id=vehicle_id))

        line_description = get_str(context, "lineDescription")
        if line_description:
            tools.call(
                "add_work_order_line",
                {
                    "work_order_id": work_order_id,
                    "description": line_description,
                    "job_type": coerce_job_type(context.get("jobType")),
                    "labor_hours": coerce_labor_hours(context.get("laborHours")),
                    "notes": get_str(context, "lineNotes"),
                },
                tool_context,
                emit,
            )

        photo_url = get_str(context, "photoUrl")
        if photo_url:
            tools.call(
                "attach_photo_to_work_order",
                {"work_order_id": work_order_id, "image_url": photo_url, "kind": "photo"},
                tool_context,
                emit,
            )

        email_to = get_str(context, "emailInvoiceTo")
        if email_to:
            invoice = tools.call("generate_invoice_html", {"work_order_id": work_order_id}, tool_context, emit)
            tools.call(
                "email_invoice",
                {"to_email": email_to, "subject": get_str(context, "emailSubject") or "Your invoice", "html": invoice["html"]},
                tool_context,
                emit,
            )

        logger.info("SimplePlanner done run_id=%s work_order_id=%s", tool_context.run_id, work_order_id)
        return f"Work order {work_order_id[:8]} created."
