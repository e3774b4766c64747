from __future__ import annotations

from typing import Any

from domain.schemas import ToolContext
from domain.tool_schemas import CreateCustomInspectionIn, CreateCustomInspectionOut
from infrastructure.persistence.tables import Inspection, WorkOrder
from tools.base import Tool, ToolEnvironment
from tools.registry import register_tool

AXLE_ITEMS = ["Steer axle tires", "Drive axle tires", "Brake chambers", "Slack adjusters"]
OIL_ITEMS = ["Engine oil level", "Oil leaks", "Oil filter condition"]


def _build_template(payload: CreateCustomInspectionIn) -> dict[str, Any]:
    sections: dict[str, list[str]] = {name: list(items) for name, items in payload.selections.items() if items}
    if payload.include_axle:
        sections.setdefault("Axles", AXLE_ITEMS)
    if payload.include_oil:
        sections.setdefault("Oil", OIL_ITEMS)
    if payload.services:
        sections.setdefault("Services", list(payload.services))
    return {
        "vehicle_type": payload.vehicle_type,
        "sections": [{"title": title, "items": [{"item": item, "status": None} for item in items]} for title, items in sections.items()],
    }


@register_tool
class CreateCustomInspectionTool(Tool):
    name = "create_custom_inspection"
    description = "Build a custom inspection sheet (sections of items) for a work order."
    input_model = CreateCustomInspectionIn
    output_model = CreateCustomInspectionOut

    def run(self, payload: CreateCustomInspectionIn, context: ToolContext, env: ToolEnvironment) -> CreateCustomInspectionOut:
        work_order = self.get_scoped(env, WorkOrder, payload.work_order_id, context, "work order")
        template = _build_template(payload)
        item_count = sum(len(section["items"]) for section in template["sections"])
        if item_count == 0:
            raise self.fail("invalid_input", "Inspection has no items; add selections, services, or axle/oil sections")

        inspection = Inspection(
            tenant_id=context.tenant_id,
            work_order_id=work_order.id,
            title=payload.title,
            vehicle_type=payload.vehicle_type,
            template=template,
        )
        env.session.add(inspection)
        env.session.flush()
        return CreateCustomInspectionOut(inspection_id=inspection.id, item_count=item_count)
