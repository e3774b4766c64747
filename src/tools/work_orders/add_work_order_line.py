from __future__ import annotations

from domain.schemas import ToolContext
from domain.tool_schemas import AddWorkOrderLineIn, AddWorkOrderLineOut
from infrastructure.persistence.tables import WorkOrder, WorkOrderLine
from tools.base import Tool, ToolEnvironment
from tools.registry import register_tool


@register_tool
class AddWorkOrderLineTool(Tool):
    name = "add_work_order_line"
    description = "Add a job line (awaiting approval) to a work order."
    input_model = AddWorkOrderLineIn
    output_model = AddWorkOrderLineOut

    def run(self, payload: AddWorkOrderLineIn, context: ToolContext, env: ToolEnvironment) -> AddWorkOrderLineOut:
        work_order = self.get_scoped(env, WorkOrder, payload.work_order_id, context, "work order")
        line = WorkOrderLine(
            tenant_id=context.tenant_id,
            work_order_id=work_order.id,
            description=payload.description.strip(),
            job_type=payload.job_type,
            labor_hours=payload.labor_hours,
            notes=payload.notes,
            status="awaiting",
            approval_state="pending",
            source="planner",
        )
        env.session.add(line)
        env.session.flush()
        return AddWorkOrderLineOut(line_id=line.id)
