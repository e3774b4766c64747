from __future__ import annotations

from sqlalchemy import select

from domain.schemas import ToolContext
from domain.tool_schemas import ListPendingApprovalsIn, ListPendingApprovalsOut, PendingApproval
from infrastructure.persistence.tables import WorkOrder, WorkOrderLine
from tools.base import Tool, ToolEnvironment
from tools.registry import register_tool


@register_tool
class ListPendingApprovalsTool(Tool):
    name = "list_pending_approvals"
    description = "List work order lines awaiting approval, optionally for one work order."
    input_model = ListPendingApprovalsIn
    output_model = ListPendingApprovalsOut

    def run(self, payload: ListPendingApprovalsIn, context: ToolContext, env: ToolEnvironment) -> ListPendingApprovalsOut:
        stmt = (
            select(WorkOrderLine)
            .where(WorkOrderLine.tenant_id == context.tenant_id, WorkOrderLine.approval_state == "pending")
            .order_by(WorkOrderLine.created_at)
            .limit(payload.limit)
        )
        if payload.work_order_id:
            work_order = self.get_scoped(env, WorkOrder, payload.work_order_id, context, "work order")
            stmt = stmt.where(WorkOrderLine.work_order_id == work_order.id)

        items = [
            PendingApproval(
                line_id=line.id,
                work_order_id=line.work_order_id,
                description=line.description,
                job_type=line.job_type,
                labor_hours=line.labor_hours,
            )
            for line in env.session.scalars(stmt).all()
        ]
        return ListPendingApprovalsOut(items=items)
