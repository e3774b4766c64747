from __future__ import annotations

from domain.schemas import ToolContext
from domain.tool_schemas import RecordWorkOrderApprovalIn, RecordWorkOrderApprovalOut
from infrastructure.persistence.tables import WorkOrder, WorkOrderApproval
from tools.base import Tool, ToolEnvironment
from tools.registry import register_tool

WORK_ORDER_STATUS = {"approved": "approved", "declined": "declined"}


@register_tool
class RecordWorkOrderApprovalTool(Tool):
    name = "record_work_order_approval"
    description = "Record a work-order level approval decision in the approval history."
    input_model = RecordWorkOrderApprovalIn
    output_model = RecordWorkOrderApprovalOut

    def run(self, payload: RecordWorkOrderApprovalIn, context: ToolContext, env: ToolEnvironment) -> RecordWorkOrderApprovalOut:
        work_order = self.get_scoped(env, WorkOrder, payload.work_order_id, context, "work order")
        approval = WorkOrderApproval(
            tenant_id=context.tenant_id,
            work_order_id=work_order.id,
            method=payload.method,
            decision=payload.decision,
            approved_by=context.actor_id,
            notes=payload.notes,
        )
        env.session.add(approval)
        work_order.status = WORK_ORDER_STATUS[payload.decision]
        env.session.flush()
        return RecordWorkOrderApprovalOut(approval_id=approval.id, work_order_status=work_order.status)
