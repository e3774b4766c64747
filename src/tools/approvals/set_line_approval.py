from __future__ import annotations

from domain.schemas import ToolContext
from domain.tool_schemas import SetLineApprovalIn, SetLineApprovalOut
from infrastructure.persistence.tables import WorkOrderLine
from tools.base import Tool, ToolEnvironment
from tools.registry import register_tool

LINE_STATUS = {"approved": "queued", "declined": "declined"}


@register_tool
class SetLineApprovalTool(Tool):
    name = "set_line_approval"
    description = "Approve or decline a single pending work order line."
    input_model = SetLineApprovalIn
    output_model = SetLineApprovalOut

    def run(self, payload: SetLineApprovalIn, context: ToolContext, env: ToolEnvironment) -> SetLineApprovalOut:
        line = self.get_scoped(env, WorkOrderLine, payload.line_id, context, "work order line")
        if line.approval_state != "pending":
            raise self.fail("invalid_input", f"Line {line.id} is already {line.approval_state}")

        line.approval_state = payload.decision
        line.status = LINE_STATUS[payload.decision]
        env.session.flush()
        return SetLineApprovalOut(line_id=line.id, work_order_id=line.work_order_id, approval_state=line.approval_state)
