from __future__ import annotations

from typing import Any

from application.event_log import Emit
from application.strategies.base import PlannerStrategy, get_str
from application.strategies.llm import coerce_approval_method
from application.tool_executor import ToolExecutor
from domain.schemas import ApprovalRecordedEvent, PlanEvent, ToolContext

DECISIONS = {"approve": "approved", "approved": "approved", "decline": "declined", "declined": "declined"}


class ApprovalPlanner(PlannerStrategy):
    """Advisor approvals: list pending lines, then optionally approve/decline them.

    Without a `decision` in context this is read-only. With one, each pending line (or only
    those in `lineIds`) gets set_line_approval, and every touched work order gets a
    record_work_order_approval entry.
    """

    kind = "approvals"

    def run(self, goal: str, context: dict[str, Any], tool_context: ToolContext, emit: Emit, tools: ToolExecutor) -> str | None:
        emit(PlanEvent(text=f"Approvals goal: {goal}"))

        pending = tools.call(
            "list_pending_approvals",
            {"work_order_id": get_str(context, "workOrderId")},
            tool_context,
            emit,
        )
        items = pending["items"]
        line_ids = context.get("lineIds")
        if isinstance(line_ids, list):
            wanted = {str(line_id) for line_id in line_ids}
            items = [item for item in items if item["line_id"] in wanted]

        if not items:
            return "No pending approvals."

        raw_decision = (get_str(context, "decision") or "").lower()
        decision = DECISIONS.get(raw_decision)
        if decision is None:
            text = f"{len(items)} line(s) awaiting approval. Pass decision=approve|decline to act on them."
            emit(PlanEvent(text=text))
            return text

        emit(PlanEvent(text=f"Setting {len(items)} line(s) to {decision}."))
        touched: list[str] = []
        for item in items:
            result = tools.call("set_line_approval", {"line_id": item["line_id"], "decision": decision}, tool_context, emit)
            if result["work_order_id"] not in touched:
                touched.append(result["work_order_id"])

        method = coerce_approval_method(get_str(context, "approvalMethod") or "advisor")
        for work_order_id in touched:
            tools.call(
                "record_work_order_approval",
                {"work_order_id": work_order_id, "method": method, "decision": decision, "notes": get_str(context, "notes")},
                tool_context,
                emit,
            )
            emit(ApprovalRecordedEvent(work_order_id=work_order_id, decision=decision, method=method))

        return f"{len(items)} line(s) {decision} across {len(touched)} work order(s)."
