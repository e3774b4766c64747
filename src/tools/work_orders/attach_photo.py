from __future__ import annotations

from urllib.parse import urlparse

from domain.schemas import ToolContext
from domain.tool_schemas import AttachPhotoIn, AttachPhotoOut
from infrastructure.persistence.tables import WorkOrder, WorkOrderAttachment
from tools.base import Tool, ToolEnvironment
from tools.registry import register_tool


@register_tool
class AttachPhotoTool(Tool):
    name = "attach_photo_to_work_order"
    description = "Attach an already-uploaded image URL to a work order."
    input_model = AttachPhotoIn
    output_model = AttachPhotoOut

    def run(self, payload: AttachPhotoIn, context: ToolContext, env: ToolEnvironment) -> AttachPhotoOut:
        if urlparse(payload.image_url).scheme not in ("http", "https"):
            raise self.fail("invalid_input", f"Unsupported image URL: {payload.image_url}")
        work_order = self.get_scoped(env, WorkOrder, payload.work_order_id, context, "work order")

        attachment = WorkOrderAttachment(
            tenant_id=context.tenant_id,
            work_order_id=work_order.id,
            url=payload.image_url,
            kind=payload.kind,
        )
        env.session.add(attachment)
        env.session.flush()
        return AttachPhotoOut(attachment_id=attachment.id)
