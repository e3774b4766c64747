from __future__ import annotations

from sqlalchemy.exc import SQLAlchemyError

from domain.schemas import ToolContext
from domain.tool_schemas import EmailInvoiceIn, EmailInvoiceOut
from tools.base import Tool, ToolEnvironment
from tools.registry import register_tool


@register_tool
class EmailInvoiceTool(Tool):
    name = "email_invoice"
    description = "Send invoice HTML to a customer email address."
    input_model = EmailInvoiceIn
    output_model = EmailInvoiceOut

    def run(self, payload: EmailInvoiceIn, context: ToolContext, env: ToolEnvironment) -> EmailInvoiceOut:
        try:
            message_id = env.mailer.send(context.tenant_id, payload.to_email, payload.subject, payload.html)
        except SQLAlchemyError as exc:
            raise self.fail("delivery_failed", f"Could not queue invoice email: {exc}") from exc
        return EmailInvoiceOut(message_id=message_id, status="queued")
