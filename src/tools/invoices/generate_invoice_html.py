from __future__ import annotations

from html import escape
from typing import Any

from sqlalchemy import select

from domain.schemas import ToolContext
from domain.tool_schemas import GenerateInvoiceHtmlIn, GenerateInvoiceHtmlOut
from infrastructure.persistence.tables import Customer, Vehicle, WorkOrder, WorkOrderLine
from tools.base import Tool, ToolEnvironment
from tools.registry import register_tool


def _line_rows(lines: list[WorkOrderLine]) -> list[dict[str, Any]]:
    rows = []
    for line in lines:
        labor = (line.labor_rate or 0.0) * (line.labor_hours or 0.0)
        parts = line.parts_cost or 0.0
        rows.append(
            {
                "description": line.description,
                "labor_hours": line.labor_hours or 0.0,
                "labor_rate": line.labor_rate or 0.0,
                "parts": parts,
                "total": round(labor + parts, 2),
            }
        )
    return rows


def _vehicle_label(vehicle: Vehicle | None) -> str:
    if vehicle is None:
        return ""
    parts = [str(vehicle.year) if vehicle.year else "", vehicle.make or "", vehicle.model or ""]
    label = " ".join(p for p in parts if p)
    ident = vehicle.vin or vehicle.license_plate
    return f"{label} ({ident})" if ident and label else label or (ident or "")


def render_invoice(work_order: WorkOrder, customer: Customer | None, vehicle: Vehicle | None, rows: list[dict[str, Any]]) -> str:
    grand_total = sum(r["total"] for r in rows)
    body_rows = "".join(
        "<tr>"
        f"<td>{escape(r['description'])}</td>"
        f"<td class=\"num\">{r['labor_hours']:.2f}</td>"
        f"<td class=\"num\">${r['labor_rate']:.2f}</td>"
        f"<td class=\"num\">${r['parts']:.2f}</td>"
        f"<td class=\"num\">${r['total']:.2f}</td>"
        "</tr>"
        for r in rows
    ) or '<tr><td colspan="5">No lines</td></tr>'
    created = work_order.created_at.strftime("%Y-%m-%d") if work_order.created_at else ""
    return (
        "<!doctype html><html><head><meta charset=\"utf-8\" />"
        f"<title>Invoice {escape(work_order.id[:8])}</title>"
        "<style>body{font-family:sans-serif;margin:2rem}table{width:100%;border-collapse:collapse}"
        "td,th{border-bottom:1px solid #ddd;padding:.4rem;text-align:left}.num{text-align:right}</style>"
        "</head><body>"
        f"<h1>Invoice</h1><p>Work order {escape(work_order.id)} &middot; {escape(created)}</p>"
        f"<p>{escape(customer.name if customer else '')}<br />{escape(_vehicle_label(vehicle))}</p>"
        "<table><thead><tr><th>Description</th><th class=\"num\">Hours</th><th class=\"num\">Rate</th>"
        "<th class=\"num\">Parts</th><th class=\"num\">Total</th></tr></thead>"
        f"<tbody>{body_rows}</tbody></table>"
        f"<h2 class=\"num\">Total: ${grand_total:.2f}</h2>"
        "</body></html>"
    )


@register_tool
class GenerateInvoiceHtmlTool(Tool):
    name = "generate_invoice_html"
    description = "Build a styled HTML invoice for a work order from its lines."
    input_model = GenerateInvoiceHtmlIn
    output_model = GenerateInvoiceHtmlOut

    def run(self, payload: GenerateInvoiceHtmlIn, context: ToolContext, env: ToolEnvironment) -> GenerateInvoiceHtmlOut:
        session = env.session
        work_order = self.get_scoped(env, WorkOrder, payload.work_order_id, context, "work order")
        customer = session.get(Customer, work_order.customer_id) if work_order.customer_id else None
        vehicle = session.get(Vehicle, work_order.vehicle_id) if work_order.vehicle_id else None
        lines = session.scalars(
            select(WorkOrderLine)
            .where(WorkOrderLine.work_order_id == work_order.id)
            .where(WorkOrderLine.approval_state != "declined")
            .order_by(WorkOrderLine.created_at)
        ).all()

        rows = _line_rows(list(lines))
        html = render_invoice(work_order, customer, vehicle, rows)
        return GenerateInvoiceHtmlOut(html=html, total=round(sum(r["total"] for r in rows), 2))
