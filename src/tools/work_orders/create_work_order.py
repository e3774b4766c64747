from __future__ import annotations

from domain.schemas import ToolContext
from domain.tool_schemas import CreateWorkOrderIn, CreateWorkOrderOut
from infrastructure.persistence.tables import Customer, Vehicle, WorkOrder
from tools.base import Tool, ToolEnvironment
from tools.registry import register_tool


@register_tool
class CreateWorkOrderTool(Tool):
    name = "create_work_order"
    description = "Open a work order for a customer's vehicle."
    input_model = CreateWorkOrderIn
    output_model = CreateWorkOrderOut

    def run(self, payload: CreateWorkOrderIn, context: ToolContext, env: ToolEnvironment) -> CreateWorkOrderOut:
        customer = self.get_scoped(env, Customer, payload.customer_id, context, "customer")
        vehicle = self.get_scoped(env, Vehicle, payload.vehicle_id, context, "vehicle")
        if vehicle.customer_id and vehicle.customer_id != customer.id:
            raise self.fail("invalid_input", f"Vehicle {vehicle.id} does not belong to customer {customer.id}")

        work_order = WorkOrder(
            tenant_id=context.tenant_id,
            customer_id=customer.id,
            vehicle_id=vehicle.id,
            created_by=context.actor_id,
            type=payload.type,
            status="awaiting_approval",
            notes=payload.notes,
        )
        env.session.add(work_order)
        env.session.flush()
        return CreateWorkOrderOut(work_order_id=work_order.id, status=work_order.status)
