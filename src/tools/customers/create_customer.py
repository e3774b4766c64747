from __future__ import annotations

from sqlalchemy import select

from domain.schemas import ToolContext
from domain.tool_schemas import CreateCustomerIn, CreateCustomerOut
from infrastructure.persistence.tables import Customer
from tools.base import Tool, ToolEnvironment
from tools.registry import register_tool


@register_tool
class CreateCustomerTool(Tool):
    name = "create_customer"
    description = "Create a customer in the current shop. Names are unique per shop."
    input_model = CreateCustomerIn
    output_model = CreateCustomerOut

    def run(self, payload: CreateCustomerIn, context: ToolContext, env: ToolEnvironment) -> CreateCustomerOut:
        name = payload.name.strip()
        existing = env.session.scalars(
            select(Customer.id).where(Customer.tenant_id == context.tenant_id, Customer.name == name)
        ).first()
        if existing is not None:
            raise self.fail("duplicate", f"Customer {name!r} already exists in this shop")

        customer = Customer(tenant_id=context.tenant_id, name=name, email=payload.email, phone=payload.phone)
        env.session.add(customer)
        env.session.flush()
        return CreateCustomerOut(customer_id=customer.id)
