from __future__ import annotations

from domain.schemas import ToolContext
from domain.tool_schemas import CreateVehicleIn, CreateVehicleOut
from infrastructure.persistence.tables import Customer, Vehicle
from tools.base import Tool, ToolEnvironment
from tools.registry import register_tool


@register_tool
class CreateVehicleTool(Tool):
    name = "create_vehicle"
    description = "Create a vehicle for an existing customer from a VIN and/or license plate."
    input_model = CreateVehicleIn
    output_model = CreateVehicleOut

    def run(self, payload: CreateVehicleIn, context: ToolContext, env: ToolEnvironment) -> CreateVehicleOut:
        if not payload.vin and not payload.license_plate:
            raise self.fail("invalid_input", "A VIN or license plate is required")
        customer = self.get_scoped(env, Customer, payload.customer_id, context, "customer")

        vehicle = Vehicle(
            tenant_id=context.tenant_id,
            customer_id=customer.id,
            vin=payload.vin.upper() if payload.vin else None,
            license_plate=payload.license_plate.upper() if payload.license_plate else None,
            year=payload.year,
            make=payload.make,
            model=payload.model,
        )
        env.session.add(vehicle)
        env.session.flush()
        return CreateVehicleOut(vehicle_id=vehicle.id)
