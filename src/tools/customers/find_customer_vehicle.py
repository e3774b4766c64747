from __future__ import annotations

from sqlalchemy import or_, select

from domain.schemas import ToolContext
from domain.tool_schemas import CustomerVehicleMatch, FindCustomerVehicleIn, FindCustomerVehicleOut
from infrastructure.persistence.tables import Customer, Vehicle
from tools.base import Tool, ToolEnvironment
from tools.registry import register_tool

MAX_MATCHES = 5


def _match(customer: Customer | None, vehicle: Vehicle) -> CustomerVehicleMatch:
    return CustomerVehicleMatch(
        customer_id=vehicle.customer_id or "",
        customer_name=(customer.name if customer is not None else None) or "Customer",
        vehicle_id=vehicle.id,
        year=vehicle.year,
        make=vehicle.make,
        model=vehicle.model,
        vin=vehicle.vin,
        license_plate=vehicle.license_plate,
    )


def _result(matches: list[CustomerVehicleMatch], miss_reason: str) -> FindCustomerVehicleOut:
    first = matches[0] if matches else None
    return FindCustomerVehicleOut(
        customer_id=first.customer_id if first else None,
        vehicle_id=first.vehicle_id if first else None,
        matches=matches,
        found=bool(matches),
        reason=None if matches else miss_reason,
    )


@register_tool
class FindCustomerVehicleTool(Tool):
    name = "find_customer_vehicle"
    description = "Fuzzy search customers/vehicles by name, plate, or VIN"
    input_model = FindCustomerVehicleIn
    output_model = FindCustomerVehicleOut

    def run(self, payload: FindCustomerVehicleIn, context: ToolContext, env: ToolEnvironment) -> FindCustomerVehicleOut:
        session = env.session

        # Plate/VIN is more specific, so it wins over the name search.
        if payload.plate_or_vin:
            pattern = f"%{payload.plate_or_vin}%"
            stmt = (
                select(Vehicle, Customer)
                .join(Customer, Customer.id == Vehicle.customer_id)
                .where(Vehicle.tenant_id == context.tenant_id)
                .where(or_(Vehicle.license_plate.ilike(pattern), Vehicle.vin.ilike(pattern)))
                .limit(MAX_MATCHES)
            )
            matches = [_match(customer, vehicle) for vehicle, customer in session.execute(stmt).all()]
            return _result(matches, f'No vehicle match for "{payload.plate_or_vin}" in this shop.')

        if payload.customer_query:
            customers = session.scalars(
                select(Customer)
                .where(Customer.tenant_id == context.tenant_id)
                .where(Customer.name.ilike(f"%{payload.customer_query}%"))
                .order_by(Customer.name)
                .limit(MAX_MATCHES)
            ).all()
            matches: list[CustomerVehicleMatch] = []
            for customer in customers:
                vehicles = session.scalars(
                    select(Vehicle).where(Vehicle.customer_id == customer.id, Vehicle.tenant_id == context.tenant_id)
                ).all()
                matches.extend(_match(customer, vehicle) for vehicle in vehicles)
            result = _result(matches, f'No customer+vehicle matches for "{payload.customer_query}" in this shop.')
            if not matches and customers:
                # Customer exists but has no vehicle yet; callers may add one.
                result.customer_id = customers[0].id
            return result

        return FindCustomerVehicleOut(found=False, reason="Provide customer_query and/or plate_or_vin.")
