from __future__ import annotations

import logging

from sqlalchemy import select

from domain.schemas import ToolContext
from domain.tool_schemas import GeneratedWorkOrder, GenerateFleetWorkOrdersIn, GenerateFleetWorkOrdersOut
from infrastructure.persistence.tables import Fleet, FleetProgram, FleetProgramTask, FleetVehicle, Vehicle, WorkOrder, WorkOrderLine
from tools.base import Tool, ToolEnvironment
from tools.fleet.find_or_create_fleet_program import find_program
from tools.registry import register_tool

logger = logging.getLogger(__name__)


@register_tool
class GenerateFleetWorkOrdersTool(Tool):
    name = "generate_fleet_work_orders"
    description = (
        "Generate work orders for a fleet program (find/create by name) for one or more vehicles, "
        "including job lines based on program tasks."
    )
    input_model = GenerateFleetWorkOrdersIn
    output_model = GenerateFleetWorkOrdersOut

    def run(self, payload: GenerateFleetWorkOrdersIn, context: ToolContext, env: ToolEnvironment) -> GenerateFleetWorkOrdersOut:
        session = env.session
        fleet = self.get_scoped(env, Fleet, payload.fleet_id, context, "fleet")

        program = find_program(session, fleet.id, payload.program_name)
        if program is None:
            program = FleetProgram(fleet_id=fleet.id, name=payload.program_name.strip())
            session.add(program)
            session.flush()

        vehicle_ids = payload.vehicle_ids
        if not vehicle_ids:
            vehicle_ids = list(
                session.scalars(
                    select(FleetVehicle.vehicle_id).where(FleetVehicle.fleet_id == fleet.id, FleetVehicle.active.is_(True))
                ).all()
            )
        if not vehicle_ids:
            return GenerateFleetWorkOrdersOut(created=[])

        tasks = session.scalars(
            select(FleetProgramTask).where(FleetProgramTask.program_id == program.id).order_by(FleetProgramTask.display_order)
        ).all()
        # A program without tasks still gets one generic line so the run produces something.
        effective_tasks = [(t.description, t.job_type or "maintenance", t.default_labor_hours or 1.0) for t in tasks] or [
            (f"Fleet program: {program.name}", "maintenance", 1.0)
        ]
        notes = f"Fleet program: {program.name} ({payload.label})" if payload.label else f"Fleet program: {program.name}"

        created: list[GeneratedWorkOrder] = []
        for vehicle_id in vehicle_ids:
            vehicle = session.get(Vehicle, vehicle_id)
            if vehicle is None:
                logger.info("generate_fleet_work_orders skipping missing vehicle_id=%s", vehicle_id)
                continue
            if vehicle.tenant_id != context.tenant_id:
                raise self.fail("cross_tenant", f"Cross-shop access denied for vehicle {vehicle_id}")

            work_order = WorkOrder(
                tenant_id=context.tenant_id,
                customer_id=vehicle.customer_id,
                vehicle_id=vehicle.id,
                created_by=context.actor_id,
                type="maintenance",
                status="awaiting_approval",
                notes=notes,
                source_fleet_program_id=program.id,
            )
            session.add(work_order)
            session.flush()

            for description, job_type, labor_hours in effective_tasks:
                session.add(
                    WorkOrderLine(
                        tenant_id=context.tenant_id,
                        work_order_id=work_order.id,
                        description=description,
                        job_type=job_type,
                        labor_hours=labor_hours,
                        status="awaiting",
                        approval_state="pending",
                        source="fleet_program",
                    )
                )
            created.append(GeneratedWorkOrder(work_order_id=work_order.id, vehicle_id=vehicle.id, customer_id=vehicle.customer_id))

        session.flush()
        return GenerateFleetWorkOrdersOut(created=created)
