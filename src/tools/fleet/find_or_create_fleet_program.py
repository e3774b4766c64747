from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from domain.schemas import ToolContext
from domain.tool_schemas import FindOrCreateFleetProgramIn, FindOrCreateFleetProgramOut
from infrastructure.persistence.tables import Fleet, FleetProgram
from tools.base import Tool, ToolEnvironment
from tools.registry import register_tool


def find_program(session: Session, fleet_id: str, program_name: str) -> FleetProgram | None:
    return session.scalars(
        select(FleetProgram)
        .where(FleetProgram.fleet_id == fleet_id, func.lower(FleetProgram.name) == program_name.strip().lower())
        .limit(1)
    ).first()


@register_tool
class FindOrCreateFleetProgramTool(Tool):
    name = "find_or_create_fleet_program"
    description = "Find a maintenance program on a fleet by name, creating it when missing."
    input_model = FindOrCreateFleetProgramIn
    output_model = FindOrCreateFleetProgramOut

    def run(self, payload: FindOrCreateFleetProgramIn, context: ToolContext, env: ToolEnvironment) -> FindOrCreateFleetProgramOut:
        fleet = self.get_scoped(env, Fleet, payload.fleet_id, context, "fleet")
        program = find_program(env.session, fleet.id, payload.program_name)
        if program is not None:
            return FindOrCreateFleetProgramOut(program_id=program.id, created=False)

        program = FleetProgram(
            fleet_id=fleet.id,
            name=payload.program_name.strip(),
            base_template_slug=payload.base_template_slug,
            include_custom_inspection=bool(payload.include_custom_inspection),
        )
        env.session.add(program)
        env.session.flush()
        return FindOrCreateFleetProgramOut(program_id=program.id, created=True)
