from __future__ import annotations

from sqlalchemy import func, select

from domain.schemas import ToolContext
from domain.tool_schemas import FindOrCreateFleetIn, FindOrCreateFleetOut
from infrastructure.persistence.tables import Fleet
from tools.base import Tool, ToolEnvironment
from tools.registry import register_tool


@register_tool
class FindOrCreateFleetTool(Tool):
    name = "find_or_create_fleet"
    description = "Find a fleet by name (case-insensitive) in this shop, creating it when missing."
    input_model = FindOrCreateFleetIn
    output_model = FindOrCreateFleetOut

    def run(self, payload: FindOrCreateFleetIn, context: ToolContext, env: ToolEnvironment) -> FindOrCreateFleetOut:
        name = payload.name.strip()
        fleet = env.session.scalars(
            select(Fleet).where(Fleet.tenant_id == context.tenant_id, func.lower(Fleet.name) == name.lower()).limit(1)
        ).first()
        if fleet is not None:
            return FindOrCreateFleetOut(fleet_id=fleet.id, created=False)

        fleet = Fleet(
            tenant_id=context.tenant_id,
            name=name,
            contact_email=payload.contact_email,
            contact_name=payload.contact_name,
        )
        env.session.add(fleet)
        env.session.flush()
        return FindOrCreateFleetOut(fleet_id=fleet.id, created=True)
