from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from application.event_log import Emit
from application.strategies.base import PlannerStrategy, get_bool, get_str
from application.tool_executor import ToolExecutor
from domain.schemas import FleetWorkOrdersGeneratedEvent, PlanEvent, ToolContext

FLEET_NAME_MAX = 80


@dataclass(frozen=True)
class FleetPlan:
    fleet_name: str | None
    program_name: str
    label: str | None
    vehicle_ids: list[str] | None
    contact_email: str | None
    contact_name: str | None
    base_template_slug: str | None
    include_custom_inspection: bool | None
    allow_create: bool


def build_fleet_plan(goal: str, context: dict[str, Any]) -> FleetPlan:
    vehicle_ids = context.get("vehicleIds")
    include_inspection = context.get("includeCustomInspection")
    trimmed_goal = goal.strip()
    return FleetPlan(
        fleet_name=get_str(context, "fleetName") or (trimmed_goal[:FLEET_NAME_MAX] or None),
        program_name=get_str(context, "programName", "program") or "Maintenance Program",
        label=get_str(context, "label"),
        vehicle_ids=[str(v) for v in vehicle_ids] if isinstance(vehicle_ids, list) else None,
        contact_email=get_str(context, "contactEmail"),
        contact_name=get_str(context, "contactName"),
        base_template_slug=get_str(context, "baseTemplateSlug"),
        include_custom_inspection=include_inspection if isinstance(include_inspection, bool) else None,
        allow_create=get_bool(context, "allowCreate", "allow_create"),
    )


class FleetPlanner(PlannerStrategy):
    """Fleet preventive-maintenance work orders.

    Nothing is created unless the caller opts in with allowCreate=true.
    """

    kind = "fleet"

    def run(self, goal: str, context: dict[str, Any], tool_context: ToolContext, emit: Emit, tools: ToolExecutor) -> str | None:
        plan = build_fleet_plan(goal, context)
        emit(PlanEvent(text=f"Fleet goal: {goal}"))

        if not plan.fleet_name:
            text = "Fleet planner needs at least a fleet name in goal or context.fleetName."
            emit(PlanEvent(text=text))
            return text

        if not plan.allow_create:
            text = (
                "Fleet planner is in existing-data mode (allowCreate=false). "
                "Select an existing fleet/program in the Fleet UI, or rerun with allowCreate=true for setup."
            )
            emit(PlanEvent(text=text))
            return text

        fleet = tools.call(
            "find_or_create_fleet",
            {"name": plan.fleet_name, "contact_email": plan.contact_email, "contact_name": plan.contact_name},
            tool_context,
            emit,
        )
        fleet_id = fleet["fleet_id"]

        program = tools.call(
            "find_or_create_fleet_program",
            {
                "fleet_id": fleet_id,
                "program_name": plan.program_name,
                "base_template_slug": plan.base_template_slug,
                "include_custom_inspection": plan.include_custom_inspection,
            },
            tool_context,
            emit,
        )
        program_id = program["program_id"]

        generated = tools.call(
            "generate_fleet_work_orders",
            {"fleet_id": fleet_id, "program_name": plan.program_name, "vehicle_ids": plan.vehicle_ids, "label": plan.label},
            tool_context,
            emit,
        )
        work_order_ids = [item["work_order_id"] for item in generated["created"]]
        emit(FleetWorkOrdersGeneratedEvent(fleet_id=fleet_id, program_id=program_id, work_order_ids=work_order_ids))

        return f"Fleet work orders generated: {len(work_order_ids)}. Program {program_id[:8]}."
