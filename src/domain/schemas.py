from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class PlannerRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    goal: str = ""
    planner: Optional[str] = None
    context: Dict[str, Any] = Field(default_factory=dict)
    idempotency_key: Optional[str] = Field(default=None, alias="idempotencyKey")


class PlannerResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    run_id: str = Field(alias="runId")
    already_exists: bool = Field(alias="alreadyExists")
    error: Optional[str] = None


class ToolContext(BaseModel):
    """Caller scope handed to every strategy and tool."""

    model_config = ConfigDict(frozen=True)
    tenant_id: str
    actor_id: str
    run_id: Optional[str] = None


# --- Planner events -----------------------------------------------------------
# Each kind owns its payload; consumers branch on `kind` before reading fields.


class PlanEvent(BaseModel):
    kind: Literal["plan"] = "plan"
    text: str


class ToolCallEvent(BaseModel):
    kind: Literal["tool_call"] = "tool_call"
    name: str
    input: Dict[str, Any] = Field(default_factory=dict)


class ToolResultEvent(BaseModel):
    kind: Literal["tool_result"] = "tool_result"
    name: str
    output: Dict[str, Any] = Field(default_factory=dict)


class WorkOrderCreatedEvent(BaseModel):
    kind: Literal["wo.created"] = "wo.created"
    work_order_id: str
    customer_id: Optional[str] = None
    vehicle_id: Optional[str] = None


class FleetWorkOrdersGeneratedEvent(BaseModel):
    kind: Literal["fleet.work_orders_generated"] = "fleet.work_orders_generated"
    fleet_id: str
    program_id: Optional[str] = None
    work_order_ids: List[str] = Field(default_factory=list)


class ApprovalRecordedEvent(BaseModel):
    kind: Literal["approval.recorded"] = "approval.recorded"
    work_order_id: str
    decision: str
    method: str


class FinalEvent(BaseModel):
    kind: Literal["final"] = "final"
    text: str


class ErrorEvent(BaseModel):
    kind: Literal["error"] = "error"
    message: str


PlannerEvent = Annotated[
    Union[
        PlanEvent,
        ToolCallEvent,
        ToolResultEvent,
        WorkOrderCreatedEvent,
        FleetWorkOrdersGeneratedEvent,
        ApprovalRecordedEvent,
        FinalEvent,
        ErrorEvent,
    ],
    Field(discriminator="kind"),
]

planner_event_adapter: TypeAdapter[PlannerEvent] = TypeAdapter(PlannerEvent)


class StoredEvent(BaseModel):
    run_id: str
    step: int = Field(ge=1)
    kind: str
    event: PlannerEvent
    created_at: Optional[datetime] = None

    def sse_payload(self) -> Dict[str, Any]:
        payload = self.event.model_dump(mode="json")
        payload["step"] = self.step
        return payload


# --- LLM goal parsing -------------------------------------------------------------


class ParsedLine(BaseModel):
    description: str = ""
    job_type: Optional[str] = Field(default=None, alias="jobType")
    labor_hours: Optional[float] = Field(default=None, alias="laborHours")
    notes: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)


class ParsedInspection(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    title: Optional[str] = None
    vehicle_type: Optional[Literal["car", "truck", "bus", "trailer"]] = Field(default=None, alias="vehicleType")
    include_axle: Optional[bool] = Field(default=None, alias="includeAxle")
    include_oil: Optional[bool] = Field(default=None, alias="includeOil")
    selections: Dict[str, List[str]] = Field(default_factory=dict)
    services: List[str] = Field(default_factory=list)


class ParsedGoal(BaseModel):
    """Strict JSON the LLM planner asks for; every field is optional."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")
    customer_query: Optional[str] = Field(default=None, alias="customerQuery")
    plate_or_vin: Optional[str] = Field(default=None, alias="plateOrVin")
    order_type: Optional[str] = Field(default=None, alias="orderType")
    notes: Optional[str] = None
    lines: List[ParsedLine] = Field(default_factory=list)
    email_invoice_to: Optional[str] = Field(default=None, alias="emailInvoiceTo")
    email_subject: Optional[str] = Field(default=None, alias="emailSubject")
    photo_url: Optional[str] = Field(default=None, alias="photoUrl")
    inspection: Optional[ParsedInspection] = None
    auto_approve: Optional[bool] = Field(default=None, alias="autoApprove")
    approval_method: Optional[str] = Field(default=None, alias="approvalMethod")
