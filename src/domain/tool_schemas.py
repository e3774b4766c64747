from __future__ import annotations

from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

OrderType = Literal["inspection", "maintenance", "repair", "diagnosis"]
JobTypeName = Literal["maintenance", "repair", "diagnosis", "inspection"]
ApprovalMethod = Literal["fleet", "advisor", "customer", "other"]
ApprovalDecision = Literal["approved", "declined"]


def _strip_query(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    text = value.strip()[:64]
    return text or None


# --- customers / vehicles ---------------------------------------------------------


class FindCustomerVehicleIn(BaseModel):
    customer_query: Optional[str] = None
    plate_or_vin: Optional[str] = None

    @field_validator("customer_query", "plate_or_vin")
    @classmethod
    def strip_queries(cls, value: Optional[str]) -> Optional[str]:
        return _strip_query(value)


class CustomerVehicleMatch(BaseModel):
    customer_id: str
    customer_name: str
    vehicle_id: str
    year: Optional[int] = None
    make: Optional[str] = None
    model: Optional[str] = None
    vin: Optional[str] = None
    license_plate: Optional[str] = None


class FindCustomerVehicleOut(BaseModel):
    customer_id: Optional[str] = None
    vehicle_id: Optional[str] = None
    matches: List[CustomerVehicleMatch] = Field(default_factory=list)
    found: bool = False
    reason: Optional[str] = None


class CreateCustomerIn(BaseModel):
    name: str = Field(min_length=1)
    email: Optional[str] = None
    phone: Optional[str] = None


class CreateCustomerOut(BaseModel):
    customer_id: str


class CreateVehicleIn(BaseModel):
    customer_id: str
    vin: Optional[str] = None
    license_plate: Optional[str] = None
    year: Optional[int] = None
    make: Optional[str] = None
    model: Optional[str] = None


class CreateVehicleOut(BaseModel):
    vehicle_id: str


# --- work orders ------------------------------------------------------------------------


class CreateWorkOrderIn(BaseModel):
    customer_id: str
    vehicle_id: str
    type: OrderType = "inspection"
    notes: Optional[str] = None


class CreateWorkOrderOut(BaseModel):
    work_order_id: str
    status: str


class AddWorkOrderLineIn(BaseModel):
    work_order_id: str
    description: str = Field(min_length=1)
    job_type: JobTypeName = "repair"
    labor_hours: float = Field(default=1.0, ge=0)
    notes: Optional[str] = None


class AddWorkOrderLineOut(BaseModel):
    line_id: str


class AttachPhotoIn(BaseModel):
    work_order_id: str
    image_url: str = Field(min_length=1)
    kind: str = "photo"


class AttachPhotoOut(BaseModel):
    attachment_id: str


class CreateCustomInspectionIn(BaseModel):
    work_order_id: str
    title: str = "Custom Inspection"
    selections: Dict[str, List[str]] = Field(default_factory=dict)
    services: List[str] = Field(default_factory=list)
    vehicle_type: Literal["car", "truck", "bus", "trailer"] = "truck"
    include_axle: bool = True
    include_oil: bool = False


class CreateCustomInspectionOut(BaseModel):
    inspection_id: str
    item_count: int


# --- invoices ------------------------------------------------------------------------------


class GenerateInvoiceHtmlIn(BaseModel):
    work_order_id: str


class GenerateInvoiceHtmlOut(BaseModel):
    html: str
    total: float


class EmailInvoiceIn(BaseModel):
    to_email: str = Field(min_length=3)
    subject: str = "Your invoice"
    html: str

    @field_validator("to_email")
    @classmethod
    def check_email(cls, value: str) -> str:
        text = value.strip()
        if "@" not in text:
            raise ValueError("to_email must be an email address")
        return text


class EmailInvoiceOut(BaseModel):
    message_id: str
    status: str


# --- fleet ----------------------------------------------------------------------------------


class FindOrCreateFleetIn(BaseModel):
    name: str = Field(min_length=1)
    contact_email: Optional[str] = None
    contact_name: Optional[str] = None


class FindOrCreateFleetOut(BaseModel):
    fleet_id: str
    created: bool


class FindOrCreateFleetProgramIn(BaseModel):
    fleet_id: str
    program_name: str = Field(min_length=1)
    base_template_slug: Optional[str] = None
    include_custom_inspection: Optional[bool] = None


class FindOrCreateFleetProgramOut(BaseModel):
    program_id: str
    created: bool


class GenerateFleetWorkOrdersIn(BaseModel):
    fleet_id: str
    program_name: str = Field(min_length=1)
    vehicle_ids: Optional[List[str]] = None
    label: Optional[str] = None


class GeneratedWorkOrder(BaseModel):
    work_order_id: str
    vehicle_id: str
    customer_id: Optional[str] = None


class GenerateFleetWorkOrdersOut(BaseModel):
    created: List[GeneratedWorkOrder] = Field(default_factory=list)


# --- approvals ----------------------------------------------------------------------------


class ListPendingApprovalsIn(BaseModel):
    work_order_id: Optional[str] = None
    limit: int = Field(default=50, ge=1, le=500)


class PendingApproval(BaseModel):
    line_id: str
    work_order_id: str
    description: str
    job_type: Optional[str] = None
    labor_hours: Optional[float] = None


class ListPendingApprovalsOut(BaseModel):
    items: List[PendingApproval] = Field(default_factory=list)


class SetLineApprovalIn(BaseModel):
    line_id: str
    decision: ApprovalDecision


class SetLineApprovalOut(BaseModel):
    line_id: str
    work_order_id: str
    approval_state: str


class RecordWorkOrderApprovalIn(BaseModel):
    work_order_id: str
    method: ApprovalMethod = "other"
    decision: ApprovalDecision = "approved"
    notes: Optional[str] = None


class RecordWorkOrderApprovalOut(BaseModel):
    approval_id: str
    work_order_status: str
