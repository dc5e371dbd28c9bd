from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from app.lab.catalog import ReferenceKind, SampleType
from app.lab.classifier import Classification
from app.lab.lifecycle import LabOrderStatus
from app.lab.order import LabPriority

# ── Catálogo ───────────────────────────────────────────────────

class LabParameterBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    code: str | None = Field(None, max_length=50)
    unit: str | None = Field(None, max_length=50)
    sort_order: int = 0
    reference_text: str | None = None
    ref_min: float | None = None
    ref_max: float | None = None
    critical_min: float | None = None
    critical_max: float | None = None

class LabParameterInput(LabParameterBase):
    id: UUID | None = None  # Si viene, se conserva el id del parámetro existente

class LabParameterResponse(LabParameterBase):
    id: UUID
    reference_kind: ReferenceKind
    reference_range: str

class LabTestBase(BaseModel):
    code: str = Field(..., min_length=1, max_length=50)
    name: str = Field(..., min_length=1, max_length=200)
    category: str | None = Field(None, max_length=100)
    sample_type: SampleType = SampleType.BLOOD
    price_minor: int = Field(0, ge=0)
    duration_hours: int = Field(24, gt=0)

class LabTestCreate(LabTestBase):
    parameters: list[LabParameterInput] = Field(default_factory=list)

class LabTestUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=200)
    category: str | None = Field(None, max_length=100)
    sample_type: SampleType | None = None
    price_minor: int | None = Field(None, ge=0)
    duration_hours: int | None = Field(None, gt=0)
    is_active: bool | None = None
    parameters: list[LabParameterInput] | None = None

    @field_validator("name", "sample_type", "price_minor", "duration_hours", "is_active")
    @classmethod
    def not_null(cls, v):
        # Se puede omitir, pero no enviar null: la prueba siempre los tiene
        if v is None:
            raise ValueError("no puede ser null")
        return v

class LabTestResponse(LabTestBase):
    is_active: bool
    parameters: list[LabParameterResponse]

# ── Lab Order Schemas ──────────────────────────────────────────

class LabOrderCreate(BaseModel):
    patient_id: UUID
    doctor_id: UUID | None = None
    test_codes: list[str]
    priority: LabPriority = LabPriority.ROUTINE
    notes: str | None = None
    created_by: UUID | None = None

class LabOrderStatusChange(BaseModel):
    status: LabOrderStatus
    actor_id: UUID | None = None  # Requerido para completar
    reason: str | None = Field(None, max_length=500)

class LabResultResponse(BaseModel):
    id: UUID
    parameter_id: UUID | None
    value_text: str
    notes: str | None
    recorded_at: datetime
    recorded_by: UUID | None
    reviewed_at: datetime | None = None
    reviewed_by: UUID | None = None
    classification: Classification

class LabOrderDetailResponse(BaseModel):
    id: UUID
    test: LabTestResponse
    notes: str | None
    results: list[LabResultResponse]

class LabOrderResponse(BaseModel):
    id: UUID
    order_number: str
    patient_id: UUID
    requesting_doctor_id: UUID | None
    priority: LabPriority
    status: LabOrderStatus

    created_at: datetime
    completed_at: datetime | None
    completed_by: UUID | None
    cancelled_at: datetime | None
    cancelled_by: UUID | None
    cancel_reason: str | None

    is_paid: bool
    total_amount_minor: int
    notes: str | None
    version: int

    details: list[LabOrderDetailResponse]
    missing_results: int

class LabOrderListResponse(BaseModel):
    items: list[LabOrderResponse]
    total: int
    pending_count: int
    urgent_count: int

# ── Lab Result Schemas ─────────────────────────────────────────

class LabResultCreate(BaseModel):
    detail_id: UUID
    parameter_id: UUID | None = None  # None = resultado general de una prueba sin parámetros
    value: str = Field(..., max_length=2000)
    notes: str | None = None
    recorded_by: UUID | None = None

class LabResultReview(BaseModel):
    reviewed_by: UUID

class LabResultRecorded(BaseModel):
    """Respuesta al registrar un resultado: la clasificación sirve para resaltar en la UI."""
    result_id: UUID
    detail_id: UUID
    parameter_id: UUID | None
    value_text: str
    classification: Classification
    order_status: LabOrderStatus
    status_advanced: bool

# ── Dashboard & Auditoría ──────────────────────────────────────

class LabDashboardStats(BaseModel):
    total_orders: int
    pending_orders: int
    processing_orders: int
    completed_today: int
    urgent_orders: int
    revenue_today_minor: int

class AuditEntryResponse(BaseModel):
    id: UUID
    user_id: UUID | None
    action: str
    old_data: dict | None
    new_data: dict | None
    created_at: datetime

    model_config = {"from_attributes": True}
