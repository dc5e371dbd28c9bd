from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.database import get_db
from app.lab.lifecycle import LabOrderStatus
from app.lab.order import LabPriority, OrderSummary
from app.schemas.lab import (
    AuditEntryResponse,
    LabDashboardStats,
    LabOrderCreate,
    LabOrderListResponse,
    LabOrderResponse,
    LabOrderStatusChange,
    LabResultCreate,
    LabResultRecorded,
    LabResultResponse,
    LabResultReview,
    LabTestCreate,
    LabTestResponse,
    LabTestUpdate,
)
from app.services import lab_service

router = APIRouter()
settings = get_settings()

# ── Catálogo ──────────────────────────────────────────

@router.get("/catalog", response_model=list[LabTestResponse])
async def list_lab_catalog(
    active_only: bool = Query(True),
    category: str | None = Query(None),
    db: AsyncSession = Depends(get_db),
):
    """Lista las pruebas del catálogo."""
    return await lab_service.list_catalog(db, active_only, category)

@router.post("/catalog", response_model=LabTestResponse, status_code=201)
async def create_lab_test(
    data: LabTestCreate,
    db: AsyncSession = Depends(get_db),
):
    """Crea una prueba con sus parámetros."""
    return await lab_service.create_test_definition(db, data)

@router.get("/catalog/{code}", response_model=LabTestResponse)
async def get_lab_test(
    code: str,
    db: AsyncSession = Depends(get_db),
):
    return await lab_service.get_test_definition(db, code)

@router.patch("/catalog/{code}", response_model=LabTestResponse)
async def update_lab_test(
    code: str,
    data: LabTestUpdate,
    db: AsyncSession = Depends(get_db),
):
    """Actualiza una prueba. Las órdenes ya creadas conservan su versión."""
    return await lab_service.update_test_definition(db, code, data)

# ── Órdenes ───────────────────────────────────────────

@router.post("/orders", response_model=LabOrderResponse, status_code=201)
async def create_lab_order(
    data: LabOrderCreate,
    db: AsyncSession = Depends(get_db),
):
    """Crea una nueva orden de laboratorio."""
    return await lab_service.create_order(db, data)

@router.get("/orders", response_model=LabOrderListResponse)
async def list_lab_orders(
    status: LabOrderStatus | None = Query(None),
    priority: LabPriority | None = Query(None),
    patient_id: UUID | None = Query(None),
    date_from: datetime | None = Query(None),
    date_to: datetime | None = Query(None),
    page: int = Query(1, ge=1),
    size: int = Query(settings.LAB_DEFAULT_PAGE_SIZE, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    """Lista las órdenes de laboratorio con filtros."""
    return await lab_service.list_orders(
        db, status, priority, patient_id, date_from, date_to, page, size
    )

@router.get("/dashboard", response_model=LabDashboardStats)
async def get_lab_dashboard_stats(
    db: AsyncSession = Depends(get_db),
):
    """Obtiene estadísticas generales del módulo de laboratorio."""
    return await lab_service.get_dashboard_stats(db)

@router.get("/orders/{order_id}", response_model=LabOrderResponse)
async def get_lab_order(
    order_id: UUID,
    db: AsyncSession = Depends(get_db),
):
    """Obtiene el detalle de una orden con sus resultados clasificados."""
    return await lab_service.get_order(db, order_id)

@router.post("/orders/{order_id}/results", response_model=LabResultRecorded)
async def record_lab_result(
    order_id: UUID,
    data: LabResultCreate,
    db: AsyncSession = Depends(get_db),
):
    """Registra o sobrescribe el valor de un parámetro."""
    return await lab_service.record_result(db, order_id, data)

@router.post("/orders/{order_id}/results/{result_id}/review", response_model=LabResultResponse)
async def review_lab_result(
    order_id: UUID,
    result_id: UUID,
    data: LabResultReview,
    db: AsyncSession = Depends(get_db),
):
    """Marca un resultado como revisado por un segundo profesional."""
    return await lab_service.review_result(db, order_id, result_id, data)

@router.patch("/orders/{order_id}/status", response_model=LabOrderResponse)
async def change_lab_order_status(
    order_id: UUID,
    data: LabOrderStatusChange,
    db: AsyncSession = Depends(get_db),
):
    """Cambia el estado de una orden (muestras tomadas, completar, cancelar)."""
    return await lab_service.change_status(db, order_id, data)

@router.get("/orders/{order_id}/summary", response_model=OrderSummary)
async def get_lab_order_summary(
    order_id: UUID,
    db: AsyncSession = Depends(get_db),
):
    """Resumen para impresión: conteos por clasificación y líneas del reporte."""
    return await lab_service.get_order_summary(db, order_id)

@router.get("/orders/{order_id}/audit", response_model=list[AuditEntryResponse])
async def get_lab_order_audit(
    order_id: UUID,
    action: str | None = Query(None),
    db: AsyncSession = Depends(get_db),
):
    """Eventos de auditoría de la orden (create, record_result, status_change)."""
    return await lab_service.get_order_audit(db, order_id, action)

@router.get("/patients/{patient_id}/history", response_model=list[LabOrderResponse])
async def get_patient_lab_history(
    patient_id: UUID,
    db: AsyncSession = Depends(get_db),
):
    """Obtiene el historial de laboratorio de un paciente específico."""
    return await lab_service.get_patient_history(db, patient_id)
