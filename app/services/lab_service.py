"""
Lógica de negocio del módulo de Laboratorio.
Orquesta el motor (app.lab) con la persistencia SQL y el audit log.
"""

import logging
from datetime import datetime, time, timezone
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.exceptions import ConflictException, NotFoundException
from app.lab import order as lab_order
from app.lab.catalog import ParameterDefinition, TestDefinition
from app.lab.classifier import Classification
from app.lab.errors import ConcurrentModification, EmptyTestSelection, UnknownTest
from app.lab.lifecycle import OPEN_STATUSES, LabOrderStatus
from app.lab.order import LabOrder, LabPriority, OrderSummary, RecordedResult
from app.lab.repository import LabRepository
from app.models.lab_order import LabOrder as LabOrderRow
from app.models.lab_test import LabParameter, LabTest
from app.schemas.lab import (
    AuditEntryResponse,
    LabDashboardStats,
    LabOrderCreate,
    LabOrderDetailResponse,
    LabOrderListResponse,
    LabOrderResponse,
    LabOrderStatusChange,
    LabParameterResponse,
    LabResultCreate,
    LabResultRecorded,
    LabResultResponse,
    LabResultReview,
    LabTestCreate,
    LabTestResponse,
    LabTestUpdate,
)
from app.services.audit_service import get_entity_logs, log_action
from app.services.lab_repository import (
    SqlLabRepository,
    order_load_options,
    order_row_to_domain,
    test_row_to_definition,
)

logger = logging.getLogger(__name__)

AUDIT_ENTITY = "lab_order"


# ── Helpers ───────────────────────────────────────────


def _parameter_to_response(param: ParameterDefinition) -> LabParameterResponse:
    return LabParameterResponse(
        **param.model_dump(),
        reference_kind=param.reference_kind,
        reference_range=param.reference_range_text(),
    )


def _test_to_response(definition: TestDefinition) -> LabTestResponse:
    return LabTestResponse(
        code=definition.code,
        name=definition.name,
        category=definition.category,
        sample_type=definition.sample_type,
        price_minor=definition.price_minor,
        duration_hours=definition.duration_hours,
        is_active=definition.is_active,
        parameters=[_parameter_to_response(p) for p in definition.parameters],
    )


def _order_to_response(order: LabOrder) -> LabOrderResponse:
    return LabOrderResponse(
        **order.model_dump(exclude={"details"}),
        details=[
            LabOrderDetailResponse(
                id=detail.id,
                test=_test_to_response(detail.test),
                notes=detail.notes,
                results=[
                    LabResultResponse(
                        **result.model_dump(),
                        classification=detail.classify_result(result),
                    )
                    for result in detail.results
                ],
            )
            for detail in order.details
        ],
        missing_results=len(order.missing_results()),
    )


def _apply_parameter(row: LabParameter, param: ParameterDefinition) -> LabParameter:
    row.name = param.name
    row.code = param.code
    row.unit = param.unit
    row.sort_order = param.sort_order
    row.reference_text = param.reference_text
    row.ref_min = param.ref_min
    row.ref_max = param.ref_max
    row.critical_min = param.critical_min
    row.critical_max = param.critical_max
    return row


async def _load_order(repo: LabRepository, order_id: UUID) -> LabOrder:
    order = await repo.get_order(order_id)
    if not order:
        raise NotFoundException(detail="Orden de laboratorio no encontrada")
    return order


async def _persist_order(
    db: AsyncSession,
    repo: LabRepository,
    order: LabOrder,
    detail_id: UUID | None = None,
    result: RecordedResult | None = None,
) -> None:
    """Guarda la orden y, si se indica, el resultado tocado. Ante un conflicto revierte todo."""
    try:
        if result is not None:
            await repo.persist_result(detail_id, result)
        await repo.persist(order)
    except ConcurrentModification:
        await db.rollback()
        raise


# ── Catálogo ──────────────────────────────────────────


async def create_test_definition(db: AsyncSession, data: LabTestCreate) -> LabTestResponse:
    """Crea una prueba del catálogo. Valida los parámetros antes de escribir."""
    existing = await db.scalar(select(LabTest.id).where(LabTest.code == data.code))
    if existing:
        raise ConflictException(f"Ya existe una prueba con código {data.code}")

    definition = TestDefinition.model_validate(
        {
            **data.model_dump(exclude={"parameters"}),
            "parameters": [p.model_dump(exclude_none=True) for p in data.parameters],
        }
    )

    row = LabTest(
        code=definition.code,
        name=definition.name,
        category=definition.category,
        sample_type=definition.sample_type,
        price_minor=definition.price_minor,
        duration_hours=definition.duration_hours,
        is_active=True,
        parameters=[_apply_parameter(LabParameter(id=p.id), p) for p in definition.parameters],
    )
    db.add(row)
    await db.commit()

    logger.info("Prueba de laboratorio creada: %s (%d parámetros)", definition.code, len(definition.parameters))
    return _test_to_response(definition)


async def update_test_definition(db: AsyncSession, code: str, data: LabTestUpdate) -> LabTestResponse:
    """
    Actualiza una prueba del catálogo.
    Las órdenes existentes no cambian: guardan su propia copia de la definición.
    """
    repo = SqlLabRepository(db)
    row = await repo.get_test_row(code)
    if row is None:
        raise UnknownTest(f"Prueba '{code}' no existe en el catálogo")

    current = test_row_to_definition(row)
    update_data = data.model_dump(exclude_unset=True, exclude={"parameters"})
    merged = {**current.model_dump(exclude={"parameters"}), **update_data}
    if data.parameters is not None:
        merged["parameters"] = [p.model_dump(exclude_none=True) for p in data.parameters]
    else:
        merged["parameters"] = [p.model_dump() for p in current.parameters]

    definition = TestDefinition.model_validate(merged)

    for key, value in update_data.items():
        setattr(row, key, value)

    if data.parameters is not None:
        # Conserva las filas cuyo id se mantiene; delete-orphan elimina el resto
        by_id = {p.id: p for p in row.parameters}
        row.parameters = [
            _apply_parameter(by_id.get(p.id) or LabParameter(id=p.id), p)
            for p in definition.parameters
        ]

    await db.commit()
    logger.info("Prueba de laboratorio actualizada: %s", code)
    return _test_to_response(definition)


async def get_test_definition(db: AsyncSession, code: str) -> LabTestResponse:
    row = await SqlLabRepository(db).get_test_row(code)
    if row is None:
        raise UnknownTest(f"Prueba '{code}' no existe en el catálogo")
    return _test_to_response(test_row_to_definition(row))


async def list_catalog(
    db: AsyncSession,
    active_only: bool = True,
    category: str | None = None,
) -> list[LabTestResponse]:
    query = select(LabTest).options(selectinload(LabTest.parameters)).order_by(LabTest.name)
    if active_only:
        query = query.where(LabTest.is_active.is_(True))
    if category:
        query = query.where(LabTest.category == category)

    result = await db.execute(query)
    return [_test_to_response(test_row_to_definition(row)) for row in result.scalars().all()]


# ── Órdenes ───────────────────────────────────────────


async def create_order(db: AsyncSession, data: LabOrderCreate) -> LabOrderResponse:
    """Crea una orden `pending` con una copia congelada de cada prueba seleccionada."""
    if not data.test_codes:
        raise EmptyTestSelection()

    repo = SqlLabRepository(db)
    tests = [await repo.load_test_definition(code) for code in data.test_codes]
    order_number = await repo.next_order_number()

    order = lab_order.create_order(
        order_number,
        data.patient_id,
        tests,
        priority=data.priority,
        doctor_id=data.doctor_id,
        notes=data.notes,
    )
    await repo.persist(order)

    await log_action(
        db,
        user_id=data.created_by,
        entity=AUDIT_ENTITY,
        entity_id=str(order.id),
        action="create",
        new_data={
            "order_number": order.order_number,
            "tests": [t.code for t in tests],
            "total_amount_minor": order.total_amount_minor,
        },
    )
    await db.commit()

    logger.info(
        "Orden de laboratorio creada: %s (%d pruebas, prioridad %s)",
        order.order_number, len(order.details), order.priority.value,
    )
    return _order_to_response(order)


async def get_order(db: AsyncSession, order_id: UUID) -> LabOrderResponse:
    order = await _load_order(SqlLabRepository(db), order_id)
    return _order_to_response(order)


async def get_order_summary(db: AsyncSession, order_id: UUID) -> OrderSummary:
    """Resumen de solo lectura para reportes e impresión."""
    order = await _load_order(SqlLabRepository(db), order_id)
    return order.summarize()


async def list_orders(
    db: AsyncSession,
    status: LabOrderStatus | None = None,
    priority: LabPriority | None = None,
    patient_id: UUID | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    page: int = 1,
    size: int = 50,
) -> LabOrderListResponse:
    """Lista órdenes con filtros y paginación."""
    query = select(LabOrderRow)

    if status:
        query = query.where(LabOrderRow.status == status)
    if priority:
        query = query.where(LabOrderRow.priority == priority)
    if patient_id:
        query = query.where(LabOrderRow.patient_id == patient_id)
    if date_from:
        query = query.where(LabOrderRow.created_at >= date_from)
    if date_to:
        query = query.where(LabOrderRow.created_at <= date_to)

    # Contar totales para paginación
    total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar_one()

    query = (
        query.order_by(LabOrderRow.created_at.desc(), LabOrderRow.order_number.desc())
        .offset((page - 1) * size)
        .limit(size)
        .options(*order_load_options())
        .execution_options(populate_existing=True)
    )
    rows = (await db.execute(query)).scalars().all()

    pending_count = await db.scalar(
        select(func.count(LabOrderRow.id)).where(LabOrderRow.status.in_(OPEN_STATUSES))
    )
    urgent_count = await db.scalar(
        select(func.count(LabOrderRow.id)).where(
            LabOrderRow.priority == LabPriority.URGENT,
            LabOrderRow.status.in_(OPEN_STATUSES),
        )
    )

    return LabOrderListResponse(
        items=[_order_to_response(order_row_to_domain(row)) for row in rows],
        total=total,
        pending_count=pending_count or 0,
        urgent_count=urgent_count or 0,
    )


async def get_patient_history(db: AsyncSession, patient_id: UUID) -> list[LabOrderResponse]:
    """Obtiene el historial completo de laboratorio de un paciente."""
    result = await db.execute(
        select(LabOrderRow)
        .where(LabOrderRow.patient_id == patient_id)
        .order_by(LabOrderRow.created_at.desc())
        .options(*order_load_options())
        .execution_options(populate_existing=True)
    )
    return [_order_to_response(order_row_to_domain(row)) for row in result.scalars().all()]


# ── Resultados y estado ───────────────────────────────


async def record_result(db: AsyncSession, order_id: UUID, data: LabResultCreate) -> LabResultRecorded:
    """
    Registra (o sobrescribe) un resultado. Si la orden estaba pendiente,
    avanza a `processing`; la respuesta lo indica en `status_advanced`.
    """
    repo = SqlLabRepository(db)
    order = await _load_order(repo, order_id)
    previous_status = order.status

    classification = order.record_result(
        data.detail_id,
        data.parameter_id,
        data.value,
        notes=data.notes,
        actor_id=data.recorded_by,
    )
    detail = order.get_detail(data.detail_id)
    result = detail.find_result(data.parameter_id)

    await _persist_order(db, repo, order, detail.id, result)

    status_advanced = order.status != previous_status
    await log_action(
        db,
        user_id=data.recorded_by,
        entity=AUDIT_ENTITY,
        entity_id=str(order.id),
        action="record_result",
        old_data={"status": previous_status} if status_advanced else None,
        new_data={
            "detail_id": detail.id,
            "test_code": detail.test.code,
            "parameter_id": data.parameter_id,
            "value_text": data.value,
            "classification": classification,
            "status": order.status,
        },
    )
    await db.commit()

    if status_advanced:
        logger.info(
            "Orden %s avanzó de '%s' a '%s' al registrar resultado",
            order.order_number, previous_status.value, order.status.value,
        )
    if classification == Classification.CRITICAL:
        logger.warning(
            "Resultado crítico en orden %s, prueba %s: %s",
            order.order_number, detail.test.code, data.value,
        )

    return LabResultRecorded(
        result_id=result.id,
        detail_id=detail.id,
        parameter_id=result.parameter_id,
        value_text=result.value_text,
        classification=classification,
        order_status=order.status,
        status_advanced=status_advanced,
    )


async def review_result(
    db: AsyncSession, order_id: UUID, result_id: UUID, data: LabResultReview
) -> LabResultResponse:
    """Marca un resultado como revisado. Un nuevo valor sobre el mismo parámetro borra la revisión."""
    repo = SqlLabRepository(db)
    order = await _load_order(repo, order_id)
    detail, result = order.locate_result(result_id)

    order.review_result(detail.id, result.parameter_id, data.reviewed_by)
    await _persist_order(db, repo, order, detail.id, result)

    await log_action(
        db,
        user_id=data.reviewed_by,
        entity=AUDIT_ENTITY,
        entity_id=str(order.id),
        action="review_result",
        new_data={
            "result_id": result.id,
            "test_code": detail.test.code,
            "parameter_id": result.parameter_id,
            "reviewed_at": result.reviewed_at,
        },
    )
    await db.commit()

    logger.info("Resultado %s de la orden %s revisado", result.id, order.order_number)
    return LabResultResponse(**result.model_dump(), classification=detail.classify_result(result))


async def change_status(db: AsyncSession, order_id: UUID, data: LabOrderStatusChange) -> LabOrderResponse:
    """Aplica un cambio de estado explícito (tomar muestras, completar, cancelar)."""
    repo = SqlLabRepository(db)
    order = await _load_order(repo, order_id)
    old_status = order.status

    order.transition_status(data.status, actor_id=data.actor_id, reason=data.reason)
    await _persist_order(db, repo, order)

    await log_action(
        db,
        user_id=data.actor_id,
        entity=AUDIT_ENTITY,
        entity_id=str(order.id),
        action="status_change",
        old_data={"status": old_status},
        new_data={"status": order.status, "reason": data.reason},
    )
    await db.commit()

    missing = len(order.missing_results())
    if order.status == LabOrderStatus.COMPLETED and missing:
        logger.info("Orden %s completada con %d resultado(s) sin registrar", order.order_number, missing)
    logger.info("Orden %s: '%s' → '%s'", order.order_number, old_status.value, order.status.value)
    return _order_to_response(order)


async def get_order_audit(
    db: AsyncSession, order_id: UUID, action: str | None = None
) -> list[AuditEntryResponse]:
    await _load_order(SqlLabRepository(db), order_id)
    entries = await get_entity_logs(db, AUDIT_ENTITY, str(order_id), action)
    return [AuditEntryResponse.model_validate(e) for e in entries]


# ── Dashboard ─────────────────────────────────────────


async def get_dashboard_stats(db: AsyncSession) -> LabDashboardStats:
    """Calcula estadísticas para el dashboard de laboratorio."""
    today_start = datetime.combine(datetime.now(timezone.utc).date(), time.min, tzinfo=timezone.utc)

    total = await db.scalar(select(func.count(LabOrderRow.id)))

    pending = await db.scalar(
        select(func.count(LabOrderRow.id)).where(LabOrderRow.status == LabOrderStatus.PENDING)
    )
    processing = await db.scalar(
        select(func.count(LabOrderRow.id)).where(LabOrderRow.status == LabOrderStatus.PROCESSING)
    )

    completed_today_filter = (
        LabOrderRow.status == LabOrderStatus.COMPLETED,
        LabOrderRow.completed_at >= today_start,
    )
    completed_today = await db.scalar(
        select(func.count(LabOrderRow.id)).where(*completed_today_filter)
    )

    # Urgentes aún abiertas
    urgent = await db.scalar(
        select(func.count(LabOrderRow.id)).where(
            LabOrderRow.priority == LabPriority.URGENT,
            LabOrderRow.status.in_(OPEN_STATUSES),
        )
    )

    # Ingresos del día: solo órdenes completadas hoy
    revenue = await db.scalar(
        select(func.coalesce(func.sum(LabOrderRow.total_amount_minor), 0)).where(*completed_today_filter)
    )

    return LabDashboardStats(
        total_orders=total or 0,
        pending_orders=pending or 0,
        processing_orders=processing or 0,
        completed_today=completed_today or 0,
        urgent_orders=urgent or 0,
        revenue_today_minor=revenue or 0,
    )
