"""
Repositorio SQLAlchemy del motor de laboratorio.

Traduce entre las filas ORM (app.models) y el agregado de dominio
(app.lab.order.LabOrder). El control de transacción (commit/rollback)
queda en la capa de servicios.
"""

import logging
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.config import get_settings
from app.lab.catalog import ParameterDefinition, TestDefinition
from app.lab.errors import ConcurrentModification, UnknownTest
from app.lab.order import LabOrder, OrderDetail, RecordedResult
from app.models.lab_order import LabOrder as LabOrderRow
from app.models.lab_order import LabOrderDetail as LabOrderDetailRow
from app.models.lab_result import LabResult as LabResultRow
from app.models.lab_sequence import LabOrderSequence
from app.models.lab_test import LabParameter, LabTest

logger = logging.getLogger(__name__)


# ── Mapeo ORM → dominio ──────────────────────────────

def parameter_row_to_definition(row: LabParameter) -> ParameterDefinition:
    return ParameterDefinition(
        id=row.id,
        name=row.name,
        code=row.code,
        unit=row.unit,
        sort_order=row.sort_order,
        reference_text=row.reference_text,
        ref_min=row.ref_min,
        ref_max=row.ref_max,
        critical_min=row.critical_min,
        critical_max=row.critical_max,
    )


def test_row_to_definition(row: LabTest) -> TestDefinition:
    return TestDefinition(
        code=row.code,
        name=row.name,
        category=row.category,
        sample_type=row.sample_type,
        price_minor=row.price_minor,
        duration_hours=row.duration_hours,
        is_active=row.is_active,
        parameters=tuple(parameter_row_to_definition(p) for p in row.parameters),
    )


def order_row_to_domain(row: LabOrderRow) -> LabOrder:
    return LabOrder(
        id=row.id,
        order_number=row.order_number,
        patient_id=row.patient_id,
        requesting_doctor_id=row.requesting_doctor_id,
        priority=row.priority,
        status=row.status,
        created_at=row.created_at,
        completed_at=row.completed_at,
        completed_by=row.completed_by,
        cancelled_at=row.cancelled_at,
        cancelled_by=row.cancelled_by,
        cancel_reason=row.cancel_reason,
        is_paid=row.is_paid,
        total_amount_minor=row.total_amount_minor,
        notes=row.notes,
        version=row.version,
        details=[
            OrderDetail(
                id=d.id,
                test=TestDefinition.model_validate(d.test_snapshot),
                notes=d.notes,
                results=[
                    RecordedResult(
                        id=r.id,
                        parameter_id=r.parameter_id,
                        value_text=r.value_text,
                        notes=r.notes,
                        recorded_at=r.recorded_at,
                        recorded_by=r.recorded_by,
                        reviewed_at=r.reviewed_at,
                        reviewed_by=r.reviewed_by,
                    )
                    for r in d.results
                ],
            )
            for d in row.details
        ],
    )


def order_load_options():
    return (
        selectinload(LabOrderRow.details).selectinload(LabOrderDetailRow.results),
    )


class SqlLabRepository:
    """Implementación de app.lab.repository.LabRepository sobre AsyncSession."""

    def __init__(self, db: AsyncSession, prefix: str | None = None):
        self.db = db
        self.prefix = prefix or get_settings().LAB_ORDER_PREFIX

    # ── Catálogo ─────────────────────────────────────

    async def get_test_row(self, code: str) -> LabTest | None:
        result = await self.db.execute(
            select(LabTest)
            .where(LabTest.code == code)
            .options(selectinload(LabTest.parameters))
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def load_test_definition(self, code: str) -> TestDefinition:
        row = await self.get_test_row(code)
        if row is None or not row.is_active:
            raise UnknownTest(f"Prueba '{code}' no existe o está inactiva")
        return test_row_to_definition(row)

    # ── Numeración ───────────────────────────────────

    async def next_order_number(self) -> str:
        """
        Genera LAB-YYYYMMDD-0001, LAB-YYYYMMDD-0002, ...
        Usa SELECT FOR UPDATE sobre la secuencia del día.
        """
        today = datetime.now(timezone.utc).date()

        result = await self.db.execute(
            select(LabOrderSequence)
            .where(
                LabOrderSequence.prefix == self.prefix,
                LabOrderSequence.sequence_date == today,
            )
            .with_for_update()
        )
        seq = result.scalar_one_or_none()

        if not seq:
            seq = LabOrderSequence(prefix=self.prefix, sequence_date=today, last_number=0)
            self.db.add(seq)
            await self.db.flush()

        seq.last_number += 1
        await self.db.flush()
        return f"{self.prefix}-{today:%Y%m%d}-{seq.last_number:04d}"

    # ── Órdenes ──────────────────────────────────────

    async def get_order(self, order_id: UUID) -> LabOrder | None:
        result = await self.db.execute(
            select(LabOrderRow)
            .where(LabOrderRow.id == order_id)
            .options(*order_load_options())
            .execution_options(populate_existing=True)
        )
        row = result.scalar_one_or_none()
        return order_row_to_domain(row) if row else None

    async def persist(self, order: LabOrder) -> None:
        exists = await self.db.scalar(select(LabOrderRow.id).where(LabOrderRow.id == order.id))
        if exists is None:
            self._insert(order)
            await self.db.flush()
            return

        # Concurrencia optimista: solo escribe si nadie movió la versión
        result = await self.db.execute(
            update(LabOrderRow)
            .where(LabOrderRow.id == order.id, LabOrderRow.version == order.version)
            .values(
                status=order.status,
                completed_at=order.completed_at,
                completed_by=order.completed_by,
                cancelled_at=order.cancelled_at,
                cancelled_by=order.cancelled_by,
                cancel_reason=order.cancel_reason,
                is_paid=order.is_paid,
                notes=order.notes,
                version=order.version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            logger.warning(
                "Conflicto de concurrencia en orden %s (versión %s)", order.order_number, order.version
            )
            raise ConcurrentModification(
                f"La orden {order.order_number} fue modificada por otro usuario; recargue e intente de nuevo"
            )
        order.version += 1

    def _insert(self, order: LabOrder) -> None:
        row = LabOrderRow(
            id=order.id,
            order_number=order.order_number,
            patient_id=order.patient_id,
            requesting_doctor_id=order.requesting_doctor_id,
            priority=order.priority,
            status=order.status,
            is_paid=order.is_paid,
            total_amount_minor=order.total_amount_minor,
            notes=order.notes,
            completed_at=order.completed_at,
            completed_by=order.completed_by,
            cancelled_at=order.cancelled_at,
            cancelled_by=order.cancelled_by,
            cancel_reason=order.cancel_reason,
            version=order.version,
            created_at=order.created_at,
            details=[
                LabOrderDetailRow(
                    id=detail.id,
                    position=position,
                    test_code=detail.test.code,
                    test_snapshot=detail.test.model_dump(mode="json"),
                    notes=detail.notes,
                    results=[self._result_row(detail.id, r) for r in detail.results],
                )
                for position, detail in enumerate(order.details)
            ],
        )
        self.db.add(row)

    # ── Resultados ───────────────────────────────────

    @staticmethod
    def _result_row(detail_id: UUID, result: RecordedResult) -> LabResultRow:
        return LabResultRow(
            id=result.id,
            order_detail_id=detail_id,
            parameter_id=result.parameter_id,
            value_text=result.value_text,
            notes=result.notes,
            recorded_by=result.recorded_by,
            recorded_at=result.recorded_at,
            reviewed_by=result.reviewed_by,
            reviewed_at=result.reviewed_at,
        )

    async def _find_result_row(self, detail_id: UUID, parameter_id: UUID | None) -> LabResultRow | None:
        query = select(LabResultRow).where(LabResultRow.order_detail_id == detail_id)
        # NULL no se compara con =, se usa IS NULL
        if parameter_id is None:
            query = query.where(LabResultRow.parameter_id.is_(None))
        else:
            query = query.where(LabResultRow.parameter_id == parameter_id)
        return (await self.db.execute(query)).scalar_one_or_none()

    async def persist_result(self, detail_id: UUID, result: RecordedResult) -> None:
        existing = await self._find_result_row(detail_id, result.parameter_id)
        if existing:
            existing.value_text = result.value_text
            existing.notes = result.notes
            existing.recorded_by = result.recorded_by
            existing.recorded_at = result.recorded_at
            existing.reviewed_by = result.reviewed_by
            existing.reviewed_at = result.reviewed_at
            await self.db.flush()
            return

        self.db.add(self._result_row(detail_id, result))
        try:
            await self.db.flush()
        except IntegrityError:
            # Otro actor insertó el mismo (detalle, parámetro) entre la lectura y la escritura
            logger.warning(
                "Conflicto de concurrencia al registrar resultado: detalle %s, parámetro %s",
                detail_id, result.parameter_id,
            )
            raise ConcurrentModification(
                "El resultado fue registrado por otro usuario; recargue e intente de nuevo"
            ) from None
