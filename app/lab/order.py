"""
Agregado LabOrder: una orden, sus pruebas (detalles) y los resultados
registrados contra los parámetros de cada prueba.

Efecto observable: registrar un resultado en una orden `pending` o
`samples_collected` la avanza a `processing`.
"""

import enum
from collections.abc import Sequence
from datetime import datetime, timezone
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from app.lab.catalog import TestDefinition
from app.lab.classifier import Classification, classify, classify_free_text
from app.lab.errors import (
    EmptyTestSelection,
    IllegalTransition,
    OrderAlreadyFinalized,
    ParameterRequiredForTest,
    UnknownDetail,
    UnknownResult,
)
from app.lab.lifecycle import (
    LabOrderStatus,
    check_transition,
    ensure_not_finalized,
    is_terminal,
    status_after_result,
)


class LabPriority(str, enum.Enum):
    ROUTINE = "routine"
    URGENT = "urgent"


def _now() -> datetime:
    return datetime.now(timezone.utc)


# ── Resultados y detalles ────────────────────────────

class RecordedResult(BaseModel):
    """Valor registrado para un parámetro (o para la prueba completa si parameter_id es None)."""
    id: UUID = Field(default_factory=uuid4)
    parameter_id: UUID | None = None
    value_text: str
    notes: str | None = None
    recorded_at: datetime = Field(default_factory=_now)
    recorded_by: UUID | None = None
    reviewed_at: datetime | None = None
    reviewed_by: UUID | None = None

    @property
    def is_reviewed(self) -> bool:
        return self.reviewed_at is not None


class OrderDetail(BaseModel):
    """Una prueba dentro de la orden, con su definición congelada."""
    id: UUID = Field(default_factory=uuid4)
    test: TestDefinition
    notes: str | None = None
    results: list[RecordedResult] = Field(default_factory=list)

    def expected_keys(self) -> list[UUID | None]:
        if self.test.has_parameters:
            return [p.id for p in self.test.parameters]
        return [None]

    def find_result(self, parameter_id: UUID | None) -> RecordedResult | None:
        for result in self.results:
            if result.parameter_id == parameter_id:
                return result
        return None

    def classify_result(self, result: RecordedResult) -> Classification:
        # Se recalcula siempre; la clasificación no se persiste
        if result.parameter_id is None:
            return classify_free_text(result.value_text)
        return classify(self.test.get_parameter(result.parameter_id), result.value_text)


# ── Proyección para reportes ─────────────────────────

class ResultLine(BaseModel):
    detail_id: UUID
    test_code: str
    test_name: str
    parameter_id: UUID | None
    parameter_name: str
    unit: str | None
    reference_range: str
    value_text: str | None
    notes: str | None
    classification: Classification | None
    recorded_at: datetime | None
    reviewed_at: datetime | None = None
    reviewed_by: UUID | None = None


class OrderSummary(BaseModel):
    order_id: UUID
    order_number: str
    patient_id: UUID
    status: LabOrderStatus
    priority: LabPriority

    normal_count: int = 0
    abnormal_count: int = 0
    critical_count: int = 0
    not_evaluable_count: int = 0

    expected_results: int = 0
    recorded_results: int = 0
    missing_results: int = 0
    reviewed_results: int = 0

    is_complete: bool
    is_finalized: bool
    has_critical: bool

    completed_at: datetime | None = None
    completed_by: UUID | None = None
    lines: list[ResultLine] = Field(default_factory=list)


# ── Agregado ─────────────────────────────────────────

class LabOrder(BaseModel):
    id: UUID = Field(default_factory=uuid4)
    order_number: str
    patient_id: UUID
    requesting_doctor_id: UUID | None = None
    priority: LabPriority = LabPriority.ROUTINE
    status: LabOrderStatus = LabOrderStatus.PENDING

    created_at: datetime = Field(default_factory=_now)
    completed_at: datetime | None = None
    completed_by: UUID | None = None
    cancelled_at: datetime | None = None
    cancelled_by: UUID | None = None
    cancel_reason: str | None = None

    is_paid: bool = False
    total_amount_minor: int = 0
    notes: str | None = None

    details: list[OrderDetail] = Field(..., min_length=1)

    # Contador de concurrencia optimista, lo mantiene el repositorio
    version: int = 0

    @property
    def is_finalized(self) -> bool:
        return is_terminal(self.status)

    def get_detail(self, detail_id: UUID) -> OrderDetail:
        for detail in self.details:
            if detail.id == detail_id:
                return detail
        raise UnknownDetail(f"La prueba {detail_id} no pertenece a la orden {self.order_number}")

    def record_result(
        self,
        detail_id: UUID,
        parameter_id: UUID | None,
        value_text: str,
        notes: str | None = None,
        actor_id: UUID | None = None,
        now: datetime | None = None,
    ) -> Classification:
        """
        Registra (o sobrescribe) el valor de un parámetro y retorna su
        clasificación. Avanza la orden a `processing` si estaba pendiente.
        """
        ensure_not_finalized(self.status)
        detail = self.get_detail(detail_id)

        if detail.test.has_parameters:
            if parameter_id is None:
                raise ParameterRequiredForTest(
                    f"La prueba '{detail.test.code}' tiene parámetros; indique parameter_id"
                )
            classification = classify(detail.test.get_parameter(parameter_id), value_text)
        else:
            if parameter_id is not None:
                raise ParameterRequiredForTest(
                    f"La prueba '{detail.test.code}' no tiene parámetros; "
                    "registre el resultado general sin parameter_id"
                )
            classification = classify_free_text(value_text)

        recorded_at = now or _now()
        existing = detail.find_result(parameter_id)
        if existing:
            existing.value_text = value_text
            existing.notes = notes
            existing.recorded_at = recorded_at
            existing.recorded_by = actor_id
            # Un valor nuevo invalida la revisión anterior
            existing.reviewed_at = None
            existing.reviewed_by = None
        else:
            detail.results.append(
                RecordedResult(
                    parameter_id=parameter_id,
                    value_text=value_text,
                    notes=notes,
                    recorded_at=recorded_at,
                    recorded_by=actor_id,
                )
            )

        self.status = status_after_result(self.status)
        return classification

    def transition_status(
        self,
        new_status: LabOrderStatus,
        actor_id: UUID | None = None,
        reason: str | None = None,
        now: datetime | None = None,
    ) -> None:
        check_transition(self.status, new_status)
        now = now or _now()

        if new_status == LabOrderStatus.COMPLETED:
            if actor_id is None:
                raise IllegalTransition("Completar una orden requiere el usuario que la completa")
            self.completed_at = now
            self.completed_by = actor_id
        elif new_status == LabOrderStatus.CANCELLED:
            self.cancelled_at = now
            self.cancelled_by = actor_id
            self.cancel_reason = reason

        self.status = new_status

    def locate_result(self, result_id: UUID) -> tuple[OrderDetail, RecordedResult]:
        for detail in self.details:
            for result in detail.results:
                if result.id == result_id:
                    return detail, result
        raise UnknownResult(f"El resultado {result_id} no pertenece a la orden {self.order_number}")

    def review_result(
        self,
        detail_id: UUID,
        parameter_id: UUID | None,
        actor_id: UUID,
        now: datetime | None = None,
    ) -> RecordedResult:
        """
        Marca un resultado registrado como revisado. Se permite en órdenes
        completadas (revisión posterior), no en órdenes canceladas.
        """
        if self.status == LabOrderStatus.CANCELLED:
            raise OrderAlreadyFinalized(
                f"La orden {self.order_number} está cancelada y no admite revisiones"
            )
        detail = self.get_detail(detail_id)
        result = detail.find_result(parameter_id)
        if result is None:
            raise UnknownResult(
                f"No hay resultado registrado para el parámetro {parameter_id} en la prueba '{detail.test.code}'"
            )
        result.reviewed_at = now or _now()
        result.reviewed_by = actor_id
        return result

    def complete(self, actor_id: UUID, now: datetime | None = None) -> None:
        self.transition_status(LabOrderStatus.COMPLETED, actor_id=actor_id, now=now)

    def cancel(
        self, actor_id: UUID | None = None, reason: str | None = None, now: datetime | None = None
    ) -> None:
        self.transition_status(LabOrderStatus.CANCELLED, actor_id=actor_id, reason=reason, now=now)

    def classification_for(self, detail_id: UUID, parameter_id: UUID | None) -> Classification | None:
        detail = self.get_detail(detail_id)
        result = detail.find_result(parameter_id)
        return detail.classify_result(result) if result else None

    def missing_results(self) -> list[tuple[UUID, UUID | None]]:
        """Pares (detail_id, parameter_id) que aún no tienen valor. Solo informativo."""
        return [
            (detail.id, key)
            for detail in self.details
            for key in detail.expected_keys()
            if detail.find_result(key) is None
        ]

    def summarize(self) -> OrderSummary:
        """Proyección de solo lectura para reportes."""
        counts = {c: 0 for c in Classification}
        lines: list[ResultLine] = []

        for detail in self.details:
            test = detail.test
            targets = (
                [(p.id, p.name, p.unit, p.reference_range_text()) for p in test.parameters]
                if test.has_parameters
                else [(None, test.name, None, "")]
            )
            for parameter_id, name, unit, reference in targets:
                result = detail.find_result(parameter_id)
                classification = detail.classify_result(result) if result else None
                if classification is not None:
                    counts[classification] += 1
                lines.append(
                    ResultLine(
                        detail_id=detail.id,
                        test_code=test.code,
                        test_name=test.name,
                        parameter_id=parameter_id,
                        parameter_name=name,
                        unit=unit,
                        reference_range=reference,
                        value_text=result.value_text if result else None,
                        notes=result.notes if result else None,
                        classification=classification,
                        recorded_at=result.recorded_at if result else None,
                        reviewed_at=result.reviewed_at if result else None,
                        reviewed_by=result.reviewed_by if result else None,
                    )
                )

        expected = len(lines)
        recorded = sum(1 for line in lines if line.classification is not None)
        reviewed = sum(1 for line in lines if line.reviewed_at is not None)
        return OrderSummary(
            order_id=self.id,
            order_number=self.order_number,
            patient_id=self.patient_id,
            status=self.status,
            priority=self.priority,
            normal_count=counts[Classification.NORMAL],
            abnormal_count=counts[Classification.ABNORMAL],
            critical_count=counts[Classification.CRITICAL],
            not_evaluable_count=counts[Classification.NOT_EVALUABLE],
            expected_results=expected,
            recorded_results=recorded,
            missing_results=expected - recorded,
            reviewed_results=reviewed,
            is_complete=recorded == expected,
            is_finalized=self.is_finalized,
            has_critical=counts[Classification.CRITICAL] > 0,
            completed_at=self.completed_at,
            completed_by=self.completed_by,
            lines=lines,
        )


def create_order(
    order_number: str,
    patient_id: UUID,
    tests: Sequence[TestDefinition],
    priority: LabPriority = LabPriority.ROUTINE,
    doctor_id: UUID | None = None,
    notes: str | None = None,
    now: datetime | None = None,
) -> LabOrder:
    """Crea una orden `pending` con una copia congelada de cada prueba seleccionada."""
    if not tests:
        raise EmptyTestSelection()

    return LabOrder(
        order_number=order_number,
        patient_id=patient_id,
        requesting_doctor_id=doctor_id,
        priority=priority,
        status=LabOrderStatus.PENDING,
        created_at=now or _now(),
        total_amount_minor=sum(t.price_minor for t in tests),
        notes=notes,
        details=[OrderDetail(test=t) for t in tests],
    )
