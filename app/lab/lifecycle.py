"""
State machine del ciclo de vida de una orden de laboratorio.

pending → samples_collected → processing → completed
cancelled es alcanzable desde cualquier estado no terminal.
"""

import enum

from app.lab.errors import IllegalTransition, OrderAlreadyFinalized


class LabOrderStatus(str, enum.Enum):
    """Estados del flujo de una orden de laboratorio."""
    PENDING = "pending"                      # Orden creada
    SAMPLES_COLLECTED = "samples_collected"  # Muestras tomadas
    PROCESSING = "processing"                # Resultados en registro
    COMPLETED = "completed"
    CANCELLED = "cancelled"


VALID_TRANSITIONS: dict[LabOrderStatus, list[LabOrderStatus]] = {
    LabOrderStatus.PENDING: [
        LabOrderStatus.SAMPLES_COLLECTED,
        LabOrderStatus.PROCESSING,
        LabOrderStatus.CANCELLED,
    ],
    LabOrderStatus.SAMPLES_COLLECTED: [
        LabOrderStatus.PROCESSING,
        LabOrderStatus.CANCELLED,
    ],
    LabOrderStatus.PROCESSING: [
        LabOrderStatus.COMPLETED,
        LabOrderStatus.CANCELLED,
    ],
    LabOrderStatus.COMPLETED: [],
    LabOrderStatus.CANCELLED: [],
}

TERMINAL_STATUSES = frozenset({LabOrderStatus.COMPLETED, LabOrderStatus.CANCELLED})

# Estados desde los que registrar un resultado avanza la orden a processing
AUTO_ADVANCE_FROM = frozenset({LabOrderStatus.PENDING, LabOrderStatus.SAMPLES_COLLECTED})

# Estados "abiertos" para listados y estadísticas
OPEN_STATUSES = (
    LabOrderStatus.PENDING,
    LabOrderStatus.SAMPLES_COLLECTED,
    LabOrderStatus.PROCESSING,
)


def is_terminal(status: LabOrderStatus) -> bool:
    return status in TERMINAL_STATUSES


def is_valid_transition(current: LabOrderStatus, new: LabOrderStatus) -> bool:
    """Verifica si una transición de estado es válida."""
    return new in VALID_TRANSITIONS.get(current, [])


def ensure_not_finalized(status: LabOrderStatus) -> None:
    if is_terminal(status):
        raise OrderAlreadyFinalized(
            f"La orden ya está en estado '{status.value}' y no admite cambios"
        )


def check_transition(current: LabOrderStatus, new: LabOrderStatus) -> None:
    """Lanza OrderAlreadyFinalized o IllegalTransition si el cambio no procede."""
    ensure_not_finalized(current)
    if not is_valid_transition(current, new):
        valid = VALID_TRANSITIONS.get(current, [])
        raise IllegalTransition(
            f"No se puede cambiar de '{current.value}' a '{new.value}'. "
            f"Transiciones válidas: {', '.join(s.value for s in valid)}"
        )


def status_after_result(current: LabOrderStatus) -> LabOrderStatus:
    """Estado que resulta de registrar un resultado en una orden abierta."""
    ensure_not_finalized(current)
    if current in AUTO_ADVANCE_FROM:
        return LabOrderStatus.PROCESSING
    return current
