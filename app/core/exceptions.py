"""
Excepciones HTTP personalizadas para la API y mapeo de errores del motor de laboratorio.
"""

from fastapi import HTTPException, status

from app.lab.errors import (
    ConcurrentModification,
    DuplicateTestCode,
    EmptyTestSelection,
    IllegalTransition,
    InvalidParameterDefinition,
    LabError,
    OrderAlreadyFinalized,
    ParameterRequiredForTest,
    UnknownDetail,
    UnknownParameter,
    UnknownResult,
    UnknownTest,
)


class NotFoundException(HTTPException):
    """Recurso no encontrado (404)."""

    def __init__(self, resource: str = "Recurso", detail: str | None = None):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=detail or f"{resource} no encontrado",
        )


class ConflictException(HTTPException):
    """Conflicto de datos (409), ej. código de prueba duplicado."""

    def __init__(self, detail: str = "El recurso ya existe"):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail,
        )


# ── Errores del motor → código HTTP ──────────────────
LAB_ERROR_STATUS: dict[type[LabError], int] = {
    UnknownTest: status.HTTP_404_NOT_FOUND,
    UnknownDetail: status.HTTP_404_NOT_FOUND,
    UnknownParameter: status.HTTP_404_NOT_FOUND,
    UnknownResult: status.HTTP_404_NOT_FOUND,
    IllegalTransition: status.HTTP_409_CONFLICT,
    OrderAlreadyFinalized: status.HTTP_409_CONFLICT,
    ConcurrentModification: status.HTTP_409_CONFLICT,
    DuplicateTestCode: status.HTTP_409_CONFLICT,
    EmptyTestSelection: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ParameterRequiredForTest: status.HTTP_422_UNPROCESSABLE_ENTITY,
    InvalidParameterDefinition: status.HTTP_422_UNPROCESSABLE_ENTITY,
}


def lab_error_status(exc: LabError) -> int:
    for cls in type(exc).__mro__:
        if cls in LAB_ERROR_STATUS:
            return LAB_ERROR_STATUS[cls]
    return status.HTTP_400_BAD_REQUEST
