"""
Taxonomía de errores del motor de laboratorio.

Todos heredan de LabError y llevan un `code` estable para que el llamador
pueda decidir si reintenta (ConcurrentModification) o muestra el mensaje
al usuario (IllegalTransition, UnknownParameter, ...).
"""


class LabError(Exception):
    """Error base del motor de laboratorio."""

    code: str = "lab_error"
    recoverable: bool = True

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


# ── Catálogo ─────────────────────────────────────────

class InvalidParameterDefinition(LabError):
    """Parámetro sin rango de referencia o con umbrales contradictorios."""

    code = "invalid_parameter_definition"
    recoverable = False


class DuplicateTestCode(LabError):
    code = "duplicate_test_code"
    recoverable = False


class UnknownTest(LabError):
    code = "unknown_test"


# ── Orden ────────────────────────────────────────────

class EmptyTestSelection(LabError):
    code = "empty_test_selection"

    def __init__(self, detail: str = "La orden debe incluir al menos una prueba"):
        super().__init__(detail)


class UnknownDetail(LabError):
    code = "unknown_detail"


class UnknownParameter(LabError):
    code = "unknown_parameter"


class UnknownResult(LabError):
    code = "unknown_result"


class ParameterRequiredForTest(LabError):
    """
    La prueba tiene parámetros y no se indicó parameter_id,
    o la prueba no tiene parámetros y sí se indicó uno.
    """

    code = "parameter_required_for_test"


# ── Ciclo de vida ────────────────────────────────────

class IllegalTransition(LabError):
    code = "illegal_transition"


class OrderAlreadyFinalized(LabError):
    code = "order_already_finalized"


# ── Persistencia ─────────────────────────────────────

class ConcurrentModification(LabError):
    """La orden fue modificada por otro actor; el llamador debe recargar y reintentar."""

    code = "concurrent_modification"
