"""
Clasificador de resultados: normal / anormal / crítico / no evaluable.

Reglas:
- Valor vacío → no evaluable.
- Valor cualitativo ("Positivo", "Negativo", ...) → normal. Los textos no
  se auto-clasifican.
- Valor numérico → crítico si cae estrictamente fuera de los umbrales
  críticos, anormal si cae estrictamente fuera del rango de referencia,
  normal en otro caso. Los límites son inclusivos: v == ref_min es normal.
"""

import enum
import math
import re

from app.lab.catalog import ParameterDefinition


class Classification(str, enum.Enum):
    NORMAL = "normal"
    ABNORMAL = "abnormal"
    CRITICAL = "critical"
    NOT_EVALUABLE = "not_evaluable"


# Número decimal al inicio del texto: "130", "-2.5", ".8", "1e3", "130 mg/dL"
_LEADING_NUMBER = re.compile(r"^[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?")


def parse_numeric(raw_value: str) -> float | None:
    """
    Extrae el número inicial del valor registrado.
    Retorna None si el valor es cualitativo.
    """
    match = _LEADING_NUMBER.match(raw_value.strip())
    if not match:
        return None
    value = float(match.group(0))
    if not math.isfinite(value):
        return None
    return value


def classify(parameter: ParameterDefinition, raw_value: str) -> Classification:
    """Clasifica un valor contra los umbrales del parámetro."""
    if not raw_value or not raw_value.strip():
        return Classification.NOT_EVALUABLE

    value = parse_numeric(raw_value)
    if value is None:
        return Classification.NORMAL

    # Crítico tiene prioridad sobre anormal
    if parameter.critical_min is not None and value < parameter.critical_min:
        return Classification.CRITICAL
    if parameter.critical_max is not None and value > parameter.critical_max:
        return Classification.CRITICAL

    if parameter.ref_min is not None and value < parameter.ref_min:
        return Classification.ABNORMAL
    if parameter.ref_max is not None and value > parameter.ref_max:
        return Classification.ABNORMAL

    return Classification.NORMAL


def classify_free_text(raw_value: str) -> Classification:
    """Pruebas sin parámetros: resultado de texto libre, sin umbrales."""
    if not raw_value or not raw_value.strip():
        return Classification.NOT_EVALUABLE
    return Classification.NORMAL
