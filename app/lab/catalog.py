"""
Catálogo de pruebas de laboratorio.

Definiciones inmutables (TestDefinition + ParameterDefinition). Una orden
guarda una copia congelada de la definición al momento de crearse, por lo
que editar el catálogo nunca altera órdenes históricas.
"""

import enum
from collections.abc import Iterable, Iterator
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from app.lab.errors import DuplicateTestCode, InvalidParameterDefinition, UnknownParameter, UnknownTest


class SampleType(str, enum.Enum):
    """Tipo de muestra requerida por la prueba."""
    BLOOD = "blood"
    URINE = "urine"
    STOOL = "stool"
    TISSUE = "tissue"
    FLUID = "fluid"
    OTHER = "other"


class ReferenceKind(str, enum.Enum):
    """Forma del valor de referencia de un parámetro."""
    NUMERIC = "numeric"  # refMin / refMax
    TEXT = "text"        # texto libre, ej. "Negativo"


class ParameterDefinition(BaseModel):
    """Un valor medido dentro de una prueba (ej. Hemoglobina en un hemograma)."""

    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid4)
    name: str = Field(..., min_length=1, max_length=200)
    code: str | None = None
    unit: str | None = None
    sort_order: int = 0

    reference_text: str | None = None
    ref_min: float | None = None
    ref_max: float | None = None

    critical_min: float | None = None
    critical_max: float | None = None

    @model_validator(mode="after")
    def _check_reference(self) -> "ParameterDefinition":
        has_text = bool(self.reference_text and self.reference_text.strip())
        if self.ref_min is None and self.ref_max is None and not has_text:
            raise InvalidParameterDefinition(
                f"El parámetro '{self.name}' no tiene rango ni texto de referencia"
            )
        if self.ref_min is not None and self.ref_max is not None and self.ref_min > self.ref_max:
            raise InvalidParameterDefinition(
                f"El parámetro '{self.name}' tiene ref_min ({self.ref_min}) mayor que ref_max ({self.ref_max})"
            )
        if (
            self.critical_min is not None
            and self.critical_max is not None
            and self.critical_min > self.critical_max
        ):
            raise InvalidParameterDefinition(
                f"El parámetro '{self.name}' tiene critical_min mayor que critical_max"
            )
        return self

    @property
    def has_numeric_range(self) -> bool:
        return self.ref_min is not None or self.ref_max is not None

    @property
    def reference_kind(self) -> ReferenceKind:
        # El rango numérico manda sobre el texto para clasificar
        return ReferenceKind.NUMERIC if self.has_numeric_range else ReferenceKind.TEXT

    def reference_range_text(self) -> str:
        """Texto de referencia para reportes: '70 - 100', '> 10', '< 200' o el texto libre."""
        if self.reference_text:
            return self.reference_text
        if self.ref_min is not None and self.ref_max is not None:
            return f"{_fmt(self.ref_min)} - {_fmt(self.ref_max)}"
        if self.ref_min is not None:
            return f"> {_fmt(self.ref_min)}"
        if self.ref_max is not None:
            return f"< {_fmt(self.ref_max)}"
        return ""


def _fmt(value: float) -> str:
    return f"{value:g}"


class TestDefinition(BaseModel):
    """Entrada del catálogo de pruebas."""

    __test__ = False  # evita que pytest la confunda con una clase de tests

    model_config = ConfigDict(frozen=True)

    code: str = Field(..., min_length=1, max_length=50)
    name: str = Field(..., min_length=1, max_length=200)
    category: str | None = None
    sample_type: SampleType = SampleType.BLOOD
    price_minor: int = Field(0, ge=0)
    duration_hours: int = Field(24, gt=0)
    is_active: bool = True
    parameters: tuple[ParameterDefinition, ...] = ()

    @field_validator("parameters")
    @classmethod
    def _sort_parameters(cls, v: tuple[ParameterDefinition, ...]) -> tuple[ParameterDefinition, ...]:
        ids = [p.id for p in v]
        if len(ids) != len(set(ids)):
            raise InvalidParameterDefinition("La prueba tiene parámetros con id duplicado")
        return tuple(sorted(v, key=lambda p: p.sort_order))

    @property
    def has_parameters(self) -> bool:
        return len(self.parameters) > 0

    def get_parameter(self, parameter_id: UUID) -> ParameterDefinition:
        for param in self.parameters:
            if param.id == parameter_id:
                return param
        raise UnknownParameter(
            f"El parámetro {parameter_id} no pertenece a la prueba '{self.code}'"
        )


class LabCatalog:
    """Catálogo en memoria, solo lectura, indexado por código."""

    def __init__(self, definitions: Iterable[TestDefinition] = ()):
        self._by_code: dict[str, TestDefinition] = {}
        for definition in definitions:
            if definition.code in self._by_code:
                raise DuplicateTestCode(f"Código de prueba duplicado: {definition.code}")
            self._by_code[definition.code] = definition

    @classmethod
    def from_records(cls, records: Iterable[dict]) -> "LabCatalog":
        """
        Construye el catálogo completo desde diccionarios planos.
        Un solo parámetro inválido aborta la carga entera.
        """
        return cls(TestDefinition.model_validate(record) for record in records)

    def get(self, code: str) -> TestDefinition:
        try:
            return self._by_code[code]
        except KeyError:
            raise UnknownTest(f"Prueba '{code}' no existe en el catálogo") from None

    def by_category(self, category: str) -> list[TestDefinition]:
        return [d for d in self._by_code.values() if d.category == category]

    def __contains__(self, code: object) -> bool:
        return code in self._by_code

    def __iter__(self) -> Iterator[TestDefinition]:
        return iter(self._by_code.values())

    def __len__(self) -> int:
        return len(self._by_code)
