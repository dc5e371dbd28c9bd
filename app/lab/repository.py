"""
Contrato de persistencia que consume el motor de laboratorio.

La implementación SQL vive en app/services/lab_repository.py. Cada llamada
debe completarse o fallar de forma atómica desde el punto de vista del
llamador.
"""

from typing import Protocol
from uuid import UUID

from app.lab.catalog import TestDefinition
from app.lab.order import LabOrder, RecordedResult


class LabRepository(Protocol):

    async def load_test_definition(self, code: str) -> TestDefinition:
        """Definición vigente del catálogo. Lanza UnknownTest si no existe."""
        ...

    async def next_order_number(self) -> str:
        """Número de orden único y legible (ej. LAB-20261018-0001)."""
        ...

    async def get_order(self, order_id: UUID) -> LabOrder | None:
        ...

    async def persist(self, order: LabOrder) -> None:
        """
        Inserta la orden si es nueva o guarda su estado si ya existe.
        Lanza ConcurrentModification si la versión almacenada cambió.
        """
        ...

    async def persist_result(self, detail_id: UUID, result: RecordedResult) -> None:
        """Upsert por (detail_id, parameter_id)."""
        ...
