"""
Modelo LabOrderSequence: secuencias diarias para números de orden.

Genera números como LAB-20261018-0001, LAB-20261018-0002
usando SELECT FOR UPDATE para evitar duplicados en concurrencia.
"""

import uuid
from datetime import date

from sqlalchemy import (
    Date,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


class LabOrderSequence(Base):
    __tablename__ = "lab_order_sequences"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    prefix: Mapped[str] = mapped_column(
        String(10), nullable=False,
        comment="Prefijo del número de orden, ej. LAB"
    )
    sequence_date: Mapped[date] = mapped_column(Date, nullable=False)
    last_number: Mapped[int] = mapped_column(
        Integer, default=0, nullable=False
    )

    __table_args__ = (
        UniqueConstraint(
            "prefix", "sequence_date",
            name="uq_lab_order_sequence_prefix_date"
        ),
    )

    def __repr__(self) -> str:
        return f"<LabOrderSequence {self.prefix} {self.sequence_date} #{self.last_number}>"
