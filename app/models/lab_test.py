"""
Modelos del catálogo de pruebas de laboratorio y sus parámetros.
"""

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import Boolean, DateTime, Enum, Float, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base
from app.lab.catalog import SampleType


class LabTest(Base):
    """Entrada del catálogo. Se desactiva, nunca se elimina."""
    __tablename__ = "lab_tests"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    code: Mapped[str] = mapped_column(String(50), unique=True, index=True)
    name: Mapped[str] = mapped_column(String(200))
    category: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
    sample_type: Mapped[SampleType] = mapped_column(
        Enum(SampleType, values_callable=lambda e: [m.value for m in e]),
        default=SampleType.BLOOD,
    )

    # Moneda en unidades menores (céntimos), nunca float
    price_minor: Mapped[int] = mapped_column(Integer, default=0)
    duration_hours: Mapped[int] = mapped_column(Integer, default=24)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now()
    )

    parameters: Mapped[list["LabParameter"]] = relationship(
        "LabParameter",
        back_populates="test",
        cascade="all, delete-orphan",
        order_by="LabParameter.sort_order",
    )

    def __repr__(self) -> str:
        return f"<LabTest {self.code}>"


class LabParameter(Base):
    """Parámetro medido dentro de una prueba (Hemoglobina, Glucosa, ...)."""
    __tablename__ = "lab_parameters"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    test_id: Mapped[UUID] = mapped_column(ForeignKey("lab_tests.id", ondelete="CASCADE"), index=True)

    name: Mapped[str] = mapped_column(String(200))
    code: Mapped[str | None] = mapped_column(String(50), nullable=True)
    unit: Mapped[str | None] = mapped_column(String(50), nullable=True)
    sort_order: Mapped[int] = mapped_column(Integer, default=0)

    # Referencia: texto libre y/o rango numérico (el numérico manda al clasificar)
    reference_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    ref_min: Mapped[float | None] = mapped_column(Float, nullable=True)
    ref_max: Mapped[float | None] = mapped_column(Float, nullable=True)

    # Umbrales críticos, independientes del rango normal
    critical_min: Mapped[float | None] = mapped_column(Float, nullable=True)
    critical_max: Mapped[float | None] = mapped_column(Float, nullable=True)

    test: Mapped["LabTest"] = relationship("LabTest", back_populates="parameters")
