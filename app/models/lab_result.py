from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import DateTime, ForeignKey, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base


class LabResult(Base):
    """
    Valor registrado para un parámetro de una prueba de la orden.
    Un solo registro por (detalle, parámetro): re-registrar sobrescribe.
    La clasificación no se guarda; se recalcula al leer.
    """
    __tablename__ = "lab_results"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    order_detail_id: Mapped[UUID] = mapped_column(
        ForeignKey("lab_order_details.id", ondelete="CASCADE"), index=True
    )

    # Referencia al parámetro dentro del snapshot; NULL = resultado general de la prueba
    parameter_id: Mapped[UUID | None] = mapped_column(nullable=True)

    value_text: Mapped[str] = mapped_column(Text)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Auditoría de quién registró el resultado
    recorded_by: Mapped[UUID | None] = mapped_column(nullable=True)
    recorded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    # Revisión por un segundo profesional; se limpia si el valor cambia
    reviewed_by: Mapped[UUID | None] = mapped_column(nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now()
    )

    order_detail: Mapped["LabOrderDetail"] = relationship("LabOrderDetail", back_populates="results")

    __table_args__ = (
        UniqueConstraint(
            "order_detail_id", "parameter_id",
            name="uq_lab_result_detail_parameter"
        ),
    )
