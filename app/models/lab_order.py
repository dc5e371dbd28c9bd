from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import JSON, Boolean, DateTime, Enum, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base
from app.lab.lifecycle import LabOrderStatus
from app.lab.order import LabPriority


class LabOrder(Base):
    """
    Representa una orden de laboratorio.
    Sigue el ciclo de vida pending → samples_collected → processing → completed.
    """
    __tablename__ = "lab_orders"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    order_number: Mapped[str] = mapped_column(String(30), unique=True, index=True)
    patient_id: Mapped[UUID] = mapped_column(index=True)
    requesting_doctor_id: Mapped[UUID | None] = mapped_column(nullable=True, index=True)

    priority: Mapped[LabPriority] = mapped_column(
        Enum(LabPriority, values_callable=lambda e: [m.value for m in e]),
        default=LabPriority.ROUTINE,
        index=True,
    )
    status: Mapped[LabOrderStatus] = mapped_column(
        Enum(LabOrderStatus, values_callable=lambda e: [m.value for m in e]),
        default=LabOrderStatus.PENDING,
        index=True
    )

    # Pago y total en unidades menores
    is_paid: Mapped[bool] = mapped_column(Boolean, default=False)
    total_amount_minor: Mapped[int] = mapped_column(Integer, default=0)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Cierre de la orden
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_by: Mapped[UUID | None] = mapped_column(nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_by: Mapped[UUID | None] = mapped_column(nullable=True)
    cancel_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Concurrencia optimista: se incrementa en cada escritura de la orden
    version: Mapped[int] = mapped_column(Integer, default=0, server_default="0")

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now()
    )

    # Relaciones
    details: Mapped[list["LabOrderDetail"]] = relationship(
        "LabOrderDetail",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="LabOrderDetail.position",
    )


class LabOrderDetail(Base):
    """
    Una prueba dentro de la orden.
    `test_snapshot` guarda la definición (con parámetros) tal como estaba al crear la orden.
    """
    __tablename__ = "lab_order_details"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    order_id: Mapped[UUID] = mapped_column(ForeignKey("lab_orders.id", ondelete="CASCADE"), index=True)
    position: Mapped[int] = mapped_column(Integer, default=0)

    test_code: Mapped[str] = mapped_column(String(50), index=True)
    test_snapshot: Mapped[dict] = mapped_column(JSON)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    order: Mapped["LabOrder"] = relationship("LabOrder", back_populates="details")
    results: Mapped[list["LabResult"]] = relationship(
        "LabResult",
        back_populates="order_detail",
        cascade="all, delete-orphan",
    )
