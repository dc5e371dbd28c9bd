"""
Modelo AuditLog: registro de auditoría INMUTABLE.
INSERT-only: cambios de estado y registro de resultados de laboratorio.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


class AuditLog(Base):
    __tablename__ = "audit_log"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID | None] = mapped_column(nullable=True, index=True)

    # ── Datos del evento ─────────────────────────────
    entity: Mapped[str] = mapped_column(
        String(50), nullable=False, index=True,
        comment="Nombre de la entidad: lab_order, lab_test, etc."
    )
    entity_id: Mapped[str] = mapped_column(
        String(36), nullable=False, index=True,
        comment="UUID del registro afectado"
    )
    action: Mapped[str] = mapped_column(
        String(30), nullable=False, index=True,
        comment="create, record_result, status_change, update"
    )

    # ── Datos del cambio ─────────────────────────────
    old_data: Mapped[dict | None] = mapped_column(
        JSON, nullable=True, comment="Snapshot del registro antes del cambio"
    )
    new_data: Mapped[dict | None] = mapped_column(
        JSON, nullable=True, comment="Snapshot del registro después del cambio"
    )

    # ── Timestamp inmutable ──────────────────────────
    # Hora de la aplicación; now() de Postgres es fijo dentro de la transacción
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        server_default=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<AuditLog {self.action} on {self.entity} {self.entity_id}>"
