"""
Servicio de Audit Log del laboratorio.
INSERT-only: creación de órdenes, cambios de estado y registro de resultados.
"""

import enum
from datetime import date, datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.audit_log import AuditLog


def _jsonable(value):
    """Convierte recursivamente date, datetime, UUID y Enum a tipos JSON."""
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, dict):
        return {key: _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_jsonable(item) for item in value]
    return value


async def log_action(
    db: AsyncSession,
    *,
    user_id: UUID | None,
    entity: str,
    entity_id: str,
    action: str,
    old_data: dict | None = None,
    new_data: dict | None = None,
) -> AuditLog:
    """Agrega un evento a la sesión; se confirma con la transacción del llamador."""
    entry = AuditLog(
        user_id=user_id,
        entity=entity,
        entity_id=str(entity_id),
        action=action,
        old_data=_jsonable(old_data),
        new_data=_jsonable(new_data),
    )
    db.add(entry)
    await db.flush()
    return entry


async def get_entity_logs(
    db: AsyncSession,
    entity: str,
    entity_id: str,
    action: str | None = None,
) -> list[AuditLog]:
    """Historial de un registro, del evento más antiguo al más reciente."""
    query = select(AuditLog).where(
        AuditLog.entity == entity,
        AuditLog.entity_id == str(entity_id),
    )
    if action:
        query = query.where(AuditLog.action == action)

    result = await db.execute(query.order_by(AuditLog.created_at))
    return list(result.scalars().all())
