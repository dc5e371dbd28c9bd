"""
Modelos SQLAlchemy: se exportan todos para que Alembic los detecte.
"""

from app.models.audit_log import AuditLog
from app.models.lab_test import LabTest, LabParameter
from app.models.lab_order import LabOrder, LabOrderDetail
from app.models.lab_result import LabResult
from app.models.lab_sequence import LabOrderSequence

__all__ = [
    "AuditLog",
    "LabTest",
    "LabParameter",
    "LabOrder",
    "LabOrderDetail",
    "LabResult",
    "LabOrderSequence",
]
