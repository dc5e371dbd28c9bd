"""create lab tables: catálogo, órdenes, resultados, secuencias y audit log

Revision ID: a1b2c3d4e5f6
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "a1b2c3d4e5f6"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


SAMPLE_TYPES = ("blood", "urine", "stool", "tissue", "fluid", "other")
ORDER_STATUSES = ("pending", "samples_collected", "processing", "completed", "cancelled")
PRIORITIES = ("routine", "urgent")


def upgrade() -> None:
    # 1. Catálogo
    op.create_table(
        "lab_tests",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("code", sa.String(50), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("category", sa.String(100), nullable=True),
        sa.Column("sample_type", sa.Enum(*SAMPLE_TYPES, name="sampletype"), nullable=False),
        sa.Column("price_minor", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("duration_hours", sa.Integer(), nullable=False, server_default="24"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_lab_tests_code", "lab_tests", ["code"], unique=True)
    op.create_index("ix_lab_tests_category", "lab_tests", ["category"])
    op.create_index("ix_lab_tests_is_active", "lab_tests", ["is_active"])

    op.create_table(
        "lab_parameters",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("test_id", sa.Uuid(), sa.ForeignKey("lab_tests.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("code", sa.String(50), nullable=True),
        sa.Column("unit", sa.String(50), nullable=True),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("reference_text", sa.Text(), nullable=True),
        sa.Column("ref_min", sa.Float(), nullable=True),
        sa.Column("ref_max", sa.Float(), nullable=True),
        sa.Column("critical_min", sa.Float(), nullable=True),
        sa.Column("critical_max", sa.Float(), nullable=True),
    )
    op.create_index("ix_lab_parameters_test_id", "lab_parameters", ["test_id"])

    # 2. Órdenes
    op.create_table(
        "lab_orders",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("order_number", sa.String(30), nullable=False),
        sa.Column("patient_id", sa.Uuid(), nullable=False),
        sa.Column("requesting_doctor_id", sa.Uuid(), nullable=True),
        sa.Column("priority", sa.Enum(*PRIORITIES, name="labpriority"), nullable=False),
        sa.Column("status", sa.Enum(*ORDER_STATUSES, name="laborderstatus"), nullable=False),
        sa.Column("is_paid", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("total_amount_minor", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_by", sa.Uuid(), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_by", sa.Uuid(), nullable=True),
        sa.Column("cancel_reason", sa.Text(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_lab_orders_order_number", "lab_orders", ["order_number"], unique=True)
    op.create_index("ix_lab_orders_patient_id", "lab_orders", ["patient_id"])
    op.create_index("ix_lab_orders_requesting_doctor_id", "lab_orders", ["requesting_doctor_id"])
    op.create_index("ix_lab_orders_priority", "lab_orders", ["priority"])
    op.create_index("ix_lab_orders_status", "lab_orders", ["status"])

    op.create_table(
        "lab_order_details",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("order_id", sa.Uuid(), sa.ForeignKey("lab_orders.id", ondelete="CASCADE"), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("test_code", sa.String(50), nullable=False),
        sa.Column("test_snapshot", sa.JSON(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
    )
    op.create_index("ix_lab_order_details_order_id", "lab_order_details", ["order_id"])
    op.create_index("ix_lab_order_details_test_code", "lab_order_details", ["test_code"])

    # 3. Resultados (uno por detalle + parámetro)
    op.create_table(
        "lab_results",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "order_detail_id", sa.Uuid(),
            sa.ForeignKey("lab_order_details.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("parameter_id", sa.Uuid(), nullable=True),
        sa.Column("value_text", sa.Text(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("recorded_by", sa.Uuid(), nullable=True),
        sa.Column("recorded_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("order_detail_id", "parameter_id", name="uq_lab_result_detail_parameter"),
    )
    op.create_index("ix_lab_results_order_detail_id", "lab_results", ["order_detail_id"])

    # 4. Secuencias de número de orden
    op.create_table(
        "lab_order_sequences",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("prefix", sa.String(10), nullable=False, comment="Prefijo del número de orden, ej. LAB"),
        sa.Column("sequence_date", sa.Date(), nullable=False),
        sa.Column("last_number", sa.Integer(), nullable=False, server_default="0"),
        sa.UniqueConstraint("prefix", "sequence_date", name="uq_lab_order_sequence_prefix_date"),
    )

    # 5. Audit log
    op.create_table(
        "audit_log",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("user_id", sa.Uuid(), nullable=True),
        sa.Column("entity", sa.String(50), nullable=False),
        sa.Column("entity_id", sa.String(36), nullable=False),
        sa.Column("action", sa.String(30), nullable=False),
        sa.Column("old_data", sa.JSON(), nullable=True),
        sa.Column("new_data", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_audit_log_user_id", "audit_log", ["user_id"])
    op.create_index("ix_audit_log_entity", "audit_log", ["entity"])
    op.create_index("ix_audit_log_entity_id", "audit_log", ["entity_id"])
    op.create_index("ix_audit_log_action", "audit_log", ["action"])


def downgrade() -> None:
    op.drop_table("audit_log")
    op.drop_table("lab_order_sequences")
    op.drop_table("lab_results")
    op.drop_table("lab_order_details")
    op.drop_table("lab_orders")
    op.drop_table("lab_parameters")
    op.drop_table("lab_tests")
    op.execute("DROP TYPE IF EXISTS laborderstatus")
    op.execute("DROP TYPE IF EXISTS labpriority")
    op.execute("DROP TYPE IF EXISTS sampletype")
