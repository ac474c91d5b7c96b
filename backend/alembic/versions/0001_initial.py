"""initial schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-16 09:30:00.000000
"""

from alembic import op
import sqlalchemy as sa


revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    op.create_table(
        "patients",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("full_name", sa.String(length=200), nullable=False),
        sa.Column("phone", sa.String(length=50), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "labs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("contact_info", sa.String(length=255), nullable=True),
        sa.Column("address", sa.Text(), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "tooth_treatments",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "patient_id",
            sa.Integer(),
            sa.ForeignKey("patients.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("tooth_number", sa.Integer(), nullable=False),
        sa.Column("tooth_name", sa.String(length=100), nullable=False),
        sa.Column("treatment_type", sa.String(length=60), nullable=False),
        sa.Column(
            "treatment_category",
            sa.Enum(
                "preventive",
                "restorative",
                "endodontic",
                "surgical",
                "cosmetic",
                "orthodontic",
                "periodontal",
                "pediatric",
                "prosthetic",
                name="treatment_category",
            ),
            nullable=False,
        ),
        sa.Column(
            "treatment_status",
            sa.Enum("planned", "in_progress", "completed", "cancelled", name="treatment_status"),
            nullable=False,
            server_default="planned",
        ),
        sa.Column("cost", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("priority", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("start_date", sa.Date(), nullable=True),
        sa.Column("completion_date", sa.Date(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint(
            "patient_id", "tooth_number", "priority", name="uq_tooth_treatments_priority"
        ),
    )
    op.create_index("ix_tooth_treatments_patient_id", "tooth_treatments", ["patient_id"])

    op.create_table(
        "treatment_sessions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "tooth_treatment_id",
            sa.Integer(),
            sa.ForeignKey("tooth_treatments.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("session_number", sa.Integer(), nullable=False),
        sa.Column("session_type", sa.String(length=60), nullable=False),
        sa.Column("session_title", sa.String(length=200), nullable=False),
        sa.Column("session_description", sa.Text(), nullable=True),
        sa.Column("session_date", sa.Date(), nullable=False),
        sa.Column(
            "session_status",
            sa.Enum("planned", "completed", "cancelled", name="session_status"),
            nullable=False,
            server_default="planned",
        ),
        sa.Column("duration_minutes", sa.Integer(), nullable=False, server_default="30"),
        sa.Column("cost", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint(
            "tooth_treatment_id", "session_number", name="uq_treatment_sessions_number"
        ),
    )
    op.create_index(
        "ix_treatment_sessions_tooth_treatment_id", "treatment_sessions", ["tooth_treatment_id"]
    )

    op.create_table(
        "payments",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "patient_id",
            sa.Integer(),
            sa.ForeignKey("patients.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "tooth_treatment_id",
            sa.Integer(),
            sa.ForeignKey("tooth_treatments.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column(
            "payment_method",
            sa.Enum("cash", "bank_transfer", name="payment_method"),
            nullable=False,
            server_default="cash",
        ),
        sa.Column("payment_date", sa.Date(), nullable=False),
        sa.Column("description", sa.String(length=255), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column(
            "status",
            sa.Enum("pending", "partial", "completed", name="payment_status"),
            nullable=False,
            server_default="pending",
        ),
        sa.Column("total_amount_due", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("treatment_total_paid", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("remaining_balance", sa.Numeric(10, 2), nullable=False, server_default="0"),
        *_timestamps(),
    )
    op.create_index("ix_payments_patient_id", "payments", ["patient_id"])
    op.create_index("ix_payments_tooth_treatment_id", "payments", ["tooth_treatment_id"])

    op.create_table(
        "lab_orders",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "lab_id",
            sa.Integer(),
            sa.ForeignKey("labs.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "patient_id",
            sa.Integer(),
            sa.ForeignKey("patients.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "tooth_treatment_id",
            sa.Integer(),
            sa.ForeignKey("tooth_treatments.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column("tooth_number", sa.Integer(), nullable=True),
        sa.Column("service_name", sa.String(length=255), nullable=False),
        sa.Column("cost", sa.Numeric(10, 2), nullable=False),
        sa.Column("paid_amount", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("remaining_balance", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column(
            "status",
            sa.Enum("pending", "completed", "cancelled", name="lab_order_status"),
            nullable=False,
            server_default="pending",
        ),
        sa.Column("order_date", sa.Date(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("tooth_treatment_id"),
    )
    op.create_index("ix_lab_orders_lab_id", "lab_orders", ["lab_id"])
    op.create_index("ix_lab_orders_patient_id", "lab_orders", ["patient_id"])

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("actor", sa.String(length=320), nullable=True),
        sa.Column("action", sa.String(length=64), nullable=False),
        sa.Column("entity_type", sa.String(length=50), nullable=False),
        sa.Column("entity_id", sa.String(length=64), nullable=False),
        sa.Column("before_json", sa.JSON(), nullable=True),
        sa.Column("after_json", sa.JSON(), nullable=True),
    )
    op.create_index("ix_audit_logs_entity", "audit_logs", ["entity_type", "entity_id"])


def downgrade() -> None:
    op.drop_index("ix_audit_logs_entity", table_name="audit_logs")
    op.drop_table("audit_logs")
    op.drop_index("ix_lab_orders_patient_id", table_name="lab_orders")
    op.drop_index("ix_lab_orders_lab_id", table_name="lab_orders")
    op.drop_table("lab_orders")
    op.drop_index("ix_payments_tooth_treatment_id", table_name="payments")
    op.drop_index("ix_payments_patient_id", table_name="payments")
    op.drop_table("payments")
    op.drop_index("ix_treatment_sessions_tooth_treatment_id", table_name="treatment_sessions")
    op.drop_table("treatment_sessions")
    op.drop_index("ix_tooth_treatments_patient_id", table_name="tooth_treatments")
    op.drop_table("tooth_treatments")
    op.drop_table("labs")
    op.drop_table("patients")
    for enum_name in (
        "lab_order_status",
        "payment_status",
        "payment_method",
        "session_status",
        "treatment_status",
        "treatment_category",
    ):
        sa.Enum(name=enum_name).drop(op.get_bind(), checkfirst=True)
