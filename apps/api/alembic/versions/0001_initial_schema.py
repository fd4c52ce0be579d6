"""initial schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19 09:00:00.000000

This migration creates:
1. users (with role / gender enums and OTP columns)
2. schools, linked one-to-one to a user account
3. devices, with the per-school name tag unique constraint
4. applications and application_device_issues

Enum types store the lowercase enum values, matching the models.
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0001_initial_schema"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


ENUMS = {
    "user_role": ("admin", "rtb-staff", "school", "technician"),
    "user_gender": ("Male", "Female"),
    "device_category": ("laptop", "desktop", "projector", "other"),
    "device_status": ("active", "inactive", "maintenance", "retired"),
    "device_condition": ("excellent", "good", "fair", "poor", "broken"),
    "application_type": ("new_device_request", "maintenance_request"),
    "application_status": (
        "pending",
        "under_review",
        "approved",
        "rejected",
        "in_progress",
        "completed",
        "cancelled",
    ),
    "application_priority": ("low", "medium", "high", "urgent"),
}


def _enum(name: str) -> postgresql.ENUM:
    return postgresql.ENUM(*ENUMS[name], name=name, create_type=False)


def _base_columns() -> list[sa.Column]:
    return [
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    """Create all tables."""
    bind = op.get_bind()
    for name, values in ENUMS.items():
        postgresql.ENUM(*values, name=name).create(bind, checkfirst=True)

    # Users
    op.create_table(
        "users",
        *_base_columns(),
        sa.Column("first_name", sa.String(length=100), nullable=False),
        sa.Column("last_name", sa.String(length=100), nullable=False),
        sa.Column("phone", sa.String(length=20), nullable=True),
        sa.Column("gender", _enum("user_gender"), nullable=True),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("password_hash", sa.Text(), nullable=False),
        sa.Column("role", _enum("user_role"), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("otp", sa.String(length=6), nullable=True),
        sa.Column("otp_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_users_email"), "users", ["email"], unique=True)
    op.create_index(op.f("ix_users_role"), "users", ["role"], unique=False)

    # Schools
    op.create_table(
        "schools",
        *_base_columns(),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("code", sa.String(length=50), nullable=True),
        sa.Column("province", sa.String(length=100), nullable=True),
        sa.Column("district", sa.String(length=100), nullable=True),
        sa.Column("sector", sa.String(length=100), nullable=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(
            ["user_id"],
            ["users.id"],
            name="fk_schools_user_id",
            ondelete="CASCADE",
        ),
        sa.UniqueConstraint("user_id", name="uq_schools_user_id"),
    )
    op.create_index(op.f("ix_schools_name"), "schools", ["name"], unique=False)
    op.create_index(op.f("ix_schools_province"), "schools", ["province"], unique=False)
    op.create_index(op.f("ix_schools_district"), "schools", ["district"], unique=False)
    op.create_index(op.f("ix_schools_sector"), "schools", ["sector"], unique=False)

    # Devices
    op.create_table(
        "devices",
        *_base_columns(),
        sa.Column("name_tag", sa.String(length=50), nullable=False),
        sa.Column("serial_number", sa.String(length=100), nullable=False),
        sa.Column("model", sa.String(length=100), nullable=False),
        sa.Column("brand", sa.String(length=100), nullable=True),
        sa.Column("purchase_cost", sa.Numeric(12, 2), nullable=False),
        sa.Column("category", _enum("device_category"), nullable=False),
        sa.Column("status", _enum("device_status"), nullable=False),
        sa.Column("condition", _enum("device_condition"), nullable=False),
        sa.Column("last_seen_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("school_id", sa.Integer(), nullable=True),
        sa.Column("purchase_date", sa.Date(), nullable=True),
        sa.Column("warranty_expiry", sa.Date(), nullable=True),
        sa.Column("next_maintenance_date", sa.Date(), nullable=True),
        sa.Column("specifications", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("age", sa.Integer(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(
            ["school_id"],
            ["schools.id"],
            name="fk_devices_school_id",
            ondelete="CASCADE",
        ),
        # Concurrent inserts racing for the same tag fail here and are retried
        sa.UniqueConstraint("school_id", "name_tag", name="uq_devices_school_name_tag"),
    )
    op.create_index("ix_devices_serial_number", "devices", ["serial_number"], unique=True)
    op.create_index(op.f("ix_devices_school_id"), "devices", ["school_id"], unique=False)
    op.create_index("ix_devices_category", "devices", ["category"], unique=False)
    op.create_index("ix_devices_model", "devices", ["model"], unique=False)
    op.create_index("ix_devices_purchase_date", "devices", ["purchase_date"], unique=False)
    op.create_index("ix_devices_status", "devices", ["status"], unique=False)

    # Applications
    op.create_table(
        "applications",
        *_base_columns(),
        sa.Column("type", _enum("application_type"), nullable=False),
        sa.Column("status", _enum("application_status"), nullable=False),
        sa.Column("priority", _enum("application_priority"), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("school_id", sa.Integer(), nullable=False),
        sa.Column("requested_device_count", sa.Integer(), nullable=True),
        sa.Column("requested_device_type", sa.String(length=100), nullable=True),
        sa.Column("justification", sa.Text(), nullable=True),
        sa.Column("application_letter_path", sa.String(length=500), nullable=True),
        sa.Column("assigned_to", sa.String(length=255), nullable=True),
        sa.Column("assigned_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("estimated_completion_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("admin_notes", sa.Text(), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("estimated_cost", sa.Numeric(10, 2), nullable=True),
        sa.Column("actual_cost", sa.Numeric(10, 2), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(
            ["school_id"],
            ["schools.id"],
            name="fk_applications_school_id",
            ondelete="CASCADE",
        ),
        sa.CheckConstraint(
            "requested_device_count IS NULL OR requested_device_count > 0",
            name="ck_applications_requested_device_count_positive",
        ),
        sa.CheckConstraint(
            "estimated_cost IS NULL OR estimated_cost >= 0",
            name="ck_applications_estimated_cost_non_negative",
        ),
        sa.CheckConstraint(
            "actual_cost IS NULL OR actual_cost >= 0",
            name="ck_applications_actual_cost_non_negative",
        ),
    )
    for column in ("type", "status", "priority", "school_id", "created_at", "assigned_to"):
        op.create_index(f"ix_applications_{column}", "applications", [column], unique=False)

    # Device issues
    op.create_table(
        "application_device_issues",
        *_base_columns(),
        sa.Column("application_id", sa.Integer(), nullable=False),
        sa.Column("device_id", sa.Integer(), nullable=False),
        sa.Column("problem_description", sa.Text(), nullable=False),
        sa.Column("action_taken", sa.Text(), nullable=True),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(
            ["application_id"],
            ["applications.id"],
            name="fk_application_device_issues_application_id",
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["device_id"],
            ["devices.id"],
            name="fk_application_device_issues_device_id",
        ),
    )
    op.create_index(
        op.f("ix_application_device_issues_application_id"),
        "application_device_issues",
        ["application_id"],
        unique=False,
    )
    op.create_index(
        op.f("ix_application_device_issues_device_id"),
        "application_device_issues",
        ["device_id"],
        unique=False,
    )


def downgrade() -> None:
    """Drop all tables and enum types."""
    op.drop_table("application_device_issues")
    op.drop_table("applications")
    op.drop_table("devices")
    op.drop_table("schools")
    op.drop_table("users")

    bind = op.get_bind()
    for name, values in reversed(ENUMS.items()):
        postgresql.ENUM(*values, name=name).drop(bind, checkfirst=True)
