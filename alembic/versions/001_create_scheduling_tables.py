"""Create clinics, doctors, patients, doctor_leaves and appointments tables.

Revision ID: 001
Revises:
Create Date: 2026-10-17 00:00:00.000000

"""

from typing import Sequence, Union

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ACTIVE_STATUS_CLAUSE = "status IN ('scheduled', 'in-progress')"


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    """Upgrade database schema."""
    op.create_table(
        "clinics",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column(
            "timezone",
            sa.String(length=64),
            server_default=sa.text("'Asia/Kolkata'"),
            nullable=False,
        ),
        sa.Column(
            "slot_duration_minutes",
            sa.Integer(),
            server_default=sa.text("15"),
            nullable=False,
        ),
        sa.Column("default_availability", sa.JSON(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("slot_duration_minutes > 0", name="clinics_slot_duration_positive"),
        sa.PrimaryKeyConstraint("id", name="pk_clinics"),
    )

    op.create_table(
        "doctors",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("clinic_id", sa.Uuid(), nullable=False),
        sa.Column("full_name", sa.String(length=200), nullable=False),
        sa.Column("status", sa.String(length=20), server_default=sa.text("'active'"), nullable=False),
        sa.Column("availability", sa.JSON(), nullable=True),
        sa.Column("slot_duration_minutes", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("status IN ('active', 'inactive')", name="doctors_status_check"),
        sa.CheckConstraint(
            "slot_duration_minutes IS NULL OR slot_duration_minutes > 0",
            name="doctors_slot_duration_positive",
        ),
        sa.ForeignKeyConstraint(
            ["clinic_id"],
            ["clinics.id"],
            name="fk_doctors_clinic_id",
            ondelete="RESTRICT",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_doctors"),
    )
    op.create_index("ix_doctors_clinic_id", "doctors", ["clinic_id"])

    op.create_table(
        "patients",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("full_name", sa.String(length=200), nullable=False),
        sa.Column("contact_number", sa.String(length=20), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id", name="pk_patients"),
    )

    op.create_table(
        "doctor_leaves",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("doctor_id", sa.Uuid(), nullable=False),
        sa.Column("clinic_id", sa.Uuid(), nullable=False),
        sa.Column("leave_date", sa.Date(), nullable=False),
        sa.Column("day", sa.String(length=10), nullable=False),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(
            ["doctor_id"],
            ["doctors.id"],
            name="fk_doctor_leaves_doctor_id",
            ondelete="RESTRICT",
        ),
        sa.ForeignKeyConstraint(
            ["clinic_id"],
            ["clinics.id"],
            name="fk_doctor_leaves_clinic_id",
            ondelete="RESTRICT",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_doctor_leaves"),
        sa.UniqueConstraint("doctor_id", "leave_date", name="uq_doctor_leaves_doctor_date"),
    )
    op.create_index("ix_doctor_leaves_clinic_id", "doctor_leaves", ["clinic_id"])

    op.create_table(
        "appointments",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("appointment_uid", sa.String(length=32), nullable=False),
        sa.Column("clinic_id", sa.Uuid(), nullable=False),
        sa.Column("doctor_id", sa.Uuid(), nullable=False),
        sa.Column("patient_id", sa.Uuid(), nullable=False),
        sa.Column("doctor_name", sa.String(length=200), nullable=True),
        sa.Column("appointment_date", sa.Date(), nullable=False),
        sa.Column("appointment_time", sa.String(length=5), nullable=False),
        sa.Column(
            "appointment_type",
            sa.String(length=20),
            server_default=sa.text("'in_person'"),
            nullable=False,
        ),
        sa.Column(
            "status",
            sa.String(length=20),
            server_default=sa.text("'scheduled'"),
            nullable=False,
        ),
        sa.Column("provisional", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("patient_note", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("medical_conditions", sa.JSON(), nullable=False),
        sa.Column("consent_confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('scheduled', 'in-progress', 'completed', 'cancelled')",
            name="appointments_status_check",
        ),
        sa.CheckConstraint(
            "appointment_type IN ('in_person', 'video')",
            name="appointments_appointment_type_check",
        ),
        sa.ForeignKeyConstraint(
            ["clinic_id"],
            ["clinics.id"],
            name="fk_appointments_clinic_id",
            ondelete="RESTRICT",
        ),
        sa.ForeignKeyConstraint(
            ["doctor_id"],
            ["doctors.id"],
            name="fk_appointments_doctor_id",
            ondelete="RESTRICT",
        ),
        sa.ForeignKeyConstraint(
            ["patient_id"],
            ["patients.id"],
            name="fk_appointments_patient_id",
            ondelete="RESTRICT",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_appointments"),
        sa.UniqueConstraint("appointment_uid", name="uq_appointments_appointment_uid"),
    )

    # One active appointment per doctor slot
    op.create_index(
        "uq_appointments_active_slot",
        "appointments",
        ["clinic_id", "doctor_id", "appointment_date", "appointment_time"],
        unique=True,
        postgresql_where=sa.text(ACTIVE_STATUS_CLAUSE),
        sqlite_where=sa.text(ACTIVE_STATUS_CLAUSE),
    )
    # One active appointment per patient per clinic per day
    op.create_index(
        "uq_appointments_active_patient_day",
        "appointments",
        ["patient_id", "clinic_id", "appointment_date"],
        unique=True,
        postgresql_where=sa.text(ACTIVE_STATUS_CLAUSE),
        sqlite_where=sa.text(ACTIVE_STATUS_CLAUSE),
    )
    op.create_index(
        "idx_appointments_doctor_date", "appointments", ["doctor_id", "appointment_date"]
    )
    op.create_index(
        "idx_appointments_clinic_date", "appointments", ["clinic_id", "appointment_date"]
    )
    op.create_index("idx_appointments_patient_id", "appointments", ["patient_id"])


def downgrade() -> None:
    """Downgrade database schema."""
    op.drop_index("idx_appointments_patient_id", table_name="appointments")
    op.drop_index("idx_appointments_clinic_date", table_name="appointments")
    op.drop_index("idx_appointments_doctor_date", table_name="appointments")
    op.drop_index("uq_appointments_active_patient_day", table_name="appointments")
    op.drop_index("uq_appointments_active_slot", table_name="appointments")
    op.drop_table("appointments")

    op.drop_index("ix_doctor_leaves_clinic_id", table_name="doctor_leaves")
    op.drop_table("doctor_leaves")

    op.drop_table("patients")

    op.drop_index("ix_doctors_clinic_id", table_name="doctors")
    op.drop_table("doctors")

    op.drop_table("clinics")
