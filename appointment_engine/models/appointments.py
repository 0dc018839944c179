"""Appointments table model using SQLAlchemy Core."""

from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    String,
    Table,
    Text,
    Uuid,
    func,
    text,
)

from appointment_engine.models.metadata import metadata

# Statuses that hold a slot
ACTIVE_STATUS_CLAUSE = "status IN ('scheduled', 'in-progress')"

SLOT_UNIQUE_INDEX = "uq_appointments_active_slot"
PATIENT_DAY_UNIQUE_INDEX = "uq_appointments_active_patient_day"

appointments = Table(
    "appointments",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    Column("appointment_uid", String(32), nullable=False, unique=True),
    # References (no cascading delete)
    Column("clinic_id", Uuid, ForeignKey("clinics.id", ondelete="RESTRICT"), nullable=False),
    Column("doctor_id", Uuid, ForeignKey("doctors.id", ondelete="RESTRICT"), nullable=False),
    Column("patient_id", Uuid, ForeignKey("patients.id", ondelete="RESTRICT"), nullable=False),
    # Snapshot taken at booking time
    Column("doctor_name", String(200)),
    # Appointment slot
    Column("appointment_date", Date, nullable=False),
    Column("appointment_time", String(5), nullable=False),  # HH:MM
    Column("appointment_type", String(20), nullable=False, server_default=text("'in_person'")),
    # Status management
    Column("status", String(20), nullable=False, server_default=text("'scheduled'")),
    Column("provisional", Boolean, nullable=False, server_default=text("false")),
    # Clinical details
    Column("patient_note", Text),
    Column("notes", Text),
    Column("medical_conditions", JSON, nullable=False, default=list),
    # Audit fields
    Column("consent_confirmed_at", DateTime(timezone=True)),
    Column("cancelled_at", DateTime(timezone=True)),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    # Constraints
    CheckConstraint(
        "status IN ('scheduled', 'in-progress', 'completed', 'cancelled')",
        name="status_check",
    ),
    CheckConstraint(
        "appointment_type IN ('in_person', 'video')",
        name="appointment_type_check",
    ),
)

# At most one active appointment per doctor slot
Index(
    SLOT_UNIQUE_INDEX,
    appointments.c.clinic_id,
    appointments.c.doctor_id,
    appointments.c.appointment_date,
    appointments.c.appointment_time,
    unique=True,
    postgresql_where=text(ACTIVE_STATUS_CLAUSE),
    sqlite_where=text(ACTIVE_STATUS_CLAUSE),
)

# At most one active appointment per patient per clinic per day
Index(
    PATIENT_DAY_UNIQUE_INDEX,
    appointments.c.patient_id,
    appointments.c.clinic_id,
    appointments.c.appointment_date,
    unique=True,
    postgresql_where=text(ACTIVE_STATUS_CLAUSE),
    sqlite_where=text(ACTIVE_STATUS_CLAUSE),
)

Index("idx_appointments_doctor_date", appointments.c.doctor_id, appointments.c.appointment_date)
Index("idx_appointments_clinic_date", appointments.c.clinic_id, appointments.c.appointment_date)
Index("idx_appointments_patient_id", appointments.c.patient_id)
