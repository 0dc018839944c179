"""Doctor leave entries using SQLAlchemy Core."""

from uuid import uuid4

from sqlalchemy import (
    Column,
    Date,
    DateTime,
    ForeignKey,
    String,
    Table,
    Text,
    UniqueConstraint,
    Uuid,
    func,
)

from appointment_engine.models.metadata import metadata

doctor_leaves = Table(
    "doctor_leaves",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    Column(
        "doctor_id",
        Uuid,
        ForeignKey("doctors.id", ondelete="RESTRICT"),
        nullable=False,
    ),
    Column(
        "clinic_id",
        Uuid,
        ForeignKey("clinics.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    ),
    Column("leave_date", Date, nullable=False),
    # Weekday name of leave_date, e.g. "Monday"
    Column("day", String(10), nullable=False),
    Column("reason", Text),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    UniqueConstraint("doctor_id", "leave_date", name="uq_doctor_leaves_doctor_date"),
)
