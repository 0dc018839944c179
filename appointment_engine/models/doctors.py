"""Doctor model definition using SQLAlchemy Core."""

from uuid import uuid4

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Table,
    Uuid,
    func,
    text,
)

from appointment_engine.models.metadata import metadata

doctors = Table(
    "doctors",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    Column(
        "clinic_id",
        Uuid,
        ForeignKey("clinics.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    ),
    Column("full_name", String(200), nullable=False),
    Column("status", String(20), nullable=False, server_default=text("'active'")),
    # NULL falls back to the clinic's default_availability
    Column("availability", JSON),
    # NULL falls back to the clinic's slot_duration_minutes
    Column("slot_duration_minutes", Integer),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    CheckConstraint("status IN ('active', 'inactive')", name="status_check"),
    CheckConstraint(
        "slot_duration_minutes IS NULL OR slot_duration_minutes > 0",
        name="slot_duration_positive",
    ),
)
