"""Clinic model definition using SQLAlchemy Core."""

from uuid import uuid4

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Column,
    DateTime,
    Integer,
    String,
    Table,
    Uuid,
    func,
    text,
)

from appointment_engine.models.metadata import metadata

clinics = Table(
    "clinics",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    Column("name", String(255), nullable=False),
    # IANA zone name; "today" and past-slot checks are evaluated in it
    Column("timezone", String(64), nullable=False, server_default=text("'Asia/Kolkata'")),
    Column("slot_duration_minutes", Integer, nullable=False, server_default=text("15")),
    # Weekly template used for doctors without their own
    # Example: {"Monday": {"morning": {"start": "09:00", "end": "13:00", "is_off": false}, "evening": {...}}}
    Column("default_availability", JSON),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    CheckConstraint("slot_duration_minutes > 0", name="slot_duration_positive"),
)
