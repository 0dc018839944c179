"""Patient identity table using SQLAlchemy Core."""

from uuid import uuid4

from sqlalchemy import Column, DateTime, String, Table, Uuid, func

from appointment_engine.models.metadata import metadata

patients = Table(
    "patients",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    Column("full_name", String(200), nullable=False),
    Column("contact_number", String(20)),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
)
