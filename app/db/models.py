"""Database models."""
from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Integer, JSON, String, Text
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


class Call(Base):
    """Call metadata model."""

    __tablename__ = "calls"

    id = Column(Integer, primary_key=True, index=True)
    call_id = Column(String, unique=True, index=True, nullable=False)
    business_id = Column(String, default="default", nullable=False)
    caller = Column(String, nullable=True)
    callee = Column(String, nullable=True)
    started_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    ended_at = Column(DateTime, nullable=True)
    status = Column(String, default="in_progress", nullable=False)  # in_progress, completed, abandoned, failed, ...
    transcript = Column(Text, nullable=True)

    # Relationships
    reservations = relationship("Reservation", back_populates="call")


class Reservation(Base):
    """Reservation attempt made during a call."""

    __tablename__ = "reservations"

    id = Column(Integer, primary_key=True, index=True)
    call_id = Column(Integer, ForeignKey("calls.id"), nullable=False)
    status = Column(String, default="created", nullable=False)  # created, failed
    name = Column(String, nullable=False)
    party_size = Column(Integer, nullable=False)
    date = Column(String, nullable=False)
    time = Column(String, nullable=False)
    phone = Column(String, nullable=True)
    notes = Column(Text, nullable=True)
    external_id = Column(String, nullable=True)
    table_id = Column(String, nullable=True)
    error = Column(Text, nullable=True)
    details = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    call = relationship("Call", back_populates="reservations")
