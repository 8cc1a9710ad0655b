"""Reservation models."""
from typing import Any, Dict, Optional

from pydantic import BaseModel

DEFAULT_NAME = "Customer"
DEFAULT_PARTY_SIZE = 2
DEFAULT_DATE = "today"
DEFAULT_TIME = "20:00"
DEFAULT_PHONE = "Not provided"


class ReservationAction(BaseModel):
    """Structured reservation intent extracted from a conversation.

    Every field has a default so downstream consumers always get a complete
    record.
    """

    name: str = DEFAULT_NAME
    party_size: int = DEFAULT_PARTY_SIZE
    date: str = DEFAULT_DATE
    time: str = DEFAULT_TIME
    phone: str = DEFAULT_PHONE
    notes: str = ""


class ReservationRecord(BaseModel):
    """Reservation as acknowledged by the business backend."""

    reservation_id: Optional[str] = None
    table_id: Optional[str] = None
    date: str
    time: str
    party_size: int
    name: str
    raw: Dict[str, Any] = {}
