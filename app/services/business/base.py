"""Business data provider interface."""
from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta
from typing import List, Optional

from pydantic import BaseModel

from app.services.reservations.models import ReservationAction, ReservationRecord


class MenuItem(BaseModel):
    """Menu item model."""

    name: str
    description: Optional[str] = None
    price: Optional[float] = None
    category: Optional[str] = None
    available: bool = True


class Table(BaseModel):
    """Dining table model."""

    id: Optional[str] = None
    number: Optional[int] = None
    capacity: int
    status: str = "available"


class TimeSlot(BaseModel):
    """Reservation slot for the current day."""

    time: str
    available: bool = True


class BusinessContext(BaseModel):
    """Everything the assistant needs to know about the business."""

    business_id: str = "default"
    name: str = "Restaurant"
    type: str = "restaurant"
    phone: str = "Not available"
    address: str = "Not available"
    hours: str = "Please ask for opening hours"
    menu: List[MenuItem] = []
    tables: List[Table] = []
    available_slots: List[TimeSlot] = []
    degraded: bool = False  # True when some fields fell back to defaults


def default_context(business_id: str) -> BusinessContext:
    """Context used when business data cannot be loaded at all."""
    return BusinessContext(business_id=business_id, degraded=True)


def normalize_date(value: str, today: Optional[date] = None) -> str:
    """Turn a spoken reservation date into ISO format (YYYY-MM-DD).

    Unknown formats resolve to today.
    """
    today = today or datetime.now().date()
    text = (value or "").strip().lower()

    if text in ("today", "tonight"):
        return today.isoformat()
    if text == "tomorrow":
        return (today + timedelta(days=1)).isoformat()
    if text == "day after tomorrow":
        return (today + timedelta(days=2)).isoformat()

    if "/" in text or ("-" in text and len(text) <= 5):
        parts = text.replace("-", "/").split("/")
        try:
            day = int(parts[0])
            month = int(parts[1])
            year = int(parts[2]) if len(parts) > 2 and parts[2] else today.year
            return date(year, month, day).isoformat()
        except (ValueError, IndexError):
            return today.isoformat()

    try:
        return date.fromisoformat(text).isoformat()
    except ValueError:
        return today.isoformat()


class BusinessDataProvider(ABC):
    """Abstract base class for business data backends."""

    @abstractmethod
    async def fetch_context(self, business_id: str) -> BusinessContext:
        """Load business context. Partial failures fall back per field."""
        pass

    @abstractmethod
    async def create_reservation(
        self, business_id: str, action: ReservationAction
    ) -> ReservationRecord:
        """Create a reservation. Raises NoAvailability or BackendError."""
        pass

    async def aclose(self) -> None:
        """Release any held resources."""
        return None
