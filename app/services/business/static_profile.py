"""Business data provider backed by a local YAML profile."""
import logging
import uuid
from pathlib import Path
from typing import Dict, List, Optional, Set, Tuple

import yaml

from app.core.errors import BackendError, NoAvailability
from app.services.business.base import (
    BusinessContext,
    BusinessDataProvider,
    MenuItem,
    Table,
    TimeSlot,
    normalize_date,
)
from app.services.reservations.models import ReservationAction, ReservationRecord

logger = logging.getLogger(__name__)


class StaticProfileProvider(BusinessDataProvider):
    """Serves one business profile from YAML and books tables in memory.

    Used when no backend URL is configured, e.g. for local testing.
    """

    def __init__(self, profile_file: Optional[str] = None):
        """Initialize with optional profile file path."""
        if profile_file is None:
            profile_file = Path(__file__).parent / "data" / "business.yaml"
        self.profile_file = Path(profile_file)
        self._profile: Optional[BusinessContext] = None
        self._bookings: Dict[Tuple[str, str], Set[str]] = {}

    def _load_profile(self) -> BusinessContext:
        """Load profile from YAML file."""
        if self._profile is None:
            if not self.profile_file.exists():
                logger.warning(
                    f"[STATIC PROFILE] Profile file not found, using defaults: {self.profile_file}"
                )
                self._profile = BusinessContext(
                    name="Restaurant",
                    hours="Monday to Sunday: 12:00 - 24:00",
                    menu=[
                        MenuItem(name="Paella", price=16.5, category="mains"),
                        MenuItem(name="Patatas bravas", price=6.0, category="starters"),
                    ],
                    tables=[
                        Table(id="1", number=1, capacity=2),
                        Table(id="2", number=2, capacity=4),
                        Table(id="3", number=3, capacity=6),
                    ],
                )
            else:
                with open(self.profile_file, "r") as f:
                    data = yaml.safe_load(f) or {}
                self._profile = BusinessContext(
                    name=data.get("name", "Restaurant"),
                    type=data.get("type", "restaurant"),
                    phone=data.get("phone", "Not available"),
                    address=data.get("address", "Not available"),
                    hours=data.get("hours", "Please ask for opening hours"),
                    menu=[MenuItem(**item) for item in data.get("menu", [])],
                    tables=[Table(**table) for table in data.get("tables", [])],
                    available_slots=[
                        TimeSlot(**slot) for slot in data.get("available_slots", [])
                    ],
                )
        return self._profile

    async def fetch_context(self, business_id: str) -> BusinessContext:
        context = self._profile_or_error().model_copy(deep=True)
        context.business_id = business_id
        return context

    def _profile_or_error(self) -> BusinessContext:
        try:
            return self._load_profile()
        except (OSError, yaml.YAMLError, ValueError, TypeError, AttributeError) as e:
            raise BackendError(f"Could not load business profile: {e}") from e

    def _free_tables(self, day: str, time: str, party_size: int) -> List[Table]:
        booked = self._bookings.get((day, time), set())
        return sorted(
            (
                table
                for table in self._profile_or_error().tables
                if table.capacity >= party_size
                and table.status == "available"
                and table.id not in booked
            ),
            key=lambda table: table.capacity,
        )

    async def create_reservation(
        self, business_id: str, action: ReservationAction
    ) -> ReservationRecord:
        day = normalize_date(action.date)
        tables = self._free_tables(day, action.time, action.party_size)
        if not tables:
            raise NoAvailability()

        table = tables[0]
        self._bookings.setdefault((day, action.time), set()).add(table.id)
        reservation_id = uuid.uuid4().hex[:12]
        logger.info(
            f"[STATIC PROFILE] Reservation booked - Id: {reservation_id}, Table: {table.id}, "
            f"Date: {day}, Time: {action.time}, Party: {action.party_size}"
        )
        return ReservationRecord(
            reservation_id=reservation_id,
            table_id=table.id,
            date=day,
            time=action.time,
            party_size=action.party_size,
            name=action.name,
        )
