"""HTTP business backend client."""
import asyncio
import logging
from typing import Any, Dict, List, Optional

import httpx

from app.core.errors import BackendError, NoAvailability
from app.services.business.base import (
    BusinessContext,
    BusinessDataProvider,
    MenuItem,
    Table,
    TimeSlot,
    default_context,
    normalize_date,
)
from app.services.reservations.models import ReservationAction, ReservationRecord

logger = logging.getLogger(__name__)

# Backend routes
INFO_PATH = "/admin/restaurante"
MENU_PATH = "/ver-menu"
TABLES_PATH = "/admin/mesas"
SLOTS_PATH = "/horarios-disponibles"
FIND_TABLE_PATH = "/buscar-mesa"
CREATE_RESERVATION_PATH = "/crear-reserva"

RESERVATION_SOURCE = "voice_assistant"


class HttpBusinessBackend(BusinessDataProvider):
    """Business data provider backed by the restaurant management API."""

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: float = 15.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        headers = {
            "Content-Type": "application/json",
            "User-Agent": "PhoneReservationAgent/0.1",
        }
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self.client = client or httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            headers=headers,
        )

    async def aclose(self) -> None:
        await self.client.aclose()

    async def _get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        response = await self.client.get(path, params=params)
        response.raise_for_status()
        return response.json()

    @staticmethod
    def _json_object(response: httpx.Response) -> Dict[str, Any]:
        """Decode a response body that must be a JSON object."""
        try:
            data = response.json()
        except ValueError as e:
            raise BackendError(
                f"Backend returned a non-JSON body from {response.request.url.path}"
            ) from e
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise BackendError(
                f"Backend returned {type(data).__name__} instead of an object "
                f"from {response.request.url.path}"
            )
        return data

    async def get_info(self) -> Dict[str, Any]:
        data = await self._get_json(INFO_PATH)
        return data if isinstance(data, dict) else {}

    async def get_menu(self) -> List[MenuItem]:
        """Flatten the category/dish tree into a list of menu items."""
        data = await self._get_json(MENU_PATH)
        items: List[MenuItem] = []
        for category in data if isinstance(data, list) else []:
            for dish in category.get("platos") or []:
                items.append(
                    MenuItem(
                        name=dish.get("nombre", ""),
                        description=dish.get("descripcion"),
                        price=dish.get("precio"),
                        category=category.get("nombre"),
                        available=dish.get("disponible") is not False,
                    )
                )
        return items

    async def get_tables(self) -> List[Table]:
        data = await self._get_json(TABLES_PATH) or []
        return [
            Table(
                id=str(table["id"]) if table.get("id") is not None else None,
                number=table.get("numero"),
                capacity=table.get("capacidad") or 0,
                status=table.get("estado") or "available",
            )
            for table in data
        ]

    async def get_available_slots(self, day: Optional[str] = None) -> List[TimeSlot]:
        data = await self._get_json(SLOTS_PATH, params={"fecha": day or normalize_date("today")})
        slots: List[TimeSlot] = []
        for slot in data or []:
            if isinstance(slot, dict):
                available = slot.get("available", slot.get("disponible", True))
                slots.append(
                    TimeSlot(
                        time=str(slot.get("time") or slot.get("hora") or ""),
                        available=available is not False,
                    )
                )
            else:
                slots.append(TimeSlot(time=str(slot)))
        return slots

    async def fetch_context(self, business_id: str) -> BusinessContext:
        """Fetch all business data concurrently, defaulting each failed part."""
        logger.info(f"[BUSINESS BACKEND] Fetching context - BusinessId: {business_id}")
        info, menu, tables, slots = await asyncio.gather(
            self.get_info(),
            self.get_menu(),
            self.get_tables(),
            self.get_available_slots(),
            return_exceptions=True,
        )

        context = default_context(business_id)
        context.degraded = False
        for label, result in (("info", info), ("menu", menu), ("tables", tables), ("slots", slots)):
            if isinstance(result, Exception):
                context.degraded = True
                logger.warning(
                    f"[BUSINESS BACKEND] Could not load {label} - BusinessId: {business_id}, "
                    f"Error: {type(result).__name__}: {str(result)}"
                )

        if not isinstance(info, Exception):
            context.name = info.get("nombre") or context.name
            context.phone = info.get("telefono") or context.phone
            context.address = info.get("direccion") or context.address
            context.hours = info.get("horario") or context.hours
        if not isinstance(menu, Exception):
            context.menu = menu
        if not isinstance(tables, Exception):
            context.tables = tables
        if not isinstance(slots, Exception):
            context.available_slots = slots

        logger.info(
            f"[BUSINESS BACKEND] Context loaded - BusinessId: {business_id}, "
            f"Menu items: {len(context.menu)}, Tables: {len(context.tables)}, "
            f"Degraded: {context.degraded}"
        )
        return context

    async def create_reservation(
        self, business_id: str, action: ReservationAction
    ) -> ReservationRecord:
        """Find a free table and book it."""
        day = normalize_date(action.date)
        logger.info(
            f"[BUSINESS BACKEND] Creating reservation - BusinessId: {business_id}, "
            f"Name: {action.name}, Party: {action.party_size}, Date: {day}, Time: {action.time}"
        )
        try:
            search = await self.client.post(
                FIND_TABLE_PATH,
                json={"fecha": day, "hora": action.time, "personas": action.party_size},
            )
            search.raise_for_status()
            table_id = self._json_object(search).get("mesaId")
            if not table_id:
                raise NoAvailability()

            payload = {
                "mesaId": table_id,
                "fecha": day,
                "hora": action.time,
                "personas": action.party_size,
                "cliente": {"nombre": action.name, "telefono": action.phone, "email": ""},
                "notas": action.notes or "Reservation made by the voice assistant",
                "origen": RESERVATION_SOURCE,
            }
            response = await self.client.post(CREATE_RESERVATION_PATH, json=payload)
            response.raise_for_status()
            data = self._json_object(response)
        except httpx.HTTPStatusError as e:
            message = e.response.reason_phrase
            try:
                message = e.response.json().get("message") or message
            except (ValueError, AttributeError):
                pass
            raise BackendError(f"Backend error: {message}") from e
        except httpx.HTTPError as e:
            raise BackendError(f"Backend connection error: {str(e)}") from e

        return ReservationRecord(
            reservation_id=str(data.get("id")) if data.get("id") is not None else None,
            table_id=str(table_id),
            date=day,
            time=action.time,
            party_size=action.party_size,
            name=action.name,
            raw=data,
        )
