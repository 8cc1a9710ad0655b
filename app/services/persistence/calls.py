"""Call persistence service."""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from app.db.models import Call, Reservation
from app.services.call_session.models import CallSession
from app.services.reservations.models import ReservationAction, ReservationRecord

logger = logging.getLogger(__name__)

# Connection failures can surface from the driver without SQLAlchemy wrapping
ARCHIVE_ERRORS = (SQLAlchemyError, OSError)


class CallPersistenceService:
    """Service for persisting call data."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_call(
        self,
        call_id: str,
        business_id: str = "default",
        caller: Optional[str] = None,
        callee: Optional[str] = None,
    ) -> Call:
        """Create a new call record or return existing one."""
        existing_call = await self.get_call(call_id)
        if existing_call:
            return existing_call

        call = Call(
            call_id=call_id,
            business_id=business_id,
            caller=caller,
            callee=callee,
            status="in_progress",
        )
        self.db.add(call)
        await self.db.commit()
        await self.db.refresh(call)
        return call

    async def get_call(self, call_id: str, with_reservations: bool = False) -> Optional[Call]:
        """Get call by telephony call id."""
        query = select(Call).where(Call.call_id == call_id)
        if with_reservations:
            query = query.options(selectinload(Call.reservations))
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def finish_call(
        self,
        call_id: str,
        status: str,
        transcript: Optional[str] = None,
        ended_at: Optional[datetime] = None,
    ) -> Optional[Call]:
        """Record the final status and transcript of a call."""
        call = await self.get_call(call_id)
        if call:
            call.status = status
            call.ended_at = ended_at or datetime.utcnow()
            if transcript is not None:
                call.transcript = transcript
            await self.db.commit()
            await self.db.refresh(call)
        return call

    async def add_reservation(
        self,
        call_id: str,
        action: ReservationAction,
        record: Optional[ReservationRecord] = None,
        error: Optional[str] = None,
    ) -> Optional[Reservation]:
        """Store a reservation attempt. Without a record it is stored as failed."""
        call = await self.get_call(call_id)
        if not call:
            return None

        reservation = Reservation(
            call_id=call.id,
            status="created" if record is not None else "failed",
            name=action.name,
            party_size=action.party_size,
            date=record.date if record is not None else action.date,
            time=action.time,
            phone=action.phone,
            notes=action.notes,
            external_id=record.reservation_id if record is not None else None,
            table_id=record.table_id if record is not None else None,
            error=error,
            details=record.raw if record is not None else None,
        )
        self.db.add(reservation)
        await self.db.commit()
        await self.db.refresh(reservation)
        return reservation


class CallArchive:
    """Writes call history to the database.

    Archive failures are logged and swallowed; a broken database must never
    affect a live call.
    """

    def __init__(self, session_factory: Optional[async_sessionmaker] = None):
        if session_factory is None:
            from app.db.database import AsyncSessionLocal

            session_factory = AsyncSessionLocal
        self.session_factory = session_factory

    async def call_started(self, session: CallSession) -> None:
        try:
            async with self.session_factory() as db:
                await CallPersistenceService(db).create_call(
                    session.call_id,
                    business_id=session.business_id,
                    caller=session.caller,
                    callee=session.callee,
                )
        except ARCHIVE_ERRORS as e:
            logger.error(f"[ARCHIVE] Could not store call start {session.call_id}: {e}")

    async def reservation_attempted(
        self,
        call_id: str,
        action: ReservationAction,
        record: Optional[ReservationRecord] = None,
        error: Optional[str] = None,
    ) -> None:
        try:
            async with self.session_factory() as db:
                await CallPersistenceService(db).add_reservation(
                    call_id, action, record=record, error=error
                )
        except ARCHIVE_ERRORS as e:
            logger.error(f"[ARCHIVE] Could not store reservation for {call_id}: {e}")

    async def call_ended(self, session: CallSession, status: str) -> None:
        try:
            async with self.session_factory() as db:
                await CallPersistenceService(db).finish_call(
                    session.call_id,
                    status=status,
                    transcript=session.get_transcript_text(),
                )
        except ARCHIVE_ERRORS as e:
            logger.error(f"[ARCHIVE] Could not store call end {session.call_id}: {e}")
