"""Turn-by-turn conversation state machine for phone calls."""
import asyncio
import logging
from datetime import timedelta
from typing import Any, Awaitable, List, Optional

from app.core.config import settings
from app.core.errors import (
    BackendError,
    GatewayTimeout,
    ReservationCreationFailed,
    SynthesisFailed,
    TranscriptionFailed,
)
from app.services.agent.agent import ReplyResult
from app.services.business.base import BusinessContext, default_context
from app.services.call_session.models import CallSession, Turn, TurnRole
from app.services.call_session.store import CallSessionStore
from app.services.reservations.extractor import ACTION_MARKER_PATTERN, ActionExtractor
from app.services.reservations.models import ReservationAction
from app.services.speech.tts import clean_text_for_speech
from app.services.telephony.models import (
    CallEvent,
    PlayAndHangup,
    PlayAndRecord,
    RecordingEvent,
    Say,
    VoiceAction,
)

logger = logging.getLogger(__name__)

# Record windows (max duration, silence timeout) in seconds
GREETING_WINDOW = (10, 3)
RETRY_WINDOW = (10, 3)
FOLLOW_UP_WINDOW = (15, 4)
GREETING_FINISH_KEY = "#"

FINAL_CALL_STATUSES = {"completed", "failed", "busy", "no-answer", "canceled"}


class TurnOrchestrator:
    """Drives one call from the first webhook to the hangup.

    Every event for a call is processed under that call's lock. Gateways are
    injected; each call to them is bounded by ``gateway_timeout`` seconds and
    every gateway failure degrades to a retry, default data or an apology.
    """

    def __init__(
        self,
        store: CallSessionStore,
        transcriber,
        reply_generator,
        synthesizer,
        business,
        extractor: ActionExtractor,
        audio_store=None,
        archive=None,
        gateway_timeout: Optional[float] = None,
    ):
        self.store = store
        self.transcriber = transcriber
        self.reply_generator = reply_generator
        self.synthesizer = synthesizer
        self.business = business
        self.extractor = extractor
        self.audio_store = audio_store
        self.archive = archive
        self.gateway_timeout = gateway_timeout or settings.gateway_timeout_seconds

    async def _call_gateway(self, gateway: str, awaitable: Awaitable[Any]) -> Any:
        try:
            return await asyncio.wait_for(awaitable, timeout=self.gateway_timeout)
        except asyncio.TimeoutError as e:
            raise GatewayTimeout(gateway, self.gateway_timeout) from e

    # Speech output

    async def _synthesize(
        self, text: str, base_url: str, session: Optional[CallSession] = None
    ) -> Optional[str]:
        """Return the audio URL for text, or None when synthesis failed."""
        try:
            audio = await self._call_gateway(
                "speech synthesis", self.synthesizer.synthesize(text, base_url=base_url)
            )
        except (SynthesisFailed, GatewayTimeout) as e:
            logger.warning(f"[ORCHESTRATOR] Synthesis failed, falling back to Say: {e}")
            return None
        if session is not None:
            session.audio_artifacts.append(audio.filename)
        return audio.url

    async def _prompt(
        self,
        session: CallSession,
        text: str,
        base_url: str,
        window=FOLLOW_UP_WINDOW,
        finish_on_key: Optional[str] = None,
    ) -> VoiceAction:
        """Speak text and record the caller's answer."""
        audio_url = await self._synthesize(text, base_url, session)
        if audio_url is None:
            return Say(text=clean_text_for_speech(text))
        max_duration, silence_timeout = window
        return PlayAndRecord(
            audio_url=audio_url,
            max_duration_sec=max_duration,
            silence_timeout_sec=silence_timeout,
            finish_on_key=finish_on_key,
        )

    async def _hangup(
        self, text: str, base_url: str, session: Optional[CallSession] = None
    ) -> VoiceAction:
        """Speak text and end the call."""
        audio_url = await self._synthesize(text, base_url, session)
        if audio_url is None:
            return Say(text=clean_text_for_speech(text), hangup=True)
        return PlayAndHangup(audio_url=audio_url)

    async def error_action(self, base_url: str = "") -> VoiceAction:
        """Generic apology followed by a hangup."""
        return await self._hangup(settings.error_message, base_url)

    def _release_audio(self, session: CallSession) -> None:
        if session.audio_artifacts and self.audio_store is not None:
            self.audio_store.release(session.audio_artifacts)
        session.audio_artifacts = []

    # Gateways with fallbacks

    async def _transcribe(self, event: RecordingEvent) -> str:
        if not event.recording_url:
            logger.warning(f"[ORCHESTRATOR] No recording URL - CallId: {event.call_id}")
            return ""
        try:
            return await self._call_gateway(
                "transcription", self.transcriber.transcribe(event.recording_url)
            )
        except (TranscriptionFailed, GatewayTimeout) as e:
            logger.error(f"[ORCHESTRATOR] Transcription failed - CallId: {event.call_id}: {e}")
            return ""

    async def _load_context(self, business_id: str) -> BusinessContext:
        try:
            return await self._call_gateway(
                "business data", self.business.fetch_context(business_id)
            )
        except (BackendError, GatewayTimeout) as e:
            logger.error(f"[ORCHESTRATOR] Business context unavailable, using defaults: {e}")
            return default_context(business_id)

    async def _generate_reply(
        self, session: CallSession, context: BusinessContext
    ) -> ReplyResult:
        try:
            return await self._call_gateway(
                "reply generation",
                self.reply_generator.generate_reply(list(session.messages), context),
            )
        except GatewayTimeout as e:
            logger.error(f"[ORCHESTRATOR] Reply generation timed out: {e}")
            return ReplyResult(text=settings.fallback_reply, fallback=True)

    async def _create_reservation(
        self, session: CallSession, action: ReservationAction
    ) -> None:
        """Book the table. The spoken reply is already committed either way."""
        try:
            record = await self._call_gateway(
                "reservation",
                self.business.create_reservation(session.business_id, action),
            )
        except (BackendError, GatewayTimeout) as e:
            failure = ReservationCreationFailed(
                f"Reservation for {action.name} ({action.party_size} people, "
                f"{action.date} {action.time}) failed after confirmation: {e}"
            )
            logger.error(f"[ORCHESTRATOR] {failure.detail} - CallId: {session.call_id}")
            if self.archive is not None:
                await self.archive.reservation_attempted(
                    session.call_id, action, error=str(e)
                )
            return

        logger.info(
            f"[ORCHESTRATOR] Reservation created - CallId: {session.call_id}, "
            f"Id: {record.reservation_id}, Table: {record.table_id}"
        )
        if self.archive is not None:
            await self.archive.reservation_attempted(session.call_id, action, record=record)

    def is_farewell(self, reply_text: str) -> bool:
        lowered = (reply_text or "").lower()
        return any(phrase.lower() in lowered for phrase in settings.farewell_phrases)

    # Webhook events

    async def handle_call_started(
        self, event: CallEvent, base_url: str = "", business_id: Optional[str] = None
    ) -> VoiceAction:
        """Create (or reuse) the session and greet the caller."""
        business_id = business_id or settings.default_business_id
        async with self.store.lock(event.call_id):
            is_new = event.call_id not in self.store
            session = self.store.create(
                event.call_id,
                business_id=business_id,
                caller=event.from_number,
                callee=event.to_number,
            )
            if is_new:
                self.store.append_turn(
                    event.call_id,
                    Turn(role=TurnRole.ASSISTANT, content=settings.welcome_message),
                )
                logger.info(
                    f"[ORCHESTRATOR] Call started - CallId: {event.call_id}, "
                    f"From: {event.from_number}, To: {event.to_number}"
                )
                if self.archive is not None:
                    await self.archive.call_started(session)
            else:
                logger.info(f"[ORCHESTRATOR] Duplicate call start - CallId: {event.call_id}")
                self.store.touch(event.call_id)

            return await self._prompt(
                session,
                settings.welcome_message,
                base_url,
                window=GREETING_WINDOW,
                finish_on_key=GREETING_FINISH_KEY,
            )

    async def handle_recording(
        self, event: RecordingEvent, base_url: str = ""
    ) -> VoiceAction:
        """Process one caller utterance. Unknown calls raise SessionNotFound."""
        call_id = event.call_id
        async with self.store.lock(call_id):
            session = self.store.get(call_id)
            self.store.touch(call_id)
            self._release_audio(session)

            transcript = (await self._transcribe(event)).strip()
            if not transcript:
                logger.info(f"[ORCHESTRATOR] Empty transcript, asking to repeat - CallId: {call_id}")
                return await self._prompt(
                    session, settings.retry_message, base_url, window=RETRY_WINDOW
                )

            logger.info(f"[ORCHESTRATOR] Caller said: '{transcript}' - CallId: {call_id}")
            self.store.append_turn(call_id, Turn(role=TurnRole.USER, content=transcript))

            context = await self._load_context(session.business_id)
            reply = await self._generate_reply(session, context)

            action = self.extractor.extract(reply.text, session.user_utterances())
            spoken = ACTION_MARKER_PATTERN.sub("", reply.text).strip() or reply.text
            self.store.append_turn(
                call_id, Turn(role=TurnRole.ASSISTANT, content=spoken, action=action)
            )

            if action is not None:
                await self._create_reservation(session, action)

            if self.is_farewell(reply.text):
                response = await self._hangup(spoken, base_url, session)
                self.store.terminate(call_id)
                logger.info(f"[ORCHESTRATOR] Farewell detected, ending call - CallId: {call_id}")
                if self.archive is not None:
                    await self.archive.call_ended(session, "completed")
                return response

            return await self._prompt(session, spoken, base_url, window=FOLLOW_UP_WINDOW)

    async def handle_call_status(self, call_id: str, status: str) -> bool:
        """Handle a provider status callback. Returns True if the session ended."""
        status = (status or "").strip().lower()
        if status not in FINAL_CALL_STATUSES:
            logger.debug(f"[ORCHESTRATOR] Status update {status} - CallId: {call_id}")
            return False

        async with self.store.lock(call_id):
            session = self.store.terminate(call_id)
            if session is None:
                return False
            self._release_audio(session)
            logger.info(f"[ORCHESTRATOR] Call ended by provider ({status}) - CallId: {call_id}")
            if self.archive is not None:
                await self.archive.call_ended(session, status)
            return True

    async def expire_idle_sessions(self) -> List[str]:
        """Remove abandoned sessions. Returns the expired call ids."""
        expired = self.store.expire_idle(
            timedelta(seconds=settings.session_idle_timeout_seconds)
        )
        for session in expired:
            self._release_audio(session)
            logger.warning(f"[ORCHESTRATOR] Session expired after inactivity - CallId: {session.call_id}")
            if self.archive is not None:
                await self.archive.call_ended(session, "abandoned")
        return [session.call_id for session in expired]
