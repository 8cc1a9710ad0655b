"""Unit tests for the turn orchestrator state machine."""
import asyncio
from datetime import datetime, timedelta

import httpx
import pytest

from app.core.config import settings
from app.core.errors import BackendError, NoAvailability, SessionNotFound, TranscriptionFailed
from app.services.agent.agent import ReplyResult
from app.services.business.http_backend import HttpBusinessBackend
from app.services.call_session.models import TurnRole
from app.services.call_session.orchestrator import TurnOrchestrator
from app.services.reservations.extractor import RegexReservationExtractor
from app.services.telephony.models import (
    CallEvent,
    PlayAndHangup,
    PlayAndRecord,
    RecordingEvent,
    Say,
)

BASE_URL = "https://agent.example.com"


def call_event(call_id="call-1"):
    return CallEvent(call_id=call_id, from_number="+34600000001", to_number="+34910000000")


def recording(call_id="call-1"):
    return RecordingEvent(call_id=call_id, recording_url="https://rec.example.com/1.wav")


def assert_alternating(messages):
    roles = [turn.role for turn in messages]
    assert roles[0] == TurnRole.ASSISTANT
    for previous, current in zip(roles, roles[1:]):
        assert previous != current


class TestCallStarted:
    """Test the call-start transition."""

    async def test_greets_and_records(self, orchestrator, session_store, synthesizer, archive):
        action = await orchestrator.handle_call_started(call_event(), base_url=BASE_URL)

        assert isinstance(action, PlayAndRecord)
        assert action.audio_url == f"{BASE_URL}/audio/speech-test-1.mp3"
        assert action.max_duration_sec == 10
        assert action.silence_timeout_sec == 3
        assert action.finish_on_key == "#"
        assert synthesizer.texts == [settings.welcome_message]

        session = session_store.get("call-1")
        assert len(session.messages) == 1
        assert session.messages[0].role == TurnRole.ASSISTANT
        assert session.messages[0].content == settings.welcome_message
        assert session.caller == "+34600000001"
        assert session.business_id == settings.default_business_id
        assert archive.events == [("started", "call-1")]

    async def test_duplicate_call_start_keeps_session(self, orchestrator, session_store, transcriber, reply_generator):
        await orchestrator.handle_call_started(call_event())
        transcriber.transcripts.append("What time do you open?")
        reply_generator.replies.append("We open at noon.")
        await orchestrator.handle_recording(recording())
        before = session_store.get("call-1")

        action = await orchestrator.handle_call_started(call_event())

        assert isinstance(action, PlayAndRecord)
        assert len(session_store) == 1
        assert session_store.get("call-1") is before
        assert len(before.messages) == 3

    async def test_business_id_is_kept(self, orchestrator, session_store):
        await orchestrator.handle_call_started(call_event(), business_id="bistro-42")

        assert session_store.get("call-1").business_id == "bistro-42"

    async def test_synthesis_failure_falls_back_to_say(self, orchestrator, synthesizer):
        synthesizer.fail = True

        action = await orchestrator.handle_call_started(call_event())

        assert isinstance(action, Say)
        assert action.text == settings.welcome_message
        assert action.hangup is False


class TestRecording:
    """Test the processing of caller utterances."""

    async def test_unknown_call_raises_session_not_found(self, orchestrator):
        with pytest.raises(SessionNotFound) as exc_info:
            await orchestrator.handle_recording(recording("missing"))
        assert exc_info.value.call_id == "missing"

    async def test_regular_turn(self, orchestrator, session_store, transcriber, reply_generator, synthesizer):
        await orchestrator.handle_call_started(call_event())
        transcriber.transcripts.append("  Do you have paella?  ")
        reply_generator.replies.append("Yes, our seafood paella is very popular.")

        action = await orchestrator.handle_recording(recording(), base_url=BASE_URL)

        assert isinstance(action, PlayAndRecord)
        assert action.max_duration_sec == 15
        assert action.silence_timeout_sec == 4
        assert action.finish_on_key is None
        assert synthesizer.texts[-1] == "Yes, our seafood paella is very popular."

        messages = session_store.get("call-1").messages
        assert [turn.role for turn in messages] == [
            TurnRole.ASSISTANT,
            TurnRole.USER,
            TurnRole.ASSISTANT,
        ]
        assert messages[1].content == "Do you have paella?"
        assert messages[2].action is None

    async def test_reply_receives_history_and_context(self, orchestrator, transcriber, reply_generator):
        await orchestrator.handle_call_started(call_event())
        transcriber.transcripts.append("Hello")

        await orchestrator.handle_recording(recording())

        turns, context = reply_generator.calls[0]
        assert [turn.content for turn in turns] == [settings.welcome_message, "Hello"]
        assert context.name == "Test Bistro"
        assert context.degraded is False

    @pytest.mark.parametrize("transcript", ["", "   ", "\n"])
    async def test_empty_transcript_retries_without_new_turns(
        self, orchestrator, session_store, transcriber, reply_generator, synthesizer, transcript
    ):
        await orchestrator.handle_call_started(call_event())
        transcriber.transcripts.append(transcript)

        action = await orchestrator.handle_recording(recording())

        assert isinstance(action, PlayAndRecord)
        assert action.max_duration_sec == 10
        assert action.silence_timeout_sec == 3
        assert synthesizer.texts[-1] == settings.retry_message
        assert len(session_store.get("call-1").messages) == 1
        assert reply_generator.calls == []

    async def test_transcription_failure_counts_as_empty(self, orchestrator, session_store, transcriber):
        await orchestrator.handle_call_started(call_event())
        transcriber.transcripts.append(TranscriptionFailed("boom"))

        action = await orchestrator.handle_recording(recording())

        assert isinstance(action, PlayAndRecord)
        assert len(session_store.get("call-1").messages) == 1

    async def test_missing_recording_url_counts_as_empty(self, orchestrator, session_store, transcriber):
        await orchestrator.handle_call_started(call_event())

        action = await orchestrator.handle_recording(RecordingEvent(call_id="call-1"))

        assert isinstance(action, PlayAndRecord)
        assert transcriber.urls == []
        assert len(session_store.get("call-1").messages) == 1

    async def test_business_failure_uses_default_context(self, orchestrator, transcriber, reply_generator, business):
        business.context_error = BackendError("backend down")
        await orchestrator.handle_call_started(call_event())
        transcriber.transcripts.append("Are you open today?")

        action = await orchestrator.handle_recording(recording())

        assert isinstance(action, PlayAndRecord)
        _, context = reply_generator.calls[0]
        assert context.degraded is True

    async def test_messages_alternate_over_many_turns(self, orchestrator, session_store, transcriber, reply_generator):
        await orchestrator.handle_call_started(call_event())
        transcriber.transcripts.extend(["Hi", "", "Table for two", "   ", "At nine"])
        reply_generator.replies.extend(["Hello!", "For when?", "Noted."])

        for _ in range(5):
            await orchestrator.handle_recording(recording())

        messages = session_store.get("call-1").messages
        assert len(messages) == 7
        assert_alternating(messages)

    async def test_previous_audio_is_released(self, orchestrator, session_store, transcriber):
        released = []

        class RecordingAudioStore:
            def release(self, filenames):
                released.extend(filenames)
                return len(filenames)

        orchestrator.audio_store = RecordingAudioStore()
        await orchestrator.handle_call_started(call_event())
        transcriber.transcripts.append("Hello")

        await orchestrator.handle_recording(recording())

        assert released == ["speech-test-1.mp3"]
        assert session_store.get("call-1").audio_artifacts == ["speech-test-2.mp3"]


class TestReservations:
    """Test reservation extraction and creation during a call."""

    async def test_marker_creates_reservation(self, orchestrator, session_store, transcriber, reply_generator, business, archive):
        await orchestrator.handle_call_started(call_event())
        transcriber.transcripts.append("my name is Maria, table for 4, tomorrow at 9pm")
        reply_generator.replies.append("Perfect, reservation confirmed. [RESERVE]")

        await orchestrator.handle_recording(recording())

        assert len(business.reservations) == 1
        reservation = business.reservations[0]
        assert reservation.name == "Maria"
        assert reservation.party_size == 4
        assert reservation.date == "tomorrow"
        assert reservation.time == "21:00"

        assistant_turn = session_store.get("call-1").messages[-1]
        assert assistant_turn.action == reservation
        assert "[RESERVE]" not in assistant_turn.content
        assert ("reservation", "call-1", "created") in archive.events

    async def test_no_marker_no_reservation(self, orchestrator, transcriber, reply_generator, business):
        await orchestrator.handle_call_started(call_event())
        transcriber.transcripts.append("my name is Maria, table for 4, tomorrow at 9pm")
        reply_generator.replies.append("Shall I book it for you?")

        await orchestrator.handle_recording(recording())

        assert business.reservations == []

    @pytest.mark.parametrize("error", [NoAvailability(), BackendError("500")])
    async def test_reservation_failure_keeps_spoken_reply(
        self, orchestrator, session_store, transcriber, reply_generator, business, synthesizer, archive, error
    ):
        business.reservation_error = error
        await orchestrator.handle_call_started(call_event())
        transcriber.transcripts.append("table for 2 at 8pm, my name is Leo")
        reply_generator.replies.append("Your table is booked. [RESERVE]")

        action = await orchestrator.handle_recording(recording())

        assert isinstance(action, PlayAndRecord)
        assert synthesizer.texts[-1] == "Your table is booked."
        assert session_store.get("call-1").messages[-1].content == "Your table is booked."
        assert ("reservation", "call-1", "failed") in archive.events

    async def test_html_reservation_response_keeps_spoken_reply(
        self, session_store, transcriber, reply_generator, synthesizer, archive
    ):
        def handler(request):
            return httpx.Response(200, text="<html>OK</html>", headers={"content-type": "text/html"})

        backend_url = "https://backend.example.com"
        backend = HttpBusinessBackend(
            backend_url,
            client=httpx.AsyncClient(base_url=backend_url, transport=httpx.MockTransport(handler)),
        )
        orchestrator = TurnOrchestrator(
            store=session_store,
            transcriber=transcriber,
            reply_generator=reply_generator,
            synthesizer=synthesizer,
            business=backend,
            extractor=RegexReservationExtractor(),
            archive=archive,
            gateway_timeout=1.0,
        )
        await orchestrator.handle_call_started(call_event())
        transcriber.transcripts.append("my name is Maria, table for 4, tomorrow at 9pm")
        reply_generator.replies.append("Perfect, reservation confirmed. [RESERVE]")

        action = await orchestrator.handle_recording(recording())

        assert isinstance(action, PlayAndRecord)
        assert synthesizer.texts[-1] == "Perfect, reservation confirmed."
        assert session_store.get("call-1").messages[-1].action.name == "Maria"
        assert ("reservation", "call-1", "failed") in archive.events
        await backend.aclose()


class TestTermination:
    """Test how calls end."""

    async def test_farewell_hangs_up_and_removes_session(self, orchestrator, session_store, transcriber, reply_generator, archive):
        await orchestrator.handle_call_started(call_event())
        transcriber.transcripts.append("That's all, thanks")
        reply_generator.replies.append("Thank you for calling, goodbye!")

        action = await orchestrator.handle_recording(recording(), base_url=BASE_URL)

        assert isinstance(action, PlayAndHangup)
        assert "call-1" not in session_store
        assert ("ended", "call-1", "completed") in archive.events

        with pytest.raises(SessionNotFound):
            await orchestrator.handle_recording(recording())

    async def test_farewell_is_checked_on_reply_only(self, orchestrator, session_store, transcriber, reply_generator):
        await orchestrator.handle_call_started(call_event())
        transcriber.transcripts.append("Goodbye")
        reply_generator.replies.append("Before you go, can I help with anything else?")

        action = await orchestrator.handle_recording(recording())

        assert isinstance(action, PlayAndRecord)
        assert "call-1" in session_store

    async def test_farewell_with_failed_synthesis_says_and_hangs_up(self, orchestrator, session_store, transcriber, reply_generator, synthesizer):
        await orchestrator.handle_call_started(call_event())
        synthesizer.fail = True
        transcriber.transcripts.append("Nothing else")
        reply_generator.replies.append("Goodbye and have a nice day!")

        action = await orchestrator.handle_recording(recording())

        assert isinstance(action, Say)
        assert action.hangup is True
        assert "call-1" not in session_store

    async def test_final_status_terminates_session(self, orchestrator, session_store, archive):
        await orchestrator.handle_call_started(call_event())

        assert await orchestrator.handle_call_status("call-1", "ringing") is False
        assert "call-1" in session_store
        assert await orchestrator.handle_call_status("call-1", "completed") is True
        assert "call-1" not in session_store
        assert ("ended", "call-1", "completed") in archive.events
        assert await orchestrator.handle_call_status("call-1", "completed") is False

    async def test_idle_sessions_are_expired_as_abandoned(self, orchestrator, session_store, archive):
        await orchestrator.handle_call_started(call_event("idle"))
        await orchestrator.handle_call_started(call_event("fresh"))
        session_store.get("idle").last_activity = datetime.utcnow() - timedelta(
            seconds=settings.session_idle_timeout_seconds + 5
        )

        expired = await orchestrator.expire_idle_sessions()

        assert expired == ["idle"]
        assert "idle" not in session_store
        assert "fresh" in session_store
        assert ("ended", "idle", "abandoned") in archive.events

    async def test_error_action_hangs_up(self, orchestrator, synthesizer):
        action = await orchestrator.error_action(BASE_URL)

        assert isinstance(action, PlayAndHangup)
        assert synthesizer.texts == [settings.error_message]


class TestTimeoutsAndConcurrency:
    """Test gateway time bounds and per-call serialization."""

    async def test_slow_transcription_times_out_to_retry(self, session_store, reply_generator, synthesizer, business):
        class SlowTranscriber:
            async def transcribe(self, recording_url):
                await asyncio.sleep(5)
                return "too late"

        orchestrator = TurnOrchestrator(
            store=session_store,
            transcriber=SlowTranscriber(),
            reply_generator=reply_generator,
            synthesizer=synthesizer,
            business=business,
            extractor=RegexReservationExtractor(),
            gateway_timeout=0.05,
        )
        await orchestrator.handle_call_started(call_event())

        action = await orchestrator.handle_recording(recording())

        assert isinstance(action, PlayAndRecord)
        assert synthesizer.texts[-1] == settings.retry_message
        assert len(session_store.get("call-1").messages) == 1

    async def test_slow_reply_times_out_to_fallback(self, session_store, transcriber, synthesizer, business):
        class SlowReplies:
            async def generate_reply(self, turns, context):
                await asyncio.sleep(5)

        orchestrator = TurnOrchestrator(
            store=session_store,
            transcriber=transcriber,
            reply_generator=SlowReplies(),
            synthesizer=synthesizer,
            business=business,
            extractor=RegexReservationExtractor(),
            gateway_timeout=0.05,
        )
        await orchestrator.handle_call_started(call_event())
        transcriber.transcripts.append("Hello?")

        await orchestrator.handle_recording(recording())

        assert session_store.get("call-1").messages[-1].content == settings.fallback_reply

    async def test_slow_business_data_times_out_to_default_context(
        self, session_store, transcriber, reply_generator, synthesizer, business
    ):
        async def slow_fetch_context(business_id):
            await asyncio.sleep(5)

        business.fetch_context = slow_fetch_context
        orchestrator = TurnOrchestrator(
            store=session_store,
            transcriber=transcriber,
            reply_generator=reply_generator,
            synthesizer=synthesizer,
            business=business,
            extractor=RegexReservationExtractor(),
            gateway_timeout=0.05,
        )
        await orchestrator.handle_call_started(call_event())
        transcriber.transcripts.append("Are you open tonight?")

        action = await orchestrator.handle_recording(recording())

        assert isinstance(action, PlayAndRecord)
        _, context = reply_generator.calls[0]
        assert context.degraded is True
        assert context.business_id == settings.default_business_id

    async def test_slow_reservation_times_out_and_keeps_reply(
        self, session_store, transcriber, reply_generator, synthesizer, business, archive
    ):
        async def slow_create_reservation(business_id, action):
            await asyncio.sleep(5)

        business.create_reservation = slow_create_reservation
        orchestrator = TurnOrchestrator(
            store=session_store,
            transcriber=transcriber,
            reply_generator=reply_generator,
            synthesizer=synthesizer,
            business=business,
            extractor=RegexReservationExtractor(),
            archive=archive,
            gateway_timeout=0.05,
        )
        await orchestrator.handle_call_started(call_event())
        transcriber.transcripts.append("table for 2 at 8pm, my name is Leo")
        reply_generator.replies.append("Your table is booked. [RESERVE]")

        action = await orchestrator.handle_recording(recording())

        assert isinstance(action, PlayAndRecord)
        assert synthesizer.texts[-1] == "Your table is booked."
        assert ("reservation", "call-1", "failed") in archive.events
        assert "call-1" in session_store

    async def test_slow_synthesis_times_out_to_say(
        self, session_store, transcriber, reply_generator, business
    ):
        class SlowSynthesizer:
            async def synthesize(self, text, voice=None, base_url=""):
                await asyncio.sleep(5)

        orchestrator = TurnOrchestrator(
            store=session_store,
            transcriber=transcriber,
            reply_generator=reply_generator,
            synthesizer=SlowSynthesizer(),
            business=business,
            extractor=RegexReservationExtractor(),
            gateway_timeout=0.05,
        )
        greeting = await orchestrator.handle_call_started(call_event())
        transcriber.transcripts.append("Do you have vegetarian dishes?")
        reply_generator.replies.append("Yes, we have **three** vegetarian mains.")

        action = await orchestrator.handle_recording(recording())

        assert isinstance(greeting, Say)
        assert isinstance(action, Say)
        assert action.hangup is False
        assert action.text == "Yes, we have three vegetarian mains."
        assert session_store.get("call-1").audio_artifacts == []

    async def test_overlapping_deliveries_do_not_interleave(self, session_store, synthesizer, business):
        class GatedTranscriber:
            def __init__(self):
                self.gate = asyncio.Event()
                self.count = 0

            async def transcribe(self, recording_url):
                self.count += 1
                if self.count == 1:
                    await self.gate.wait()
                return f"utterance {self.count}"

        class EchoReplies:
            async def generate_reply(self, turns, context):
                return ReplyResult(text=f"reply to {turns[-1].content}")

        transcriber = GatedTranscriber()
        orchestrator = TurnOrchestrator(
            store=session_store,
            transcriber=transcriber,
            reply_generator=EchoReplies(),
            synthesizer=synthesizer,
            business=business,
            extractor=RegexReservationExtractor(),
        )
        await orchestrator.handle_call_started(call_event())

        first = asyncio.create_task(orchestrator.handle_recording(recording()))
        second = asyncio.create_task(orchestrator.handle_recording(recording()))
        await asyncio.sleep(0.01)
        assert transcriber.count == 1
        transcriber.gate.set()
        await asyncio.gather(first, second)

        contents = [turn.content for turn in session_store.get("call-1").messages]
        assert contents[1:] == [
            "utterance 1",
            "reply to utterance 1",
            "utterance 2",
            "reply to utterance 2",
        ]
