"""Twilio adapter: form webhooks in, TwiML out."""
from typing import Any, Mapping, Optional
from xml.sax.saxutils import escape

from app.services.telephony.base import (
    SAY_RECORD_MAX_DURATION,
    SAY_RECORD_SILENCE_TIMEOUT,
    ProviderAdapter,
    first_value,
    synthesize_call_id,
    to_float,
)
from app.services.telephony.models import (
    CallEvent,
    PlayAndHangup,
    PlayAndRecord,
    ProviderPayload,
    RecordingEvent,
    RenderContext,
    Say,
)

XML_HEADER = '<?xml version="1.0" encoding="UTF-8"?>'


def _attr(value: Any) -> str:
    return escape(str(value), {'"': "&quot;"})


def _twiml(*verbs: str) -> ProviderPayload:
    return ProviderPayload(
        body=XML_HEADER + "<Response>" + "".join(verbs) + "</Response>",
        media_type="application/xml",
    )


def _record(
    action_url: str, max_length: int, timeout: int, finish_on_key: Optional[str]
) -> str:
    finish = f' finishOnKey="{_attr(finish_on_key)}"' if finish_on_key else ""
    return (
        f'<Record action="{_attr(action_url)}" method="POST" '
        f'maxLength="{max_length}" timeout="{timeout}"{finish} playBeep="false"/>'
    )


class TwilioAdapter(ProviderAdapter):
    """Adapter for Twilio Programmable Voice webhooks."""

    name = "twilio"

    def parse_call_event(self, body: Mapping[str, Any]) -> CallEvent:
        return CallEvent(
            call_id=first_value(body, "CallSid") or synthesize_call_id(),
            from_number=first_value(body, "From"),
            to_number=first_value(body, "To"),
            direction=first_value(body, "Direction") or "inbound",
            call_status=first_value(body, "CallStatus") or "in-progress",
        )

    def parse_recording_event(self, body: Mapping[str, Any]) -> RecordingEvent:
        return RecordingEvent(
            call_id=first_value(body, "CallSid") or "",
            recording_url=first_value(body, "RecordingUrl"),
            duration=to_float(first_value(body, "RecordingDuration")),
            digits=first_value(body, "Digits"),
        )

    def encode_call_event(self, event: CallEvent) -> dict:
        return {
            "CallSid": event.call_id,
            "From": event.from_number,
            "To": event.to_number,
            "Direction": event.direction,
            "CallStatus": event.call_status,
        }

    def encode_recording_event(self, event: RecordingEvent) -> dict:
        return {
            "CallSid": event.call_id,
            "RecordingUrl": event.recording_url,
            "RecordingDuration": event.duration,
            "Digits": event.digits,
        }

    def render_play_and_record(
        self, action: PlayAndRecord, context: RenderContext
    ) -> ProviderPayload:
        return _twiml(
            f"<Play>{escape(action.audio_url)}</Play>",
            _record(
                context.next_webhook_url,
                action.max_duration_sec,
                action.silence_timeout_sec,
                action.finish_on_key,
            ),
        )

    def render_play_and_hangup(
        self, action: PlayAndHangup, context: RenderContext
    ) -> ProviderPayload:
        return _twiml(f"<Play>{escape(action.audio_url)}</Play>", "<Hangup/>")

    def render_say(self, action: Say, context: RenderContext) -> ProviderPayload:
        voice = action.voice or context.default_voice or "alice"
        say = (
            f'<Say voice="{_attr(voice)}" language="{_attr(context.language)}">'
            f"{escape(action.text)}</Say>"
        )
        if action.hangup:
            return _twiml(say, "<Hangup/>")
        return _twiml(
            say,
            _record(
                context.next_webhook_url,
                SAY_RECORD_MAX_DURATION,
                SAY_RECORD_SILENCE_TIMEOUT,
                None,
            ),
        )
