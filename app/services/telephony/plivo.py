"""Plivo adapter: form webhooks in, Plivo XML wrapped in a JSON envelope out."""
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


def _attr(value: Any) -> str:
    return escape(str(value), {'"': "&quot;"})


def _record_element(
    action_url: str,
    max_duration: int,
    silence_timeout: int,
    finish_on_key: Optional[str],
) -> str:
    finish = f' finishOnKey="{_attr(finish_on_key)}"' if finish_on_key else ""
    return (
        f'<Record action="{_attr(action_url)}" method="POST" '
        f'maxLength="{max_duration}" timeout="{silence_timeout}"{finish} '
        'playBeep="false"/>'
    )


class PlivoAdapter(ProviderAdapter):
    """Adapter for Plivo voice webhooks."""

    name = "plivo"

    def parse_call_event(self, body: Mapping[str, Any]) -> CallEvent:
        return CallEvent(
            call_id=first_value(body, "CallUUID") or synthesize_call_id(),
            from_number=first_value(body, "From"),
            to_number=first_value(body, "To"),
            direction=first_value(body, "Direction") or "inbound",
            call_status=first_value(body, "CallStatus") or "in-progress",
        )

    def parse_recording_event(self, body: Mapping[str, Any]) -> RecordingEvent:
        return RecordingEvent(
            call_id=first_value(body, "CallUUID") or "",
            recording_url=first_value(body, "RecordUrl"),
            duration=to_float(first_value(body, "RecordingDuration", "Duration")),
            digits=first_value(body, "Digits"),
        )

    def encode_call_event(self, event: CallEvent) -> dict:
        return {
            "CallUUID": event.call_id,
            "From": event.from_number,
            "To": event.to_number,
            "Direction": event.direction,
            "CallStatus": event.call_status,
        }

    def encode_recording_event(self, event: RecordingEvent) -> dict:
        return {
            "CallUUID": event.call_id,
            "RecordUrl": event.recording_url,
            "RecordingDuration": event.duration,
            "Digits": event.digits,
        }

    @staticmethod
    def _envelope(xml: str) -> ProviderPayload:
        return ProviderPayload(body={"message": "ok", "content": xml})

    def render_play_and_record(
        self, action: PlayAndRecord, context: RenderContext
    ) -> ProviderPayload:
        return self._envelope(
            "<Response>"
            f"<Play>{escape(action.audio_url)}</Play>"
            + _record_element(
                context.next_webhook_url,
                action.max_duration_sec,
                action.silence_timeout_sec,
                action.finish_on_key,
            )
            + "</Response>"
        )

    def render_play_and_hangup(
        self, action: PlayAndHangup, context: RenderContext
    ) -> ProviderPayload:
        return self._envelope(
            "<Response>"
            f"<Play>{escape(action.audio_url)}</Play>"
            "<Hangup/>"
            "</Response>"
        )

    def render_say(self, action: Say, context: RenderContext) -> ProviderPayload:
        voice = action.voice or context.default_voice or "WOMAN"
        speak = (
            f'<Speak voice="{_attr(voice)}" language="{_attr(context.language)}">'
            f"{escape(action.text)}</Speak>"
        )
        if action.hangup:
            tail = "<Hangup/>"
        else:
            tail = _record_element(
                context.next_webhook_url,
                SAY_RECORD_MAX_DURATION,
                SAY_RECORD_SILENCE_TIMEOUT,
                None,
            )
        return self._envelope(f"<Response>{speak}{tail}</Response>")
