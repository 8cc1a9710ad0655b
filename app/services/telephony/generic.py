"""Generic provider adapter using provider-agnostic field names."""
from typing import Any, Mapping

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


class GenericAdapter(ProviderAdapter):
    """Fallback adapter: flat JSON in, flat JSON out.

    Accepts the canonical names (callId, from, to, ...) and the Twilio-style
    aliases (CallSid, From, To, ...) so that simple VoIP bridges work unchanged.
    """

    name = "generic"

    def parse_call_event(self, body: Mapping[str, Any]) -> CallEvent:
        return CallEvent(
            call_id=first_value(body, "callId", "CallSid") or synthesize_call_id(),
            from_number=first_value(body, "from", "From"),
            to_number=first_value(body, "to", "To"),
            direction=first_value(body, "direction", "Direction") or "inbound",
            call_status=first_value(body, "status", "CallStatus") or "in-progress",
        )

    def parse_recording_event(self, body: Mapping[str, Any]) -> RecordingEvent:
        return RecordingEvent(
            call_id=first_value(body, "callId", "CallSid") or "",
            recording_url=first_value(body, "recordingUrl", "RecordingUrl"),
            duration=to_float(first_value(body, "duration", "RecordingDuration")),
            digits=first_value(body, "digits", "Digits"),
        )

    def encode_call_event(self, event: CallEvent) -> dict:
        return {
            "callId": event.call_id,
            "from": event.from_number,
            "to": event.to_number,
            "direction": event.direction,
            "status": event.call_status,
        }

    def encode_recording_event(self, event: RecordingEvent) -> dict:
        return {
            "callId": event.call_id,
            "recordingUrl": event.recording_url,
            "duration": event.duration,
            "digits": event.digits,
        }

    def render_play_and_record(
        self, action: PlayAndRecord, context: RenderContext
    ) -> ProviderPayload:
        record_options = {
            "max_duration": action.max_duration_sec,
            "silence_timeout": action.silence_timeout_sec,
        }
        if action.finish_on_key:
            record_options["finish_on_key"] = action.finish_on_key
        return ProviderPayload(
            body={
                "action": "play_and_record",
                "audio_url": action.audio_url,
                "record_options": record_options,
                "next_webhook": context.next_webhook_url,
            }
        )

    def render_play_and_hangup(
        self, action: PlayAndHangup, context: RenderContext
    ) -> ProviderPayload:
        return ProviderPayload(
            body={"action": "play_and_hangup", "audio_url": action.audio_url}
        )

    def render_say(self, action: Say, context: RenderContext) -> ProviderPayload:
        body = {
            "action": "say",
            "text": action.text,
            "voice": action.voice or context.default_voice,
        }
        if action.hangup:
            body["hangup"] = True
        else:
            body["record_options"] = {
                "max_duration": SAY_RECORD_MAX_DURATION,
                "silence_timeout": SAY_RECORD_SILENCE_TIMEOUT,
            }
            body["next_webhook"] = context.next_webhook_url
        return ProviderPayload(body=body)
