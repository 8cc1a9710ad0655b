"""Voximplant adapter: JSON events in, JSON command lists out."""
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


class VoximplantAdapter(ProviderAdapter):
    """Adapter for a Voximplant scenario that forwards events over HTTP.

    Durations in the command list are expressed in milliseconds.
    """

    name = "voximplant"

    def parse_call_event(self, body: Mapping[str, Any]) -> CallEvent:
        return CallEvent(
            call_id=first_value(body, "call_id") or synthesize_call_id(),
            from_number=first_value(body, "from_number"),
            to_number=first_value(body, "to_number"),
            direction="inbound",
            call_status=first_value(body, "event") or "in-progress",
        )

    def parse_recording_event(self, body: Mapping[str, Any]) -> RecordingEvent:
        return RecordingEvent(
            call_id=first_value(body, "call_id") or "",
            recording_url=first_value(body, "record_url"),
            duration=to_float(first_value(body, "duration")),
            digits=first_value(body, "dtmf"),
        )

    def encode_call_event(self, event: CallEvent) -> dict:
        return {
            "call_id": event.call_id,
            "from_number": event.from_number,
            "to_number": event.to_number,
            "event": event.call_status,
        }

    def encode_recording_event(self, event: RecordingEvent) -> dict:
        return {
            "call_id": event.call_id,
            "record_url": event.recording_url,
            "duration": event.duration,
            "dtmf": event.digits,
        }

    @staticmethod
    def _record_command(
        max_duration: int, silence_timeout: int, webhook: str
    ) -> dict:
        return {
            "command": "record",
            "maxDuration": max_duration * 1000,
            "silenceTimeout": silence_timeout * 1000,
            "webhook": webhook,
        }

    def render_play_and_record(
        self, action: PlayAndRecord, context: RenderContext
    ) -> ProviderPayload:
        record = self._record_command(
            action.max_duration_sec,
            action.silence_timeout_sec,
            context.next_webhook_url,
        )
        if action.finish_on_key:
            record["finishOnKey"] = action.finish_on_key
        return ProviderPayload(
            body={
                "commands": [
                    {"command": "playSound", "url": action.audio_url},
                    record,
                ]
            }
        )

    def render_play_and_hangup(
        self, action: PlayAndHangup, context: RenderContext
    ) -> ProviderPayload:
        return ProviderPayload(
            body={
                "commands": [
                    {"command": "playSound", "url": action.audio_url},
                    {"command": "hangup"},
                ]
            }
        )

    def render_say(self, action: Say, context: RenderContext) -> ProviderPayload:
        commands = [
            {
                "command": "say",
                "text": action.text,
                "language": context.language,
                "voice": action.voice or context.default_voice,
            }
        ]
        if action.hangup:
            commands.append({"command": "hangup"})
        else:
            commands.append(
                self._record_command(
                    SAY_RECORD_MAX_DURATION,
                    SAY_RECORD_SILENCE_TIMEOUT,
                    context.next_webhook_url,
                )
            )
        return ProviderPayload(body={"commands": commands})
