"""Provider adapter interface."""
import time
from abc import ABC, abstractmethod
from typing import Any, Mapping, Optional

from app.services.telephony.models import (
    CallEvent,
    PlayAndHangup,
    PlayAndRecord,
    ProviderPayload,
    RecordingEvent,
    RenderContext,
    Say,
    VoiceAction,
)

# Record window used after a Say that keeps the call open
SAY_RECORD_MAX_DURATION = 15
SAY_RECORD_SILENCE_TIMEOUT = 4


def synthesize_call_id() -> str:
    """Build a call identifier from the current timestamp in milliseconds."""
    return str(int(time.time() * 1000))


def first_value(body: Mapping[str, Any], *keys: str) -> Optional[str]:
    """Return the first non-empty value among keys, as a stripped string."""
    for key in keys:
        value = body.get(key)
        if value is None:
            continue
        text = str(value).strip()
        if text:
            return text
    return None


def to_float(value: Optional[str]) -> Optional[float]:
    """Parse a numeric webhook field, returning None when it is not a number."""
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class ProviderAdapter(ABC):
    """Abstract base class for telephony provider adapters.

    An adapter maps inbound webhook bodies to canonical events and renders
    canonical voice actions into the provider's expected response payload.
    Parsing never raises: missing fields are defaulted.
    """

    name: str = "abstract"

    @abstractmethod
    def parse_call_event(self, body: Mapping[str, Any]) -> CallEvent:
        """Parse a call-start webhook body."""
        pass

    @abstractmethod
    def parse_recording_event(self, body: Mapping[str, Any]) -> RecordingEvent:
        """Parse a recording-ready webhook body."""
        pass

    @abstractmethod
    def encode_call_event(self, event: CallEvent) -> dict:
        """Encode a canonical call event the way this provider would send it."""
        pass

    @abstractmethod
    def encode_recording_event(self, event: RecordingEvent) -> dict:
        """Encode a canonical recording event the way this provider would send it."""
        pass

    @abstractmethod
    def render_play_and_record(
        self, action: PlayAndRecord, context: RenderContext
    ) -> ProviderPayload:
        pass

    @abstractmethod
    def render_play_and_hangup(
        self, action: PlayAndHangup, context: RenderContext
    ) -> ProviderPayload:
        pass

    @abstractmethod
    def render_say(self, action: Say, context: RenderContext) -> ProviderPayload:
        pass

    def render(self, action: VoiceAction, context: RenderContext) -> ProviderPayload:
        """Render a canonical voice action into the provider payload."""
        if isinstance(action, PlayAndRecord):
            return self.render_play_and_record(action, context)
        if isinstance(action, PlayAndHangup):
            return self.render_play_and_hangup(action, context)
        if isinstance(action, Say):
            return self.render_say(action, context)
        raise TypeError(f"Unsupported voice action: {type(action).__name__}")
