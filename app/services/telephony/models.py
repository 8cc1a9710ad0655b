"""Canonical telephony models shared by every provider adapter."""
from typing import Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict


class CallEvent(BaseModel):
    """Provider-independent call-start event."""

    model_config = ConfigDict(frozen=True)

    call_id: str
    from_number: Optional[str] = None
    to_number: Optional[str] = None
    direction: str = "inbound"
    call_status: str = "in-progress"


class RecordingEvent(BaseModel):
    """Provider-independent recording-ready event."""

    model_config = ConfigDict(frozen=True)

    call_id: str
    recording_url: Optional[str] = None
    duration: Optional[float] = None
    digits: Optional[str] = None


class PlayAndRecord(BaseModel):
    """Play audio, then record the caller's answer."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["play_and_record"] = "play_and_record"
    audio_url: str
    max_duration_sec: int = 10
    silence_timeout_sec: int = 3
    finish_on_key: Optional[str] = None


class PlayAndHangup(BaseModel):
    """Play audio, then end the call."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["play_and_hangup"] = "play_and_hangup"
    audio_url: str


class Say(BaseModel):
    """Let the telephony provider speak text with its own voice.

    Unless ``hangup`` is set, the caller is recorded afterwards so the
    conversation can continue.
    """

    model_config = ConfigDict(frozen=True)

    kind: Literal["say"] = "say"
    text: str
    voice: Optional[str] = None
    hangup: bool = False


VoiceAction = Union[PlayAndRecord, PlayAndHangup, Say]


class RenderContext(BaseModel):
    """Per-response data the adapters need besides the action itself."""

    next_webhook_url: str
    language: str = "en-US"
    default_voice: Optional[str] = None


class ProviderPayload(BaseModel):
    """Rendered response body plus the media type it must be served with."""

    body: Union[Dict[str, Any], str]
    media_type: str = "application/json"
