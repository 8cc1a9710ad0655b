"""Error taxonomy for the call agent.

Every failure inside a call degrades to a retry, a default value or a spoken
apology followed by a hangup. These exceptions carry enough information for
the orchestrator to pick the right path; none of them should escape a webhook
handler.
"""
from typing import Optional


class CallAgentError(Exception):
    """Base class for all call agent errors."""

    default_detail: str = "Call agent error"

    def __init__(self, detail: Optional[str] = None) -> None:
        super().__init__(detail or self.default_detail)
        self.detail = detail or self.default_detail


class SessionNotFound(CallAgentError):
    """A follow-up event referenced a call that is not active."""

    default_detail = "Call session not found"

    def __init__(self, call_id: str) -> None:
        super().__init__(f"Call session not found: {call_id}")
        self.call_id = call_id


class EmptyTranscript(CallAgentError):
    default_detail = "Transcript is empty"


class MalformedWebhook(CallAgentError):
    default_detail = "Malformed webhook payload"


class ReservationCreationFailed(CallAgentError):
    default_detail = "Reservation could not be created"


class GatewayTimeout(CallAgentError):
    """An external gateway did not answer within its time budget."""

    default_detail = "Gateway timed out"

    def __init__(self, gateway: str, timeout: float) -> None:
        super().__init__(f"{gateway} timed out after {timeout:.1f}s")
        self.gateway = gateway
        self.timeout = timeout


class GatewayFailure(CallAgentError):
    default_detail = "Gateway failure"


# Transcription
class TranscriptionFailed(GatewayFailure):
    default_detail = "Transcription failed"


class AudioTooLarge(TranscriptionFailed):
    default_detail = "Audio is too large to transcribe (max 25MB)"


class UnsupportedFormat(TranscriptionFailed):
    default_detail = "Unsupported audio format"


# Speech synthesis
class SynthesisFailed(GatewayFailure):
    default_detail = "Speech synthesis failed"


class EmptyText(SynthesisFailed):
    default_detail = "Cannot synthesize empty text"


class TextTooLong(SynthesisFailed):
    default_detail = "Text is too long to synthesize"


# Business backend
class BackendError(GatewayFailure):
    default_detail = "Business backend error"


class NoAvailability(BackendError):
    default_detail = "No tables available for that date and time"
