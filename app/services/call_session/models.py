"""Call session models."""
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from app.services.reservations.models import ReservationAction


class TurnRole(str, Enum):
    """Who produced a turn."""

    USER = "user"
    ASSISTANT = "assistant"


class CallStatus(str, Enum):
    """Lifecycle status of a call session."""

    ACTIVE = "active"
    TERMINATED = "terminated"


class Turn(BaseModel):
    """One utterance in the conversation transcript."""

    role: TurnRole
    content: str
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    action: Optional[ReservationAction] = None


class CallSession(BaseModel):
    """Live state of one phone call from answer to hangup."""

    call_id: str
    business_id: str = "default"
    messages: List[Turn] = []
    start_time: datetime = Field(default_factory=datetime.utcnow)
    last_activity: datetime = Field(default_factory=datetime.utcnow)
    status: CallStatus = CallStatus.ACTIVE
    caller: Optional[str] = None
    callee: Optional[str] = None
    audio_artifacts: List[str] = []  # Files emitted on the previous turn

    def user_utterances(self) -> List[str]:
        """Contents of all user turns, in order."""
        return [turn.content for turn in self.messages if turn.role == TurnRole.USER]

    def get_transcript_text(self) -> str:
        """Get full transcript as text."""
        labels = {TurnRole.USER: "Caller", TurnRole.ASSISTANT: "Assistant"}
        return "\n".join(
            f"{labels[turn.role]}: {turn.content}" for turn in self.messages
        )
