"""LLM reply generation service."""
import logging
from typing import Dict, List, Optional, Sequence

import openai
from openai import AsyncOpenAI
from pydantic import BaseModel

from app.core.config import settings
from app.services.agent.prompt import get_system_prompt
from app.services.business.base import BusinessContext
from app.services.call_session.models import Turn, TurnRole
from app.services.reservations.extractor import ACTION_MARKER_PATTERN

logger = logging.getLogger(__name__)


class ReplyResult(BaseModel):
    """Generated reply plus the action marker it carried, if any."""

    text: str
    raw_action_marker: Optional[str] = None
    fallback: bool = False


def find_action_marker(text: str) -> Optional[str]:
    match = ACTION_MARKER_PATTERN.search(text or "")
    return match.group(0) if match else None


def build_messages(turns: Sequence[Turn], context: BusinessContext) -> List[Dict[str, str]]:
    """Map the call transcript onto chat completion messages."""
    messages = [{"role": "system", "content": get_system_prompt(context)}]
    for turn in turns:
        role = "user" if turn.role == TurnRole.USER else "assistant"
        messages.append({"role": role, "content": turn.content})
    return messages


class ReplyGenerator:
    """Service for LLM-powered conversation replies."""

    def __init__(self, client: Optional[AsyncOpenAI] = None):
        self.client = client or AsyncOpenAI(api_key=settings.openai_api_key)

    def fallback(self) -> ReplyResult:
        return ReplyResult(text=settings.fallback_reply, fallback=True)

    async def generate_reply(
        self, turns: Sequence[Turn], context: BusinessContext
    ) -> ReplyResult:
        """
        Generate the assistant's next reply.

        Args:
            turns: Full conversation history, oldest first
            context: Business data for the system prompt

        Returns:
            ReplyResult. Never raises; failures return the fallback apology.
        """
        messages = build_messages(turns, context)

        logger.info(
            f"[AGENT INPUT] Business: {context.name}, Turns: {len(turns)}, "
            f"Degraded context: {context.degraded}"
        )

        try:
            response = await self.client.chat.completions.create(
                model=settings.llm_model,
                messages=messages,
                max_tokens=settings.llm_max_tokens,
                temperature=settings.llm_temperature,
            )
            content = (response.choices[0].message.content or "").strip()
        except openai.OpenAIError as e:
            logger.error(f"[AGENT] LLM request failed: {str(e)}")
            return self.fallback()
        except (IndexError, AttributeError) as e:
            logger.error(f"[AGENT] Unexpected LLM response shape: {str(e)}")
            return self.fallback()

        if not content:
            logger.warning("[AGENT] LLM returned an empty reply, using fallback")
            return self.fallback()

        marker = find_action_marker(content)
        logger.info(f"[AGENT OUTPUT] Reply: '{content[:100]}', Marker: {marker or 'NONE'}")
        return ReplyResult(text=content, raw_action_marker=marker)
