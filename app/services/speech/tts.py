"""Text-to-speech service."""
import logging
import re
from typing import Optional

import openai
from openai import AsyncOpenAI
from pydantic import BaseModel

from app.core.config import settings
from app.core.errors import EmptyText, SynthesisFailed, TextTooLong
from app.services.reservations.extractor import ACTION_MARKER_PATTERN
from app.services.speech.audio_store import AudioStore

logger = logging.getLogger(__name__)

# OpenAI speech input limit
MAX_TEXT_LENGTH = 4096

ABBREVIATIONS = [
    (re.compile(r"\bdr\.", re.IGNORECASE), "doctor"),
    (re.compile(r"\bmr\.", re.IGNORECASE), "mister"),
    (re.compile(r"\bmrs\.", re.IGNORECASE), "missus"),
    (re.compile(r"\bst\.", re.IGNORECASE), "street"),
    (re.compile(r"\bave\.", re.IGNORECASE), "avenue"),
    (re.compile(r"\btel\.", re.IGNORECASE), "telephone"),
    (re.compile(r"\bapprox\.", re.IGNORECASE), "approximately"),
]
PHONE_GROUPS = re.compile(r"\b(\d{3})[\s-]?(\d{3})[\s-]?(\d{3})\b")


def clean_text_for_speech(text: str) -> str:
    """Remove action markers and expand written forms that read badly aloud."""
    clean = ACTION_MARKER_PATTERN.sub("", text or "")
    for pattern, replacement in ABBREVIATIONS:
        clean = pattern.sub(replacement, clean)
    clean = PHONE_GROUPS.sub(r"\1 \2 \3", clean)
    clean = re.sub(r"[*_#`~<>]", "", clean)
    clean = re.sub(r"\s+", " ", clean)
    return clean.strip()


class SynthesizedAudio(BaseModel):
    """A synthesized audio artifact and where the provider can fetch it."""

    filename: str
    url: str


class TextToSpeechService:
    """Service for converting text to speech."""

    def __init__(self, audio_store: AudioStore, client: Optional[AsyncOpenAI] = None):
        self.client = client or AsyncOpenAI(api_key=settings.openai_api_key)
        self.audio_store = audio_store

    async def synthesize_speech(
        self,
        text: str,
        voice: str = "nova",
        model: str = "tts-1",
    ) -> bytes:
        """
        Synthesize speech from text using OpenAI TTS.

        Args:
            text: Text to convert to speech
            voice: Voice to use (alloy, echo, fable, onyx, nova, shimmer)
            model: Model to use (tts-1 or tts-1-hd)

        Returns:
            Audio bytes (MP3 format)
        """
        try:
            response = await self.client.audio.speech.create(
                model=model,
                voice=voice,
                input=text,
                response_format="mp3",
            )
            return response.content
        except openai.OpenAIError as e:
            raise SynthesisFailed(f"TTS synthesis failed: {str(e)}") from e

    async def synthesize(
        self, text: str, voice: Optional[str] = None, base_url: str = ""
    ) -> SynthesizedAudio:
        """Synthesize text into a stored audio file and return its public URL."""
        clean = clean_text_for_speech(text)
        if not clean:
            raise EmptyText()
        if len(clean) > MAX_TEXT_LENGTH:
            raise TextTooLong(f"Text is too long to synthesize ({len(clean)} chars)")

        audio = await self.synthesize_speech(
            clean, voice=voice or settings.tts_voice, model=settings.tts_model
        )
        filename = self.audio_store.save(audio, extension="mp3")
        logger.info(f"[TTS] Audio generated: {filename} for '{clean[:50]}'")
        return SynthesizedAudio(
            filename=filename, url=self.audio_store.public_url(filename, base_url)
        )
