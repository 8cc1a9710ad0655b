"""Speech-to-text service."""
import logging
from typing import Optional

import httpx
import openai
from openai import AsyncOpenAI

from app.core.config import settings
from app.core.errors import AudioTooLarge, TranscriptionFailed, UnsupportedFormat

logger = logging.getLogger(__name__)

# Whisper API upload limit
MAX_AUDIO_BYTES = 25 * 1024 * 1024

CONTENT_TYPE_EXTENSIONS = {
    "audio/wav": "wav",
    "audio/x-wav": "wav",
    "audio/wave": "wav",
    "audio/mpeg": "mp3",
    "audio/mp3": "mp3",
    "audio/mp4": "m4a",
    "audio/x-m4a": "m4a",
    "audio/ogg": "ogg",
    "audio/webm": "webm",
    "audio/flac": "flac",
}


class SpeechToTextService:
    """Service for converting recorded speech to text."""

    def __init__(
        self,
        client: Optional[AsyncOpenAI] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.client = client or AsyncOpenAI(api_key=settings.openai_api_key)
        self.http_client = http_client

    async def _download(self, recording_url: str) -> httpx.Response:
        if self.http_client is not None:
            response = await self.http_client.get(recording_url)
        else:
            async with httpx.AsyncClient(follow_redirects=True, timeout=30) as client:
                response = await client.get(recording_url)
        response.raise_for_status()
        return response

    @staticmethod
    def _file_format(content_type: str, recording_url: str) -> str:
        media_type = content_type.split(";")[0].strip().lower()
        if media_type in CONTENT_TYPE_EXTENSIONS:
            return CONTENT_TYPE_EXTENSIONS[media_type]
        suffix = recording_url.rsplit("?", 1)[0].rsplit(".", 1)[-1].lower()
        if suffix in CONTENT_TYPE_EXTENSIONS.values():
            return suffix
        if media_type.startswith("audio/") or not media_type:
            return "wav"
        raise UnsupportedFormat(f"Unsupported audio format: {media_type}")

    async def transcribe_audio(self, audio_data: bytes, format: str = "wav") -> str:
        """
        Transcribe audio to text using OpenAI Whisper.

        Args:
            audio_data: Raw audio bytes
            format: Audio format (wav, mp3, etc.)

        Returns:
            Transcribed text, stripped
        """
        if len(audio_data) > MAX_AUDIO_BYTES:
            raise AudioTooLarge()
        try:
            transcript = await self.client.audio.transcriptions.create(
                model=settings.stt_model,
                file=(f"recording.{format}", audio_data, f"audio/{format}"),
                language=settings.stt_language or openai.NOT_GIVEN,
                temperature=0.2,
            )
        except openai.BadRequestError as e:
            message = str(e).lower()
            if "format" in message:
                raise UnsupportedFormat(f"Unsupported audio format: {str(e)}") from e
            if "too large" in message or "max" in message:
                raise AudioTooLarge() from e
            raise TranscriptionFailed(f"Transcription failed: {str(e)}") from e
        except openai.OpenAIError as e:
            raise TranscriptionFailed(f"Transcription failed: {str(e)}") from e

        text = (transcript.text or "").strip()
        logger.info(f"[STT] Transcribed {len(audio_data)} bytes -> '{text[:100]}'")
        return text

    async def transcribe(self, recording_url: str) -> str:
        """
        Download a provider recording and transcribe it.

        Args:
            recording_url: URL to the recorded audio

        Returns:
            Transcribed text (may be empty)
        """
        try:
            response = await self._download(recording_url)
        except httpx.HTTPError as e:
            raise TranscriptionFailed(f"Could not download recording: {str(e)}") from e

        audio_format = self._file_format(
            response.headers.get("content-type", ""), recording_url
        )
        return await self.transcribe_audio(response.content, format=audio_format)
