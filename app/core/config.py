"""Application configuration."""
from typing import List, Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # OpenAI
    openai_api_key: str
    llm_model: str = "gpt-3.5-turbo"
    llm_max_tokens: int = 300
    llm_temperature: float = 0.7
    stt_model: str = "whisper-1"
    stt_language: Optional[str] = "en"
    tts_model: str = "tts-1"
    tts_voice: str = "nova"

    # Telephony
    telephony_provider: Literal["generic", "plivo", "voximplant", "twilio"] = "generic"
    base_url: Optional[str] = None
    say_voice: str = "Polly.Joanna-Neural"
    say_language: str = "en-US"

    # Business backend
    business_backend_url: Optional[str] = None
    business_backend_api_key: Optional[str] = None
    business_backend_timeout: float = 15.0
    business_profile_path: Optional[str] = None
    default_business_id: str = "default"

    # Conversation
    welcome_message: str = "Hello! I'm your virtual assistant. How can I help you today?"
    retry_message: str = "Sorry, I couldn't hear you well. Could you repeat that?"
    error_message: str = "Sorry, something went wrong. Please try again later."
    fallback_reply: str = (
        "Sorry, I'm having technical difficulties right now. Could you try again?"
    )
    farewell_phrases: List[str] = [
        "goodbye",
        "good bye",
        "bye now",
        "adiós",
        "hasta luego",
    ]
    reservation_marker: str = "[RESERVE]"

    # Timeouts and lifecycle
    gateway_timeout_seconds: float = 20.0
    session_idle_timeout_seconds: int = 1800
    session_sweep_interval_seconds: int = 60

    # Synthesized audio
    audio_dir: str = "uploads"
    audio_max_age_hours: float = 24.0
    audio_cleanup_interval_seconds: int = 6 * 60 * 60

    # Database
    database_url: str = "sqlite+aiosqlite:///./calls.db"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )


settings = Settings()
