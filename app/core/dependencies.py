"""FastAPI dependencies.

Process-wide singletons are created lazily so tests can override them via
``app.dependency_overrides`` before anything touches the network.
"""
from functools import lru_cache

from app.core.config import settings
from app.services.agent.agent import ReplyGenerator
from app.services.business.base import BusinessDataProvider
from app.services.business.factory import build_business_provider
from app.services.call_session.orchestrator import TurnOrchestrator
from app.services.call_session.store import CallSessionStore
from app.services.persistence.calls import CallArchive
from app.services.reservations.extractor import RegexReservationExtractor
from app.services.speech.audio_store import AudioStore
from app.services.speech.stt import SpeechToTextService
from app.services.speech.tts import TextToSpeechService
from app.services.telephony.base import ProviderAdapter
from app.services.telephony.factory import build_provider_adapter


@lru_cache
def get_session_store() -> CallSessionStore:
    """Get the call session store."""
    return CallSessionStore()


@lru_cache
def get_provider_adapter() -> ProviderAdapter:
    """Get the telephony adapter selected in configuration."""
    return build_provider_adapter(settings.telephony_provider)


@lru_cache
def get_audio_store() -> AudioStore:
    return AudioStore(settings.audio_dir)


@lru_cache
def get_business_provider() -> BusinessDataProvider:
    return build_business_provider()


@lru_cache
def get_orchestrator() -> TurnOrchestrator:
    """Get the turn orchestrator wired to the real gateways."""
    audio_store = get_audio_store()
    return TurnOrchestrator(
        store=get_session_store(),
        transcriber=SpeechToTextService(),
        reply_generator=ReplyGenerator(),
        synthesizer=TextToSpeechService(audio_store),
        business=get_business_provider(),
        extractor=RegexReservationExtractor(),
        audio_store=audio_store,
        archive=CallArchive(),
    )
