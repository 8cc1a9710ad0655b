"""Factory returning the configured telephony provider adapter."""
from typing import Dict, Optional, Type

from app.core.config import settings
from app.services.telephony.base import ProviderAdapter
from app.services.telephony.generic import GenericAdapter
from app.services.telephony.plivo import PlivoAdapter
from app.services.telephony.twilio import TwilioAdapter
from app.services.telephony.voximplant import VoximplantAdapter

ADAPTERS: Dict[str, Type[ProviderAdapter]] = {
    GenericAdapter.name: GenericAdapter,
    PlivoAdapter.name: PlivoAdapter,
    TwilioAdapter.name: TwilioAdapter,
    VoximplantAdapter.name: VoximplantAdapter,
}


def build_provider_adapter(provider: Optional[str] = None) -> ProviderAdapter:
    """Instantiate the adapter for the configured telephony provider."""
    name = (provider or settings.telephony_provider).strip().lower()
    adapter_cls = ADAPTERS.get(name)
    if adapter_cls is None:
        raise ValueError(f"Unsupported telephony provider: {name}")
    return adapter_cls()
