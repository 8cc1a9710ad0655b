"""Factory returning the configured business data provider."""
import logging

from app.core.config import settings
from app.services.business.base import BusinessDataProvider
from app.services.business.http_backend import HttpBusinessBackend
from app.services.business.static_profile import StaticProfileProvider

logger = logging.getLogger(__name__)


def build_business_provider() -> BusinessDataProvider:
    """Use the HTTP backend when configured, else the local YAML profile."""
    if settings.business_backend_url:
        logger.info(f"[BUSINESS] Using HTTP backend at {settings.business_backend_url}")
        return HttpBusinessBackend(
            base_url=settings.business_backend_url,
            api_key=settings.business_backend_api_key,
            timeout=settings.business_backend_timeout,
        )
    logger.info("[BUSINESS] No backend URL configured, using static business profile")
    return StaticProfileProvider(profile_file=settings.business_profile_path)
