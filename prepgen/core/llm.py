"""
Language Model (LLM) provider construction.

This module provides:
- Gemini Flash / Pro backends sharing one GenAI SDK client (grounding, structured, reasoning)
- ChatGroq backend (structured, reasoning)
- build_gateway(): a ProviderGateway wired from settings

Nothing is constructed at import time; the application builds one gateway in
its lifespan and hands it to the orchestrator.
"""
import logging
from typing import Dict

from prepgen.core.config import Settings
from prepgen.core.exceptions import ConfigurationError
from prepgen.services.providers.base import Provider
from prepgen.services.providers.gateway import ProviderGateway
from prepgen.services.providers.gemini import GeminiProvider, build_gemini_client
from prepgen.services.providers.groq import GroqProvider
from prepgen.services.providers.rate_limiter import ProviderRateLimiter

logger = logging.getLogger(__name__)

KNOWN_PROVIDERS = ("gemini_flash", "gemini_pro", "groq")


def build_providers(settings: Settings) -> Dict[str, Provider]:
    """Instantiate every backend whose credentials are configured."""
    providers: Dict[str, Provider] = {}

    client = build_gemini_client(settings.GEMINI_API_KEY)
    if client is not None:
        providers["gemini_flash"] = GeminiProvider("gemini_flash", client, settings.GEMINI_FLASH_MODEL)
        providers["gemini_pro"] = GeminiProvider("gemini_pro", client, settings.GEMINI_PRO_MODEL)
    else:
        logger.warning("GEMINI_API_KEY not set; Gemini providers disabled")

    if settings.GROQ_API_KEY:
        providers["groq"] = GroqProvider("groq", settings.GROQ_API_KEY, settings.GROQ_MODEL)
    else:
        logger.warning("GROQ_API_KEY not set; Groq provider disabled")

    return providers


def build_gateway(settings: Settings) -> ProviderGateway:
    """
    Build the provider gateway from settings.

    Provider names must be known; names whose credentials are missing are
    dropped from the routing with a warning so the stage fallbacks apply.
    """
    providers = build_providers(settings)

    routing = {}
    for capability, names in settings.provider_routing.items():
        unknown = [name for name in names if name not in KNOWN_PROVIDERS]
        if unknown:
            raise ConfigurationError(f"Unknown provider(s) in {capability} ordering: {', '.join(unknown)}")
        missing = [name for name in names if name not in providers]
        if missing:
            logger.warning(f"Skipping unconfigured provider(s) for {capability}: {', '.join(missing)}")
        routing[capability] = [name for name in names if name in providers]

    rate_limiter = ProviderRateLimiter(
        rpm_limits={"gemini": settings.GEMINI_RPM, "groq": settings.GROQ_RPM},
    )
    return ProviderGateway(
        providers,
        routing,
        rate_limiter=rate_limiter,
        max_attempts=settings.RETRY_MAX_ATTEMPTS,
        base_delay=settings.RETRY_BASE_DELAY,
        max_delay=settings.RETRY_MAX_DELAY,
        timeout=settings.PROVIDER_TIMEOUT_SECONDS,
    )
