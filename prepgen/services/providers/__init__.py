from prepgen.services.providers.base import Capability, GenerationOptions, GroundedText, Provider
from prepgen.services.providers.gateway import ProviderGateway, is_transient
from prepgen.services.providers.rate_limiter import ProviderRateLimiter

__all__ = [
    "Capability",
    "GenerationOptions",
    "GroundedText",
    "Provider",
    "ProviderGateway",
    "ProviderRateLimiter",
    "is_transient",
]
