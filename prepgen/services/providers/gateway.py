"""
Provider Gateway.

One entry point per capability over an ordered list of backends:

- transient overload (503/504, "unavailable", "overloaded", timeouts) fails
  over to the next provider immediately;
- any other error is retried (tenacity, bounded exponential backoff or the
  server's retry hint) before failing over;
- when every provider for a capability has failed, ``ProviderExhausted`` is
  raised and the calling stage decides on its fallback.
"""
import asyncio
import json
import logging
import time
from typing import Awaitable, Callable, Dict, List, Mapping, Optional, Sequence, Type, TypeVar

from google.api_core.exceptions import DeadlineExceeded, ServiceUnavailable
from google.genai import errors as genai_errors
from pydantic import BaseModel
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from prepgen.core.exceptions import ConfigurationError, ProviderExhausted, ProviderTransient
from prepgen.services.pipeline.llm_parser import parse_llm_response
from prepgen.services.providers.base import Capability, GenerationOptions, GroundedText, Provider
from prepgen.services.providers.rate_limiter import ProviderRateLimiter, parse_retry_after

logger = logging.getLogger(__name__)

T = TypeVar("T")
ModelT = TypeVar("ModelT", bound=BaseModel)

TRANSIENT_STATUS_CODES = {503, 504}
TRANSIENT_KEYWORDS = ("service unavailable", "unavailable", "overloaded")


def is_transient(exc: BaseException) -> bool:
    """Classify an error as transient overload (fail-fast failover) or not."""
    if isinstance(exc, (asyncio.TimeoutError, ProviderTransient, ServiceUnavailable, DeadlineExceeded)):
        return True
    if isinstance(exc, genai_errors.APIError) and exc.code in TRANSIENT_STATUS_CODES:
        return True

    status = getattr(exc, "status_code", None) or getattr(exc, "code", None)
    if isinstance(status, int) and status in TRANSIENT_STATUS_CODES:
        return True

    message = str(exc).lower()
    return any(keyword in message for keyword in TRANSIENT_KEYWORDS)


class ProviderGateway:
    """Routes calls by capability and applies the failover policy."""

    def __init__(
        self,
        providers: Mapping[str, Provider],
        routing: Mapping[str, Sequence[str]],
        rate_limiter: Optional[ProviderRateLimiter] = None,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
        timeout: float = 45.0,
    ):
        if max_attempts < 1:
            raise ConfigurationError("max_attempts must be at least 1")

        self._providers = dict(providers)
        self._routing: Dict[Capability, List[Provider]] = {}
        for key, names in routing.items():
            try:
                capability = Capability(key)
            except ValueError as e:
                raise ConfigurationError(f"Unknown capability in provider routing: {key}") from e

            ordered = []
            for name in names:
                provider = self._providers.get(name)
                if provider is None:
                    raise ConfigurationError(
                        f"Unknown provider '{name}' in {capability.value} routing",
                        details={"available": sorted(self._providers)},
                    )
                if not provider.supports(capability):
                    raise ConfigurationError(
                        f"Provider '{name}' does not support {capability.value}"
                    )
                ordered.append(provider)
            self._routing[capability] = ordered

        self.rate_limiter = rate_limiter or ProviderRateLimiter()
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.timeout = timeout

    def providers_for(self, capability: Capability) -> List[str]:
        return [provider.name for provider in self._routing.get(capability, [])]

    def stats(self) -> dict:
        return {
            "routing": {cap.value: self.providers_for(cap) for cap in self._routing},
            "providers": self.rate_limiter.stats(),
        }

    # ------------------------------------------------------------------
    # Public contract
    # ------------------------------------------------------------------

    async def generate_text(self, task: str, prompt: str, **opts) -> str:
        options = GenerationOptions(**opts)
        return await self._call(
            Capability.REASONING, task, lambda provider: provider.complete(prompt, options)
        )

    async def generate_structured(self, schema: Type[ModelT], task: str, prompt: str, **opts) -> ModelT:
        """
        Structured generation validated against ``schema``.

        Parse failures (apology, malformed JSON, schema mismatch) raise
        ``ExtractionParseError`` straight away: a provider that answered is not
        asked again.
        """
        options = GenerationOptions(**opts)
        schema_hint = json.dumps(schema.model_json_schema())
        raw = await self._call(
            Capability.STRUCTURED,
            task,
            lambda provider: provider.complete_json(prompt, schema_hint, options),
        )
        return parse_llm_response(raw, schema)

    async def generate_grounded(
        self,
        task: str,
        prompt: str,
        references: Sequence[str] = (),
        search: bool = False,
        **opts,
    ) -> GroundedText:
        options = GenerationOptions(**opts)
        refs = list(references)
        return await self._call(
            Capability.GROUNDING,
            task,
            lambda provider: provider.ground(prompt, refs, options, search=search),
        )

    # ------------------------------------------------------------------
    # Failover loop
    # ------------------------------------------------------------------

    def _wait(self, retry_state: RetryCallState) -> float:
        """Server retry hint first, then exponential backoff; both capped at max_delay."""
        server_wait = parse_retry_after(retry_state.outcome.exception())
        if server_wait > 0:
            return min(server_wait, self.max_delay)
        return wait_exponential(multiplier=self.base_delay, max=self.max_delay)(retry_state)

    def _retryer(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=self._wait,
            # transient overload fails over instead of retrying
            retry=retry_if_exception(lambda exc: isinstance(exc, Exception) and not is_transient(exc)),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )

    async def _attempt(self, provider: Provider, invoke: Callable[[Provider], Awaitable[T]]) -> T:
        await self.rate_limiter.acquire_slot(provider.service)
        start_time = time.perf_counter()
        try:
            result = await asyncio.wait_for(invoke(provider), timeout=self.timeout)
        except Exception as e:
            self.rate_limiter.record_failure(provider.name, is_transient(e))
            raise
        self.rate_limiter.record_success(provider.name, time.perf_counter() - start_time)
        return result

    async def _call(
        self,
        capability: Capability,
        task: str,
        invoke: Callable[[Provider], Awaitable[T]],
    ) -> T:
        candidates = self._routing.get(capability, [])
        failures: List[str] = []

        for provider in candidates:
            retryer = self._retryer()
            try:
                async for attempt in retryer:
                    with attempt:
                        result = await self._attempt(provider, invoke)
            except Exception as e:
                reason = "timeout" if isinstance(e, asyncio.TimeoutError) else str(e)[:200]
                if is_transient(e):
                    logger.warning(
                        f"{provider.name} overloaded during {task} ({reason}); failing over",
                        extra={"provider": provider.name, "capability": capability.value, "task": task},
                    )
                    failures.append(f"{provider.name}: transient: {reason}")
                else:
                    attempts = retryer.statistics.get("attempt_number", self.max_attempts)
                    logger.warning(
                        f"{provider.name} failed {attempts} time(s) during {task} ({reason}); failing over",
                        extra={"provider": provider.name, "capability": capability.value, "task": task, "attempt": attempts},
                    )
                    failures.append(f"{provider.name}: {type(e).__name__}: {reason}")
                continue
            return result

        if not candidates:
            failures.append("no providers configured")
        logger.error(f"All providers failed for {capability.value} ({task}): {failures}")
        raise ProviderExhausted(capability.value, task, failures)
