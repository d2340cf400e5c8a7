from __future__ import annotations
import asyncio
import logging
import re
import threading
from collections import deque, defaultdict
from dataclasses import dataclass, asdict
from datetime import datetime, timezone, timedelta
from typing import Dict, Optional
from email.utils import parsedate_to_datetime

logger = logging.getLogger(__name__)


@dataclass
class ProviderHealth:
    requests: int = 0
    successes: int = 0
    failures: int = 0
    transient_failures: int = 0
    consecutive_failures: int = 0
    total_latency: float = 0.0

    @property
    def average_latency(self) -> float:
        return self.total_latency / self.successes if self.successes else 0.0


class ProviderRateLimiter:
    """
    Shared provider state: per-service RPM window plus per-provider health counters.

    This is the only state shared across concurrent generation requests, so
    every mutation happens under one lock. Waiting for an RPM slot sleeps
    outside the lock.
    """
    def __init__(self, rpm_limits: Optional[Dict[str, int]] = None, default_rpm: int = 60):
        self._windows: Dict[str, deque] = defaultdict(deque)
        self._rpm_limits = dict(rpm_limits or {})
        self._default_rpm = default_rpm
        self._health: Dict[str, ProviderHealth] = defaultdict(ProviderHealth)
        self._lock = threading.Lock()

    async def acquire_slot(self, service: str):
        """Blocks until a slot is available for the given service."""
        while True:
            with self._lock:
                wait_time = self._check_rpm_and_acquire(service, datetime.now(timezone.utc))
            if wait_time <= 0:
                return
            await asyncio.sleep(wait_time)

    def _check_rpm_and_acquire(self, service: str, now: datetime) -> float:
        """Check RPM limits and record the request if a slot is free."""
        history = self._windows[service]
        limit = self._rpm_limits.get(service, self._default_rpm)

        # Remove requests older than 1 minute
        while history and history[0] < now - timedelta(minutes=1):
            history.popleft()

        # If full, wait for the oldest request to expire
        if len(history) >= limit:
            wait_time = (history[0] + timedelta(minutes=1) - now).total_seconds()
            if wait_time > 0:
                logger.info(f"RPM limit for {service}. Waiting {wait_time:.2f}s")
                return wait_time

        history.append(now)
        return 0.0

    def record_success(self, provider: str, latency: float) -> None:
        with self._lock:
            health = self._health[provider]
            health.requests += 1
            health.successes += 1
            health.consecutive_failures = 0
            health.total_latency += latency

    def record_failure(self, provider: str, transient: bool) -> None:
        with self._lock:
            health = self._health[provider]
            health.requests += 1
            health.failures += 1
            health.consecutive_failures += 1
            if transient:
                health.transient_failures += 1

    def stats(self) -> Dict[str, dict]:
        """Snapshot of provider health for diagnostics."""
        with self._lock:
            return {
                name: {**asdict(health), "average_latency": round(health.average_latency, 4)}
                for name, health in self._health.items()
            }


def parse_retry_after(exception: Exception) -> float:
    """
    Extracts wait time from API error responses.
    """
    try:
        # 1. Check Retry-After header
        response = getattr(exception, 'response', None)
        if response is not None:
            headers = getattr(response, 'headers', None) or {}
            val = headers.get('Retry-After') or headers.get('retry-after')
            if val:
                if val.isdigit():
                    return float(val)
                return (parsedate_to_datetime(val) - datetime.now(timezone.utc)).total_seconds()

        # 2. Parse Gemini error message
        error_str = str(exception)
        retry_match = re.search(r'retry in ([\d.]+)s', error_str, re.IGNORECASE)
        if retry_match:
            return float(retry_match.group(1))

        # 3. Parse retryDelay from JSON
        delay_match = re.search(r"'retryDelay':\s*'([\d.]+)s'", error_str)
        if delay_match:
            return float(delay_match.group(1))

    except (ValueError, TypeError, AttributeError) as e:
        logger.debug(f"Could not parse retry-after hint: {e}")
    return 0.0
