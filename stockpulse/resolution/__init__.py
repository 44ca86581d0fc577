"""Multi-source resolution.

This module contains:
- FallbackResolver: cache, rate limit, ordered strategies, fallbacks
- InFlightRegistry: coalescing of concurrent identical misses
- Payload validation shared by all capabilities
"""

from stockpulse.resolution.inflight import InFlightRegistry
from stockpulse.resolution.resolver import FallbackResolver, Fetcher, validate_payload

__all__ = [
    "FallbackResolver",
    "Fetcher",
    "InFlightRegistry",
    "validate_payload",
]
