"""Error taxonomy for the resolution layer.

Most of these never reach a caller: the resolver recovers from upstream
failures by moving to the next source, a stale cache entry or a static
fallback, and the fusion engine recovers from missing signals by
substituting a neutral score. Only malformed input (and rate limiting in
strict mode) propagates.

Exception Hierarchy:
    StockPulseError (base)
    ├── InvalidSymbolError - Malformed request, surfaced as a 4xx
    ├── UpstreamError - A single source strategy failed
    │   ├── UpstreamTimeout - Strategy exceeded its time box
    │   ├── UpstreamInvalidPayload - Empty or semantically invalid payload
    │   └── UnsupportedCapability - Strategy cannot serve the capability
    ├── AllSourcesExhausted - Every strategy failed and nothing was cached
    ├── RateLimited - Caller exceeded its quota with no cache to serve
    └── SignalUnavailable - A sentiment input could not be resolved
"""

from typing import Any


class StockPulseError(Exception):
    """Base exception for all resolution layer errors.

    Attributes:
        message: Human-readable error message.
        details: Additional error details.
        recoverable: Whether the layer can recover without the caller.
    """

    def __init__(
        self,
        message: str,
        *,
        details: dict[str, Any] | None = None,
        recoverable: bool = True,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.recoverable = recoverable

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for logging/API responses."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
            "recoverable": self.recoverable,
        }


class InvalidSymbolError(StockPulseError):
    """Symbol is empty or malformed."""

    def __init__(self, symbol: str | None) -> None:
        super().__init__(
            f"Invalid symbol: {symbol!r}",
            details={"symbol": symbol},
            recoverable=False,
        )
        self.symbol = symbol


class UpstreamError(StockPulseError):
    """A source strategy failed to produce a value.

    Attributes:
        source: Name of the strategy that failed.
    """

    def __init__(
        self,
        message: str,
        *,
        source: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details=details)
        self.source = source

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        base = super().to_dict()
        base["source"] = self.source
        return base


class UpstreamTimeout(UpstreamError):
    """Strategy exceeded its time box."""

    def __init__(self, source: str, timeout: float) -> None:
        super().__init__(
            f"{source} timed out after {timeout:.1f}s",
            source=source,
            details={"timeout": timeout},
        )
        self.timeout = timeout


class UpstreamInvalidPayload(UpstreamError):
    """Response arrived but is structurally or semantically empty."""

    def __init__(self, source: str, reason: str) -> None:
        super().__init__(
            f"{source} returned an invalid payload: {reason}",
            source=source,
            details={"reason": reason},
        )
        self.reason = reason


class UnsupportedCapability(UpstreamError):
    """Strategy does not implement the requested capability."""

    def __init__(self, source: str, capability: str) -> None:
        super().__init__(
            f"{source} does not support {capability}",
            source=source,
            details={"capability": capability},
        )
        self.capability = capability


class AllSourcesExhausted(StockPulseError):
    """Every strategy failed and no cached or static value was available.

    Attributes:
        capability: Capability being resolved.
        errors: Failure message per strategy, in priority order.
    """

    def __init__(self, capability: str, errors: list[str]) -> None:
        summary = "; ".join(errors) if errors else "no strategies configured"
        super().__init__(
            f"All sources failed for {capability}: {summary}",
            details={"capability": capability, "errors": errors},
        )
        self.capability = capability
        self.errors = errors

    @property
    def last_error(self) -> str | None:
        """Message of the last strategy that failed."""
        return self.errors[-1] if self.errors else None


class RateLimited(StockPulseError):
    """Caller exceeded its quota and there is no cache entry to serve.

    Attributes:
        client_key: Identity of the limited caller.
        retry_after: Seconds until the current window resets.
    """

    def __init__(self, client_key: str, retry_after: float) -> None:
        super().__init__(
            f"Rate limit exceeded for {client_key}, retry after {retry_after:.1f}s",
            details={"client_key": client_key, "retry_after": retry_after},
        )
        self.client_key = client_key
        self.retry_after = retry_after


class SignalUnavailable(StockPulseError):
    """One of the sentiment inputs could not be resolved at all."""

    def __init__(self, signal: str, reason: str | None = None) -> None:
        super().__init__(
            f"Sentiment signal {signal} unavailable: {reason or 'unknown'}",
            details={"signal": signal, "reason": reason},
        )
        self.signal = signal
        self.reason = reason
