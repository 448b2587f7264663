"""
Structured Error Taxonomy — Typed exceptions for the HedgeWatch service.

Design principles:
  - Every error carries `retryable` + `error_code` for automated decisions
  - Hierarchy mirrors the service layers: Request → Store → Market info
  - HTTP-safe: each class maps to a recommended status code
  - Structured logging friendly: all errors serialize cleanly to JSON

The round reconstructor itself never raises; these errors belong to the
query, storage and integration layers around it.
"""

from __future__ import annotations

__all__ = [
    # Base
    "HedgeWatchError",
    "ConfigurationError",
    # Request layer
    "RequestValidationError",
    "MissingParameterError",
    "InvalidParameterError",
    # Store layer
    "EventStoreError",
    "EventStoreUnavailableError",
    # Market info layer
    "MarketInfoError",
    "MarketNotFoundError",
    "MarketInfoIncompleteError",
    "MarketInfoUnavailableError",
    "MarketInfoRateLimitError",
]


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  Base
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class HedgeWatchError(Exception):
    """Root exception for the HedgeWatch service.

    Attributes:
        retryable: If True, the caller should consider retrying the operation.
        error_code: Machine-readable code for dashboards and alerting.
        http_status: Suggested HTTP status code for API responses.
    """

    retryable: bool = False
    error_code: str = "HEDGEWATCH_ERROR"
    http_status: int = 500

    def __init__(self, message: str, *, detail: str | None = None):
        self.detail = detail
        super().__init__(message)

    def to_dict(self) -> dict:
        """Serialize for structured logging and API responses."""
        return {
            "error_code": self.error_code,
            "message": str(self),
            "detail": self.detail,
            "retryable": self.retryable,
            "http_status": self.http_status,
        }


class ConfigurationError(HedgeWatchError):
    """Required configuration is missing or inconsistent."""

    error_code = "CONFIGURATION_ERROR"
    http_status = 500


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  Request Layer: Caller contract violations at the API boundary
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class RequestValidationError(HedgeWatchError):
    """Base for malformed or incomplete client requests."""

    error_code = "REQUEST_INVALID"
    http_status = 400

    def __init__(self, message: str, *, parameter: str = "", **kwargs):
        self.parameter = parameter
        super().__init__(message, **kwargs)

    def to_dict(self) -> dict:
        d = super().to_dict()
        d["parameter"] = self.parameter
        return d


class MissingParameterError(RequestValidationError):
    """A required query parameter was not supplied."""

    error_code = "MISSING_PARAMETER"


class InvalidParameterError(RequestValidationError):
    """A query parameter has a value outside its allowed set."""

    error_code = "INVALID_PARAMETER"


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  Store Layer: Errors from the event store backends
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class EventStoreError(HedgeWatchError):
    """Base for all event store errors."""

    error_code = "EVENT_STORE_ERROR"
    http_status = 500

    def __init__(self, message: str, *, backend: str | None = None, **kwargs):
        self.backend = backend
        super().__init__(message, **kwargs)

    def to_dict(self) -> dict:
        d = super().to_dict()
        d["backend"] = self.backend
        return d


class EventStoreUnavailableError(EventStoreError):
    """The backing database is unreachable or failed the query."""

    retryable = True
    error_code = "EVENT_STORE_UNAVAILABLE"
    http_status = 503


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  Market Info Layer: Errors resolving round slugs to market metadata
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class MarketInfoError(HedgeWatchError):
    """Base for market metadata resolution errors."""

    error_code = "MARKET_INFO_ERROR"
    http_status = 502

    def __init__(self, message: str, *, slug: str = "", **kwargs):
        self.slug = slug
        super().__init__(message, **kwargs)

    def to_dict(self) -> dict:
        d = super().to_dict()
        d["slug"] = self.slug
        return d


class MarketNotFoundError(MarketInfoError):
    """No event or market exists upstream for the slug."""

    error_code = "MARKET_NOT_FOUND"
    http_status = 404


class MarketInfoIncompleteError(MarketInfoError):
    """Upstream returned a market without the identifiers we need."""

    error_code = "MARKET_INFO_INCOMPLETE"
    http_status = 500


class MarketInfoUnavailableError(MarketInfoError):
    """Upstream API unreachable, timed out or answered with an error."""

    retryable = True
    error_code = "MARKET_INFO_UNAVAILABLE"
    http_status = 502


class MarketInfoRateLimitError(MarketInfoError):
    """Upstream API returned a rate limit error."""

    retryable = True
    error_code = "MARKET_INFO_RATE_LIMIT"
    http_status = 429
