"""Exception types raised while building a filing pack."""

from typing import Optional


class PackError(Exception):
    """Base class for pack-building failures."""


class ConfigurationError(PackError):
    """Raised when required settings are missing (checked before any network call)."""


class TickerNotFoundError(PackError, ValueError):
    """Raised when a ticker is not present in the SEC ticker mapping."""

    def __init__(self, ticker: str) -> None:
        self.ticker = ticker
        super().__init__(f"Ticker not found in SEC mapping: {ticker}")


class FetchError(PackError):
    """Raised when a document cannot be fetched from SEC EDGAR."""

    def __init__(self, url: str, status: Optional[int] = None, detail: str = "") -> None:
        self.url = url
        self.status = status
        self.detail = detail
        status_text = f"HTTP {status}" if status is not None else "no response"
        message = f"Failed to fetch {url}: {status_text}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class NoEligibleFilingsError(PackError):
    """Raised when the selection rules leave nothing to package."""
