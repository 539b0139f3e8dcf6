from __future__ import annotations


class ArbdeskError(Exception):
    """Base class for recoverable pipeline failures."""


class VenueUnavailable(ArbdeskError):
    def __init__(self, venue: str, reason: str) -> None:
        super().__init__(f"{venue} unavailable: {reason}")
        self.venue = venue
        self.reason = reason


class PairUnsupported(ArbdeskError):
    def __init__(self, venue: str, symbol: str) -> None:
        super().__init__(f"{venue} does not list {symbol}")
        self.venue = venue
        self.symbol = symbol


class FetchFailure(ArbdeskError):
    def __init__(self, venue: str, symbol: str, attempts: int, reason: str = "") -> None:
        message = f"{symbol} on {venue} failed after {attempts} attempts"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.venue = venue
        self.symbol = symbol
        self.attempts = attempts


class CacheBackendError(ArbdeskError):
    def __init__(self, operation: str, key: str, reason: str = "") -> None:
        message = f"cache {operation} for {key} failed"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.operation = operation
        self.key = key


class ComputeFailure(ArbdeskError):
    def __init__(self, key: str, reason: str) -> None:
        super().__init__(f"{key}: {reason}")
        self.key = key
        self.reason = reason
