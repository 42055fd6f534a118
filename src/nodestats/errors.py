from __future__ import annotations


class NodestatsError(Exception):
    """Base class for errors raised by nodestats."""


class MalformedTimeError(NodestatsError, ValueError):
    """Raised when a time-of-day is not a valid 24-hour HH:MM value."""


class MalformedDateError(NodestatsError, ValueError):
    """Raised when a calendar date, month/day pair or expiry instant cannot be parsed."""


class StoreUnavailableError(NodestatsError):
    """Raised when the underlying record store fails to read or write."""
