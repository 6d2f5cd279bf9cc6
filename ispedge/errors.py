"""Failure taxonomy for trace strategies and resolution requests."""

from __future__ import annotations


class IspEdgeError(Exception):
    """Base class for ispedge errors."""


class StrategyUnavailable(IspEdgeError):
    """The tool or service behind a strategy cannot be used here."""


class StrategyTimeout(IspEdgeError):
    """The strategy exceeded its wall-clock bound and was aborted."""


class ParseFailure(IspEdgeError):
    """The strategy produced output that did not match its grammar."""

    def __init__(self, message: str, raw: str = ""):
        super().__init__(message)
        self.raw = raw


class InvalidTarget(IspEdgeError, ValueError):
    """The caller supplied an empty target list or a malformed host."""
