"""
errors.py — Pipeline Exception Taxonomy
========================================

ParseFailure and InvalidRange are contained by the gateway (the line is
dropped). LinkError drives the bounded reconnection policy. NotInitialized
and EmptyCollection are surfaced to the caller.
"""


class HydrationError(Exception):
    """Base class for every error raised by the pipeline."""


class ParseFailure(HydrationError):
    """A serial line did not match any accepted wire format."""

    def __init__(self, message: str, line: str = ""):
        super().__init__(message)
        self.line = line


class InvalidRange(ParseFailure):
    """A parsed pH or colour value lies outside physically plausible bounds."""


class LinkError(HydrationError):
    """The serial link could not be opened, or was lost."""


class NotInitialized(HydrationError):
    """Classification was attempted before any reference clusters were loaded."""


class EmptyCollection(HydrationError):
    """A one-shot reading window produced zero samples."""
