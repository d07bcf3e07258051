"""Exceptions raised by convtree."""
from __future__ import annotations


class ConvtreeError(Exception):
    """Base class for every error raised by this package."""


class MalformedLineError(ConvtreeError, ValueError):
    """A log line is not valid JSON at all.

    Schema mismatches never raise; they decode to a ``ParseFailure`` entry.
    This error means the file itself is corrupt and the decode is aborted.
    """

    def __init__(self, line_number: int, line: str, reason: str = "") -> None:
        self.line_number = line_number
        self.line = line
        self.reason = reason
        message = f"line {line_number} is not valid JSON"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class ConversationIntegrityError(ConvtreeError):
    """The ``parentUuid`` links form a cycle."""

    def __init__(self, chain: list[str]) -> None:
        self.chain = list(chain)
        super().__init__("parentUuid cycle detected: " + " -> ".join(self.chain))
