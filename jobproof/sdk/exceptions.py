"""Error taxonomy for the enclave trust pipeline.

Transport and parsing failures are raised by the SDK clients; the
orchestrator decides which of them are fatal to a matching run.
"""

from __future__ import annotations

from typing import Any


class JobProofError(Exception):
    """Base exception for all pipeline errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class TransportError(JobProofError):
    """An HTTP call completed with a non-success status."""

    def __init__(self, message: str, status_code: int, details: dict[str, Any] | None = None) -> None:
        super().__init__(message, details)
        self.status_code = status_code


class NetworkError(JobProofError):
    """Connection-level failure: refused, reset, DNS or timeout."""


class ParseFailure(JobProofError):
    """Structured data could not be parsed from a response."""


class MissingSignatureMaterial(JobProofError):
    """Inference succeeded without a signature or timestamp."""


class VerificationFailed(JobProofError):
    """The oracle rejected the response or could not be queried."""


class NoActiveEntities(JobProofError):
    """No active jobs or candidates were supplied to a matching run."""


class NotFound(JobProofError):
    """A polled resource did not appear within the allowed attempts."""


class PollingCancelled(JobProofError):
    """A polling loop was cancelled by its caller."""
