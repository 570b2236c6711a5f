from __future__ import annotations


class PortraitSheetError(Exception):
    """Base class for all errors raised by the portrait sheet service."""


class ConfigurationError(PortraitSheetError):
    """Raised at startup when required process configuration is missing."""


class InvalidRequest(PortraitSheetError):
    """Raised synchronously when a start request is missing its inputs."""


class JobNotFound(PortraitSheetError):
    """Raised when polling an identifier that was never issued."""

    def __init__(self, job_id: str) -> None:
        super().__init__(f"Job not found: {job_id}")
        self.job_id = job_id


class JobStateError(PortraitSheetError):
    """Raised when a registry transition would break a job invariant."""


class DirectoryError(PortraitSheetError):
    """Raised when the output directory cannot be created or written to."""


class DecodeError(PortraitSheetError):
    """Raised when image bytes cannot be decoded."""


class ProviderError(PortraitSheetError):
    """
    Raised when the remote image provider call does not succeed.

    Carries the HTTP status code (``None`` when no response was received) and
    the raw response body so the failure can be reported verbatim.
    """

    def __init__(self, message: str, status_code: int | None = None, body: str = "") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class GenerationError(ProviderError):
    """Raised when a single emotion variant could not be generated."""


class CompositionError(PortraitSheetError):
    """Raised when the sheet composer is handed the wrong number of tiles."""
