"""Error taxonomy shared by the engine, the stores and the remote clients."""

from __future__ import annotations


class TwicksError(Exception):
    """Base exception for Twicks operations."""


class NotFoundError(TwicksError):
    """Operation target id is absent from its collection."""


class ValidationError(TwicksError):
    """A required field is missing or invalid; nothing was changed."""


class SerializationError(TwicksError):
    """Persisted JSON could not be decoded."""


class ExternalServiceError(TwicksError):
    """Network, auth or storage failure at a system boundary."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class StorageWriteError(ExternalServiceError):
    """Every storage tier rejected a write."""
