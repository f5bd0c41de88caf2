"""
mejour.errors — Typed Failure Taxonomy
=======================================

Every public operation either returns data or raises one of the exceptions
below.  Lower-level errors (``httpx`` transport errors, pydantic validation
errors, malformed identifiers) are translated at the gateway boundary so
callers only ever catch :class:`MejourError`.

Each error exposes a machine-distinguishable :attr:`MejourError.kind` and a
user-visible :attr:`MejourError.user_message`.
"""

from __future__ import annotations

import enum


class ErrorKind(enum.StrEnum):
    """Machine-readable failure categories."""
    MISSING_CREDENTIAL = "missing_credential"
    HTTP_STATUS = "http_status"
    DECODE_FAILURE = "decode_failure"
    MAPPING_FAILURE = "mapping_failure"
    INVALID_INPUT = "invalid_input"
    PLACE_CREATION_FAILED = "place_creation_failed"
    STORAGE_FAILURE = "storage_failure"


class MejourError(Exception):
    """Base class for all sync-layer failures."""

    kind: ErrorKind

    @property
    def user_message(self) -> str:
        return str(self)


class MissingCredential(MejourError):
    """No usable access token and the single silent re-login failed."""

    kind = ErrorKind.MISSING_CREDENTIAL

    def __init__(self, detail: str = "Missing access token. Please login first.") -> None:
        super().__init__(detail)


class HttpStatus(MejourError):
    """Non-2xx response.  ``code == -1`` means no response arrived at all."""

    kind = ErrorKind.HTTP_STATUS

    def __init__(self, code: int, body: str) -> None:
        self.code = code
        self.body = body
        super().__init__(f"HTTP {code}: {body}")


class DecodeFailure(MejourError):
    """Response body does not match the expected schema."""

    kind = ErrorKind.DECODE_FAILURE

    def __init__(self, detail: str = "Failed to decode server response.") -> None:
        super().__init__(detail)


class MappingFailure(MejourError):
    """A well-formed DTO could not be mapped to a domain record."""

    kind = ErrorKind.MAPPING_FAILURE

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Mapping failed: {reason}")


class InvalidInput(MejourError):
    """Caller-supplied coordinate or identifier is not well-formed."""

    kind = ErrorKind.INVALID_INPUT


class PlaceCreationFailed(MejourError):
    """Remote place creation failed; carries the remote diagnostic."""

    kind = ErrorKind.PLACE_CREATION_FAILED

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Create place failed: {message}")


class StorageFailure(MejourError):
    """Local state could not be written; the in-memory copy is unchanged."""

    kind = ErrorKind.STORAGE_FAILURE

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Could not save {path}: {reason}")
