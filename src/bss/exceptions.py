"""
Custom exception hierarchy for the blob storage server.

All exceptions inherit from BSSError, which provides optional context
for structured error handling and logging. Each class carries the HTTP
status the API layer answers with.
"""

from __future__ import annotations

from typing import Any


class BSSError(Exception):
    """Base exception for all blob server errors.

    Attributes:
        message: Human-readable error message (safe to return to clients).
        context: Optional structured context for logging/debugging.
    """

    status_code: int = 500

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            ctx_str = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
            return f"{self.message} ({ctx_str})"
        return self.message

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, context={self.context!r})"


class MalformedInputError(BSSError):
    """Raised when a request carries syntactically invalid input."""

    status_code = 400


class InvalidAddressError(MalformedInputError):
    """Raised when a content address is not 64 lowercase hex characters."""

    pass


class InvalidIdentityError(MalformedInputError):
    """Raised when a public key is not 64 lowercase hex characters."""

    pass


class AuthenticationError(BSSError):
    """Raised when the authorization credential is missing or invalid."""

    status_code = 401


class MissingCredentialError(AuthenticationError):
    pass


class MalformedCredentialError(AuthenticationError):
    pass


class WrongCredentialKindError(AuthenticationError):
    pass


class IncompleteCredentialError(AuthenticationError):
    pass


class IdentityNotAuthorizedError(AuthenticationError):
    pass


class CredentialExpiredError(AuthenticationError):
    pass


class InvalidSignatureError(AuthenticationError):
    """Raised by a SignatureVerifier that rejects the event signature."""

    pass


class ForbiddenError(BSSError):
    """Raised when an authenticated identity may not perform the action."""

    status_code = 403


class NotOwnerError(ForbiddenError):
    """Raised when a non-uploader tries to delete a blob.

    Context should include:
        - sha256: The blob content address
    """

    pass


class BlobNotFoundError(BSSError):
    """Raised when no blob exists under a content address."""

    status_code = 404


class PayloadTooLargeError(BSSError):
    """Raised when an upload exceeds the configured maximum size.

    Context should include:
        - size: The payload size in bytes
        - max_size: The configured limit
    """

    status_code = 413


class UnsupportedMediaTypeError(BSSError):
    """Raised when an upload declares a media type outside the allow-list."""

    status_code = 415


class StoreError(BSSError):
    """Raised when the underlying object store fails.

    Context should include:
        - operation: The store operation (put, get, head, delete, list)
        - key: The object key if applicable
    """

    pass
