"""Errors raised by the on-device capture and sync pipeline."""


class CallSyncError(Exception):
    """Base exception for the device pipeline."""


class QueueStorageError(CallSyncError):
    """Raised when the local queue cannot be read or written; retryable."""


class IngestError(CallSyncError):
    """Raised when the backend cannot be reached or refuses a request."""


class AuthenticationError(IngestError):
    """Raised when the backend rejects the credentials or token."""
