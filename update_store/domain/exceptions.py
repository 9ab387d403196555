"""Custom exception hierarchy for the update store.

Following error taxonomy: retryable, non-retryable, validation, configuration.
"""


class UpdateStoreError(Exception):
    """Base exception for all application errors."""

    pass


class RetryableError(UpdateStoreError):
    """Errors that can be retried (network issues, temporary failures)."""

    pass


class NonRetryableError(UpdateStoreError):
    """Errors that should not be retried (validation, auth, logic errors)."""

    pass


class ValidationError(NonRetryableError):
    """Data validation errors."""

    pass


class ConfigurationError(NonRetryableError):
    """Missing or invalid storage configuration."""

    pass


class StorageError(RetryableError):
    """Database/storage errors."""

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        """Initialize with the underlying driver exception, if any."""
        self.cause = cause
        super().__init__(message)
