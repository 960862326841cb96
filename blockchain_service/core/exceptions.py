"""
Custom exception classes for the application.
Provides structured error handling across all modules.
"""

from typing import Any, Optional, Dict


class BlockchainServiceException(Exception):
    """Base exception class for the blockchain service."""

    def __init__(
        self,
        message: str,
        code: str = "UNKNOWN_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)


class ConfigurationError(BlockchainServiceException):
    """Raised when there's a configuration error."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "CONFIGURATION_ERROR", details)


class MissingConfigurationError(ConfigurationError):
    """Raised when a required configuration value is absent."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Missing configuration value: {key}", {"key": key})


class DatabaseError(BlockchainServiceException):
    """Raised when there's a database error."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "DATABASE_ERROR", details)


class DuplicateIdempotencyKeyError(DatabaseError):
    """Raised when a job insert loses a race on the idempotency key."""

    def __init__(self, idempotency_key: str):
        self.idempotency_key = idempotency_key
        super().__init__(
            "A job with this idempotency key already exists",
            {"idempotency_key": idempotency_key}
        )


class ValidationError(BlockchainServiceException):
    """Raised when data validation fails."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "VALIDATION_ERROR", details)


class PayloadValidationError(ValidationError):
    """Raised when a job payload does not match its event type."""
    pass


class UnsupportedEventTypeError(ValidationError):
    """Raised when no handler exists for an event type."""

    def __init__(self, event_type: Any):
        super().__init__(
            f"Unsupported event type: {event_type}",
            {"event_type": str(event_type)}
        )


class NotFoundError(BlockchainServiceException):
    """Raised when a requested resource is not found."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "NOT_FOUND", details)


class JobNotFoundError(NotFoundError):
    """Raised when a job id is unknown."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job with ID {job_id} not found.", {"job_id": job_id})


class OrganizationNotFoundError(NotFoundError):
    """Raised when an organization cannot be resolved."""
    pass


class ChainError(BlockchainServiceException):
    """Raised when there's a blockchain error."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "CHAIN_ERROR", details)


class TransactionRevertedError(ChainError):
    """Raised when a mined transaction has a failed status."""

    def __init__(self, action: str, tx_hash: str):
        self.action = action
        self.tx_hash = tx_hash
        super().__init__(
            f"Transaction to {action} reverted. Hash: {tx_hash}",
            {"action": action, "tx_hash": tx_hash}
        )


class EventLogNotFoundError(ChainError):
    """Raised when an expected event is missing from a receipt."""

    def __init__(self, event_name: str, tx_hash: str, reason: Optional[str] = None):
        self.event_name = event_name
        self.tx_hash = tx_hash
        message = f"{event_name} event not found in transaction logs. Hash: {tx_hash}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message, {"event_name": event_name, "tx_hash": tx_hash})


class ExternalServiceError(BlockchainServiceException):
    """Raised when an external service fails."""

    def __init__(self, message: str, service: str, details: Optional[Dict[str, Any]] = None):
        details = details or {}
        details["service"] = service
        super().__init__(message, "EXTERNAL_SERVICE_ERROR", details)


class KMSError(ExternalServiceError):
    """Raised when a signing key cannot be fetched from the KMS."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "kms", details)


class QueueError(BlockchainServiceException):
    """Raised when the job queue fails."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "QUEUE_ERROR", details)


class PublisherError(BlockchainServiceException):
    """Raised when the event publisher is unavailable."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "PUBLISHER_ERROR", details)
