"""
Custom exception hierarchy for the feedback agent.

Provides a consistent error handling approach across all modules.
"""


class FeedbackAgentError(Exception):
    """
    Base exception for all feedback agent errors.

    All custom exceptions should inherit from this class.
    """

    def __init__(self, message: str, details: dict | None = None):
        """
        Initialize the exception.

        Args:
            message: Human-readable error message
            details: Optional dictionary with additional error context
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


# ==================== Configuration Errors ====================

class ConfigurationError(FeedbackAgentError):
    """
    Error in system configuration.

    Raised when required configuration is missing or invalid.
    """
    pass


class MissingAPIKeyError(ConfigurationError):
    """Raised when a required API key is not configured."""
    pass


class ProviderUnavailableError(ConfigurationError):
    """Raised when a routed provider is unknown, disabled or lacks a capability."""
    pass


# ==================== Provider Errors ====================

class ProviderError(FeedbackAgentError):
    """
    Base error for AI provider issues.

    Raised when there's a problem with an AI provider.
    """
    pass


class APIConnectionError(ProviderError):
    """Raised when connection to AI API fails."""
    pass


class APITimeoutError(ProviderError):
    """Raised when an AI API call exceeds its deadline."""
    pass


class APIResponseError(ProviderError):
    """Raised when API returns an unexpected or invalid response."""
    pass


class MalformedOutputError(ProviderError):
    """Raised when a model response cannot be parsed as the expected JSON."""
    pass


class TokenLimitError(ProviderError):
    """
    Raised when an embedding request exceeds the model's input token limit.

    Carries the reported count and limit so a material can be routed to
    review instead of failing outright.
    """

    code = "TOKEN_LIMIT"

    def __init__(self, message: str, token_count: int | None = None, token_limit: int | None = None):
        super().__init__(message, {
            'token_count': token_count,
            'token_limit': token_limit,
        })
        self.token_count = token_count
        self.token_limit = token_limit


# ==================== Input Errors ====================

class InputError(FeedbackAgentError):
    """
    Base error for malformed or missing request fields.

    Never retried.
    """
    pass


class InvalidInputError(InputError):
    """Raised when a request field is missing, of the wrong type or too large."""
    pass


# ==================== Access Errors ====================

class AccessError(FeedbackAgentError):
    """Base error for access control failures."""
    pass


class AccessDeniedError(AccessError):
    """Raised when an access code, session or teacher identity is rejected."""
    pass


class SessionExpiredError(AccessError):
    """Raised when an access session is past its expiry."""
    pass


# ==================== Lookup Errors ====================

class NotFoundError(FeedbackAgentError):
    """Raised when a requested agent, material or document doesn't exist."""
    pass


# ==================== Processing Errors ====================

class ExtractionError(FeedbackAgentError):
    """Raised when uploaded bytes cannot be decoded for their declared type."""
    pass


class StorageError(FeedbackAgentError):
    """
    Base error for storage-related issues.
    """
    pass


class BlobNotFoundError(StorageError):
    """Raised when a stored file is missing."""
    pass
