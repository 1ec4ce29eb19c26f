"""
Structured error system for the chat-completion connector.

Transport and configuration failures are fatal and surface as one of the
ConnectorError subclasses below. Function-level failures never raise out of
an exchange; they are carried inside content items instead.
"""

from typing import Any, Dict, Optional
import logging

logger = logging.getLogger(__name__)


class ConnectorError(Exception):
    """Base exception for all chat-completion connector errors."""

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None
    ):
        super().__init__(message)
        self.message = message
        self.status = status
        self.code = code
        self.details = details or {}
        self.original_error = original_error

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary representation."""
        return {
            "message": self.message,
            "status": self.status,
            "code": self.code,
            "details": self.details,
            "type": self.__class__.__name__
        }

    def __str__(self) -> str:
        parts = [self.message]
        if self.status:
            parts.append(f"(Status: {self.status})")
        if self.code:
            parts.append(f"(Code: {self.code})")
        return " ".join(parts)


class AuthenticationError(ConnectorError):
    """Error related to authentication issues."""

    def __init__(
        self,
        message: str = "Authentication failed",
        auth_type: Optional[str] = None,
        **kwargs
    ):
        super().__init__(message, status=401, code="AUTHENTICATION_ERROR", **kwargs)
        if auth_type:
            self.details["auth_type"] = auth_type


class AuthorizationError(ConnectorError):
    """Error related to authorization/permission issues."""

    def __init__(
        self,
        message: str = "Authorization failed",
        resource: Optional[str] = None,
        **kwargs
    ):
        super().__init__(message, status=403, code="AUTHORIZATION_ERROR", **kwargs)
        if resource:
            self.details["resource"] = resource


class QuotaExceededError(ConnectorError):
    """Error when the API rate limit or quota is exceeded."""

    def __init__(
        self,
        message: str = "API quota exceeded",
        retry_after: Optional[int] = None,
        **kwargs
    ):
        super().__init__(message, status=429, code="QUOTA_EXCEEDED", **kwargs)
        if retry_after:
            self.details["retry_after"] = retry_after


class ModelUnavailableError(ConnectorError):
    """Error when the requested model or deployment does not exist."""

    def __init__(
        self,
        message: str = "Model unavailable",
        model: Optional[str] = None,
        **kwargs
    ):
        super().__init__(message, status=404, code="MODEL_UNAVAILABLE", **kwargs)
        if model:
            self.details["model"] = model


class InvalidRequestError(ConnectorError):
    """Error for invalid API requests."""

    def __init__(
        self,
        message: str = "Invalid request",
        field: Optional[str] = None,
        **kwargs
    ):
        super().__init__(message, status=400, code="INVALID_REQUEST", **kwargs)
        if field:
            self.details["field"] = field


class ContentFilterError(ConnectorError):
    """Error when content is filtered by the service's safety systems."""

    def __init__(
        self,
        message: str = "Content filtered",
        filter_reason: Optional[str] = None,
        **kwargs
    ):
        super().__init__(message, status=400, code="CONTENT_FILTERED", **kwargs)
        if filter_reason:
            self.details["filter_reason"] = filter_reason


class ServerError(ConnectorError):
    """Error for server-side issues."""

    def __init__(
        self,
        message: str = "Server error",
        **kwargs
    ):
        super().__init__(message, code="SERVER_ERROR", **kwargs)
        if not kwargs.get("status"):
            self.status = 500


class NetworkError(ConnectorError):
    """Error for network-related issues."""

    def __init__(
        self,
        message: str = "Network error",
        **kwargs
    ):
        super().__init__(message, code="NETWORK_ERROR", **kwargs)


class TimeoutError(ConnectorError):
    """Error for request timeouts."""

    def __init__(
        self,
        message: str = "Request timeout",
        timeout_seconds: Optional[float] = None,
        **kwargs
    ):
        super().__init__(message, code="TIMEOUT_ERROR", **kwargs)
        if timeout_seconds:
            self.details["timeout_seconds"] = timeout_seconds


class InvalidResponseError(ConnectorError):
    """Error when the service returns a payload that cannot be read."""

    def __init__(
        self,
        message: str = "Invalid response",
        **kwargs
    ):
        super().__init__(message, code="INVALID_RESPONSE", **kwargs)


class ConfigurationError(ConnectorError):
    """Error related to connector configuration."""

    def __init__(
        self,
        message: str = "Configuration error",
        config_field: Optional[str] = None,
        **kwargs
    ):
        super().__init__(message, code="CONFIGURATION_ERROR", **kwargs)
        if config_field:
            self.details["config_field"] = config_field


class FunctionCallArgumentsError(Exception):
    """Raised (and attached, never thrown out of a parser) for unreadable call arguments."""


def error_for_status(
    status: int,
    message: str,
    original_error: Optional[Exception] = None
) -> ConnectorError:
    """
    Map an HTTP status code to the matching ConnectorError subclass.

    Args:
        status: HTTP status code returned by the service
        message: Error message (usually the response body)
        original_error: Underlying exception, if any

    Returns:
        Classified ConnectorError instance
    """
    lowered = message.lower()

    if status == 401:
        return AuthenticationError(message, original_error=original_error)
    elif status == 403:
        return AuthorizationError(message, original_error=original_error)
    elif status == 404:
        return ModelUnavailableError(message, original_error=original_error)
    elif status == 429:
        return QuotaExceededError(message, original_error=original_error)
    elif status == 400:
        if "content_filter" in lowered or "content management policy" in lowered:
            return ContentFilterError(message, original_error=original_error)
        return InvalidRequestError(message, original_error=original_error)
    elif 500 <= status < 600:
        return ServerError(message, status=status, original_error=original_error)

    return ConnectorError(message, status=status, original_error=original_error)


def classify_error(error: Exception) -> ConnectorError:
    """
    Classify a generic exception into a structured ConnectorError.

    Args:
        error: The original exception

    Returns:
        Classified ConnectorError instance
    """
    if isinstance(error, ConnectorError):
        return error

    error_message = str(error)
    error_lower = error_message.lower()

    status = getattr(error, 'status', None) or getattr(error, 'status_code', None)
    if isinstance(status, int):
        return error_for_status(status, error_message, original_error=error)

    if "timeout" in error_lower or "timed out" in error_lower:
        return TimeoutError(error_message, original_error=error)
    elif "network" in error_lower or "connection" in error_lower:
        return NetworkError(error_message, original_error=error)
    elif "auth" in error_lower or "unauthorized" in error_lower:
        return AuthenticationError(error_message, original_error=error)
    elif "quota" in error_lower or "rate limit" in error_lower:
        return QuotaExceededError(error_message, original_error=error)
    elif "config" in error_lower:
        return ConfigurationError(error_message, original_error=error)

    return ConnectorError(error_message, original_error=error)


def create_user_friendly_message(error: ConnectorError) -> str:
    """
    Create a user-friendly error message.

    Args:
        error: The ConnectorError to convert

    Returns:
        User-friendly error message
    """
    if isinstance(error, AuthenticationError):
        return "Authentication failed. Please check the CHAT_CONNECTOR_API_KEY environment variable."

    elif isinstance(error, AuthorizationError):
        return "You don't have permission to access this deployment. Please check your account permissions."

    elif isinstance(error, QuotaExceededError):
        retry_after = error.details.get("retry_after")
        if retry_after:
            return f"API quota exceeded. Please try again in {retry_after} seconds."
        return "API quota exceeded. Please try again later or check your quota limits."

    elif isinstance(error, ModelUnavailableError):
        model = error.details.get("model")
        if model:
            return f"The model '{model}' is not available. Please check the deployment name."
        return "The requested model is not available. Please check the deployment name."

    elif isinstance(error, ContentFilterError):
        return "Content was filtered by safety systems. Please modify your request and try again."

    elif isinstance(error, NetworkError):
        return "Network error occurred. Please check your internet connection and try again."

    elif isinstance(error, TimeoutError):
        return "The request timed out. Please try again."

    elif isinstance(error, ServerError):
        return "A server error occurred. Please try again later."

    else:
        return f"An error occurred: {error.message}"
