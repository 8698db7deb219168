"""Exceptions raised by the broker's exchange, validation and upstream helpers."""

from typing import Any, Dict, Optional


class BrokerError(Exception):
    """Base error rendered as a JSON body by the app's exception handler."""

    status_code = 500
    error = "Internal server error"

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        details: Any = None,
        error: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details
        if status_code is not None:
            self.status_code = status_code
        if error is not None:
            self.error = error

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.error, "message": self.message}
        if self.details is not None:
            payload["details"] = self.details
        return payload


class ConfigurationError(BrokerError):
    error = "Configuration error"


class TokenExchangeError(BrokerError):
    status_code = 502
    error = "Token exchange failed"


class TokenValidationError(BrokerError):
    status_code = 401
    error = "Unauthorized"


class JWKSFetchError(TokenValidationError):
    pass


class InsufficientScopeError(BrokerError):
    status_code = 403
    error = "Insufficient permissions"


class UpstreamError(BrokerError):
    status_code = 502
    error = "Upstream request failed"
