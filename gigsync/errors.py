from __future__ import annotations
from typing import Any, Dict, List, Optional

import httpx

API_ERROR_MESSAGES = {
    "UNAUTHORIZED": "You are not authorized to perform this action",
    "AUTHENTICATION_FAILED": "Authentication failed. Please log in again.",
    "SESSION_EXPIRED": "Session expired. Please login again.",
    "NOT_AUTHENTICATED": "Please log in to continue",
    "SERVER_ERROR": "Server error. Please try again later.",
    "NOT_FOUND": "The requested resource was not found",
    "VALIDATION_ERROR": "Please check your input and try again",
    "NETWORK_ERROR": "Unable to connect to the server",
    "FORBIDDEN": "You do not have permission to perform this action",
    "RATE_LIMITED": "Too many requests. Please try again later.",
}


class ApiError(RuntimeError):
    """REST 호출 실패. UI는 message만 보여주면 되도록 정리된 형태로 올라갑니다."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        *,
        response: Optional[httpx.Response] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.response = response
        self.details = details or {}


class SessionExpiredError(ApiError):
    pass

class AuthenticationFailedError(ApiError):
    pass

class NotAuthenticatedError(ApiError):
    pass

class PermissionDeniedError(ApiError):
    pass

class NotFoundError(ApiError):
    pass

class ServerError(ApiError):
    pass

class NetworkError(ApiError):
    pass


class ValidationError(ApiError):
    def __init__(self, message: str, errors: Dict[str, List[str]], **kwargs: Any) -> None:
        super().__init__(message, 422, **kwargs)
        self.errors = errors


class RateLimitedError(ApiError):
    def __init__(self, message: str, retry_after: float, **kwargs: Any) -> None:
        super().__init__(message, 429, **kwargs)
        self.retry_after = retry_after


class LiveConnectionError(RuntimeError):
    """실시간 연결이 열려 있지 않은 상태에서 전송을 시도한 경우."""
    pass
