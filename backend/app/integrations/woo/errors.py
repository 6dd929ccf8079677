"""
   WooCommerce 集成层专用异常类型。
   把 HTTP 状态码/网络异常归类成几种类型，重试循环只看 retryable，上层只看类型。
"""
from __future__ import annotations

from typing import Any, Optional


class WooError(Exception):
    """Base for all WooCommerce client errors."""

    retryable: bool = False

    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.status = status


class NetworkError(WooError):
    """Transport-level failure: timeout, DNS, connection refused."""

    retryable = True


class AuthError(WooError):
    """401/403: consumer key/secret rejected."""


class NotFoundError(WooError):
    """404: endpoint or resource absent."""

    def __init__(self, message: str = "Resource not found", status: Optional[int] = 404) -> None:
        super().__init__(message, status)


class RateLimitedError(WooError):
    """429 Too Many Requests; retry_after is in seconds when the server sent one."""

    retryable = True

    def __init__(self, message: str, retry_after: Optional[float] = None, status: Optional[int] = 429) -> None:
        super().__init__(message, status)
        self.retry_after = retry_after


class ApiError(WooError):
    """Any other non-2xx (or unparsable 2xx); 5xx are flagged retryable."""

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        body: Any = None,
        retryable: bool = False,
    ) -> None:
        super().__init__(message, status)
        self.body = body
        self.retryable = retryable
