"""
对外统一入口（Public Surface）：
- 从这里 import 需要的类/函数，内部实现可自由演进。
"""

from .http_client import (
    API_PREFIX,
    BackoffPolicy,
    ConnectionTestDetails,
    ConnectionTestResult,
    WooCommerceClient,
    WooConfig,
    normalize_base_url,
)

from .errors import (
    WooError, NetworkError, AuthError, NotFoundError, RateLimitedError, ApiError
)


__all__ = [
    "API_PREFIX",
    "BackoffPolicy", "WooConfig", "WooCommerceClient", "normalize_base_url",
    "ConnectionTestDetails", "ConnectionTestResult",
    "WooError", "NetworkError", "AuthError", "NotFoundError", "RateLimitedError", "ApiError",
]
