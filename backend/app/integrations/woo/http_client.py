"""
WooCommerce REST 低层 HTTP 客户端：Basic 鉴权 / 超时 / 重试退避 / 错误分类
  - request() 是唯一的发请求入口，get/post/put/delete 只是固定 method 的包装；
  - 429/5xx/网络异常在 retries（总尝试次数，含第一次）内退避重试，用尽后抛最后一次的分类异常；
  - 401/403/404/其它 4xx 不重试，直接抛；
  - test_connection() 三步探活（WP 站点 → wc/v3 鉴权 → products），所有异常都转成结构化结果，不往外抛。
"""

from __future__ import annotations

import asyncio
import base64
import logging
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Awaitable, Callable, Dict, Optional
from urllib.parse import urlsplit

import httpx

from app.core.config import settings
from app.integrations.woo.errors import (
    ApiError,
    AuthError,
    NetworkError,
    NotFoundError,
    RateLimitedError,
    WooError,
)
from app.utils.backoff import calc_backoff_ms

logger = logging.getLogger(__name__)

API_PREFIX = "/wp-json/wc/v3"

SleepFn = Callable[[float], Awaitable[Any]]


def normalize_base_url(url: str) -> str:
    """强制 https://，去掉末尾斜杠。"""
    normalized = (url or "").strip()
    if normalized.lower().startswith("http://"):
        normalized = "https://" + normalized[len("http://"):]
    if not normalized.lower().startswith("https://"):
        normalized = f"https://{normalized}"
    return normalized.rstrip("/")


def _mask_url(url: str) -> str:
    # 日志里只留域名，避免把 query 里的参数打出去
    try:
        return urlsplit(url).hostname or "[invalid-url]"
    except ValueError:
        return "[invalid-url]"


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Retry-After 可能是秒数，也可能是 HTTP-date；解析失败返回 None。"""
    if not value:
        return None
    value = value.strip()
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max(0.0, (when - datetime.now(timezone.utc)).total_seconds())


# ---------------- 配置 ----------------

@dataclass(frozen=True)
class BackoffPolicy:
    base_ms: int = 500
    factor: float = 2.0
    max_ms: int = 8000
    jitter_ratio: float = 0.25
    retry_after_max_ms: int = 10_000

    @classmethod
    def from_settings(cls) -> "BackoffPolicy":
        return cls(
            base_ms=settings.WOO_BACKOFF_BASE_MS,
            factor=settings.WOO_BACKOFF_FACTOR,
            max_ms=settings.WOO_BACKOFF_MAX_MS,
            jitter_ratio=settings.WOO_BACKOFF_JITTER_RATIO,
            retry_after_max_ms=settings.WOO_RETRY_AFTER_MAX_MS,
        )

    def delay_ms(self, attempt: int) -> int:
        return calc_backoff_ms(
            attempt,
            base_ms=self.base_ms,
            factor=self.factor,
            max_ms=self.max_ms,
            jitter_ratio=self.jitter_ratio,
        )


@dataclass(frozen=True)
class WooConfig:
    """每个 shop 构造一次，之后不可变。"""

    base_url: str
    consumer_key: str
    consumer_secret: str
    timeout_ms: int = 10_000
    retries: int = 3
    backoff: BackoffPolicy = field(default_factory=BackoffPolicy)

    def __post_init__(self) -> None:
        object.__setattr__(self, "base_url", normalize_base_url(self.base_url))
        if self.retries < 1:
            raise ValueError("retries must be >= 1 (it counts the first attempt)")
        if self.timeout_ms <= 0:
            raise ValueError("timeout_ms must be positive")

    @classmethod
    def from_settings(
        cls,
        base_url: str,
        consumer_key: str,
        consumer_secret: str,
        *,
        timeout_ms: Optional[int] = None,
        retries: Optional[int] = None,
        backoff: Optional[BackoffPolicy] = None,
    ) -> "WooConfig":
        return cls(
            base_url=base_url,
            consumer_key=consumer_key,
            consumer_secret=consumer_secret,
            timeout_ms=settings.WOO_HTTP_TIMEOUT_MS if timeout_ms is None else timeout_ms,
            retries=settings.WOO_HTTP_RETRIES if retries is None else retries,
            backoff=BackoffPolicy.from_settings() if backoff is None else backoff,
        )

    @property
    def auth_header(self) -> str:
        raw = f"{self.consumer_key}:{self.consumer_secret}".encode("utf-8")
        return "Basic " + base64.b64encode(raw).decode("ascii")


# ---------------- 连接测试结果 ----------------

@dataclass
class ConnectionTestDetails:
    wp_ok: bool = False
    wc_ok: bool = False
    products_ok: bool = False
    http_status: Optional[int] = None
    elapsed_ms: int = 0
    error: Optional[str] = None


@dataclass
class ConnectionTestResult:
    reachable: bool = False
    auth: bool = False
    details: ConnectionTestDetails = field(default_factory=ConnectionTestDetails)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# ---------------- 响应分类 ----------------

def _error_detail(resp: httpx.Response) -> str:
    """WooCommerce 的错误体一般是 {"code": ..., "message": ...}；否则截取文本。"""
    try:
        data = resp.json()
    except ValueError:
        return (resp.text or "")[:300]
    if isinstance(data, dict) and data.get("message"):
        return str(data["message"])
    return str(data)[:300]


def classify_response(resp: httpx.Response) -> WooError:
    """把非 2xx 响应转换成对应的异常类型（只构造，不抛）。"""
    status = resp.status_code
    detail = _error_detail(resp)

    if status in (401, 403):
        return AuthError(f"Authentication failed ({status}): {detail}".rstrip(": "), status)

    if status == 404:
        return NotFoundError(f"Resource not found: {resp.request.url.path}", status)

    if status == 429:
        retry_after = parse_retry_after(resp.headers.get("Retry-After"))
        return RateLimitedError("Rate limit exceeded", retry_after=retry_after, status=status)

    if status >= 500:
        return ApiError(f"API error: {status} {detail}".strip(), status, body=detail, retryable=True)

    return ApiError(f"API error: {status} {detail}".strip(), status, body=detail)


class WooCommerceClient:
    """WooCommerce REST API v3 的异步客户端：负责鉴权、超时、重试与错误分类。"""

    def __init__(
        self,
        base_url: str,
        consumer_key: str,
        consumer_secret: str,
        timeout_ms: Optional[int] = None,
        retries: Optional[int] = None,
        *,
        backoff: Optional[BackoffPolicy] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Optional[SleepFn] = None,
    ) -> None:
        """未传的参数走 settings；transport/sleep 允许测试替换网络层与退避等待。"""
        self.config = WooConfig.from_settings(
            base_url,
            consumer_key,
            consumer_secret,
            timeout_ms=timeout_ms,
            retries=retries,
            backoff=backoff,
        )
        self._transport = transport
        self._sleep: SleepFn = sleep or asyncio.sleep
        self._http: Optional[httpx.AsyncClient] = None

    @classmethod
    def from_config(cls, config: WooConfig, **kwargs: Any) -> "WooCommerceClient":
        return cls(
            config.base_url,
            config.consumer_key,
            config.consumer_secret,
            config.timeout_ms,
            config.retries,
            backoff=config.backoff,
            **kwargs,
        )

    @property
    def base_url(self) -> str:
        return self.config.base_url

    async def __aenter__(self) -> "WooCommerceClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._http is not None and not self._http.is_closed:
            await self._http.aclose()
        self._http = None


    # ---------- Public ----------
    def api_url(self, path: str) -> str:
        if not path.startswith("/"):
            path = "/" + path
        return f"{self.config.base_url}{API_PREFIX}{path}"

    async def request(
        self,
        method: str,
        path: str,
        body: Any = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """对 wc/v3 发请求并返回解析后的 JSON（204/空响应返回 None）。"""
        resp = await self._send(method.upper(), self.api_url(path), json_body=body, params=params)
        return self._as_json(resp)

    async def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return await self.request("GET", path, params=params)

    async def post(self, path: str, body: Any = None) -> Any:
        return await self.request("POST", path, body=body)

    async def put(self, path: str, body: Any = None) -> Any:
        return await self.request("PUT", path, body=body)

    async def delete(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return await self.request("DELETE", path, params=params)


    async def test_connection(self) -> ConnectionTestResult:
        """
        组合探活，不是单个请求：
          1) GET {base}/wp-json/（不带鉴权）→ wp_ok / reachable
          2) GET {base}/wp-json/wc/v3（带鉴权）→ wc_ok / auth
          3) GET /products?per_page=1 → products_ok；失败不会把 auth 改回 False
        任何异常都只降级对应标志并写入 details.error，本方法永不抛。
        """
        started = time.perf_counter()
        result = ConnectionTestResult()
        details = result.details
        base = self.config.base_url
        host = _mask_url(base)
        logger.info("woo.connection_test.start host=%s", host)

        try:
            # 1) WordPress 站点可达
            try:
                resp = await self._send("GET", f"{base}/wp-json/", auth=False)
            except WooError as e:
                details.http_status = e.status
                details.error = e.message
                return result
            details.http_status = resp.status_code
            details.wp_ok = result.reachable = True

            # 2) WooCommerce 鉴权
            try:
                resp = await self._send("GET", f"{base}{API_PREFIX}")
            except WooError as e:
                details.http_status = e.status
                details.error = e.message
                return result
            details.http_status = resp.status_code
            details.wc_ok = result.auth = True

            # 3) 商品列表（最小页）
            try:
                resp = await self._send("GET", self.api_url("/products"), params={"per_page": 1, "_fields": "id"})
                details.http_status = resp.status_code
                details.products_ok = True
            except WooError as e:
                logger.warning("woo.connection_test.products_failed host=%s err=%s", host, e.message)
                details.http_status = e.status
                details.products_ok = False
                details.error = e.message

        except Exception as e:
            # 兜底：非预期异常也只写进结果
            logger.exception("woo.connection_test.unexpected host=%s", host)
            details.error = str(e) or type(e).__name__

        finally:
            details.elapsed_ms = int((time.perf_counter() - started) * 1000)
            logger.info(
                "woo.connection_test.done host=%s reachable=%s auth=%s products_ok=%s elapsed_ms=%s",
                host, result.reachable, result.auth, details.products_ok, details.elapsed_ms,
            )

        return result


    # ---------- Internals ----------
    def _client(self) -> httpx.AsyncClient:
        if self._http is None or self._http.is_closed:
            self._http = httpx.AsyncClient(
                transport=self._transport,
                timeout=self.config.timeout_ms / 1000.0,
                follow_redirects=True,
            )
        return self._http

    def _headers(self, *, auth: bool) -> Dict[str, str]:
        headers = {
            "Accept": "application/json",
            "User-Agent": settings.WOO_USER_AGENT,
        }
        if auth:
            headers["Authorization"] = self.config.auth_header
            headers["Content-Type"] = "application/json"
        return headers

    async def _send(
        self,
        method: str,
        url: str,
        *,
        auth: bool = True,
        json_body: Any = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        """执行一次带重试的 HTTP 调用：成功返回 2xx 响应，失败抛分类后的 WooError。"""
        max_attempts = self.config.retries
        host = _mask_url(url)

        for attempt in range(1, max_attempts + 1):
            start = time.perf_counter()
            try:
                resp = await self._client().request(
                    method,
                    url,
                    headers=self._headers(auth=auth),
                    json=json_body,
                    params=params,
                )
            except httpx.TimeoutException as e:
                error: WooError = NetworkError(f"Request timeout after {self.config.timeout_ms}ms")
                error.__cause__ = e
            except (httpx.HTTPError, httpx.InvalidURL) as e:
                error = NetworkError(f"Network error: {str(e) or type(e).__name__}")
                error.__cause__ = e
            else:
                latency_ms = int((time.perf_counter() - start) * 1000)
                if resp.is_success:
                    logger.debug(
                        "woo.http.ok method=%s host=%s status=%s latency_ms=%s attempt=%s",
                        method, host, resp.status_code, latency_ms, attempt,
                    )
                    return resp
                error = classify_response(resp)

            if not error.retryable or attempt >= max_attempts:
                logger.warning(
                    "woo.http.failed method=%s host=%s status=%s attempt=%s/%s err=%s",
                    method, host, error.status, attempt, max_attempts, type(error).__name__,
                )
                raise error

            delay_ms = self._retry_delay_ms(error, attempt)
            logger.warning(
                "woo.http.retry method=%s host=%s status=%s attempt=%s/%s sleep_ms=%s err=%s",
                method, host, error.status, attempt, max_attempts, delay_ms, type(error).__name__,
            )
            await self._sleep(delay_ms / 1000.0)

        # 理论上不会走到这里
        raise NetworkError("unreachable retry loop")

    def _retry_delay_ms(self, error: WooError, attempt: int) -> int:
        """429 优先听服务端的 Retry-After（有上限），否则走指数退避。"""
        policy = self.config.backoff
        if isinstance(error, RateLimitedError) and error.retry_after is not None:
            return int(min(error.retry_after * 1000, policy.retry_after_max_ms))
        return policy.delay_ms(attempt)

    def _as_json(self, resp: httpx.Response) -> Any:
        if resp.status_code == 204 or not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as e:
            text = (resp.text or "")[:500]  # 截断，避免日志/异常过大
            raise ApiError(f"non-JSON response (status={resp.status_code}): {text}", resp.status_code, body=text) from e
