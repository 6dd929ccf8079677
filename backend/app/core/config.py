# 环境变量和配置
# pydantic‑settings 读取 .env = core/config.py

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# 本机直接跑 uvicorn 时（不走 Docker），才会用到 model_config.env_file=".env"：
# 此时它会读取 backend/.env

class Settings(BaseSettings):

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_prefix="",
        case_sensitive=False,
    )

    # ========= project config =========
    PROJECT_NAME: str = "WooSync Hub"
    ENVIRONMENT: str = "dev"
    API_PREFIX: str = "/api/v1"
    BACKEND_CORS_ORIGINS: str = "http://localhost:3000"
    LOG_LEVEL: str = Field("INFO", alias="LOG_LEVEL")
    # 逗号分隔；这些 logger 最低 WARNING（httpx 每个请求都打一条 INFO）
    LOG_QUIET_LOGGERS: str = Field("httpx,httpcore", alias="LOG_QUIET_LOGGERS")


    # ========= Database =========
    # 容器内默认连 docker 网络里的 "db" 服务；本机跑测试用 SQLite 内存库
    DATABASE_URL: str = Field(
        default="postgresql+psycopg://woo_user:woo_pass@db:5432/woosync_dev",
        alias="DATABASE_URL",
    )


    # ========= WooCommerce HTTP 层 配置 测试时调参 =========
    WOO_HTTP_TIMEOUT_MS: int = Field(10_000, ge=100, alias="WOO_HTTP_TIMEOUT_MS")     # 单次请求超时
    WOO_HTTP_RETRIES: int = Field(3, ge=1, le=10, alias="WOO_HTTP_RETRIES")            # 总尝试次数（含第一次）
    WOO_USER_AGENT: str = Field("WooSyncHub/1.0", alias="WOO_USER_AGENT")

    # 指数退避：base * factor^(attempt-1)，封顶 max，再加 0~ratio 的抖动
    WOO_BACKOFF_BASE_MS: int = Field(500, ge=0, alias="WOO_BACKOFF_BASE_MS")
    WOO_BACKOFF_FACTOR: float = Field(2.0, ge=1.0, alias="WOO_BACKOFF_FACTOR")
    WOO_BACKOFF_MAX_MS: int = Field(8_000, ge=0, alias="WOO_BACKOFF_MAX_MS")
    WOO_BACKOFF_JITTER_RATIO: float = Field(0.25, ge=0.0, le=1.0, alias="WOO_BACKOFF_JITTER_RATIO")
    WOO_RETRY_AFTER_MAX_MS: int = Field(10_000, ge=0, alias="WOO_RETRY_AFTER_MAX_MS")  # 429 Retry-After 上限，避免被服务端拖死

    WOO_SYNC_PER_PAGE: int = Field(100, ge=1, le=100, alias="WOO_SYNC_PER_PAGE")       # WooCommerce 官方上限 100


    # ========= 后台同步队列（进程内，重启即丢） =========
    SYNC_QUEUE_LANES: int = Field(1, ge=1, le=16, alias="SYNC_QUEUE_LANES")            # 并发通道数；同一 shop 永远串行
    SYNC_JOB_LOG_MAX_LINES: int = Field(500, ge=0, alias="SYNC_JOB_LOG_MAX_LINES")     # 0 = 不截断
    SYNC_JOB_LOG_TAIL: int = Field(50, ge=1, alias="SYNC_JOB_LOG_TAIL")                # API 只返回最近 N 行


    @property
    def cors_origins(self) -> list[str]:
        """BACKEND_CORS_ORIGINS 逗号分隔，如 http://localhost:3000,https://admin.local.test"""
        return [o.strip() for o in self.BACKEND_CORS_ORIGINS.split(",") if o.strip()]


settings = Settings()  # 只从环境读取（含 .env）
