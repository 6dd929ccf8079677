from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.core.config import settings
from app.core.logging import configure_logging
from app.api.v1 import api_v1
from app.db.session import dispose_engine
from app.orchestration.background_sync import BackgroundSyncQueue
from app.orchestration.background_sync.runner import run_shop_sync


logger = configure_logging()

MUTATING_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})


@asynccontextmanager
async def lifespan(app: FastAPI):
    # 队列跟随应用生命周期：启动时拉起 worker，关停时取消并释放连接池
    queue = BackgroundSyncQueue(run_shop_sync)
    queue.start()
    app.state.sync_queue = queue
    logger.info("app.startup env=%s lanes=%s origins=%s", settings.ENVIRONMENT, settings.SYNC_QUEUE_LANES, settings.cors_origins)
    try:
        yield
    finally:
        await queue.stop()
        dispose_engine()
        logger.info("app.shutdown")


def create_app() -> FastAPI:
    app = FastAPI(title=settings.PROJECT_NAME, lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def reject_untrusted_origin(request: Request, call_next):
        # 改数据的请求：带了 Origin 就必须在白名单里；不带（curl/脚本）放行
        origin = request.headers.get("origin")
        if request.method in MUTATING_METHODS and origin and origin not in settings.cors_origins:
            logger.warning("http.origin_rejected method=%s path=%s origin=%s", request.method, request.url.path, origin)
            return JSONResponse(status_code=403, content={"detail": "Bad Origin"})
        return await call_next(request)

    app.include_router(api_v1, prefix=settings.API_PREFIX)

    @app.get("/")
    def root():
        # Docker 健康检查用，不碰 DB
        return {"app": settings.PROJECT_NAME, "env": settings.ENVIRONMENT, "ok": True}

    return app


app = create_app()
