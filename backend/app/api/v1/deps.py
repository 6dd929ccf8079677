# 路由共享依赖：队列实例、WooCommerce client 工厂。测试里用 dependency_overrides 替换。

from __future__ import annotations

from typing import Callable

from fastapi import HTTPException, Request

from app.integrations.woo import WooCommerceClient
from app.orchestration.background_sync import BackgroundSyncQueue


WooClientFactory = Callable[[str, str, str], WooCommerceClient]


def get_sync_queue(request: Request) -> BackgroundSyncQueue:
    # lifespan 里创建并挂到 app.state
    queue = getattr(request.app.state, "sync_queue", None)
    if queue is None:
        raise HTTPException(status_code=503, detail="sync queue is not running")
    return queue


def get_woo_client_factory() -> WooClientFactory:
    return WooCommerceClient
