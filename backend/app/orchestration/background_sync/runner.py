"""
队列的默认同步例程：一个 job = 一次整店同步。
每次执行都新开 DB session 和 HTTP client，结束后一并关闭。
Session 是同步的：查询和写库都丢到线程里，不占事件循环。
"""
from __future__ import annotations

import asyncio
import logging
from typing import Optional

from app.db.session import SessionLocal
from app.integrations.woo import WooCommerceClient
from app.orchestration.background_sync.jobs import JobControl, SyncJob, SyncResult
from app.orchestration.background_sync.queue import ProgressReporter
from app.repository import shop_repo
from app.services.woo_sync_service import ShopNotFoundError, WooCommerceProductSyncService

logger = logging.getLogger(__name__)


async def run_shop_sync(job: SyncJob, control: JobControl, report: ProgressReporter) -> Optional[SyncResult]:
    db = SessionLocal()
    try:
        shop = await asyncio.to_thread(shop_repo.get, db, job.shop_id)
        if shop is None:
            raise ShopNotFoundError(f"Shop not found: {job.shop_id}")
        job.shop_name = shop.name

        async with WooCommerceClient(shop.url, shop.consumer_key, shop.consumer_secret) as client:
            service = WooCommerceProductSyncService(shop.id, client, db, control=control, progress=report)
            result = await service.sync_all()

        logger.info("sync.runner.done job=%s shop=%s success=%s", job.id, shop.name, result.success)
        return result
    finally:
        db.close()
