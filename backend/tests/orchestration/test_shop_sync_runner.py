"""默认例程 run_shop_sync：队列 → DB 取店铺 → WooCommerce 拉取 → 写库"""
import asyncio
import uuid

import httpx
import pytest

from app.integrations.woo import BackoffPolicy, WooCommerceClient
from app.orchestration.background_sync import BackgroundSyncQueue, JobStatus
from app.orchestration.background_sync import runner
from app.repository import catalog_repo, shop_repo
from app.repository.shop_repo import ShopCreateDTO


def _handler(request: httpx.Request) -> httpx.Response:
    path = request.url.path.replace("/wp-json/wc/v3", "")
    if path == "/products/categories":
        return httpx.Response(200, json=[{"id": 1, "name": "All", "parent": 0}])
    if path == "/products":
        return httpx.Response(200, json=[{"id": 5, "name": "Mug", "sku": "MUG", "type": "simple", "categories": [{"id": 1}]}])
    return httpx.Response(404)


@pytest.fixture
def patched_runner(monkeypatch, session_factory):
    created = []

    def _client(url, key, secret):
        created.append((url, key, secret))
        return WooCommerceClient(
            url, key, secret,
            retries=1,
            backoff=BackoffPolicy(base_ms=1, jitter_ratio=0.0),
            transport=httpx.MockTransport(_handler),
        )

    monkeypatch.setattr(runner, "SessionLocal", session_factory)
    monkeypatch.setattr(runner, "WooCommerceClient", _client)
    return created


def _run_job(shop_id):
    async def scenario():
        queue = BackgroundSyncQueue(runner.run_shop_sync)
        job = queue.enqueue(shop_id)
        while not job.is_terminal:
            await asyncio.sleep(0.005)
        await queue.stop()
        return job
    return asyncio.run(scenario())


def test_runner_syncs_registered_shop(db_session, patched_runner):
    shop = shop_repo.create(
        db_session,
        ShopCreateDTO(name="Demo", url="https://demo.example", consumer_key="ck_1234567890", consumer_secret="cs_1234567890"),
    )

    job = _run_job(str(shop.id))

    assert job.status is JobStatus.COMPLETED
    assert job.shop_name == "Demo"
    assert job.details["products_created"] == 1
    assert job.details["categories_created"] == 1
    assert job.message.startswith("Sync completed successfully")
    assert patched_runner == [("https://demo.example", "ck_1234567890", "cs_1234567890")]
    assert catalog_repo.count_products(db_session, shop.id) == 1
    assert [p.stage for p in job.progress][-1] == "complete"


def test_runner_fails_job_for_unknown_shop(patched_runner):
    missing = str(uuid.uuid4())
    job = _run_job(missing)

    assert job.status is JobStatus.FAILED
    assert job.error == f"Shop not found: {missing}"
    assert patched_runner == []
