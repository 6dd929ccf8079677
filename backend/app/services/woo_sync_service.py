"""
WooCommerce → 本地 catalog 的整店同步

三个阶段，顺序固定：
  1) categories  分页拉全量分类，先根后子写库（子分类的 parent 按 WooCommerce id 解析）
  2) products    分页拉全量商品，按 (shop, woocommerce_id) upsert，找不到再按 SKU 兜底；重建商品↔分类关联
  3) variations  对本店每个 variable 商品拉 variations 并 upsert
最后上报一条 complete 100/100。

进度约定：拉取阶段 current 固定为 0（total 随已拉取条数增长），处理阶段 current 从 1 数到 N，
因此同一阶段内 current 不会回退。
每页请求前、每条记录处理前都会 checkpoint（暂停在这里等待，取消在这里抛 JobCancelled）。
单条记录写库失败只记入 details["errors"]；拉取失败（WooError）直接向上抛，由队列把 job 置为 failed。
"""
from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from sqlalchemy.orm import Session

from app.core.config import settings
from app.integrations.woo import ApiError, NotFoundError, WooCommerceClient
from app.integrations.woo.normalizers import (
    category_ids_of,
    normalize_woo_category,
    normalize_woo_product,
    normalize_woo_variation,
)
from app.orchestration.background_sync.jobs import JobControl, SyncProgress, SyncResult
from app.repository import catalog_repo
from app.repository.catalog_repo import CategoryData, ProductData, VariantData

logger = logging.getLogger(__name__)


class ShopNotFoundError(LookupError):
    pass


ProgressCallback = Callable[[SyncProgress], None]


def _new_details() -> Dict[str, Any]:
    return {
        "categories_created": 0,
        "categories_updated": 0,
        "products_created": 0,
        "products_updated": 0,
        "variations_created": 0,
        "variations_updated": 0,
        "errors": [],
    }


def order_categories(categories: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """按层级深度稳定排序：根分类在前，子分类在其父分类之后"""
    parent_of = {c.get("id"): (c.get("parent") or 0) for c in categories}

    def depth(cid: Any) -> int:
        d, seen = 0, set()
        while parent_of.get(cid) and cid not in seen:
            seen.add(cid)
            cid = parent_of[cid]
            d += 1
        return d

    return sorted(categories, key=lambda c: depth(c.get("id")))


class WooCommerceProductSyncService:

    def __init__(
        self,
        shop_id: Union[str, uuid.UUID],
        client: WooCommerceClient,
        db: Session,
        *,
        control: Optional[JobControl] = None,
        progress: Optional[ProgressCallback] = None,
        per_page: Optional[int] = None,
    ) -> None:
        self.shop_id = shop_id if isinstance(shop_id, uuid.UUID) else uuid.UUID(str(shop_id))
        self.client = client
        self.db = db
        self.control = control
        self.progress = progress
        self.per_page = per_page or settings.WOO_SYNC_PER_PAGE


    async def sync_all(self) -> SyncResult:
        details = _new_details()
        logger.info("woo.sync.start shop=%s host=%s", self.shop_id, self.client.base_url)

        self._report("categories", 0, 0, "Starting category synchronization...")
        await self.sync_categories(details)

        self._report("products", 0, 0, "Starting product synchronization...")
        await self.sync_products(details)

        self._report("variations", 0, 0, "Starting variation synchronization...")
        await self.sync_variations(details)

        self._report("complete", 100, 100, "Synchronization completed")

        errors = details["errors"]
        success = not errors
        if success:
            products = details["products_created"] + details["products_updated"]
            categories = details["categories_created"] + details["categories_updated"]
            variations = details["variations_created"] + details["variations_updated"]
            message = f"Sync completed successfully: {products} products, {categories} categories, {variations} variations"
        else:
            message = f"Sync completed with {len(errors)} errors"

        logger.info(
            "woo.sync.end shop=%s success=%s categories=%s/%s products=%s/%s variations=%s/%s errors=%s",
            self.shop_id, success,
            details["categories_created"], details["categories_updated"],
            details["products_created"], details["products_updated"],
            details["variations_created"], details["variations_updated"],
            len(errors),
        )
        return SyncResult(success=success, message=message, details=details)


    # ---------- stages ----------
    async def sync_categories(self, details: Dict[str, Any]) -> None:
        raw = await self._fetch_all(
            "categories", "/products/categories", {"hide_empty": "false"}, "categories",
        )
        ordered = order_categories(raw)
        total = len(ordered)

        for idx, cat in enumerate(ordered, start=1):
            await self._checkpoint()
            name = cat.get("name") or cat.get("id")
            kind = "child" if cat.get("parent") else "root"
            self._report("categories", idx, total, f"Processing {kind} category: {name}")
            await asyncio.to_thread(self._save_category, cat, name, details)

    async def sync_products(self, details: Dict[str, Any]) -> None:
        raw = await self._fetch_all("products", "/products", {}, "products")
        total = len(raw)

        for idx, item in enumerate(raw, start=1):
            await self._checkpoint()
            name = item.get("name") or item.get("id")
            self._report("products", idx, total, f"Processing product: {name}")
            await asyncio.to_thread(self._save_product, item, name, details)

    async def sync_variations(self, details: Dict[str, Any]) -> None:
        targets = await asyncio.to_thread(self._variable_targets)
        total = len(targets)

        for idx, (product_id, woo_id, name) in enumerate(targets, start=1):
            await self._checkpoint()
            self._report("variations", idx, total, f"Processing variations for: {name}")

            try:
                variations = await self.client.get(
                    f"/products/{woo_id}/variations", params={"per_page": self.per_page},
                )
            except NotFoundError as e:
                # 远端已删除该商品：记一条错误，继续下一个
                logger.warning("woo.sync.variations_missing shop=%s product=%s", self.shop_id, woo_id)
                details["errors"].append(f"Failed to sync variations for product {name}: {e.message}")
                continue
            if not isinstance(variations, list):
                raise ApiError(f"Unexpected variations payload for product {woo_id}")

            for raw in variations:
                await self._checkpoint()
                await asyncio.to_thread(self._save_variation, product_id, raw, details)


    # ---------- 写库（同步 Session，在线程池里跑，一次只有一个调用在飞） ----------
    def _save_category(self, cat: Dict[str, Any], name: Any, details: Dict[str, Any]) -> None:
        try:
            data = CategoryData(**normalize_woo_category(cat))
            parent_woo_id = cat.get("parent") or 0
            if parent_woo_id:
                parent = catalog_repo.find_category(self.db, self.shop_id, str(parent_woo_id))
                data.parent_id = parent.id if parent else None
            _, created = catalog_repo.upsert_category(self.db, self.shop_id, data)
            self.db.commit()
            details["categories_created" if created else "categories_updated"] += 1
        except Exception as e:
            self.db.rollback()
            logger.warning("woo.sync.category_failed shop=%s woo_id=%s err=%s", self.shop_id, cat.get("id"), e)
            details["errors"].append(f"Failed to sync category {name}: {e}")

    def _save_product(self, item: Dict[str, Any], name: Any, details: Dict[str, Any]) -> None:
        try:
            data = ProductData(**normalize_woo_product(item))
            product, created = catalog_repo.upsert_product(self.db, self.shop_id, data)

            category_ids = []
            for woo_cat_id in category_ids_of(item):
                category = catalog_repo.find_category(self.db, self.shop_id, woo_cat_id)
                if category is not None:
                    category_ids.append(category.id)
            catalog_repo.replace_product_categories(self.db, product.id, category_ids)

            self.db.commit()
            details["products_created" if created else "products_updated"] += 1
        except Exception as e:
            self.db.rollback()
            logger.warning("woo.sync.product_failed shop=%s woo_id=%s err=%s", self.shop_id, item.get("id"), e)
            details["errors"].append(f"Failed to sync product {name}: {e}")

    def _save_variation(self, product_id: uuid.UUID, raw: Dict[str, Any], details: Dict[str, Any]) -> None:
        try:
            data = VariantData(**normalize_woo_variation(raw))
            _, created = catalog_repo.upsert_variant(self.db, product_id, data)
            self.db.commit()
            details["variations_created" if created else "variations_updated"] += 1
        except Exception as e:
            self.db.rollback()
            logger.warning("woo.sync.variation_failed shop=%s woo_id=%s err=%s", self.shop_id, raw.get("id"), e)
            details["errors"].append(f"Failed to sync variation {raw.get('id')}: {e}")

    def _variable_targets(self) -> List[Tuple[uuid.UUID, str, str]]:
        # rollback 会让 ORM 对象过期，先取出需要的列
        return [
            (p.id, p.woocommerce_id, p.name)
            for p in catalog_repo.list_variable_products(self.db, self.shop_id)
        ]

    # ---------- helpers ----------
    async def _fetch_all(self, stage: str, path: str, params: Dict[str, Any], label: str) -> List[Dict[str, Any]]:
        """翻页直到某页不足 per_page 条"""
        items: List[Dict[str, Any]] = []
        page = 1
        while True:
            await self._checkpoint()
            batch = await self.client.get(path, params={**params, "page": page, "per_page": self.per_page})
            if not isinstance(batch, list):
                raise ApiError(f"Unexpected payload for {path} page {page}")
            items.extend(batch)
            self._report(stage, 0, len(items), f"Fetched {len(items)} {label} from WooCommerce...")
            if len(batch) < self.per_page:
                return items
            page += 1

    async def _checkpoint(self) -> None:
        if self.control is not None:
            await self.control.checkpoint()

    def _report(self, stage: str, current: int, total: int, message: str) -> None:
        if self.progress is not None:
            self.progress(SyncProgress(stage=stage, current=current, total=total, message=message))
