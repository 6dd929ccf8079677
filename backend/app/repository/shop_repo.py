# shop database repository

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Union

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.db.model.shop import Shop
from app.utils.clock import now_utc


class DuplicateShopError(ValueError):
    """同一个 URL 已登记过"""


@dataclass(slots=True)
class ShopCreateDTO:
    name: str
    url: str                 # 已规范化
    consumer_key: str
    consumer_secret: str


def _as_uuid(shop_id: Union[str, uuid.UUID]) -> Optional[uuid.UUID]:
    if isinstance(shop_id, uuid.UUID):
        return shop_id
    try:
        return uuid.UUID(str(shop_id))
    except ValueError:
        return None


# ---------- Query ----------
def list_all(db: Session) -> list[Shop]:
    stmt = select(Shop).order_by(Shop.created_at.asc(), Shop.name.asc())
    return list(db.scalars(stmt))


def get(db: Session, shop_id: Union[str, uuid.UUID]) -> Optional[Shop]:
    """非法 id 视为不存在"""
    key = _as_uuid(shop_id)
    if key is None:
        return None
    return db.get(Shop, key)


def get_by_url(db: Session, url: str) -> Optional[Shop]:
    stmt = select(Shop).where(Shop.url == url)
    return db.scalars(stmt).first()


# ---------- Mutations ----------
def create(db: Session, dto: ShopCreateDTO) -> Shop:
    if get_by_url(db, dto.url) is not None:
        raise DuplicateShopError(f"shop already registered: {dto.url}")

    shop = Shop(
        name=dto.name,
        url=dto.url,
        consumer_key=dto.consumer_key,
        consumer_secret=dto.consumer_secret,
        status="active",
    )
    db.add(shop)
    try:
        db.commit()
    except IntegrityError as e:
        # 并发登记同一 URL
        db.rollback()
        raise DuplicateShopError(f"shop already registered: {dto.url}") from e
    db.refresh(shop)
    return shop


def record_connection_check(db: Session, shop: Shop, ok: bool, *, checked_at: Optional[datetime] = None) -> Shop:
    """写回最近一次连接测试结果：成功 → active，失败 → error"""
    shop.last_connection_ok = ok
    shop.last_connection_check_at = checked_at or now_utc()
    shop.status = "active" if ok else "error"
    db.commit()
    db.refresh(shop)
    return shop
