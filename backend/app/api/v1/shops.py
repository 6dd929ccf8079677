# 店铺登记 + 连接测试
from __future__ import annotations

import asyncio
from typing import List, Optional
from urllib.parse import urlsplit

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.orm import Session

from app.api.v1.deps import WooClientFactory, get_woo_client_factory
from app.db.model.shop import Shop
from app.db.session import get_db
from app.integrations.woo import ConnectionTestResult, normalize_base_url
from app.repository import shop_repo
from app.repository.shop_repo import DuplicateShopError, ShopCreateDTO

router = APIRouter(prefix="/shops", tags=["shops"])


class ShopCredentials(BaseModel):
    url: str
    consumer_key: str = Field(min_length=10, max_length=500)
    consumer_secret: str = Field(min_length=10, max_length=500)

    @field_validator("url")
    @classmethod
    def _normalize_url(cls, v: str) -> str:
        """统一成 https://host[/path]，去掉末尾斜杠"""
        if not v or not v.strip():
            raise ValueError("url is required")
        normalized = normalize_base_url(v)
        try:
            host = urlsplit(normalized).hostname
        except ValueError:
            host = None
        if not host:
            raise ValueError("invalid shop url")
        return normalized

    @field_validator("consumer_key", "consumer_secret")
    @classmethod
    def _strip(cls, v: str) -> str:
        return v.strip()


class ShopCreate(ShopCredentials):
    name: str = Field(min_length=1, max_length=255)


class ShopOut(BaseModel):
    id: str
    name: str
    url: str
    status: str
    last_connection_ok: Optional[bool] = None
    last_connection_check_at: Optional[str] = None
    created_at: Optional[str] = None


class ConnectionDetailsOut(BaseModel):
    wp_ok: bool
    wc_ok: bool
    products_ok: bool
    http_status: Optional[int] = None
    elapsed_ms: int
    error: Optional[str] = None


class ConnectionTestOut(BaseModel):
    success: bool
    error: Optional[str] = None
    reachable: bool
    auth: bool
    details: ConnectionDetailsOut


@router.get("", response_model=List[ShopOut])
def list_shops(db: Session = Depends(get_db)) -> List[ShopOut]:
    return [_to_out(s) for s in shop_repo.list_all(db)]


@router.post("", response_model=ShopOut, status_code=status.HTTP_201_CREATED)
def create_shop(body: ShopCreate, db: Session = Depends(get_db)) -> ShopOut:
    try:
        shop = shop_repo.create(
            db,
            ShopCreateDTO(
                name=body.name.strip(),
                url=body.url,
                consumer_key=body.consumer_key,
                consumer_secret=body.consumer_secret,
            ),
        )
    except DuplicateShopError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return _to_out(shop)


# 注意：/test 要在 /{shop_id} 之前注册，避免被当成 shop_id
@router.post("/test", response_model=ConnectionTestOut)
async def test_credentials(
    body: ShopCredentials,
    client_factory: WooClientFactory = Depends(get_woo_client_factory),
) -> ConnectionTestOut:
    """未保存的凭据直接探活；不写库"""
    async with client_factory(body.url, body.consumer_key, body.consumer_secret) as client:
        result = await client.test_connection()
    return _to_test_out(result)


@router.get("/{shop_id}", response_model=ShopOut)
def get_shop(shop_id: str, db: Session = Depends(get_db)) -> ShopOut:
    shop = shop_repo.get(db, shop_id)
    if shop is None:
        raise HTTPException(status_code=404, detail="Shop not found")
    return _to_out(shop)


@router.post("/{shop_id}/test", response_model=ConnectionTestOut)
async def test_shop_connection(
    shop_id: str,
    db: Session = Depends(get_db),
    client_factory: WooClientFactory = Depends(get_woo_client_factory),
) -> ConnectionTestOut:
    """已登记店铺探活，结果写回 last_connection_ok / last_connection_check_at / status"""
    shop = await asyncio.to_thread(shop_repo.get, db, shop_id)
    if shop is None:
        raise HTTPException(status_code=404, detail="Shop not found")

    async with client_factory(shop.url, shop.consumer_key, shop.consumer_secret) as client:
        result = await client.test_connection()

    await asyncio.to_thread(shop_repo.record_connection_check, db, shop, result.auth)
    return _to_test_out(result)


def _to_out(shop: Shop) -> ShopOut:
    return ShopOut(
        id=str(shop.id),
        name=shop.name,
        url=shop.url,
        status=shop.status,
        last_connection_ok=shop.last_connection_ok,
        last_connection_check_at=shop.last_connection_check_at.isoformat() if shop.last_connection_check_at else None,
        created_at=shop.created_at.isoformat() if shop.created_at else None,
    )


def _to_test_out(result: ConnectionTestResult) -> ConnectionTestOut:
    d = result.details
    return ConnectionTestOut(
        success=result.auth,
        error=d.error or (None if result.auth else "Connection or authentication failed"),
        reachable=result.reachable,
        auth=result.auth,
        details=ConnectionDetailsOut(
            wp_ok=d.wp_ok,
            wc_ok=d.wc_ok,
            products_ok=d.products_ok,
            http_status=d.http_status,
            elapsed_ms=d.elapsed_ms,
            error=d.error,
        ),
    )
