# catalog (categories / products / variants) database repository
#
# 这里的函数只 flush 不 commit：事务边界由调用方（同步服务按单条记录）控制。

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from app.db.model.catalog import Category, Product, ProductCategory, ProductVariant
from app.utils.clock import now_utc


class SkuConflictError(ValueError):
    """同店铺下 SKU 已被另一个商品占用"""


@dataclass(slots=True)
class CategoryData:
    woocommerce_id: str
    name: str
    slug: Optional[str] = None
    description: Optional[str] = None
    image: Optional[str] = None
    menu_order: int = 0
    parent_id: Optional[uuid.UUID] = None


@dataclass(slots=True)
class ProductData:
    woocommerce_id: str
    sku: str
    name: str
    slug: Optional[str] = None
    description: Optional[str] = None
    short_description: Optional[str] = None
    base_price: Optional[Decimal] = None
    regular_price: Optional[Decimal] = None
    sale_price: Optional[Decimal] = None
    status: str = "draft"
    type: str = "simple"
    manage_stock: bool = False
    stock_quantity: Optional[int] = None
    stock_status: Optional[str] = None
    weight: Optional[Decimal] = None
    dimensions: Dict[str, Any] = field(default_factory=dict)
    featured_image: Optional[str] = None
    gallery_images: List[str] = field(default_factory=list)
    woocommerce_data: Dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class VariantData:
    woocommerce_id: str
    sku: str
    attributes: Dict[str, Any] = field(default_factory=dict)
    price: Optional[Decimal] = None
    regular_price: Optional[Decimal] = None
    sale_price: Optional[Decimal] = None
    manage_stock: bool = False
    stock_quantity: Optional[int] = None
    stock_status: Optional[str] = None
    weight: Optional[Decimal] = None
    dimensions: Dict[str, Any] = field(default_factory=dict)
    image: Optional[str] = None


def _apply(row: Any, data: Any, skip: Iterable[str] = ()) -> None:
    skipped = set(skip)
    for name in data.__slots__:
        if name not in skipped:
            setattr(row, name, getattr(data, name))



# ---------- Categories ----------
def find_category(db: Session, shop_id: uuid.UUID, woocommerce_id: str) -> Optional[Category]:
    stmt = select(Category).where(
        Category.shop_id == shop_id,
        Category.woocommerce_id == woocommerce_id,
    )
    return db.scalars(stmt).first()


def upsert_category(db: Session, shop_id: uuid.UUID, data: CategoryData) -> Tuple[Category, bool]:
    """按 (shop_id, woocommerce_id) 有则更新，无则插入；返回 (row, created)"""
    row = find_category(db, shop_id, data.woocommerce_id)
    created = row is None
    if row is None:
        row = Category(shop_id=shop_id, woocommerce_id=data.woocommerce_id)
        db.add(row)
    _apply(row, data, skip=("woocommerce_id",))
    row.last_synced_at = now_utc()
    db.flush()
    return row, created


def list_categories(db: Session, shop_id: uuid.UUID) -> List[Category]:
    stmt = select(Category).where(Category.shop_id == shop_id).order_by(Category.name.asc())
    return list(db.scalars(stmt))



# ---------- Products ----------
def find_product(db: Session, shop_id: uuid.UUID, woocommerce_id: str) -> Optional[Product]:
    stmt = select(Product).where(
        Product.shop_id == shop_id,
        Product.woocommerce_id == woocommerce_id,
    )
    return db.scalars(stmt).first()


def find_product_by_sku(db: Session, shop_id: uuid.UUID, sku: str) -> Optional[Product]:
    stmt = select(Product).where(Product.shop_id == shop_id, Product.sku == sku)
    return db.scalars(stmt).first()


def upsert_product(db: Session, shop_id: uuid.UUID, data: ProductData) -> Tuple[Product, bool]:
    """
    先按 WooCommerce id 找，找不到再按 SKU 找（避免同一商品换了 id 后插出重复行）。
    SKU 变更时若已被同店铺另一商品占用，抛 SkuConflictError。
    """
    row = find_product(db, shop_id, data.woocommerce_id)
    if row is None and data.sku:
        row = find_product_by_sku(db, shop_id, data.sku)

    if row is not None and row.sku != data.sku:
        other = find_product_by_sku(db, shop_id, data.sku)
        if other is not None and other.id != row.id:
            raise SkuConflictError(f'SKU "{data.sku}" is already in use by another product')

    created = row is None
    if row is None:
        row = Product(shop_id=shop_id)
        db.add(row)
    _apply(row, data)
    row.last_synced_at = now_utc()
    db.flush()
    return row, created


def replace_product_categories(db: Session, product_id: uuid.UUID, category_ids: Iterable[uuid.UUID]) -> int:
    """先删后插；重复的分类 id 只写一次。返回写入条数"""
    db.execute(delete(ProductCategory).where(ProductCategory.product_id == product_id))
    unique_ids = list(dict.fromkeys(category_ids))
    for category_id in unique_ids:
        db.add(ProductCategory(product_id=product_id, category_id=category_id))
    db.flush()
    return len(unique_ids)


def list_product_category_ids(db: Session, product_id: uuid.UUID) -> List[uuid.UUID]:
    stmt = select(ProductCategory.category_id).where(ProductCategory.product_id == product_id)
    return list(db.scalars(stmt))


def list_variable_products(db: Session, shop_id: uuid.UUID) -> List[Product]:
    stmt = (
        select(Product)
        .where(Product.shop_id == shop_id, Product.type == "variable")
        .order_by(Product.created_at.asc(), Product.woocommerce_id.asc())
    )
    return list(db.scalars(stmt))


def count_products(db: Session, shop_id: uuid.UUID) -> int:
    stmt = select(func.count()).select_from(Product).where(Product.shop_id == shop_id)
    return int(db.scalar(stmt) or 0)



# ---------- Variants ----------
def find_variant(db: Session, product_id: uuid.UUID, woocommerce_id: str, sku: Optional[str] = None) -> Optional[ProductVariant]:
    stmt = select(ProductVariant).where(
        ProductVariant.product_id == product_id,
        ProductVariant.woocommerce_id == woocommerce_id,
    )
    row = db.scalars(stmt).first()
    if row is not None or not sku:
        return row

    # 兜底：同一商品下同 SKU
    stmt = select(ProductVariant).where(
        ProductVariant.product_id == product_id,
        ProductVariant.sku == sku,
    )
    return db.scalars(stmt).first()


def upsert_variant(db: Session, product_id: uuid.UUID, data: VariantData) -> Tuple[ProductVariant, bool]:
    row = find_variant(db, product_id, data.woocommerce_id, data.sku)
    created = row is None
    if row is None:
        row = ProductVariant(product_id=product_id)
        db.add(row)
    _apply(row, data)
    row.last_synced_at = now_utc()
    db.flush()
    return row, created


def list_variants(db: Session, product_id: uuid.UUID) -> List[ProductVariant]:
    stmt = select(ProductVariant).where(ProductVariant.product_id == product_id).order_by(ProductVariant.woocommerce_id.asc())
    return list(db.scalars(stmt))
