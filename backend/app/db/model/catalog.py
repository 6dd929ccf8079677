from __future__ import annotations
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    Boolean, DateTime, ForeignKey, Index, Integer, Numeric,
    String, Text, UniqueConstraint, Uuid, func,
)
from sqlalchemy.orm import Mapped, mapped_column
from app.db.base import Base, JsonType


PRODUCT_STATUSES = ("published", "draft", "private")
PRODUCT_TYPES = ("simple", "variable", "grouped", "external")



"""
  商品分类（按店铺隔离）
  - (shop_id, woocommerce_id) 唯一：重复同步只会更新，不会插出第二行
  - parent_id 指向本表，父分类先于子分类写入
"""
class Category(Base):

    __tablename__ = "categories"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    shop_id:        Mapped[uuid.UUID]           = mapped_column(Uuid, ForeignKey("shops.id", ondelete="CASCADE"), nullable=False)
    woocommerce_id: Mapped[str]                 = mapped_column(String(64), nullable=False)
    parent_id:      Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, ForeignKey("categories.id", ondelete="SET NULL"))

    name:        Mapped[str]           = mapped_column(Text, nullable=False)
    slug:        Mapped[Optional[str]] = mapped_column(Text)
    description: Mapped[Optional[str]] = mapped_column(Text)
    image:       Mapped[Optional[str]] = mapped_column(Text)      # 分类图片 URL
    menu_order:  Mapped[int]           = mapped_column(Integer, nullable=False, default=0)

    created_at:     Mapped[datetime]           = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at:     Mapped[datetime]           = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
    last_synced_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        UniqueConstraint("shop_id", "woocommerce_id", name="uq_categories_shop_woo"),
        Index("ix_categories_parent_id", "parent_id"),
        Index("ix_categories_slug", "slug"),
    )




"""
  商品主表
  - (shop_id, woocommerce_id) 唯一；(shop_id, sku) 唯一
  - woocommerce_data 保存 WooCommerce 原始 payload，便于排查
"""
class Product(Base):

    __tablename__ = "products"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    shop_id:        Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("shops.id", ondelete="CASCADE"), nullable=False)
    woocommerce_id: Mapped[str]       = mapped_column(String(64), nullable=False)

    sku:               Mapped[str]           = mapped_column(String(255), nullable=False)  # 空 SKU 时为 wc-{id}
    name:              Mapped[str]           = mapped_column(Text, nullable=False)
    slug:              Mapped[Optional[str]] = mapped_column(Text)
    description:       Mapped[Optional[str]] = mapped_column(Text)
    short_description: Mapped[Optional[str]] = mapped_column(Text)

    # 价格：WooCommerce 给的是字符串，空串存 NULL
    base_price:    Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2))
    regular_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2))
    sale_price:    Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2))

    status: Mapped[str] = mapped_column(String(16), nullable=False, default="draft")   # published/draft/private
    type:   Mapped[str] = mapped_column(String(16), nullable=False, default="simple")  # simple/variable/grouped/external

    # 库存
    manage_stock:   Mapped[bool]          = mapped_column(Boolean, nullable=False, default=False)
    stock_quantity: Mapped[Optional[int]] = mapped_column(Integer)
    stock_status:   Mapped[Optional[str]] = mapped_column(String(32), default="instock")  # instock/outofstock/onbackorder

    weight:     Mapped[Optional[Decimal]] = mapped_column(Numeric(8, 2))
    dimensions: Mapped[Dict[str, Any]]    = mapped_column(JsonType, nullable=False, default=dict)  # {length, width, height}

    featured_image:   Mapped[Optional[str]]  = mapped_column(Text)
    gallery_images:   Mapped[List[str]]      = mapped_column(JsonType, nullable=False, default=list)
    woocommerce_data: Mapped[Dict[str, Any]] = mapped_column(JsonType, nullable=False, default=dict)

    created_at:     Mapped[datetime]           = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at:     Mapped[datetime]           = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
    last_synced_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        UniqueConstraint("shop_id", "woocommerce_id", name="uq_products_shop_woo"),
        UniqueConstraint("shop_id", "sku", name="uq_products_shop_sku"),
        Index("ix_products_status", "status"),
        Index("ix_products_type", "type"),
        Index("ix_products_last_synced_at", "last_synced_at"),
    )




# 商品 ↔ 分类 多对多关联
class ProductCategory(Base):

    __tablename__ = "product_categories"

    product_id:  Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("products.id", ondelete="CASCADE"), primary_key=True)
    category_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("categories.id", ondelete="CASCADE"), primary_key=True)

    __table_args__ = (
        Index("ix_product_categories_category_id", "category_id"),
    )




"""
  商品变体（variable 商品的 variations）
  - (product_id, woocommerce_id) 唯一
  - attributes: {属性名: 选项}
"""
class ProductVariant(Base):

    __tablename__ = "product_variants"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    product_id:     Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("products.id", ondelete="CASCADE"), nullable=False)
    woocommerce_id: Mapped[str]       = mapped_column(String(64), nullable=False)

    sku:        Mapped[str]            = mapped_column(String(255), nullable=False)  # 空 SKU 时为 var-{id}
    attributes: Mapped[Dict[str, Any]] = mapped_column(JsonType, nullable=False, default=dict)

    price:         Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2))
    regular_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2))
    sale_price:    Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2))

    manage_stock:   Mapped[bool]          = mapped_column(Boolean, nullable=False, default=False)
    stock_quantity: Mapped[Optional[int]] = mapped_column(Integer)
    stock_status:   Mapped[Optional[str]] = mapped_column(String(32), default="instock")

    weight:     Mapped[Optional[Decimal]] = mapped_column(Numeric(8, 2))
    dimensions: Mapped[Dict[str, Any]]    = mapped_column(JsonType, nullable=False, default=dict)
    image:      Mapped[Optional[str]]     = mapped_column(Text)

    created_at:     Mapped[datetime]           = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at:     Mapped[datetime]           = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
    last_synced_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        UniqueConstraint("product_id", "woocommerce_id", name="uq_product_variants_product_woo"),
        Index("ix_product_variants_sku", "sku"),
    )
