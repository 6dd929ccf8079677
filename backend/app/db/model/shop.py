from __future__ import annotations
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, Index, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column
from app.db.base import Base


SHOP_STATUSES = ("active", "inactive", "error")


"""
  shops 表：已登记的 WooCommerce 店铺
  - url 已规范化（https、无尾斜杠），全表唯一
  - consumer key/secret 原样保存（不做加密）
"""
class Shop(Base):

    __tablename__ = "shops"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    name:            Mapped[str] = mapped_column(String(255), nullable=False)
    url:             Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    consumer_key:    Mapped[str] = mapped_column(String(500), nullable=False)
    consumer_secret: Mapped[str] = mapped_column(String(500), nullable=False)

    status: Mapped[str] = mapped_column(String(16), nullable=False, default="active")  # active/inactive/error

    # 最近一次连接测试
    last_connection_check_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    last_connection_ok:       Mapped[Optional[bool]]     = mapped_column(Boolean)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        Index("ix_shops_updated_at", "updated_at"),
    )
