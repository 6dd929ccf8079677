# ORM 基类 + 约束命名规范 + 跨方言列类型

from __future__ import annotations
from sqlalchemy import JSON
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.schema import MetaData

# 显式 name= 的约束/索引保持原名；没写名字的按这里生成，Alembic autogenerate 才稳定
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


# PG 上落 JSONB，SQLite（测试内存库）退回通用 JSON
JsonType = JSON().with_variant(JSONB(), "postgresql")


# shops / categories / products / product_variants 都继承这个 Base，
# 迁移脚本和测试建表都从 Base.metadata 取表结构
class Base(DeclarativeBase):
    metadata = MetaData(naming_convention=NAMING_CONVENTION)
