# 聚合导入所有模型，供 Alembic 发现

from .shop import Shop
from .catalog import (
    Category,
    Product,
    ProductCategory,
    ProductVariant,
)

__all__ = [
    # shop
    "Shop",
    # catalog
    "Category", "Product", "ProductCategory", "ProductVariant",
]
