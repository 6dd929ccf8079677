"""
领域映射（纯函数）：将 WooCommerce REST v3 返回的 category / product / variation 字典
转换为本项目 catalog 表的字段字典。
"""
from __future__ import annotations
from typing import Any, Dict, List, Optional
from decimal import Decimal, InvalidOperation


# WooCommerce 的 "publish" 在本地叫 "published"；其它状态（pending/future）一律按 draft 处理
_STATUS_MAP = {
    "publish": "published",
    "draft": "draft",
    "private": "private",
}



def normalize_woo_category(raw: Dict[str, Any]) -> Dict[str, Any]:
    """
    输入: GET /products/categories 的一条
    输出: CategoryData 字段（parent_id 由调用方按 raw["parent"] 解析后填入）
    """
    image = raw.get("image") or {}
    return {
        "woocommerce_id": str(raw["id"]),
        "name": str(raw.get("name") or "").strip() or f"category-{raw['id']}",
        "slug": raw.get("slug") or None,
        "description": raw.get("description") or None,
        "image": image.get("src") if isinstance(image, dict) else None,
        "menu_order": _to_int(raw.get("menu_order")) or 0,
    }


def normalize_woo_product(raw: Dict[str, Any]) -> Dict[str, Any]:
    """
    输入: GET /products 的一条
    输出: ProductData 字段
      - 空 SKU → wc-{id}
      - 价格/重量空串 → None
      - images[0] 作主图，其余进 gallery
    """
    woo_id = raw["id"]
    images = [img.get("src") for img in (raw.get("images") or []) if isinstance(img, dict) and img.get("src")]

    return {
        "woocommerce_id": str(woo_id),
        "sku": _clean_sku(raw.get("sku")) or f"wc-{woo_id}",
        "name": str(raw.get("name") or "").strip() or f"product-{woo_id}",
        "slug": raw.get("slug") or None,
        "description": raw.get("description") or None,
        "short_description": raw.get("short_description") or None,
        "base_price": _to_decimal(raw.get("price")),
        "regular_price": _to_decimal(raw.get("regular_price")),
        "sale_price": _to_decimal(raw.get("sale_price")),
        "status": _STATUS_MAP.get(str(raw.get("status") or ""), "draft"),
        "type": str(raw.get("type") or "simple"),
        "manage_stock": bool(raw.get("manage_stock")),
        "stock_quantity": _to_int(raw.get("stock_quantity")),
        "stock_status": raw.get("stock_status") or None,
        "weight": _to_decimal(raw.get("weight")),
        "dimensions": _dimensions(raw.get("dimensions")),
        "featured_image": images[0] if images else None,
        "gallery_images": images[1:],
        "woocommerce_data": raw,
    }


def normalize_woo_variation(raw: Dict[str, Any]) -> Dict[str, Any]:
    """
    输入: GET /products/{id}/variations 的一条
    输出: VariantData 字段；attributes 拍平成 {name: option}
    """
    woo_id = raw["id"]
    attributes: Dict[str, Any] = {}
    for attr in raw.get("attributes") or []:
        if isinstance(attr, dict) and attr.get("name"):
            attributes[str(attr["name"])] = attr.get("option")

    image = raw.get("image") or {}
    return {
        "woocommerce_id": str(woo_id),
        "sku": _clean_sku(raw.get("sku")) or f"var-{woo_id}",
        "attributes": attributes,
        "price": _to_decimal(raw.get("price")),
        "regular_price": _to_decimal(raw.get("regular_price")),
        "sale_price": _to_decimal(raw.get("sale_price")),
        "manage_stock": bool(raw.get("manage_stock")),
        "stock_quantity": _to_int(raw.get("stock_quantity")),
        "stock_status": raw.get("stock_status") or None,
        "weight": _to_decimal(raw.get("weight")),
        "dimensions": _dimensions(raw.get("dimensions")),
        "image": image.get("src") if isinstance(image, dict) else None,
    }


def category_ids_of(raw_product: Dict[str, Any]) -> List[str]:
    """商品挂的 WooCommerce 分类 id（字符串）"""
    return [str(c["id"]) for c in (raw_product.get("categories") or []) if isinstance(c, dict) and "id" in c]



# ============= tool function ===============

def _clean_sku(val) -> str:
    return str(val or "").strip()


def _dimensions(val) -> Dict[str, str]:
    d = val if isinstance(val, dict) else {}
    return {
        "length": str(d.get("length") or ""),
        "width": str(d.get("width") or ""),
        "height": str(d.get("height") or ""),
    }


def _to_decimal(val, q: str = "0.01") -> Optional[Decimal]:
    if val is None:
        return None
    s = str(val).strip()
    if not s:
        return None
    try:
        d = Decimal(s)
        if not d.is_finite():
            return None
        return d.quantize(Decimal(q))
    except (InvalidOperation, ValueError, TypeError):
        return None


def _to_int(val) -> Optional[int]:
    if val is None or isinstance(val, bool):
        return None
    s = str(val).strip()
    if not s:
        return None
    try:
        return int(float(s))
    except (ValueError, TypeError, OverflowError):
        return None
