import logging
import re
from collections import Counter
from functools import lru_cache
from typing import Any, Dict, List, Optional, Union

from bson import ObjectId
from pydantic import TypeAdapter
from pymongo import ReturnDocument

import config
from database import (
    collection, create_document, get_documents, count_documents, get_document_by_id,
    update_document, delete_document, serialize_doc, to_object_id, utcnow,
)
from errors import NotFound, InsufficientStock, InvalidCategory
from schemas import (
    CategoryCreate, CategoryUpdate, CategoryRef, CategoryIdRef, LegacyCategoryRef,
    Product, ProductCreate, ProductUpdate,
)

logger = logging.getLogger(__name__)

_category_ref_adapter = TypeAdapter(CategoryRef)


# ===================== Category references =====================
def parse_category_ref(value: Union[str, dict, ObjectId, None]) -> Optional[Union[CategoryIdRef, LegacyCategoryRef]]:
    """Read a stored product category; a bare string is a pre-migration legacy name."""
    if value is None:
        return None
    if isinstance(value, str):
        return LegacyCategoryRef(name=value)
    if isinstance(value, ObjectId):
        return CategoryIdRef(id=str(value))
    return _category_ref_adapter.validate_python(value)


def category_display_name(product: dict) -> str:
    if product.get("category_name"):
        return product["category_name"]
    ref = parse_category_ref(product.get("category"))
    if isinstance(ref, LegacyCategoryRef):
        return ref.name
    return ""


def _name_regex(name: str) -> dict:
    return {"$regex": f"^{re.escape(name.strip())}$", "$options": "i"}


# ===================== Categories =====================
def find_category_by_name(name: str) -> Optional[dict]:
    doc = collection("category").find_one({"name": _name_regex(name)})
    return serialize_doc(doc)


def resolve_active_category(name: str) -> dict:
    category = find_category_by_name(name)
    if not category:
        raise InvalidCategory(
            f'Category "{name}" does not exist. Please create the category first in the categories management.'
        )
    if not category.get("is_active", True):
        raise InvalidCategory(f'Category "{name}" is not active. Please activate it first.')
    return category


def list_categories(include_inactive: bool = False) -> List[dict]:
    filt = {} if include_inactive else {"is_active": True}
    return get_documents("category", filt, sort=[("display_order", 1), ("name", 1)])


def get_category(category_id: str) -> dict:
    category = get_document_by_id("category", category_id)
    if not category:
        raise NotFound("Category not found")
    return category


def create_category(payload: CategoryCreate) -> dict:
    if find_category_by_name(payload.name):
        raise InvalidCategory(f'Category "{payload.name}" already exists')
    category_id = create_document("category", payload)
    logger.info(f"Created category {payload.name} ({category_id})")
    return get_category(category_id)


def update_category(category_id: str, payload: CategoryUpdate) -> dict:
    changes = payload.model_dump(exclude_none=True)
    if "name" in changes:
        existing = find_category_by_name(changes["name"])
        if existing and existing["_id"] != category_id:
            raise InvalidCategory(f'Category "{changes["name"]}" already exists')
    category = update_document("category", category_id, changes)
    if not category:
        raise NotFound("Category not found")
    if "name" in changes:
        # keep the denormalized display name on referencing products in step
        collection("product").update_many(
            {"category.kind": "id", "category.id": category_id},
            {"$set": {"category_name": category["name"], "updated_at": utcnow()}},
        )
    return category


def delete_category(category_id: str):
    if not delete_document("category", category_id):
        raise NotFound("Category not found")


# ===================== Products =====================
def _category_filter(name: str) -> dict:
    pattern = _name_regex(name)
    # bare-string and legacy-tagged categories predate category_name
    return {"$or": [{"category_name": pattern}, {"category": pattern}, {"category.name": pattern}]}


def get_product(product_id: str) -> dict:
    product = get_document_by_id("product", product_id)
    if not product:
        raise NotFound("Product not found")
    return product


def create_product(payload: ProductCreate) -> dict:
    category = resolve_active_category(payload.category)
    data = payload.model_dump()
    data["category"] = CategoryIdRef(id=category["_id"]).model_dump()
    data["category_name"] = category["name"]
    product = Product(**data)
    product_id = create_document("product", product)
    logger.info(f"Created product {product.name} ({product_id}) with stock {product.stock}")
    return get_product(product_id)


def update_product(product_id: str, payload: ProductUpdate) -> dict:
    changes = payload.model_dump(exclude_none=True)
    if "category" in changes:
        category = resolve_active_category(changes["category"])
        changes["category"] = CategoryIdRef(id=category["_id"]).model_dump()
        changes["category_name"] = category["name"]
    product = update_document("product", product_id, changes)
    if not product:
        raise NotFound("Product not found")
    return product


def delete_product(product_id: str):
    if not delete_document("product", product_id):
        raise NotFound("Product not found")


def list_products(category: Optional[str] = None, search: Optional[str] = None,
                  min_price: Optional[float] = None, max_price: Optional[float] = None,
                  is_active: Optional[bool] = None, page: int = 1, limit: int = 10) -> Dict[str, Any]:
    clauses = []
    if category:
        clauses.append(_category_filter(category))
    if search:
        term = re.escape(search)
        clauses.append({"$or": [
            {"name": {"$regex": term, "$options": "i"}},
            {"description": {"$regex": term, "$options": "i"}},
        ]})
    if min_price is not None or max_price is not None:
        price_filter = {}
        if min_price is not None:
            price_filter["$gte"] = min_price
        if max_price is not None:
            price_filter["$lte"] = max_price
        clauses.append({"price": price_filter})
    if is_active is not None:
        clauses.append({"is_active": is_active})
    filt = {"$and": clauses} if clauses else {}

    products = get_documents("product", filt, sort=[("created_at", -1)], skip=(page - 1) * limit, limit=limit)
    total = count_documents("product", filt)
    logger.debug(f"Products query page={page} limit={limit} found={len(products)} total={total}")
    return {"products": products, "total": total, "page": page, "limit": limit}


def products_by_category(name: str) -> List[dict]:
    return get_documents("product", {"$and": [_category_filter(name), {"is_active": True}]})


def featured_products(limit: int = 10) -> List[dict]:
    return get_documents("product", {"is_active": True}, sort=[("rating", -1), ("review_count", -1)], limit=limit)


# ===================== Stock =====================
def reduce_stock(product_id: str, quantity: int) -> dict:
    """Atomically take `quantity` units; fails without writing if stock is short."""
    oid = to_object_id(product_id)
    if oid is None:
        raise NotFound("Product not found")
    doc = collection("product").find_one_and_update(
        {"_id": oid, "stock": {"$gte": quantity}},
        {"$inc": {"stock": -quantity}, "$set": {"updated_at": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    if doc is None:
        product = get_product(product_id)
        logger.warning(
            f"Insufficient stock for {product.get('name')} ({product_id}). "
            f"Needed: {quantity}, Have: {product.get('stock')}"
        )
        raise InsufficientStock(product.get("name", product_id))
    return serialize_doc(doc)


def release_stock(product_id: str, quantity: int):
    oid = to_object_id(product_id)
    if oid is None:
        return
    collection("product").update_one({"_id": oid}, {"$inc": {"stock": quantity}, "$set": {"updated_at": utcnow()}})


# ===================== Category hero images =====================
@lru_cache(maxsize=1)
def category_images() -> Dict[str, str]:
    return config.load_category_images()


def resolve_hero_image(name: str, image_map: Dict[str, str], default: str) -> str:
    normalized = name.lower()
    if normalized in image_map:
        return image_map[normalized]
    for key, image in image_map.items():
        if key in normalized:
            return image
    return default


def category_summaries(image_map: Optional[Dict[str, str]] = None) -> List[dict]:
    """Active product counts per category with a hero image, most populated first."""
    if image_map is None:
        image_map = category_images()
    counts = Counter()
    display = {}
    for product in collection("product").find({"is_active": True}, {"category": 1, "category_name": 1}):
        name = category_display_name(product)
        if not name:
            continue
        key = name.lower()
        counts[key] += 1
        # deterministic pick among differently-cased spellings
        display[key] = min(display.get(key, name), name)

    summaries = []
    for key, count in counts.most_common():
        name = display[key]
        db_category = find_category_by_name(name)
        if db_category and db_category.get("hero_image"):
            hero_image = db_category["hero_image"]
            description = db_category.get("description") or ""
        else:
            hero_image = resolve_hero_image(name, image_map, config.DEFAULT_HERO_IMAGE)
            description = ""
        summaries.append({"category": name, "count": count, "hero_image": hero_image, "description": description})
    return summaries
