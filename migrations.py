"""
Category reference migration.

Rewrites products whose `category` is still a free-text name (a bare string or
a legacy tagged reference) into an id reference plus the denormalized
`category_name`. Raw ObjectId references written before the tagged form
existed are normalized too. Safe to run any number of times: products that
already hold a tagged id reference and a display name are left alone.

    python migrations.py
"""
import logging
import sys
from typing import Any, Dict

from pydantic import ValidationError

import config
from catalog import parse_category_ref, find_category_by_name, get_category
from database import collection, utcnow
from errors import NotFound
from schemas import CategoryIdRef

logger = logging.getLogger(__name__)


def migrate_category_refs() -> Dict[str, Any]:
    summary = {"migrated": 0, "already_migrated": 0, "errors": []}
    products = collection("product")

    for product in products.find({}, {"name": 1, "category": 1, "category_name": 1}):
        name = product.get("name", str(product["_id"]))
        try:
            ref = parse_category_ref(product.get("category"))
        except ValidationError as exc:
            summary["errors"].append(f'Product "{name}" has an unreadable category: {exc.errors()[0]["msg"]}')
            continue

        if ref is None:
            summary["errors"].append(f'Product "{name}" has no category')
            continue

        if isinstance(ref, CategoryIdRef):
            # a raw ObjectId or a missing display name still needs normalizing
            if isinstance(product.get("category"), dict) and product.get("category_name"):
                summary["already_migrated"] += 1
                continue
            try:
                category = get_category(ref.id)
            except NotFound:
                summary["errors"].append(f'Category {ref.id} not found for product "{name}"')
                continue
        else:
            category = find_category_by_name(ref.name)
            if not category:
                summary["errors"].append(f'Category "{ref.name}" not found for product "{name}"')
                continue

        products.update_one(
            {"_id": product["_id"]},
            {"$set": {
                "category": CategoryIdRef(id=category["_id"]).model_dump(),
                "category_name": category["name"],
                "updated_at": utcnow(),
            }},
        )
        logger.info(f'Migrated product "{name}" -> category {category["name"]}')
        summary["migrated"] += 1

    logger.info(
        f"Category migration finished: {summary['migrated']} migrated, "
        f"{summary['already_migrated']} already migrated, {len(summary['errors'])} errors"
    )
    for error in summary["errors"]:
        logger.warning(error)
    return summary


def main() -> int:
    logging.basicConfig(level=config.LOG_LEVEL, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    summary = migrate_category_refs()
    return 1 if summary["errors"] else 0


if __name__ == "__main__":
    sys.exit(main())
