from typing import Any, Dict, List, Optional

from database import create_document, get_documents, count_documents, get_document_by_id, update_document, delete_document
from errors import NotFound
from schemas import ReviewCreate, ReviewUpdate

DISPLAY_SORT = [("display_order", 1), ("created_at", -1)]


def create_review(payload: ReviewCreate) -> dict:
    return get_review(create_document("review", payload))


def list_reviews(is_active: Optional[bool] = None, is_featured: Optional[bool] = None,
                 limit: int = 10, skip: int = 0) -> Dict[str, Any]:
    filt = {}
    if is_active is not None:
        filt["is_active"] = is_active
    if is_featured is not None:
        filt["is_featured"] = is_featured
    reviews = get_documents("review", filt, sort=DISPLAY_SORT, skip=skip, limit=limit)
    return {"reviews": reviews, "total": count_documents("review", filt)}


def get_review(review_id: str) -> dict:
    review = get_document_by_id("review", review_id)
    if not review:
        raise NotFound("Review not found")
    return review


def update_review(review_id: str, payload: ReviewUpdate) -> dict:
    review = update_document("review", review_id, payload.model_dump(exclude_none=True))
    if not review:
        raise NotFound("Review not found")
    return review


def delete_review(review_id: str):
    if not delete_document("review", review_id):
        raise NotFound("Review not found")


def featured_reviews(limit: int = 3) -> List[dict]:
    return get_documents("review", {"is_active": True, "is_featured": True}, sort=DISPLAY_SORT, limit=limit)


def active_reviews(limit: int = 10) -> List[dict]:
    return get_documents("review", {"is_active": True}, sort=DISPLAY_SORT, limit=limit)


def toggle_active(review_id: str) -> dict:
    review = get_review(review_id)
    return update_review(review_id, ReviewUpdate(is_active=not review.get("is_active", True)))


def toggle_featured(review_id: str) -> dict:
    review = get_review(review_id)
    return update_review(review_id, ReviewUpdate(is_featured=not review.get("is_featured", False)))
