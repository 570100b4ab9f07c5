import pytest

import reviews
from errors import NotFound
from schemas import ReviewCreate, ReviewUpdate


def _review(author, **kwargs):
    return reviews.create_review(ReviewCreate(
        content=f"{author} loved it", author=author, location="Leeds", rating=5, **kwargs,
    ))


def test_toggles_flip_flags():
    review = _review("Sam")

    assert reviews.toggle_active(review["_id"])["is_active"] is False
    assert reviews.toggle_active(review["_id"])["is_active"] is True
    assert reviews.toggle_featured(review["_id"])["is_featured"] is True


def test_featured_and_active_lists():
    featured = _review("Sam", is_featured=True, display_order=2)
    _review("Kim", is_featured=True, display_order=1, is_active=False)
    plain = _review("Lee", display_order=0)

    assert [r["_id"] for r in reviews.featured_reviews()] == [featured["_id"]]
    assert [r["_id"] for r in reviews.active_reviews()] == [plain["_id"], featured["_id"]]


def test_list_reviews_filters_and_pages():
    for author in ("A", "B", "C"):
        _review(author)
    reviews.update_review(_review("D")["_id"], ReviewUpdate(is_active=False))

    result = reviews.list_reviews(is_active=True, limit=2)
    assert result["total"] == 3
    assert len(result["reviews"]) == 2
    assert reviews.list_reviews()["total"] == 4


def test_missing_review():
    with pytest.raises(NotFound):
        reviews.get_review("000000000000000000000000")
    with pytest.raises(NotFound):
        reviews.toggle_featured("bad-id")
    with pytest.raises(NotFound):
        reviews.delete_review("bad-id")
