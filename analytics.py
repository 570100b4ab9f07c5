"""
Order analytics.

Every figure is recomputed from the raw order collection on each call with
MongoDB aggregation pipelines; nothing is cached or pre-rolled. Currency sums
are kept exact through the pipeline and rounded to cents only when the
response is built.
"""
import calendar
import math
import logging
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional

from pymongo.errors import PyMongoError

from catalog import get_product
from database import collection, utcnow
from errors import NotFound
from schemas import ORDER_STATUSES

logger = logging.getLogger(__name__)

MONTH_NAMES = ["Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]
# $dayOfWeek numbering: 1 = Sunday ... 7 = Saturday
DAY_NAMES = {1: "Sun", 2: "Mon", 3: "Tue", 4: "Wed", 5: "Thu", 6: "Fri", 7: "Sat"}
MONDAY_FIRST = [2, 3, 4, 5, 6, 7, 1]

NOT_CANCELLED = {"status": {"$ne": "cancelled"}}


def round_currency(value) -> float:
    # halves round up, never to even
    return math.floor((value or 0) * 100 + 0.5) / 100


def _aggregate(pipeline: List[dict]) -> List[dict]:
    return list(collection("order").aggregate(pipeline))


def _months_before(moment: datetime, months: int) -> datetime:
    year, month_index = divmod(moment.year * 12 + moment.month - 1 - months, 12)
    month = month_index + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def _by_weekday(match: dict) -> List[dict]:
    rows = _aggregate([
        {"$match": match},
        {"$group": {
            "_id": {"$dayOfWeek": "$created_at"},
            "orders": {"$sum": 1},
            "revenue": {"$sum": "$total_amount"},
        }},
    ])
    buckets = {row["_id"]: row for row in rows}
    result = []
    for day_number in MONDAY_FIRST:
        row = buckets.get(day_number)
        result.append({
            "day": DAY_NAMES[day_number],
            "orders": row["orders"] if row else 0,
            "revenue": round_currency(row["revenue"]) if row else 0,
        })
    return result


# ===================== Summary =====================
def order_stats() -> Dict[str, float]:
    rows = _aggregate([
        {"$group": {"_id": "$status", "count": {"$sum": 1}, "total_amount": {"$sum": "$total_amount"}}},
    ])
    result = {"total_orders": 0, "total_revenue": 0}
    for status in ORDER_STATUSES:
        result[f"{status}_orders"] = 0

    revenue = 0
    for row in rows:
        result["total_orders"] += row["count"]
        revenue += row["total_amount"]
        key = f"{row['_id']}_orders"
        if key in result:
            result[key] = row["count"]
    result["total_revenue"] = round_currency(revenue)
    return result


def orders_by_status() -> Dict[str, int]:
    rows = _aggregate([{"$group": {"_id": "$status", "count": {"$sum": 1}}}])
    return {row["_id"]: row["count"] for row in rows}


# ===================== Trends =====================
def revenue_by_month(months: int = 6, now: Optional[datetime] = None) -> List[dict]:
    start = _months_before(now or utcnow(), months)
    rows = _aggregate([
        {"$match": {"created_at": {"$gte": start}, **NOT_CANCELLED}},
        {"$group": {
            "_id": {"year": {"$year": "$created_at"}, "month": {"$month": "$created_at"}},
            "revenue": {"$sum": "$total_amount"},
            "orders": {"$sum": 1},
        }},
        {"$sort": {"_id.year": 1, "_id.month": 1}},
    ])
    return [
        {
            "month": MONTH_NAMES[row["_id"]["month"] - 1],
            "year": row["_id"]["year"],
            "revenue": round_currency(row["revenue"]),
            "orders": row["orders"],
        }
        for row in rows
    ]


def top_products(limit: int = 5, match: Optional[dict] = None) -> List[dict]:
    rows = _aggregate([
        {"$match": {**NOT_CANCELLED, **(match or {})}},
        {"$unwind": "$items"},
        {"$group": {
            "_id": "$items.product_id",
            "name": {"$first": "$items.name"},
            "sales": {"$sum": "$items.quantity"},
            "revenue": {"$sum": {"$multiply": ["$items.price", "$items.quantity"]}},
        }},
        {"$sort": {"revenue": -1}},
        {"$limit": limit},
    ])

    result = []
    for row in rows:
        entry = {
            "product_id": str(row["_id"]),
            "name": row["name"],
            "sales": row["sales"],
            "revenue": round_currency(row["revenue"]),
        }
        try:
            product = get_product(entry["product_id"])
        except (NotFound, PyMongoError) as exc:
            logger.warning(f"No image for top product {entry['product_id']}: {exc}")
        else:
            images = product.get("images") or []
            if images:
                entry["image"] = images[0]
        result.append(entry)
    return result


def orders_by_day_of_week(days: int = 30, now: Optional[datetime] = None) -> List[dict]:
    start = (now or utcnow()) - timedelta(days=days)
    return _by_weekday({"created_at": {"$gte": start}, **NOT_CANCELLED})


# ===================== Monthly report =====================
def monthly_analytics(month: int, year: int) -> dict:
    if not 1 <= month <= 12:
        raise ValueError("month must be between 1 and 12")
    start = datetime(year, month, 1)
    end = datetime(year + 1, 1, 1) if month == 12 else datetime(year, month + 1, 1)
    window = {"created_at": {"$gte": start, "$lt": end}}
    counted = {**window, **NOT_CANCELLED}

    totals = _aggregate([
        {"$match": counted},
        {"$group": {"_id": None, "revenue": {"$sum": "$total_amount"}, "orders": {"$sum": 1}}},
    ])
    revenue = totals[0]["revenue"] if totals else 0
    order_count = totals[0]["orders"] if totals else 0

    status_breakdown = {status: 0 for status in ORDER_STATUSES}
    for row in _aggregate([{"$match": window}, {"$group": {"_id": "$status", "count": {"$sum": 1}}}]):
        status_breakdown[row["_id"]] = row["count"]

    # only days that actually had orders; zero days are left out
    daily_rows = _aggregate([
        {"$match": counted},
        {"$group": {
            "_id": {"$dayOfMonth": "$created_at"},
            "revenue": {"$sum": "$total_amount"},
            "orders": {"$sum": 1},
        }},
        {"$sort": {"_id": 1}},
    ])
    daily = [
        {
            "date": date(year, month, row["_id"]).isoformat(),
            "day": row["_id"],
            "revenue": round_currency(row["revenue"]),
            "orders": row["orders"],
        }
        for row in daily_rows
    ]

    return {
        "month": month,
        "year": year,
        "month_name": MONTH_NAMES[month - 1],
        "total_revenue": round_currency(revenue),
        "total_orders": order_count,
        "average_order_value": round_currency(revenue / order_count) if order_count else 0,
        "status_breakdown": status_breakdown,
        "top_products": top_products(5, match=window),
        "orders_by_day_of_week": _by_weekday(counted),
        "daily": daily,
    }
