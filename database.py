"""
Database Helper Functions

MongoDB helper functions shared by the service modules.
Services reach collections through these helpers (never through a copied
reference to `db`) so the connection can be swapped at runtime, e.g. by tests.
"""

from pymongo import MongoClient, ASCENDING, ReturnDocument
from pymongo.collection import Collection
from bson import ObjectId
from bson.errors import InvalidId
from datetime import datetime, timezone
from typing import Union, Optional, Dict, Any, List
from pydantic import BaseModel

import config

_client = None
db = None

if config.DATABASE_URL and config.DATABASE_NAME:
    _client = MongoClient(config.DATABASE_URL)
    db = _client[config.DATABASE_NAME]


def _ensure_db():
    if db is None:
        raise Exception("Database not available. Check DATABASE_URL and DATABASE_NAME environment variables.")


def _to_dict(data: Union[BaseModel, dict]) -> dict:
    if isinstance(data, BaseModel):
        return data.model_dump()
    return dict(data)


def utcnow() -> datetime:
    # Naive UTC, matching what pymongo hands back for stored dates.
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_object_id(_id: Union[str, ObjectId, None]) -> Optional[ObjectId]:
    if isinstance(_id, ObjectId):
        return _id
    try:
        return ObjectId(_id)
    except (InvalidId, TypeError):
        return None


def collection(name: str) -> Collection:
    _ensure_db()
    return db[name]


def ensure_indexes():
    _ensure_db()
    db["order"].create_index([("order_number", ASCENDING)], unique=True)
    db["order"].create_index([("created_at", ASCENDING)])
    db["category"].create_index([("name", ASCENDING)], unique=True)
    db["admin"].create_index([("email", ASCENDING)], unique=True)
    db["notification"].create_index([("status", ASCENDING), ("next_attempt_at", ASCENDING)])


# CRUD helpers

def create_document(collection_name: str, data: Union[BaseModel, dict]) -> str:
    _ensure_db()
    payload = _to_dict(data)
    now = utcnow()
    payload['created_at'] = now
    payload['updated_at'] = now
    result = db[collection_name].insert_one(payload)
    return str(result.inserted_id)


def get_documents(collection_name: str, filter_dict: Optional[dict] = None, limit: Optional[int] = None,
                  sort: Optional[list] = None, skip: Optional[int] = None) -> List[dict]:
    _ensure_db()
    cursor = db[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if skip:
        cursor = cursor.skip(int(skip))
    if limit:
        cursor = cursor.limit(int(limit))
    return [serialize_doc(doc) for doc in cursor]


def count_documents(collection_name: str, filter_dict: Optional[dict] = None) -> int:
    _ensure_db()
    return db[collection_name].count_documents(filter_dict or {})


def get_document_by_id(collection_name: str, _id: str) -> Optional[dict]:
    _ensure_db()
    oid = to_object_id(_id)
    if oid is None:
        return None
    doc = db[collection_name].find_one({"_id": oid})
    return serialize_doc(doc) if doc else None


def update_document(collection_name: str, _id: str, update_data: Union[BaseModel, Dict[str, Any]]) -> Optional[dict]:
    """Apply a `$set` and return the updated document, or None if no document matched."""
    _ensure_db()
    oid = to_object_id(_id)
    if oid is None:
        return None
    update = {"$set": _to_dict(update_data)}
    update["$set"]["updated_at"] = utcnow()
    doc = db[collection_name].find_one_and_update({"_id": oid}, update, return_document=ReturnDocument.AFTER)
    return serialize_doc(doc) if doc else None


def delete_document(collection_name: str, _id: str) -> bool:
    _ensure_db()
    oid = to_object_id(_id)
    if oid is None:
        return False
    result = db[collection_name].delete_one({"_id": oid})
    return result.deleted_count > 0


# Utility

def serialize_doc(doc: Optional[dict]) -> Optional[dict]:
    if not doc:
        return None
    d = dict(doc)
    if "_id" in d:
        d["_id"] = str(d["_id"])  # convert ObjectId to string
    return d
