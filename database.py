"""
Database helpers for the Neighborhood API

Connects to MongoDB using DATABASE_URL / DATABASE_NAME. Each collection is the
lowercase name of the matching model in schemas.py (e.g. Service -> "service").
"""
import os
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Union

from dotenv import load_dotenv
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, MongoClient

load_dotenv()

logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")

_client = None
db = None

if DATABASE_URL and DATABASE_NAME:
    try:
        _client = MongoClient(DATABASE_URL)
        db = _client[DATABASE_NAME]
    except Exception as e:
        logger.error("Could not configure MongoDB client: %s", e)


def utcnow() -> datetime:
    """Current time as a naive UTC datetime, the form pymongo hands back."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def create_document(collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> str:
    """Insert a document with created_at/updated_at stamps and return its id as a string."""
    if db is None:
        raise Exception("Database not available. Check DATABASE_URL and DATABASE_NAME environment variables.")
    if isinstance(data, BaseModel):
        data_dict = data.model_dump()
    else:
        data_dict = data.copy()
    now = utcnow()
    data_dict["created_at"] = now
    data_dict["updated_at"] = now
    result = db[collection_name].insert_one(data_dict)
    return str(result.inserted_id)


def ensure_indexes():
    if db is None:
        return
    db["user"].create_index("email", unique=True)
    db["service"].create_index([("provider_id", ASCENDING), ("created_at", DESCENDING)])
    db["service"].create_index([("category", ASCENDING), ("is_active", ASCENDING)])
    db["booking"].create_index([("customer_id", ASCENDING), ("created_at", DESCENDING)])
    db["booking"].create_index([("provider_id", ASCENDING), ("created_at", DESCENDING)])
    db["booking"].create_index([("provider_id", ASCENDING), ("status", ASCENDING), ("booking_datetime", ASCENDING)])
    db["post"].create_index([("author_id", ASCENDING), ("created_at", DESCENDING)])
    db["marketplaceitem"].create_index([("seller_id", ASCENDING), ("created_at", DESCENDING)])
    db["marketplaceitem"].create_index([("category", ASCENDING), ("status", ASCENDING)])
