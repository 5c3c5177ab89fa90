import math
import re
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

from bson import ObjectId
from fastapi import HTTPException

from database import db


# ---------------------------
# Ids & serialization
# ---------------------------

def to_object_id(id_str: str) -> ObjectId:
    try:
        return ObjectId(id_str)
    except Exception:
        raise HTTPException(status_code=400, detail="Invalid ID format")


def _serialize_value(value: Any) -> Any:
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        # stored datetimes are naive UTC
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).isoformat()
    if isinstance(value, dict):
        return serialize(value)
    if isinstance(value, list):
        return [_serialize_value(v) for v in value]
    return value


def serialize(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not doc:
        return doc
    d = dict(doc)
    if "_id" in d:
        d["id"] = str(d.pop("_id"))
    d.pop("password_hash", None)
    for k, v in list(d.items()):
        d[k] = _serialize_value(v)
    return d


def find_or_404(collection: str, doc_id: str, label: str) -> Dict[str, Any]:
    doc = db[collection].find_one({"_id": to_object_id(doc_id)})
    if not doc:
        raise HTTPException(status_code=404, detail=f"{label} not found")
    return doc


# ---------------------------
# Populating references
# ---------------------------

def _projection(fields: Iterable[str]) -> Dict[str, int]:
    return {f: 1 for f in fields}


def populate(doc: Dict[str, Any], ref_field: str, collection: str, fields: Iterable[str], as_field: str) -> Dict[str, Any]:
    """Embed the referenced document (restricted to ``fields``) under ``as_field``.

    ``doc`` is an already serialized document; the reference stays in place.
    """
    ref = doc.get(ref_field)
    target = None
    if ref and ObjectId.is_valid(ref):
        target = db[collection].find_one({"_id": ObjectId(ref)}, _projection(fields))
    doc[as_field] = serialize(target)
    return doc


def populate_users_in(items: List[Dict[str, Any]], fields: Iterable[str] = ("name", "avatar")) -> List[Dict[str, Any]]:
    """Populate ``user`` on each embedded entry (comments, reviews) carrying a ``user_id``."""
    fields = tuple(fields)
    for item in items:
        populate(item, "user_id", "user", fields, "user")
    return items


# ---------------------------
# Listing helpers
# ---------------------------

NEWEST_FIRST = [("created_at", -1), ("_id", -1)]


def search_filter(search: str, fields: Iterable[str]) -> List[Dict[str, Any]]:
    pattern = re.escape(search)
    return [{f: {"$regex": pattern, "$options": "i"}} for f in fields]


def parse_sort(sort: str, allowed: Iterable[str], default: str = "-created_at") -> List[Tuple[str, int]]:
    """Turn ``"-price,title"`` into a pymongo sort list, ignoring unknown fields."""
    allowed = set(allowed)
    keys = []
    for part in (sort or default).split(","):
        part = part.strip()
        if not part:
            continue
        direction = -1 if part.startswith("-") else 1
        name = part.lstrip("-+")
        if name in allowed:
            keys.append((name, direction))
    if not keys:
        return parse_sort(default, allowed | {default.lstrip("-")}, default)
    return keys + [("_id", -1)]


def price_range(min_price: Optional[float], max_price: Optional[float]) -> Optional[Dict[str, float]]:
    if min_price is None and max_price is None:
        return None
    rng: Dict[str, float] = {}
    if min_price is not None:
        rng["$gte"] = min_price
    if max_price is not None:
        rng["$lte"] = max_price
    return rng


def pagination(page: int, limit: int, total: int) -> Dict[str, int]:
    return {"page": page, "pages": math.ceil(total / limit) if limit else 0, "total": total}
