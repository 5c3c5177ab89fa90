"""
Provider availability.

A provider is busy during every confirmed or in-progress booking's half-open
interval [booking_datetime, end_datetime). Writes that depend on that answer
run inside ``provider_lock`` so two requests cannot both pass the check.
"""
import os
import time
import logging
import secrets
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Optional

from bson import ObjectId
from fastapi import HTTPException
from pymongo.errors import DuplicateKeyError

from booking_states import BLOCKING
from database import db, utcnow

logger = logging.getLogger(__name__)

LOCK_TTL_SECONDS = float(os.getenv("BOOKING_LOCK_TTL_SECONDS", "10"))
LOCK_WAIT_SECONDS = float(os.getenv("BOOKING_LOCK_WAIT_SECONDS", "3"))
LOCK_POLL_SECONDS = 0.05


def booking_end(start: datetime, duration_hours: float) -> datetime:
    return start + timedelta(hours=duration_hours)


def is_available(provider_id: str, proposed_start: datetime, duration_hours: float,
                 exclude_id: Optional[ObjectId] = None) -> bool:
    proposed_end = booking_end(proposed_start, duration_hours)
    query = {
        "provider_id": provider_id,
        "status": {"$in": list(BLOCKING)},
        "booking_datetime": {"$lt": proposed_end},
        "end_datetime": {"$gt": proposed_start},
    }
    if exclude_id is not None:
        query["_id"] = {"$ne": exclude_id}
    conflict = db["booking"].find_one(query, {"_id": 1})
    if conflict:
        logger.info("Provider %s busy between %s and %s (booking %s)",
                    provider_id, proposed_start, proposed_end, conflict["_id"])
    return conflict is None


def _try_acquire(provider_id: str, token: str) -> bool:
    now = utcnow()
    expires_at = now + timedelta(seconds=LOCK_TTL_SECONDS)
    try:
        db["bookinglock"].insert_one({"_id": provider_id, "token": token, "expires_at": expires_at})
        return True
    except DuplicateKeyError:
        pass
    # the holder died without releasing; take the lease over
    res = db["bookinglock"].update_one(
        {"_id": provider_id, "expires_at": {"$lt": now}},
        {"$set": {"token": token, "expires_at": expires_at}},
    )
    if res.modified_count:
        logger.warning("Took over expired schedule lock for provider %s", provider_id)
        return True
    return False


@contextmanager
def provider_lock(provider_id: str, wait_seconds: Optional[float] = None):
    """Serialize schedule changes and rating recomputes for one provider across workers."""
    token = secrets.token_hex(8)
    deadline = time.monotonic() + (LOCK_WAIT_SECONDS if wait_seconds is None else wait_seconds)
    while not _try_acquire(provider_id, token):
        if time.monotonic() >= deadline:
            raise HTTPException(status_code=409, detail="Provider schedule is busy, please try again")
        time.sleep(LOCK_POLL_SECONDS)
    try:
        yield
    finally:
        db["bookinglock"].delete_one({"_id": provider_id, "token": token})
