from datetime import datetime, timedelta

import pytest
from bson import ObjectId
from fastapi import HTTPException

from availability import booking_end, is_available, provider_lock
from database import utcnow

PROVIDER_ID = str(ObjectId())


def add_booking(db, start, hours, status="confirmed", provider_id=PROVIDER_ID):
    return db["booking"].insert_one({
        "provider_id": provider_id,
        "booking_datetime": start,
        "duration": hours,
        "end_datetime": booking_end(start, hours),
        "status": status,
    }).inserted_id


def at(hour, minute=0):
    return datetime(2030, 5, 1, hour, minute)


def test_booking_end():
    assert booking_end(at(10), 1.5) == at(11, 30)


def test_overlap_is_rejected_and_adjacent_slot_is_free(db):
    add_booking(db, at(10), 2)
    assert not is_available(PROVIDER_ID, at(11), 2)
    assert is_available(PROVIDER_ID, at(12), 1)
    assert is_available(PROVIDER_ID, at(8), 2)


def test_enclosing_and_enclosed_intervals_conflict(db):
    add_booking(db, at(10), 2)
    assert not is_available(PROVIDER_ID, at(9), 4)
    assert not is_available(PROVIDER_ID, at(10, 30), 0.5)


@pytest.mark.parametrize("status", ["pending", "cancelled", "completed"])
def test_non_blocking_statuses_never_conflict(db, status):
    add_booking(db, at(10), 2, status=status)
    assert is_available(PROVIDER_ID, at(10), 2)


def test_in_progress_blocks(db):
    add_booking(db, at(10), 2, status="in_progress")
    assert not is_available(PROVIDER_ID, at(11), 1)


def test_other_providers_do_not_conflict(db):
    add_booking(db, at(10), 2, provider_id=str(ObjectId()))
    assert is_available(PROVIDER_ID, at(10), 2)


def test_excluded_booking_is_ignored(db):
    booking_id = add_booking(db, at(10), 2)
    assert is_available(PROVIDER_ID, at(11), 2, exclude_id=booking_id)


def test_lock_is_exclusive_and_released(db):
    with provider_lock(PROVIDER_ID):
        with pytest.raises(HTTPException) as exc:
            with provider_lock(PROVIDER_ID, wait_seconds=0):
                pass
        assert exc.value.status_code == 409
        with provider_lock(str(ObjectId()), wait_seconds=0):
            pass
    assert db["bookinglock"].count_documents({}) == 0
    with provider_lock(PROVIDER_ID, wait_seconds=0):
        pass


def test_lock_released_on_error(db):
    with pytest.raises(RuntimeError):
        with provider_lock(PROVIDER_ID):
            raise RuntimeError("boom")
    assert db["bookinglock"].count_documents({}) == 0


def test_expired_lock_is_taken_over(db):
    db["bookinglock"].insert_one({
        "_id": PROVIDER_ID, "token": "stale", "expires_at": utcnow() - timedelta(minutes=1),
    })
    with provider_lock(PROVIDER_ID, wait_seconds=0):
        assert db["bookinglock"].find_one({"_id": PROVIDER_ID})["token"] != "stale"
