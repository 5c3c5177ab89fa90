import logging
from datetime import datetime
from typing import Any, Dict, Optional

from bson import ObjectId
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from pymongo import ReturnDocument

from auth import get_current_user
from availability import booking_end, is_available, provider_lock
from booking_states import (
    CONFIRMED, COMPLETED, CUSTOMER, EDITABLE, PENDING, PROVIDER, STATUSES,
    check_transition, compute_total_price,
)
from database import db, create_document, to_utc, utcnow
from ratings import recompute_provider_rating
from schemas import Booking
from utils import NEWEST_FIRST, find_or_404, populate, serialize

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/bookings", tags=["bookings"])

UNAVAILABLE = "Provider is not available at the selected time"


# ---------------------------
# Models (requests)
# ---------------------------
class BookingCreateRequest(BaseModel):
    service_id: str
    booking_datetime: datetime
    duration: float = Field(1, gt=0, le=24)
    address: str = Field(..., min_length=1)
    message: Optional[str] = Field(None, max_length=500)


class BookingUpdateRequest(BaseModel):
    booking_datetime: Optional[datetime] = None
    duration: Optional[float] = Field(None, gt=0, le=24)
    address: Optional[str] = Field(None, min_length=1)
    message: Optional[str] = Field(None, max_length=500)


class BookingStatusUpdate(BaseModel):
    status: str


class BookingReviewRequest(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    review: Optional[str] = Field(None, max_length=500)


# ---------------------------
# Helpers
# ---------------------------

def new_booking(service: Dict[str, Any], customer_id: str, payload: BookingCreateRequest) -> Booking:
    """Build a pending booking; the provider always comes from the service."""
    start = to_utc(payload.booking_datetime)
    return Booking(
        service_id=str(service["_id"]),
        customer_id=customer_id,
        provider_id=service["provider_id"],
        booking_datetime=start,
        duration=payload.duration,
        end_datetime=booking_end(start, payload.duration),
        total_price=compute_total_price(service["price"], service.get("price_type", "fixed"), payload.duration),
        address=payload.address,
        message=payload.message,
        status=PENDING,
    )


def party_of(booking: Dict[str, Any], user_id: str) -> Optional[str]:
    if booking.get("provider_id") == user_id:
        return PROVIDER
    if booking.get("customer_id") == user_id:
        return CUSTOMER
    return None


def present(booking: Dict[str, Any]) -> Dict[str, Any]:
    data = serialize(booking)
    populate(data, "service_id", "service", ("title", "category", "price", "price_type", "images"), "service")
    populate(data, "customer_id", "user", ("name", "avatar", "phone", "email"), "customer")
    populate(data, "provider_id", "user", ("name", "avatar", "phone", "email", "rating"), "provider")
    return data


# ---------------------------
# Routes
# ---------------------------
@router.post("", status_code=201)
def create_booking(payload: BookingCreateRequest, current=Depends(get_current_user)):
    service = find_or_404("service", payload.service_id, "Service")
    if not service.get("is_active", True):
        raise HTTPException(status_code=409, detail="Service is not available")
    if service["provider_id"] == current["id"]:
        raise HTTPException(status_code=400, detail="You cannot book your own service")

    booking = new_booking(service, current["id"], payload)
    with provider_lock(booking.provider_id):
        if not is_available(booking.provider_id, booking.booking_datetime, booking.duration):
            raise HTTPException(status_code=409, detail=UNAVAILABLE)
        booking_id = create_document("booking", booking)

    logger.info("Booking %s created for service %s by %s", booking_id, booking.service_id, current["id"])
    return {"success": True, "data": present(db["booking"].find_one({"_id": ObjectId(booking_id)}))}


@router.get("/my-bookings")
def my_bookings(current=Depends(get_current_user)):
    docs = []
    for b in db["booking"].find({"customer_id": current["id"]}).sort(NEWEST_FIRST):
        data = serialize(b)
        populate(data, "service_id", "service", ("title", "category", "images"), "service")
        populate(data, "provider_id", "user", ("name", "avatar", "rating"), "provider")
        docs.append(data)
    return {"success": True, "count": len(docs), "data": docs}


@router.get("/my-services")
def provider_bookings(current=Depends(get_current_user)):
    docs = []
    for b in db["booking"].find({"provider_id": current["id"]}).sort(NEWEST_FIRST):
        data = serialize(b)
        populate(data, "service_id", "service", ("title", "category"), "service")
        populate(data, "customer_id", "user", ("name", "avatar", "phone"), "customer")
        docs.append(data)
    return {"success": True, "count": len(docs), "data": docs}


@router.get("/{booking_id}")
def get_booking(booking_id: str, current=Depends(get_current_user)):
    booking = find_or_404("booking", booking_id, "Booking")
    if party_of(booking, current["id"]) is None:
        raise HTTPException(status_code=403, detail="Not authorized to access this booking")
    return {"success": True, "data": present(booking)}


@router.put("/{booking_id}")
def update_booking(booking_id: str, payload: BookingUpdateRequest, current=Depends(get_current_user)):
    booking = find_or_404("booking", booking_id, "Booking")
    if booking.get("customer_id") != current["id"]:
        raise HTTPException(status_code=403, detail="Not authorized to update this booking")
    if booking["status"] not in EDITABLE:
        raise HTTPException(status_code=409, detail=f"Cannot update a {booking['status']} booking")

    update: Dict[str, Any] = {k: v for k, v in payload.model_dump().items() if v is not None}
    start = to_utc(update["booking_datetime"]) if "booking_datetime" in update else booking["booking_datetime"]
    duration = update.get("duration", booking.get("duration", 1))
    reschedule = "booking_datetime" in update or "duration" in update
    if reschedule:
        service = db["service"].find_one({"_id": ObjectId(booking["service_id"])})
        price = service["price"] if service else booking["total_price"]
        price_type = service.get("price_type", "fixed") if service else "fixed"
        update.update({
            "booking_datetime": start,
            "duration": duration,
            "end_datetime": booking_end(start, duration),
            "total_price": compute_total_price(price, price_type, duration),
        })
    update["updated_at"] = utcnow()

    with provider_lock(booking["provider_id"]):
        if reschedule and not is_available(booking["provider_id"], start, duration, exclude_id=booking["_id"]):
            raise HTTPException(status_code=409, detail=UNAVAILABLE)
        updated = db["booking"].find_one_and_update(
            {"_id": booking["_id"], "status": {"$in": list(EDITABLE)}},
            {"$set": update},
            return_document=ReturnDocument.AFTER,
        )
    if updated is None:
        raise HTTPException(status_code=409, detail="Booking status changed, please reload")
    return {"success": True, "data": present(updated)}


@router.put("/{booking_id}/status")
def update_booking_status(booking_id: str, req: BookingStatusUpdate, current=Depends(get_current_user)):
    if req.status not in STATUSES:
        raise HTTPException(status_code=400, detail="Invalid status")
    booking = find_or_404("booking", booking_id, "Booking")
    actor = party_of(booking, current["id"])
    if actor is None:
        raise HTTPException(status_code=403, detail="Not authorized to update this booking")
    current_status = booking["status"]
    check_transition(current_status, req.status, actor)

    def write():
        return db["booking"].find_one_and_update(
            {"_id": booking["_id"], "status": current_status},
            {"$set": {"status": req.status, "updated_at": utcnow()}},
            return_document=ReturnDocument.AFTER,
        )

    if req.status == CONFIRMED:
        with provider_lock(booking["provider_id"]):
            if not is_available(booking["provider_id"], booking["booking_datetime"],
                                booking.get("duration", 1), exclude_id=booking["_id"]):
                raise HTTPException(status_code=409, detail=UNAVAILABLE)
            updated = write()
    else:
        updated = write()
    if updated is None:
        raise HTTPException(status_code=409, detail="Booking status changed, please reload")

    logger.info("Booking %s: %s -> %s by %s", booking_id, current_status, req.status, actor)
    return {"success": True, "data": present(updated)}


@router.post("/{booking_id}/review")
def add_booking_review(booking_id: str, payload: BookingReviewRequest, current=Depends(get_current_user)):
    booking = find_or_404("booking", booking_id, "Booking")
    if booking["status"] != COMPLETED:
        raise HTTPException(status_code=400, detail="Can only review completed bookings")
    if booking.get("customer_id") != current["id"]:
        raise HTTPException(status_code=403, detail="Not authorized to review this booking")
    if booking.get("user_rating") is not None:
        raise HTTPException(status_code=400, detail="Booking already reviewed")

    with provider_lock(booking["provider_id"]):
        updated = db["booking"].find_one_and_update(
            {"_id": booking["_id"], "status": COMPLETED, "user_rating": None},
            {"$set": {"user_rating": payload.rating, "user_review": payload.review, "updated_at": utcnow()}},
            return_document=ReturnDocument.AFTER,
        )
        if updated is None:
            raise HTTPException(status_code=400, detail="Booking already reviewed")
        recompute_provider_rating(booking["provider_id"])
    return {"success": True, "data": serialize(updated)}
