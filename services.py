import logging
from typing import Any, Dict, List, Optional

from bson import ObjectId
from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from pymongo import ReturnDocument

from auth import authorize, get_current_user
from availability import provider_lock
from booking_states import COMPLETED
from database import db, create_document, utcnow
from ratings import recompute_service_rating
from schemas import PriceType, Service, ServiceCategory, ServiceReview
from utils import (
    NEWEST_FIRST, find_or_404, pagination, parse_sort, populate, populate_users_in, price_range,
    search_filter, serialize,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/services", tags=["services"])

PROVIDER_FIELDS = ("name", "avatar", "rating", "review_count")
SORTABLE = ("created_at", "price", "rating", "title")


# ---------------------------
# Models (requests)
# ---------------------------
class ServiceCreateRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=100)
    description: str = Field(..., min_length=1, max_length=1000)
    category: ServiceCategory
    price: float = Field(..., ge=0)
    price_type: PriceType = "fixed"
    availability: str = "Flexible"
    images: List[str] = []
    tags: List[str] = []


class ServiceUpdateRequest(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, min_length=1, max_length=1000)
    category: Optional[ServiceCategory] = None
    price: Optional[float] = Field(None, ge=0)
    price_type: Optional[PriceType] = None
    availability: Optional[str] = None
    images: Optional[List[str]] = None
    tags: Optional[List[str]] = None
    is_active: Optional[bool] = None


class ServiceReviewRequest(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = Field(None, max_length=500)


def present(service: Dict[str, Any], provider_fields=PROVIDER_FIELDS) -> Dict[str, Any]:
    data = serialize(service)
    populate(data, "provider_id", "user", provider_fields, "provider")
    return data


def owned_service(service_id: str, current: Dict[str, Any], action: str) -> Dict[str, Any]:
    svc = find_or_404("service", service_id, "Service")
    if svc.get("provider_id") != current["id"]:
        raise HTTPException(status_code=403, detail=f"Not authorized to {action} this service")
    return svc


# ---------------------------
# Routes
# ---------------------------
@router.get("")
def list_services(category: Optional[str] = None, search: Optional[str] = None,
                  min_price: Optional[float] = None, max_price: Optional[float] = None,
                  price_type: Optional[str] = None, provider: Optional[str] = None,
                  page: int = Query(1, ge=1), limit: int = Query(10, ge=1, le=100),
                  sort: str = "-created_at"):
    filt: Dict[str, Any] = {"is_active": True}
    if category and category != "all":
        filt["category"] = category
    if provider:
        filt["provider_id"] = provider
    if price_type:
        filt["price_type"] = price_type
    if search:
        filt["$or"] = search_filter(search, ("title", "description", "tags"))
    rng = price_range(min_price, max_price)
    if rng:
        filt["price"] = rng

    total = db["service"].count_documents(filt)
    cursor = db["service"].find(filt).sort(parse_sort(sort, SORTABLE)).skip((page - 1) * limit).limit(limit)
    docs = [present(s) for s in cursor]
    return {"success": True, "count": len(docs), "pagination": pagination(page, limit, total), "data": docs}


@router.get("/my-services")
def my_services(current=Depends(get_current_user)):
    docs = [present(s) for s in db["service"].find({"provider_id": current["id"]}).sort(NEWEST_FIRST)]
    return {"success": True, "count": len(docs), "data": docs}


@router.get("/provider/{provider_id}")
def services_by_provider(provider_id: str):
    docs = [present(s) for s in db["service"].find({"provider_id": provider_id, "is_active": True})]
    return {"success": True, "count": len(docs), "data": docs}


@router.get("/{service_id}")
def get_service(service_id: str):
    svc = find_or_404("service", service_id, "Service")
    data = present(svc, PROVIDER_FIELDS + ("bio", "phone"))
    populate_users_in(data.get("reviews", []))
    return {"success": True, "data": data}


@router.post("", status_code=201)
def create_service(data: ServiceCreateRequest, current=Depends(authorize("service_provider"))):
    doc = Service(provider_id=current["id"], **data.model_dump())
    new_id = create_document("service", doc)
    logger.info("Service %s created by %s", new_id, current["id"])
    return {"success": True, "data": present(db["service"].find_one({"_id": ObjectId(new_id)}))}


@router.put("/{service_id}")
def update_service(service_id: str, payload: ServiceUpdateRequest, current=Depends(get_current_user)):
    svc = owned_service(service_id, current, "update")
    update = {k: v for k, v in payload.model_dump().items() if v is not None}
    update["updated_at"] = utcnow()
    new_doc = db["service"].find_one_and_update(
        {"_id": svc["_id"]}, {"$set": update}, return_document=ReturnDocument.AFTER
    )
    return {"success": True, "data": present(new_doc)}


@router.delete("/{service_id}")
def delete_service(service_id: str, current=Depends(get_current_user)):
    svc = owned_service(service_id, current, "delete")
    db["service"].delete_one({"_id": svc["_id"]})
    logger.info("Service %s deleted by %s", service_id, current["id"])
    return {"success": True, "data": {}}


@router.post("/{service_id}/reviews")
def add_service_review(service_id: str, payload: ServiceReviewRequest, current=Depends(get_current_user)):
    svc = find_or_404("service", service_id, "Service")
    if any(r.get("user_id") == current["id"] for r in svc.get("reviews", [])):
        raise HTTPException(status_code=400, detail="Service already reviewed")
    has_booked = db["booking"].find_one({
        "service_id": str(svc["_id"]),
        "customer_id": current["id"],
        "status": COMPLETED,
    })
    if not has_booked:
        raise HTTPException(status_code=400, detail="You can only review services you have booked and completed")

    review = ServiceReview(user_id=current["id"], rating=payload.rating, comment=payload.comment, created_at=utcnow())
    entry = {"_id": ObjectId(), **review.model_dump()}
    with provider_lock(svc["provider_id"]):
        res = db["service"].update_one(
            {"_id": svc["_id"], "reviews.user_id": {"$ne": current["id"]}},
            {"$push": {"reviews": entry}},
        )
        if res.modified_count == 0:
            raise HTTPException(status_code=400, detail="Service already reviewed")
        recompute_service_rating(svc["_id"])
    reviews = serialize(db["service"].find_one({"_id": svc["_id"]})).get("reviews", [])
    return {"success": True, "data": populate_users_in(reviews)}
