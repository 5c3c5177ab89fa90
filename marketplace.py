from typing import Any, Dict, List, Optional

from bson import ObjectId
from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile
from pydantic import BaseModel, Field
from pymongo import ReturnDocument

from auth import get_current_user
from database import db, create_document, utcnow
from schemas import Address, ItemCategory, ItemCondition, MarketplaceItem
from uploads import save_upload
from utils import (
    NEWEST_FIRST, find_or_404, pagination, parse_sort, populate, price_range, search_filter, serialize,
    to_object_id,
)

router = APIRouter(prefix="/api/marketplace", tags=["marketplace"])

ITEM_STATUSES = ("available", "pending", "sold")
SORTABLE = ("created_at", "price", "title", "view_count")


class ItemUpdateRequest(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, min_length=1, max_length=1000)
    price: Optional[float] = Field(None, ge=0)
    category: Optional[ItemCategory] = None
    condition: Optional[ItemCondition] = None
    location: Optional[str] = None
    address: Optional[Address] = None
    tags: Optional[List[str]] = None
    is_active: Optional[bool] = None


class ItemStatusUpdate(BaseModel):
    status: str


def present(item: Dict[str, Any], seller_fields=("name", "avatar", "rating")) -> Dict[str, Any]:
    data = serialize(item)
    populate(data, "seller_id", "user", seller_fields, "seller")
    return data


def owned_item(item_id: str, current: Dict[str, Any], action: str) -> Dict[str, Any]:
    item = find_or_404("marketplaceitem", item_id, "Item")
    if item.get("seller_id") != current["id"]:
        raise HTTPException(status_code=403, detail=f"Not authorized to {action} this item")
    return item


@router.get("")
def list_items(category: Optional[str] = None, search: Optional[str] = None,
               min_price: Optional[float] = None, max_price: Optional[float] = None,
               condition: Optional[str] = None,
               page: int = Query(1, ge=1), limit: int = Query(12, ge=1, le=100),
               sort: str = "-created_at"):
    filt: Dict[str, Any] = {"is_active": True, "status": "available"}
    if category and category != "all":
        filt["category"] = category
    if search:
        filt["$or"] = search_filter(search, ("title", "description", "tags"))
    rng = price_range(min_price, max_price)
    if rng:
        filt["price"] = rng
    if condition:
        filt["condition"] = condition

    total = db["marketplaceitem"].count_documents(filt)
    cursor = db["marketplaceitem"].find(filt).sort(parse_sort(sort, SORTABLE)).skip((page - 1) * limit).limit(limit)
    docs = [present(i) for i in cursor]
    return {"success": True, "count": len(docs), "pagination": pagination(page, limit, total), "data": docs}


@router.get("/my-items")
def my_items(current=Depends(get_current_user)):
    docs = [serialize(i) for i in db["marketplaceitem"].find({"seller_id": current["id"]}).sort(NEWEST_FIRST)]
    return {"success": True, "count": len(docs), "data": docs}


@router.get("/my-items/count")
def my_items_count(current=Depends(get_current_user)):
    count = db["marketplaceitem"].count_documents({"seller_id": current["id"]})
    return {"success": True, "data": {"count": count}}


@router.get("/{item_id}")
def get_item(item_id: str):
    item = db["marketplaceitem"].find_one_and_update(
        {"_id": to_object_id(item_id)},
        {"$inc": {"view_count": 1}},
        return_document=ReturnDocument.AFTER,
    )
    if not item:
        raise HTTPException(status_code=404, detail="Item not found")
    return {"success": True, "data": present(item, ("name", "avatar", "rating", "phone"))}


@router.post("", status_code=201)
def create_item(title: str = Form(..., min_length=1, max_length=100),
                description: str = Form(..., min_length=1, max_length=1000),
                price: float = Form(..., ge=0),
                category: ItemCategory = Form(...),
                condition: ItemCondition = Form("good"),
                location: str = Form(..., min_length=1),
                tags: List[str] = Form([]),
                images: List[UploadFile] = File([]),
                current=Depends(get_current_user)):
    doc = MarketplaceItem(
        seller_id=current["id"],
        title=title,
        description=description,
        price=price,
        category=category,
        condition=condition,
        location=location,
        tags=tags,
        images=[save_upload(f) for f in images if f.filename],
    )
    new_id = create_document("marketplaceitem", doc)
    return {"success": True, "data": present(db["marketplaceitem"].find_one({"_id": ObjectId(new_id)}))}


@router.put("/{item_id}")
def update_item(item_id: str, payload: ItemUpdateRequest, current=Depends(get_current_user)):
    item = owned_item(item_id, current, "update")
    update = {k: v for k, v in payload.model_dump().items() if v is not None}
    update["updated_at"] = utcnow()
    new_doc = db["marketplaceitem"].find_one_and_update(
        {"_id": item["_id"]}, {"$set": update}, return_document=ReturnDocument.AFTER
    )
    return {"success": True, "data": present(new_doc)}


@router.delete("/{item_id}")
def delete_item(item_id: str, current=Depends(get_current_user)):
    item = owned_item(item_id, current, "delete")
    db["marketplaceitem"].delete_one({"_id": item["_id"]})
    return {"success": True, "data": {}}


@router.put("/{item_id}/status")
def update_item_status(item_id: str, req: ItemStatusUpdate, current=Depends(get_current_user)):
    if req.status not in ITEM_STATUSES:
        raise HTTPException(status_code=400, detail="Invalid status")
    item = owned_item(item_id, current, "update")
    new_doc = db["marketplaceitem"].find_one_and_update(
        {"_id": item["_id"]},
        {"$set": {"status": req.status, "updated_at": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    return {"success": True, "data": serialize(new_doc)}
