import logging
from datetime import datetime
from typing import Any, Dict, Optional

from bson import ObjectId
from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile
from pydantic import BaseModel, Field
from pymongo import ReturnDocument

from auth import get_current_user, is_admin
from database import db, create_document, to_utc, utcnow
from schemas import Post, PostType
from uploads import save_upload
from utils import NEWEST_FIRST, find_or_404, pagination, populate, populate_users_in, serialize, to_object_id

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/posts", tags=["posts"])


class PostUpdateRequest(BaseModel):
    content: Optional[str] = Field(None, min_length=1, max_length=1000)
    type: Optional[PostType] = None
    event_date: Optional[datetime] = None
    location: Optional[str] = None
    is_active: Optional[bool] = None


class CommentRequest(BaseModel):
    text: str = Field(..., min_length=1, max_length=500)


def present(post: Dict[str, Any]) -> Dict[str, Any]:
    data = serialize(post)
    populate(data, "author_id", "user", ("name", "avatar"), "author")
    data["comments"] = comments_newest_first(data.get("comments", []))
    return data


def comments_newest_first(comments):
    # stored oldest first by $push
    return populate_users_in(list(reversed(comments)))


def editable_post(post_id: str, current: Dict[str, Any], action: str) -> Dict[str, Any]:
    post = find_or_404("post", post_id, "Post")
    if post.get("author_id") != current["id"] and not is_admin(current):
        raise HTTPException(status_code=403, detail=f"Not authorized to {action} this post")
    return post


@router.get("")
def list_posts(page: int = Query(1, ge=1), limit: int = Query(10, ge=1, le=100),
               type: Optional[str] = None, current=Depends(get_current_user)):
    filt: Dict[str, Any] = {"is_active": True}
    if type:
        filt["type"] = type
    total = db["post"].count_documents(filt)
    cursor = db["post"].find(filt).sort(NEWEST_FIRST).skip((page - 1) * limit).limit(limit)
    docs = [present(p) for p in cursor]
    return {"success": True, "count": len(docs), "pagination": pagination(page, limit, total), "data": docs}


@router.get("/my-posts/count")
def my_posts_count(current=Depends(get_current_user)):
    count = db["post"].count_documents({"author_id": current["id"]})
    return {"success": True, "data": {"count": count}}


@router.get("/{post_id}")
def get_post(post_id: str, current=Depends(get_current_user)):
    return {"success": True, "data": present(find_or_404("post", post_id, "Post"))}


@router.post("", status_code=201)
def create_post(content: str = Form(..., min_length=1, max_length=1000),
                type: PostType = Form("general"),
                event_date: Optional[datetime] = Form(None),
                location: Optional[str] = Form(None),
                image: Optional[UploadFile] = File(None),
                current=Depends(get_current_user)):
    doc = Post(
        author_id=current["id"],
        content=content,
        type=type,
        event_date=to_utc(event_date) if event_date else None,
        location=location,
        image=save_upload(image) if image is not None and image.filename else None,
    )
    new_id = create_document("post", doc)
    return {"success": True, "data": present(db["post"].find_one({"_id": ObjectId(new_id)}))}


@router.put("/{post_id}")
def update_post(post_id: str, payload: PostUpdateRequest, current=Depends(get_current_user)):
    post = editable_post(post_id, current, "update")
    update = {k: v for k, v in payload.model_dump().items() if v is not None}
    if "event_date" in update:
        update["event_date"] = to_utc(update["event_date"])
    update["updated_at"] = utcnow()
    new_doc = db["post"].find_one_and_update(
        {"_id": post["_id"]}, {"$set": update}, return_document=ReturnDocument.AFTER
    )
    return {"success": True, "data": present(new_doc)}


@router.delete("/{post_id}")
def delete_post(post_id: str, current=Depends(get_current_user)):
    post = editable_post(post_id, current, "delete")
    db["post"].delete_one({"_id": post["_id"]})
    logger.info("Post %s deleted by %s", post_id, current["id"])
    return {"success": True, "data": {}}


@router.put("/{post_id}/like")
def like_post(post_id: str, current=Depends(get_current_user)):
    post = find_or_404("post", post_id, "Post")
    res = db["post"].update_one({"_id": post["_id"]}, {"$addToSet": {"likes": current["id"]}})
    if res.modified_count == 0:
        raise HTTPException(status_code=400, detail="Post already liked")
    return {"success": True, "data": db["post"].find_one({"_id": post["_id"]}).get("likes", [])}


@router.put("/{post_id}/unlike")
def unlike_post(post_id: str, current=Depends(get_current_user)):
    post = find_or_404("post", post_id, "Post")
    res = db["post"].update_one({"_id": post["_id"]}, {"$pull": {"likes": current["id"]}})
    if res.modified_count == 0:
        raise HTTPException(status_code=400, detail="Post has not been liked yet")
    return {"success": True, "data": db["post"].find_one({"_id": post["_id"]}).get("likes", [])}


@router.post("/{post_id}/comment")
def add_comment(post_id: str, payload: CommentRequest, current=Depends(get_current_user)):
    post = find_or_404("post", post_id, "Post")
    comment = {"_id": ObjectId(), "user_id": current["id"], "text": payload.text, "created_at": utcnow()}
    new_doc = db["post"].find_one_and_update(
        {"_id": post["_id"]}, {"$push": {"comments": comment}}, return_document=ReturnDocument.AFTER
    )
    return {"success": True, "data": comments_newest_first(serialize(new_doc).get("comments", []))}


@router.delete("/{post_id}/comment/{comment_id}")
def delete_comment(post_id: str, comment_id: str, current=Depends(get_current_user)):
    post = find_or_404("post", post_id, "Post")
    cid = to_object_id(comment_id)
    comment = next((c for c in post.get("comments", []) if c.get("_id") == cid), None)
    if comment is None:
        raise HTTPException(status_code=404, detail="Comment not found")
    if comment.get("user_id") != current["id"] and not is_admin(current):
        raise HTTPException(status_code=403, detail="Not authorized to delete this comment")
    new_doc = db["post"].find_one_and_update(
        {"_id": post["_id"]}, {"$pull": {"comments": {"_id": cid}}}, return_document=ReturnDocument.AFTER
    )
    return {"success": True, "data": comments_newest_first(serialize(new_doc).get("comments", []))}
