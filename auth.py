import os
import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional

import jwt
from bson import ObjectId
from fastapi import APIRouter, Depends, File, Header, HTTPException, UploadFile
from passlib.hash import bcrypt
from pydantic import BaseModel, EmailStr, Field
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from database import db, create_document, utcnow
from ratings import recompute_provider_rating, recompute_service_rating
from schemas import Address, Role, User
from uploads import save_upload
from utils import serialize

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])

DEFAULT_JWT_SECRET = "change-me"


def load_jwt_secret() -> str:
    secret = os.getenv("JWT_SECRET")
    if not secret:
        logger.warning("JWT_SECRET is not set, signing tokens with the insecure default key")
        return DEFAULT_JWT_SECRET
    return secret


JWT_SECRET = load_jwt_secret()
JWT_ALGORITHM = "HS256"
JWT_EXPIRE_DAYS = int(os.getenv("JWT_EXPIRE_DAYS", "30"))


# ---------------------------
# Passwords & tokens
# ---------------------------

def hash_password(password: str) -> str:
    return bcrypt.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    if not password_hash:
        return False
    return bcrypt.verify(password, password_hash)


def create_token(user_id: str) -> str:
    payload = {"id": user_id, "iat": utcnow(), "exp": utcnow() + timedelta(days=JWT_EXPIRE_DAYS)}
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)


def decode_token(token: str) -> str:
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Not authorized to access this route")
    user_id = payload.get("id")
    if not user_id or not ObjectId.is_valid(user_id):
        raise HTTPException(status_code=401, detail="Not authorized to access this route")
    return user_id


# ---------------------------
# Dependencies
# ---------------------------

def get_current_user(authorization: Optional[str] = Header(None)) -> Dict[str, Any]:
    if not authorization:
        raise HTTPException(status_code=401, detail="Missing Authorization header")
    if not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=401, detail="Invalid auth scheme")
    token = authorization.split(" ", 1)[1].strip()
    user_id = decode_token(token)
    user = db["user"].find_one({"_id": ObjectId(user_id)})
    if not user:
        raise HTTPException(status_code=401, detail="User no longer exists")
    return serialize(user)


def authorize(*roles: str):
    """Dependency factory restricting a route to the given roles."""
    def checker(current=Depends(get_current_user)) -> Dict[str, Any]:
        if current.get("role") not in roles:
            raise HTTPException(status_code=403, detail=f"User role {current.get('role')} is not authorized to access this route")
        return current
    return checker


def is_admin(user: Dict[str, Any]) -> bool:
    return bool(user.get("is_admin"))


# ---------------------------
# Models (requests)
# ---------------------------
class RegisterRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=50)
    email: EmailStr
    password: str = Field(..., min_length=6)
    role: Role = "resident"
    phone: Optional[str] = Field(None, pattern=r"^\+?[\d\s\-\(\)]{10,}$")


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class ProfileUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=50)
    phone: Optional[str] = Field(None, pattern=r"^\+?[\d\s\-\(\)]{10,}$")
    bio: Optional[str] = Field(None, max_length=500)
    address: Optional[Address] = None
    skills: Optional[List[str]] = None


class PasswordUpdateRequest(BaseModel):
    current_password: str
    new_password: str = Field(..., min_length=6)


def _token_response(user: Dict[str, Any]) -> Dict[str, Any]:
    data = serialize(user)
    return {"success": True, "token": create_token(data["id"]), "data": data}


# ---------------------------
# Routes
# ---------------------------
@router.post("/register", status_code=201)
def register(payload: RegisterRequest):
    email = payload.email.lower()
    if db["user"].find_one({"email": email}):
        raise HTTPException(status_code=409, detail="Email already registered")
    doc = User(
        name=payload.name,
        email=email,
        password_hash=hash_password(payload.password),
        role=payload.role,
        phone=payload.phone,
    )
    try:
        user_id = create_document("user", doc)
    except DuplicateKeyError:
        raise HTTPException(status_code=409, detail="Email already registered")
    logger.info("Registered %s user %s", payload.role, user_id)
    return _token_response(db["user"].find_one({"_id": ObjectId(user_id)}))


@router.post("/login")
def login(payload: LoginRequest):
    user = db["user"].find_one({"email": payload.email.lower()})
    if not user or not verify_password(payload.password, user.get("password_hash", "")):
        logger.warning("Failed login for %s", payload.email.lower())
        raise HTTPException(status_code=401, detail="Invalid credentials")
    return _token_response(user)


@router.get("/me")
def me(current=Depends(get_current_user)):
    return {"success": True, "data": current}


@router.put("/me")
def update_me(payload: ProfileUpdateRequest, current=Depends(get_current_user)):
    update = {k: v for k, v in payload.model_dump().items() if v is not None}
    update["updated_at"] = utcnow()
    user = db["user"].find_one_and_update(
        {"_id": ObjectId(current["id"])}, {"$set": update}, return_document=ReturnDocument.AFTER
    )
    return {"success": True, "data": serialize(user)}


@router.put("/updatepassword")
def update_password(payload: PasswordUpdateRequest, current=Depends(get_current_user)):
    user = db["user"].find_one({"_id": ObjectId(current["id"])})
    if not verify_password(payload.current_password, user.get("password_hash", "")):
        raise HTTPException(status_code=401, detail="Password is incorrect")
    db["user"].update_one(
        {"_id": user["_id"]},
        {"$set": {"password_hash": hash_password(payload.new_password), "updated_at": utcnow()}},
    )
    return _token_response(user)


@router.put("/me/avatar")
def update_avatar(avatar: UploadFile = File(...), current=Depends(get_current_user)):
    url = save_upload(avatar)
    user = db["user"].find_one_and_update(
        {"_id": ObjectId(current["id"])},
        {"$set": {"avatar": url, "updated_at": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    return {"success": True, "data": serialize(user)}


@router.delete("/me")
def delete_me(current=Depends(get_current_user)):
    user_id = current["id"]
    rated_providers = db["booking"].distinct(
        "provider_id", {"customer_id": user_id, "user_rating": {"$ne": None}}
    )
    reviewed_services = db["service"].distinct(
        "_id", {"reviews.user_id": user_id, "provider_id": {"$ne": user_id}}
    )

    db["post"].delete_many({"author_id": user_id})
    db["service"].delete_many({"provider_id": user_id})
    db["marketplaceitem"].delete_many({"seller_id": user_id})
    db["booking"].delete_many({"$or": [{"customer_id": user_id}, {"provider_id": user_id}]})
    db["service"].update_many({"_id": {"$in": reviewed_services}}, {"$pull": {"reviews": {"user_id": user_id}}})
    db["user"].delete_one({"_id": ObjectId(user_id)})

    # ratings the deleted account contributed no longer exist
    for provider_id in rated_providers:
        if provider_id != user_id:
            recompute_provider_rating(provider_id)
    for service_id in reviewed_services:
        recompute_service_rating(service_id)
    logger.info("Deleted user %s and their content", user_id)
    return {"success": True, "data": {}}
