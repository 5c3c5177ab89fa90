"""
Database Schemas for the Neighborhood API

Each Pydantic model represents a MongoDB collection. The collection name is the
lowercase of the class name (e.g., MarketplaceItem -> "marketplaceitem").
References to other documents are stored as stringified ObjectIds.
"""
from typing import List, Optional, Literal
from pydantic import BaseModel, Field, EmailStr
from datetime import datetime

Role = Literal["resident", "service_provider"]
PriceType = Literal["fixed", "hourly", "negotiable"]
BookingStatus = Literal["pending", "confirmed", "in_progress", "completed", "cancelled"]
PostType = Literal["general", "event", "alert", "question"]
ItemStatus = Literal["available", "pending", "sold"]
ItemCondition = Literal["new", "like_new", "good", "fair", "poor"]

ServiceCategory = Literal[
    "plumbing", "electrical", "cleaning", "tutoring", "gardening", "carpentry",
    "painting", "moving", "pet_care", "beauty", "fitness", "other",
]
ItemCategory = Literal["furniture", "electronics", "clothing", "sports", "home", "books", "vehicles", "other"]


class Address(BaseModel):
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None


class User(BaseModel):
    """
    Residents and service providers.
    Collection: "user"
    """
    name: str = Field(..., max_length=50, description="Full name")
    email: EmailStr = Field(..., description="Unique email address, stored lowercased")
    password_hash: str = Field(..., description="BCrypt hash of the user's password")
    role: Role = Field("resident")
    phone: Optional[str] = Field(None, pattern=r"^\+?[\d\s\-\(\)]{10,}$")
    avatar: Optional[str] = Field(None, description="Avatar image URL")
    bio: Optional[str] = Field(None, max_length=500)
    address: Optional[Address] = None
    skills: List[str] = Field(default_factory=list)
    rating: float = Field(0, ge=0, le=5, description="Mean of booking review ratings")
    review_count: int = Field(0, ge=0)
    is_verified: bool = Field(False)
    is_admin: bool = Field(False)


class ServiceReview(BaseModel):
    """Review embedded in a service document."""
    user_id: str
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = Field(None, max_length=500)
    created_at: datetime


class Service(BaseModel):
    """
    Service listings created by providers.
    Collection: "service"
    """
    provider_id: str = Field(..., description="Owner user id (ObjectId as string)")
    title: str = Field(..., max_length=100)
    description: str = Field(..., max_length=1000)
    category: ServiceCategory
    price: float = Field(..., ge=0)
    price_type: PriceType = Field("fixed")
    availability: str = Field("Flexible", description="Free text availability notes")
    images: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    is_active: bool = Field(True)
    reviews: List[ServiceReview] = Field(default_factory=list)
    rating: float = Field(0, ge=0, le=5)
    review_count: int = Field(0, ge=0)


class Booking(BaseModel):
    """
    A customer's booking of a provider's service.
    Collection: "booking"
    """
    service_id: str
    customer_id: str
    provider_id: str = Field(..., description="Copied from the service at creation")
    booking_datetime: datetime = Field(..., description="Start time, naive UTC")
    duration: float = Field(1, gt=0, description="Length in hours")
    end_datetime: datetime = Field(..., description="booking_datetime + duration")
    total_price: float = Field(..., ge=0)
    address: str
    message: Optional[str] = Field(None, max_length=500)
    status: BookingStatus = Field("pending")
    user_rating: Optional[int] = Field(None, ge=1, le=5)
    user_review: Optional[str] = Field(None, max_length=500)


class Post(BaseModel):
    """
    Community feed entries.
    Collection: "post"
    """
    author_id: str
    content: str = Field(..., max_length=1000)
    image: Optional[str] = None
    type: PostType = Field("general")
    event_date: Optional[datetime] = None
    location: Optional[str] = None
    likes: List[str] = Field(default_factory=list, description="Ids of users who liked the post")
    comments: List[dict] = Field(default_factory=list, description="List of {_id, user_id, text, created_at}")
    is_active: bool = Field(True)


class MarketplaceItem(BaseModel):
    """
    Items listed for sale by residents.
    Collection: "marketplaceitem"
    """
    seller_id: str
    title: str = Field(..., max_length=100)
    description: str = Field(..., max_length=1000)
    price: float = Field(..., ge=0)
    category: ItemCategory
    condition: ItemCondition = Field("good")
    images: List[str] = Field(default_factory=list)
    location: str
    address: Optional[Address] = None
    status: ItemStatus = Field("available")
    tags: List[str] = Field(default_factory=list)
    view_count: int = Field(0, ge=0)
    is_active: bool = Field(True)
