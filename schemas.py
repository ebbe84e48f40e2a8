"""
Guide Marketplace Schemas

Stored models map to MongoDB collections:
- GuideAccount -> "guide_account"
- TouristAccount -> "tourist_account"
- GuideProfile -> "guide"
- Booking -> "booking"

Request/response bodies for the HTTP API live alongside them.
"""
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field

BOOKING_STATUSES = ("pending", "accepted", "rejected", "completed", "cancelled")

Role = Literal["guide", "tourist"]


class Identity(BaseModel):
    """Caller identity decoded from a session token."""
    id: str
    email: str
    role: Role


# -------------------- Accounts --------------------
class GuideAccount(BaseModel):
    """
    Guide login identity (password hash never serialized)
    Collection: guide_account
    """
    id: str
    email: EmailStr
    full_name: str
    has_profile: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class TouristAccount(BaseModel):
    """
    Collection: tourist_account
    """
    id: str
    email: EmailStr
    full_name: str
    nationality: str
    has_profile: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class RegisterGuideRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=72)
    full_name: str = Field(..., min_length=1)


class RegisterTouristRequest(RegisterGuideRequest):
    nationality: str = Field(..., min_length=1)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str = Field(..., min_length=6, max_length=72)


class GuideAuthResponse(GuideAccount):
    token: str


class TouristAuthResponse(TouristAccount):
    token: str


# -------------------- Guide profiles --------------------
class GuideProfileCreate(BaseModel):
    full_name: str = Field(..., min_length=1, description="Full name")
    email: EmailStr = Field(..., description="Contact email")
    phone: Optional[str] = None
    city: str = Field(..., min_length=1)
    languages: List[str] = Field(default_factory=list, description="Spoken languages")
    experience: str = Field(..., description="Years or description of experience")
    hourly_rate: float = Field(..., ge=0, description="Price per hour")
    bio: Optional[str] = None
    profile_image: str = Field(..., min_length=1, description="Profile image reference")


class GuideProfileUpdate(BaseModel):
    full_name: Optional[str] = Field(None, min_length=1)
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    city: Optional[str] = Field(None, min_length=1)
    languages: Optional[List[str]] = None
    experience: Optional[str] = None
    hourly_rate: Optional[float] = Field(None, ge=0)
    bio: Optional[str] = None
    profile_image: Optional[str] = Field(None, min_length=1)


class GuideProfile(GuideProfileCreate):
    """
    Published guide profile; id equals the owning guide account id
    Collection: guide
    """
    id: str
    rating: float = Field(0, ge=0, le=5)
    total_tours: int = 0
    request_count: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class RatingRequest(BaseModel):
    rating: float = Field(..., ge=0, le=5)


# -------------------- Bookings --------------------
class BookingCreate(BaseModel):
    guide_id: str
    tourist_id: Optional[str] = Field(None, description="Defaults to the caller")
    start_date: datetime
    end_date: datetime
    party_size: int = Field(..., ge=1)
    notes: Optional[str] = None
    itinerary_id: Optional[str] = Field(None, description="Linked AI itinerary")


class Booking(BaseModel):
    """
    Booking request between a tourist and a guide
    Collection: booking
    """
    id: str
    guide_id: str
    tourist_id: str
    tourist_name: Optional[str] = Field(None, description="Looked up, not stored")
    start_date: datetime
    end_date: datetime
    party_size: int
    notes: Optional[str] = None
    itinerary_id: Optional[str] = None
    status: str = "pending"
    total_cost: float
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class StatusUpdate(BaseModel):
    status: str
