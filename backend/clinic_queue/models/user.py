"""
User and authentication models.
"""

from pydantic import BaseModel, EmailStr, Field
from typing import Optional
from datetime import datetime
from enum import Enum


class UserRole(str, Enum):
    """User roles in the system."""
    ADMIN = "admin"
    DOCTOR = "doctor"
    STAFF = "staff"


class UserBase(BaseModel):
    """Base user model."""
    email: EmailStr
    full_name: str = Field(..., min_length=2, max_length=100)
    username: Optional[str] = None
    role: UserRole = UserRole.STAFF


class UserLogin(BaseModel):
    """User login model."""
    email: EmailStr
    password: str


class User(UserBase):
    """User response model (no password)."""
    id: str = Field(..., alias="_id")
    is_active: bool = True
    created_at: datetime

    class Config:
        populate_by_name = True


class UserRef(BaseModel):
    """Minimal display projection of a referenced user."""
    id: str
    name: str
    username: Optional[str] = None


class Token(BaseModel):
    """JWT token response."""
    access_token: str
    token_type: str = "bearer"
    user: User


class TokenData(BaseModel):
    """JWT token payload data."""
    user_id: Optional[str] = None
    email: Optional[str] = None
    role: Optional[UserRole] = None
