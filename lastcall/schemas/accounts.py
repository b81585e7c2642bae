"""Account and signup schemas"""

from pydantic import BaseModel, Field, EmailStr
from typing import Optional
from datetime import date, datetime


class AccountCreate(BaseModel):
    """Schema for creating an account (operator only)"""
    name: str = Field(..., min_length=1, max_length=255)
    phone_number: str = Field(..., description="Sender number, e.g. +15551234567")
    messaging_profile_id: Optional[str] = None
    email: Optional[EmailStr] = None
    coupons_enabled: bool = False
    include_membership_question: bool = False


class AccountResponse(BaseModel):
    """Schema for account response"""
    id: str
    name: str
    slug: str
    phone_number: Optional[str]
    messaging_profile_id: Optional[str]
    email: Optional[str]
    coupons_enabled: bool
    include_membership_question: bool
    signup_enabled: bool
    is_locked: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PublicAccountResponse(BaseModel):
    """What the public signup page needs to render"""
    id: str
    name: str
    slug: str
    include_membership_question: bool


class SignupRequest(BaseModel):
    """Public signup form"""
    name: Optional[str] = Field(None, max_length=255)
    phone_number: str
    email: Optional[EmailStr] = None
    gender: Optional[str] = Field(None, max_length=50)
    birthdate: Optional[date] = None
    membership_status: Optional[str] = Field(None, max_length=50)
    is_member: Optional[bool] = None
    consent: bool = False


class SignupResponse(BaseModel):
    id: str
    created: bool
    subscribe: bool
    birthdate_confirmed: bool
