"""Blast schemas for API requests and responses"""

from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from datetime import datetime


class TargetingSchema(BaseModel):
    """Audience filter. Omitted fields and "all" mean no filter."""
    genders: Optional[List[str]] = None
    age_range: Optional[str] = Field(None, description="'21-25', '40+' or 'all'")
    membership_status: Optional[str] = None


class BlastCreate(BaseModel):
    """Schema for creating a blast (draft, or scheduled when scheduled_date is set)"""
    message: str = Field(..., min_length=1, max_length=1600)
    targeting: Optional[TargetingSchema] = None
    scheduled_date: Optional[datetime] = None


class BlastUpdate(BaseModel):
    """Schema for editing a draft or scheduled blast"""
    message: Optional[str] = Field(None, min_length=1, max_length=1600)
    targeting: Optional[TargetingSchema] = None


class BlastScheduleRequest(BaseModel):
    scheduled_date: datetime


class SendBlastRequest(BaseModel):
    """Optional targeting override for an immediate send"""
    targeting: Optional[TargetingSchema] = None


class BlastResponse(BaseModel):
    """Schema for blast response"""
    id: str
    account_id: str
    message: str
    status: str
    scheduled_date: Optional[datetime] = None
    time_slot: Optional[str] = None
    targeting: Dict[str, Any] = {}
    delivery_stats: Optional[Dict[str, Any]] = None
    sent_at: Optional[datetime] = None
    error: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

    @classmethod
    def from_blast(cls, blast) -> "BlastResponse":
        return cls(
            id=str(blast.id),
            account_id=str(blast.account_id),
            message=blast.message,
            status=blast.status,
            scheduled_date=blast.scheduled_date,
            time_slot=blast.time_slot,
            targeting=blast.targeting or {},
            delivery_stats=blast.delivery_stats,
            sent_at=blast.sent_at,
            error=blast.error,
            created_at=blast.created_at,
            updated_at=blast.updated_at,
        )


class DeliveryReportResponse(BaseModel):
    """Outcome of an immediate send"""
    blast_id: str
    total_attempted: int
    success_count: int
    failure_count: int
    failed_recipients: List[Dict[str, Any]] = []


class RecipientPreviewResponse(BaseModel):
    count: int
    targeting: Dict[str, Any]
