"""
Blasts router - create, schedule and send bulk SMS for one account
"""

from fastapi import APIRouter, Depends, Query, status
from typing import Annotated, List, Optional
from uuid import UUID
import logging

from ..core.store import PostgresStore
from ..dependencies import get_store, get_telnyx, require_account_access
from ..schemas.blasts import (
    BlastCreate,
    BlastUpdate,
    BlastScheduleRequest,
    SendBlastRequest,
    BlastResponse,
    DeliveryReportResponse,
    RecipientPreviewResponse,
    TargetingSchema,
)
from ..services import blast_service
from ..services.telnyx_service import TelnyxService

router = APIRouter()
logger = logging.getLogger(__name__)


def _targeting_dict(targeting: Optional[TargetingSchema]):
    return targeting.model_dump(exclude_none=True) if targeting is not None else None


@router.get("", response_model=List[BlastResponse])
async def list_blasts(
    account_id: Annotated[UUID, Depends(require_account_access)],
    store: Annotated[PostgresStore, Depends(get_store)],
    status_filter: Optional[str] = Query(None, alias="status"),
):
    """List blasts, newest first, optionally by status"""
    blasts = await blast_service.list_blasts(store, account_id, status=status_filter)
    return [BlastResponse.from_blast(b) for b in blasts]


@router.post("", response_model=BlastResponse, status_code=status.HTTP_201_CREATED)
async def create_blast(
    data: BlastCreate,
    account_id: Annotated[UUID, Depends(require_account_access)],
    store: Annotated[PostgresStore, Depends(get_store)],
):
    """Create a draft blast, or a scheduled one when scheduled_date is given"""
    blast = await blast_service.create_blast(
        store,
        account_id,
        message=data.message,
        targeting=_targeting_dict(data.targeting),
        scheduled_date=data.scheduled_date,
    )
    return BlastResponse.from_blast(blast)


@router.get("/scheduled", response_model=List[BlastResponse])
async def list_scheduled_blasts(
    account_id: Annotated[UUID, Depends(require_account_access)],
    store: Annotated[PostgresStore, Depends(get_store)],
):
    blasts = await blast_service.list_scheduled(store, account_id)
    return [BlastResponse.from_blast(b) for b in blasts]


@router.post("/preview", response_model=RecipientPreviewResponse)
async def preview_recipients(
    data: TargetingSchema,
    account_id: Annotated[UUID, Depends(require_account_access)],
    store: Annotated[PostgresStore, Depends(get_store)],
):
    """Count recipients a filter would reach right now"""
    result = await blast_service.preview_recipients(store, account_id, _targeting_dict(data))
    return RecipientPreviewResponse(**result)


@router.get("/{blast_id}", response_model=BlastResponse)
async def get_blast(
    blast_id: UUID,
    account_id: Annotated[UUID, Depends(require_account_access)],
    store: Annotated[PostgresStore, Depends(get_store)],
):
    blast = await blast_service.get_blast(store, account_id, blast_id)
    return BlastResponse.from_blast(blast)


@router.patch("/{blast_id}", response_model=BlastResponse)
async def update_blast(
    blast_id: UUID,
    data: BlastUpdate,
    account_id: Annotated[UUID, Depends(require_account_access)],
    store: Annotated[PostgresStore, Depends(get_store)],
):
    """Edit message or targeting of a draft or scheduled blast"""
    blast = await blast_service.update_blast(
        store,
        account_id,
        blast_id,
        message=data.message,
        targeting=_targeting_dict(data.targeting),
    )
    return BlastResponse.from_blast(blast)


@router.delete("/{blast_id}")
async def delete_blast(
    blast_id: UUID,
    account_id: Annotated[UUID, Depends(require_account_access)],
    store: Annotated[PostgresStore, Depends(get_store)],
):
    await blast_service.delete_blast(store, account_id, blast_id)
    return {"success": True}


@router.post("/{blast_id}/send", response_model=DeliveryReportResponse)
async def send_blast(
    blast_id: UUID,
    account_id: Annotated[UUID, Depends(require_account_access)],
    store: Annotated[PostgresStore, Depends(get_store)],
    telnyx: Annotated[TelnyxService, Depends(get_telnyx)],
    data: Optional[SendBlastRequest] = None,
):
    """Send now. Waits for every send to finish and returns the delivery report."""
    report = await blast_service.send_blast_now(
        store,
        telnyx,
        account_id,
        blast_id,
        targeting=_targeting_dict(data.targeting) if data else None,
    )
    stats = report.to_stats()
    return DeliveryReportResponse(
        blast_id=str(blast_id),
        total_attempted=stats["total_attempted"],
        success_count=stats["success_count"],
        failure_count=stats["failure_count"],
        failed_recipients=stats["failed_recipients"],
    )


@router.post("/{blast_id}/schedule", response_model=BlastResponse)
async def schedule_blast(
    blast_id: UUID,
    data: BlastScheduleRequest,
    account_id: Annotated[UUID, Depends(require_account_access)],
    store: Annotated[PostgresStore, Depends(get_store)],
):
    blast = await blast_service.schedule_blast(store, account_id, blast_id, data.scheduled_date)
    return BlastResponse.from_blast(blast)


@router.post("/{blast_id}/unschedule", response_model=BlastResponse)
async def unschedule_blast(
    blast_id: UUID,
    account_id: Annotated[UUID, Depends(require_account_access)],
    store: Annotated[PostgresStore, Depends(get_store)],
):
    blast = await blast_service.unschedule_blast(store, account_id, blast_id)
    return BlastResponse.from_blast(blast)
