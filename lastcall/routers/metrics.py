"""
Metrics router - audience snapshots for one account
"""

from fastapi import APIRouter, Depends
from typing import Annotated
from uuid import UUID

from ..core.store import PostgresStore
from ..dependencies import get_store, require_account_access
from ..services import metrics_service

router = APIRouter()


@router.get("")
async def get_metrics(
    account_id: Annotated[UUID, Depends(require_account_access)],
    store: Annotated[PostgresStore, Depends(get_store)],
):
    """Stored snapshots (null where never computed)"""
    return await metrics_service.get_metrics(store, account_id)


@router.post("/refresh")
async def refresh_metrics(
    account_id: Annotated[UUID, Depends(require_account_access)],
    store: Annotated[PostgresStore, Depends(get_store)],
):
    """Recompute all snapshots from current recipients"""
    return await metrics_service.refresh_metrics(store, account_id)


@router.get("/audit")
async def audit_metrics(
    account_id: Annotated[UUID, Depends(require_account_access)],
    store: Annotated[PostgresStore, Depends(get_store)],
):
    discrepancies = await metrics_service.audit_metrics(store, account_id)
    return {"consistent": not discrepancies, "discrepancies": discrepancies}
