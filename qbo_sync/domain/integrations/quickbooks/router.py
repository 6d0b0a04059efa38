"""QuickBooks router - FastAPI endpoints for the sync"""

import logging

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from ....auth import CallerIdentity, get_caller
from ....database import get_db
from ....exceptions import SyncError
from .schemas import ConnectionStatusResponse, SyncRequest, SyncResponse
from .service import QuickBooksSyncService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/quickbooks", tags=["quickbooks"])


def get_sync_service(db: Session = Depends(get_db)) -> QuickBooksSyncService:
    """Dependency injection for QuickBooksSyncService"""
    return QuickBooksSyncService(db)


@router.post("/sync", response_model=SyncResponse)
async def sync_quickbooks(
    body: SyncRequest,
    caller: CallerIdentity = Depends(get_caller),
    service: QuickBooksSyncService = Depends(get_sync_service),
):
    """Pull items, chart of accounts and P&L for a company from QuickBooks"""
    try:
        return await service.sync(body.companyId, caller)
    except SyncError:
        raise
    except Exception as e:
        logger.exception(f"QBO Sync Error for company {body.companyId}")
        return JSONResponse(status_code=400, content={"error": str(e) or "Unknown error"})


@router.get("/status", response_model=ConnectionStatusResponse)
async def get_status(
    company_id: str = Query(..., alias="companyId", min_length=1),
    caller: CallerIdentity = Depends(get_caller),
    service: QuickBooksSyncService = Depends(get_sync_service),
):
    """Check whether the company has an active QuickBooks connection"""
    status = service.get_status(company_id, caller)
    if status is None:
        return ConnectionStatusResponse(connected=False)

    return ConnectionStatusResponse(
        connected=status.is_active,
        id=status.id,
        isActive=status.is_active,
        lastSyncAt=status.last_sync_at,
        tokenExpiresAt=status.token_expires_at,
        createdAt=status.created_at,
    )
