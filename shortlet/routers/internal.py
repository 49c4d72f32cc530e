"""
Internal cron endpoints

Called by the scheduler with the shared x-cron-secret header.
"""
from fastapi import APIRouter, Depends, Header, HTTPException, Query, status
from sqlalchemy.orm import Session
from typing import Optional
import hmac

from ..config import Settings, get_settings
from ..database import get_db
from ..schemas.payment import ReconcileSummaryResponse
from ..services.booking_flow import BookingFlowService
from ..services.payment_reconcile import PaymentReconcileService

router = APIRouter(prefix="/api/internal/shortlet", tags=["Internal"])


def require_cron_secret(
    x_cron_secret: Optional[str] = Header(None, alias="x-cron-secret"),
    settings: Settings = Depends(get_settings),
) -> None:
    expected = settings.cron_secret.strip()
    provided = (x_cron_secret or "").strip()
    if not expected or not provided or not hmac.compare_digest(expected, provided):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")


@router.post("/reconcile-payments", response_model=ReconcileSummaryResponse, dependencies=[Depends(require_cron_secret)])
def reconcile_payments(
    limit: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    summary = PaymentReconcileService(db, settings).run(limit=limit)
    return ReconcileSummaryResponse(**summary.to_dict())


@router.post("/expire-bookings", dependencies=[Depends(require_cron_secret)])
def expire_bookings(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    expired = BookingFlowService(db, settings).expire_pending_requests()
    return {"ok": True, "expired": len(expired), "bookingIds": expired}


@router.post("/complete-bookings", dependencies=[Depends(require_cron_secret)])
def complete_bookings(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    completed = BookingFlowService(db, settings).complete_past_stays()
    return {"ok": True, "completed": completed}
