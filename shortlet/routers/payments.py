"""
Shortlet checkout initialization (Paystack / Stripe)
"""
from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from ..config import Settings, get_settings
from ..database import get_db
from ..errors import ShortletError
from ..schemas.payment import PaymentInitRequest, PaymentInitResponse
from ..services.checkout import CheckoutResult, CheckoutService
from ..utils.http_errors import to_http_exception
from ..utils.rate_limiter import limiter, get_rate_limit
from ..utils.security import Principal, require_roles, GUEST_ROLES

router = APIRouter(prefix="/api/shortlet/payments", tags=["Shortlet Payments"])


def _init_response(result: CheckoutResult) -> PaymentInitResponse:
    return PaymentInitResponse(
        booking_id=result.booking_id,
        provider=result.provider,
        reference=result.reference,
        checkout_url=result.checkout_url,
        already_succeeded=result.already_succeeded,
    )


@router.post("/paystack/init", response_model=PaymentInitResponse)
@limiter.limit(get_rate_limit("payment_init"))
def init_paystack(
    request: Request,
    payload: PaymentInitRequest,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    principal: Principal = Depends(require_roles(*GUEST_ROLES)),
):
    try:
        result = CheckoutService(db, settings).start_paystack(payload.booking_id, principal.user_id, principal.email)
    except ShortletError as e:
        raise to_http_exception(e)
    return _init_response(result)


@router.post("/stripe/init", response_model=PaymentInitResponse)
@limiter.limit(get_rate_limit("payment_init"))
def init_stripe(
    request: Request,
    payload: PaymentInitRequest,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    principal: Principal = Depends(require_roles(*GUEST_ROLES)),
):
    try:
        result = CheckoutService(db, settings).start_stripe(payload.booking_id, principal.user_id, principal.email)
    except ShortletError as e:
        raise to_http_exception(e)
    return _init_response(result)
