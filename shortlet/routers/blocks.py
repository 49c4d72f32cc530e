"""
Host calendar blocks
"""
from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.orm import Session
from typing import List
import logging

from ..database import get_db
from ..models.block import ShortletBlock
from ..models.booking import ShortletBooking, BLOCKING_STATUSES
from ..models.listing import ShortletListing
from ..schemas.block import BlockCreate, BlockResponse
from ..services.calendar import block_source
from ..utils.dates import date_key_to_date, to_date_key
from ..utils.db_helpers import acquire_row_lock
from ..utils.rate_limiter import limiter, get_rate_limit
from ..utils.security import Principal, require_roles, HOST_ROLES

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/shortlet/blocks", tags=["Shortlet Blocks"])

require_host = require_roles(*HOST_ROLES)


def _block_response(block: ShortletBlock) -> BlockResponse:
    return BlockResponse(
        id=block.id,
        listing_id=block.listing_id,
        date_from=to_date_key(block.date_from),
        date_to=to_date_key(block.date_to),
        reason=block.reason,
        source=block_source(block.reason),
    )


def _get_managed_listing(db: Session, listing_id: str, principal: Principal, lock: bool = False) -> ShortletListing:
    if lock:
        listing = acquire_row_lock(db, ShortletListing, ShortletListing.id == listing_id)
    else:
        listing = db.query(ShortletListing).filter(ShortletListing.id == listing_id).first()
    if listing is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Listing not found")
    if not principal.is_admin and listing.host_user_id != principal.user_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
    return listing


@router.post("", response_model=BlockResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(get_rate_limit("block_write"))
def create_block(
    request: Request,
    payload: BlockCreate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_host),
):
    """Block [date_from, date_to); refused while an active booking holds any of those nights"""
    # Listing row lock serializes block writes against booking confirmation on PostgreSQL
    listing = _get_managed_listing(db, payload.listing_id, principal, lock=True)

    date_from = date_key_to_date(payload.date_from)
    date_to = date_key_to_date(payload.date_to)
    overlapping = db.query(ShortletBooking).filter(
        ShortletBooking.listing_id == listing.id,
        ShortletBooking.status.in_(BLOCKING_STATUSES),
        ShortletBooking.check_in < date_to,
        ShortletBooking.check_out > date_from,
    ).first()
    if overlapping is not None:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"error": "Dates overlap an existing booking", "bookingId": overlapping.id},
        )

    block = ShortletBlock(
        listing_id=listing.id,
        date_from=date_from,
        date_to=date_to,
        reason=payload.reason,
        created_by=principal.user_id,
    )
    db.add(block)
    db.commit()
    db.refresh(block)

    logger.info(f"Block {block.id} created on listing {listing.id} ({payload.date_from} -> {payload.date_to})")
    return _block_response(block)


@router.get("", response_model=List[BlockResponse])
def list_blocks(
    listing_id: str = Query(..., alias="listingId", min_length=1),
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_host),
):
    listing = _get_managed_listing(db, listing_id, principal)
    blocks = db.query(ShortletBlock).filter(
        ShortletBlock.listing_id == listing.id
    ).order_by(ShortletBlock.date_from).all()
    return [_block_response(block) for block in blocks]


@router.delete("/{block_id}")
@limiter.limit(get_rate_limit("block_write"))
def delete_block(
    request: Request,
    block_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_host),
):
    block = db.query(ShortletBlock).filter(ShortletBlock.id == block_id).first()
    if block is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Block not found")
    _get_managed_listing(db, block.listing_id, principal)

    db.delete(block)
    db.commit()
    logger.info(f"Block {block_id} removed by {principal.user_id}")
    return {"ok": True, "id": block_id}
