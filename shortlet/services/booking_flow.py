"""
Booking Flow Service

Everything a booking goes through outside of the payment webhooks:
- Availability verdicts against the live calendar
- Booking creation in pending_payment
- Host approval: pending -> confirmed / declined
- Sweeps: pending -> expired, confirmed -> completed

Every status change is an UPDATE conditioned on the expected prior status.
Notifications go out only for rows this call actually moved.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..config import Settings
from ..errors import (
    BookingNotFoundError,
    BookingUnavailableError,
    InvalidBookingTransitionError,
    ListingNotFoundError,
    ProviderNotConfiguredError,
)
from ..models.booking import ShortletBooking, BookingStatus
from ..models.listing import ShortletListing
from ..utils.dates import date_key_to_date
from ..utils.logging_config import get_logger
from .availability import (
    RangeValidationReason,
    next_valid_end_date,
    resolve_availability_conflicts,
    validate_range_selection,
)
from .calendar import ListingPolicy, load_listing_calendar
from .notifications import ShortletNotifier
from .payments import BookingSnapshot, choose_payment_provider

logger = get_logger(__name__)

ACCEPT = "accept"
DECLINE = "decline"


@dataclass
class AvailabilityVerdict:
    valid: bool
    reason: Optional[str]
    nights: Optional[int]
    conflicting_dates: List[str] = field(default_factory=list)
    suggested_check_out: Optional[str] = None
    policy: Optional[ListingPolicy] = None


@dataclass
class CreatedBooking:
    booking: ShortletBooking
    payment_provider: str


def quote_total_minor(listing: ShortletListing, nights: int) -> int:
    return int(listing.nightly_price_minor or 0) * nights + int(listing.cleaning_fee_minor or 0)


class BookingFlowService:
    def __init__(self, db: Session, settings: Settings, notifier: Optional[ShortletNotifier] = None):
        self.db = db
        self.settings = settings
        self.notifier = notifier or ShortletNotifier(db, settings)

    def get_listing(self, listing_id: str) -> ShortletListing:
        listing = self.db.query(ShortletListing).filter(
            ShortletListing.id == listing_id,
            ShortletListing.is_active == True,
        ).first()
        if listing is None:
            raise ListingNotFoundError(f"Listing {listing_id} not found")
        return listing

    def get_booking(self, booking_id: str) -> ShortletBooking:
        booking = self.db.query(ShortletBooking).filter(ShortletBooking.id == booking_id).first()
        if booking is None:
            raise BookingNotFoundError(f"Booking {booking_id} not found")
        return booking

    # ==================
    # Availability
    # ==================

    def check_availability(
        self,
        listing: ShortletListing,
        check_in: Optional[str],
        check_out: Optional[str],
        exclude_booking_id: Optional[str] = None,
    ) -> AvailabilityVerdict:
        """Conflict resolution + ordered validation against the current calendar"""
        policy = ListingPolicy.from_listing(listing)
        calendar = load_listing_calendar(
            self.db,
            listing.id,
            exclude_booking_id=exclude_booking_id,
        )
        disabled = calendar.disabled_dates(policy.prep_days)

        conflicts = resolve_availability_conflicts(
            check_in,
            check_out,
            calendar.all_ranges,
            policy.prep_days,
        )
        verdict = validate_range_selection(
            check_in,
            check_out,
            disabled,
            policy.min_nights,
            policy.max_nights,
        )

        suggested = None
        if not verdict.valid and verdict.reason in (
            RangeValidationReason.MIN_NIGHTS,
            RangeValidationReason.MAX_NIGHTS,
            RangeValidationReason.INCLUDES_UNAVAILABLE_NIGHT,
        ):
            suggested = next_valid_end_date(check_in, disabled, policy.min_nights, policy.max_nights)

        return AvailabilityVerdict(
            valid=verdict.valid,
            reason=verdict.reason.value if verdict.reason else None,
            nights=verdict.nights,
            conflicting_dates=conflicts.conflicting_dates,
            suggested_check_out=suggested,
            policy=policy,
        )

    # ==================
    # Creation
    # ==================

    def create_booking(
        self,
        listing_id: str,
        guest_user_id: str,
        check_in: str,
        check_out: str,
        guest_email: Optional[str] = None,
    ) -> CreatedBooking:
        """
        Validate the stay and persist it in pending_payment.

        The verdict is advisory: two concurrent requests for the same nights
        can both pass it. Neither holds the calendar until its payment moves
        it to pending/confirmed.
        """
        listing = self.get_listing(listing_id)

        verdict = self.check_availability(listing, check_in, check_out)
        if not verdict.valid:
            logger.info(f"Booking rejected for listing {listing_id}: {verdict.reason}")
            raise BookingUnavailableError(verdict.reason, verdict.conflicting_dates, verdict.nights)

        provider = choose_payment_provider(listing, self.settings)
        if provider is None:
            raise ProviderNotConfiguredError("PAYMENTS_PROVIDER_UNAVAILABLE")

        booking = ShortletBooking(
            listing_id=listing.id,
            guest_user_id=guest_user_id,
            guest_email=guest_email,
            host_user_id=listing.host_user_id,
            status=BookingStatus.PENDING_PAYMENT.value,
            booking_mode=listing.booking_mode,
            check_in=date_key_to_date(check_in),
            check_out=date_key_to_date(check_out),
            nights=verdict.nights,
            total_amount_minor=quote_total_minor(listing, verdict.nights),
            currency=listing.currency,
        )
        self.db.add(booking)
        self.db.commit()
        self.db.refresh(booking)

        logger.log_with_context(
            logging.INFO,
            "Booking created",
            entity_type="booking",
            entity_id=booking.id,
            listing_id=listing.id,
            nights=booking.nights,
            provider=provider,
        )
        return CreatedBooking(booking=booking, payment_provider=provider)

    # ==================
    # Host response
    # ==================

    def respond(
        self,
        booking_id: str,
        action: str,
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> BookingSnapshot:
        """
        Host decision on a paid request. Only a pending, unexpired booking
        moves; anything else raises InvalidBookingTransitionError.
        """
        now = now or datetime.utcnow()
        booking = self.get_booking(booking_id)
        next_status = BookingStatus.CONFIRMED.value if action == ACCEPT else BookingStatus.DECLINED.value

        values = {
            "status": next_status,
            "responded_at": now,
            "updated_at": now,
        }
        if action == DECLINE:
            values["refund_required"] = True
            values["decline_reason"] = (reason or "").strip() or None

        count = self.db.query(ShortletBooking).filter(
            ShortletBooking.id == booking_id,
            ShortletBooking.status == BookingStatus.PENDING.value,
            or_(ShortletBooking.expires_at == None, ShortletBooking.expires_at > now),
        ).update(values, synchronize_session=False)
        self.db.commit()
        self.db.refresh(booking)

        if not count:
            raise InvalidBookingTransitionError(booking_id, BookingStatus.PENDING.value, booking.status)

        logger.booking_status_changed(booking_id, BookingStatus.PENDING.value, next_status, action=action)
        snapshot = BookingSnapshot.from_booking(booking, next_status, transitioned=True)

        if action == ACCEPT:
            self._dispatch(self.notifier.dispatch_host_approved, snapshot)
        else:
            self._dispatch(self.notifier.dispatch_host_declined, snapshot, values["decline_reason"])
        return snapshot

    def _dispatch(self, send, snapshot: BookingSnapshot, *args) -> None:
        try:
            send(snapshot, *args)
        except Exception as e:
            # The status change is already committed
            self.db.rollback()
            logger.exception(f"Notification dispatch failed for booking {snapshot.booking_id}: {e}")

    def count_pending_requests(self, host_user_id: str) -> int:
        """Paid requests still waiting on this host"""
        return self.db.query(ShortletBooking).filter(
            ShortletBooking.host_user_id == host_user_id,
            ShortletBooking.status == BookingStatus.PENDING.value,
        ).count()

    # ==================
    # Sweeps
    # ==================

    def expire_pending_requests(self, now: Optional[datetime] = None) -> List[str]:
        """pending requests past their host deadline -> expired (refund owed)"""
        now = now or datetime.utcnow()
        candidates = self.db.query(ShortletBooking).filter(
            ShortletBooking.status == BookingStatus.PENDING.value,
            ShortletBooking.expires_at != None,
            ShortletBooking.expires_at <= now,
        ).all()

        expired = []
        for booking in candidates:
            count = self.db.query(ShortletBooking).filter(
                ShortletBooking.id == booking.id,
                ShortletBooking.status == BookingStatus.PENDING.value,
            ).update({
                "status": BookingStatus.EXPIRED.value,
                "refund_required": True,
                "updated_at": now,
            }, synchronize_session=False)
            self.db.commit()
            if not count:
                continue

            self.db.refresh(booking)
            expired.append(booking.id)
            logger.booking_status_changed(booking.id, BookingStatus.PENDING.value, BookingStatus.EXPIRED.value)
            self._dispatch(
                self.notifier.dispatch_expired,
                BookingSnapshot.from_booking(booking, BookingStatus.EXPIRED.value, transitioned=True),
            )

        if expired:
            logger.info(f"Expired {len(expired)} unanswered booking requests")
        return expired

    def complete_past_stays(self, today: Optional[date] = None) -> int:
        """confirmed bookings whose checkout day has arrived -> completed"""
        today = today or datetime.utcnow().date()
        count = self.db.query(ShortletBooking).filter(
            ShortletBooking.status == BookingStatus.CONFIRMED.value,
            ShortletBooking.check_out <= today,
        ).update({
            "status": BookingStatus.COMPLETED.value,
            "updated_at": datetime.utcnow(),
        }, synchronize_session=False)
        self.db.commit()

        if count:
            logger.info(f"Completed {count} past stays")
        return count
