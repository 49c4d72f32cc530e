"""
Booking Notification Dispatch

Sends the guest/host notices for each booking edge:
- In-app rows in shortlet_notifications, deduplicated by dedupe_key
- Transactional email through a Resend-compatible HTTP API

Delivery is best effort. A failed email or a duplicate in-app row is
logged and never undoes the booking transition that triggered it.
"""

import html
import logging
from dataclasses import dataclass
from typing import Optional

import httpx
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..config import Settings
from ..models.notification import ShortletNotification, NotificationType
from .payments import BookingSnapshot

logger = logging.getLogger(__name__)

DEFAULT_LISTING_TITLE = "Shortlet listing"


@dataclass
class EmailResult:
    ok: bool
    error: Optional[str] = None
    message_id: Optional[str] = None


class EmailSender:
    """send(to, subject, html) -> EmailResult over the Resend API"""

    def __init__(self, api_key: str, sender: str, api_url: str = "https://api.resend.com/emails", timeout: float = 20):
        self.api_key = (api_key or "").strip()
        self.sender = sender
        self.api_url = api_url
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> "EmailSender":
        return cls(
            api_key=settings.resend_api_key,
            sender=settings.resend_from,
            api_url=settings.email_api_url,
            timeout=settings.gateway_timeout_seconds,
        )

    def send(self, to: Optional[str], subject: str, html: str) -> EmailResult:
        if not self.api_key:
            return EmailResult(ok=False, error="resend_not_configured")
        if not to:
            return EmailResult(ok=False, error="missing_recipient")

        try:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.post(
                    self.api_url,
                    headers={
                        "Authorization": f"Bearer {self.api_key}",
                        "Content-Type": "application/json",
                    },
                    json={"from": self.sender, "to": to, "subject": subject, "html": html},
                )
        except httpx.HTTPError as e:
            logger.warning(f"Email send to {to} failed: {e}")
            return EmailResult(ok=False, error=str(e))

        if response.status_code >= 400:
            logger.warning(f"Email API returned {response.status_code} for {to}")
            return EmailResult(ok=False, error=f"email_api_{response.status_code}")

        try:
            message_id = response.json().get("id")
        except ValueError:
            message_id = None
        return EmailResult(ok=True, message_id=message_id)


def format_money(amount_minor: int, currency: str) -> str:
    return f"{(currency or 'NGN').upper()} {int(amount_minor or 0) / 100:,.2f}"


def build_notification_body(snapshot: BookingSnapshot) -> str:
    nights = f"{snapshot.nights} night" + ("" if snapshot.nights == 1 else "s")
    return (
        f"{snapshot.check_in} to {snapshot.check_out} · {nights} · "
        f"{format_money(snapshot.total_amount_minor, snapshot.currency)}"
    )


def build_email_html(heading: str, snapshot: BookingSnapshot, footer: str = "") -> str:
    """Every interpolated value is HTML-escaped; listing text is host-controlled."""
    title = html.escape(snapshot.listing_title or DEFAULT_LISTING_TITLE)
    location = f" in {html.escape(snapshot.city)}" if snapshot.city else ""
    return (
        f"<h2>{html.escape(heading)}</h2>"
        f"<p><strong>{title}</strong>{location}</p>"
        f"<p>{html.escape(build_notification_body(snapshot))}</p>"
        f"<p>Booking reference: {html.escape(str(snapshot.booking_id))}</p>"
        + (f"<p>{html.escape(footer)}</p>" if footer else "")
    )


def dedupe_key(booking_id: str, edge: str, audience: str) -> str:
    return f"shortlet_booking:{booking_id}:{edge}:{audience}"


class ShortletNotifier:
    def __init__(self, db: Session, settings: Settings, email_sender: Optional[EmailSender] = None):
        self.db = db
        self.settings = settings
        self.email_sender = email_sender or EmailSender.from_settings(settings)

    def _trip_href(self, booking_id: str) -> str:
        return f"/trips/{booking_id}"

    def _host_href(self, booking_id: str) -> str:
        return f"/host/bookings?booking={booking_id}#host-bookings"

    def create_notification(
        self,
        user_id: str,
        type: NotificationType,
        title: str,
        body: str,
        href: Optional[str],
        dedupe_key: str,
    ) -> bool:
        """Store an in-app notice. Returns False when the dedupe key already exists."""
        self.db.add(ShortletNotification(
            user_id=user_id,
            type=type.value,
            title=title,
            body=body,
            href=href,
            dedupe_key=dedupe_key,
        ))
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            logger.info(f"Notification {dedupe_key} already stored")
            return False
        return True

    def _email(self, to: Optional[str], subject: str, html: str) -> None:
        result = self.email_sender.send(to, subject, html)
        if not result.ok:
            logger.info(f"Email '{subject}' not sent: {result.error}")

    def dispatch_payment_success(self, snapshot: BookingSnapshot) -> None:
        """Guest + host notices once a payment moved the booking forward."""
        title = snapshot.listing_title or DEFAULT_LISTING_TITLE
        body = build_notification_body(snapshot)

        if snapshot.is_confirmed:
            self._email(snapshot.guest_email, f"Reservation confirmed: {title}",
                        build_email_html("Your reservation is confirmed", snapshot))
            self._email(snapshot.host_email, f"New reservation: {title}",
                        build_email_html("You have a new reservation", snapshot))
            self.create_notification(
                snapshot.guest_user_id, NotificationType.INSTANT_CONFIRMED,
                "Reservation confirmed", body, self._trip_href(snapshot.booking_id),
                dedupe_key(snapshot.booking_id, "instant_confirmed", "tenant"),
            )
            self.create_notification(
                snapshot.host_user_id, NotificationType.INSTANT_CONFIRMED,
                f"New reservation: {title}", body, self._host_href(snapshot.booking_id),
                dedupe_key(snapshot.booking_id, "instant_confirmed", "host"),
            )
            return

        expiry = f"The host has {self.settings.request_expiry_hours} hours to respond."
        self._email(snapshot.guest_email, f"Booking request sent: {title}",
                    build_email_html("Your booking request was sent", snapshot, expiry))
        self._email(snapshot.host_email, f"New booking request: {title}",
                    build_email_html("You have a new booking request", snapshot, expiry))
        self.create_notification(
            snapshot.guest_user_id, NotificationType.REQUEST_SENT,
            "Your booking request was sent", body, self._trip_href(snapshot.booking_id),
            dedupe_key(snapshot.booking_id, "request_sent", "tenant"),
        )
        self.create_notification(
            snapshot.host_user_id, NotificationType.REQUEST_SENT,
            f"New booking request: {title}", body, self._host_href(snapshot.booking_id),
            dedupe_key(snapshot.booking_id, "request_sent", "host"),
        )

    def dispatch_host_approved(self, snapshot: BookingSnapshot) -> None:
        title = snapshot.listing_title or DEFAULT_LISTING_TITLE
        body = build_notification_body(snapshot)
        self._email(snapshot.guest_email, f"Booking approved: {title}",
                    build_email_html("Your booking was approved", snapshot))
        self._email(snapshot.host_email, f"You approved a booking: {title}",
                    build_email_html("Booking approved", snapshot))
        self.create_notification(
            snapshot.guest_user_id, NotificationType.APPROVED,
            f"Booking approved: {title}", body, self._trip_href(snapshot.booking_id),
            dedupe_key(snapshot.booking_id, "approved", "tenant"),
        )
        self.create_notification(
            snapshot.host_user_id, NotificationType.HOST_UPDATE,
            "You approved a booking request", body, "/host?tab=bookings#host-bookings",
            dedupe_key(snapshot.booking_id, "approved", "host"),
        )

    def dispatch_host_declined(self, snapshot: BookingSnapshot, reason: Optional[str] = None) -> None:
        title = snapshot.listing_title or DEFAULT_LISTING_TITLE
        footer = f"Reason: {reason}" if reason else "Your payment will be refunded."
        self._email(snapshot.guest_email, f"Booking declined: {title}",
                    build_email_html("Your booking request was declined", snapshot, footer))
        self.create_notification(
            snapshot.guest_user_id, NotificationType.DECLINED,
            f"Booking declined: {title}", build_notification_body(snapshot),
            self._trip_href(snapshot.booking_id),
            dedupe_key(snapshot.booking_id, "declined", "tenant"),
        )

    def dispatch_expired(self, snapshot: BookingSnapshot) -> None:
        title = snapshot.listing_title or DEFAULT_LISTING_TITLE
        self._email(snapshot.guest_email, f"Booking request expired: {title}",
                    build_email_html("The host did not respond in time", snapshot,
                                     "Your payment will be refunded."))
        self.create_notification(
            snapshot.guest_user_id, NotificationType.EXPIRED,
            f"Booking request expired: {title}", build_notification_body(snapshot),
            self._trip_href(snapshot.booking_id),
            dedupe_key(snapshot.booking_id, "expired", "tenant"),
        )
