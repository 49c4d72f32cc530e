"""
Payment Webhook Ledger

Insert-if-absent bookkeeping for gateway deliveries:
1. Hash the raw body (SHA256)
2. Insert a ledger row; a unique-constraint violation means "already handled"
3. Move the row to processing / processed / failed as handling progresses

The insert is the single serialization point for concurrent redelivery:
whoever inserts the row owns the event.
"""

import json
import hashlib
import logging
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..models.webhook_event import PaymentWebhookEvent, WebhookEventStatus

logger = logging.getLogger(__name__)


def hash_webhook_payload(raw_body) -> str:
    """SHA256 hex of the exact bytes the gateway sent"""
    if isinstance(raw_body, str):
        raw_body = raw_body.encode("utf-8")
    return hashlib.sha256(raw_body).hexdigest()


class LedgerInsertResult:
    """Result of recording a delivery in the ledger."""

    def __init__(self, id: Optional[str], duplicate: bool = False):
        self.id = id
        self.duplicate = duplicate


class WebhookLedger:
    """Deduplication ledger over payment_webhook_events."""

    def __init__(self, db: Session):
        self.db = db

    def insert(
        self,
        provider: str,
        payload: Any,
        payload_hash: str,
        event: Optional[str] = None,
        event_id: Optional[str] = None,
        reference: Optional[str] = None,
        signature: Optional[str] = None,
    ) -> LedgerInsertResult:
        """
        Record a delivery. Returns ``duplicate=True`` when the same payload hash
        or gateway event id was already recorded for this provider.

        Any other database failure propagates to the caller.
        """
        row = PaymentWebhookEvent(
            provider=provider,
            event=event,
            event_id=event_id,
            reference=reference,
            signature=signature,
            payload_json=json.dumps(payload, default=str),
            payload_hash=payload_hash,
            status=WebhookEventStatus.RECEIVED.value,
            received_at=datetime.utcnow(),
        )
        self.db.add(row)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            existing = self._find_existing(provider, payload_hash, event_id)
            if existing is None:
                # Not a unique-key collision (NOT NULL, foreign key, ...)
                raise
            logger.info(
                f"Duplicate {provider} webhook (hash={payload_hash[:12]}, event_id={event_id}), "
                f"ledger row: {existing.id}"
            )
            return LedgerInsertResult(existing.id, duplicate=True)

        return LedgerInsertResult(row.id)

    def _find_existing(self, provider: str, payload_hash: str, event_id: Optional[str]):
        conditions = [PaymentWebhookEvent.payload_hash == payload_hash]
        if event_id:
            conditions.append(PaymentWebhookEvent.event_id == event_id)
        return self.db.query(PaymentWebhookEvent).filter(
            PaymentWebhookEvent.provider == provider,
            or_(*conditions),
        ).first()

    def _update(self, event_row_id: Optional[str], **values) -> None:
        if not event_row_id:
            return
        self.db.query(PaymentWebhookEvent).filter(
            PaymentWebhookEvent.id == event_row_id
        ).update(values, synchronize_session=False)
        self.db.commit()

    def mark_processing(self, event_row_id: Optional[str]) -> None:
        self._update(event_row_id, status=WebhookEventStatus.PROCESSING.value)

    def mark_processed(self, event_row_id: Optional[str]) -> None:
        self._update(
            event_row_id,
            status=WebhookEventStatus.PROCESSED.value,
            error=None,
            processed_at=datetime.utcnow(),
        )

    def mark_failed(self, event_row_id: Optional[str], error: str) -> None:
        self._update(
            event_row_id,
            status=WebhookEventStatus.FAILED.value,
            error=error,
            processed_at=datetime.utcnow(),
        )
