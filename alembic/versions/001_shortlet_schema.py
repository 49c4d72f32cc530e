"""Shortlet schema baseline

Revision ID: 001_shortlet_schema
Revises:
Create Date: 2026-10-19

Tables:
- shortlet_listings, shortlet_bookings, shortlet_blocks
- shortlet_payments (one intent per booking, reconcile bookkeeping)
- payment_webhook_events (gateway delivery ledger)
- shortlet_notifications (in-app notices, unique dedupe_key)
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001_shortlet_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create the shortlet tables."""
    # ===========================================
    # 1. LISTINGS
    # ===========================================
    op.create_table(
        'shortlet_listings',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('host_user_id', sa.String(36), nullable=False),
        sa.Column('host_email', sa.String(255), nullable=True),
        sa.Column('title', sa.String(200), nullable=False),
        sa.Column('city', sa.String(100), nullable=True),
        sa.Column('country_code', sa.String(2), nullable=True),
        sa.Column('currency', sa.String(3), nullable=False, server_default='NGN'),
        sa.Column('nightly_price_minor', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('cleaning_fee_minor', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('booking_mode', sa.String(20), nullable=False, server_default='request'),
        sa.Column('min_nights', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('max_nights', sa.Integer(), nullable=True),
        sa.Column('prep_days', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index('ix_shortlet_listings_host', 'shortlet_listings', ['host_user_id'])

    # ===========================================
    # 2. BOOKINGS
    # ===========================================
    op.create_table(
        'shortlet_bookings',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('listing_id', sa.String(36), sa.ForeignKey('shortlet_listings.id'), nullable=False),
        sa.Column('guest_user_id', sa.String(36), nullable=False),
        sa.Column('guest_email', sa.String(255), nullable=True),
        sa.Column('host_user_id', sa.String(36), nullable=False),
        sa.Column('status', sa.String(30), nullable=False, server_default='pending_payment'),
        sa.Column('booking_mode', sa.String(20), nullable=False),
        sa.Column('check_in', sa.Date(), nullable=False),
        sa.Column('check_out', sa.Date(), nullable=False),
        sa.Column('nights', sa.Integer(), nullable=False),
        sa.Column('total_amount_minor', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('currency', sa.String(3), nullable=False, server_default='NGN'),
        sa.Column('payment_reference', sa.String(120), nullable=True),
        sa.Column('expires_at', sa.DateTime(), nullable=True),
        sa.Column('refund_required', sa.Boolean(), server_default=sa.false()),
        sa.Column('decline_reason', sa.Text(), nullable=True),
        sa.Column('responded_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index('ix_shortlet_bookings_listing_dates', 'shortlet_bookings', ['listing_id', 'check_in', 'check_out'])
    op.create_index('ix_shortlet_bookings_status_expiry', 'shortlet_bookings', ['status', 'expires_at'])
    op.create_index('ix_shortlet_bookings_guest', 'shortlet_bookings', ['guest_user_id'])

    # ===========================================
    # 3. HOST BLOCKS
    # ===========================================
    op.create_table(
        'shortlet_blocks',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('listing_id', sa.String(36),
                  sa.ForeignKey('shortlet_listings.id', ondelete='CASCADE'), nullable=False),
        sa.Column('date_from', sa.Date(), nullable=False),
        sa.Column('date_to', sa.Date(), nullable=False),
        sa.Column('reason', sa.String(255), nullable=True),
        sa.Column('created_by', sa.String(36), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index('ix_shortlet_blocks_listing_dates', 'shortlet_blocks', ['listing_id', 'date_from', 'date_to'])

    # ===========================================
    # 4. PAYMENTS
    # ===========================================
    op.create_table(
        'shortlet_payments',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('booking_id', sa.String(36), sa.ForeignKey('shortlet_bookings.id'), nullable=False, unique=True),
        sa.Column('provider', sa.String(20), nullable=False),
        sa.Column('provider_reference', sa.String(255), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='initiated'),
        sa.Column('amount_total_minor', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('currency', sa.String(3), nullable=False, server_default='NGN'),
        sa.Column('provider_payload_json', sa.Text(), nullable=True),
        sa.Column('provider_tx_id', sa.String(255), nullable=True),
        sa.Column('authorization_code', sa.String(255), nullable=True),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('paid_at', sa.DateTime(), nullable=True),
        sa.Column('confirmed_at', sa.DateTime(), nullable=True),
        sa.Column('verify_attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_verified_at', sa.DateTime(), nullable=True),
        sa.Column('needs_reconcile', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('reconcile_reason', sa.String(100), nullable=True),
        sa.Column('reconcile_locked_until', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
        sa.UniqueConstraint('provider', 'provider_reference', name='uq_shortlet_payments_provider_reference'),
    )
    op.create_index(
        'ix_shortlet_payments_reconcile',
        'shortlet_payments',
        ['status', 'created_at', 'reconcile_locked_until']
    )

    # ===========================================
    # 5. WEBHOOK LEDGER
    # ===========================================
    op.create_table(
        'payment_webhook_events',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('provider', sa.String(20), nullable=False),
        sa.Column('event', sa.String(100), nullable=True),
        sa.Column('event_id', sa.String(255), nullable=True),
        sa.Column('reference', sa.String(255), nullable=True),
        sa.Column('signature', sa.Text(), nullable=True),
        sa.Column('payload_json', sa.Text(), nullable=False),
        sa.Column('payload_hash', sa.String(64), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='received'),
        sa.Column('error', sa.Text(), nullable=True),
        sa.Column('received_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('processed_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('provider', 'payload_hash', name='uq_payment_webhook_provider_hash'),
        sa.UniqueConstraint('provider', 'event_id', name='uq_payment_webhook_provider_event_id'),
    )
    op.create_index('ix_payment_webhook_reference', 'payment_webhook_events', ['provider', 'reference'])
    op.create_index('ix_payment_webhook_status', 'payment_webhook_events', ['status', 'received_at'])

    # ===========================================
    # 6. NOTIFICATIONS
    # ===========================================
    op.create_table(
        'shortlet_notifications',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(36), nullable=False),
        sa.Column('type', sa.String(50), nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('body', sa.Text(), nullable=True),
        sa.Column('href', sa.String(500), nullable=True),
        sa.Column('dedupe_key', sa.String(255), nullable=False, unique=True),
        sa.Column('is_read', sa.Boolean(), server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index('ix_shortlet_notifications_user', 'shortlet_notifications', ['user_id', 'is_read', 'created_at'])


def downgrade() -> None:
    op.drop_index('ix_shortlet_notifications_user', 'shortlet_notifications')
    op.drop_table('shortlet_notifications')

    op.drop_index('ix_payment_webhook_status', 'payment_webhook_events')
    op.drop_index('ix_payment_webhook_reference', 'payment_webhook_events')
    op.drop_table('payment_webhook_events')

    op.drop_index('ix_shortlet_payments_reconcile', 'shortlet_payments')
    op.drop_table('shortlet_payments')

    op.drop_index('ix_shortlet_blocks_listing_dates', 'shortlet_blocks')
    op.drop_table('shortlet_blocks')

    op.drop_index('ix_shortlet_bookings_guest', 'shortlet_bookings')
    op.drop_index('ix_shortlet_bookings_status_expiry', 'shortlet_bookings')
    op.drop_index('ix_shortlet_bookings_listing_dates', 'shortlet_bookings')
    op.drop_table('shortlet_bookings')

    op.drop_index('ix_shortlet_listings_host', 'shortlet_listings')
    op.drop_table('shortlet_listings')
