"""create booking, payment, coupon and consent tables

Revision ID: a3c91f0d7b21
Revises:
Create Date: 2026-10-19 10:12:41.530912

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = 'a3c91f0d7b21'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""

    # 1. Bookings
    op.create_table(
        'bookings',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(64), nullable=True),
        sa.Column('customer_name', sa.String(100), nullable=False),
        sa.Column('customer_email', sa.String(255), nullable=False),
        sa.Column('customer_phone', sa.String(20), nullable=True),
        sa.Column('session_type', sa.String(20), nullable=False),
        sa.Column('session_format', sa.String(20), nullable=False),
        sa.Column('duration_minutes', sa.Integer, nullable=False, server_default='60'),
        sa.Column('scheduled_date', sa.Date, nullable=False),
        sa.Column('scheduled_time', sa.String(5), nullable=False),
        sa.Column('timezone', sa.String(50), nullable=False, server_default='Asia/Kolkata'),
        sa.Column('notes', sa.Text, nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancellation_reason', sa.Text, nullable=True),
        sa.CheckConstraint(
            "status IN ('pending', 'confirmed', 'completed', 'cancelled', 'no_show')",
            name='ck_bookings_status'
        ),
        sa.CheckConstraint("session_type IN ('individual', 'couples', 'family')", name='ck_bookings_session_type'),
        sa.CheckConstraint("session_format IN ('chat', 'audio', 'video')", name='ck_bookings_session_format'),
    )

    # Indexes for bookings
    op.create_index('ix_bookings_user_id', 'bookings', ['user_id'])
    op.create_index('ix_bookings_customer_email', 'bookings', ['customer_email'])
    op.create_index('ix_bookings_status_date', 'bookings', ['status', 'scheduled_date'])
    # One active booking per slot; cancelled rows free the slot
    op.create_index(
        'uq_bookings_active_slot',
        'bookings',
        ['scheduled_date', 'scheduled_time'],
        unique=True,
        postgresql_where=sa.text("status <> 'cancelled'")
    )

    # 2. Payments
    op.create_table(
        'payments',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('booking_id', sa.String(36), sa.ForeignKey('bookings.id', ondelete='SET NULL'), nullable=True),
        sa.Column('user_id', sa.String(64), nullable=True),
        sa.Column('gateway_order_id', sa.String(64), nullable=False, unique=True),
        sa.Column('gateway_payment_id', sa.String(64), nullable=True, unique=True),
        sa.Column('gateway_signature', sa.String(128), nullable=True),
        sa.Column('gateway_refund_id', sa.String(64), nullable=True),
        sa.Column('amount_minor', sa.Integer, nullable=False),
        sa.Column('currency', sa.String(3), nullable=False, server_default='INR'),
        sa.Column('refund_amount_minor', sa.Integer, nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('metadata', sa.JSON, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('refunded_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("status IN ('pending', 'paid', 'failed', 'refunded')", name='ck_payments_status'),
        sa.CheckConstraint('amount_minor >= 0', name='ck_payments_amount_non_negative'),
    )

    # Indexes for payments
    op.create_index('ix_payments_booking_id', 'payments', ['booking_id'])
    op.create_index('ix_payments_gateway_order_id', 'payments', ['gateway_order_id'])
    op.create_index('ix_payments_booking_status', 'payments', ['booking_id', 'status'])

    # 3. Coupons
    op.create_table(
        'coupons',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('code', sa.String(64), nullable=False, unique=True),
        sa.Column('discount_type', sa.String(16), nullable=False, server_default='percent'),
        sa.Column('discount_value', sa.Integer, nullable=False),
        sa.Column('min_amount_minor', sa.Integer, nullable=False, server_default='0'),
        sa.Column('valid_from', sa.DateTime(timezone=True), nullable=True),
        sa.Column('valid_until', sa.DateTime(timezone=True), nullable=True),
        sa.Column('max_uses', sa.Integer, nullable=True),
        sa.Column('used_count', sa.Integer, nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint("discount_type IN ('percent', 'fixed')", name='ck_coupons_discount_type'),
        sa.CheckConstraint(
            "discount_type <> 'percent' OR (discount_value >= 1 AND discount_value <= 100)",
            name='ck_coupons_percent_range'
        ),
        sa.CheckConstraint('discount_value > 0', name='ck_coupons_value_positive'),
        sa.CheckConstraint('max_uses IS NULL OR used_count <= max_uses', name='ck_coupons_usage_cap'),
    )
    op.create_index('ix_coupons_code', 'coupons', ['code'])

    # 4. Consent records (write-once)
    op.create_table(
        'consent_records',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(64), nullable=True),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('session_type', sa.String(20), nullable=False),
        sa.Column('consent_version', sa.String(20), nullable=False),
        sa.Column('acknowledgments', sa.JSON, nullable=False),
        sa.Column('ip_address', sa.String(64), nullable=True),
        sa.Column('user_agent', sa.String(512), nullable=True),
        sa.Column('consented_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    )
    op.create_index('ix_consent_records_email_type', 'consent_records', ['email', 'session_type'])

    # 5. Audit log
    op.create_table(
        'audit_logs',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(64), nullable=True),
        sa.Column('action', sa.String(50), nullable=False),
        sa.Column('resource_type', sa.String(50), nullable=False),
        sa.Column('resource_id', sa.String(64), nullable=True),
        sa.Column('old_data', sa.JSON, nullable=True),
        sa.Column('new_data', sa.JSON, nullable=True),
        sa.Column('request_id', sa.String(64), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    )
    op.create_index('ix_audit_logs_resource', 'audit_logs', ['resource_type', 'resource_id'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index('ix_audit_logs_resource', table_name='audit_logs')
    op.drop_table('audit_logs')

    op.drop_index('ix_consent_records_email_type', table_name='consent_records')
    op.drop_table('consent_records')

    op.drop_index('ix_coupons_code', table_name='coupons')
    op.drop_table('coupons')

    op.drop_index('ix_payments_booking_status', table_name='payments')
    op.drop_index('ix_payments_gateway_order_id', table_name='payments')
    op.drop_index('ix_payments_booking_id', table_name='payments')
    op.drop_table('payments')

    op.drop_index('uq_bookings_active_slot', table_name='bookings')
    op.drop_index('ix_bookings_status_date', table_name='bookings')
    op.drop_index('ix_bookings_customer_email', table_name='bookings')
    op.drop_index('ix_bookings_user_id', table_name='bookings')
    op.drop_table('bookings')
