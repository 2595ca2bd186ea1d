"""initial billing schema: payments, refunds, subscriptions, wallets, webhooks

Revision ID: billing_initial_20260301
Revises: 
Create Date: 2026-03-01
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = 'billing_initial_20260301'
down_revision = None
branch_labels = None
depends_on = None

UUID = postgresql.UUID(as_uuid=True)

ENUMS = {
    'paymentgateway': ('razorpay', 'stripe', 'wallet'),
    'paymentstatus': ('pending', 'completed', 'failed'),
    'refundstatus': ('pending', 'completed'),
    'subscriptionstatus': ('active', 'cancelled', 'expired', 'paused'),
    'billingcycle': ('monthly', 'yearly'),
    'wallettransactiontype': ('credit', 'debit'),
}


def _enum(name: str) -> postgresql.ENUM:
    # Types are created up front; columns must not try to recreate them
    return postgresql.ENUM(*ENUMS[name], name=name, create_type=False)


def upgrade() -> None:
    bind = op.get_bind()
    for name, values in ENUMS.items():
        postgresql.ENUM(*values, name=name).create(bind, checkfirst=True)

    op.create_table(
        'subscriptions',
        sa.Column('id', UUID, primary_key=True),
        sa.Column('student_id', UUID, nullable=False),
        sa.Column('course_id', UUID, nullable=False),
        sa.Column('status', _enum('subscriptionstatus'), nullable=False),
        sa.Column('billing_cycle', _enum('billingcycle'), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('gateway', _enum('paymentgateway'), nullable=False, server_default='razorpay'),
        sa.Column('current_period_start', sa.DateTime(timezone=True), nullable=False),
        sa.Column('current_period_end', sa.DateTime(timezone=True), nullable=False),
        sa.Column('next_billing_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('auto_renew', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('failed_payment_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancellation_reason', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_subscriptions_student_id', 'subscriptions', ['student_id'])
    op.create_index('ix_subscriptions_course_id', 'subscriptions', ['course_id'])
    op.create_index('ix_subscriptions_next_billing_date', 'subscriptions', ['next_billing_date'])
    op.create_index(
        'uq_subscriptions_active_student_course',
        'subscriptions',
        ['student_id', 'course_id'],
        unique=True,
        postgresql_where=sa.text("status = 'active'"),
    )

    op.create_table(
        'subscription_events',
        sa.Column('id', UUID, primary_key=True),
        sa.Column('subscription_id', UUID, sa.ForeignKey('subscriptions.id', ondelete='CASCADE'), nullable=False),
        sa.Column('event_type', sa.String(), nullable=False),
        sa.Column('previous_status', _enum('subscriptionstatus'), nullable=True),
        sa.Column('new_status', _enum('subscriptionstatus'), nullable=False),
        sa.Column('metadata', sa.JSON(), nullable=False),
        sa.Column('payment_id', UUID, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_subscription_events_subscription_id', 'subscription_events', ['subscription_id'])

    op.create_table(
        'payments',
        sa.Column('id', UUID, primary_key=True),
        sa.Column('student_id', UUID, nullable=False),
        sa.Column('enrollment_id', UUID, nullable=True),
        sa.Column('course_id', UUID, nullable=True),
        sa.Column('subscription_id', UUID, sa.ForeignKey('subscriptions.id', ondelete='SET NULL'), nullable=True),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('description', sa.String(), nullable=True),
        sa.Column('gateway', _enum('paymentgateway'), nullable=False),
        sa.Column('status', _enum('paymentstatus'), nullable=False, server_default='pending'),
        sa.Column('status_message', sa.String(), nullable=True),
        sa.Column('gateway_order_id', sa.String(), nullable=True),
        sa.Column('gateway_payment_id', sa.String(), nullable=True),
        sa.Column('payment_method', sa.String(), nullable=True),
        sa.Column('payment_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('webhook_verified', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_payments_student_id', 'payments', ['student_id'])
    op.create_index('ix_payments_subscription_id', 'payments', ['subscription_id'])
    op.create_index('ix_payments_gateway_order_id', 'payments', ['gateway_order_id'])
    op.create_index('ix_payments_gateway_payment_id', 'payments', ['gateway_payment_id'])

    op.create_table(
        'refunds',
        sa.Column('id', UUID, primary_key=True),
        sa.Column('payment_id', UUID, sa.ForeignKey('payments.id'), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('reason', sa.String(), nullable=False),
        sa.Column('requested_by', UUID, nullable=False),
        sa.Column('status', _enum('refundstatus'), nullable=False, server_default='pending'),
        sa.Column('gateway_refund_id', sa.String(), nullable=True),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('requested_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_refunds_payment_id', 'refunds', ['payment_id'])

    op.create_table(
        'invoices',
        sa.Column('id', UUID, primary_key=True),
        sa.Column('payment_id', UUID, sa.ForeignKey('payments.id'), nullable=False, unique=True),
        sa.Column('student_id', UUID, nullable=False),
        sa.Column('invoice_number', sa.String(), nullable=False, unique=True),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('issued_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_invoices_student_id', 'invoices', ['student_id'])

    op.create_table(
        'wallets',
        sa.Column('id', UUID, primary_key=True),
        sa.Column('user_id', UUID, nullable=False, unique=True),
        sa.Column('points', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('credits', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='INR'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint('credits >= 0', name='ck_wallets_credits_non_negative'),
    )

    op.create_table(
        'wallet_transactions',
        sa.Column('id', UUID, primary_key=True),
        sa.Column('wallet_id', UUID, sa.ForeignKey('wallets.id'), nullable=False),
        sa.Column('type', _enum('wallettransactiontype'), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('points', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('description', sa.String(), nullable=True),
        sa.Column('reference', sa.String(), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_wallet_transactions_wallet_id', 'wallet_transactions', ['wallet_id'])
    op.create_index('ix_wallet_transactions_reference', 'wallet_transactions', ['reference'])

    op.create_table(
        'payment_gateway_configs',
        sa.Column('id', UUID, primary_key=True),
        sa.Column('gateway', _enum('paymentgateway'), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('config', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_payment_gateway_configs_gateway', 'payment_gateway_configs', ['gateway'])

    op.create_table(
        'payment_webhooks',
        sa.Column('id', UUID, primary_key=True),
        sa.Column('gateway', sa.String(), nullable=False),
        sa.Column('event_type', sa.String(), nullable=False),
        sa.Column('payload', sa.JSON(), nullable=True),
        sa.Column('raw_body', sa.String(), nullable=True),
        sa.Column('signature', sa.String(), nullable=True),
        sa.Column('verified', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )


def downgrade() -> None:
    for table in (
        'payment_webhooks',
        'payment_gateway_configs',
        'wallet_transactions',
        'wallets',
        'invoices',
        'refunds',
        'payments',
        'subscription_events',
        'subscriptions',
    ):
        op.drop_table(table)
    bind = op.get_bind()
    for name in ENUMS:
        postgresql.ENUM(name=name).drop(bind, checkfirst=True)
