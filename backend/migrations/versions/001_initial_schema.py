"""
Alembic migration: initial order engine schema.

Creates catalog_items, client_profiles, orders and revisions with their
enum types, JSONB document columns, check constraints and the unique
(order_id, revision_number) constraint that serializes revision numbering.

Revision ID: 001
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# Revision identifiers, used by Alembic
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


ORDER_TYPE = postgresql.ENUM(
    'custom_event_dress',
    'signature_dress',
    name='order_type',
    create_type=False,
)
OCCASION_TYPE = postgresql.ENUM(
    'wedding',
    'party',
    'graduation',
    'other',
    name='occasion_type',
    create_type=False,
)
ORDER_STATUS = postgresql.ENUM(
    'form_submitted',
    'bill_sent',
    'paid',
    'in_progress',
    'ready',
    'delivered',
    'revision_requested',
    name='order_status',
    create_type=False,
)
REVISION_STATUS = postgresql.ENUM(
    'pending',
    'approved',
    'rejected',
    'applied',
    name='revision_status',
    create_type=False,
)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            'created_at',
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text('now()'),
            comment='Timestamp when record was created',
        ),
        sa.Column(
            'updated_at',
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text('now()'),
            comment='Timestamp when record was last updated',
        ),
    ]


def _audit() -> list[sa.Column]:
    return [
        sa.Column('created_by', sa.String(length=255), nullable=True),
        sa.Column('updated_by', sa.String(length=255), nullable=True),
    ]


def upgrade() -> None:
    """
    Create the order engine tables.
    """
    bind = op.get_bind()
    for enum_type in (ORDER_TYPE, OCCASION_TYPE, ORDER_STATUS, REVISION_STATUS):
        enum_type.create(bind, checkfirst=True)

    op.create_table(
        'catalog_items',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('image_url', sa.String(length=1024), nullable=False),
        sa.Column('storage_id', sa.String(length=255), nullable=True),
        sa.Column(
            'tags',
            postgresql.JSONB(),
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'client_profiles',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('customer_ref', sa.String(length=255), nullable=False),
        sa.Column('full_name', sa.String(length=255), nullable=False),
        sa.Column('phone_number', sa.String(length=50), nullable=False),
        sa.Column('city', sa.String(length=100), nullable=True),
        sa.Column('instagram_handle', sa.String(length=100), nullable=True),
        sa.Column('order_count', sa.Integer(), nullable=False, server_default='0'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('order_count >= 0', name='ck_client_profiles_order_count'),
    )
    op.create_index(
        'ix_client_profiles_customer_ref',
        'client_profiles',
        ['customer_ref'],
        unique=True,
    )
    op.create_index('ix_client_profiles_phone_number', 'client_profiles', ['phone_number'])

    op.create_table(
        'orders',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('customer_ref', sa.String(length=255), nullable=False),
        sa.Column(
            'client_profile',
            postgresql.JSONB(),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column('order_type', ORDER_TYPE, nullable=False),
        sa.Column('occasion', OCCASION_TYPE, nullable=False),
        sa.Column('fabric_preference', sa.String(length=255), nullable=True),
        sa.Column('catalog_item_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('event_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('preferred_delivery_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('is_rush_order', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            'rush_multiplier',
            sa.Numeric(precision=3, scale=2),
            nullable=False,
            server_default='1.0',
        ),
        sa.Column('days_until_delivery', sa.Integer(), nullable=False, server_default='0'),
        sa.Column(
            'measurements',
            postgresql.JSONB(),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column('body_concerns', sa.Text(), nullable=True),
        sa.Column('color_preference', sa.String(length=255), nullable=True),
        sa.Column('inspiration_photo_url', sa.String(length=1024), nullable=True),
        sa.Column('inspiration_storage_id', sa.String(length=255), nullable=True),
        sa.Column('terms_accepted', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('terms_accepted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            'revision_policy_accepted',
            sa.Boolean(),
            nullable=False,
            server_default=sa.false(),
        ),
        sa.Column('revision_policy_accepted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            'status',
            ORDER_STATUS,
            nullable=False,
            server_default='form_submitted',
        ),
        sa.Column('revision_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column(
            'base_price',
            sa.Numeric(precision=12, scale=2),
            nullable=False,
            server_default='0',
        ),
        sa.Column(
            'total_price',
            sa.Numeric(precision=12, scale=2),
            nullable=False,
            server_default='0',
        ),
        sa.Column(
            'deposit_amount',
            sa.Numeric(precision=12, scale=2),
            nullable=False,
            server_default='0',
        ),
        sa.Column('deposit_paid', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('deposit_paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            'final_payment_paid',
            sa.Boolean(),
            nullable=False,
            server_default=sa.false(),
        ),
        sa.Column('final_payment_paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            'history',
            postgresql.JSONB(),
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
            comment='Revision IDs, oldest first',
        ),
        sa.Column('admin_notes', sa.Text(), nullable=True),
        *_timestamps(),
        *_audit(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(
            ['catalog_item_id'],
            ['catalog_items.id'],
            ondelete='SET NULL',
        ),
        sa.CheckConstraint(
            'rush_multiplier >= 1.0 AND rush_multiplier <= 1.4',
            name='ck_orders_rush_multiplier_range',
        ),
        sa.CheckConstraint('base_price >= 0', name='ck_orders_base_price_non_negative'),
        sa.CheckConstraint('total_price >= 0', name='ck_orders_total_price_non_negative'),
        sa.CheckConstraint(
            'revision_count >= 0',
            name='ck_orders_revision_count_non_negative',
        ),
        comment='Custom garment orders',
    )
    op.create_index('ix_orders_customer_ref', 'orders', ['customer_ref'])
    op.create_index('ix_orders_status', 'orders', ['status'])
    op.create_index('ix_orders_preferred_delivery_date', 'orders', ['preferred_delivery_date'])
    op.create_index('ix_orders_customer_created', 'orders', ['customer_ref', 'created_at'])
    op.create_index('ix_orders_status_created', 'orders', ['status', 'created_at'])
    op.create_index('ix_orders_rush', 'orders', ['is_rush_order'])

    op.create_table(
        'revisions',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('order_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('revision_number', sa.Integer(), nullable=False),
        sa.Column(
            'measurements',
            postgresql.JSONB(),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column('inspiration_photo_url', sa.String(length=1024), nullable=True),
        sa.Column('inspiration_storage_id', sa.String(length=255), nullable=True),
        sa.Column('body_concerns', sa.Text(), nullable=True),
        sa.Column('color_preference', sa.String(length=255), nullable=True),
        sa.Column('is_free', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            'revision_fee',
            sa.Numeric(precision=12, scale=2),
            nullable=False,
            server_default='0',
        ),
        sa.Column(
            'revision_fee_paid',
            sa.Boolean(),
            nullable=False,
            server_default=sa.false(),
        ),
        sa.Column('status', REVISION_STATUS, nullable=False, server_default='pending'),
        sa.Column('revision_reason', sa.Text(), nullable=True),
        sa.Column('approved_by', sa.String(length=255), nullable=True),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('admin_notes', sa.Text(), nullable=True),
        *_timestamps(),
        *_audit(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('order_id', 'revision_number', name='uq_revisions_order_number'),
        comment='Append-only order revision snapshots',
    )
    op.create_index('ix_revisions_order_id', 'revisions', ['order_id'])
    op.create_index('ix_revisions_status', 'revisions', ['status'])
    op.create_index('ix_revisions_status_created', 'revisions', ['status', 'created_at'])


def downgrade() -> None:
    """
    Drop the order engine tables and enum types.
    """
    op.drop_index('ix_revisions_status_created', table_name='revisions')
    op.drop_index('ix_revisions_status', table_name='revisions')
    op.drop_index('ix_revisions_order_id', table_name='revisions')
    op.drop_table('revisions')

    op.drop_index('ix_orders_rush', table_name='orders')
    op.drop_index('ix_orders_status_created', table_name='orders')
    op.drop_index('ix_orders_customer_created', table_name='orders')
    op.drop_index('ix_orders_preferred_delivery_date', table_name='orders')
    op.drop_index('ix_orders_status', table_name='orders')
    op.drop_index('ix_orders_customer_ref', table_name='orders')
    op.drop_table('orders')

    op.drop_index('ix_client_profiles_phone_number', table_name='client_profiles')
    op.drop_index('ix_client_profiles_customer_ref', table_name='client_profiles')
    op.drop_table('client_profiles')

    op.drop_table('catalog_items')

    bind = op.get_bind()
    for enum_type in (REVISION_STATUS, ORDER_STATUS, OCCASION_TYPE, ORDER_TYPE):
        enum_type.drop(bind, checkfirst=True)
