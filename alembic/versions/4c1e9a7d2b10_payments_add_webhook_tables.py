"""payments: add vendors, vendor subscriptions and webhook ledger

Revision ID: 4c1e9a7d2b10
Revises:
Create Date: 2025-12-02 10:14:03.512871

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
import sqlmodel


# revision identifiers, used by Alembic.
revision: str = '4c1e9a7d2b10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'vendors',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('name', sqlmodel.sql.sqltypes.AutoString(length=255), nullable=False),
        sa.Column('slug', sqlmodel.sql.sqltypes.AutoString(length=255), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_vendors_id'), 'vendors', ['id'], unique=False)
    op.create_index(op.f('ix_vendors_slug'), 'vendors', ['slug'], unique=True)

    op.create_table(
        'vendor_subscriptions',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('vendor_id', sa.Uuid(), nullable=False),
        sa.Column('status', sa.Enum('INACTIVE', 'ACTIVE', 'PAST_DUE', 'CANCELLED', name='subscriptionstatus'), nullable=False),
        sa.Column('last_event_id', sqlmodel.sql.sqltypes.AutoString(length=255), nullable=True),
        sa.Column('last_event_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_transition_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['vendor_id'], ['vendors.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_vendor_subscriptions_id'), 'vendor_subscriptions', ['id'], unique=False)
    op.create_index(op.f('ix_vendor_subscriptions_vendor_id'), 'vendor_subscriptions', ['vendor_id'], unique=True)

    op.create_table(
        'payment_event_ledger',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('event_id', sqlmodel.sql.sqltypes.AutoString(length=255), nullable=False),
        sa.Column('vendor_id', sa.Uuid(), nullable=True),
        sa.Column('status', sa.Enum('PROCESSING', 'PROCESSED', name='ledgerstatus'), nullable=False),
        sa.Column('payload_hash', sqlmodel.sql.sqltypes.AutoString(length=64), nullable=False),
        sa.Column('lease_token', sqlmodel.sql.sqltypes.AutoString(length=64), nullable=False),
        sa.Column('outcome', sa.Text(), nullable=True),
        sa.Column('first_seen_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('claimed_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_payment_event_ledger_event_id'), 'payment_event_ledger', ['event_id'], unique=True)
    op.create_index(op.f('ix_payment_event_ledger_id'), 'payment_event_ledger', ['id'], unique=False)
    op.create_index(op.f('ix_payment_event_ledger_status'), 'payment_event_ledger', ['status'], unique=False)
    op.create_index(op.f('ix_payment_event_ledger_vendor_id'), 'payment_event_ledger', ['vendor_id'], unique=False)


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index(op.f('ix_payment_event_ledger_vendor_id'), table_name='payment_event_ledger')
    op.drop_index(op.f('ix_payment_event_ledger_status'), table_name='payment_event_ledger')
    op.drop_index(op.f('ix_payment_event_ledger_id'), table_name='payment_event_ledger')
    op.drop_index(op.f('ix_payment_event_ledger_event_id'), table_name='payment_event_ledger')
    op.drop_table('payment_event_ledger')

    op.drop_index(op.f('ix_vendor_subscriptions_vendor_id'), table_name='vendor_subscriptions')
    op.drop_index(op.f('ix_vendor_subscriptions_id'), table_name='vendor_subscriptions')
    op.drop_table('vendor_subscriptions')

    op.drop_index(op.f('ix_vendors_slug'), table_name='vendors')
    op.drop_index(op.f('ix_vendors_id'), table_name='vendors')
    op.drop_table('vendors')

    sa.Enum(name='ledgerstatus').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='subscriptionstatus').drop(op.get_bind(), checkfirst=True)
