"""notes, tasks, users, orders and row versions

Revision ID: 7c2e5a91d04b
Revises: 3b9f1c2d4e5a
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = '7c2e5a91d04b'
down_revision: Union[str, None] = '3b9f1c2d4e5a'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSONType = sa.JSON().with_variant(postgresql.JSONB(astext_type=sa.Text()), 'postgresql')


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    op.add_column('projects', sa.Column('version', sa.Integer(), server_default='1', nullable=False))
    op.add_column('invoices', sa.Column('version', sa.Integer(), server_default='1', nullable=False))
    op.add_column('contacts', sa.Column('last_activity_at', sa.DateTime(timezone=True), nullable=True))
    op.add_column('contacts', sa.Column('last_activity_type', sa.String(length=50), nullable=True))

    op.create_table('notes',
    sa.Column('id', sa.Uuid(), nullable=False),
    sa.Column('location_id', sa.String(length=255), nullable=False),
    sa.Column('external_id', sa.String(length=255), nullable=False),
    sa.Column('contact_external_id', sa.String(length=255), nullable=True),
    sa.Column('opportunity_id', sa.String(length=255), nullable=True),
    sa.Column('body', sa.Text(), nullable=False),
    sa.Column('created_by', sa.String(length=255), nullable=True),
    sa.Column('deleted', sa.Boolean(), nullable=False),
    sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
    sa.Column('last_webhook_id', sa.String(length=255), nullable=True),
    *_timestamps(),
    sa.PrimaryKeyConstraint('id', name=op.f('pk_notes')),
    sa.UniqueConstraint('location_id', 'external_id', name=op.f('uq_notes_location_id_external_id'))
    )
    op.create_index(op.f('ix_notes_location_id'), 'notes', ['location_id'], unique=False)
    op.create_index(op.f('ix_notes_contact_external_id'), 'notes', ['contact_external_id'], unique=False)

    op.create_table('tasks',
    sa.Column('id', sa.Uuid(), nullable=False),
    sa.Column('location_id', sa.String(length=255), nullable=False),
    sa.Column('external_id', sa.String(length=255), nullable=False),
    sa.Column('contact_external_id', sa.String(length=255), nullable=True),
    sa.Column('title', sa.String(length=512), nullable=False),
    sa.Column('description', sa.Text(), nullable=True),
    sa.Column('due_date', sa.DateTime(timezone=True), nullable=True),
    sa.Column('assigned_to', sa.String(length=255), nullable=True),
    sa.Column('status', sa.String(length=20), nullable=False),
    sa.Column('priority', sa.String(length=20), nullable=False),
    sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
    sa.Column('deleted', sa.Boolean(), nullable=False),
    sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
    sa.Column('last_webhook_id', sa.String(length=255), nullable=True),
    *_timestamps(),
    sa.PrimaryKeyConstraint('id', name=op.f('pk_tasks')),
    sa.UniqueConstraint('location_id', 'external_id', name=op.f('uq_tasks_location_id_external_id'))
    )
    op.create_index(op.f('ix_tasks_location_id'), 'tasks', ['location_id'], unique=False)
    op.create_index(op.f('ix_tasks_contact_external_id'), 'tasks', ['contact_external_id'], unique=False)

    op.create_table('crm_users',
    sa.Column('id', sa.Uuid(), nullable=False),
    sa.Column('location_id', sa.String(length=255), nullable=False),
    sa.Column('external_id', sa.String(length=255), nullable=False),
    sa.Column('email', sa.String(length=320), nullable=True),
    sa.Column('first_name', sa.String(length=255), nullable=True),
    sa.Column('last_name', sa.String(length=255), nullable=True),
    sa.Column('name', sa.String(length=512), nullable=True),
    sa.Column('phone', sa.String(length=50), nullable=True),
    sa.Column('role', sa.String(length=50), nullable=False),
    sa.Column('permissions', JSONType, nullable=False),
    sa.Column('is_active', sa.Boolean(), nullable=False),
    sa.Column('last_webhook_id', sa.String(length=255), nullable=True),
    *_timestamps(),
    sa.PrimaryKeyConstraint('id', name=op.f('pk_crm_users')),
    sa.UniqueConstraint('location_id', 'external_id', name=op.f('uq_crm_users_location_id_external_id'))
    )
    op.create_index(op.f('ix_crm_users_location_id'), 'crm_users', ['location_id'], unique=False)
    op.create_index(op.f('ix_crm_users_email'), 'crm_users', ['email'], unique=False)

    op.create_table('orders',
    sa.Column('id', sa.Uuid(), nullable=False),
    sa.Column('location_id', sa.String(length=255), nullable=False),
    sa.Column('external_id', sa.String(length=255), nullable=False),
    sa.Column('contact_external_id', sa.String(length=255), nullable=True),
    sa.Column('order_number', sa.String(length=100), nullable=True),
    sa.Column('status', sa.String(length=50), nullable=False),
    sa.Column('payment_status', sa.String(length=50), nullable=True),
    sa.Column('fulfillment_status', sa.String(length=50), nullable=True),
    sa.Column('amount', sa.Float(), nullable=True),
    sa.Column('currency', sa.String(length=10), nullable=True),
    sa.Column('items', JSONType, nullable=False),
    sa.Column('notes', sa.Text(), nullable=True),
    sa.Column('status_updated_at', sa.DateTime(timezone=True), nullable=True),
    sa.Column('last_webhook_id', sa.String(length=255), nullable=True),
    *_timestamps(),
    sa.PrimaryKeyConstraint('id', name=op.f('pk_orders')),
    sa.UniqueConstraint('location_id', 'external_id', name=op.f('uq_orders_location_id_external_id'))
    )
    op.create_index(op.f('ix_orders_location_id'), 'orders', ['location_id'], unique=False)


def downgrade() -> None:
    op.drop_index(op.f('ix_orders_location_id'), table_name='orders')
    op.drop_table('orders')
    op.drop_index(op.f('ix_crm_users_email'), table_name='crm_users')
    op.drop_index(op.f('ix_crm_users_location_id'), table_name='crm_users')
    op.drop_table('crm_users')
    op.drop_index(op.f('ix_tasks_contact_external_id'), table_name='tasks')
    op.drop_index(op.f('ix_tasks_location_id'), table_name='tasks')
    op.drop_table('tasks')
    op.drop_index(op.f('ix_notes_contact_external_id'), table_name='notes')
    op.drop_index(op.f('ix_notes_location_id'), table_name='notes')
    op.drop_table('notes')

    with op.batch_alter_table('contacts') as batch_op:
        batch_op.drop_column('last_activity_type')
        batch_op.drop_column('last_activity_at')
    with op.batch_alter_table('invoices') as batch_op:
        batch_op.drop_column('version')
    with op.batch_alter_table('projects') as batch_op:
        batch_op.drop_column('version')
