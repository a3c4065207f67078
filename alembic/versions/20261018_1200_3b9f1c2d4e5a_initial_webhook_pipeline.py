"""initial webhook pipeline

Revision ID: 3b9f1c2d4e5a
Revises:
Create Date: 2026-10-18 12:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = '3b9f1c2d4e5a'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSONType = sa.JSON().with_variant(postgresql.JSONB(astext_type=sa.Text()), 'postgresql')


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    op.create_table('webhook_queue',
    sa.Column('id', sa.Uuid(), nullable=False),
    sa.Column('webhook_id', sa.String(length=255), nullable=False),
    sa.Column('event_type', sa.String(length=100), nullable=False),
    sa.Column('queue_name', sa.String(length=50), nullable=False),
    sa.Column('priority', sa.Integer(), nullable=False),
    sa.Column('payload', JSONType, nullable=False),
    sa.Column('location_id', sa.String(length=255), nullable=True),
    sa.Column('company_id', sa.String(length=255), nullable=True),
    sa.Column('status', sa.String(length=20), nullable=False),
    sa.Column('attempts', sa.Integer(), nullable=False),
    sa.Column('max_attempts', sa.Integer(), nullable=False),
    sa.Column('received_at', sa.DateTime(timezone=True), nullable=False),
    sa.Column('process_after', sa.DateTime(timezone=True), nullable=False),
    sa.Column('locked_until', sa.DateTime(timezone=True), nullable=True),
    sa.Column('locked_by', sa.String(length=100), nullable=True),
    sa.Column('lease_token', sa.String(length=64), nullable=True),
    sa.Column('processing_started_at', sa.DateTime(timezone=True), nullable=True),
    sa.Column('processing_completed_at', sa.DateTime(timezone=True), nullable=True),
    sa.Column('processing_duration_ms', sa.Integer(), nullable=True),
    sa.Column('last_error', sa.Text(), nullable=True),
    sa.Column('failed_at', sa.DateTime(timezone=True), nullable=True),
    sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
    sa.PrimaryKeyConstraint('id', name=op.f('pk_webhook_queue'))
    )
    op.create_index(op.f('ix_webhook_queue_webhook_id'), 'webhook_queue', ['webhook_id'], unique=True)
    op.create_index(op.f('ix_webhook_queue_location_id'), 'webhook_queue', ['location_id'], unique=False)
    op.create_index(op.f('ix_webhook_queue_expires_at'), 'webhook_queue', ['expires_at'], unique=False)
    op.create_index('ix_webhook_queue_lease_order', 'webhook_queue', ['queue_name', 'status', 'priority', 'received_at'], unique=False)

    op.create_table('webhook_hashes',
    sa.Column('id', sa.Uuid(), nullable=False),
    sa.Column('hash', sa.String(length=64), nullable=False),
    sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    sa.Column('expire_at', sa.DateTime(timezone=True), nullable=False),
    sa.PrimaryKeyConstraint('id', name=op.f('pk_webhook_hashes'))
    )
    op.create_index(op.f('ix_webhook_hashes_hash'), 'webhook_hashes', ['hash'], unique=True)
    op.create_index(op.f('ix_webhook_hashes_expire_at'), 'webhook_hashes', ['expire_at'], unique=False)

    op.create_table('webhook_metrics',
    sa.Column('id', sa.Uuid(), nullable=False),
    sa.Column('webhook_id', sa.String(length=255), nullable=False),
    sa.Column('event_type', sa.String(length=100), nullable=False),
    sa.Column('queue_name', sa.String(length=50), nullable=True),
    sa.Column('location_id', sa.String(length=255), nullable=True),
    sa.Column('processing_type', sa.String(length=20), nullable=False),
    sa.Column('received_at', sa.DateTime(timezone=True), nullable=True),
    sa.Column('processing_started_at', sa.DateTime(timezone=True), nullable=False),
    sa.Column('processing_completed_at', sa.DateTime(timezone=True), nullable=True),
    sa.Column('duration_ms', sa.Integer(), nullable=True),
    sa.Column('success', sa.Boolean(), nullable=True),
    sa.Column('error', sa.Text(), nullable=True),
    sa.PrimaryKeyConstraint('id', name=op.f('pk_webhook_metrics'))
    )
    op.create_index(op.f('ix_webhook_metrics_webhook_id'), 'webhook_metrics', ['webhook_id'], unique=True)
    op.create_index(op.f('ix_webhook_metrics_processing_completed_at'), 'webhook_metrics', ['processing_completed_at'], unique=False)

    op.create_table('webhook_errors',
    sa.Column('id', sa.Uuid(), nullable=False),
    sa.Column('webhook_id', sa.String(length=255), nullable=False),
    sa.Column('event_type', sa.String(length=100), nullable=False),
    sa.Column('queue_name', sa.String(length=50), nullable=True),
    sa.Column('error_kind', sa.String(length=50), nullable=False),
    sa.Column('message', sa.Text(), nullable=False),
    sa.Column('attempts', sa.Integer(), nullable=False),
    sa.Column('dead_letter', sa.Boolean(), nullable=False),
    sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    sa.PrimaryKeyConstraint('id', name=op.f('pk_webhook_errors'))
    )
    op.create_index(op.f('ix_webhook_errors_webhook_id'), 'webhook_errors', ['webhook_id'], unique=False)

    op.create_table('webhook_discovery',
    sa.Column('id', sa.Uuid(), nullable=False),
    sa.Column('event_type', sa.String(length=100), nullable=False),
    sa.Column('first_seen', sa.DateTime(timezone=True), nullable=False),
    sa.Column('last_seen', sa.DateTime(timezone=True), nullable=False),
    sa.Column('count', sa.Integer(), nullable=False),
    sa.Column('sample_payload', JSONType, nullable=True),
    sa.PrimaryKeyConstraint('id', name=op.f('pk_webhook_discovery')),
    sa.UniqueConstraint('event_type', name=op.f('uq_webhook_discovery_event_type'))
    )

    op.create_table('locations',
    sa.Column('id', sa.Uuid(), nullable=False),
    sa.Column('location_id', sa.String(length=255), nullable=False),
    sa.Column('company_id', sa.String(length=255), nullable=True),
    sa.Column('name', sa.String(length=255), nullable=True),
    sa.Column('email', sa.String(length=320), nullable=True),
    sa.Column('timezone', sa.String(length=100), nullable=True),
    sa.Column('app_installed', sa.Boolean(), nullable=False),
    sa.Column('install_type', sa.String(length=50), nullable=True),
    sa.Column('installed_at', sa.DateTime(timezone=True), nullable=True),
    sa.Column('installed_by', sa.String(length=255), nullable=True),
    sa.Column('approved_via_company', sa.Boolean(), nullable=False),
    sa.Column('uninstalled_at', sa.DateTime(timezone=True), nullable=True),
    sa.Column('uninstall_reason', sa.String(length=255), nullable=True),
    sa.Column('plan_id', sa.String(length=255), nullable=True),
    sa.Column('plan_changed_at', sa.DateTime(timezone=True), nullable=True),
    sa.Column('setup_queued_at', sa.DateTime(timezone=True), nullable=True),
    sa.Column('needs_manual_setup', sa.Boolean(), nullable=False),
    sa.Column('setup_error', sa.Text(), nullable=True),
    sa.Column('last_webhook_id', sa.String(length=255), nullable=True),
    *_timestamps(),
    sa.PrimaryKeyConstraint('id', name=op.f('pk_locations'))
    )
    op.create_index(op.f('ix_locations_location_id'), 'locations', ['location_id'], unique=True)
    op.create_index(op.f('ix_locations_company_id'), 'locations', ['company_id'], unique=False)

    op.create_table('contacts',
    sa.Column('id', sa.Uuid(), nullable=False),
    sa.Column('location_id', sa.String(length=255), nullable=False),
    sa.Column('external_id', sa.String(length=255), nullable=False),
    sa.Column('first_name', sa.String(length=255), nullable=True),
    sa.Column('last_name', sa.String(length=255), nullable=True),
    sa.Column('full_name', sa.String(length=512), nullable=True),
    sa.Column('email', sa.String(length=320), nullable=True),
    sa.Column('phone', sa.String(length=50), nullable=True),
    sa.Column('company_name', sa.String(length=255), nullable=True),
    sa.Column('address1', sa.String(length=512), nullable=True),
    sa.Column('city', sa.String(length=255), nullable=True),
    sa.Column('state', sa.String(length=255), nullable=True),
    sa.Column('postal_code', sa.String(length=50), nullable=True),
    sa.Column('country', sa.String(length=100), nullable=True),
    sa.Column('website', sa.String(length=512), nullable=True),
    sa.Column('timezone', sa.String(length=100), nullable=True),
    sa.Column('source', sa.String(length=255), nullable=True),
    sa.Column('contact_type', sa.String(length=50), nullable=True),
    sa.Column('assigned_to', sa.String(length=255), nullable=True),
    sa.Column('tags', JSONType, nullable=False),
    sa.Column('custom_fields', JSONType, nullable=False),
    sa.Column('dnd', sa.Boolean(), nullable=False),
    sa.Column('dnd_settings', JSONType, nullable=True),
    sa.Column('date_added', sa.DateTime(timezone=True), nullable=True),
    sa.Column('notes', sa.Text(), nullable=True),
    sa.Column('deleted', sa.Boolean(), nullable=False),
    sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
    sa.Column('last_webhook_id', sa.String(length=255), nullable=True),
    *_timestamps(),
    sa.PrimaryKeyConstraint('id', name=op.f('pk_contacts')),
    sa.UniqueConstraint('location_id', 'external_id', name=op.f('uq_contacts_location_id_external_id'))
    )
    op.create_index(op.f('ix_contacts_location_id'), 'contacts', ['location_id'], unique=False)
    op.create_index(op.f('ix_contacts_email'), 'contacts', ['email'], unique=False)
    op.create_index(op.f('ix_contacts_phone'), 'contacts', ['phone'], unique=False)

    op.create_table('conversations',
    sa.Column('id', sa.Uuid(), nullable=False),
    sa.Column('location_id', sa.String(length=255), nullable=False),
    sa.Column('external_id', sa.String(length=255), nullable=False),
    sa.Column('contact_external_id', sa.String(length=255), nullable=True),
    sa.Column('contact_id', sa.Uuid(), nullable=True),
    sa.Column('type', sa.String(length=50), nullable=False),
    sa.Column('last_message_at', sa.DateTime(timezone=True), nullable=True),
    sa.Column('last_message_body', sa.Text(), nullable=True),
    sa.Column('last_message_type', sa.String(length=50), nullable=True),
    sa.Column('last_message_direction', sa.String(length=20), nullable=True),
    sa.Column('last_outbound_at', sa.DateTime(timezone=True), nullable=True),
    sa.Column('unread_count', sa.Integer(), nullable=False),
    *_timestamps(),
    sa.ForeignKeyConstraint(['contact_id'], ['contacts.id'], name=op.f('fk_conversations_contact_id_contacts'), ondelete='SET NULL'),
    sa.PrimaryKeyConstraint('id', name=op.f('pk_conversations')),
    sa.UniqueConstraint('location_id', 'external_id', name=op.f('uq_conversations_location_id_external_id'))
    )
    op.create_index(op.f('ix_conversations_location_id'), 'conversations', ['location_id'], unique=False)
    op.create_index(op.f('ix_conversations_contact_id'), 'conversations', ['contact_id'], unique=False)

    op.create_table('messages',
    sa.Column('id', sa.Uuid(), nullable=False),
    sa.Column('location_id', sa.String(length=255), nullable=False),
    sa.Column('external_id', sa.String(length=255), nullable=False),
    sa.Column('conversation_id', sa.Uuid(), nullable=False),
    sa.Column('contact_external_id', sa.String(length=255), nullable=True),
    sa.Column('contact_id', sa.Uuid(), nullable=True),
    sa.Column('project_id', sa.Uuid(), nullable=True),
    sa.Column('direction', sa.String(length=20), nullable=False),
    sa.Column('message_type', sa.Integer(), nullable=True),
    sa.Column('type_name', sa.String(length=50), nullable=False),
    sa.Column('body', sa.Text(), nullable=True),
    sa.Column('subject', sa.String(length=998), nullable=True),
    sa.Column('status', sa.String(length=50), nullable=True),
    sa.Column('attachments', JSONType, nullable=False),
    sa.Column('read', sa.Boolean(), nullable=False),
    sa.Column('email_message_id', sa.String(length=255), nullable=True),
    sa.Column('email_status', sa.String(length=50), nullable=True),
    sa.Column('email_events', JSONType, nullable=False),
    sa.Column('processed_by', sa.String(length=20), nullable=False),
    sa.Column('webhook_id', sa.String(length=255), nullable=True),
    sa.Column('date_added', sa.DateTime(timezone=True), nullable=False),
    *_timestamps(),
    sa.ForeignKeyConstraint(['conversation_id'], ['conversations.id'], name=op.f('fk_messages_conversation_id_conversations'), ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id', name=op.f('pk_messages')),
    sa.UniqueConstraint('location_id', 'external_id', name=op.f('uq_messages_location_id_external_id'))
    )
    op.create_index(op.f('ix_messages_location_id'), 'messages', ['location_id'], unique=False)
    op.create_index(op.f('ix_messages_conversation_id'), 'messages', ['conversation_id'], unique=False)
    op.create_index(op.f('ix_messages_email_message_id'), 'messages', ['email_message_id'], unique=False)

    op.create_table('appointments',
    sa.Column('id', sa.Uuid(), nullable=False),
    sa.Column('location_id', sa.String(length=255), nullable=False),
    sa.Column('external_id', sa.String(length=255), nullable=False),
    sa.Column('calendar_id', sa.String(length=255), nullable=True),
    sa.Column('contact_external_id', sa.String(length=255), nullable=True),
    sa.Column('contact_id', sa.Uuid(), nullable=True),
    sa.Column('title', sa.String(length=512), nullable=True),
    sa.Column('status', sa.String(length=50), nullable=True),
    sa.Column('assigned_user_id', sa.String(length=255), nullable=True),
    sa.Column('start_time', sa.DateTime(timezone=True), nullable=True),
    sa.Column('end_time', sa.DateTime(timezone=True), nullable=True),
    sa.Column('notes', sa.Text(), nullable=True),
    sa.Column('address', sa.String(length=512), nullable=True),
    sa.Column('deleted', sa.Boolean(), nullable=False),
    sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
    sa.Column('last_webhook_id', sa.String(length=255), nullable=True),
    *_timestamps(),
    sa.PrimaryKeyConstraint('id', name=op.f('pk_appointments')),
    sa.UniqueConstraint('location_id', 'external_id', name=op.f('uq_appointments_location_id_external_id'))
    )
    op.create_index(op.f('ix_appointments_location_id'), 'appointments', ['location_id'], unique=False)

    op.create_table('projects',
    sa.Column('id', sa.Uuid(), nullable=False),
    sa.Column('location_id', sa.String(length=255), nullable=False),
    sa.Column('external_id', sa.String(length=255), nullable=False),
    sa.Column('contact_external_id', sa.String(length=255), nullable=True),
    sa.Column('contact_id', sa.Uuid(), nullable=True),
    sa.Column('title', sa.String(length=512), nullable=True),
    sa.Column('status', sa.String(length=50), nullable=False),
    sa.Column('monetary_value', sa.Float(), nullable=True),
    sa.Column('pipeline_id', sa.String(length=255), nullable=True),
    sa.Column('pipeline_stage_id', sa.String(length=255), nullable=True),
    sa.Column('assigned_to', sa.String(length=255), nullable=True),
    sa.Column('timeline', JSONType, nullable=False),
    sa.Column('deleted', sa.Boolean(), nullable=False),
    sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
    *_timestamps(),
    sa.PrimaryKeyConstraint('id', name=op.f('pk_projects')),
    sa.UniqueConstraint('location_id', 'external_id', name=op.f('uq_projects_location_id_external_id'))
    )
    op.create_index(op.f('ix_projects_location_id'), 'projects', ['location_id'], unique=False)
    op.create_index(op.f('ix_projects_contact_external_id'), 'projects', ['contact_external_id'], unique=False)
    op.create_index(op.f('ix_projects_contact_id'), 'projects', ['contact_id'], unique=False)

    op.create_table('invoices',
    sa.Column('id', sa.Uuid(), nullable=False),
    sa.Column('location_id', sa.String(length=255), nullable=False),
    sa.Column('external_id', sa.String(length=255), nullable=False),
    sa.Column('contact_external_id', sa.String(length=255), nullable=True),
    sa.Column('opportunity_id', sa.String(length=255), nullable=True),
    sa.Column('invoice_number', sa.String(length=100), nullable=True),
    sa.Column('name', sa.String(length=512), nullable=True),
    sa.Column('status', sa.String(length=50), nullable=True),
    sa.Column('currency', sa.String(length=10), nullable=True),
    sa.Column('total', sa.Float(), nullable=True),
    sa.Column('amount_paid', sa.Float(), nullable=True),
    sa.Column('amount_due', sa.Float(), nullable=True),
    sa.Column('payments', JSONType, nullable=False),
    sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
    sa.Column('voided_at', sa.DateTime(timezone=True), nullable=True),
    sa.Column('deleted', sa.Boolean(), nullable=False),
    sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
    sa.Column('last_webhook_id', sa.String(length=255), nullable=True),
    *_timestamps(),
    sa.PrimaryKeyConstraint('id', name=op.f('pk_invoices')),
    sa.UniqueConstraint('location_id', 'external_id', name=op.f('uq_invoices_location_id_external_id'))
    )
    op.create_index(op.f('ix_invoices_location_id'), 'invoices', ['location_id'], unique=False)


def downgrade() -> None:
    op.drop_index(op.f('ix_invoices_location_id'), table_name='invoices')
    op.drop_table('invoices')
    op.drop_index(op.f('ix_projects_contact_id'), table_name='projects')
    op.drop_index(op.f('ix_projects_contact_external_id'), table_name='projects')
    op.drop_index(op.f('ix_projects_location_id'), table_name='projects')
    op.drop_table('projects')
    op.drop_index(op.f('ix_appointments_location_id'), table_name='appointments')
    op.drop_table('appointments')
    op.drop_index(op.f('ix_messages_email_message_id'), table_name='messages')
    op.drop_index(op.f('ix_messages_conversation_id'), table_name='messages')
    op.drop_index(op.f('ix_messages_location_id'), table_name='messages')
    op.drop_table('messages')
    op.drop_index(op.f('ix_conversations_contact_id'), table_name='conversations')
    op.drop_index(op.f('ix_conversations_location_id'), table_name='conversations')
    op.drop_table('conversations')
    op.drop_index(op.f('ix_contacts_phone'), table_name='contacts')
    op.drop_index(op.f('ix_contacts_email'), table_name='contacts')
    op.drop_index(op.f('ix_contacts_location_id'), table_name='contacts')
    op.drop_table('contacts')
    op.drop_index(op.f('ix_locations_company_id'), table_name='locations')
    op.drop_index(op.f('ix_locations_location_id'), table_name='locations')
    op.drop_table('locations')
    op.drop_table('webhook_discovery')
    op.drop_index(op.f('ix_webhook_errors_webhook_id'), table_name='webhook_errors')
    op.drop_table('webhook_errors')
    op.drop_index(op.f('ix_webhook_metrics_processing_completed_at'), table_name='webhook_metrics')
    op.drop_index(op.f('ix_webhook_metrics_webhook_id'), table_name='webhook_metrics')
    op.drop_table('webhook_metrics')
    op.drop_index(op.f('ix_webhook_hashes_expire_at'), table_name='webhook_hashes')
    op.drop_index(op.f('ix_webhook_hashes_hash'), table_name='webhook_hashes')
    op.drop_table('webhook_hashes')
    op.drop_index('ix_webhook_queue_lease_order', table_name='webhook_queue')
    op.drop_index(op.f('ix_webhook_queue_expires_at'), table_name='webhook_queue')
    op.drop_index(op.f('ix_webhook_queue_location_id'), table_name='webhook_queue')
    op.drop_index(op.f('ix_webhook_queue_webhook_id'), table_name='webhook_queue')
    op.drop_table('webhook_queue')
