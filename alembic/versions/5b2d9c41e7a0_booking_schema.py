"""booking schema

Revision ID: 5b2d9c41e7a0
Revises:
Create Date: 2026-10-19 09:12:44.318207

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '5b2d9c41e7a0'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""

    # 1. Services catalog
    op.create_table(
        'services',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('slug', sa.String(120), nullable=False, unique=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('price', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('duration', sa.Integer, nullable=True),
        sa.Column('is_active', sa.Boolean, server_default=sa.text('true')),
        sa.Column('display_order', sa.Integer, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'))
    )
    op.create_index('ix_services_is_active', 'services', ['is_active'])

    # 2. Weekly availability template
    op.create_table(
        'work_day_rules',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('weekday', sa.Integer, nullable=False, unique=True),
        sa.Column('is_open', sa.Boolean, nullable=False, server_default=sa.text('false')),
        sa.Column('start_time', sa.Time, nullable=True),
        sa.Column('end_time', sa.Time, nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.CheckConstraint('weekday BETWEEN 0 AND 6', name='ck_work_day_rules_weekday')
    )

    op.create_table(
        'availability_settings',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('policy_version', sa.Integer, nullable=False, server_default='0'),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'))
    )

    # 3. Time off
    op.create_table(
        'time_off',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('start_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('end_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('reason', sa.Text, nullable=True),
        sa.Column('all_day', sa.Boolean, nullable=False, server_default=sa.text('false')),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'))
    )
    op.create_index('ix_time_off_range', 'time_off', ['start_at', 'end_at'])

    # 4. Appointments
    op.create_table(
        'appointments',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('customer_ref', sa.String, nullable=True),
        sa.Column('service_ref', sa.String, nullable=False),
        sa.Column('customer_name', sa.String, nullable=False),
        sa.Column('customer_email', sa.String, nullable=True),
        sa.Column('customer_phone', sa.String, nullable=True),
        sa.Column('service_name', sa.String, nullable=True),
        sa.Column('appointment_date', sa.Date, nullable=False),
        sa.Column('start_time', sa.Time, nullable=False),
        sa.Column('duration_minutes', sa.Integer, nullable=False),
        sa.Column('note', sa.Text, nullable=True),
        sa.Column('price', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('status', sa.String, nullable=False, server_default='pending'),
        sa.Column('version', sa.Integer, nullable=False, server_default='1'),
        sa.Column('sync_status', sa.String, nullable=False, server_default='not_required'),
        sa.Column('sync_attempts', sa.Integer, nullable=False, server_default='0'),
        sa.Column('last_sync_error', sa.Text, nullable=True),
        sa.Column('last_synced_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True)
    )

    # One active booking per (date, start_time); cancelled rows free the slot
    op.create_index(
        'uq_appointments_active_slot',
        'appointments',
        ['appointment_date', 'start_time'],
        unique=True,
        postgresql_where=sa.text("status <> 'cancelled'")
    )
    op.create_index('ix_appointments_date_status', 'appointments', ['appointment_date', 'status'])
    op.create_index('ix_appointments_customer_email', 'appointments', ['customer_email'])

    op.create_table(
        'appointment_slot_claims',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('appointment_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('appointments.id', ondelete='CASCADE'), nullable=False),
        sa.Column('claim_date', sa.Date, nullable=False),
        sa.Column('claim_minute', sa.Integer, nullable=False),
        sa.UniqueConstraint('claim_date', 'claim_minute', name='uq_slot_claims_cell')
    )
    op.create_index('ix_appointment_slot_claims_appointment_id', 'appointment_slot_claims', ['appointment_id'])

    op.create_table(
        'appointment_status_events',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('appointment_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('appointments.id', ondelete='CASCADE'), nullable=False),
        sa.Column('from_status', sa.String, nullable=True),
        sa.Column('to_status', sa.String, nullable=False),
        sa.Column('changed_at', sa.DateTime(timezone=True), server_default=sa.text('now()'))
    )
    op.create_index('ix_appointment_status_events_appointment_id', 'appointment_status_events', ['appointment_id'])

    # 5. Calendar integration
    op.create_table(
        'calendar_credentials',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('owner_ref', sa.String, nullable=False, unique=True),
        sa.Column('provider', sa.String, nullable=False, server_default='google'),
        sa.Column('access_token_encrypted', sa.LargeBinary, nullable=True),
        sa.Column('refresh_token_encrypted', sa.LargeBinary, nullable=True),
        sa.Column('token_expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('external_calendar_id', sa.String, nullable=True),
        sa.Column('connection_state', sa.String, nullable=False, server_default='disconnected'),
        sa.Column('last_error', sa.Text, nullable=True),
        sa.Column('connected_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_refreshed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'))
    )

    op.create_table(
        'calendar_sync_links',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('appointment_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('appointments.id', ondelete='CASCADE'), nullable=False, unique=True),
        sa.Column('external_event_id', sa.String, nullable=False),
        sa.Column('external_calendar_id', sa.String, nullable=False),
        sa.Column('synced_at', sa.DateTime(timezone=True), server_default=sa.text('now()'))
    )
    op.create_index('ix_calendar_sync_links_event', 'calendar_sync_links', ['external_event_id'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index('ix_calendar_sync_links_event', table_name='calendar_sync_links')
    op.drop_table('calendar_sync_links')
    op.drop_table('calendar_credentials')

    op.drop_index('ix_appointment_status_events_appointment_id', table_name='appointment_status_events')
    op.drop_table('appointment_status_events')
    op.drop_index('ix_appointment_slot_claims_appointment_id', table_name='appointment_slot_claims')
    op.drop_table('appointment_slot_claims')

    op.drop_index('ix_appointments_customer_email', table_name='appointments')
    op.drop_index('ix_appointments_date_status', table_name='appointments')
    op.drop_index('uq_appointments_active_slot', table_name='appointments')
    op.drop_table('appointments')

    op.drop_index('ix_time_off_range', table_name='time_off')
    op.drop_table('time_off')
    op.drop_table('availability_settings')
    op.drop_table('work_day_rules')

    op.drop_index('ix_services_is_active', table_name='services')
    op.drop_table('services')
