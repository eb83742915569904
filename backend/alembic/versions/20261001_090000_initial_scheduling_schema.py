"""initial scheduling schema

Revision ID: 20261001090000
Revises:
Create Date: 2026-10-01 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '20261001090000'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        'clinics',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('address', sa.String(255), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index('ix_clinics_id', 'clinics', ['id'])

    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('email', sa.String(255), nullable=False, unique=True),
        sa.Column('full_name', sa.String(255), nullable=False, server_default=''),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index('ix_users_id', 'users', ['id'])

    op.create_table(
        'user_clinic_associations',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('clinic_id', sa.Integer(), sa.ForeignKey('clinics.id', ondelete='CASCADE'), nullable=False),
        sa.Column('role_in_clinic', sa.String(50), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('full_name', sa.String(255), nullable=False, server_default=''),
        sa.Column('specialty', sa.String(255), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('user_id', 'clinic_id', name='uq_user_clinic'),
    )
    op.create_index('ix_user_clinic_associations_id', 'user_clinic_associations', ['id'])
    op.create_index('idx_user_clinic_associations_user', 'user_clinic_associations', ['user_id'])
    op.create_index('idx_user_clinic_associations_clinic', 'user_clinic_associations', ['clinic_id'])
    op.create_index(
        'idx_user_clinic_associations_clinic_role', 'user_clinic_associations', ['clinic_id', 'role_in_clinic']
    )

    op.create_table(
        'patients',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('clinic_id', sa.Integer(), sa.ForeignKey('clinics.id'), nullable=False),
        sa.Column('full_name', sa.String(255), nullable=False),
        sa.Column('phone_number', sa.String(50), nullable=True),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('birthday', sa.Date(), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_patients_id', 'patients', ['id'])
    op.create_index('idx_patients_clinic', 'patients', ['clinic_id'])

    op.create_table(
        'appointments',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('clinic_id', sa.Integer(), sa.ForeignKey('clinics.id'), nullable=False),
        sa.Column('doctor_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('patient_id', sa.Integer(), sa.ForeignKey('patients.id'), nullable=True),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('appointment_date', sa.Date(), nullable=False),
        sa.Column('appointment_time', sa.Time(), nullable=False),
        sa.Column('duration', sa.Integer(), nullable=False, server_default='30'),
        sa.Column('start_minute', sa.Integer(), nullable=False),
        sa.Column('end_minute', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(50), nullable=False, server_default='consultation'),
        sa.Column('location', sa.String(255), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('status', sa.String(50), nullable=False, server_default='scheduled'),
        sa.Column('external_calendar_event_id', sa.String(255), nullable=True),
        sa.Column('sync_enabled', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('last_sync_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('needs_patient_assignment', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('cancelled_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('cancelled_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('cancellation_reason', sa.String(500), nullable=True),
        sa.Column('reminder_sent_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('created_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('updated_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        *_timestamps(),
        sa.CheckConstraint('duration > 0', name='check_appointment_positive_duration'),
        sa.CheckConstraint('end_minute <= 1440', name='check_appointment_within_day'),
    )
    op.create_index('ix_appointments_id', 'appointments', ['id'])
    op.create_index('idx_appointments_doctor_date', 'appointments', ['doctor_id', 'appointment_date'])
    op.create_index('idx_appointments_clinic_date', 'appointments', ['clinic_id', 'appointment_date'])
    op.create_index('idx_appointments_status', 'appointments', ['status'])
    op.create_index('idx_appointments_external_event', 'appointments', ['external_calendar_event_id'])
    op.create_index('idx_appointments_status_reminder', 'appointments', ['status', 'reminder_sent_at'])

    # Two active appointments of the same doctor may never overlap, even when
    # concurrent transactions both pass the application-level check.
    op.execute("CREATE EXTENSION IF NOT EXISTS btree_gist")
    op.execute("""
        ALTER TABLE appointments
        ADD CONSTRAINT ex_appointments_doctor_no_overlap
        EXCLUDE USING gist (
            doctor_id WITH =,
            appointment_date WITH =,
            int4range(start_minute, end_minute) WITH &&
        )
        WHERE (status NOT IN ('cancelled_by_clinic', 'cancelled_by_patient', 'no_show'))
    """)

    op.create_table(
        'notifications',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('recipient_type', sa.String(20), nullable=False),
        sa.Column('recipient_id', sa.Integer(), nullable=False),
        sa.Column(
            'appointment_id', sa.Integer(), sa.ForeignKey('appointments.id', ondelete='CASCADE'), nullable=True
        ),
        sa.Column('action_type', sa.String(20), nullable=False),
        sa.Column('priority', sa.String(20), nullable=False, server_default='normal'),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('is_read', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('read_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False),
    )
    op.create_index('ix_notifications_id', 'notifications', ['id'])
    op.create_index('idx_notifications_recipient', 'notifications', ['recipient_type', 'recipient_id', 'is_read'])
    op.create_index('idx_notifications_appointment', 'notifications', ['appointment_id'])

    op.create_table(
        'calendar_credentials',
        sa.Column('doctor_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('clinic_id', sa.Integer(), sa.ForeignKey('clinics.id', ondelete='CASCADE'), nullable=False),
        sa.Column('remote_calendar_id', sa.String(255), nullable=False),
        sa.Column('calendar_name', sa.String(255), nullable=True),
        sa.Column('access_token', sa.Text(), nullable=False),
        sa.Column('refresh_token', sa.Text(), nullable=True),
        sa.Column('token_expires_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('sync_enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('sync_direction', sa.String(20), nullable=False, server_default='bidirectional'),
        sa.Column('sync_future_days', sa.Integer(), nullable=False, server_default='30'),
        sa.Column('last_sync_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('last_sync_status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('last_sync_error', sa.Text(), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        'practice_hours',
        sa.Column('doctor_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('weekday_start_time', sa.Time(), nullable=True),
        sa.Column('weekday_end_time', sa.Time(), nullable=True),
        sa.Column('saturday_start_time', sa.Time(), nullable=True),
        sa.Column('saturday_end_time', sa.Time(), nullable=True),
        sa.Column('sunday_enabled', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('sunday_start_time', sa.Time(), nullable=True),
        sa.Column('sunday_end_time', sa.Time(), nullable=True),
        *_timestamps(),
    )


def downgrade() -> None:
    op.drop_table('practice_hours')
    op.drop_table('calendar_credentials')
    op.drop_table('notifications')
    op.execute("ALTER TABLE appointments DROP CONSTRAINT IF EXISTS ex_appointments_doctor_no_overlap")
    op.drop_table('appointments')
    op.drop_table('patients')
    op.drop_table('user_clinic_associations')
    op.drop_table('users')
    op.drop_table('clinics')
