"""bookings, flight legs, notification ledger and in-app notifications

Revision ID: 0001_trip_notifications
Revises:
Create Date: 2025-03-01
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '0001_trip_notifications'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

LEDGER_COLUMNS = (
    'checkin_opens_email_sent_at',
    'checkin_email_sent_at',
    'six_hour_reminder_sent_at',
    'departure_reminder_sent_at',
    'two_hour_reminder_sent_at',
)

def upgrade() -> None:
    op.create_table(
        'bookings',
        sa.Column('id', sa.String(length=64), primary_key=True),
        sa.Column('booking_reference', sa.String(length=32), nullable=False),
        sa.Column('supplier_reference', sa.String(length=32), nullable=True),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='pending'),
        sa.Column('passenger_email', sa.String(length=255), nullable=True),
        sa.Column('phone_number', sa.String(length=32), nullable=True),
        sa.Column('sms_opt_in', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        *[sa.Column(name, sa.DateTime(timezone=True), nullable=True) for name in LEDGER_COLUMNS],
    )
    op.create_index('ix_bookings_booking_reference', 'bookings', ['booking_reference'], unique=True)
    op.create_index('ix_bookings_status', 'bookings', ['status'])

    op.create_table(
        'flight_legs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('booking_id', sa.String(length=64), sa.ForeignKey('bookings.id', ondelete='CASCADE'), nullable=False),
        sa.Column('airline_iata', sa.String(length=3), nullable=True),
        sa.Column('flight_number', sa.String(length=16), nullable=True),
        sa.Column('departure_airport', sa.String(length=8), nullable=True),
        sa.Column('arrival_airport', sa.String(length=8), nullable=True),
        sa.Column('scheduled_departure', sa.String(length=64), nullable=True),
    )
    op.create_index('ix_flight_legs_booking_id', 'flight_legs', ['booking_id'], unique=True)

    op.create_table(
        'notifications',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_email', sa.String(length=255), nullable=False),
        sa.Column('booking_id', sa.String(length=64), nullable=True),
        sa.Column('type', sa.String(length=64), nullable=False),
        sa.Column('message', sa.String(length=1024), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('read', sa.Boolean(), nullable=False, server_default=sa.text('false')),
    )
    op.create_index('ix_notifications_user_email', 'notifications', ['user_email'])
    op.create_index('ix_notifications_booking_id', 'notifications', ['booking_id'])


def downgrade() -> None:
    op.drop_index('ix_notifications_booking_id', table_name='notifications')
    op.drop_index('ix_notifications_user_email', table_name='notifications')
    op.drop_table('notifications')
    op.drop_index('ix_flight_legs_booking_id', table_name='flight_legs')
    op.drop_table('flight_legs')
    op.drop_index('ix_bookings_status', table_name='bookings')
    op.drop_index('ix_bookings_booking_reference', table_name='bookings')
    op.drop_table('bookings')
