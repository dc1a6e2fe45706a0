"""Catalog schema

Revision ID: 0001
Revises:
Create Date: 2026-09-15 09:00:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamps(updated: bool = True) -> list[sa.Column]:
    columns = [sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False)]
    if updated:
        columns.append(sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False))
    return columns


def _city(prefix: str) -> list[sa.Column]:
    return [
        sa.Column(prefix, sa.String(length=255), nullable=True),
        sa.Column(f'{prefix}_lat', sa.Float(), nullable=True),
        sa.Column(f'{prefix}_lng', sa.Float(), nullable=True),
    ]


def upgrade() -> None:
    """Upgrade database schema."""
    # Create tour_operators table
    op.create_table('tour_operators',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('code', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('provider', sa.String(length=64), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_tour_operators_code'), 'tour_operators', ['code'], unique=True)

    # Create tours table
    op.create_table('tours',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('provider', sa.String(length=64), nullable=False),
        sa.Column('provider_identifier', sa.String(length=64), nullable=False),
        sa.Column('season', sa.String(length=16), nullable=False),
        sa.Column('operator_id', sa.Uuid(), nullable=True),
        sa.Column('operator_code', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('days', sa.Integer(), nullable=True),
        sa.Column('nights', sa.Integer(), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        *_city('start_city'),
        *_city('end_city'),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('last_seen_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['operator_id'], ['tour_operators.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('provider', 'provider_identifier', 'season', name='uq_tour_natural_key')
    )
    op.create_index(op.f('ix_tours_provider'), 'tours', ['provider'], unique=False)
    op.create_index(op.f('ix_tours_season'), 'tours', ['season'], unique=False)
    op.create_index(op.f('ix_tours_operator_id'), 'tours', ['operator_id'], unique=False)
    op.create_index(op.f('ix_tours_operator_code'), 'tours', ['operator_code'], unique=False)
    op.create_index(op.f('ix_tours_is_active'), 'tours', ['is_active'], unique=False)

    # Create tour_departures table
    op.create_table('tour_departures',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('tour_id', sa.Uuid(), nullable=False),
        sa.Column('departure_code', sa.String(length=64), nullable=False),
        sa.Column('season', sa.String(length=16), nullable=False),
        sa.Column('land_start_date', sa.Date(), nullable=True),
        sa.Column('land_end_date', sa.Date(), nullable=True),
        sa.Column('status', sa.String(length=64), nullable=True),
        sa.Column('guaranteed_departure', sa.Boolean(), nullable=False),
        sa.Column('ship_name', sa.String(length=255), nullable=True),
        sa.Column('base_price_cents', sa.Integer(), nullable=True),
        sa.Column('currency', sa.String(length=3), nullable=False),
        *_city('start_city'),
        *_city('end_city'),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('last_seen_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint('base_price_cents IS NULL OR base_price_cents >= 0', name='ck_departure_base_price_non_negative'),
        sa.CheckConstraint('length(currency) = 3', name='ck_departure_currency_length'),
        sa.ForeignKeyConstraint(['tour_id'], ['tours.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tour_id', 'departure_code', 'season', 'land_start_date', name='uq_departure_natural_key')
    )
    op.create_index(op.f('ix_tour_departures_tour_id'), 'tour_departures', ['tour_id'], unique=False)
    op.create_index(op.f('ix_tour_departures_season'), 'tour_departures', ['season'], unique=False)
    op.create_index(op.f('ix_tour_departures_land_start_date'), 'tour_departures', ['land_start_date'], unique=False)
    op.create_index(op.f('ix_tour_departures_is_active'), 'tour_departures', ['is_active'], unique=False)

    # Create tour_departure_pricing table
    op.create_table('tour_departure_pricing',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('departure_id', sa.Uuid(), nullable=False),
        sa.Column('cabin_category', sa.String(length=255), nullable=True),
        sa.Column('price_cents', sa.Integer(), nullable=False),
        sa.Column('discount_cents', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        *_timestamps(updated=False),
        sa.CheckConstraint('price_cents >= 0', name='ck_cabin_pricing_price_non_negative'),
        sa.ForeignKeyConstraint(['departure_id'], ['tour_departures.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_tour_departure_pricing_departure_id'), 'tour_departure_pricing', ['departure_id'], unique=False)

    # Create tour_itinerary_days table
    op.create_table('tour_itinerary_days',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('tour_id', sa.Uuid(), nullable=False),
        sa.Column('day_number', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(length=500), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        *_city('overnight_city'),
        *_timestamps(updated=False),
        sa.ForeignKeyConstraint(['tour_id'], ['tours.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tour_id', 'day_number', name='uq_itinerary_day_tour_day')
    )
    op.create_index(op.f('ix_tour_itinerary_days_tour_id'), 'tour_itinerary_days', ['tour_id'], unique=False)

    # Create tour_hotels table
    op.create_table('tour_hotels',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('tour_id', sa.Uuid(), nullable=False),
        sa.Column('day_number', sa.Integer(), nullable=True),
        sa.Column('hotel_name', sa.String(length=255), nullable=False),
        sa.Column('city', sa.String(length=255), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        *_timestamps(updated=False),
        sa.ForeignKeyConstraint(['tour_id'], ['tours.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_tour_hotels_tour_id'), 'tour_hotels', ['tour_id'], unique=False)

    # Create tour_media table
    op.create_table('tour_media',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('tour_id', sa.Uuid(), nullable=False),
        sa.Column('media_type', sa.String(length=16), nullable=False),
        sa.Column('url', sa.Text(), nullable=False),
        sa.Column('caption', sa.Text(), nullable=True),
        sa.Column('sort_order', sa.Integer(), nullable=False),
        *_timestamps(updated=False),
        sa.CheckConstraint("media_type IN ('image', 'brochure', 'video', 'map')", name='ck_tour_media_type'),
        sa.ForeignKeyConstraint(['tour_id'], ['tours.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_tour_media_tour_id'), 'tour_media', ['tour_id'], unique=False)

    # Create tour_inclusions table
    op.create_table('tour_inclusions',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('tour_id', sa.Uuid(), nullable=False),
        sa.Column('inclusion_type', sa.String(length=16), nullable=False),
        sa.Column('category', sa.String(length=255), nullable=True),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('sort_order', sa.Integer(), nullable=False),
        *_timestamps(updated=False),
        sa.CheckConstraint("inclusion_type IN ('included', 'excluded', 'highlight')", name='ck_tour_inclusion_type'),
        sa.ForeignKeyConstraint(['tour_id'], ['tours.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_tour_inclusions_tour_id'), 'tour_inclusions', ['tour_id'], unique=False)
    op.create_index(op.f('ix_tour_inclusions_inclusion_type'), 'tour_inclusions', ['inclusion_type'], unique=False)

    # Create tour_sync_history table
    op.create_table('tour_sync_history',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('provider', sa.String(length=64), nullable=False),
        sa.Column('brand', sa.String(length=64), nullable=True),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('duration_ms', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('tours_synced', sa.Integer(), nullable=False),
        sa.Column('departures_synced', sa.Integer(), nullable=False),
        sa.Column('errors_count', sa.Integer(), nullable=False),
        sa.Column('error_message', sa.Text(), nullable=True),
        *_timestamps(updated=False),
        sa.CheckConstraint("status IN ('running', 'completed', 'failed')", name='ck_tour_sync_history_status'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_tour_sync_history_provider'), 'tour_sync_history', ['provider'], unique=False)
    op.create_index(op.f('ix_tour_sync_history_brand'), 'tour_sync_history', ['brand'], unique=False)
    op.create_index(op.f('ix_tour_sync_history_started_at'), 'tour_sync_history', ['started_at'], unique=False)
    op.create_index(op.f('ix_tour_sync_history_status'), 'tour_sync_history', ['status'], unique=False)


def downgrade() -> None:
    """Downgrade database schema."""
    op.drop_table('tour_sync_history')
    op.drop_table('tour_inclusions')
    op.drop_table('tour_media')
    op.drop_table('tour_hotels')
    op.drop_table('tour_itinerary_days')
    op.drop_table('tour_departure_pricing')
    op.drop_table('tour_departures')
    op.drop_table('tours')
    op.drop_table('tour_operators')
