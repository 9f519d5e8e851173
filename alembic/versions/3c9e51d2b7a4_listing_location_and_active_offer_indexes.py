"""Gist index on listing coordinates and partial unique index for active offers

Revision ID: 3c9e51d2b7a4
Revises:
Create Date: 2026-10-19 12:30:00.000000

"""
from typing import Sequence, Union

from alembic import op

# revision identifiers, used by Alembic.
revision: str = '3c9e51d2b7a4'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.execute("CREATE EXTENSION IF NOT EXISTS btree_gist")
    # create_all builds a plain btree index under the same name
    op.execute("DROP INDEX IF EXISTS idx_listings_location")
    op.create_index(
        'idx_listings_location',
        'listings',
        ['latitude', 'longitude'],
        unique=False,
        postgresql_using='gist'
    )
    op.execute("DROP INDEX IF EXISTS uq_offers_active_listing_buyer")
    op.create_index(
        'uq_offers_active_listing_buyer',
        'offers',
        ['listing_id', 'buyer_id'],
        unique=True,
        postgresql_where="status IN ('pending', 'countered')"
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index('uq_offers_active_listing_buyer', table_name='offers')
    op.drop_index('idx_listings_location', table_name='listings')
    op.execute("DROP EXTENSION IF EXISTS btree_gist")
