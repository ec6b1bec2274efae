"""Create places and place_opening_hours tables

Revision ID: 001
Revises: None
Create Date: 2025-02-03 00:00:00.000000+00:00

What:  Initial schema: place records and their canonical weekly schedule rows.
How:   Portable column types (Uuid, JSON) so the same migration runs on
       PostgreSQL in production and SQLite in local setups.

Rollback: downgrade() drops both tables (all data lost).
"""

from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "places",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("slug", sa.String(255), nullable=False,
                  comment="URL identifier, allocated once at creation"),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'PENDING'"),
                  comment="DRAFT, PENDING, ACTIVE, INACTIVE, ARCHIVED"),
        sa.Column("owner_id", sa.String(64), nullable=True,
                  comment="NULL while the place is unclaimed"),

        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("place_type", sa.String(32), nullable=False, server_default=sa.text("'COMMERCE'")),
        sa.Column("category", sa.String(120), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("summary", sa.String(280), nullable=True),

        sa.Column("street", sa.String(255), nullable=False),
        sa.Column("street_number", sa.String(20), nullable=True),
        sa.Column("postal_code", sa.String(20), nullable=False),
        sa.Column("city", sa.String(120), nullable=False),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("longitude", sa.Float(), nullable=True),

        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("phone", sa.String(40), nullable=True),
        sa.Column("website", sa.String(500), nullable=True),
        sa.Column("facebook", sa.String(500), nullable=True),
        sa.Column("instagram", sa.String(500), nullable=True),
        sa.Column("twitter", sa.String(500), nullable=True),
        sa.Column("linkedin", sa.String(500), nullable=True),
        sa.Column("tiktok", sa.String(500), nullable=True),
        sa.Column("google_place_id", sa.String(255), nullable=True),
        sa.Column("google_maps_url", sa.String(500), nullable=True),
        sa.Column("meta_title", sa.String(60), nullable=True),
        sa.Column("meta_description", sa.String(160), nullable=True),

        sa.Column("logo", sa.String(500), nullable=True),
        sa.Column("cover_image", sa.String(500), nullable=True),
        sa.Column("images", sa.JSON(), nullable=False,
                  comment="Ordered gallery URLs; the first is the primary image"),
        sa.Column("raw_schedule_snapshot", sa.JSON(), nullable=True,
                  comment="Last raw opening-hours input and gallery"),

        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text("CURRENT_TIMESTAMP")),

        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("slug", name="uq_places_slug"),
    )
    op.create_index("ix_places_owner_id", "places", ["owner_id"])
    op.create_index("idx_places_status_updated", "places", ["status", "updated_at"])

    op.create_table(
        "place_opening_hours",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("place_id", sa.Uuid(), nullable=False),
        sa.Column("day_of_week", sa.String(10), nullable=False),
        sa.Column("open_time", sa.String(5), nullable=True, comment="HH:MM, NULL when closed"),
        sa.Column("close_time", sa.String(5), nullable=True, comment="HH:MM, NULL when closed"),
        sa.Column("is_closed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.ForeignKeyConstraint(["place_id"], ["places.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_place_opening_hours_place_id", "place_opening_hours", ["place_id"])


def downgrade() -> None:
    op.drop_index("ix_place_opening_hours_place_id", table_name="place_opening_hours")
    op.drop_table("place_opening_hours")
    op.drop_index("idx_places_status_updated", table_name="places")
    op.drop_index("ix_places_owner_id", table_name="places")
    op.drop_table("places")
