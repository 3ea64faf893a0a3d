"""Initial tables for listings, ledgers, mailbox and recent views.

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19 09:00:00
"""

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "20261019_0001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

JSON_DOCUMENT = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def _timestamp(name: str) -> sa.Column:
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        server_default=sa.func.now(),
        nullable=False,
    )


def upgrade() -> None:
    """Upgrade schema."""

    op.create_table(
        "listings",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("listing_id", sa.String(length=64), nullable=False),
        sa.Column("document", JSON_DOCUMENT, nullable=False),
        sa.Column("price_minor", sa.Integer(), server_default="0", nullable=False),
        sa.Column("area_text", sa.Text(), server_default="", nullable=False),
        sa.Column("payment_term", sa.String(length=50), server_default="", nullable=False),
        sa.Column("province_code", sa.String(length=20), server_default="", nullable=False),
        sa.Column("city_code", sa.String(length=20), server_default="", nullable=False),
        sa.Column("district_code", sa.String(length=20), server_default="", nullable=False),
        sa.Column("status", sa.String(length=16), server_default="online", nullable=False),
        sa.Column("search_text", sa.Text(), server_default="", nullable=False),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("id", name="pk_listings"),
        sa.UniqueConstraint("listing_id", name="uq_listings_listing_id"),
    )
    op.create_index(
        "idx_listings_region",
        "listings",
        ["province_code", "city_code", "district_code"],
        unique=False,
    )
    op.create_index("idx_listings_price", "listings", ["price_minor"], unique=False)
    op.create_index("idx_listings_status", "listings", ["status"], unique=False)

    op.create_table(
        "reservations",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("listing_id", sa.String(length=64), nullable=False),
        sa.Column("requester_contact", sa.String(length=64), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("display_name", sa.String(length=100), server_default="", nullable=False),
        sa.Column("note", sa.Text(), server_default="", nullable=False),
        sa.Column("status", sa.String(length=16), server_default="pending", nullable=False),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.ForeignKeyConstraint(
            ["listing_id"],
            ["listings.listing_id"],
            name="fk_reservations_listing_id_listings",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_reservations"),
    )
    op.create_index(
        "idx_reservations_requester", "reservations", ["requester_contact"], unique=False
    )
    op.create_index(
        "idx_reservations_listing", "reservations", ["listing_id"], unique=False
    )

    op.create_table(
        "reservation_owner_index",
        sa.Column("reservation_id", sa.Integer(), nullable=False),
        sa.Column("listing_id", sa.String(length=64), nullable=False),
        sa.Column("owner_contact", sa.String(length=64), nullable=False),
        sa.ForeignKeyConstraint(
            ["reservation_id"],
            ["reservations.id"],
            name="fk_reservation_owner_index_reservation_id_reservations",
        ),
        sa.PrimaryKeyConstraint("reservation_id", name="pk_reservation_owner_index"),
    )
    op.create_index(
        "idx_reservation_owner_index_owner",
        "reservation_owner_index",
        ["owner_contact"],
        unique=False,
    )
    op.create_index(
        "idx_reservation_owner_index_listing",
        "reservation_owner_index",
        ["listing_id"],
        unique=False,
    )

    op.create_table(
        "rental_contracts",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("listing_id", sa.String(length=64), nullable=False),
        sa.Column("tenant_contact", sa.String(length=64), nullable=False),
        sa.Column("landlord_contact", sa.String(length=64), nullable=False),
        sa.Column("status", sa.String(length=16), server_default="pending", nullable=False),
        sa.Column("remark", sa.Text(), server_default="", nullable=False),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.ForeignKeyConstraint(
            ["listing_id"],
            ["listings.listing_id"],
            name="fk_rental_contracts_listing_id_listings",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_rental_contracts"),
    )
    op.create_index(
        "idx_rental_contracts_landlord",
        "rental_contracts",
        ["landlord_contact", "status"],
        unique=False,
    )
    op.create_index(
        "idx_rental_contracts_tenant",
        "rental_contracts",
        ["tenant_contact", "status"],
        unique=False,
    )
    op.create_index(
        "idx_rental_contracts_listing", "rental_contracts", ["listing_id"], unique=False
    )

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("recipient_contact", sa.String(length=64), nullable=False),
        sa.Column("kind", sa.String(length=20), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column(
            "is_read", sa.Boolean(), server_default=sa.false(), nullable=False
        ),
        sa.Column("payload", JSON_DOCUMENT, nullable=True),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id", name="pk_notifications"),
    )
    op.create_index(
        "idx_notifications_recipient",
        "notifications",
        ["recipient_contact", "is_read"],
        unique=False,
    )
    op.create_index(
        "idx_notifications_created", "notifications", ["created_at"], unique=False
    )

    op.create_table(
        "mailbox_recipients",
        sa.Column("recipient_contact", sa.String(length=64), nullable=False),
        _timestamp("seeded_at"),
        sa.PrimaryKeyConstraint("recipient_contact", name="pk_mailbox_recipients"),
    )

    op.create_table(
        "recent_views",
        sa.Column("user_contact", sa.String(length=64), nullable=False),
        sa.Column("listing_id", sa.String(length=64), nullable=False),
        _timestamp("viewed_at"),
        sa.Column("snapshot", JSON_DOCUMENT, nullable=True),
        sa.PrimaryKeyConstraint("user_contact", "listing_id", name="pk_recent_views"),
    )
    op.create_index(
        "idx_recent_views_user_viewed",
        "recent_views",
        ["user_contact", "viewed_at"],
        unique=False,
    )


def downgrade() -> None:
    """Downgrade schema."""

    op.drop_index("idx_recent_views_user_viewed", table_name="recent_views")
    op.drop_table("recent_views")

    op.drop_table("mailbox_recipients")

    op.drop_index("idx_notifications_created", table_name="notifications")
    op.drop_index("idx_notifications_recipient", table_name="notifications")
    op.drop_table("notifications")

    op.drop_index("idx_rental_contracts_listing", table_name="rental_contracts")
    op.drop_index("idx_rental_contracts_tenant", table_name="rental_contracts")
    op.drop_index("idx_rental_contracts_landlord", table_name="rental_contracts")
    op.drop_table("rental_contracts")

    op.drop_index(
        "idx_reservation_owner_index_listing", table_name="reservation_owner_index"
    )
    op.drop_index(
        "idx_reservation_owner_index_owner", table_name="reservation_owner_index"
    )
    op.drop_table("reservation_owner_index")

    op.drop_index("idx_reservations_listing", table_name="reservations")
    op.drop_index("idx_reservations_requester", table_name="reservations")
    op.drop_table("reservations")

    op.drop_index("idx_listings_status", table_name="listings")
    op.drop_index("idx_listings_price", table_name="listings")
    op.drop_index("idx_listings_region", table_name="listings")
    op.drop_table("listings")
