"""Initial schema: users, ride offers and matches.

Revision ID: 001
Create Date: 2026-10-17
"""

from alembic import op
import sqlalchemy as sa


revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # ── users ─────────────────────────────────────────────────────────
    op.create_table(
        "users",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("email", sa.String(255), unique=True, nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )

    # ── rides ─────────────────────────────────────────────────────────
    op.create_table(
        "rides",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "user_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False
        ),
        sa.Column("origin_location", sa.String(255), nullable=False),
        sa.Column(
            "destination",
            sa.Enum("LAX", "BUR", "ONT", "UNION_STATION", name="destination"),
            nullable=False,
        ),
        sa.Column("departure_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("flexible_time", sa.Boolean, default=False, nullable=False),
        sa.Column(
            "time_flexibility_minutes", sa.Integer, default=0, nullable=False
        ),
        sa.Column("max_passengers", sa.Integer, default=2, nullable=False),
        sa.Column(
            "cost_split_preference",
            sa.Enum("EQUAL", "BY_DISTANCE", name="costsplitpreference"),
            default="EQUAL",
            nullable=False,
        ),
        sa.Column("notes", sa.String(300), nullable=True),
        sa.Column(
            "status",
            sa.Enum(
                "ACTIVE",
                "MATCHED",
                "COMPLETED",
                "CANCELLED",
                "EXPIRED",
                name="ridestatus",
            ),
            default="ACTIVE",
            nullable=False,
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )
    op.create_index(
        "idx_rides_destination_status", "rides", ["destination", "status"]
    )
    op.create_index("idx_rides_status", "rides", ["status"])
    op.create_index("idx_rides_user", "rides", ["user_id"])

    # ── matches ───────────────────────────────────────────────────────
    op.create_table(
        "matches",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "ride_a_id", sa.Integer, sa.ForeignKey("rides.id"), nullable=False
        ),
        sa.Column(
            "ride_b_id", sa.Integer, sa.ForeignKey("rides.id"), nullable=False
        ),
        sa.Column("pair_key", sa.String(64), nullable=False),
        sa.Column("score", sa.Float, nullable=True),
        # lower-case: suggested / accepted / rejected / completed
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("idx_matches_ride_a", "matches", ["ride_a_id"])
    op.create_index("idx_matches_ride_b", "matches", ["ride_b_id"])
    # at most one live match per unordered ride pair
    op.create_index(
        "uq_matches_live_pair",
        "matches",
        ["pair_key"],
        unique=True,
        postgresql_where=sa.text("status <> 'rejected'"),
    )


def downgrade() -> None:
    op.drop_table("matches")
    op.drop_table("rides")
    op.drop_table("users")
    op.execute("DROP TYPE IF EXISTS ridestatus")
    op.execute("DROP TYPE IF EXISTS costsplitpreference")
    op.execute("DROP TYPE IF EXISTS destination")
