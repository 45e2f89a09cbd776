"""Create geo-grid scheduling and measurement tables

Revision ID: 001_create_geogrid_tables
Revises:
Create Date: 2026-10-19 12:00:00.000000

Creates the read-only business configuration tables (businesses, business
hours, origin zones, proxy settings), the weekly schedule store with its
keyword overrides, and the run/point/snapshot tables written by the engine.
"""

from typing import Sequence, Union

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001_create_geogrid_tables"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    """Create all geo-grid tables."""

    # Business configuration (read-only for this service)
    op.create_table(
        "businesses",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("business_name", sa.VARCHAR(255), nullable=False),
        sa.Column("timezone", sa.VARCHAR(64), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("brand_search", sa.VARCHAR(255), nullable=True),
        sa.Column("destination_lat", sa.Float(), nullable=True),
        sa.Column("destination_lng", sa.Float(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "business_hours",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("business_id", sa.Integer(), nullable=False),
        sa.Column("windows_json", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["business_id"], ["businesses.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("business_id", name="uq_business_hours_business"),
    )

    op.create_table(
        "origin_zones",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("business_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.VARCHAR(255), nullable=True),
        sa.Column("lat", sa.Float(), nullable=False),
        sa.Column("lng", sa.Float(), nullable=False),
        sa.Column("radius_miles", sa.Float(), nullable=True),
        sa.Column("weight", sa.Float(), nullable=False, server_default="1"),
        sa.Column("keywords", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["business_id"], ["businesses.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "idx_origin_zones_business_weight", "origin_zones", ["business_id", "weight"]
    )

    # Proxy password lives in application settings, never in the database
    op.create_table(
        "proxy_configs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("business_id", sa.Integer(), nullable=False),
        sa.Column("username", sa.VARCHAR(255), nullable=True),
        sa.Column("endpoint", sa.VARCHAR(255), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["business_id"], ["businesses.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("business_id", name="uq_proxy_configs_business"),
    )

    # Weekly schedule store
    op.create_table(
        "geo_grid_schedules",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("business_id", sa.Integer(), nullable=False),
        sa.Column("run_day_of_week", sa.SmallInteger(), nullable=False),
        sa.Column("run_time_local", sa.Time(), nullable=False),
        sa.Column("lead_minutes", sa.Integer(), nullable=False, server_default="120"),
        sa.Column("next_run_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("last_run_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("locked_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        *_timestamps(),
        sa.ForeignKeyConstraint(["business_id"], ["businesses.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("business_id", name="uq_geo_grid_schedules_business"),
        sa.CheckConstraint(
            "run_day_of_week BETWEEN 0 AND 6", name="ck_geo_grid_schedules_day"
        ),
        sa.CheckConstraint(
            "is_active OR next_run_at IS NULL",
            name="ck_geo_grid_schedules_inactive_no_next_run",
        ),
    )
    op.create_index(
        "idx_geo_grid_schedules_due",
        "geo_grid_schedules",
        ["next_run_at"],
        postgresql_where=sa.text("is_active"),
    )

    op.create_table(
        "geo_grid_schedule_keywords",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("schedule_id", sa.Integer(), nullable=False),
        sa.Column("keyword", sa.VARCHAR(255), nullable=False),
        sa.Column("weight", sa.Float(), nullable=False, server_default="1"),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(
            ["schedule_id"], ["geo_grid_schedules.id"], ondelete="CASCADE"
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "idx_geo_grid_schedule_keywords_schedule",
        "geo_grid_schedule_keywords",
        ["schedule_id"],
    )

    # Runs, points and snapshots
    op.create_table(
        "geo_grid_runs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("business_id", sa.Integer(), nullable=False),
        sa.Column("keyword", sa.VARCHAR(255), nullable=False),
        sa.Column("origin_lat", sa.Float(), nullable=False),
        sa.Column("origin_lng", sa.Float(), nullable=False),
        sa.Column("radius_miles", sa.Float(), nullable=False),
        sa.Column("grid_rows", sa.Integer(), nullable=False),
        sa.Column("grid_cols", sa.Integer(), nullable=False),
        sa.Column("spacing_miles", sa.Float(), nullable=False),
        sa.Column("status", sa.VARCHAR(20), nullable=False, server_default="queued"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column("finished_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["business_id"], ["businesses.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "status IN ('queued', 'running', 'done', 'error')",
            name="ck_geo_grid_runs_status",
        ),
    )
    op.create_index(
        "idx_geo_grid_runs_status_created", "geo_grid_runs", ["status", "created_at"]
    )
    op.create_index(
        "idx_geo_grid_runs_business_status", "geo_grid_runs", ["business_id", "status"]
    )

    op.create_table(
        "geo_grid_points",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("run_id", sa.Integer(), nullable=False),
        sa.Column("row_idx", sa.Integer(), nullable=False),
        sa.Column("col_idx", sa.Integer(), nullable=False),
        sa.Column("lat", sa.Float(), nullable=False),
        sa.Column("lng", sa.Float(), nullable=False),
        sa.Column("rank_pos", sa.Integer(), nullable=True),
        sa.Column("place_id", sa.VARCHAR(255), nullable=True),
        sa.Column("results_json", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("measured_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("screenshot_path", sa.Text(), nullable=True),
        sa.Column("search_url", sa.Text(), nullable=True),
        sa.Column("landing_url", sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(["run_id"], ["geo_grid_runs.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "run_id", "row_idx", "col_idx", name="uq_geo_grid_points_run_cell"
        ),
    )
    op.create_index(
        "idx_geo_grid_points_unmeasured",
        "geo_grid_points",
        ["run_id"],
        postgresql_where=sa.text("rank_pos IS NULL"),
    )

    op.create_table(
        "ranking_snapshots",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("run_id", sa.Integer(), nullable=True),
        sa.Column("business_id", sa.Integer(), nullable=False),
        sa.Column("keyword", sa.VARCHAR(255), nullable=False),
        sa.Column("origin_lat", sa.Float(), nullable=False),
        sa.Column("origin_lng", sa.Float(), nullable=False),
        sa.Column("total_results", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("matched_place_id", sa.VARCHAR(255), nullable=True),
        sa.Column("matched_position", sa.Integer(), nullable=True),
        sa.Column("results_json", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(["run_id"], ["geo_grid_runs.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["business_id"], ["businesses.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "idx_ranking_snapshots_business_created",
        "ranking_snapshots",
        ["business_id", "created_at"],
    )


def downgrade() -> None:
    """Drop all geo-grid tables."""
    op.drop_index("idx_ranking_snapshots_business_created", table_name="ranking_snapshots")
    op.drop_table("ranking_snapshots")

    op.drop_index("idx_geo_grid_points_unmeasured", table_name="geo_grid_points")
    op.drop_table("geo_grid_points")

    op.drop_index("idx_geo_grid_runs_business_status", table_name="geo_grid_runs")
    op.drop_index("idx_geo_grid_runs_status_created", table_name="geo_grid_runs")
    op.drop_table("geo_grid_runs")

    op.drop_index(
        "idx_geo_grid_schedule_keywords_schedule", table_name="geo_grid_schedule_keywords"
    )
    op.drop_table("geo_grid_schedule_keywords")

    op.drop_index("idx_geo_grid_schedules_due", table_name="geo_grid_schedules")
    op.drop_table("geo_grid_schedules")

    op.drop_table("proxy_configs")
    op.drop_index("idx_origin_zones_business_weight", table_name="origin_zones")
    op.drop_table("origin_zones")
    op.drop_table("business_hours")
    op.drop_table("businesses")
