"""Initial analytics schema: analytics_events, feature_flags, ab_tests

Revision ID: 001
Revises:
Create Date: 2026-10-17

Tables created:
  - analytics_events   Append-only event log (one row per recorded event)
  - feature_flags      Dashboard-managed flags (enabled / disabled / percentage rollout)
  - ab_tests           Two-arm A/B tests with JSON arm definitions

PostgreSQL-native ENUM types created:
  - platform             ios / android / web
  - feature_flag_status  enabled / disabled / percentage_rollout
  - ab_test_status       active / paused / completed

analytics_events refuses UPDATE and DELETE at the database level via
trg_analytics_events_append_only.

Downgrade: drops triggers, tables and ENUM types in reverse order.
"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


# ─────────────────────────────────────────────────────────────────────────────
#  UPGRADE
# ─────────────────────────────────────────────────────────────────────────────

def upgrade() -> None:
    # ── 1. PostgreSQL ENUM types ──────────────────────────────────────────────
    # PostgreSQL has no CREATE TYPE IF NOT EXISTS, so we use a DO/EXCEPTION block.
    op.execute(
        """
        DO $$ BEGIN
            CREATE TYPE platform AS ENUM ('ios', 'android', 'web');
        EXCEPTION WHEN duplicate_object THEN NULL;
        END $$;
        """
    )
    op.execute(
        """
        DO $$ BEGIN
            CREATE TYPE feature_flag_status AS ENUM (
                'enabled',
                'disabled',
                'percentage_rollout'
            );
        EXCEPTION WHEN duplicate_object THEN NULL;
        END $$;
        """
    )
    op.execute(
        """
        DO $$ BEGIN
            CREATE TYPE ab_test_status AS ENUM ('active', 'paused', 'completed');
        EXCEPTION WHEN duplicate_object THEN NULL;
        END $$;
        """
    )

    # ── 2. analytics_events ───────────────────────────────────────────────────
    op.create_table(
        "analytics_events",
        sa.Column(
            "event_id",
            postgresql.UUID(as_uuid=True),
            nullable=False,
            server_default=sa.text("gen_random_uuid()"),
        ),
        sa.Column("event_name", sa.String(100), nullable=False),
        sa.Column(
            "subject_id",
            sa.String(128),
            nullable=False,
            server_default=sa.text("'anonymous'"),
        ),
        sa.Column("session_id", sa.String(64), nullable=False),
        sa.Column(
            "platform",
            postgresql.ENUM(name="platform", create_type=False),
            nullable=False,
        ),
        sa.Column("app_version", sa.String(32), nullable=False),
        sa.Column(
            "attributes",
            postgresql.JSONB(),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        # Client wall clock, display only
        sa.Column("client_timestamp", sa.DateTime(timezone=True), nullable=True),
        # Write time, authoritative for ordering
        sa.Column(
            "occurred_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.PrimaryKeyConstraint("event_id", name="pk_analytics_events"),
    )
    op.create_index(
        "ix_analytics_events_name_time", "analytics_events", ["event_name", "occurred_at"]
    )
    op.create_index("ix_analytics_events_subject_id", "analytics_events", ["subject_id"])
    op.create_index("ix_analytics_events_session_id", "analytics_events", ["session_id"])

    # ── 3. feature_flags ──────────────────────────────────────────────────────
    op.create_table(
        "feature_flags",
        sa.Column(
            "flag_id",
            postgresql.UUID(as_uuid=True),
            nullable=False,
            server_default=sa.text("gen_random_uuid()"),
        ),
        sa.Column("name", sa.String(150), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=sa.text("''")),
        sa.Column(
            "status",
            postgresql.ENUM(name="feature_flag_status", create_type=False),
            nullable=False,
            server_default=sa.text("'disabled'"),
        ),
        sa.Column(
            "rollout_percentage",
            sa.SmallInteger(),
            nullable=False,
            server_default=sa.text("0"),
        ),
        sa.Column(
            "platforms",
            postgresql.JSONB(),
            nullable=False,
            server_default=sa.text("'[\"all\"]'::jsonb"),
        ),
        sa.Column(
            "anonymous_safe",
            sa.Boolean(),
            nullable=False,
            server_default=sa.text("false"),
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.PrimaryKeyConstraint("flag_id", name="pk_feature_flags"),
        sa.UniqueConstraint("name", name="uq_feature_flags_name"),
        sa.CheckConstraint(
            "rollout_percentage BETWEEN 0 AND 100",
            name="ck_feature_flags_rollout_percentage",
        ),
    )
    op.create_index("ix_feature_flags_status", "feature_flags", ["status"])

    # ── 4. ab_tests ───────────────────────────────────────────────────────────
    op.create_table(
        "ab_tests",
        sa.Column(
            "test_id",
            postgresql.UUID(as_uuid=True),
            nullable=False,
            server_default=sa.text("gen_random_uuid()"),
        ),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=sa.text("''")),
        sa.Column(
            "status",
            postgresql.ENUM(name="ab_test_status", create_type=False),
            nullable=False,
            server_default=sa.text("'active'"),
        ),
        # {"name": ..., "description": ..., "percentage": ...}
        sa.Column("control_group", postgresql.JSONB(), nullable=False),
        sa.Column("variant_group", postgresql.JSONB(), nullable=False),
        sa.Column(
            "metrics",
            postgresql.JSONB(),
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.PrimaryKeyConstraint("test_id", name="pk_ab_tests"),
        sa.UniqueConstraint("name", name="uq_ab_tests_name"),
    )
    op.create_index("ix_ab_tests_status", "ab_tests", ["status"])

    # ── 5. Triggers ───────────────────────────────────────────────────────────
    op.execute(
        """
        CREATE OR REPLACE FUNCTION refuse_event_mutation()
        RETURNS TRIGGER AS $$
        BEGIN
            RAISE EXCEPTION 'analytics_events is append-only';
        END;
        $$ LANGUAGE plpgsql;
        """
    )
    op.execute(
        """
        CREATE TRIGGER trg_analytics_events_append_only
        BEFORE UPDATE OR DELETE ON analytics_events
        FOR EACH ROW EXECUTE FUNCTION refuse_event_mutation();
        """
    )
    op.execute(
        """
        CREATE OR REPLACE FUNCTION set_updated_at()
        RETURNS TRIGGER AS $$
        BEGIN
            NEW.updated_at = NOW();
            RETURN NEW;
        END;
        $$ LANGUAGE plpgsql;
        """
    )
    for table in ("feature_flags", "ab_tests"):
        op.execute(
            f"""
            CREATE TRIGGER trg_{table}_updated_at
            BEFORE UPDATE ON {table}
            FOR EACH ROW EXECUTE FUNCTION set_updated_at();
            """
        )


# ─────────────────────────────────────────────────────────────────────────────
#  DOWNGRADE
# ─────────────────────────────────────────────────────────────────────────────

def downgrade() -> None:
    op.execute("DROP TRIGGER IF EXISTS trg_ab_tests_updated_at ON ab_tests")
    op.execute("DROP TRIGGER IF EXISTS trg_feature_flags_updated_at ON feature_flags")
    op.execute("DROP TRIGGER IF EXISTS trg_analytics_events_append_only ON analytics_events")
    op.execute("DROP FUNCTION IF EXISTS set_updated_at")
    op.execute("DROP FUNCTION IF EXISTS refuse_event_mutation")

    op.drop_table("ab_tests")
    op.drop_table("feature_flags")
    op.drop_table("analytics_events")

    # Drop ENUM types (must happen after tables are gone)
    op.execute("DROP TYPE IF EXISTS ab_test_status")
    op.execute("DROP TYPE IF EXISTS feature_flag_status")
    op.execute("DROP TYPE IF EXISTS platform")
