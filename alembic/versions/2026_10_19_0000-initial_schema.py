"""initial portal schema

Revision ID: 2026_10_19_0000
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates profiles, user_roles, platforms, platform_credentials,
platform_grants, coin_ledgers, invites, site_settings and access_logs.
"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "2026_10_19_0000"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _uuid_pk() -> sa.Column:
    return sa.Column(
        "id",
        postgresql.UUID(as_uuid=True),
        primary_key=True,
        server_default=sa.text("gen_random_uuid()"),
    )


def _timestamp(name: str) -> sa.Column:
    return sa.Column(
        name, sa.DateTime(timezone=True), nullable=False, server_default=sa.text("NOW()")
    )


def upgrade() -> None:
    # ========================================================================
    # profiles
    # ========================================================================
    op.create_table(
        "profiles",
        _uuid_pk(),
        sa.Column("user_id", sa.String(255), nullable=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("whatsapp", sa.String(32), nullable=True),
        sa.Column("has_access", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("access_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("block_reason", sa.Text(), nullable=True),
        sa.Column("partner_id", postgresql.UUID(as_uuid=True), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.UniqueConstraint("email", name="uq_profiles_email"),
        sa.UniqueConstraint("user_id", name="uq_profiles_user_id"),
        sa.CheckConstraint("email = lower(email)", name="ck_profiles_email_lowercase"),
        sa.ForeignKeyConstraint(
            ["partner_id"], ["profiles.id"], name="fk_profiles_partner", ondelete="SET NULL"
        ),
    )
    op.create_index(
        "idx_profiles_partner_id",
        "profiles",
        ["partner_id"],
        postgresql_where=sa.text("partner_id IS NOT NULL"),
    )
    op.create_index("idx_profiles_access_expires_at", "profiles", ["access_expires_at"])

    # ========================================================================
    # user_roles
    # ========================================================================
    op.create_table(
        "user_roles",
        _uuid_pk(),
        sa.Column("user_id", sa.String(255), nullable=False),
        sa.Column("role", sa.String(20), nullable=False),
        _timestamp("created_at"),
        sa.CheckConstraint("role IN ('admin', 'socio', 'user')", name="ck_user_roles_role"),
        sa.UniqueConstraint("user_id", "role", name="uq_user_roles_user_role"),
    )
    op.create_index("idx_user_roles_user_id", "user_roles", ["user_id"])

    # ========================================================================
    # platforms and credentials
    # ========================================================================
    op.create_table(
        "platforms",
        _uuid_pk(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("category", sa.String(100), nullable=True),
        sa.Column("icon_url", sa.Text(), nullable=True),
        sa.Column("access_url", sa.Text(), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
    )
    op.create_index("idx_platforms_name", "platforms", ["name"])

    op.create_table(
        "platform_credentials",
        _uuid_pk(),
        sa.Column("platform_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("login", sa.String(255), nullable=False),
        sa.Column("password", sa.String(255), nullable=False),
        _timestamp("created_at"),
        sa.ForeignKeyConstraint(
            ["platform_id"], ["platforms.id"], name="fk_credentials_platform", ondelete="CASCADE"
        ),
    )
    op.create_index(
        "idx_platform_credentials_platform_id", "platform_credentials", ["platform_id"]
    )

    op.create_table(
        "platform_grants",
        _uuid_pk(),
        sa.Column("profile_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("platform_id", postgresql.UUID(as_uuid=True), nullable=False),
        _timestamp("created_at"),
        sa.UniqueConstraint(
            "profile_id", "platform_id", name="uq_platform_grants_profile_platform"
        ),
        sa.ForeignKeyConstraint(
            ["profile_id"], ["profiles.id"], name="fk_grants_profile", ondelete="CASCADE"
        ),
        sa.ForeignKeyConstraint(
            ["platform_id"], ["platforms.id"], name="fk_grants_platform", ondelete="CASCADE"
        ),
    )
    op.create_index("idx_platform_grants_platform_id", "platform_grants", ["platform_id"])

    # ========================================================================
    # coin_ledgers
    # ========================================================================
    op.create_table(
        "coin_ledgers",
        sa.Column("profile_id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("coins", sa.Integer(), nullable=False),
        _timestamp("last_reset_at"),
        _timestamp("updated_at"),
        sa.CheckConstraint("coins >= 0", name="ck_coin_ledgers_coins_non_negative"),
        sa.ForeignKeyConstraint(
            ["profile_id"], ["profiles.id"], name="fk_coin_ledgers_profile", ondelete="CASCADE"
        ),
    )

    # ========================================================================
    # invites
    # ========================================================================
    op.create_table(
        "invites",
        _uuid_pk(),
        sa.Column("code", sa.String(32), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "platform_ids",
            postgresql.ARRAY(postgresql.UUID(as_uuid=True)),
            nullable=False,
            server_default="{}",
        ),
        sa.Column("access_days", sa.Integer(), nullable=True),
        sa.Column("recipient_name", sa.String(255), nullable=True),
        sa.Column("recipient_email", sa.String(255), nullable=True),
        sa.Column("created_by", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("used_by", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("used_at", sa.DateTime(timezone=True), nullable=True),
        _timestamp("created_at"),
        sa.UniqueConstraint("code", name="uq_invites_code"),
        sa.CheckConstraint("status IN ('active', 'used', 'expired')", name="ck_invites_status"),
        sa.CheckConstraint(
            "access_days IS NULL OR access_days > 0", name="ck_invites_access_days_positive"
        ),
        sa.ForeignKeyConstraint(
            ["created_by"], ["profiles.id"], name="fk_invites_created_by", ondelete="SET NULL"
        ),
        sa.ForeignKeyConstraint(
            ["used_by"], ["profiles.id"], name="fk_invites_used_by", ondelete="SET NULL"
        ),
    )
    op.create_index("idx_invites_status", "invites", ["status"])
    op.create_index("idx_invites_created_at", "invites", ["created_at"])

    # ========================================================================
    # site_settings and access_logs
    # ========================================================================
    op.create_table(
        "site_settings",
        sa.Column("key", sa.String(100), primary_key=True),
        sa.Column("value", postgresql.JSONB(), nullable=False),
        _timestamp("updated_at"),
    )

    op.create_table(
        "access_logs",
        _uuid_pk(),
        sa.Column("profile_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("ip_address", postgresql.INET(), nullable=True),
        sa.Column("city", sa.String(255), nullable=True),
        sa.Column("region", sa.String(255), nullable=True),
        sa.Column("country", sa.String(255), nullable=True),
        _timestamp("created_at"),
        sa.ForeignKeyConstraint(
            ["profile_id"], ["profiles.id"], name="fk_access_logs_profile", ondelete="CASCADE"
        ),
    )
    op.create_index("idx_access_logs_profile_id", "access_logs", ["profile_id"])
    op.create_index(
        "idx_access_logs_created_at", "access_logs", ["created_at"], postgresql_using="brin"
    )


def downgrade() -> None:
    op.drop_table("access_logs")
    op.drop_table("site_settings")
    op.drop_table("invites")
    op.drop_table("coin_ledgers")
    op.drop_table("platform_grants")
    op.drop_table("platform_credentials")
    op.drop_table("platforms")
    op.drop_table("user_roles")
    op.drop_table("profiles")
