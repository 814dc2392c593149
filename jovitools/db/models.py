"""
Database Models - SQLAlchemy ORM models with strict typing.

NO DICTIONARIES - All columns use Mapped[] type annotations.
(site_settings.value is the one JSONB column - its shape is owned by SiteSettingsService.)
"""

from datetime import UTC, datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import (
    ARRAY,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import INET, JSONB
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


class Profile(Base):
    """
    ORM model for profiles table.

    One row per portal user - holds the access gate (has_access + expiry).
    """

    __tablename__ = "profiles"

    # Primary Key
    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)

    # Identity provider subject - null until the user first signs in
    user_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    whatsapp: Mapped[str | None] = mapped_column(String(32), nullable=True)

    # Access gate
    has_access: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    access_expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    block_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Partner (sócio) that provisioned this profile
    partner_id: Mapped[UUID | None] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True
    )

    # Audit timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        UniqueConstraint("email", name="uq_profiles_email"),
        UniqueConstraint("user_id", name="uq_profiles_user_id"),
        CheckConstraint("email = lower(email)", name="ck_profiles_email_lowercase"),
        Index("idx_profiles_partner_id", "partner_id", postgresql_where=(partner_id.isnot(None))),
        Index("idx_profiles_access_expires_at", "access_expires_at"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<Profile(id={self.id}, email={self.email}, has_access={self.has_access}, "
            f"expires={self.access_expires_at})>"
        )


class UserRole(Base):
    """ORM model for user_roles table - keyed by identity provider subject."""

    __tablename__ = "user_roles"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (
        CheckConstraint("role IN ('admin', 'socio', 'user')", name="ck_user_roles_role"),
        UniqueConstraint("user_id", "role", name="uq_user_roles_user_role"),
        Index("idx_user_roles_user_id", "user_id"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return f"<UserRole(user_id={self.user_id}, role={self.role})>"


class Platform(Base):
    """ORM model for platforms table - a third-party tool whose credentials are shared."""

    __tablename__ = "platforms"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)
    icon_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    access_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (Index("idx_platforms_name", "name"),)

    def __repr__(self) -> str:
        """String representation for debugging."""
        return f"<Platform(id={self.id}, name={self.name})>"


class PlatformCredential(Base):
    """ORM model for platform_credentials table."""

    __tablename__ = "platform_credentials"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    platform_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("platforms.id", ondelete="CASCADE"), nullable=False
    )
    login: Mapped[str] = mapped_column(String(255), nullable=False)
    password: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (Index("idx_platform_credentials_platform_id", "platform_id"),)

    def __repr__(self) -> str:
        """String representation for debugging."""
        # Never include the password
        return f"<PlatformCredential(id={self.id}, platform_id={self.platform_id})>"


class PlatformGrant(Base):
    """
    ORM model for platform_grants table.

    Presence of a row lets the profile see the platform's credentials,
    provided the profile also has effective access.
    """

    __tablename__ = "platform_grants"

    id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
        server_default=text("gen_random_uuid()"),
    )
    profile_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False
    )
    platform_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("platforms.id", ondelete="CASCADE"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("profile_id", "platform_id", name="uq_platform_grants_profile_platform"),
        Index("idx_platform_grants_platform_id", "platform_id"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return f"<PlatformGrant(profile_id={self.profile_id}, platform_id={self.platform_id})>"


class CoinLedger(Base):
    """
    ORM model for coin_ledgers table.

    One counter per profile. Mutated only through conditional UPDATE statements.
    """

    __tablename__ = "coin_ledgers"

    profile_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("profiles.id", ondelete="CASCADE"),
        primary_key=True,
    )
    coins: Mapped[int] = mapped_column(Integer, nullable=False)
    last_reset_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (CheckConstraint("coins >= 0", name="ck_coin_ledgers_coins_non_negative"),)

    def __repr__(self) -> str:
        """String representation for debugging."""
        return f"<CoinLedger(profile_id={self.profile_id}, coins={self.coins})>"


class Invite(Base):
    """
    ORM model for invites table.

    Single-use code granting platforms and an access duration.
    """

    __tablename__ = "invites"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    code: Mapped[str] = mapped_column(String(32), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # Grant
    platform_ids: Mapped[list[UUID]] = mapped_column(
        ARRAY(PG_UUID(as_uuid=True)), nullable=False, default=list
    )
    access_days: Mapped[int | None] = mapped_column(Integer, nullable=True)  # null = lifetime

    # Recipient hints
    recipient_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    recipient_email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Lifecycle
    created_by: Mapped[UUID | None] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True
    )
    used_by: Mapped[UUID | None] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True
    )
    used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (
        UniqueConstraint("code", name="uq_invites_code"),
        CheckConstraint(
            "status IN ('active', 'used', 'expired')", name="ck_invites_status"
        ),
        CheckConstraint(
            "access_days IS NULL OR access_days > 0", name="ck_invites_access_days_positive"
        ),
        Index("idx_invites_status", "status"),
        Index("idx_invites_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return f"<Invite(code={self.code}, status={self.status}, expires_at={self.expires_at})>"


class SiteSetting(Base):
    """ORM model for site_settings table - small JSON values by key."""

    __tablename__ = "site_settings"

    key: Mapped[str] = mapped_column(String(100), primary_key=True)
    value: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return f"<SiteSetting(key={self.key})>"


class AccessLog(Base):
    """ORM model for access_logs table - one row per recorded sign-in."""

    __tablename__ = "access_logs"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    profile_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False
    )
    ip_address: Mapped[str | None] = mapped_column(INET, nullable=True)
    city: Mapped[str | None] = mapped_column(String(255), nullable=True)
    region: Mapped[str | None] = mapped_column(String(255), nullable=True)
    country: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (
        Index("idx_access_logs_profile_id", "profile_id"),
        Index("idx_access_logs_created_at", "created_at", postgresql_using="brin"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return f"<AccessLog(profile_id={self.profile_id}, ip={self.ip_address})>"
