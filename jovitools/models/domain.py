"""
Domain Models - Internal business logic models using dataclasses.

NO DICTIONARIES - All data structures are strongly typed immutable dataclasses.
"""

from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID

from jovitools.models.api import AccessStatus, VideoJobState


@dataclass(frozen=True)
class AuthenticatedUser:
    """Identity issued by the identity provider - only user id and email are trusted."""

    user_id: str
    email: str

    def __post_init__(self) -> None:
        """Validate identity fields."""
        if not self.user_id:
            raise ValueError("user_id cannot be empty")
        if "@" not in self.email:
            raise ValueError(f"Invalid email: {self.email}")


@dataclass(frozen=True)
class AccessState:
    """Snapshot of the access gate for one profile."""

    has_access: bool
    access_expires_at: datetime | None

    def is_effective(self, now: datetime) -> bool:
        """has_access AND (lifetime OR expiry still in the future)."""
        if not self.has_access:
            return False
        return self.access_expires_at is None or self.access_expires_at > now


@dataclass(frozen=True)
class AccessSummary:
    """Display-ready view of an access state."""

    status: AccessStatus
    days_remaining: int | None
    expiring_soon: bool


@dataclass(frozen=True)
class DeductionResult:
    """Outcome of a single coin deduction."""

    success: bool
    remaining_coins: int
    message: str

    def __post_init__(self) -> None:
        """Validate coin constraints."""
        if self.remaining_coins < 0:
            raise ValueError(f"Coins cannot be negative: {self.remaining_coins}")


@dataclass(frozen=True)
class RedemptionResult:
    """Outcome of a successful invite redemption."""

    code: str
    access_days_granted: int | None
    access_expires_at: datetime | None
    platform_ids: tuple[UUID, ...]


@dataclass(frozen=True)
class GrantDiff:
    """Platforms to add and remove when replacing a grant set."""

    added: frozenset[UUID] = field(default_factory=frozenset)
    removed: frozenset[UUID] = field(default_factory=frozenset)

    @property
    def is_empty(self) -> bool:
        return not self.added and not self.removed


@dataclass(frozen=True)
class GeneratedImage:
    """Image returned by the generation gateway."""

    image_url: str
    message: str
    enhanced_prompt: str


@dataclass(frozen=True)
class VideoJobSubmission:
    """Video job accepted by the provider."""

    job_id: str
    status: VideoJobState
    message: str
    estimated_credit: float | None


@dataclass(frozen=True)
class VideoJobStatus:
    """One poll result for a video job."""

    job_id: str
    state: VideoJobState
    percentage: int
    video_url: str | None = None
    error_message: str | None = None

    @property
    def is_terminal(self) -> bool:
        """Completed (with a URL) or failed."""
        if self.state == VideoJobState.FAILED:
            return True
        return self.state == VideoJobState.COMPLETED and bool(self.video_url)


@dataclass(frozen=True)
class GeoLocation:
    """Best-effort location for an IP address."""

    city: str | None = None
    region: str | None = None
    country: str | None = None
