"""
API Models - Pydantic models for request/response validation.

NO DICTIONARIES - All data structures are strongly typed.
"""

from datetime import datetime
from enum import Enum
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, Field, field_validator


class Role(str, Enum):
    """User role enumeration."""

    ADMIN = "admin"
    SOCIO = "socio"
    USER = "user"


class InviteStatus(str, Enum):
    """Invite code status enumeration."""

    ACTIVE = "active"
    USED = "used"
    EXPIRED = "expired"


class AccessStatus(str, Enum):
    """Display status of a user's access."""

    BLOCKED = "blocked"
    LIFETIME = "lifetime"
    EXPIRED = "expired"
    ACTIVE = "active"


class VideoJobState(str, Enum):
    """Video job state - provider codes 1/2/3."""

    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


AspectRatio = Literal["1:1", "16:9", "9:16", "4:3", "3:4"]

INVITE_ACCESS_DAY_OPTIONS = (7, 15, 30, 60, 90)
INVITE_EXPIRY_DAY_OPTIONS = (1, 3, 7, 15, 30)
PARTNER_PLAN_DAY_OPTIONS = (30, 90, 365)


def _normalize_email(value: str) -> str:
    value = value.strip().lower()
    if "@" not in value or value.startswith("@") or value.endswith("@"):
        raise ValueError("Invalid email address")
    return value


# ============================================================================
# Profile / Access Models
# ============================================================================


class AccessSummaryResponse(BaseModel):
    """Access status for display."""

    effective_access: bool
    status: AccessStatus
    days_remaining: int | None = None
    expiring_soon: bool = False


class ProfileResponse(BaseModel):
    """GET /v1/me response."""

    profile_id: UUID
    email: str
    name: str | None
    whatsapp: str | None
    has_access: bool
    access_expires_at: datetime | None
    block_reason: str | None
    roles: list[Role]
    access: AccessSummaryResponse


class CredentialResponse(BaseModel):
    """Platform credential."""

    credential_id: UUID
    platform_id: UUID
    login: str
    password: str


class UserPlatformResponse(BaseModel):
    """Platform as seen by a user - credentials only when usable."""

    platform_id: UUID
    name: str
    category: str | None
    icon_url: str | None
    access_url: str | None
    granted: bool
    credentials: list[CredentialResponse] = Field(default_factory=list)


class UserPlatformListResponse(BaseModel):
    """GET /v1/me/platforms response."""

    effective_access: bool
    platforms: list[UserPlatformResponse]


# ============================================================================
# Coin Models
# ============================================================================


class CoinBalanceResponse(BaseModel):
    """GET /v1/coins response."""

    coins: int = Field(..., ge=0)
    ceiling: int
    low: bool
    critical: bool


class CoinDeductionResponse(BaseModel):
    """POST /v1/coins/deduct response."""

    success: bool
    remaining_coins: int = Field(..., ge=0)
    message: str


# ============================================================================
# Invite Models
# ============================================================================


class InviteLookupResponse(BaseModel):
    """Public invite lookup."""

    code: str
    status: InviteStatus
    expires_at: datetime
    access_days: int | None
    recipient_name: str | None
    recipient_email: str | None


class InviteRedeemResponse(BaseModel):
    """POST /v1/invites/{code}/redeem response."""

    success: bool = True
    code: str
    access_days_granted: int | None
    access_expires_at: datetime | None
    platform_ids: list[UUID]


class CreateInviteRequest(BaseModel):
    """POST /admin/invites request body."""

    platform_ids: list[UUID] = Field(..., min_length=1)
    access_days: int | None = Field(
        15, description="Days of access granted on redemption; null for lifetime"
    )
    expires_in_days: int = Field(7, description="Days until the code itself expires")
    recipient_name: str | None = Field(None, max_length=255)
    recipient_email: str | None = Field(None, max_length=255)

    @field_validator("access_days")
    @classmethod
    def validate_access_days(cls, v: int | None) -> int | None:
        if v is not None and v not in INVITE_ACCESS_DAY_OPTIONS:
            raise ValueError(f"access_days must be one of {INVITE_ACCESS_DAY_OPTIONS}")
        return v

    @field_validator("expires_in_days")
    @classmethod
    def validate_expires_in_days(cls, v: int) -> int:
        if v not in INVITE_EXPIRY_DAY_OPTIONS:
            raise ValueError(f"expires_in_days must be one of {INVITE_EXPIRY_DAY_OPTIONS}")
        return v

    @field_validator("recipient_email")
    @classmethod
    def validate_recipient_email(cls, v: str | None) -> str | None:
        return _normalize_email(v) if v else None


class InviteResponse(BaseModel):
    """Invite as seen by an admin."""

    invite_id: UUID
    code: str
    status: InviteStatus
    expires_at: datetime
    access_days: int | None
    platform_ids: list[UUID]
    recipient_name: str | None
    recipient_email: str | None
    created_by: UUID | None
    used_by: UUID | None
    used_at: datetime | None
    created_at: datetime


class InviteListResponse(BaseModel):
    """GET /admin/invites response."""

    invites: list[InviteResponse]
    total: int


# ============================================================================
# Generation Models
# ============================================================================


class GenerateImageRequest(BaseModel):
    """POST /generate-image request body."""

    prompt: str = Field("", max_length=4000)
    aspect_ratio: AspectRatio = "1:1"


class GenerateImageResponse(BaseModel):
    """POST /generate-image response."""

    image_url: str
    message: str
    enhanced_prompt: str
    remaining_coins: int


class GenerateVideoRequest(BaseModel):
    """POST /generate-video request body."""

    prompt: str = Field("", max_length=4000)
    aspect_ratio: Literal["16:9", "9:16"] = "16:9"


class GenerateVideoResponse(BaseModel):
    """POST /generate-video response."""

    success: bool
    uuid: str
    status: VideoJobState
    message: str
    estimated_credit: float | None
    remaining_coins: int


class VideoStatusResponse(BaseModel):
    """GET /check-video-status/{uuid} response."""

    uuid: str
    status: VideoJobState
    status_percentage: int
    status_message: str
    video_url: str | None
    error_message: str | None


# ============================================================================
# Payment Webhook Models
# ============================================================================


class CaktoCustomer(BaseModel):
    """Customer block of a Cakto webhook."""

    email: str | None = None
    name: str | None = None


class CaktoSubscription(BaseModel):
    """Subscription block of a Cakto webhook."""

    recurrence_period: int | None = None


class CaktoWebhookData(BaseModel):
    """Data block of a Cakto webhook."""

    customer: CaktoCustomer = Field(default_factory=CaktoCustomer)
    subscription: CaktoSubscription | None = None


class CaktoWebhookPayload(BaseModel):
    """POST /cakto-webhook body."""

    secret: str | None = None
    event: str = ""
    data: CaktoWebhookData = Field(default_factory=CaktoWebhookData)


class WebhookResponse(BaseModel):
    """Webhook acknowledgement."""

    success: bool = True
    message: str
    event: str


# ============================================================================
# Admin: Platforms
# ============================================================================


class PlatformRequest(BaseModel):
    """Create or update a platform."""

    name: str = Field(..., min_length=1, max_length=255)
    category: str | None = Field(None, max_length=100)
    icon_url: str | None = Field(None, max_length=2048)
    access_url: str | None = Field(None, max_length=2048)


class CreatePlatformRequest(PlatformRequest):
    """POST /admin/platforms request body."""

    distribute_to_active_users: bool = False


class PlatformResponse(BaseModel):
    """Platform as seen by an admin."""

    platform_id: UUID
    name: str
    category: str | None
    icon_url: str | None
    access_url: str | None
    created_at: datetime
    credential_count: int = 0


class CredentialRequest(BaseModel):
    """Create or update a credential."""

    login: str = Field(..., min_length=1, max_length=255)
    password: str = Field(..., min_length=1, max_length=255)


# ============================================================================
# Admin: Users
# ============================================================================


class AdminUserResponse(BaseModel):
    """User as seen by an admin."""

    profile_id: UUID
    user_id: str | None
    email: str
    name: str | None
    whatsapp: str | None
    has_access: bool
    access_expires_at: datetime | None
    block_reason: str | None
    partner_id: UUID | None
    roles: list[Role]
    access: AccessSummaryResponse
    platform_ids: list[UUID] = Field(default_factory=list)
    coins: int | None = None
    created_at: datetime


class AdminUserListResponse(BaseModel):
    """GET /admin/users response."""

    users: list[AdminUserResponse]
    total: int
    limit: int
    offset: int


class ReplaceGrantsRequest(BaseModel):
    """PUT /admin/users/{id}/platforms request body."""

    platform_ids: list[UUID]


class ReplaceGrantsResponse(BaseModel):
    """Result of a grant replacement."""

    platform_ids: list[UUID]
    added: list[UUID]
    removed: list[UUID]


class AdjustAccessRequest(BaseModel):
    """POST /admin/users/{id}/access request body.

    Positive days extend, negative days remove (clamped to now),
    lifetime=true clears the expiration.
    """

    days: int | None = None
    lifetime: bool = False

    @field_validator("days")
    @classmethod
    def validate_days(cls, v: int | None) -> int | None:
        if v == 0:
            raise ValueError("days must not be zero")
        return v


class SetAccessFlagRequest(BaseModel):
    """PATCH /admin/users/{id}/access-flag request body."""

    has_access: bool
    block_reason: str | None = Field(None, max_length=500)


class SetRolesRequest(BaseModel):
    """PUT /admin/users/{id}/roles request body."""

    roles: list[Role] = Field(..., min_length=1)


class PurgeResponse(BaseModel):
    """Bulk deletion result."""

    deleted: int
    dry_run: bool = False


class MaintenanceModeRequest(BaseModel):
    """PUT /admin/site/maintenance request body."""

    enabled: bool
    message: str | None = Field(None, max_length=1000)


class MaintenanceModeResponse(BaseModel):
    """Maintenance mode state."""

    enabled: bool
    message: str | None = None


class AccessLogResponse(BaseModel):
    """One access log entry."""

    log_id: UUID
    profile_id: UUID
    ip_address: str | None
    city: str | None
    region: str | None
    country: str | None
    created_at: datetime


# ============================================================================
# Partner Models
# ============================================================================


class CreateClientRequest(BaseModel):
    """POST /partner/clients request body."""

    email: str = Field(..., min_length=3, max_length=255)
    name: str = Field(..., min_length=1, max_length=255)
    whatsapp: str | None = Field(None, max_length=32)
    plan_days: int = 30

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        return _normalize_email(v)

    @field_validator("plan_days")
    @classmethod
    def validate_plan_days(cls, v: int) -> int:
        if v not in PARTNER_PLAN_DAY_OPTIONS:
            raise ValueError(f"plan_days must be one of {PARTNER_PLAN_DAY_OPTIONS}")
        return v


class RenewClientRequest(BaseModel):
    """POST /partner/clients/{id}/renew request body."""

    plan_days: int

    @field_validator("plan_days")
    @classmethod
    def validate_plan_days(cls, v: int) -> int:
        if v not in PARTNER_PLAN_DAY_OPTIONS:
            raise ValueError(f"plan_days must be one of {PARTNER_PLAN_DAY_OPTIONS}")
        return v


class ToggleClientRequest(BaseModel):
    """PATCH /partner/clients/{id} request body."""

    has_access: bool


class PartnerClientResponse(BaseModel):
    """Client as seen by its partner - contact details masked."""

    profile_id: UUID
    name: str | None
    masked_email: str
    masked_whatsapp: str | None
    has_access: bool
    access_expires_at: datetime | None
    access: AccessSummaryResponse
    created_at: datetime


class PartnerClientListResponse(BaseModel):
    """GET /partner/clients response."""

    clients: list[PartnerClientResponse]
    total: int
    limit: int


# ============================================================================
# Health
# ============================================================================


class HealthResponse(BaseModel):
    """GET /health response."""

    status: Literal["healthy", "unhealthy"]
    database: Literal["connected", "disconnected"]
    timestamp: datetime
