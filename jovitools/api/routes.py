"""
API Routes - FastAPI endpoints for portal users, AI generation and payment webhooks.

NO DICTIONARIES - All requests/responses use Pydantic models.
"""

from datetime import UTC, datetime

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from jovitools.api.dependencies import (
    CurrentUser,
    get_current_user,
    get_image_provider,
    get_video_poller,
    get_video_provider,
)
from jovitools.api.errors import to_http_exception
from jovitools.config import settings
from jovitools.db.session import get_read_db, get_write_db
from jovitools.exceptions import (
    GenerationProviderError,
    InsufficientCoinsError,
    PortalError,
    ValidationError,
)
from jovitools.models.api import (
    AccessSummaryResponse,
    CoinBalanceResponse,
    CoinDeductionResponse,
    CredentialResponse,
    GenerateImageRequest,
    GenerateImageResponse,
    GenerateVideoRequest,
    GenerateVideoResponse,
    HealthResponse,
    InviteLookupResponse,
    InviteRedeemResponse,
    MaintenanceModeResponse,
    ProfileResponse,
    UserPlatformListResponse,
    UserPlatformResponse,
    VideoStatusResponse,
    WebhookResponse,
)
from jovitools.models.domain import AccessState, VideoJobStatus
from jovitools.services.access_log import AccessLogService, extract_client_ip
from jovitools.services.access_rules import describe_access
from jovitools.services.cakto_provider import CaktoProvider
from jovitools.services.coins import CoinLedgerService
from jovitools.services.image_provider import ImageGenerationProvider
from jovitools.services.invites import InviteService, effective_status
from jovitools.services.payment_webhook import PaymentWebhookService
from jovitools.services.platforms import PlatformService
from jovitools.services.site_settings import SiteSettingsService
from jovitools.services.video_poller import VideoJobPoller
from jovitools.services.video_provider import VideoGenerationProvider, status_message

logger = get_logger(__name__)
router = APIRouter()


def access_summary(has_access: bool, access_expires_at: datetime | None) -> AccessSummaryResponse:
    """Display status for an access record at the current time."""
    now = datetime.now(UTC)
    state = AccessState(has_access=has_access, access_expires_at=access_expires_at)
    summary = describe_access(state, now)
    return AccessSummaryResponse(
        effective_access=state.is_effective(now),
        status=summary.status,
        days_remaining=summary.days_remaining,
        expiring_soon=summary.expiring_soon,
    )


def video_status_response(job: VideoJobStatus) -> VideoStatusResponse:
    return VideoStatusResponse(
        uuid=job.job_id,
        status=job.state,
        status_percentage=job.percentage,
        status_message=status_message(job),
        video_url=job.video_url,
        error_message=job.error_message,
    )


# =============================================================================
# Profile
# =============================================================================


@router.get("/v1/me", response_model=ProfileResponse)
async def get_me(user: CurrentUser = Depends(get_current_user)) -> ProfileResponse:
    """
    Caller's profile, access status and roles.

    Creates the profile (or claims a provisioned one) on first sign-in.
    """
    profile = user.profile
    return ProfileResponse(
        profile_id=profile.id,
        email=profile.email,
        name=profile.name,
        whatsapp=profile.whatsapp,
        has_access=profile.has_access,
        access_expires_at=profile.access_expires_at,
        block_reason=profile.block_reason,
        roles=user.roles,
        access=access_summary(profile.has_access, profile.access_expires_at),
    )


@router.get("/v1/me/platforms", response_model=UserPlatformListResponse)
async def get_my_platforms(
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_read_db),
) -> UserPlatformListResponse:
    """
    Every platform with a granted flag.

    Credentials are only returned for granted platforms while access is effective.
    Read-only operation - uses read replica.
    """
    effective, views = await PlatformService(db).list_for_profile(user.profile)
    return UserPlatformListResponse(
        effective_access=effective,
        platforms=[
            UserPlatformResponse(
                platform_id=view.platform.id,
                name=view.platform.name,
                category=view.platform.category,
                icon_url=view.platform.icon_url,
                access_url=view.platform.access_url,
                granted=view.granted,
                credentials=[
                    CredentialResponse(
                        credential_id=c.id,
                        platform_id=c.platform_id,
                        login=c.login,
                        password=c.password,
                    )
                    for c in view.credentials
                ],
            )
            for view in views
        ],
    )


# =============================================================================
# Coins
# =============================================================================


@router.get("/v1/coins", response_model=CoinBalanceResponse)
async def get_coins(
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_write_db),
) -> CoinBalanceResponse:
    """
    Current coin balance, restored to the ceiling when the reset period has passed.

    Write operation - may initialise or reset the ledger.
    """
    service = CoinLedgerService(db)
    coins = await service.check_and_reset_if_due(user.profile.id)
    return CoinBalanceResponse(
        coins=coins,
        ceiling=service.ceiling,
        low=service.is_low(coins),
        critical=service.is_critical(coins),
    )


@router.post("/v1/coins/deduct", response_model=CoinDeductionResponse)
async def deduct_coin(
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_write_db),
) -> CoinDeductionResponse:
    """
    Charge one coin for a billable chat action.

    Returns 402 with remaining_coins when the balance is empty.
    """
    result = await CoinLedgerService(db).deduct_one(user.profile.id)
    if not result.success:
        raise to_http_exception(InsufficientCoinsError(result.remaining_coins))
    return CoinDeductionResponse(
        success=True, remaining_coins=result.remaining_coins, message=result.message
    )


# =============================================================================
# Invites
# =============================================================================


@router.get("/v1/invites/{code}", response_model=InviteLookupResponse)
async def lookup_invite(
    code: str,
    db: AsyncSession = Depends(get_read_db),
) -> InviteLookupResponse:
    """
    Public invite lookup for the signup page.

    Past-expiry codes are shown as expired even before the stored status changes.
    """
    try:
        invite = await InviteService(db).lookup(code)
    except PortalError as exc:
        raise to_http_exception(exc) from exc

    return InviteLookupResponse(
        code=invite.code,
        status=effective_status(invite, datetime.now(UTC)),
        expires_at=invite.expires_at,
        access_days=invite.access_days,
        recipient_name=invite.recipient_name,
        recipient_email=invite.recipient_email,
    )


@router.post("/v1/invites/{code}/redeem", response_model=InviteRedeemResponse)
async def redeem_invite(
    code: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_write_db),
) -> InviteRedeemResponse:
    """
    Redeem an invite for the caller.

    404 NOT_FOUND, 409 EXPIRED or 409 ALREADY_USED on refusal.
    """
    try:
        result = await InviteService(db).redeem(code, user.profile.id)
    except PortalError as exc:
        raise to_http_exception(exc, "invite_redemption") from exc

    return InviteRedeemResponse(
        code=result.code,
        access_days_granted=result.access_days_granted,
        access_expires_at=result.access_expires_at,
        platform_ids=list(result.platform_ids),
    )


# =============================================================================
# Access log & site
# =============================================================================


@router.post("/v1/access-log", status_code=status.HTTP_204_NO_CONTENT)
async def log_access(
    request: Request,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_write_db),
) -> None:
    """Record a sign-in with the client IP and best-effort location."""
    ip = extract_client_ip(request.headers, request.client.host if request.client else None)
    await AccessLogService(db).record(user.profile.id, ip)


@router.get("/v1/site/maintenance", response_model=MaintenanceModeResponse)
async def get_maintenance_mode(
    db: AsyncSession = Depends(get_read_db),
) -> MaintenanceModeResponse:
    """Public maintenance flag."""
    mode = await SiteSettingsService(db).get_maintenance()
    return MaintenanceModeResponse(enabled=mode.enabled, message=mode.message)


# =============================================================================
# AI generation
# =============================================================================


async def _charge_coin(db: AsyncSession, user: CurrentUser) -> int:
    """Charge one coin or raise 402."""
    result = await CoinLedgerService(db).deduct_one(user.profile.id)
    if not result.success:
        logger.info("generation_refused_no_coins", profile_id=str(user.profile.id))
        raise to_http_exception(InsufficientCoinsError(result.remaining_coins))
    return result.remaining_coins


async def _refund_coin(db: AsyncSession, user: CurrentUser, kind: str) -> None:
    await CoinLedgerService(db).refund_one(user.profile.id)
    logger.info("generation_coin_refunded", profile_id=str(user.profile.id), kind=kind)


@router.post("/generate-image", response_model=GenerateImageResponse)
async def generate_image(
    request: GenerateImageRequest,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_write_db),
    provider: ImageGenerationProvider = Depends(get_image_provider),
) -> GenerateImageResponse:
    """
    Enhance the prompt and generate an image for one coin.

    Upstream 429/402 pass through; the coin is refunded on provider failure.
    """
    if not request.prompt.strip():
        raise to_http_exception(ValidationError("Prompt é obrigatório"))

    remaining = await _charge_coin(db, user)
    try:
        image = await provider.generate(request.prompt, request.aspect_ratio)
    except GenerationProviderError as exc:
        await _refund_coin(db, user, "image")
        raise to_http_exception(exc, "generate_image") from exc

    return GenerateImageResponse(
        image_url=image.image_url,
        message=image.message,
        enhanced_prompt=image.enhanced_prompt,
        remaining_coins=remaining,
    )


@router.post("/generate-video", response_model=GenerateVideoResponse)
async def generate_video(
    request: GenerateVideoRequest,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_write_db),
    provider: VideoGenerationProvider = Depends(get_video_provider),
) -> GenerateVideoResponse:
    """
    Submit a video job for one coin.

    Poll /check-video-status/{uuid} or wait on /video-jobs/{uuid}/wait.
    """
    if not request.prompt.strip():
        raise to_http_exception(ValidationError("Prompt is required"))

    remaining = await _charge_coin(db, user)
    try:
        job = await provider.submit(request.prompt, request.aspect_ratio)
    except GenerationProviderError as exc:
        await _refund_coin(db, user, "video")
        raise to_http_exception(exc, "generate_video") from exc

    return GenerateVideoResponse(
        success=True,
        uuid=job.job_id,
        status=job.status,
        message=job.message,
        estimated_credit=job.estimated_credit,
        remaining_coins=remaining,
    )


@router.get("/check-video-status/{uuid}", response_model=VideoStatusResponse)
async def check_video_status(
    uuid: str,
    user: CurrentUser = Depends(get_current_user),
    provider: VideoGenerationProvider = Depends(get_video_provider),
) -> VideoStatusResponse:
    """One status snapshot for a video job."""
    try:
        job = await provider.fetch_status(uuid)
    except PortalError as exc:
        raise to_http_exception(exc, "check_video_status") from exc
    return video_status_response(job)


@router.get("/video-jobs/{uuid}/wait", response_model=VideoStatusResponse)
async def wait_for_video(
    uuid: str,
    timeout: float | None = None,
    user: CurrentUser = Depends(get_current_user),
    poller: VideoJobPoller = Depends(get_video_poller),
    provider: VideoGenerationProvider = Depends(get_video_provider),
) -> VideoStatusResponse:
    """
    Poll server-side until the job completes or fails.

    When the wait times out the latest snapshot is returned instead.
    """
    limit = min(timeout or settings.video_wait_timeout_seconds, settings.video_wait_timeout_seconds)
    try:
        job = await poller.wait(uuid, timeout=limit)
    except TimeoutError:
        logger.info("video_job_wait_timed_out", job_id=uuid, timeout=limit)
        try:
            job = await provider.fetch_status(uuid)
        except PortalError as exc:
            raise to_http_exception(exc, "wait_for_video") from exc
    return video_status_response(job)


# =============================================================================
# Payment webhook
# =============================================================================


@router.post("/cakto-webhook", response_model=WebhookResponse)
async def cakto_webhook(
    request: Request,
    db: AsyncSession = Depends(get_write_db),
) -> WebhookResponse:
    """
    Handle Cakto subscription events.

    401 on secret mismatch, 400 without a customer email. Unknown customers
    and unhandled events are acknowledged with 200.
    """
    provider = CaktoProvider(webhook_secret=settings.cakto_webhook_secret)
    payload = await request.body()

    try:
        event = await provider.verify_webhook(payload)
    except PortalError as exc:
        raise to_http_exception(exc, "cakto_webhook") from exc

    try:
        outcome = await PaymentWebhookService(db).handle(event)
    except PortalError as exc:
        raise to_http_exception(exc, "cakto_webhook") from exc

    return WebhookResponse(success=True, message=outcome.message, event=event.event_type)


# =============================================================================
# Health
# =============================================================================


@router.get("/health", response_model=HealthResponse)
async def health_check(db: AsyncSession = Depends(get_read_db)) -> HealthResponse:
    """
    Health check for load balancer.

    Verifies database connectivity.
    """
    try:
        await db.execute(text("SELECT 1"))

        return HealthResponse(
            status="healthy",
            database="connected",
            timestamp=datetime.now(UTC),
        )

    except Exception as exc:
        logger.warning("health_check_database_failed", error=str(exc))
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={
                "status": "unhealthy",
                "database": "disconnected",
                "timestamp": datetime.now(UTC).isoformat(),
            },
        ) from exc
