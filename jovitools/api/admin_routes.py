"""
Admin API routes for managing the portal.

Protected by identity provider JWT authentication. Every route requires
the admin role.
"""

from datetime import UTC, datetime
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from jovitools.api.dependencies import CurrentUser, require_admin
from jovitools.api.errors import to_http_exception
from jovitools.api.routes import access_summary
from jovitools.db.models import Invite, Platform, PlatformCredential, Profile, UserRole
from jovitools.db.session import get_read_db, get_write_db
from jovitools.exceptions import PortalError
from jovitools.models.api import (
    AccessLogResponse,
    AdjustAccessRequest,
    AdminUserListResponse,
    AdminUserResponse,
    CreateInviteRequest,
    CreatePlatformRequest,
    CredentialRequest,
    CredentialResponse,
    InviteListResponse,
    InviteResponse,
    MaintenanceModeRequest,
    MaintenanceModeResponse,
    PlatformRequest,
    PlatformResponse,
    PurgeResponse,
    ReplaceGrantsRequest,
    ReplaceGrantsResponse,
    Role,
    SetAccessFlagRequest,
    SetRolesRequest,
)
from jovitools.services.access import AccessService
from jovitools.services.access_log import AccessLogService
from jovitools.services.coins import CoinLedgerService
from jovitools.services.grants import GrantService
from jovitools.services.invites import InviteService, effective_status
from jovitools.services.platforms import PlatformService
from jovitools.services.profiles import ProfileService
from jovitools.services.site_settings import SiteSettingsService

logger = get_logger(__name__)
router = APIRouter(prefix="/admin", tags=["admin"])


# ============================================================================
# Converters
# ============================================================================


def _platform_response(platform: Platform, credential_count: int = 0) -> PlatformResponse:
    return PlatformResponse(
        platform_id=platform.id,
        name=platform.name,
        category=platform.category,
        icon_url=platform.icon_url,
        access_url=platform.access_url,
        created_at=platform.created_at,
        credential_count=credential_count,
    )


def _credential_response(credential: PlatformCredential) -> CredentialResponse:
    return CredentialResponse(
        credential_id=credential.id,
        platform_id=credential.platform_id,
        login=credential.login,
        password=credential.password,
    )


def _user_response(
    profile: Profile,
    roles: list[Role],
    platform_ids: list[UUID] | None = None,
    coins: int | None = None,
) -> AdminUserResponse:
    return AdminUserResponse(
        profile_id=profile.id,
        user_id=profile.user_id,
        email=profile.email,
        name=profile.name,
        whatsapp=profile.whatsapp,
        has_access=profile.has_access,
        access_expires_at=profile.access_expires_at,
        block_reason=profile.block_reason,
        partner_id=profile.partner_id,
        roles=roles,
        access=access_summary(profile.has_access, profile.access_expires_at),
        platform_ids=platform_ids or [],
        coins=coins,
        created_at=profile.created_at,
    )


def _invite_response(invite: Invite, now: datetime) -> InviteResponse:
    return InviteResponse(
        invite_id=invite.id,
        code=invite.code,
        status=effective_status(invite, now),
        expires_at=invite.expires_at,
        access_days=invite.access_days,
        platform_ids=list(invite.platform_ids or []),
        recipient_name=invite.recipient_name,
        recipient_email=invite.recipient_email,
        created_by=invite.created_by,
        used_by=invite.used_by,
        used_at=invite.used_at,
        created_at=invite.created_at,
    )


async def _user_detail(db: AsyncSession, profile: Profile) -> AdminUserResponse:
    roles = await ProfileService(db).get_roles(profile.user_id)
    granted = await GrantService(db).granted_platform_ids(profile.id)
    coins = await CoinLedgerService(db).peek(profile.id)
    return _user_response(profile, roles, sorted(granted, key=str), coins)


# ============================================================================
# Platforms
# ============================================================================


@router.get("/platforms", response_model=list[PlatformResponse])
async def list_platforms(
    admin: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_read_db),
) -> list[PlatformResponse]:
    """All platforms with credential counts."""
    rows = await PlatformService(db).list_platforms()
    return [_platform_response(platform, count) for platform, count in rows]


@router.post("/platforms", response_model=PlatformResponse, status_code=status.HTTP_201_CREATED)
async def create_platform(
    request: CreatePlatformRequest,
    admin: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_write_db),
) -> PlatformResponse:
    """
    Create a platform.

    With distribute_to_active_users, every user with effective access is
    granted the new platform in the same transaction.
    """
    platform = await PlatformService(db).create_platform(
        name=request.name,
        category=request.category,
        icon_url=request.icon_url,
        access_url=request.access_url,
        distribute_to_active_users=request.distribute_to_active_users,
    )
    logger.info("admin_platform_created", admin=admin.identity.email, platform_id=str(platform.id))
    return _platform_response(platform)


@router.put("/platforms/{platform_id}", response_model=PlatformResponse)
async def update_platform(
    platform_id: UUID,
    request: PlatformRequest,
    admin: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_write_db),
) -> PlatformResponse:
    try:
        platform = await PlatformService(db).update_platform(
            platform_id,
            name=request.name,
            category=request.category,
            icon_url=request.icon_url,
            access_url=request.access_url,
        )
    except PortalError as exc:
        raise to_http_exception(exc, "update_platform") from exc
    return _platform_response(platform)


@router.delete("/platforms/{platform_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_platform(
    platform_id: UUID,
    admin: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_write_db),
) -> None:
    """Delete a platform with its credentials and grants."""
    try:
        await PlatformService(db).delete_platform(platform_id)
    except PortalError as exc:
        raise to_http_exception(exc, "delete_platform") from exc


# ============================================================================
# Credentials
# ============================================================================


@router.get("/platforms/{platform_id}/credentials", response_model=list[CredentialResponse])
async def list_credentials(
    platform_id: UUID,
    admin: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_read_db),
) -> list[CredentialResponse]:
    try:
        credentials = await PlatformService(db).list_credentials(platform_id)
    except PortalError as exc:
        raise to_http_exception(exc, "list_credentials") from exc
    return [_credential_response(c) for c in credentials]


@router.post(
    "/platforms/{platform_id}/credentials",
    response_model=CredentialResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_credential(
    platform_id: UUID,
    request: CredentialRequest,
    admin: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_write_db),
) -> CredentialResponse:
    try:
        credential = await PlatformService(db).add_credential(
            platform_id, request.login, request.password
        )
    except PortalError as exc:
        raise to_http_exception(exc, "add_credential") from exc
    return _credential_response(credential)


@router.put(
    "/platforms/{platform_id}/credentials/{credential_id}", response_model=CredentialResponse
)
async def update_credential(
    platform_id: UUID,
    credential_id: UUID,
    request: CredentialRequest,
    admin: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_write_db),
) -> CredentialResponse:
    try:
        credential = await PlatformService(db).update_credential(
            platform_id, credential_id, request.login, request.password
        )
    except PortalError as exc:
        raise to_http_exception(exc, "update_credential") from exc
    return _credential_response(credential)


@router.delete(
    "/platforms/{platform_id}/credentials/{credential_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def delete_credential(
    platform_id: UUID,
    credential_id: UUID,
    admin: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_write_db),
) -> None:
    try:
        await PlatformService(db).delete_credential(platform_id, credential_id)
    except PortalError as exc:
        raise to_http_exception(exc, "delete_credential") from exc


# ============================================================================
# Users
# ============================================================================


@router.get("/users", response_model=AdminUserListResponse)
async def list_users(
    search: str | None = Query(None, description="Filter by email or name"),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    admin: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_read_db),
) -> AdminUserListResponse:
    """Users newest first, with roles and access status."""
    profiles, total = await ProfileService(db).search(search, limit=limit, offset=offset)

    user_ids = [p.user_id for p in profiles if p.user_id is not None]
    roles_by_user: dict[str, list[Role]] = {}
    if user_ids:
        result = await db.execute(
            select(UserRole.user_id, UserRole.role).where(UserRole.user_id.in_(user_ids))
        )
        for user_id, role in result.all():
            roles_by_user.setdefault(user_id, []).append(Role(role))

    return AdminUserListResponse(
        users=[
            _user_response(p, roles_by_user.get(p.user_id or "", [])) for p in profiles
        ],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.post("/users/purge-no-access", response_model=PurgeResponse)
async def purge_users_without_access(
    dry_run: bool = Query(False),
    admin: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_write_db),
) -> PurgeResponse:
    """Delete every user whose access flag is off. Admins and partners are kept."""
    deleted = await AccessService(db).purge_without_access(dry_run=dry_run)
    logger.warning(
        "admin_purge_no_access", admin=admin.identity.email, count=deleted, dry_run=dry_run
    )
    return PurgeResponse(deleted=deleted, dry_run=dry_run)


@router.post("/users/purge-expired", response_model=PurgeResponse)
async def purge_expired_users(
    dry_run: bool = Query(False),
    admin: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_write_db),
) -> PurgeResponse:
    """Delete every user whose access has expired. Admins and partners are kept."""
    deleted = await AccessService(db).purge_expired(dry_run=dry_run)
    logger.warning(
        "admin_purge_expired", admin=admin.identity.email, count=deleted, dry_run=dry_run
    )
    return PurgeResponse(deleted=deleted, dry_run=dry_run)


@router.get("/users/{profile_id}", response_model=AdminUserResponse)
async def get_user(
    profile_id: UUID,
    admin: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_read_db),
) -> AdminUserResponse:
    """One user with grants and coin balance."""
    try:
        profile = await ProfileService(db).get(profile_id)
    except PortalError as exc:
        raise to_http_exception(exc, "get_user") from exc
    return await _user_detail(db, profile)


@router.put("/users/{profile_id}/platforms", response_model=ReplaceGrantsResponse)
async def replace_user_platforms(
    profile_id: UUID,
    request: ReplaceGrantsRequest,
    admin: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_write_db),
) -> ReplaceGrantsResponse:
    """Make the user's grant set exactly the given platforms (one transaction)."""
    try:
        diff = await GrantService(db).replace_grants(profile_id, request.platform_ids)
    except PortalError as exc:
        raise to_http_exception(exc, "replace_grants") from exc

    return ReplaceGrantsResponse(
        platform_ids=sorted(set(request.platform_ids), key=str),
        added=sorted(diff.added, key=str),
        removed=sorted(diff.removed, key=str),
    )


@router.post("/users/{profile_id}/access", response_model=AdminUserResponse)
async def adjust_user_access(
    profile_id: UUID,
    request: AdjustAccessRequest,
    admin: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_write_db),
) -> AdminUserResponse:
    """Add days, remove days (clamped to now) or grant lifetime access."""
    try:
        profile = await AccessService(db).adjust(
            profile_id, days=request.days, lifetime=request.lifetime
        )
    except PortalError as exc:
        raise to_http_exception(exc, "adjust_access") from exc

    logger.info(
        "admin_access_adjusted",
        admin=admin.identity.email,
        profile_id=str(profile_id),
        days=request.days,
        lifetime=request.lifetime,
    )
    return await _user_detail(db, profile)


@router.patch("/users/{profile_id}/access-flag", response_model=AdminUserResponse)
async def set_user_access_flag(
    profile_id: UUID,
    request: SetAccessFlagRequest,
    admin: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_write_db),
) -> AdminUserResponse:
    """Open or close the access gate; closing may carry a block reason."""
    try:
        profile = await AccessService(db).set_access_flag(
            profile_id, request.has_access, block_reason=request.block_reason
        )
    except PortalError as exc:
        raise to_http_exception(exc, "set_access_flag") from exc
    return await _user_detail(db, profile)


@router.put("/users/{profile_id}/roles", response_model=AdminUserResponse)
async def set_user_roles(
    profile_id: UUID,
    request: SetRolesRequest,
    admin: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_write_db),
) -> AdminUserResponse:
    service = ProfileService(db)
    try:
        await service.set_roles(profile_id, request.roles)
        profile = await service.get(profile_id)
    except PortalError as exc:
        raise to_http_exception(exc, "set_roles") from exc

    logger.info(
        "admin_roles_set",
        admin=admin.identity.email,
        profile_id=str(profile_id),
        roles=[r.value for r in request.roles],
    )
    return await _user_detail(db, profile)


@router.delete("/users/{profile_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(
    profile_id: UUID,
    admin: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_write_db),
) -> None:
    try:
        await ProfileService(db).delete(profile_id)
    except PortalError as exc:
        raise to_http_exception(exc, "delete_user") from exc
    logger.warning("admin_user_deleted", admin=admin.identity.email, profile_id=str(profile_id))


# ============================================================================
# Invites
# ============================================================================


@router.post("/invites", response_model=InviteResponse, status_code=status.HTTP_201_CREATED)
async def create_invite(
    request: CreateInviteRequest,
    admin: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_write_db),
) -> InviteResponse:
    try:
        invite = await InviteService(db).create(
            platform_ids=request.platform_ids,
            access_days=request.access_days,
            expires_in_days=request.expires_in_days,
            created_by=admin.profile.id,
            recipient_name=request.recipient_name,
            recipient_email=request.recipient_email,
        )
    except PortalError as exc:
        raise to_http_exception(exc, "create_invite") from exc
    return _invite_response(invite, datetime.now(UTC))


@router.get("/invites", response_model=InviteListResponse)
async def list_invites(
    search: str | None = Query(None, description="Filter by code, recipient name or email"),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    admin: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_read_db),
) -> InviteListResponse:
    """Invites newest first; active codes past expiry are shown as expired."""
    invites, total = await InviteService(db).list_invites(search, limit=limit, offset=offset)
    now = datetime.now(UTC)
    return InviteListResponse(
        invites=[_invite_response(invite, now) for invite in invites], total=total
    )


@router.delete("/invites/{invite_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_invite(
    invite_id: UUID,
    admin: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_write_db),
) -> None:
    try:
        await InviteService(db).delete(invite_id)
    except PortalError as exc:
        raise to_http_exception(exc, "delete_invite") from exc


# ============================================================================
# Site settings & access logs
# ============================================================================


@router.get("/site/maintenance", response_model=MaintenanceModeResponse)
async def get_maintenance_mode(
    admin: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_read_db),
) -> MaintenanceModeResponse:
    mode = await SiteSettingsService(db).get_maintenance()
    return MaintenanceModeResponse(enabled=mode.enabled, message=mode.message)


@router.put("/site/maintenance", response_model=MaintenanceModeResponse)
async def set_maintenance_mode(
    request: MaintenanceModeRequest,
    admin: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_write_db),
) -> MaintenanceModeResponse:
    mode = await SiteSettingsService(db).set_maintenance(request.enabled, request.message)
    logger.warning("admin_maintenance_mode_set", admin=admin.identity.email, enabled=mode.enabled)
    return MaintenanceModeResponse(enabled=mode.enabled, message=mode.message)


@router.get("/access-logs", response_model=list[AccessLogResponse])
async def list_access_logs(
    profile_id: UUID | None = Query(None),
    limit: int = Query(100, ge=1, le=1000),
    admin: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_read_db),
) -> list[AccessLogResponse]:
    """Recent sign-ins, optionally for one user."""
    entries = await AccessLogService(db).list_recent(profile_id=profile_id, limit=limit)
    return [
        AccessLogResponse(
            log_id=entry.id,
            profile_id=entry.profile_id,
            ip_address=str(entry.ip_address) if entry.ip_address is not None else None,
            city=entry.city,
            region=entry.region,
            country=entry.country,
            created_at=entry.created_at,
        )
        for entry in entries
    ]
