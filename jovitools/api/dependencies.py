"""
FastAPI Dependencies - Authentication, authorization and provider clients.

NO DICTIONARIES - All dependencies return typed objects.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger
from structlog.contextvars import bind_contextvars

from jovitools.db.models import Profile
from jovitools.db.session import get_write_db
from jovitools.exceptions import AuthenticationError
from jovitools.models.api import Role
from jovitools.models.domain import AuthenticatedUser
from jovitools.services.identity import identity_verifier
from jovitools.services.image_provider import ImageGenerationProvider
from jovitools.services.profiles import ProfileService
from jovitools.services.video_poller import VideoJobPoller
from jovitools.services.video_provider import VideoGenerationProvider

logger = get_logger(__name__)

# Bearer token scheme for identity provider JWTs
bearer_scheme = HTTPBearer(auto_error=False)


@dataclass
class CurrentUser:
    """Authenticated user resolved to a profile and its roles."""

    identity: AuthenticatedUser
    profile: Profile
    roles: list[Role]

    @property
    def is_admin(self) -> bool:
        return Role.ADMIN in self.roles


# ============================================================================
# User JWT Authentication
# ============================================================================


async def get_authenticated_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> AuthenticatedUser:
    """
    Validate the identity provider token from the Authorization header.

    Raises:
        HTTPException 401 if no token or invalid token
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        return identity_verifier.verify(credentials.credentials)
    except AuthenticationError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=exc.message,
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc


async def get_current_user(
    identity: AuthenticatedUser = Depends(get_authenticated_user),
    db: AsyncSession = Depends(get_write_db),
) -> CurrentUser:
    """
    Resolve the caller's profile, creating or claiming it on first sign-in.

    Write operation - profile creation needs the primary database.
    """
    service = ProfileService(db)
    profile = await service.get_or_create_for_user(identity)
    roles = await service.get_roles(identity.user_id)
    # Later log lines in this request carry the caller
    bind_contextvars(profile_id=str(profile.id), user_id=identity.user_id)
    return CurrentUser(identity=identity, profile=profile, roles=roles)


def require_role(*allowed: Role) -> Callable[..., Awaitable[CurrentUser]]:
    """
    FastAPI dependency factory to check roles.

    Usage:
        @router.get("/partner/clients")
        async def list_clients(user: CurrentUser = Depends(require_role(Role.SOCIO, Role.ADMIN))):
            pass
    """

    async def role_checker(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        """Check the caller holds one of the allowed roles."""
        if not any(role in user.roles for role in allowed):
            logger.warning(
                "role_check_failed",
                user_id=user.identity.user_id,
                required=[r.value for r in allowed],
                roles=[r.value for r in user.roles],
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Missing required role: {' or '.join(r.value for r in allowed)}",
            )
        return user

    return role_checker


require_admin = require_role(Role.ADMIN)
require_partner = require_role(Role.SOCIO, Role.ADMIN)


# ============================================================================
# Provider clients (one per process)
# ============================================================================

_image_provider: ImageGenerationProvider | None = None
_video_provider: VideoGenerationProvider | None = None
_video_poller: VideoJobPoller | None = None


def get_image_provider() -> ImageGenerationProvider:
    global _image_provider
    if _image_provider is None:
        _image_provider = ImageGenerationProvider()
    return _image_provider


def get_video_provider() -> VideoGenerationProvider:
    global _video_provider
    if _video_provider is None:
        _video_provider = VideoGenerationProvider()
    return _video_provider


def get_video_poller() -> VideoJobPoller:
    """Server-side poller shared by /video-jobs/{uuid}/wait requests."""
    global _video_poller
    if _video_poller is None:
        _video_poller = VideoJobPoller(get_video_provider().fetch_status)
    return _video_poller


async def close_providers() -> None:
    """Cancel polling and close provider HTTP clients (app shutdown)."""
    global _image_provider, _video_provider, _video_poller
    if _video_poller is not None:
        await _video_poller.cancel_all()
    if _image_provider is not None:
        await _image_provider.close()
    if _video_provider is not None:
        await _video_provider.close()
    _image_provider = _video_provider = _video_poller = None
