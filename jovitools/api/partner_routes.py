"""
Partner API routes - sócios managing their own clients.

Admins may call these too and act on any client.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from jovitools.api.dependencies import CurrentUser, require_partner
from jovitools.api.errors import to_http_exception
from jovitools.api.routes import access_summary
from jovitools.db.models import Profile
from jovitools.db.session import get_read_db, get_write_db
from jovitools.exceptions import PortalError
from jovitools.models.api import (
    CreateClientRequest,
    PartnerClientListResponse,
    PartnerClientResponse,
    RenewClientRequest,
    ToggleClientRequest,
)
from jovitools.services.access_rules import mask_email, mask_whatsapp
from jovitools.services.partners import PartnerClientView, PartnerService

logger = get_logger(__name__)
router = APIRouter(prefix="/partner", tags=["partner"])


def _client_response(profile: Profile) -> PartnerClientResponse:
    return PartnerClientResponse(
        profile_id=profile.id,
        name=profile.name,
        masked_email=mask_email(profile.email),
        masked_whatsapp=mask_whatsapp(profile.whatsapp),
        has_access=profile.has_access,
        access_expires_at=profile.access_expires_at,
        access=access_summary(profile.has_access, profile.access_expires_at),
        created_at=profile.created_at,
    )


def _view_response(view: PartnerClientView) -> PartnerClientResponse:
    return PartnerClientResponse(
        profile_id=view.profile_id,
        name=view.name,
        masked_email=view.masked_email,
        masked_whatsapp=view.masked_whatsapp,
        has_access=view.has_access,
        access_expires_at=view.access_expires_at,
        access=access_summary(view.has_access, view.access_expires_at),
        created_at=view.created_at,
    )


@router.post("/clients", response_model=PartnerClientResponse, status_code=status.HTTP_201_CREATED)
async def create_client(
    request: CreateClientRequest,
    partner: CurrentUser = Depends(require_partner),
    db: AsyncSession = Depends(get_write_db),
) -> PartnerClientResponse:
    """
    Provision a client with the chosen plan and every platform.

    Returns 409 once the partner reaches the client limit or the email is taken.
    """
    try:
        profile = await PartnerService(db).create_client(
            partner_id=partner.profile.id,
            email=request.email,
            name=request.name,
            plan_days=request.plan_days,
            whatsapp=request.whatsapp,
        )
    except PortalError as exc:
        raise to_http_exception(exc, "create_client") from exc
    return _client_response(profile)


@router.get("/clients", response_model=PartnerClientListResponse)
async def list_clients(
    partner: CurrentUser = Depends(require_partner),
    db: AsyncSession = Depends(get_read_db),
) -> PartnerClientListResponse:
    """The caller's clients with contact details masked."""
    service = PartnerService(db)
    views = await service.list_clients(partner.profile.id)
    return PartnerClientListResponse(
        clients=[_view_response(view) for view in views],
        total=len(views),
        limit=service.max_clients,
    )


@router.patch("/clients/{client_id}", response_model=PartnerClientResponse)
async def toggle_client(
    client_id: UUID,
    request: ToggleClientRequest,
    partner: CurrentUser = Depends(require_partner),
    db: AsyncSession = Depends(get_write_db),
) -> PartnerClientResponse:
    try:
        profile = await PartnerService(db).set_client_access(
            partner.profile.id, client_id, request.has_access, is_admin=partner.is_admin
        )
    except PortalError as exc:
        raise to_http_exception(exc, "toggle_client") from exc
    return _client_response(profile)


@router.post("/clients/{client_id}/renew", response_model=PartnerClientResponse)
async def renew_client(
    client_id: UUID,
    request: RenewClientRequest,
    partner: CurrentUser = Depends(require_partner),
    db: AsyncSession = Depends(get_write_db),
) -> PartnerClientResponse:
    """Extend a client by a plan; expired clients restart from now."""
    try:
        profile = await PartnerService(db).renew_client(
            partner.profile.id, client_id, request.plan_days, is_admin=partner.is_admin
        )
    except PortalError as exc:
        raise to_http_exception(exc, "renew_client") from exc
    return _client_response(profile)
