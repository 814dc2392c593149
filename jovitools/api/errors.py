"""
Error Mapping - domain exceptions to HTTP responses.

Routes catch PortalError and re-raise the result of to_http_exception()
with `from exc` so the original failure stays chained in logs.
"""

from fastapi import HTTPException, status
from structlog import get_logger

from jovitools.exceptions import (
    AccessDeniedError,
    AuthenticationError,
    AuthorizationError,
    CredentialNotFoundError,
    GenerationProviderError,
    InsufficientCoinsError,
    InviteError,
    InviteNotFoundError,
    PartnerLimitError,
    PlatformNotFoundError,
    PortalError,
    ProfileConflictError,
    ProfileNotFoundError,
    ValidationError,
    WebhookVerificationError,
)
from jovitools.observability.metrics import metrics

logger = get_logger(__name__)

_NOT_FOUND = (ProfileNotFoundError, PlatformNotFoundError, CredentialNotFoundError)
_CONFLICT = (PartnerLimitError, ProfileConflictError)


def to_http_exception(exc: PortalError, operation: str = "request") -> HTTPException:
    """Map a domain exception to the HTTPException the client sees."""
    if isinstance(exc, ValidationError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.message)

    if isinstance(exc, AuthenticationError | WebhookVerificationError):
        return HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=exc.message,
            headers=(
                {"WWW-Authenticate": "Bearer"} if isinstance(exc, AuthenticationError) else None
            ),
        )

    if isinstance(exc, InsufficientCoinsError):
        return HTTPException(
            status_code=status.HTTP_402_PAYMENT_REQUIRED,
            detail={
                "error": "Moedas insuficientes",
                "remaining_coins": exc.remaining_coins,
            },
        )

    if isinstance(exc, AuthorizationError | AccessDeniedError):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))

    if isinstance(exc, InviteError):
        return HTTPException(
            status_code=(
                status.HTTP_404_NOT_FOUND
                if isinstance(exc, InviteNotFoundError)
                else status.HTTP_409_CONFLICT
            ),
            detail={"success": False, "error": exc.code, "message": str(exc)},
        )

    if isinstance(exc, _NOT_FOUND):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))

    if isinstance(exc, _CONFLICT):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))

    if isinstance(exc, GenerationProviderError):
        code = exc.status_code if exc.status_code in (402, 429) else 500
        return HTTPException(status_code=code, detail=exc.message)

    # DatabaseError, WriteVerificationError and anything unforeseen
    logger.error("unhandled_portal_error", operation=operation, error=str(exc), exc_info=exc)
    metrics.record_error(type(exc).__name__, operation)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="Internal server error",
    )
