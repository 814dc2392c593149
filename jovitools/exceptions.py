"""
Exception Classes - Strongly typed exception hierarchy.

NO DICTIONARIES - All exceptions have typed attributes.
"""

from uuid import UUID


class PortalError(Exception):
    """Base exception for all portal errors."""

    pass


class ValidationError(PortalError):
    """Raised when input is malformed or a required field is missing."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class InsufficientCoinsError(PortalError):
    """Raised when a billable action finds no coins left."""

    def __init__(self, remaining_coins: int) -> None:
        self.remaining_coins = remaining_coins
        super().__init__(f"Insufficient coins. Remaining: {remaining_coins}")


class ProfileNotFoundError(PortalError):
    """Raised when a profile doesn't exist."""

    def __init__(self, reference: UUID | str) -> None:
        self.reference = reference
        super().__init__(f"Profile not found: {reference}")


class PlatformNotFoundError(PortalError):
    """Raised when one or more platforms don't exist."""

    def __init__(self, platform_ids: list[UUID]) -> None:
        self.platform_ids = platform_ids
        super().__init__(f"Platform not found: {', '.join(str(p) for p in platform_ids)}")


class CredentialNotFoundError(PortalError):
    """Raised when a platform credential doesn't exist."""

    def __init__(self, credential_id: UUID) -> None:
        self.credential_id = credential_id
        super().__init__(f"Credential not found: {credential_id}")


class InviteError(PortalError):
    """Base for invite redemption refusals - carries a stable error code."""

    code: str = "INVITE_ERROR"

    def __init__(self, invite_code: str, message: str) -> None:
        self.invite_code = invite_code
        super().__init__(message)


class InviteNotFoundError(InviteError):
    """Raised when an invite code doesn't exist."""

    code = "NOT_FOUND"

    def __init__(self, invite_code: str) -> None:
        super().__init__(invite_code, f"Invite not found: {invite_code}")


class InviteExpiredError(InviteError):
    """Raised when an invite code is past its expiration."""

    code = "EXPIRED"

    def __init__(self, invite_code: str) -> None:
        super().__init__(invite_code, f"Invite expired: {invite_code}")


class InviteAlreadyUsedError(InviteError):
    """Raised when an invite code was already redeemed."""

    code = "ALREADY_USED"

    def __init__(self, invite_code: str) -> None:
        super().__init__(invite_code, f"Invite already used: {invite_code}")


class PartnerLimitError(PortalError):
    """Raised when a partner has reached the client limit."""

    def __init__(self, partner_id: UUID, limit: int) -> None:
        self.partner_id = partner_id
        self.limit = limit
        super().__init__(f"Partner {partner_id} reached the client limit of {limit}")


class ProfileConflictError(PortalError):
    """Raised when a profile with the same email already exists."""

    def __init__(self, email: str) -> None:
        self.email = email
        super().__init__(f"Profile already exists for {email}")


class WriteVerificationError(PortalError):
    """Raised when database write verification fails."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Write verification failed: {message}")


class DatabaseError(PortalError):
    """Raised when database operation fails unexpectedly."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Database error: {message}")


class GenerationProviderError(PortalError):
    """Raised when the image or video provider fails.

    status_code carries the upstream HTTP status so routes can pass
    429 (rate limited) and 402 (provider credits exhausted) through.
    """

    def __init__(self, message: str, status_code: int = 500) -> None:
        self.message = message
        self.status_code = status_code
        super().__init__(f"Generation provider error ({status_code}): {message}")


class WebhookVerificationError(PortalError):
    """Raised when webhook verification fails."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Webhook verification error: {message}")


class AuthenticationError(PortalError):
    """Raised when authentication fails (missing, expired or invalid token)."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Authentication failed: {message}")


class AuthorizationError(PortalError):
    """Raised when user lacks the required role."""

    def __init__(self, required_role: str) -> None:
        self.required_role = required_role
        super().__init__(f"Missing required role: {required_role}")


class AccessDeniedError(PortalError):
    """Raised when a user acts on a resource they do not own."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)
