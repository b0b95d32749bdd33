"""
Bearer authentication for the FastAPI API.

``get_current_user`` turns an ``Authorization: Bearer <token>`` header into
the stored user record; ``require_admin`` additionally demands the admin role.
"""

from typing import Dict, Optional

import structlog
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from api.access import Identity, Role, is_admin
from api.database import CredentialStore
from api.deps import get_credential_store, get_token_service
from api.errors import Forbidden, MissingCredentials, UnauthorizedAccess
from api.security import TokenService

logger = structlog.get_logger(__name__)

# auto_error is off so a missing header maps onto MissingCredentials (401)
# instead of FastAPI's default 403.
security = HTTPBearer(auto_error=False, description="JWT issued by /api/auth/login or /api/auth/register")


def identity_of(user: Dict) -> Identity:
    """Build the access-check identity from a stored user record."""
    try:
        role = Role(user.get("role", Role.USER.value))
    except ValueError:
        role = Role.USER
    return Identity(id=str(user["id"]), role=role)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    tokens: TokenService = Depends(get_token_service),
    users: CredentialStore = Depends(get_credential_store),
) -> Dict:
    """
    Authenticate a request.

    Args:
        credentials: Parsed bearer credentials, None when the header is absent or not Bearer
        tokens: Token verifier
        users: Credential store used to resolve the token subject

    Returns:
        The stored user record (including role)

    Raises:
        MissingCredentials: No usable Authorization header
        InvalidToken / ExpiredToken: Token rejected by the verifier
        UnauthorizedAccess: Token subject no longer exists
    """
    if credentials is None or not credentials.credentials:
        raise MissingCredentials()

    user_id = tokens.verify(credentials.credentials)

    user = await users.find_by_id(user_id)
    if user is None:
        logger.warning("Token subject not found", user_id=user_id)
        raise UnauthorizedAccess("Access denied. Invalid token.")

    return user


async def require_admin(user: Dict = Depends(get_current_user)) -> Dict:
    """Reject any authenticated user whose role is not admin."""
    if not is_admin(identity_of(user)):
        logger.info("Admin access denied", user_id=user["id"])
        raise Forbidden("Access denied. Admin role required.")
    return user
