"""
Password hashing and bearer token issuance/verification.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt
import structlog
from passlib.context import CryptContext

from api.errors import CorruptCredential, ExpiredToken, InvalidToken

logger = structlog.get_logger(__name__)

# pbkdf2 is salted per call and its round count is the adaptive cost factor;
# the passlib default round count is used.
_pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

USER_ID_CLAIM = "userId"


def hash_password(password: str) -> str:
    """
    Hash a plaintext password with a fresh random salt.

    Args:
        password: Plaintext password

    Returns:
        Self-describing digest (algorithm, rounds, salt and checksum)
    """
    if not password:
        raise ValueError("password must not be blank")
    return _pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    """
    Check a plaintext password against a stored digest.

    Returns False on mismatch. Raises CorruptCredential when the stored
    digest is not a hash this context can read.
    """
    if not password:
        return False
    try:
        return _pwd_context.verify(password, password_hash)
    except (ValueError, TypeError) as e:
        logger.error("Stored password digest is unreadable", error=str(e))
        raise CorruptCredential() from e


class TokenService:
    """
    Issues and verifies signed, time-limited bearer tokens.

    The signing secret is captured at construction and never changes, so a
    single instance is shared by every request.
    """

    def __init__(self, secret: str, lifetime: timedelta = timedelta(hours=24), algorithm: str = "HS256"):
        if not secret:
            raise ValueError("jwt secret must not be blank")
        self._secret = secret
        self._lifetime = lifetime
        self._algorithm = algorithm

    @property
    def lifetime(self) -> timedelta:
        return self._lifetime

    def issue(self, user_id: str, now: Optional[datetime] = None) -> str:
        """
        Create a token for a user.

        Args:
            user_id: Identifier of the authenticated user
            now: Issuance time, defaults to the current UTC time

        Returns:
            Encoded JWT carrying ``userId``, ``iat`` and ``exp``
        """
        issued_at = now or datetime.now(timezone.utc)
        payload: Dict[str, Any] = {
            USER_ID_CLAIM: str(user_id),
            "iat": int(issued_at.timestamp()),
            "exp": int((issued_at + self._lifetime).timestamp()),
        }
        return jwt.encode(payload, self._secret, algorithm=self._algorithm)

    def verify(self, token: str, now: Optional[datetime] = None) -> str:
        """
        Validate a token and return the user id it carries.

        Args:
            token: Encoded JWT
            now: Verification time, defaults to the current UTC time

        Raises:
            ExpiredToken: The embedded expiration has passed
            InvalidToken: Bad signature, malformed token or missing claim
        """
        if not token:
            raise InvalidToken()

        try:
            # Expiry is checked below against ``now`` so tests can move the clock.
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                options={"require": ["exp"], "verify_exp": False, "verify_iat": False},
            )
        except jwt.InvalidTokenError as e:
            raise InvalidToken() from e

        try:
            expires_at = int(payload["exp"])
        except (TypeError, ValueError) as e:
            raise InvalidToken() from e

        current = now or datetime.now(timezone.utc)
        if current.timestamp() > expires_at:
            raise ExpiredToken()

        user_id = payload.get(USER_ID_CLAIM)
        if not user_id or not isinstance(user_id, str):
            raise InvalidToken()
        return user_id
