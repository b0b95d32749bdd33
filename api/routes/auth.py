"""
Registration, login and profile endpoints.
"""

from typing import Dict

import structlog
from fastapi import APIRouter, Depends, status
from fastapi.concurrency import run_in_threadpool

from api.access import Role, can_update_profile
from api.auth import get_current_user, identity_of
from api.database import CredentialStore, DuplicateUserError
from api.deps import get_credential_store, get_token_service
from api.errors import APIError, Conflict, Forbidden, InternalFailure, UnauthorizedAccess
from api.models import (
    AuthResponse, ErrorResponse, LoginRequest, ProfileResponse,
    ProfileUpdateRequest, ProfileUpdateResponse, RegisterRequest, UserResponse
)
from api.security import TokenService, hash_password, verify_password

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Authentication"])

_error_responses = {
    400: {"model": ErrorResponse, "description": "Validation error"},
    401: {"model": ErrorResponse, "description": "Unauthorized"},
    409: {"model": ErrorResponse, "description": "User already exists"},
    500: {"model": ErrorResponse, "description": "Server error"},
}


@router.post(
    "/register",
    response_model=AuthResponse,
    status_code=status.HTTP_201_CREATED,
    responses={k: _error_responses[k] for k in (400, 409, 500)},
)
async def register(
    payload: RegisterRequest,
    users: CredentialStore = Depends(get_credential_store),
    tokens: TokenService = Depends(get_token_service),
):
    """
    Register a new user.

    - **username**: 3-30 characters, letters, numbers and underscores only
    - **email**: valid email address
    - **password**: at least 6 characters
    """
    try:
        existing = await users.find_by_email_or_username(payload.email, payload.username)
        if existing:
            logger.info("Registration rejected, user exists", username=payload.username)
            raise Conflict()

        password_hash = await run_in_threadpool(hash_password, payload.password)
        try:
            user = await users.create({
                "username": payload.username,
                "email": payload.email,
                "password": password_hash,
                "role": Role.USER.value,
            })
        except DuplicateUserError:
            # Lost a race with a concurrent registration
            raise Conflict()

        token = tokens.issue(user["id"])
        logger.info("User registered", user_id=user["id"], username=user["username"])

        return AuthResponse(
            message="User registered successfully",
            user=UserResponse(**user),
            token=token,
        )

    except APIError:
        raise
    except Exception as e:
        logger.error("Registration failed", error=str(e), exc_info=True)
        raise InternalFailure("Registration failed")


@router.post(
    "/login",
    response_model=AuthResponse,
    responses={k: _error_responses[k] for k in (400, 401, 500)},
)
async def login(
    payload: LoginRequest,
    users: CredentialStore = Depends(get_credential_store),
    tokens: TokenService = Depends(get_token_service),
):
    """Exchange email and password for a bearer token."""
    try:
        user = await users.find_by_email(payload.email)
        if user is None:
            logger.info("Login failed, unknown email")
            raise UnauthorizedAccess("Invalid email or password")

        valid = await run_in_threadpool(verify_password, payload.password, user.get("password", ""))
        if not valid:
            logger.info("Login failed, wrong password", user_id=user["id"])
            raise UnauthorizedAccess("Invalid email or password")

        token = tokens.issue(user["id"])
        logger.info("User logged in", user_id=user["id"])

        return AuthResponse(
            message="Login successful",
            user=UserResponse(**user),
            token=token,
        )

    except APIError:
        raise
    except Exception as e:
        logger.error("Login failed", error=str(e), exc_info=True)
        raise InternalFailure("Login failed")


@router.get(
    "/profile",
    response_model=ProfileResponse,
    responses={k: _error_responses[k] for k in (401, 500)},
)
async def get_profile(user: Dict = Depends(get_current_user)):
    """Get the authenticated user's profile."""
    return ProfileResponse(user=UserResponse(**user))


@router.put(
    "/profile",
    response_model=ProfileUpdateResponse,
    responses=_error_responses,
)
async def update_profile(
    payload: ProfileUpdateRequest,
    user: Dict = Depends(get_current_user),
    users: CredentialStore = Depends(get_credential_store),
):
    """
    Update the authenticated user's username and/or email.

    Role and password cannot be changed here.
    """
    decision = can_update_profile(identity_of(user), user["id"])
    if not decision:
        raise Forbidden(decision.reason)

    updates = {k: v for k, v in payload.model_dump(exclude_none=True).items() if v}

    try:
        if updates:
            clash = await users.find_by_email_or_username(updates.get("email"), updates.get("username"))
            if clash and clash["id"] != user["id"]:
                raise Conflict()

            try:
                updated = await users.update_fields(user["id"], updates)
            except DuplicateUserError:
                raise Conflict()
            if updated is None:
                raise UnauthorizedAccess("Access denied. Invalid token.")
        else:
            updated = user

        logger.info("Profile updated", user_id=user["id"], fields=sorted(updates))
        return ProfileUpdateResponse(
            message="Profile updated successfully",
            user=UserResponse(**updated),
        )

    except APIError:
        raise
    except Exception as e:
        logger.error("Profile update failed", user_id=user["id"], error=str(e), exc_info=True)
        raise InternalFailure("Failed to update profile")
