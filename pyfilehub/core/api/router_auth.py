"""
Authentication API router.

Registration and login return a session token; ``/me`` resolves the token
back to the stored account.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from pyfilehub.logging.setup import get_logger
from pyfilehub.core.api.dependencies import (
    get_authenticator,
    get_credential_store,
    get_current_identity,
)
from pyfilehub.core.api.models import (
    AuthResponse,
    CurrentUserResponse,
    LoginRequest,
    RegisterRequest,
)
from pyfilehub.core.auth import CredentialStore, SessionAuthenticator
from pyfilehub.core.models import Identity, User

logger = get_logger(__name__)

router = APIRouter(
    prefix="/auth",
    tags=["auth"]
)


def _auth_payload(message: str, token: str, user: User) -> dict:
    return {
        "message": message,
        "token": token,
        "user": {"id": user.id, "username": user.username, "email": user.email},
    }


@router.post("/register", response_model=AuthResponse,
             status_code=status.HTTP_201_CREATED)
async def register(
    body: RegisterRequest,
    credentials: CredentialStore = Depends(get_credential_store),
    authenticator: SessionAuthenticator = Depends(get_authenticator),
):
    """Create an account and log it in."""
    user = await credentials.register(body.username, body.email, body.password)
    return _auth_payload("User registered successfully", authenticator.issue(user), user)


@router.post("/login", response_model=AuthResponse)
async def login(
    body: LoginRequest,
    credentials: CredentialStore = Depends(get_credential_store),
    authenticator: SessionAuthenticator = Depends(get_authenticator),
):
    user = await credentials.authenticate(body.email, body.password)
    return _auth_payload("Login successful", authenticator.issue(user), user)


@router.get("/me", response_model=CurrentUserResponse)
async def get_current_user(
    identity: Identity = Depends(get_current_identity),
    credentials: CredentialStore = Depends(get_credential_store),
):
    """
    Current account details.

    A valid token for an account that no longer exists yields 404.
    """
    user = await credentials.find_by_id(identity.id)
    return user.to_public_dict()
