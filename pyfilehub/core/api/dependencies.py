"""
FastAPI dependencies: services from app state and the authenticated caller.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Depends, Header, Request

from pyfilehub.core.auth import CredentialStore, SessionAuthenticator
from pyfilehub.core.models import Identity
from pyfilehub.core.service import StorageService


def get_credential_store(request: Request) -> CredentialStore:
    """Get the credential store from app state."""
    return request.app.state.credential_store


def get_authenticator(request: Request) -> SessionAuthenticator:
    """Get the session authenticator from app state."""
    return request.app.state.authenticator


def get_storage_service(request: Request) -> StorageService:
    """Get the storage service from app state."""
    return request.app.state.storage_service


def get_current_identity(
    authorization: Optional[str] = Header(None),
    authenticator: SessionAuthenticator = Depends(get_authenticator),
) -> Identity:
    """
    Verify the bearer token on the request.

    Args:
        authorization: Authorization header value

    Returns:
        Identity embedded in the token

    Raises:
        Unauthenticated: Missing or malformed header, bad or expired token
    """
    return authenticator.verify_header(authorization)
