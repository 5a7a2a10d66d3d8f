"""
Session authenticator: signed bearer tokens bound to a user identity.

Tokens are JWTs carrying ``{id, username, email, iat, exp}`` with a fixed
lifetime. There is no server-side session state and no revocation list: a
token stays valid until it expires, even if the account changes afterwards.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable

from jose import ExpiredSignatureError, JWTError, jwt

from pyfilehub.config.settings import TOKEN_LIFETIME
from pyfilehub.core.errors import InvalidToken, TokenExpired, Unauthenticated
from pyfilehub.core.models import Identity, User
from pyfilehub.logging.setup import get_logger

logger = get_logger(__name__)

BEARER_PREFIX = "bearer"


class SessionAuthenticator:
    """Issues and verifies session tokens."""

    def __init__(
        self,
        secret: str,
        algorithm: str = "HS256",
        lifetime: timedelta = TOKEN_LIFETIME,
        clock: Callable[[], datetime] | None = None,
    ):
        """
        Args:
            secret: Signing secret
            algorithm: JWS algorithm
            lifetime: Validity period of issued tokens
            clock: Returns the current UTC time (overridable in tests)
        """
        if not secret:
            raise ValueError("A token signing secret is required")
        self._secret = secret
        self.algorithm = algorithm
        self.lifetime = lifetime
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def issue(self, user: User | Identity) -> str:
        """Mint a token for ``user`` expiring after the fixed lifetime."""
        now = self._clock()
        claims = {
            "id": user.id,
            "username": user.username,
            "email": user.email,
            "iat": int(now.timestamp()),
            "exp": int((now + self.lifetime).timestamp()),
        }
        return jwt.encode(claims, self._secret, algorithm=self.algorithm)

    def verify(self, token: str) -> Identity:
        """
        Check signature and expiry of ``token``.

        Raises:
            Unauthenticated: If no token was given
            TokenExpired: If the token's expiry has passed
            InvalidToken: If the signature or claims are invalid
        """
        if not token:
            raise Unauthenticated("Access token required")

        try:
            claims = jwt.decode(
                token,
                self._secret,
                algorithms=[self.algorithm],
                options={"require_exp": True},
            )
        except ExpiredSignatureError:
            logger.warning("Rejected expired token")
            raise TokenExpired("Token has expired")
        except JWTError as e:
            logger.warning(f"Rejected invalid token: {e}")
            raise InvalidToken("Invalid token")

        try:
            identity = Identity(
                id=int(claims["id"]),
                username=str(claims["username"]),
                email=str(claims["email"]),
            )
        except (KeyError, TypeError, ValueError):
            logger.warning("Rejected token with missing or malformed claims")
            raise InvalidToken("Invalid token")

        return identity

    def verify_header(self, authorization: str | None) -> Identity:
        """
        Extract the bearer token from an ``Authorization`` header and verify it.

        Raises:
            Unauthenticated: If the header is missing or not a bearer credential
        """
        if not authorization:
            raise Unauthenticated("Access token required")

        scheme, _, token = authorization.strip().partition(" ")
        if scheme.lower() != BEARER_PREFIX or not token.strip():
            raise Unauthenticated("Malformed authorization header")

        return self.verify(token.strip())
