"""Bearer credential verification for probe callers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol, Sequence

import structlog
from jose import JWTError, jwt

from .errors import AuthenticationError

LOGGER = structlog.get_logger("api_probe.auth")

BEARER_PREFIX = "Bearer "


@dataclass(frozen=True)
class RequesterIdentity:
    user_id: str
    email: Optional[str] = None
    role: Optional[str] = None


class Authenticator(Protocol):
    def authenticate(self, authorization: Optional[str]) -> RequesterIdentity:
        """Resolve an Authorization header value or raise AuthenticationError."""


def extract_bearer_token(authorization: Optional[str]) -> str:
    if not authorization or not authorization.startswith(BEARER_PREFIX):
        raise AuthenticationError("Unauthorized")
    token = authorization[len(BEARER_PREFIX):].strip()
    if not token:
        raise AuthenticationError("Unauthorized")
    return token


class JwtAuthenticator:
    """Verifies HS256 (or configured) JWTs and reads the requester from `sub`."""

    def __init__(
        self,
        secret: str,
        *,
        audience: Optional[str] = "authenticated",
        algorithms: Sequence[str] = ("HS256",),
    ) -> None:
        if not secret:
            raise ValueError("A JWT secret is required to authenticate callers")
        self._secret = secret
        self._audience = audience
        self._algorithms = list(algorithms)

    def authenticate(self, authorization: Optional[str]) -> RequesterIdentity:
        token = extract_bearer_token(authorization)
        options = {"verify_aud": self._audience is not None}
        try:
            claims = jwt.decode(
                token,
                self._secret,
                algorithms=self._algorithms,
                audience=self._audience,
                options=options,
            )
        except JWTError as exc:
            LOGGER.info("token_rejected", reason=type(exc).__name__)
            raise AuthenticationError("Unauthorized") from exc

        subject = claims.get("sub")
        if not subject or not isinstance(subject, str):
            LOGGER.info("token_rejected", reason="missing_subject")
            raise AuthenticationError("Unauthorized")
        return RequesterIdentity(user_id=subject, email=claims.get("email"), role=claims.get("role"))
