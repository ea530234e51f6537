"""
verify.py
---------
Purpose:
    Bearer JWT verification for protected routes.

Notes:
    - Asymmetric tokens (ES256/RS256) are verified against the configured
      JWKS endpoint; keys are fetched and cached by PyJWKClient.
    - Without a JWKS URL, HS256 tokens are verified with JWT_SECRET.
    - Provides `auth_dependency` for protected routes.
"""

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jwt import PyJWKClient

from smart_notify.config import settings

_jwk_client: PyJWKClient | None = None
_security = HTTPBearer()


def _get_jwk_client() -> PyJWKClient:
    global _jwk_client
    if _jwk_client is None:
        _jwk_client = PyJWKClient(settings.JWT_JWKS_URL)
    return _jwk_client


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def verify_jwt(token: str) -> dict:
    try:
        if settings.JWT_JWKS_URL:
            signing_key = _get_jwk_client().get_signing_key_from_jwt(token)
            key, algorithms = signing_key.key, ["ES256", "RS256"]
        elif settings.JWT_SECRET:
            key, algorithms = settings.JWT_SECRET, ["HS256"]
        else:
            raise _unauthorized("Authentication is not configured")

        return jwt.decode(
            token,
            key,
            algorithms=algorithms,
            audience=settings.JWT_AUDIENCE,
            options={"verify_exp": True},
        )
    except HTTPException:
        raise
    except Exception as e:
        raise _unauthorized(f"Invalid authentication token: {e}") from e


def auth_dependency(credentials: HTTPAuthorizationCredentials = Depends(_security)) -> dict:
    token = credentials.credentials
    return verify_jwt(token)
