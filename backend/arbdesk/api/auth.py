from __future__ import annotations

import logging
from typing import Any

import jwt
from fastapi import HTTPException, Security, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from arbdesk.config.settings import AuthSettings, settings

logger = logging.getLogger(__name__)

_bearer_scheme = HTTPBearer(auto_error=False)


def decode_token(token: str, auth: AuthSettings | None = None) -> dict[str, Any]:
    """Return the claims of a token signed with any configured secret."""
    auth = auth or settings.auth
    for secret in auth.jwt_secrets:
        try:
            return jwt.decode(token, secret, algorithms=[auth.jwt_algorithm])
        except jwt.InvalidTokenError:
            continue
    raise jwt.InvalidTokenError("token not valid under any configured secret")


def require_user(
    credentials: HTTPAuthorizationCredentials | None = Security(_bearer_scheme),
) -> dict[str, Any]:
    if credentials is None or not credentials.credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"message": "Authorization token is required."},
        )
    try:
        return decode_token(credentials.credentials)
    except jwt.InvalidTokenError as exc:
        logger.info("Rejected bearer token: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"message": "Invalid or expired token."},
        ) from exc
