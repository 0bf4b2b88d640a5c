# lawnly/api/dependencies/auth.py
"""
Caller identity for the HTTP surface.

The identity provider issues HS256 bearer tokens whose ``sub`` claim is the
user id and whose ``role`` claim is one of admin, contractor or customer.
The core never looks further than that pair.
"""

import logging
from typing import Any, Dict

import jwt
from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from jwt import PyJWTError

from ...core.config import settings
from ...core.enums import RoleName
from ...core.exceptions import UnauthorizedException
from ...principal import Principal

logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="auth/login", auto_error=False)


def decode_access_token(token: str) -> Dict[str, Any]:
    payload: Dict[str, Any] = jwt.decode(
        token,
        settings.secret_key.get_secret_value(),
        algorithms=[settings.algorithm],
    )
    return payload


def principal_from_token(token: str) -> Principal:
    """
    Build a principal from a bearer token.

    Raises:
        UnauthorizedException: token invalid, expired or missing claims
    """
    try:
        payload = decode_access_token(token)
    except PyJWTError as e:
        logger.warning(f"JWT validation error: {str(e)}")
        raise UnauthorizedException("Could not validate credentials", code="INVALID_TOKEN")

    user_id = payload.get("sub")
    if not isinstance(user_id, str) or not user_id:
        logger.warning("Token payload missing 'sub' field")
        raise UnauthorizedException("Could not validate credentials", code="INVALID_TOKEN")
    try:
        role = RoleName(payload.get("role"))
    except ValueError:
        raise UnauthorizedException("Token carries an unknown role", code="INVALID_ROLE")
    return Principal(user_id=user_id, role=role)


async def get_current_principal(token: str | None = Depends(oauth2_scheme)) -> Principal:
    if not token:
        raise UnauthorizedException("Not authenticated", code="NOT_AUTHENTICATED")
    return principal_from_token(token)
