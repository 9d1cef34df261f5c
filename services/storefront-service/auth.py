"""Authentication utilities.

Tokens are issued and verified by the external auth service; this module
only maps an already-issued bearer token to the principal it stands for.
"""
from dataclasses import dataclass
from typing import Optional
from fastapi import Depends, Header, HTTPException
import logging

from config import API_TOKENS
from monitoring import auth_failures_counter, auth_attempts_counter

logger = logging.getLogger(__name__)

ADMIN_ROLE = "admin"


@dataclass(frozen=True)
class Principal:
    """Authenticated caller."""
    user_id: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE


def verify_token(authorization: Optional[str] = Header(None)) -> str:
    """
    Verify authentication token.

    Args:
        authorization: Authorization header value

    Returns:
        Valid token

    Raises:
        HTTPException: If token is invalid or missing
    """
    auth_attempts_counter.add(1, {"type": "bearer_token"})

    if authorization is None:
        auth_failures_counter.add(1, {"reason": "missing_header"})
        logger.warning("Authentication failed: Missing authorization header")
        raise HTTPException(status_code=401, detail="Missing authorization header")

    # Extract token (Bearer <token>)
    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        auth_failures_counter.add(1, {"reason": "invalid_format"})
        logger.warning("Authentication failed: Invalid authorization header format", extra={
            "auth_header": authorization[:20] + "..." if len(authorization) > 20 else authorization
        })
        raise HTTPException(status_code=401, detail="Invalid authorization header format")

    token = parts[1]
    if token not in API_TOKENS:
        auth_failures_counter.add(1, {"reason": "invalid_token"})
        logger.warning("Authentication failed: Invalid token", extra={
            "token_prefix": token[:8] + "..." if len(token) > 8 else token
        })
        raise HTTPException(status_code=401, detail="Invalid token")

    return token


def get_principal_from_token(token: str) -> Optional[Principal]:
    """
    Resolve a token to its principal.

    Args:
        token: Authentication token

    Returns:
        Principal, or None for unknown tokens
    """
    entry = API_TOKENS.get(token)
    if entry is None:
        return None
    user_id, role = entry
    return Principal(user_id=user_id, role=role)


def get_current_principal(token: str = Depends(verify_token)) -> Principal:
    """Dependency returning the caller of an authenticated request."""
    principal = get_principal_from_token(token)
    logger.debug("Authentication successful", extra={"user_id": principal.user_id})
    return principal


def require_admin(principal: Principal = Depends(get_current_principal)) -> Principal:
    """Dependency rejecting callers without the admin role."""
    if not principal.is_admin:
        logger.warning("Authorization failed: admin role required", extra={
            "user_id": principal.user_id,
            "role": principal.role
        })
        raise HTTPException(status_code=403, detail="Admin role required")
    return principal
