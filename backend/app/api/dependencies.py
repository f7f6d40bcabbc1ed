"""
API Dependencies

FastAPI dependency injection for authentication, the usage limiter and
plan-limit gating.

Security: JWT tokens are verified cryptographically using Supabase JWKS (ES256)
with HS256 fallback via the JWT secret. Never decode without verification.
"""

import logging
from dataclasses import dataclass
from typing import Annotated, Callable, Optional

import jwt
from jwt import PyJWKClient
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from app.config.settings import get_settings
from app.domain.subscription import LimitCheckResult, LimitKey
from app.domain.usage_limiter import UsageLimiter
from app.infrastructure.db.dependencies import (
    PlanRepoDep,
    SubscriptionRepoDep,
    UsageRepoDep,
)
from app.infrastructure.exceptions import LimitReachedError


logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)

# Cached JWKS client; PyJWKClient caches keys internally and refreshes them.
_jwks_client: Optional[PyJWKClient] = None


@dataclass(frozen=True)
class AuthenticatedUser:
    """Identity taken from a verified Supabase access token."""
    id: str
    email: Optional[str] = None


def _get_jwks_client() -> PyJWKClient:
    """Return a singleton PyJWKClient for the Supabase JWKS endpoint."""
    global _jwks_client
    if _jwks_client is None:
        settings = get_settings()
        jwks_url = f"{settings.supabase_url}/auth/v1/.well-known/jwks.json"
        _jwks_client = PyJWKClient(jwks_url, cache_keys=True)
    return _jwks_client


def _decode_with_jwks(token: str, issuer: str) -> dict:
    """Verify JWT using Supabase JWKS endpoint (ES256 asymmetric keys)."""
    client = _get_jwks_client()
    signing_key = client.get_signing_key_from_jwt(token)
    return jwt.decode(
        token,
        signing_key.key,
        algorithms=["ES256"],
        issuer=issuer,
        audience="authenticated",
        options={"require": ["exp", "sub", "iss"]},
    )


def _decode_with_secret(token: str, secret: str, issuer: str) -> dict:
    """Verify JWT using HS256 symmetric secret (legacy Supabase signing)."""
    return jwt.decode(
        token,
        secret,
        algorithms=["HS256"],
        issuer=issuer,
        audience="authenticated",
        options={"require": ["exp", "sub", "iss"]},
    )


def _verify_token(credentials: Optional[HTTPAuthorizationCredentials]) -> dict:
    """
    Verify a bearer token and return its claims.

    Verification strategy (in order):
      1. JWKS (ES256), which follows key rotation automatically.
      2. HS256 with ``SUPABASE_JWT_SECRET`` for legacy signing.

    Raises:
        HTTPException 401: token missing, expired, or invalid.
    """
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing authorization token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    token = credentials.credentials
    settings = get_settings()
    issuer = f"{settings.supabase_url}/auth/v1"

    payload: Optional[dict] = None

    # --- Strategy 1: JWKS (ES256) ---
    try:
        payload = _decode_with_jwks(token, issuer)
    except (jwt.exceptions.PyJWKClientError, jwt.InvalidTokenError) as jwks_err:
        logger.debug("JWKS verification failed, trying HS256 fallback: %s", jwks_err)

    # --- Strategy 2: HS256 fallback ---
    if payload is None and settings.supabase_jwt_secret:
        try:
            payload = _decode_with_secret(
                token, settings.supabase_jwt_secret, issuer
            )
        except jwt.ExpiredSignatureError:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Token has expired",
            )
        except jwt.InvalidTokenError as e:
            logger.warning("HS256 JWT verification also failed: %s", e)

    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or unverifiable token",
        )

    if not payload.get("sub"):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token: missing user ID",
        )

    return payload


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> AuthenticatedUser:
    """Authenticated user (``sub`` and ``email`` claims)."""
    payload = _verify_token(credentials)
    return AuthenticatedUser(id=payload["sub"], email=payload.get("email"))


async def get_current_user_id(
    user: AuthenticatedUser = Depends(get_current_user),
) -> str:
    """
    Extract and verify user ID from a Supabase JWT.

    Returns:
        Authenticated user ID (``sub`` claim).
    """
    return user.id


# =============================================================================
# Usage Limiter
# =============================================================================

def get_usage_limiter(
    subscriptions: SubscriptionRepoDep,
    usage: UsageRepoDep,
) -> UsageLimiter:
    """Dependency provider for UsageLimiter."""
    return UsageLimiter(subscriptions=subscriptions, usage=usage)


UsageLimiterDep = Annotated[UsageLimiter, Depends(get_usage_limiter)]


def require_within_limit(limit_key: LimitKey) -> Callable:
    """
    Build a dependency that rejects the request when the plan limit is reached.

    Usage:
        @router.post(
            "/tasks",
            dependencies=[Depends(require_within_limit(LimitKey.MAX_TASKS))],
        )
        async def create_task(...):
            ...
            await limiter.increment_usage(user_id, UsageMetric.TASKS_CREATED)

    Raises:
        LimitReachedError: rendered as 403 with upgrade messaging
    """

    async def _check(
        limiter: UsageLimiterDep,
        user_id: str = Depends(get_current_user_id),
    ) -> LimitCheckResult:
        result = await limiter.check_limit(user_id, limit_key)

        if not result.allowed:
            logger.info(
                f"User {user_id} blocked by {limit_key.value}: "
                f"{result.current}/{result.limit}"
            )
            raise LimitReachedError(
                result.reason or "Limit reached",
                limit_key=limit_key.value,
                current=result.current,
                limit=result.limit,
            )

        return result

    return _check


# =============================================================================
# Re-export DB dependencies for a single import source
# Routers should import from api.dependencies, not db.dependencies directly.
# =============================================================================

__all__ = [
    "AuthenticatedUser",
    "PlanRepoDep",
    "SubscriptionRepoDep",
    "UsageLimiterDep",
    "UsageRepoDep",
    "get_current_user",
    "get_current_user_id",
    "get_usage_limiter",
    "require_within_limit",
]
