"""Auth middleware: inject the caller from the Authorization header only.
Caller comes from Bearer user:<id>[@<factory_id>] (test/dev only) or a JWT with sub, factory_id, role, permissions.
Outside test/dev, JWTs must carry a valid HS256 signature under JWT_SECRET.
Client-provided user or factory ids in query/body are never read."""

import logging
import re
from typing import Any

import jwt
from starlette.requests import Request
from starlette.responses import JSONResponse

from apps.ai_query.config import config, env_name

logger = logging.getLogger(__name__)

# "Bearer user:u1" or "Bearer user:u1@factory-7"
BEARER_USER_PATTERN = re.compile(r"^Bearer\s+user:([^@\s]+)(?:@(\S+))?$", re.IGNORECASE)

PUBLIC_PATHS = frozenset({"/health"})

# Environments where self-asserted identities (dev tokens, unsigned JWTs) are honoured.
DEV_IDENTITY_ENVS = frozenset({"test", "dev", "development"})

DEV_TOKEN_PERMISSIONS = {"ai_insights": ["use"]}


def _allows_dev_identity() -> bool:
    """True only for an explicit test/dev ENV. An unset ENV is treated like production."""
    return env_name() in DEV_IDENTITY_ENVS


def _decode_jwt(token: str) -> dict[str, Any] | None:
    """Decode JWT claims. HS256 signature is verified when JWT_SECRET is set; required outside test/dev."""
    secret = config.JWT_SECRET
    try:
        if secret:
            return jwt.decode(token, secret, algorithms=["HS256"], options={"verify_aud": False})
        if not _allows_dev_identity():
            logger.error("JWT_SECRET is not set; rejecting JWT (ENV=%s)", env_name() or "<unset>")
            return None
        return jwt.decode(token, options={"verify_signature": False})
    except jwt.PyJWTError as e:
        logger.info("JWT rejected: %s", e)
        return None


def _extract_caller(auth_header: str) -> dict[str, Any] | None:
    """Parse caller fields from the Authorization header. Returns None when missing or invalid."""
    value = (auth_header or "").strip()
    if not value.lower().startswith("bearer "):
        return None

    m = BEARER_USER_PATTERN.match(value)
    if m:
        if not _allows_dev_identity():
            logger.info("Dev token rejected (ENV=%s)", env_name() or "<unset>")
            return None
        return {
            "user_id": m.group(1),
            "factory_id": m.group(2),
            "role": "user",
            "permissions": DEV_TOKEN_PERMISSIONS,
        }

    claims = _decode_jwt(value[7:].strip())
    if not claims or not str(claims.get("sub") or "").strip():
        return None
    factory_id = claims.get("factory_id")
    return {
        "user_id": str(claims["sub"]).strip(),
        "factory_id": str(factory_id).strip() if factory_id else None,
        "role": str(claims.get("role") or "user"),
        "permissions": claims.get("permissions"),
    }


async def auth_middleware(request: Request, call_next):
    """Set request.state.caller from the Authorization header.
    /health and CORS preflight (OPTIONS) are exempt; browsers send preflight without credentials."""

    if request.method == "OPTIONS" or request.url.path.rstrip("/") in PUBLIC_PATHS:
        return await call_next(request)

    caller = _extract_caller(request.headers.get("Authorization", ""))
    if caller is None:
        return JSONResponse(
            status_code=401,
            content={
                "error": "Authentication required. Use Authorization: Bearer user:<id> or a JWT with a sub claim",
                "code": "UNAUTHORIZED",
                "details": None,
            },
        )

    request.state.caller = caller
    return await call_next(request)
