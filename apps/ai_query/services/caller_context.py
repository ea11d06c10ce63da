"""Server-side caller context injection.

Caller is taken from auth (Authorization header). Client-provided user_id/factory_id are ignored.
"""

from dataclasses import dataclass, field
from typing import Annotated

from fastapi import Depends, HTTPException, Request

from apps.ai_query.services.permissions import Permission, has_permission, is_admin, parse_permissions


@dataclass(frozen=True)
class CallerContext:
    """Authenticated caller. user_id is the rate-limit subject; factory_id scopes cached answers."""

    user_id: str
    factory_id: str | None = None
    role: str = "user"
    permissions: list[Permission] = field(default_factory=list)

    def can(self, resource: str, action: str) -> bool:
        return has_permission(self.role, resource, action, self.permissions)


def _forbidden(message: str) -> HTTPException:
    return HTTPException(status_code=403, detail={"error": message, "code": "FORBIDDEN", "details": None})


def get_caller(request: Request) -> CallerContext:
    """FastAPI dependency: CallerContext from request.state (set by auth middleware). 401 if missing."""
    caller = getattr(request.state, "caller", None)
    if not caller or not str(caller.get("user_id") or "").strip():
        raise HTTPException(
            status_code=401,
            detail={"error": "Authentication required.", "code": "UNAUTHORIZED", "details": None},
        )
    return CallerContext(
        user_id=str(caller["user_id"]).strip(),
        factory_id=caller.get("factory_id"),
        role=caller.get("role") or "user",
        permissions=parse_permissions(caller.get("permissions")),
    )


def require_ai_user(caller: Annotated[CallerContext, Depends(get_caller)]) -> CallerContext:
    """FastAPI dependency: caller must hold ai_insights:use."""
    if not caller.can("ai_insights", "use"):
        raise _forbidden("You do not have permission to use AI insights.")
    return caller


def require_admin(caller: Annotated[CallerContext, Depends(get_caller)]) -> CallerContext:
    """FastAPI dependency: caller must be admin or system_admin."""
    if not is_admin(caller.role):
        raise _forbidden("Administrator role required.")
    return caller


# Type aliases for Depends()
Caller = Annotated[CallerContext, Depends(get_caller)]
AIUser = Annotated[CallerContext, Depends(require_ai_user)]
Admin = Annotated[CallerContext, Depends(require_admin)]
