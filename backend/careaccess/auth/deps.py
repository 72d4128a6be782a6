"""FastAPI dependencies for authentication and authorization.

Dependencies:
  get_current_actor_id      → decode JWT, return the `sub` claim
  get_optional_actor_id     → same, but None when no token is sent
  get_organization_id       → organization from the X-Organization-Id header
  require_permission(...)   → restrict to callers holding the listed permissions
"""

import logging

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from careaccess.auth.jwt import decode_token
from careaccess.context import get_current_organization
from careaccess.database import get_db
from careaccess.middleware.exceptions import PermissionDeniedError
from careaccess.models.enums import ContextType
from careaccess.services.resolver import resolve_effective_permission_ids

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


# ── Actor identity ──────────────────────────────────────────

def _actor_from_credentials(
    credentials: HTTPAuthorizationCredentials | None,
) -> str | None:
    if credentials is None:
        return None
    payload = decode_token(credentials.credentials)
    user_id: str | None = payload.get("sub")
    if not user_id or payload.get("type", "access") != "access":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user_id


async def get_optional_actor_id(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> str | None:
    return _actor_from_credentials(credentials)


async def get_current_actor_id(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> str:
    """Return the acting user id from the bearer token (401 if absent/invalid)."""
    user_id = _actor_from_credentials(credentials)
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user_id


async def get_organization_id() -> str | None:
    return get_current_organization()


# ── Permission-based access control ─────────────────────────

async def ensure_permissions(
    db: AsyncSession,
    user_id: str,
    perms: tuple[str, ...],
) -> None:
    """Raise PermissionDeniedError unless the user holds every permission.

    Checked against the user's SYSTEM-context effective permissions.
    """
    held = await resolve_effective_permission_ids(
        db, user_id, context_type=ContextType.SYSTEM
    )
    missing = [p for p in perms if p not in held]
    if missing:
        logger.warning(
            f"Permission denied for {user_id}: missing {', '.join(missing)}",
            extra={"user_id": user_id},
        )
        raise PermissionDeniedError(f"Missing permissions: {', '.join(missing)}")


def require_permission(*perms: str):
    """Dependency factory restricting a route to users who hold ALL listed permissions.

    Usage:
        @router.post("/roles")
        async def create_role(actor_id: str = Depends(require_permission("manage_roles"))):
            ...
    """
    async def _check(
        actor_id: str = Depends(get_current_actor_id),
        db: AsyncSession = Depends(get_db),
    ) -> str:
        await ensure_permissions(db, actor_id, perms)
        return actor_id

    return _check
