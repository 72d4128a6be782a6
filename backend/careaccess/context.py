"""Request-scoped organization context.

Key components:
  - _organization_ctx   ContextVar holding the organization id for the request
  - set / get / clear helpers for the ContextVar
  - validate_organization_id()   rejects malformed header values
"""

import re
from contextvars import ContextVar

# ── Request-scoped organization context ─────────────────────

_organization_ctx: ContextVar[str | None] = ContextVar("_organization_ctx", default=None)


def set_current_organization(organization_id: str) -> None:
    _organization_ctx.set(organization_id)


def get_current_organization() -> str | None:
    """Return the organization id for this request, if one was supplied."""
    return _organization_ctx.get()


def clear_organization_context() -> None:
    _organization_ctx.set(None)


# ── Validation ──────────────────────────────────────────────

_ORGANIZATION_ID_RE = re.compile(r"^[A-Za-z0-9_-]{1,36}$")


def validate_organization_id(organization_id: str) -> str:
    if not _ORGANIZATION_ID_RE.match(organization_id):
        raise ValueError(f"Invalid organization id: {organization_id!r}")
    return organization_id
