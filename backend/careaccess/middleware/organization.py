"""Organization middleware: resolves the organization context per request.

Flow:
  1. Read the `X-Organization-Id` header
  2. Validate it
  3. Set the ContextVar so dependencies can default to it
  4. After the response, clear the ContextVar

Requests without the header run with no organization context; resolution
then covers every organization the user belongs to.
"""

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from careaccess.context import (
    clear_organization_context,
    set_current_organization,
    validate_organization_id,
)
from careaccess.middleware.exceptions import create_error_response

ORGANIZATION_HEADER = "x-organization-id"


class OrganizationContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        organization_id = request.headers.get(ORGANIZATION_HEADER)

        clear_organization_context()
        if organization_id:
            try:
                set_current_organization(validate_organization_id(organization_id.strip()))
            except ValueError as e:
                return create_error_response(
                    status_code=400,
                    message=str(e),
                    error_code="INVALID_ORGANIZATION",
                )

        try:
            response = await call_next(request)
        finally:
            clear_organization_context()

        return response
