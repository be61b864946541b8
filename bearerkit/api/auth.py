"""FastAPI integration.

Usage:
    manager = BearerManager.from_config()
    bearer = BearerAuth(manager)

    @app.get("/invoices")
    def list_invoices(token: Token = Depends(require_abilities(bearer, "invoices:read"))):
        ...

Rejections map to HTTP status codes:
    401 - no token, malformed or unknown token
    403 - revoked, expired, IP or domain not allowed, missing ability
    429 - rate limit exceeded (with Retry-After)
"""

import logging

from fastapi import Depends, HTTPException, Request, Response, status

from ..audit.events import AuditEventKind
from ..exceptions import MissingAbilityError
from ..guard import AuthenticationResult, RequestContext, host_from_url
from ..manager import BearerManager
from ..tokens.models import Token

logger = logging.getLogger("bearerkit.api.auth")

_STATUS_BY_KIND = {
    AuditEventKind.FAILED: status.HTTP_401_UNAUTHORIZED,
    AuditEventKind.REVOKED: status.HTTP_403_FORBIDDEN,
    AuditEventKind.EXPIRED: status.HTTP_403_FORBIDDEN,
    AuditEventKind.IP_BLOCKED: status.HTTP_403_FORBIDDEN,
    AuditEventKind.DOMAIN_BLOCKED: status.HTTP_403_FORBIDDEN,
    AuditEventKind.RATE_LIMITED: status.HTTP_429_TOO_MANY_REQUESTS,
}


class StarletteRequestContext(RequestContext):
    """Request context read from a Starlette request.

    The token comes from ``Authorization: Bearer <token>`` or, failing that,
    the ``X-API-Key`` header.
    """

    def __init__(self, request: Request):
        self.request = request

    def presented_token(self) -> str | None:
        authorization = self.request.headers.get("Authorization")
        if authorization:
            scheme, _, credentials = authorization.partition(" ")
            if scheme.lower() == "bearer" and credentials.strip():
                return credentials.strip()
        return self.request.headers.get("X-API-Key") or None

    def source_ip(self) -> str | None:
        return self.request.client.host if self.request.client else None

    def origin_host(self) -> str | None:
        return host_from_url(self.request.headers.get("Origin")) or host_from_url(
            self.request.headers.get("Referer")
        )

    def user_agent(self) -> str | None:
        return self.request.headers.get("User-Agent")


def _rejection(result: AuthenticationResult) -> HTTPException:
    status_code = _STATUS_BY_KIND.get(result.kind, status.HTTP_401_UNAUTHORIZED)
    headers: dict[str, str] = {}
    if status_code == status.HTTP_401_UNAUTHORIZED:
        headers["WWW-Authenticate"] = "Bearer"
    if result.rate_limit is not None:
        headers.update(result.rate_limit.to_headers())

    return HTTPException(
        status_code=status_code,
        detail={"error": result.kind.value, "message": result.message},
        headers=headers or None,
    )


class BearerAuth:
    """FastAPI dependency that authenticates the request's bearer token.

    Returns the authenticated ``Token`` and stores it on
    ``request.state.bearer_token``.
    """

    def __init__(self, manager: BearerManager):
        self.manager = manager

    def __call__(self, request: Request, response: Response) -> Token:
        result = self.manager.authenticate(StarletteRequestContext(request))

        if not result.is_authenticated:
            logger.warning(f"Rejected request to {request.url.path}: {result.kind.value}")
            raise _rejection(result)

        if result.rate_limit is not None:
            for header, value in result.rate_limit.to_headers().items():
                response.headers[header] = value

        request.state.bearer_token = result.token
        return result.token


def require_abilities(auth: BearerAuth, *abilities: str, any_of: bool = False):
    """Create a dependency that requires abilities on the token.

    Args:
        auth: The authenticating dependency
        *abilities: Abilities to check
        any_of: Accept a token holding any one of the abilities instead of all

    Returns:
        A FastAPI dependency function.
    """

    def ability_dependency(token: Token = Depends(auth)) -> Token:
        missing = [ability for ability in abilities if token.cant(ability)]
        granted = len(missing) < len(abilities) if any_of else not missing
        if abilities and not granted:
            error = MissingAbilityError(missing[0])
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=error.to_dict())
        return token

    return ability_dependency


def require_environment(auth: BearerAuth, *environments: str):
    """Create a dependency that only admits tokens from given environments."""

    def environment_dependency(token: Token = Depends(auth)) -> Token:
        if token.environment not in environments:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={
                    "error": "invalid_environment",
                    "message": f"Token environment '{token.environment}' is not allowed here",
                },
            )
        return token

    return environment_dependency


def require_type(auth: BearerAuth, *token_types: str):
    """Create a dependency that only admits tokens of given types."""

    def type_dependency(token: Token = Depends(auth)) -> Token:
        if token.type not in token_types:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={
                    "error": "invalid_token_type",
                    "message": f"Token type '{token.type}' is not allowed here",
                },
            )
        return token

    return type_dependency
