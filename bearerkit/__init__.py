"""bearerkit: typed API tokens with revocation, rotation and derivation.

Example usage:
    from bearerkit import BearerManager, SimpleRequestContext

    manager = BearerManager.from_config()
    group = manager.issue_group("Acme Inc")
    secret = group.plain_text("sk")

    result = manager.authenticate(SimpleRequestContext(token=secret, ip="203.0.113.7"))
    assert result.is_authenticated
"""

from .audit import AuditEvent, AuditEventKind
from .config import BearerConfig, load_config
from .exceptions import (
    AuthenticationError,
    BearerError,
    CannotDeriveTokenError,
    InvalidDerivedAbilitiesError,
    InvalidDerivedExpirationError,
    TokenRevokedError,
)
from .guard import AuthenticationResult, Guard, RequestContext, SimpleRequestContext
from .manager import BearerManager
from .tokens import EntityReference, NewAccessToken, NewTokenGroup, Token, TokenGroup

__version__ = "0.1.0"

__all__ = [
    "AuditEvent",
    "AuditEventKind",
    "AuthenticationError",
    "AuthenticationResult",
    "BearerConfig",
    "BearerError",
    "BearerManager",
    "CannotDeriveTokenError",
    "EntityReference",
    "Guard",
    "InvalidDerivedAbilitiesError",
    "InvalidDerivedExpirationError",
    "NewAccessToken",
    "NewTokenGroup",
    "RequestContext",
    "SimpleRequestContext",
    "Token",
    "TokenGroup",
    "TokenRevokedError",
    "load_config",
]
