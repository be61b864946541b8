"""HTTP integration for FastAPI applications."""

from .auth import (
    BearerAuth,
    StarletteRequestContext,
    require_abilities,
    require_environment,
    require_type,
)

__all__ = [
    "BearerAuth",
    "StarletteRequestContext",
    "require_abilities",
    "require_environment",
    "require_type",
]
