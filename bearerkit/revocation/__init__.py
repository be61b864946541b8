"""Revocation strategies."""

from .strategies import (
    CascadeDescendantsStrategy,
    CascadeStrategy,
    NoneStrategy,
    PartialCascadeStrategy,
    RevocationStrategy,
    TimedStrategy,
)

__all__ = [
    "RevocationStrategy",
    "NoneStrategy",
    "CascadeStrategy",
    "PartialCascadeStrategy",
    "CascadeDescendantsStrategy",
    "TimedStrategy",
]
