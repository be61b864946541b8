"""Rotation strategies."""

from .strategies import DualValidStrategy, GracePeriodStrategy, ImmediateStrategy, RotationStrategy

__all__ = [
    "RotationStrategy",
    "ImmediateStrategy",
    "GracePeriodStrategy",
    "DualValidStrategy",
]
