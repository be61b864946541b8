"""Ability checks for tokens.

Abilities are plain capability strings (e.g. "invoices:read"). The literal
wildcard "*" grants every ability. ``AbilitySet`` keeps the wildcard as an
explicit flag instead of a member string so that membership and subset tests
never have to special-case it.

Examples:
    AbilitySet.of(["*"]).allows("anything")               -> True
    AbilitySet.of(["a"]).is_subset_of(AbilitySet.of(["*"]))  -> True
    AbilitySet.of(["a", "b"]).is_subset_of(AbilitySet.of(["a"])) -> False
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

WILDCARD = "*"


@dataclass(frozen=True)
class AbilitySet:
    """Immutable set of abilities with a grants-all sentinel."""

    names: frozenset[str] = frozenset()
    grants_all: bool = False

    @classmethod
    def of(cls, abilities: Iterable[str] | None) -> AbilitySet:
        """Build an ability set from a list of ability strings."""
        names = frozenset(abilities or ())
        if WILDCARD in names:
            return cls(names=frozenset(), grants_all=True)
        return cls(names=names)

    @classmethod
    def everything(cls) -> AbilitySet:
        """Ability set that grants all abilities."""
        return cls(grants_all=True)

    def allows(self, ability: str) -> bool:
        """Check whether this set grants an ability."""
        return self.grants_all or ability in self.names

    def is_subset_of(self, other: AbilitySet) -> bool:
        """Check whether every ability here is also granted by ``other``.

        A wildcard parent contains everything; a wildcard child is only
        contained by another wildcard.
        """
        if other.grants_all:
            return True
        if self.grants_all:
            return False
        return self.names <= other.names

    def missing_from(self, other: AbilitySet) -> list[str]:
        """Abilities in this set that ``other`` does not grant."""
        if other.grants_all:
            return []
        if self.grants_all:
            return [WILDCARD]
        return sorted(self.names - other.names)

    def to_list(self) -> list[str]:
        """Convert back to the stored list form."""
        if self.grants_all:
            return [WILDCARD]
        return sorted(self.names)

    def __bool__(self) -> bool:
        return self.grants_all or bool(self.names)


def are_abilities_subset(child: Iterable[str], parent: Iterable[str]) -> bool:
    """Check whether child abilities are a subset of parent abilities."""
    return AbilitySet.of(child).is_subset_of(AbilitySet.of(parent))


def validate_abilities(abilities: Iterable[str]) -> list[str]:
    """Normalise an ability list, rejecting empty or non-string entries.

    Raises:
        ValueError: If an ability is not a non-empty string.
    """
    normalised: list[str] = []
    for ability in abilities:
        if not isinstance(ability, str) or not ability.strip():
            raise ValueError(f"Invalid ability: {ability!r}")
        if ability not in normalised:
            normalised.append(ability)
    return normalised
