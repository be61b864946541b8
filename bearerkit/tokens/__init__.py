"""Token codec, hashing, abilities and data model."""

from .abilities import WILDCARD, AbilitySet, are_abilities_subset
from .generators import (
    RandomTokenGenerator,
    SeamTokenGenerator,
    TokenGenerator,
    UuidTokenGenerator,
    parse_token,
)
from .hashers import Sha256TokenHasher, Sha512TokenHasher, TokenHasher
from .models import (
    EntityReference,
    Environment,
    NewAccessToken,
    NewTokenGroup,
    Token,
    TokenComponents,
    TokenGroup,
)
from .types import DEFAULT_TOKEN_TYPES, TokenType, TokenTypeRegistry

__all__ = [
    "WILDCARD",
    "AbilitySet",
    "are_abilities_subset",
    "TokenGenerator",
    "SeamTokenGenerator",
    "RandomTokenGenerator",
    "UuidTokenGenerator",
    "parse_token",
    "TokenHasher",
    "Sha256TokenHasher",
    "Sha512TokenHasher",
    "EntityReference",
    "Environment",
    "NewAccessToken",
    "NewTokenGroup",
    "Token",
    "TokenComponents",
    "TokenGroup",
    "DEFAULT_TOKEN_TYPES",
    "TokenType",
    "TokenTypeRegistry",
]
