"""Token generators.

Every generator produces tokens in the wire format
``{prefix}_{environment}_{secret}`` and parses them back into
``TokenComponents``. Parsing never raises; it returns None for anything that
is not a well-formed token of that generator's shape.

Generators:
    seam   - 24 characters over the base58 alphabet (no 0/O/I/l)
    random - 40 random alphanumerics followed by an 8-char CRC32 checksum
    uuid   - a version 4 UUID in canonical text form
"""

from __future__ import annotations

import secrets
import string
import uuid
import zlib
from abc import ABC, abstractmethod

from ..exceptions import MalformedTokenError
from .models import TokenComponents

DELIMITER = "_"

BASE58_ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"
ALPHANUMERIC = string.ascii_letters + string.digits


def parse_token(token: object) -> TokenComponents | None:
    """Split a token string into its three segments.

    Returns None unless the string has exactly three non-empty,
    underscore-delimited segments.
    """
    if not isinstance(token, str) or not token:
        return None

    parts = token.split(DELIMITER)
    if len(parts) != 3 or not all(parts):
        return None

    prefix, environment, secret = parts
    return TokenComponents(
        prefix=prefix,
        environment=environment,
        secret=secret,
        full_token=token,
    )


def format_token(prefix: str, environment: str, secret: str) -> str:
    """Join segments into a token string.

    Raises:
        MalformedTokenError: If a segment is empty or contains the delimiter.
    """
    for label, value in (("prefix", prefix), ("environment", environment), ("secret", secret)):
        if not value:
            raise MalformedTokenError(f"Token {label} must not be empty")
        if DELIMITER in value:
            raise MalformedTokenError(f"Token {label} must not contain '{DELIMITER}': {value!r}")
    return f"{prefix}{DELIMITER}{environment}{DELIMITER}{secret}"


def random_string(length: int, alphabet: str) -> str:
    """Build a string of cryptographically random characters."""
    return "".join(secrets.choice(alphabet) for _ in range(length))


class TokenGenerator(ABC):
    """Base class for token generators."""

    @abstractmethod
    def generate_secret(self) -> str:
        """Produce the secret segment."""

    def validate_secret(self, secret: str) -> bool:
        """Check the secret segment has this generator's shape."""
        return True

    def generate(self, prefix: str, environment: str) -> str:
        """Generate a new plaintext token.

        Raises:
            MalformedTokenError: If prefix or environment is unusable.
        """
        return format_token(prefix, environment, self.generate_secret())

    def parse(self, token: str) -> TokenComponents | None:
        """Parse a token produced by this generator."""
        components = parse_token(token)
        if components is None or not self.validate_secret(components.secret):
            return None
        return components


class SeamTokenGenerator(TokenGenerator):
    """Stripe/Seam style base58 secrets.

    Example: sk_test_4eC39HqLyjWDarjtT1zdp7dc
    """

    SECRET_LENGTH = 24

    def __init__(self, length: int = SECRET_LENGTH):
        self.length = length

    def generate_secret(self) -> str:
        return random_string(self.length, BASE58_ALPHABET)

    def validate_secret(self, secret: str) -> bool:
        return all(char in BASE58_ALPHABET for char in secret)


class RandomTokenGenerator(TokenGenerator):
    """Random alphanumeric secret with a trailing CRC32 checksum.

    The checksum lets callers reject typos without a store lookup. It is not a
    security boundary.
    """

    ENTROPY_LENGTH = 40
    CHECKSUM_LENGTH = 8

    def generate_secret(self) -> str:
        entropy = random_string(self.ENTROPY_LENGTH, ALPHANUMERIC)
        return entropy + self.checksum(entropy)

    def validate_secret(self, secret: str) -> bool:
        return len(secret) == self.ENTROPY_LENGTH + self.CHECKSUM_LENGTH

    @staticmethod
    def checksum(entropy: str) -> str:
        """CRC32 of the entropy as 8 lowercase hex characters."""
        return f"{zlib.crc32(entropy.encode('utf-8')) & 0xFFFFFFFF:08x}"

    def verify_checksum(self, secret: str) -> bool:
        """Check the checksum suffix of a secret segment."""
        if not self.validate_secret(secret):
            return False
        entropy, checksum = secret[: self.ENTROPY_LENGTH], secret[self.ENTROPY_LENGTH :]
        return secrets.compare_digest(self.checksum(entropy), checksum)


class UuidTokenGenerator(TokenGenerator):
    """Version 4 UUID secrets.

    Example: sk_test_550e8400-e29b-41d4-a716-446655440000
    """

    def generate_secret(self) -> str:
        return str(uuid.uuid4())

    def validate_secret(self, secret: str) -> bool:
        try:
            return str(uuid.UUID(secret)) == secret.lower()
        except ValueError:
            return False
