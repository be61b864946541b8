"""One-way token hashers.

Tokens are high-entropy random strings, so a fast SHA-2 digest is enough for
storage; no salting or key stretching is applied. Verification re-hashes and
compares with ``hmac.compare_digest`` so that timing does not depend on where
two digests first differ.
"""

from __future__ import annotations

import hashlib
import hmac
from abc import ABC, abstractmethod


class TokenHasher(ABC):
    """Base class for token hashers."""

    name: str = ""

    @abstractmethod
    def hash(self, token: str) -> str:
        """Hash a plaintext token into a hex digest."""

    def verify(self, token: str, digest: str) -> bool:
        """Check a plaintext token against a stored digest.

        Never raises: malformed input simply does not verify.
        """
        if not isinstance(token, str) or not isinstance(digest, str):
            return False
        try:
            expected = digest.encode("ascii")
        except UnicodeEncodeError:
            return False
        return hmac.compare_digest(expected, self.hash(token).encode("ascii"))


class HashlibTokenHasher(TokenHasher):
    """Hasher backed by a hashlib algorithm."""

    def __init__(self, algorithm: str):
        hashlib.new(algorithm)
        self.name = algorithm

    def hash(self, token: str) -> str:
        return hashlib.new(self.name, token.encode("utf-8")).hexdigest()

    @property
    def digest_length(self) -> int:
        """Length of the hex digest this hasher produces."""
        return hashlib.new(self.name).digest_size * 2


class Sha256TokenHasher(HashlibTokenHasher):
    """SHA-256 hasher (64 hex characters). The default."""

    def __init__(self):
        super().__init__("sha256")


class Sha512TokenHasher(HashlibTokenHasher):
    """SHA-512 hasher (128 hex characters)."""

    def __init__(self):
        super().__init__("sha512")
