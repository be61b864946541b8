"""Tests for token hashers."""

import pytest

from bearerkit.tokens.hashers import HashlibTokenHasher, Sha256TokenHasher, Sha512TokenHasher


@pytest.mark.parametrize("hasher", [Sha256TokenHasher(), Sha512TokenHasher()])
class TestHashers:
    """Tests shared by the SHA-2 hashers."""

    def test_verify_own_hash(self, hasher):
        """Test a plaintext verifies against its own digest."""
        assert hasher.verify("sk_test_abc", hasher.hash("sk_test_abc"))

    def test_verify_other_hash(self, hasher):
        """Test a plaintext does not verify against another's digest."""
        assert not hasher.verify("sk_test_abc", hasher.hash("sk_test_abd"))

    def test_hash_is_deterministic(self, hasher):
        """Test hashing is consistent."""
        assert hasher.hash("pk_live_x") == hasher.hash("pk_live_x")

    def test_digest_length(self, hasher):
        """Test the hex digest has the algorithm's length."""
        assert len(hasher.hash("x")) == hasher.digest_length

    def test_verify_never_raises(self, hasher):
        """Test malformed digests simply fail verification."""
        assert not hasher.verify("x", "ünïcode")
        assert not hasher.verify("x", None)
        assert not hasher.verify(None, hasher.hash("x"))


class TestHashlibTokenHasher:
    """Tests for the hashlib-backed base."""

    def test_names(self):
        """Test hasher names match their algorithms."""
        assert Sha256TokenHasher().name == "sha256"
        assert Sha512TokenHasher().name == "sha512"

    def test_known_digest(self):
        """Test the sha256 digest matches the reference value."""
        assert (
            Sha256TokenHasher().hash("abc")
            == "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"
        )

    def test_unknown_algorithm(self):
        """Test an unknown algorithm is rejected up front."""
        with pytest.raises(ValueError):
            HashlibTokenHasher("not-an-algorithm")
