"""Tests for token generation and parsing."""

import uuid

import pytest

from bearerkit.exceptions import MalformedTokenError
from bearerkit.tokens.generators import (
    BASE58_ALPHABET,
    RandomTokenGenerator,
    SeamTokenGenerator,
    UuidTokenGenerator,
    format_token,
    parse_token,
)


class TestParseToken:
    """Tests for the generator-agnostic parser."""

    def test_parse_valid(self):
        """Test a three-segment token parses into components."""
        components = parse_token("sk_test_abc123")
        assert components.prefix == "sk"
        assert components.environment == "test"
        assert components.secret == "abc123"
        assert components.full_token == "sk_test_abc123"

    @pytest.mark.parametrize(
        "value",
        ["", "sk_test", "sk_test_abc_def", "_test_abc", "sk__abc", "sk_test_", None, 42],
    )
    def test_parse_rejects_malformed(self, value):
        """Test malformed input yields None instead of raising."""
        assert parse_token(value) is None


class TestFormatToken:
    """Tests for format_token."""

    def test_format(self):
        """Test segments are joined with underscores."""
        assert format_token("pk", "live", "xyz") == "pk_live_xyz"

    def test_format_rejects_underscore_in_prefix(self):
        """Test a prefix containing the delimiter is rejected."""
        with pytest.raises(MalformedTokenError):
            format_token("s_k", "test", "xyz")

    def test_format_rejects_empty_environment(self):
        """Test an empty environment is rejected."""
        with pytest.raises(MalformedTokenError):
            format_token("sk", "", "xyz")


class TestSeamTokenGenerator:
    """Tests for the base58 generator."""

    def test_generate_round_trip(self):
        """Test a generated token parses back to its inputs."""
        generator = SeamTokenGenerator()
        token = generator.generate("sk", "test")
        components = generator.parse(token)
        assert components.prefix == "sk"
        assert components.environment == "test"
        assert components.full_token == token

    def test_secret_alphabet_and_length(self):
        """Test the secret is 24 base58 characters."""
        secret = SeamTokenGenerator().generate("sk", "live").split("_")[2]
        assert len(secret) == 24
        assert all(char in BASE58_ALPHABET for char in secret)
        assert not set("0OIl") & set(secret)

    def test_generate_unique(self):
        """Test generated tokens are unique."""
        generator = SeamTokenGenerator()
        assert len({generator.generate("sk", "test") for _ in range(200)}) == 200

    def test_parse_rejects_non_base58(self):
        """Test secrets outside the alphabet are rejected."""
        assert SeamTokenGenerator().parse("sk_test_0OIl0OIl") is None

    def test_generate_rejects_bad_prefix(self):
        """Test generation refuses a prefix with an underscore."""
        with pytest.raises(MalformedTokenError):
            SeamTokenGenerator().generate("sk_x", "test")


class TestRandomTokenGenerator:
    """Tests for the checksummed random generator."""

    def test_secret_length(self):
        """Test the secret is 40 characters plus an 8-character checksum."""
        token = RandomTokenGenerator().generate("rk", "test")
        assert len(token.split("_")[2]) == 48

    def test_checksum_verifies(self):
        """Test generated secrets carry a valid CRC32 checksum."""
        generator = RandomTokenGenerator()
        secret = generator.parse(generator.generate("sk", "test")).secret
        assert generator.verify_checksum(secret)

    def test_checksum_detects_typo(self):
        """Test a changed character breaks the checksum."""
        generator = RandomTokenGenerator()
        secret = generator.parse(generator.generate("sk", "test")).secret
        flipped = ("b" if secret[0] == "a" else "a") + secret[1:]
        assert not generator.verify_checksum(flipped)

    def test_parse_rejects_wrong_length(self):
        """Test secrets that are not 48 characters are rejected."""
        assert RandomTokenGenerator().parse("sk_test_tooshort") is None


class TestUuidTokenGenerator:
    """Tests for the UUID generator."""

    def test_generate_uuid4(self):
        """Test the secret is a version 4 UUID."""
        generator = UuidTokenGenerator()
        secret = generator.parse(generator.generate("pk", "live")).secret
        assert uuid.UUID(secret).version == 4

    def test_parse_rejects_non_uuid(self):
        """Test non-UUID secrets are rejected."""
        assert UuidTokenGenerator().parse("pk_live_not-a-uuid") is None
