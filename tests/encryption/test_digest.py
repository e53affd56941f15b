"""
Tests for normalization and keyed digests.
"""

import pytest

from indaleko_fieldcrypt.encryption.digest import (
    DEFAULT_NORMALIZATION,
    DIGEST_PATTERN,
    digest,
    is_digest_string,
    normalize,
)


KEY = b"digest-test-key"


class TestNormalize:
    """Tests for the normalization steps."""

    @pytest.mark.parametrize("text", [" François", "FRANCOIS", "francois  ", "François"])
    def test_default_steps(self, text: str) -> None:
        assert normalize(text) == "francois"

    def test_default_order(self) -> None:
        assert DEFAULT_NORMALIZATION == ("trim", "diacritics", "lowercase")

    def test_empty_string(self) -> None:
        assert normalize("") == ""
        assert normalize("   ") == ""

    def test_selected_steps(self) -> None:
        assert normalize(" José ", ["trim"]) == "José"
        assert normalize(" José ", ["diacritics"]) == " Jose "
        assert normalize(" José ", ["trim", "uppercase"]) == "JOSÉ"
        assert normalize(" José ", []) == " José "

    def test_unknown_step(self) -> None:
        with pytest.raises(KeyError):
            normalize("James", ["soundex"])


class TestDigest:
    """Tests for digest computation."""

    def test_format(self) -> None:
        value = digest("francois", KEY)

        assert len(value) == 64
        assert DIGEST_PATTERN.match(value)
        assert is_digest_string(value)

    def test_deterministic(self) -> None:
        assert digest("francois", KEY) == digest("francois", KEY)

    def test_keyed(self) -> None:
        assert digest("francois", KEY) != digest("francois", b"another-key")

    def test_distinct_inputs(self) -> None:
        assert digest("francois", KEY) != digest("françois", KEY)

    def test_normalization_equivalence(self) -> None:
        assert digest(normalize(" François"), KEY) == digest(normalize("FRANCOIS"), KEY)

    def test_not_invertible(self) -> None:
        value = digest("james bond", KEY)
        assert "james" not in value
        assert "bond" not in value

    def test_is_digest_string(self) -> None:
        assert not is_digest_string("ABC")
        assert not is_digest_string("A" * 64)
        assert not is_digest_string(None)
