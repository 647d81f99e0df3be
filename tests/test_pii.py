"""Tests for PII detection, masking and placeholder resolution."""

import pytest

from mostrador.services.pii import (
    PIIKind,
    contains_placeholder,
    detect_pii,
    luhn_valid,
    mask,
    resolve,
    resolve_nested,
)


class TestLuhn:
    """Tests for the card checksum."""

    def test_valid_card(self) -> None:
        assert luhn_valid("4111 1111 1111 1111") is True

    def test_invalid_checksum(self) -> None:
        assert luhn_valid("4111 1111 1111 1112") is False

    def test_too_short(self) -> None:
        assert luhn_valid("4111") is False


class TestDetectPII:
    """Tests for detect_pii."""

    def test_detects_email(self) -> None:
        matches = detect_pii("escribime a ana@example.com")
        assert [m.kind for m in matches] == [PIIKind.EMAIL]
        assert matches[0].value == "ana@example.com"

    def test_card_failing_luhn_is_not_a_card(self) -> None:
        matches = detect_pii("tarjeta 4111 1111 1111 1112")
        assert PIIKind.CREDIT_CARD not in [m.kind for m in matches]

    def test_valid_card_is_not_also_a_dni(self) -> None:
        matches = detect_pii("tarjeta 4111111111111111")
        assert [m.kind for m in matches] == [PIIKind.CREDIT_CARD]

    def test_detects_dotted_dni(self) -> None:
        matches = detect_pii("mi DNI es 30.123.456")
        assert [m.kind for m in matches] == [PIIKind.DNI]

    def test_results_ordered_by_position(self) -> None:
        matches = detect_pii("30.123.456 y ana@example.com")
        assert [m.kind for m in matches] == [PIIKind.DNI, PIIKind.EMAIL]

    def test_no_pii(self) -> None:
        assert detect_pii("hola, quiero una remera") == []


class TestMask:
    """Tests for mask."""

    def test_masks_email(self) -> None:
        result = mask("mi mail es ana@example.com")
        assert result.sanitized == "mi mail es [EMAIL_1]"
        assert result.metadata == {"[EMAIL_1]": "ana@example.com"}
        assert result.has_pii is True

    def test_repeated_value_shares_placeholder(self) -> None:
        result = mask("ana@example.com o ana@example.com")
        assert result.sanitized == "[EMAIL_1] o [EMAIL_1]"
        assert len(result.metadata) == 1

    def test_numbering_is_per_kind(self) -> None:
        result = mask("ana@example.com, beto@example.com, 30.123.456")
        assert result.sanitized == "[EMAIL_1], [EMAIL_2], [DNI_1]"

    def test_existing_metadata_is_reused_and_extended(self) -> None:
        existing = {"[EMAIL_1]": "ana@example.com"}
        result = mask("beto@example.com y ana@example.com", existing=existing)
        assert result.sanitized == "[EMAIL_2] y [EMAIL_1]"
        assert result.metadata["[EMAIL_2]"] == "beto@example.com"
        # Input table is not mutated
        assert existing == {"[EMAIL_1]": "ana@example.com"}

    def test_text_without_pii_is_unchanged(self) -> None:
        result = mask("hola")
        assert result.sanitized == "hola"
        assert result.has_pii is False


class TestResolve:
    """Tests for resolve and resolve_nested."""

    def test_round_trip(self) -> None:
        text = "soy ana@example.com, DNI 30.123.456"
        result = mask(text)
        assert resolve(result.sanitized, result.metadata) == text

    def test_values_with_regex_metacharacters_are_literal(self) -> None:
        metadata = {"[EMAIL_1]": r"a\1+b$@example.com"}
        assert resolve("mail: [EMAIL_1]", metadata) == r"mail: a\1+b$@example.com"

    def test_longer_placeholder_wins(self) -> None:
        metadata = {"[EMAIL_1]": "uno@example.com", "[EMAIL_10]": "diez@example.com"}
        assert resolve("[EMAIL_10]", metadata) == "diez@example.com"

    def test_empty_metadata_returns_text(self) -> None:
        assert resolve("[EMAIL_1]", None) == "[EMAIL_1]"

    def test_resolve_nested_structures(self) -> None:
        metadata = {"[EMAIL_1]": "ana@example.com"}
        value = {"email": "[EMAIL_1]", "list": ["[EMAIL_1]", 3], "pair": ("x", "[EMAIL_1]")}
        assert resolve_nested(value, metadata) == {
            "email": "ana@example.com",
            "list": ["ana@example.com", 3],
            "pair": ("x", "ana@example.com"),
        }

    @pytest.mark.parametrize(
        ("text", "expected"),
        [("[EMAIL_1]", True), ("[DNI_12] ok", True), ("[FOO_1]", False), ("hola", False)],
    )
    def test_contains_placeholder(self, text: str, expected: bool) -> None:
        assert contains_placeholder(text) is expected
