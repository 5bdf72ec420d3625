"""
tests/test_tone_validator.py
Pattern gate on outgoing reply text.
"""

import pytest

from homeops.utils.tone_validator import BLOCKED_PATTERNS, CATEGORIES, validate_tone


class TestValidateTone:

    @pytest.mark.parametrize("text", [
        "Noterat ✓",
        "Noterat: diska ✓",
        "Noterat: vila ✓",
        "Noted: laundry ✓",
        "Noterat: platta till kartonger ✓",   # 'lat' inside a word is fine
    ])
    def test_neutral_text_passes(self, text):
        result = validate_tone(text)
        assert result.valid is True
        assert result.category is None

    @pytest.mark.parametrize("text, category", [
        ("Du borde diska oftare", "blame"),
        ("Det var ditt fel", "blame"),
        ("It's your fault", "blame"),
        ("Anna diskar mer än Erik", "comparison"),
        ("Compared to last week", "comparison"),
        ("Gör detta innan middagen", "command"),
        ("Du måste dammsuga", "command"),
        ("Don't forget the bins", "command"),
        ("Bra jobbat!", "judgment"),
        ("Det var dåligt gjort", "judgment"),
        ("Good job", "judgment"),
        ("Så lat", "judgment"),
    ])
    def test_blocked_categories(self, text, category):
        result = validate_tone(text)
        assert result.valid is False
        assert result.category == category
        assert category in result.reason

    def test_case_insensitive(self):
        assert validate_tone("BRA JOBBAT").category == "judgment"

    def test_first_category_wins(self):
        # blame is listed before judgment
        assert validate_tone("Du borde, bra jobbat").category == "blame"

    def test_empty_text_is_valid(self):
        assert validate_tone("").valid is True

    def test_pattern_table_only_uses_known_categories(self):
        assert {c for c, _ in BLOCKED_PATTERNS} == set(CATEGORIES)

    def test_deterministic(self):
        assert validate_tone("Du måste") == validate_tone("Du måste")
