"""
homeops/utils/tone_validator.py
Last gate before any reply leaves the system. Pure, deterministic, no I/O.

The bot acknowledges; it never compares people, assigns blame, gives
orders, or grades anyone's effort. Every candidate reply is matched
against the pattern table below and the first hit wins.
"""

import re
from typing import List, Tuple

from homeops.models.record import ToneResult

# ── PATTERN TABLE ────────────────────────────────────────────
# Order matters: categories are checked top to bottom and the first
# matching pattern decides the reported category.
# Swedish first (household language), English variants after.

BLOCKED_PATTERNS: List[Tuple[str, str]] = [
    # blame
    ('blame',      r'\bdu borde\b'),
    ('blame',      r'\bditt fel\b'),
    ('blame',      r'\bdu glömde\b'),
    ('blame',      r'\bdu har inte\b'),
    ('blame',      r'\byour fault\b'),
    ('blame',      r'\byou should\b'),
    ('blame',      r'\byou forgot\b'),

    # comparison
    ('comparison', r'\bmer än\b'),
    ('comparison', r'\bmindre än\b'),
    ('comparison', r'\bjämfört med\b'),
    ('comparison', r'\bbättre än\b'),
    ('comparison', r'\bsämre än\b'),
    ('comparison', r'\bmore than\b'),
    ('comparison', r'\bless than\b'),
    ('comparison', r'\bcompared to\b'),

    # command
    ('command',    r'\bgör detta\b'),
    ('command',    r'\bdu måste\b'),
    ('command',    r'\bglöm inte\b'),
    ('command',    r'\bse till att\b'),
    ('command',    r'\bdo this\b'),
    ('command',    r'\byou must\b'),
    ('command',    r"\bdon't forget\b"),

    # judgment
    ('judgment',   r'\bbra jobbat\b'),
    ('judgment',   r'\bdåligt\b'),
    ('judgment',   r'\blat\b'),
    ('judgment',   r'\bslarvigt\b'),
    ('judgment',   r'\bgood job\b'),
    ('judgment',   r'\bbad job\b'),
    ('judgment',   r'\blazy\b'),
]

_COMPILED = [
    (category, re.compile(pattern, re.IGNORECASE))
    for category, pattern in BLOCKED_PATTERNS
]

CATEGORIES = ('blame', 'comparison', 'command', 'judgment')


def validate_tone(text: str) -> ToneResult:
    """Return the first matching category, or valid=True."""
    for category, pattern in _COMPILED:
        if pattern.search(text or ''):
            return ToneResult(
                valid    = False,
                category = category,
                reason   = f"Contains {category} language",
            )
    return ToneResult(valid=True)
