"""
tests/helpers.py
Synthetic message builders (no PII) and a Stockholm wall-clock helper.
"""

from datetime import datetime
from zoneinfo import ZoneInfo

from homeops.models.record import ClassificationResult, InboundMessage

STOCKHOLM = ZoneInfo("Europe/Stockholm")


def local_ts(year=2026, month=3, day=10, hour=14, minute=0) -> int:
    """Unix seconds for a Stockholm wall-clock time."""
    return int(datetime(year, month, day, hour, minute, tzinfo=STOCKHOLM).timestamp())


def make_message(
    conversation_id="C1",
    message_id=42,
    sender_id=7,
    sender_name="Anna",
    text="Jag diskade",
    sent_at=None,
) -> InboundMessage:
    return InboundMessage(
        conversation_id = conversation_id,
        message_id      = message_id,
        sender_id       = sender_id,
        sender_name     = sender_name,
        text            = text,
        sent_at         = sent_at if sent_at is not None else local_ts(),
    )


def make_classification(kind="chore", label="diska", effort="medium", confidence=0.9):
    return ClassificationResult(
        kind=kind, activity_label=label, effort_level=effort, confidence=confidence,
    )
