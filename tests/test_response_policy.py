"""
tests/test_response_policy.py
Silence-first gates, fail-closed reads, reply text.
"""

import sqlite3
from unittest.mock import MagicMock

import pytest

from homeops.models.record import BotIdentity
from homeops.policy.response_policy import (
    COOLDOWN_MINUTES, DAILY_CAP, FALLBACK_REPLY, PolicyInput, ResponsePolicy,
    build_reply, is_directly_addressed,
)
from homeops.store.ledger import build_raw_record

from tests.helpers import local_ts, make_classification, make_message

DAY = "2026-03-10"
BOT = BotIdentity(user_id=999, username="HushallsBot")


@pytest.fixture
def policy(counter, ledger):
    return ResponsePolicy(counter, ledger)


def _evaluate(policy, message=None, classification=None, identity=None):
    return policy.evaluate(PolicyInput(
        message        = message or make_message(),
        classification = classification or make_classification(),
        identity       = identity,
    ))


class TestGates:

    def test_confident_chore_gets_a_reply(self, policy):
        d = _evaluate(policy)
        assert d.respond is True
        assert d.reason == "ok"
        assert d.text == "Noterat: diska ✓"

    def test_recovery_gets_a_reply(self, policy):
        d = _evaluate(policy, classification=make_classification(kind="recovery", label="vila"))
        assert d.respond is True
        assert d.text == "Noterat: vila ✓"

    def test_none_is_silent_even_at_full_confidence(self, policy):
        d = _evaluate(policy, classification=make_classification(kind="none", label="", confidence=1.0))
        assert d.respond is False
        assert d.reason == "none"
        assert d.text is None

    @pytest.mark.parametrize("confidence, respond", [
        (0.84, False),
        (0.85, True),
        (0.99, True),
    ])
    def test_confidence_threshold(self, policy, confidence, respond):
        d = _evaluate(policy, classification=make_classification(confidence=confidence))
        assert d.respond is respond
        if not respond:
            assert d.reason == "low_confidence"

    @pytest.mark.parametrize("hour", [22, 23, 0, 3, 6])
    def test_quiet_hours(self, policy, hour):
        d = _evaluate(policy, message=make_message(sent_at=local_ts(hour=hour)))
        assert d.respond is False
        assert d.reason == "quiet_hours"

    def test_quiet_hours_follow_message_timestamp(self, policy):
        # 07:00 local is open again regardless of when we evaluate
        assert _evaluate(policy, message=make_message(sent_at=local_ts(hour=7))).respond is True

    def test_daily_cap(self, policy, counter):
        for _ in range(DAILY_CAP):
            counter.increment("C1", DAY, responded_at=local_ts(hour=8))
        d = _evaluate(policy)
        assert d.respond is False
        assert d.reason == "daily_cap"

    def test_below_cap_still_responds(self, policy, counter):
        for _ in range(DAILY_CAP - 1):
            counter.increment("C1", DAY, responded_at=local_ts(hour=8))
        assert _evaluate(policy).respond is True

    def test_cap_is_per_local_day(self, policy, counter):
        for _ in range(DAILY_CAP):
            counter.increment("C1", "2026-03-09", responded_at=local_ts(day=9, hour=8))
        assert _evaluate(policy).respond is True

    def test_cooldown(self, policy, counter):
        counter.increment("C1", DAY, responded_at=local_ts(hour=13, minute=50))
        d = _evaluate(policy)
        assert d.respond is False
        assert d.reason == "cooldown"

    def test_cooldown_elapsed(self, policy, counter):
        last = local_ts(hour=14) - COOLDOWN_MINUTES * 60
        counter.increment("C1", DAY, responded_at=last)
        assert _evaluate(policy).respond is True

    def test_fast_conversation(self, policy, ledger):
        now = local_ts()
        for i, sender in enumerate((1, 2, 3)):
            ledger.record_if_new(build_raw_record(
                make_message(message_id=30 + i, sender_id=sender, sent_at=now - 20 + i)))
        d = _evaluate(policy)
        assert d.respond is False
        assert d.reason == "fast_conversation"

    def test_fast_conversation_despite_later_history(self, policy, ledger):
        # Out-of-order delivery: ten newer rows are already ledgered
        now = local_ts()
        for i, sender in enumerate((1, 2, 3)):
            ledger.record_if_new(build_raw_record(
                make_message(message_id=30 + i, sender_id=sender, sent_at=now - 20 + i)))
        for i in range(10):
            ledger.record_if_new(build_raw_record(
                make_message(message_id=100 + i, sender_id=1, sent_at=now + 120 + i)))

        d = _evaluate(policy)
        assert d.respond is False
        assert d.reason == "fast_conversation"

    def test_own_messages_do_not_make_it_fast(self, policy, ledger):
        now = local_ts()
        for i in range(5):
            ledger.record_if_new(build_raw_record(
                make_message(message_id=30 + i, sender_id=7, sent_at=now - 20 + i)))
        assert _evaluate(policy).respond is True

    def test_old_history_is_not_fast(self, policy, ledger):
        now = local_ts()
        for i, sender in enumerate((1, 2, 3)):
            ledger.record_if_new(build_raw_record(
                make_message(message_id=30 + i, sender_id=sender, sent_at=now - 600 + i)))
        assert _evaluate(policy).respond is True

    def test_own_message_is_silent(self, policy):
        d = _evaluate(policy, message=make_message(sender_id=BOT.user_id), identity=BOT)
        assert d.respond is False
        assert d.reason == "own_message"

    def test_none_wins_over_every_other_gate(self, policy):
        d = _evaluate(
            policy,
            message        = make_message(sent_at=local_ts(hour=23)),
            classification = make_classification(kind="none", label="", confidence=0.1),
        )
        assert d.reason == "none"


class TestFailClosed:

    def test_counter_read_failure(self, ledger):
        counter = MagicMock()
        counter.get.side_effect = sqlite3.OperationalError("disk I/O error")
        d = _evaluate(ResponsePolicy(counter, ledger))
        assert d.respond is False
        assert d.reason == "read_failure"

    def test_history_read_failure(self, counter):
        ledger = MagicMock()
        ledger.recent_messages.side_effect = sqlite3.OperationalError("locked")
        d = _evaluate(ResponsePolicy(counter, ledger))
        assert d.respond is False
        assert d.reason == "read_failure"


class TestReplyText:

    def test_label_is_named(self):
        assert build_reply("tvätta") == "Noterat: tvätta ✓"

    def test_empty_label_falls_back(self):
        assert build_reply("") == FALLBACK_REPLY
        assert build_reply("   ") == FALLBACK_REPLY

    def test_label_failing_tone_falls_back(self):
        assert build_reply("bra jobbat") == FALLBACK_REPLY
        assert build_reply("mer än vanligt") == FALLBACK_REPLY

    def test_long_label_truncated(self):
        text = build_reply("x" * 200)
        assert text.startswith("Noterat: ")
        assert len(text) < 60

    def test_policy_uses_fallback_for_rejected_label(self, policy):
        d = _evaluate(policy, classification=make_classification(label="du borde diska"))
        assert d.respond is True
        assert d.text == FALLBACK_REPLY


class TestDirectAddressing:

    def test_detected_case_insensitively(self):
        assert is_directly_addressed("@hushallsbot jag diskade", BOT) is True

    def test_not_addressed(self):
        assert is_directly_addressed("jag diskade", BOT) is False

    def test_unknown_identity(self):
        assert is_directly_addressed("@HushallsBot", None) is False

    def test_reported_but_not_required(self, policy):
        plain     = _evaluate(policy, identity=BOT)
        addressed = _evaluate(policy, message=make_message(message_id=43, text="@HushallsBot jag diskade"),
                              identity=BOT)
        assert plain.respond is True and plain.directly_addressed is False
        assert addressed.respond is True and addressed.directly_addressed is True
