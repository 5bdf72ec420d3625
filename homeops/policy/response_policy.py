"""
homeops/policy/response_policy.py
Silence-first response policy.

The engine answers one question per message: may the bot reply, and with
what text? Every gate below can only say no. If a gate cannot be checked
because the counter or history is unreadable, the answer is also no.

GATES (in evaluation order, first "no" wins):
  none              kind == none — absolute, checked before anything else
  own_message       the sender is the bot itself
  low_confidence    confidence < CONFIDENCE_HIGH
  quiet_hours       message timestamp inside the local quiet window
  daily_cap         replies today (local day of the message) >= DAILY_CAP
  cooldown          last reply today less than COOLDOWN_MINUTES before the message
  fast_conversation FAST_OTHER_SENDERS+ messages from others in the last FAST_WINDOW_SEC
  read_failure      counter or history unreadable (fail closed)

Direct addressing (@botname) is detected and reported on the decision
but does not gate acknowledgements.
"""

import logging
import sqlite3
from dataclasses import dataclass
from typing import Optional

from homeops.errors import PolicyReadFailure
from homeops.models.record import (
    BotIdentity, ClassificationResult, InboundMessage, LocalWindow, PolicyDecision,
)
from homeops.store.ledger import Ledger
from homeops.store.response_counter import ResponseCounter
from homeops.utils.local_time import (
    DEFAULT_TIMEZONE, QUIET_END_HOUR, QUIET_START_HOUR, local_window,
)
from homeops.utils.tone_validator import validate_tone

logger = logging.getLogger(__name__)

CONFIDENCE_HIGH    = 0.85
DAILY_CAP          = 3
COOLDOWN_MINUTES   = 15
FAST_WINDOW_SEC    = 60
FAST_OTHER_SENDERS = 3
HISTORY_LIMIT      = 10

FALLBACK_REPLY     = "Noterat ✓"
MAX_LABEL_CHARS    = 40


@dataclass
class PolicyInput:
    message:        InboundMessage
    classification: ClassificationResult
    identity:       Optional[BotIdentity] = None


def build_reply(activity_label: str) -> str:
    """
    One neutral line, one emoji, naming the activity.
    Falls back to FALLBACK_REPLY if the label is empty or the candidate
    fails tone validation.
    """
    label = ' '.join((activity_label or '').split())[:MAX_LABEL_CHARS].strip()
    if not label:
        return FALLBACK_REPLY

    candidate = f"Noterat: {label} ✓"
    tone = validate_tone(candidate)
    if not tone.valid:
        logger.info(f"Reply candidate rejected ({tone.category}) — using fallback")
        return FALLBACK_REPLY
    return candidate


def is_directly_addressed(text: str, identity: Optional[BotIdentity]) -> bool:
    if identity is None or not identity.username:
        return False
    return f"@{identity.username}".lower() in (text or '').lower()


class ResponsePolicy:

    def __init__(
        self,
        counter:          ResponseCounter,
        ledger:           Ledger,
        tz_name:          str = DEFAULT_TIMEZONE,
        quiet_start_hour: int = QUIET_START_HOUR,
        quiet_end_hour:   int = QUIET_END_HOUR,
    ):
        self.counter          = counter
        self.ledger           = ledger
        self.tz_name          = tz_name
        self.quiet_start_hour = quiet_start_hour
        self.quiet_end_hour   = quiet_end_hour

    def window_for(self, ts: int) -> LocalWindow:
        return local_window(ts, self.tz_name, self.quiet_start_hour, self.quiet_end_hour)

    def evaluate(self, params: PolicyInput) -> PolicyDecision:
        msg = params.message
        cls = params.classification
        addressed = is_directly_addressed(msg.text, params.identity)

        def silent(reason: str) -> PolicyDecision:
            logger.info(
                f"Policy: silent for {msg.conversation_id}/{msg.message_id} ({reason})"
            )
            return PolicyDecision(respond=False, reason=reason, directly_addressed=addressed)

        # 1. Non-activities never get a reply
        if cls.kind == 'none':
            return silent('none')

        if params.identity is not None and msg.sender_id == params.identity.user_id:
            return silent('own_message')

        # 2. Below threshold we prefer silence to a guess
        if cls.confidence < CONFIDENCE_HIGH:
            return silent('low_confidence')

        # 3. Quiet hours by the message's own clock
        window = self.window_for(msg.sent_at)
        if window.quiet_hours:
            return silent('quiet_hours')

        # 4+. Stateful gates — any read failure means silence
        try:
            reason = self._stateful_gate(msg, window.calendar_day)
        except PolicyReadFailure as e:
            logger.warning(f"Policy read failed, failing closed: {e}")
            return silent('read_failure')
        if reason:
            return silent(reason)

        text = build_reply(cls.activity_label)
        logger.info(
            f"Policy: respond to {msg.conversation_id}/{msg.message_id} "
            f"(addressed={addressed})"
        )
        return PolicyDecision(respond=True, text=text, reason='ok', directly_addressed=addressed)

    # ── STATEFUL GATES ───────────────────────────────────────

    def _stateful_gate(self, msg: InboundMessage, day: str) -> Optional[str]:
        try:
            counter = self.counter.get(msg.conversation_id, day)
        except sqlite3.Error as e:
            raise PolicyReadFailure(f"counter read: {e}") from e

        count = counter.count if counter else 0
        if count >= DAILY_CAP:
            return 'daily_cap'

        last = counter.last_response_at if counter else None
        if last is not None and (msg.sent_at - last) < COOLDOWN_MINUTES * 60:
            return 'cooldown'

        cutoff = msg.sent_at - FAST_WINDOW_SEC
        try:
            history = self.ledger.recent_messages(
                msg.conversation_id,
                limit = HISTORY_LIMIT,
                since = cutoff,
                until = msg.sent_at,
            )
        except sqlite3.Error as e:
            raise PolicyReadFailure(f"history read: {e}") from e

        others = sum(1 for h in history if h.sender_id != msg.sender_id)
        if others >= FAST_OTHER_SENDERS:
            return 'fast_conversation'
        return None
