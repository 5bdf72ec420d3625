"""
homeops/models/record.py
Shared dataclass schema used by the ledger, classifier, policy engine
and pipeline. Keep logic out of here beyond parsing and lookups.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

# Closed sets; llm.schema validates classifier output against these
KINDS         = ('chore', 'recovery', 'none')
EFFORT_LEVELS = ('low', 'medium', 'high')


@dataclass
class InboundMessage:
    """One logical chat message as handed over by the delivery queue."""
    conversation_id: str
    message_id:      int        # per-conversation monotonic
    sender_id:       int
    sender_name:     str
    text:            str
    sent_at:         int        # unix seconds

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'InboundMessage':
        """Accepts snake_case keys or the upstream camelCase body."""
        def pick(snake: str, camel: str):
            if snake in data:
                return data[snake]
            return data[camel]

        return cls(
            conversation_id = str(pick('conversation_id', 'chatId')),
            message_id      = int(pick('message_id', 'messageId')),
            sender_id       = int(pick('sender_id', 'userId')),
            sender_name     = str(pick('sender_name', 'userName') or ''),
            text            = str(pick('text', 'text') or ''),
            sent_at         = int(pick('sent_at', 'timestamp')),
        )


@dataclass
class RawMessageRecord:
    """Ledger row. Unique on (conversation_id, message_id)."""
    conversation_id: str
    message_id:      int
    sender_id:       int
    sender_name:     str
    text:            str
    sent_at:         int
    recorded_at:     str        # ISO-8601 UTC
    expires_at:      int        # unix seconds
    raw:             str = ''   # original delivery body, audit only


@dataclass
class ActivityRecord:
    """Classified household contribution or recovery event."""
    conversation_id:  str
    activity_id:      str       # unique, time-ordered
    message_id:       int
    sender_id:        int
    sender_name:      str
    kind:             str       # chore / recovery
    activity_label:   str
    effort_level:     str       # low / medium / high
    confidence:       float
    occurred_at:      int
    created_at:       str
    reply_message_id: Optional[int] = None


@dataclass
class ResponseCounterRecord:
    conversation_id:  str
    calendar_day:     str       # YYYY-MM-DD, local
    count:            int
    last_response_at: Optional[int]
    expires_at:       int


@dataclass(frozen=True)
class ClassificationResult:
    kind:           str
    activity_label: str
    effort_level:   str
    confidence:     float


@dataclass(frozen=True)
class PolicyDecision:
    respond:            bool
    text:               Optional[str] = None
    reason:             str           = 'ok'
    directly_addressed: bool          = False


@dataclass(frozen=True)
class LocalWindow:
    calendar_day: str
    hour:         int
    quiet_hours:  bool


@dataclass(frozen=True)
class ToneResult:
    valid:    bool
    category: Optional[str] = None   # blame / comparison / command / judgment
    reason:   Optional[str] = None


@dataclass(frozen=True)
class BotIdentity:
    user_id:  int
    username: str


@dataclass
class Delivery:
    """One unit from the delivery queue: an opaque id plus the message body."""
    delivery_id: str
    body:        Any                 # JSON text or already-decoded dict


@dataclass
class StageResult:
    """Outcome of one pipeline stage for one message."""
    stage:  str
    status: str                      # ok / skipped / duplicate / failed
    error:  Optional[str] = None


@dataclass
class MessageReport:
    delivery_id:     str
    ok:              bool
    conversation_id: Optional[str]   = None
    message_id:      Optional[int]   = None
    stages:          List[StageResult] = field(default_factory=list)
    activity_id:     Optional[str]   = None
    reply_message_id: Optional[int]  = None
    decision:        Optional[PolicyDecision] = None

    def stage(self, name: str) -> Optional[StageResult]:
        return next((s for s in self.stages if s.stage == name), None)


@dataclass
class BatchReport:
    reports: List[MessageReport] = field(default_factory=list)

    @property
    def batch_item_failures(self) -> List[str]:
        return [r.delivery_id for r in self.reports if not r.ok]
