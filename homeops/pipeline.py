"""
homeops/pipeline.py
Per-message orchestrator.

STAGES (each one's failure is caught and logged on its own):
  ledger    conditional insert — the only idempotency gate
  classify  external classification call
  persist   activity record (chore / recovery only)
  policy    respond-or-silence decision + reply text
  dispatch  send the reply (never retried)
  counter   CAS increment of today's reply count
  attach    write reply id onto the activity record

PROPAGATION:
  ledger StorageFailure                     → message failed, redeliver
  undecodable body                          → message failed, redeliver (the one
                                              non-ledger case; the queue dead-letters poison)
  anything downstream                       → logged, message still ok

Only the ledger stage is worth retrying: once a message is recorded,
redelivering it would hit the duplicate branch and do nothing anyway,
and re-running the downstream stages could produce a second reply.

Privacy: no message text in logs — ids, stage names and reasons only.
"""

import json
import logging
import sqlite3
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Union

from homeops.errors import DispatchFailure, StorageFailure
from homeops.llm.classifier import ClassificationAdapter
from homeops.models.record import (
    BatchReport, BotIdentity, Delivery, InboundMessage, MessageReport, StageResult,
)
from homeops.policy.response_policy import PolicyInput, ResponsePolicy
from homeops.sender.telegram_sender import TelegramSender
from homeops.store.activity_store import ActivityStore
from homeops.store.ledger import DEFAULT_RETENTION_DAYS, Ledger, build_raw_record
from homeops.store.response_counter import ResponseCounter

logger = logging.getLogger(__name__)


class Pipeline:

    def __init__(
        self,
        ledger:             Ledger,
        activities:         ActivityStore,
        classifier:         ClassificationAdapter,
        policy:             ResponsePolicy,
        sender:             TelegramSender,
        counter:            ResponseCounter,
        identity:           Optional[BotIdentity] = None,
        raw_retention_days: int                   = DEFAULT_RETENTION_DAYS,
        conn:               Optional[sqlite3.Connection] = None,
    ):
        self.ledger             = ledger
        self.activities         = activities
        self.classifier         = classifier
        self.policy             = policy
        self.sender             = sender
        self.counter            = counter
        self.identity           = identity
        self.raw_retention_days = raw_retention_days
        self.conn               = conn
        self._identity_failed   = False   # getMe already failed in this batch

    def close(self) -> None:
        if self.conn is not None:
            self.conn.close()
            self.conn = None

    # ── BATCH ────────────────────────────────────────────────

    def process_batch(self, deliveries: Iterable[Delivery]) -> BatchReport:
        """Each delivery is independent; one bad message never blocks the rest."""
        batch = BatchReport()
        self._identity_failed = False
        for delivery in deliveries:
            batch.reports.append(self.process_delivery(delivery))

        failures = batch.batch_item_failures
        logger.info(
            f"Batch complete: {len(batch.reports)} deliveries, "
            f"{len(failures)} marked for redelivery"
        )
        return batch

    def process_delivery(self, delivery: Delivery) -> MessageReport:
        try:
            if isinstance(delivery.body, str):
                raw, data = delivery.body, json.loads(delivery.body)
            else:
                raw, data = json.dumps(delivery.body), delivery.body
            message = InboundMessage.from_dict(data)
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            logger.error(f"Delivery {delivery.delivery_id}: undecodable body ({type(e).__name__})")
            return MessageReport(
                delivery_id = delivery.delivery_id,
                ok          = False,
                stages      = [StageResult('decode', 'failed', type(e).__name__)],
            )
        return self.process_message(message, delivery_id=delivery.delivery_id, raw=raw)

    # ── SINGLE MESSAGE ───────────────────────────────────────

    def process_message(
        self,
        message:     InboundMessage,
        delivery_id: str = '',
        raw:         str = '',
    ) -> MessageReport:
        report = MessageReport(
            delivery_id     = delivery_id or f"{message.conversation_id}/{message.message_id}",
            ok              = True,
            conversation_id = message.conversation_id,
            message_id      = message.message_id,
        )
        tag = f"{message.conversation_id}/{message.message_id}"

        def record(stage: str, status: str, error: Any = None) -> None:
            if isinstance(error, BaseException):
                error = f"{type(error).__name__}: {error}"
            report.stages.append(StageResult(stage, status, error))

        # 1. Ledger — the only stage whose failure propagates
        try:
            result = self.ledger.record_if_new(
                build_raw_record(message, raw=raw, retention_days=self.raw_retention_days)
            )
        except StorageFailure as e:
            logger.error(f"[{tag}] ledger insert failed, message will be redelivered: {e}")
            record('ledger', 'failed', e)
            report.ok = False
            return report

        if not result.inserted:
            record('ledger', 'duplicate')
            return report
        record('ledger', 'ok')

        # 2. Classify
        try:
            classification = self.classifier.classify(message.text)
        except Exception as e:
            logger.error(f"[{tag}] classification failed, message kept as processed: {e}")
            record('classify', 'failed', e)
            return report
        record('classify', 'ok')

        if classification.kind == 'none':
            record('persist', 'skipped')
            return report

        # 3. Persist activity
        try:
            activity = self.activities.save_activity(message, classification)
        except Exception as e:
            logger.error(f"[{tag}] activity persist failed: {e}")
            record('persist', 'failed', e)
            return report
        report.activity_id = activity.activity_id
        record('persist', 'ok')

        # 4. Policy
        try:
            decision = self.policy.evaluate(PolicyInput(
                message        = message,
                classification = classification,
                identity       = self._resolve_identity(),
            ))
        except Exception as e:
            logger.error(f"[{tag}] policy evaluation failed, staying silent: {e}", exc_info=True)
            record('policy', 'failed', e)
            return report
        report.decision = decision
        record('policy', 'ok')

        if not decision.respond or not decision.text:
            record('dispatch', 'skipped')
            return report

        # 5. Dispatch — best effort, never retried
        try:
            reply_id = self.sender.send(
                message.conversation_id,
                decision.text,
                in_reply_to_message_id = message.message_id,
            )
        except Exception as e:
            logger.error(f"[{tag}] reply dispatch failed, counter untouched: {e}")
            record('dispatch', 'failed', e)
            return report
        report.reply_message_id = reply_id
        record('dispatch', 'ok')

        # 6. Counter — keyed by the message's local day
        try:
            day = self.policy.window_for(message.sent_at).calendar_day
            new_count = self.counter.increment(
                message.conversation_id, day, responded_at=message.sent_at,
            )
        except Exception as e:
            logger.error(f"[{tag}] counter increment failed: {e}")
            record('counter', 'failed', e)
        else:
            if new_count is None:
                record('counter', 'failed', 'cas_conflict')
            else:
                record('counter', 'ok')

        # 7. Attach reply id
        try:
            attached = self.activities.attach_reply_id(
                message.conversation_id, activity.activity_id, reply_id,
            )
        except Exception as e:
            logger.error(f"[{tag}] reply id attach failed: {e}")
            record('attach', 'failed', e)
        else:
            record('attach', 'ok' if attached else 'skipped')

        return report

    def _resolve_identity(self) -> Optional[BotIdentity]:
        if self.identity is None and not self._identity_failed:
            try:
                self.identity = self.sender.get_identity()
            except DispatchFailure as e:
                self._identity_failed = True
                logger.warning(f"Bot identity unavailable for the rest of this batch: {e}")
        return self.identity


# ── FACTORY ──────────────────────────────────────────────────

def build_pipeline(
    config:  Dict[str, Any],
    db_path: Optional[Union[str, Path]] = None,
    secrets: Optional[Any]              = None,
) -> Pipeline:
    """Wire production collaborators from a config dict (see homeops.config)."""
    from homeops.llm.openai_adapter import OpenAIAdapter
    from homeops.store.db import connect
    from homeops.utils.secrets import SecretCache

    conn    = connect(db_path or config["db_path"])
    secrets = secrets or SecretCache(ttl_sec=config["secret_ttl_sec"])

    ledger  = Ledger(conn)
    counter = ResponseCounter(conn, retention_days=config["counter_retention_days"])

    classifier = ClassificationAdapter(
        backend = OpenAIAdapter(
            model       = config["model"],
            base_url    = config["llm_base_url"],
            timeout_sec = config["classify_timeout_sec"],
        ),
        secrets     = secrets,
        api_key_ref = config["llm_api_key_env"],
        max_retries = config["classify_max_retries"],
    )
    policy = ResponsePolicy(
        counter          = counter,
        ledger           = ledger,
        tz_name          = config["timezone"],
        quiet_start_hour = config["quiet_start_hour"],
        quiet_end_hour   = config["quiet_end_hour"],
    )
    sender = TelegramSender(
        secrets     = secrets,
        token_ref   = config["bot_token_env"],
        api_base    = config["telegram_api_base"],
        timeout_sec = config["dispatch_timeout_sec"],
    )
    return Pipeline(
        ledger             = ledger,
        activities         = ActivityStore(conn),
        classifier         = classifier,
        policy             = policy,
        sender             = sender,
        counter            = counter,
        raw_retention_days = config["raw_retention_days"],
        conn               = conn,
    )
