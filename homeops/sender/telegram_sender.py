"""
homeops/sender/telegram_sender.py
Reply dispatch over the Telegram Bot API.

send() is best-effort and never retried here: a reply that may or may not
have been delivered is not worth the risk of a duplicate in the group chat.
Every failure surfaces as DispatchFailure. The bot token is fetched from the
secret cache per call and never logged (it is part of the URL, so request
errors are re-worded before they leave this module).
"""

import json
import logging
import urllib.error
import urllib.request
from typing import Any, Dict, Optional

from homeops.errors import DispatchFailure, SecretUnavailable
from homeops.models.record import BotIdentity
from homeops.utils.secrets import SecretCache

logger = logging.getLogger(__name__)

DEFAULT_API_BASE = 'https://api.telegram.org'


class TelegramSender:

    def __init__(
        self,
        secrets:     SecretCache,
        token_ref:   str   = 'TELEGRAM_BOT_TOKEN',
        api_base:    str   = DEFAULT_API_BASE,
        timeout_sec: float = 5,
    ):
        self.secrets     = secrets
        self.token_ref   = token_ref
        self.api_base    = api_base.rstrip('/')
        self.timeout_sec = timeout_sec
        self._identity: Optional[BotIdentity] = None

    # ── INTERNAL ─────────────────────────────────────────────

    def _call(self, method: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        try:
            token = self.secrets.get(self.token_ref)
        except SecretUnavailable as e:
            raise DispatchFailure(f"No bot token: {e}") from e

        url  = f"{self.api_base}/bot{token}/{method}"
        data = json.dumps(payload).encode('utf-8') if payload is not None else None
        req  = urllib.request.Request(
            url,
            data    = data,
            headers = {'Content-Type': 'application/json'},
            method  = 'POST' if data is not None else 'GET',
        )

        try:
            with urllib.request.urlopen(req, timeout=self.timeout_sec) as resp:
                body = json.loads(resp.read().decode('utf-8'))
        except urllib.error.HTTPError as e:
            description = _error_description(e)
            if e.code == 401:
                self.secrets.invalidate(self.token_ref)
            raise DispatchFailure(f"{method} rejected: {e.code} {description}") from None
        except (urllib.error.URLError, OSError) as e:
            raise DispatchFailure(f"{method} transport error: {type(e).__name__}") from None
        except json.JSONDecodeError:
            raise DispatchFailure(f"{method} returned a non-JSON body") from None

        if not body.get('ok'):
            raise DispatchFailure(f"{method} not ok: {body.get('description', 'unknown error')}")
        return body

    # ── PUBLIC ───────────────────────────────────────────────

    def send(
        self,
        conversation_id:        str,
        text:                   str,
        in_reply_to_message_id: Optional[int] = None,
    ) -> int:
        """Send one reply. Returns the new message id."""
        payload: Dict[str, Any] = {'chat_id': conversation_id, 'text': text}
        if in_reply_to_message_id is not None:
            payload['reply_parameters'] = {
                'message_id':                  int(in_reply_to_message_id),
                'allow_sending_without_reply': True,
            }

        body = self._call('sendMessage', payload)
        try:
            message_id = int(body['result']['message_id'])
        except (KeyError, TypeError, ValueError):
            raise DispatchFailure("sendMessage response had no result.message_id") from None

        logger.info(f"Reply {message_id} sent to {conversation_id}")
        return message_id

    def get_identity(self) -> BotIdentity:
        """The bot's own user id and username. Cached for the sender's lifetime."""
        if self._identity is None:
            body = self._call('getMe')
            try:
                result = body['result']
                self._identity = BotIdentity(
                    user_id  = int(result['id']),
                    username = str(result.get('username') or ''),
                )
            except (KeyError, TypeError, ValueError):
                raise DispatchFailure("getMe response had no usable result") from None
        return self._identity


def _error_description(err: urllib.error.HTTPError) -> str:
    try:
        return json.loads(err.read().decode('utf-8')).get('description', err.reason)
    except Exception:
        return str(err.reason)
