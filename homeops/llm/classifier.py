"""
homeops/llm/classifier.py
Classification adapter. Turns one external classification call into a
typed, confidence-scored judgment or a ClassificationFailure.

Retry budget: transport failures (timeouts, connection errors, 5xx, 429)
get at most max_retries extra attempts. Malformed output and client
errors are not retried — asking again rarely fixes them.
Privacy: message text is never logged.
"""

import json
import logging
import time
import urllib.error
from typing import Optional

from homeops.errors import ClassificationFailure, SecretUnavailable
from homeops.llm.base import ClassifierBackend
from homeops.llm.schema import parse_classification
from homeops.models.record import ClassificationResult
from homeops.utils.secrets import SecretCache

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 1


def _is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, urllib.error.HTTPError):
        return exc.code >= 500 or exc.code == 429
    return isinstance(exc, (urllib.error.URLError, TimeoutError, ConnectionError))


class ClassificationAdapter:

    def __init__(
        self,
        backend:     ClassifierBackend,
        secrets:     SecretCache,
        api_key_ref: str = 'OPENAI_API_KEY',
        max_retries: int = DEFAULT_MAX_RETRIES,
    ):
        self.backend     = backend
        self.secrets     = secrets
        self.api_key_ref = api_key_ref
        self.max_retries = max(0, int(max_retries))

    def classify(self, text: str) -> ClassificationResult:
        if not (text or '').strip():
            raise ClassificationFailure("Empty message text")

        try:
            api_key = self.secrets.get(self.api_key_ref)
        except SecretUnavailable as e:
            raise ClassificationFailure(f"No classifier credential: {e}") from e

        start = time.perf_counter()
        raw   = self._call_with_retry(text, api_key)
        result = parse_classification(raw)

        logger.info(
            f"Classified: kind={result.kind} effort={result.effort_level} "
            f"confidence={result.confidence:.2f} "
            f"latency_sec={time.perf_counter() - start:.2f}"
        )
        return result

    def _call_with_retry(self, text: str, api_key: str) -> str:
        attempts = self.max_retries + 1
        last_exc: Optional[BaseException] = None

        for attempt in range(1, attempts + 1):
            try:
                return self.backend.complete(text, api_key)
            except json.JSONDecodeError as e:
                raise ClassificationFailure(f"Classifier returned a non-JSON envelope: {e.msg}") from e
            except (urllib.error.URLError, OSError) as e:
                last_exc = e
                if isinstance(e, urllib.error.HTTPError) and e.code == 401:
                    self.secrets.invalidate(self.api_key_ref)
                if not _is_retryable(e) or attempt == attempts:
                    break
                logger.warning(
                    f"Classifier call failed ({type(e).__name__}), "
                    f"retrying ({attempt}/{self.max_retries})"
                )

        raise ClassificationFailure(
            f"Classifier unavailable after {attempt} attempt(s): {type(last_exc).__name__}"
        ) from last_exc
