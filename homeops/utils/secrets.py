"""
homeops/utils/secrets.py
Credential capability with its own cache lifecycle.

Populated on first use, re-fetched once the TTL has passed. The cache is
an object handed to whoever needs a credential (classifier, sender), not
module-level state. Secret values never appear in logs or exceptions.
"""

import logging
import os
import time
from typing import Callable, Dict, Optional, Tuple

from homeops.errors import SecretUnavailable

logger = logging.getLogger(__name__)

DEFAULT_TTL_SEC = 300


def env_source(name: str) -> str:
    """Resolve a secret from the process environment."""
    value = os.environ.get(name)
    if not value:
        raise SecretUnavailable(f"Secret '{name}' is not set in the environment")
    return value


class SecretCache:

    def __init__(
        self,
        source:  Callable[[str], str] = env_source,
        ttl_sec: float                = DEFAULT_TTL_SEC,
        clock:   Callable[[], float]  = time.monotonic,
    ):
        self.source  = source
        self.ttl_sec = ttl_sec
        self.clock   = clock
        self._cache: Dict[str, Tuple[str, float]] = {}

    def get(self, name: str) -> str:
        cached = self._cache.get(name)
        now    = self.clock()
        if cached and now < cached[1]:
            return cached[0]

        try:
            value = self.source(name)
        except SecretUnavailable:
            raise
        except Exception as e:
            raise SecretUnavailable(
                f"Secret '{name}' could not be fetched: {type(e).__name__}"
            ) from e

        self._cache[name] = (value, now + self.ttl_sec)
        logger.debug(f"Secret '{name}' refreshed (ttl={self.ttl_sec}s)")
        return value

    def invalidate(self, name: Optional[str] = None) -> None:
        """Drop one cached secret, or all of them."""
        if name is None:
            self._cache.clear()
        else:
            self._cache.pop(name, None)
