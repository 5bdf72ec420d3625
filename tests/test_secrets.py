"""
tests/test_secrets.py
Secret cache lifecycle: populate on first use, refresh after TTL.
"""

import logging

import pytest

from homeops.errors import SecretUnavailable
from homeops.utils.secrets import SecretCache, env_source

SECRET = "sk-test-never-log"


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class TestSecretCache:

    def test_cached_within_ttl(self):
        calls = []
        clock = FakeClock()
        cache = SecretCache(source=lambda n: calls.append(n) or SECRET, ttl_sec=300, clock=clock)

        assert cache.get("KEY") == SECRET
        clock.now += 299
        assert cache.get("KEY") == SECRET
        assert calls == ["KEY"]

    def test_refetched_after_ttl(self):
        values = iter(["v1", "v2"])
        clock = FakeClock()
        cache = SecretCache(source=lambda n: next(values), ttl_sec=300, clock=clock)

        assert cache.get("KEY") == "v1"
        clock.now += 300
        assert cache.get("KEY") == "v2"

    def test_invalidate_forces_refetch(self):
        values = iter(["v1", "v2"])
        cache = SecretCache(source=lambda n: next(values), clock=FakeClock())
        cache.get("KEY")
        cache.invalidate("KEY")
        assert cache.get("KEY") == "v2"

    def test_source_errors_become_secret_unavailable(self):
        def broken(name):
            raise RuntimeError(SECRET)

        cache = SecretCache(source=broken)
        with pytest.raises(SecretUnavailable) as exc:
            cache.get("KEY")
        assert SECRET not in str(exc.value)

    def test_secret_value_never_logged(self, caplog):
        caplog.set_level(logging.DEBUG, logger="homeops.utils.secrets")
        SecretCache(source=lambda n: SECRET).get("KEY")
        assert all(SECRET not in r.getMessage() for r in caplog.records)


class TestEnvSource:

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("HOMEOPS_TEST_SECRET", "abc")
        assert env_source("HOMEOPS_TEST_SECRET") == "abc"

    def test_missing_variable(self, monkeypatch):
        monkeypatch.delenv("HOMEOPS_TEST_SECRET", raising=False)
        with pytest.raises(SecretUnavailable):
            env_source("HOMEOPS_TEST_SECRET")
