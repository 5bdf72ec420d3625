"""
tests/conftest.py
Shared fixtures. Every test gets its own SQLite file under tmp_path —
no shared state, no network.
"""

import pytest

from homeops.store.activity_store import ActivityStore
from homeops.store.db import connect
from homeops.store.ledger import Ledger
from homeops.store.response_counter import ResponseCounter


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "homeops.db"


@pytest.fixture
def conn(db_path):
    c = connect(db_path)
    yield c
    c.close()


@pytest.fixture
def ledger(conn):
    return Ledger(conn)


@pytest.fixture
def activities(conn):
    return ActivityStore(conn)


@pytest.fixture
def counter(conn):
    return ResponseCounter(conn)
