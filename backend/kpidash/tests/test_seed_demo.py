"""Tests for the demo account seed script.

REFERENCES:
  - kpidash/seed_demo.py
"""

from contextlib import contextmanager
from datetime import datetime

import pytest

import kpidash.seed_demo as seed_module
from kpidash.hosted import HostedClient
from kpidash.queries import IntegrationQueries, KpiQueries, SyncLogQueries
from kpidash.seed_demo import DEMO_EMAIL, DEMO_PASSWORD, seed_demo


@pytest.fixture
def seeded_db(test_db_session, monkeypatch):
    """Point the seed script at the test session instead of the configured database."""

    @contextmanager
    def session_scope():
        yield test_db_session

    monkeypatch.setattr(seed_module, "get_sync_session", session_scope)
    monkeypatch.setattr(seed_module, "init_db", lambda: None)
    return test_db_session


def _demo_client(session, feed) -> HostedClient:
    client = HostedClient(session, feed)
    client.auth.sign_in(DEMO_EMAIL, DEMO_PASSWORD)
    return client


def test_seed_creates_demo_account(seeded_db, feed):
    user_id = seed_demo(now=datetime(2024, 8, 1, 12, 0))

    client = _demo_client(seeded_db, feed)
    assert str(client.auth.get_user().id) == user_id

    kpis = KpiQueries(client).list()
    assert [kpi.metric_name for kpi in kpis] == ["Monthly Revenue", "Conversion Rate", "Average Order Value"]
    assert KpiQueries(client).get_metrics().average_progress == 88

    integrations = IntegrationQueries(client).list()
    assert sorted(row.platform for row in integrations) == ["etsy", "shopify"]
    assert all(row.status == "connected" and row.last_sync for row in integrations)
    assert len(SyncLogQueries(client).list()) == 2


def test_seed_is_idempotent(seeded_db, feed):
    first = seed_demo()
    second = seed_demo()

    assert first == second
    client = _demo_client(seeded_db, feed)
    assert len(KpiQueries(client).list()) == 3
    assert len(IntegrationQueries(client).list()) == 2
