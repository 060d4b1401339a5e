"""Tests for the user-scoped data-access layer.

WHAT: Exercises kpidash/queries.py against an in-memory database
WHY: Every query must resolve the user first and never cross user scopes

REFERENCES:
  - kpidash/queries.py
  - kpidash/hosted/tables.py: BackendError translation
"""

from datetime import datetime, timedelta
from unittest.mock import Mock

import pytest

from kpidash.exceptions import BackendError, ImmutableRecordError, UnauthenticatedError
from kpidash.queries import (
    DashboardQueries,
    IntegrationQueries,
    KpiQueries,
    ProfileQueries,
    SyncLogQueries,
)
from kpidash.schemas import (
    IntegrationInsert,
    KpiDataInsert,
    KpiDataUpdate,
    ProfileUpdate,
    SyncLogInsert,
)


def _kpi(**overrides) -> KpiDataInsert:
    fields = {
        "metric_name": "Monthly Revenue",
        "value": 45000,
        "target": 50000,
        "unit": "currency",
        "category": "Revenue",
        "change_percent": 12.5,
    }
    fields.update(overrides)
    return KpiDataInsert(**fields)


class TestAuthenticationFirst:
    """No user means no table access at all."""

    @pytest.mark.parametrize("queries_cls", [KpiQueries, IntegrationQueries, SyncLogQueries, ProfileQueries])
    def test_list_fails_fast_without_user(self, queries_cls):
        client = Mock()
        client.auth.get_user.return_value = None

        with pytest.raises(UnauthenticatedError):
            queries_cls(client).list()

        client.table.assert_not_called()

    def test_create_fails_fast_without_user(self):
        client = Mock()
        client.auth.get_user.return_value = None

        with pytest.raises(UnauthenticatedError):
            KpiQueries(client).create(_kpi())

        client.table.assert_not_called()

    def test_anonymous_hosted_client_is_rejected(self, anon_client):
        with pytest.raises(UnauthenticatedError):
            KpiQueries(anon_client).list()

    def test_invalid_token_is_rejected(self, test_db_session, feed):
        from kpidash.hosted import HostedClient

        client = HostedClient(test_db_session, feed, access_token="not-a-jwt")
        with pytest.raises(UnauthenticatedError):
            IntegrationQueries(client).list()


class TestUserScoping:

    def test_create_overwrites_user_id(self, owner_client, other_client, owner_id):
        other_id = str(other_client.auth.get_user().id)

        row = KpiQueries(owner_client).create(_kpi(user_id=other_id))

        assert row.user_id == owner_id

    def test_other_user_cannot_see_rows(self, owner_client, other_client):
        row = KpiQueries(owner_client).create(_kpi())

        rival = KpiQueries(other_client)
        assert rival.list() == []
        assert rival.get_by_id(row.id) is None

    def test_other_user_cannot_update_or_delete(self, owner_client, other_client):
        row = KpiQueries(owner_client).create(_kpi())
        rival = KpiQueries(other_client)

        with pytest.raises(BackendError) as update_exc:
            rival.update(row.id, KpiDataUpdate(value=1))
        assert update_exc.value.status == 404

        with pytest.raises(BackendError) as delete_exc:
            rival.delete(row.id)
        assert delete_exc.value.status == 404

        assert KpiQueries(owner_client).get_by_id(row.id).value == 45000

    def test_update_cannot_move_row_to_another_user(self, owner_client, other_client, owner_id):
        row = KpiQueries(owner_client).create(_kpi())

        updated = KpiQueries(owner_client).update(row.id, {"value": 47000, "user_id": "someone-else"})

        assert updated.user_id == owner_id
        assert updated.value == 47000
        assert KpiQueries(other_client).list() == []


class TestKpiQueries:

    def test_list_newest_first_with_limit(self, owner_client):
        queries = KpiQueries(owner_client)
        base = datetime(2024, 8, 1, 12, 0)
        for offset in range(3):
            queries.create(_kpi(metric_name=f"KPI {offset}", recorded_at=base + timedelta(hours=offset)))

        names = [row.metric_name for row in queries.list(limit=2)]

        assert names == ["KPI 2", "KPI 1"]

    def test_trend_derived_from_change_percent(self, owner_client):
        queries = KpiQueries(owner_client)

        assert queries.create(_kpi(change_percent=12.5)).trend == "up"
        assert queries.create(_kpi(change_percent=-2.1)).trend == "down"
        assert queries.create(_kpi(change_percent=0.5)).trend == "neutral"

    def test_explicit_trend_is_kept(self, owner_client):
        row = KpiQueries(owner_client).create(_kpi(change_percent=12.5, trend="neutral"))
        assert row.trend == "neutral"

    def test_list_by_category(self, owner_client):
        queries = KpiQueries(owner_client)
        queries.create(_kpi())
        queries.create(_kpi(metric_name="Conversion Rate", unit="percentage", category="Marketing"))

        rows = queries.list_by_category("Marketing")

        assert [row.metric_name for row in rows] == ["Conversion Rate"]

    def test_list_in_period(self, owner_client):
        queries = KpiQueries(owner_client)
        now = datetime(2024, 8, 31, 12, 0)
        queries.create(_kpi(metric_name="Recent", recorded_at=now - timedelta(days=3)))
        queries.create(_kpi(metric_name="Old", recorded_at=now - timedelta(days=40)))

        assert [row.metric_name for row in queries.list_in_period("week", now=now)] == ["Recent"]
        assert len(queries.list_in_period("quarter", now=now)) == 2

    def test_get_metrics_for_demo_kpis(self, owner_client):
        queries = KpiQueries(owner_client)
        queries.create(_kpi())
        queries.create(_kpi(metric_name="Conversion Rate", value=3.2, target=4.0, unit="percentage",
                            category="Marketing", change_percent=8.3))
        queries.create(_kpi(metric_name="Average Order Value", value=85, target=90,
                            category="Sales", change_percent=-2.1))

        metrics = queries.get_metrics()

        assert metrics.total_kpis == 3
        assert metrics.on_track_kpis == 3
        assert metrics.average_progress == 88
        assert metrics.trends_up == 2
        assert metrics.trends_down == 1

    def test_get_metrics_empty(self, owner_client):
        metrics = KpiQueries(owner_client).get_metrics()
        assert metrics.total_kpis == 0
        assert metrics.average_progress == 0

    def test_unknown_column_surfaces_backend_error(self, owner_client):
        with pytest.raises(BackendError) as exc:
            KpiQueries(owner_client).list(not_a_column="x")
        assert exc.value.code == "42703"


class TestIntegrationQueries:

    def test_api_key_encrypted_at_rest(self, owner_client):
        queries = IntegrationQueries(owner_client)

        row = queries.create(IntegrationInsert(platform="shopify", store_name="Teto's Store", api_key="shpat_123"))

        assert row.api_key and row.api_key != "shpat_123"
        assert queries.reveal_api_key(row.id) == "shpat_123"

    def test_defaults(self, owner_client):
        row = IntegrationQueries(owner_client).create(IntegrationInsert(platform="etsy", store_name="Etsy Shop"))

        assert row.status == "connected"
        assert row.sync_frequency == "daily"
        assert row.last_sync is None
        assert IntegrationQueries(owner_client).reveal_api_key(row.id) is None

    def test_delete_removes_sync_logs(self, owner_client, test_db_session):
        from kpidash.models import SyncLog

        integration = IntegrationQueries(owner_client).create(IntegrationInsert(platform="etsy", store_name="Etsy"))
        SyncLogQueries(owner_client).create(SyncLogInsert(integration_id=integration.id, status="success"))

        IntegrationQueries(owner_client).delete(integration.id)

        assert test_db_session.query(SyncLog).count() == 0


class TestSyncLogQueries:

    def test_append_only(self, owner_client):
        integration = IntegrationQueries(owner_client).create(IntegrationInsert(platform="etsy", store_name="Etsy"))
        queries = SyncLogQueries(owner_client)
        log = queries.create(SyncLogInsert(integration_id=integration.id, status="error", error_message="Timeout"))

        with pytest.raises(ImmutableRecordError):
            queries.update(log.id, {"status": "success"})
        with pytest.raises(ImmutableRecordError):
            queries.delete(log.id)

        assert queries.get_by_id(log.id).status == "error"

    def test_list_with_integrations(self, owner_client):
        integration = IntegrationQueries(owner_client).create(
            IntegrationInsert(platform="shopify", store_name="Teto's Store")
        )
        SyncLogQueries(owner_client).create(SyncLogInsert(integration_id=integration.id, status="success"))

        logs = SyncLogQueries(owner_client).list_with_integrations()

        assert len(logs) == 1
        assert logs[0].integration.platform == "shopify"
        assert logs[0].integration.store_name == "Teto's Store"


class TestProfileQueries:

    def test_profile_created_on_signup(self, owner_client, owner_id):
        profile = ProfileQueries(owner_client).get_profile()

        assert profile.user_id == owner_id
        assert profile.first_name == "Teto"
        assert profile.email == "owner@shop.com"

    def test_update_profile(self, owner_client):
        profile = ProfileQueries(owner_client).update_profile(ProfileUpdate(first_name="Kasane"))

        assert profile.first_name == "Kasane"
        assert profile.last_name == "Kasane"

    def test_profile_cannot_be_deleted(self, owner_client, owner_id):
        with pytest.raises(ImmutableRecordError):
            ProfileQueries(owner_client).delete(owner_id)


class TestDashboardQueries:

    def test_dashboard_data(self, owner_client):
        kpis = KpiQueries(owner_client)
        base = datetime(2024, 8, 1)
        for offset in range(12):
            kpis.create(_kpi(metric_name=f"KPI {offset}", recorded_at=base + timedelta(hours=offset)))
        IntegrationQueries(owner_client).create(IntegrationInsert(platform="shopify", store_name="Store"))

        data = DashboardQueries(owner_client).get_dashboard_data()

        assert data.metrics.total_kpis == 12
        assert len(data.recent_kpis) == 10
        assert data.recent_kpis[0].metric_name == "KPI 11"
        assert data.recent_kpis[0].progress == 90
        assert data.integrations[0].is_healthy is False
        assert data.integrations[0].last_sync_formatted == "Never synced"
        assert data.sync_logs == []
