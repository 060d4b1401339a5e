"""HTTP endpoint tests.

WHAT: Exercises the FastAPI routers through TestClient
WHY: Confirms cookie auth, user scoping, error mapping and form validation over HTTP

REFERENCES:
  - kpidash/main.py: exception handlers
  - kpidash/routers/*.py
"""

import pytest

from .conftest import OWNER_EMAIL, PASSWORD


def _create_kpi(api, **overrides):
    form = {
        "name": "Monthly Revenue",
        "value": "45000",
        "target": "50000",
        "unit": "currency",
        "category": "Revenue",
        "change_percent": "12.5",
    }
    form.update(overrides)
    response = api.post("/kpis", json=form)
    assert response.status_code == 201, response.text
    return response.json()


class TestHealth:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}


class TestAuthEndpoints:

    def test_signup_sets_cookie(self, auth_client):
        assert "access_token" in auth_client.cookies

        me = auth_client.get("/auth/me")

        assert me.status_code == 200
        assert me.json()["email"] == OWNER_EMAIL

    def test_duplicate_signup(self, auth_client, client):
        response = client.post(
            "/auth/signup",
            json={"email": OWNER_EMAIL, "password": PASSWORD, "first_name": "A", "last_name": "B"},
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "User already registered"

    def test_login_and_logout(self, auth_client, client):
        response = client.post("/auth/login", json={"email": OWNER_EMAIL, "password": PASSWORD})
        assert response.status_code == 200
        assert response.json()["user"]["email"] == OWNER_EMAIL
        assert client.get("/auth/me").status_code == 200

        assert client.post("/auth/logout").status_code == 200
        assert client.get("/auth/me").status_code == 401

    def test_bad_credentials(self, auth_client, client):
        response = client.post("/auth/login", json={"email": OWNER_EMAIL, "password": "nope-nope"})
        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid login credentials"

    def test_me_requires_auth(self, client):
        response = client.get("/auth/me")
        assert response.status_code == 401
        assert response.json()["detail"] == "Not authenticated"

    def test_bearer_header_auth(self, auth_client, client):
        header = auth_client.cookies["access_token"].strip('"')
        assert header.startswith("Bearer ")

        response = client.get("/auth/me", headers={"Authorization": header})

        assert response.status_code == 200

    def test_password_reset_is_uniform(self, client):
        response = client.post("/auth/password/reset", json={"email": "nobody@shop.com"})
        assert response.status_code == 200

    def test_password_update(self, auth_client, client):
        assert auth_client.post("/auth/password", json={"password": "another-pass-1"}).status_code == 200
        assert client.post("/auth/login", json={"email": OWNER_EMAIL, "password": "another-pass-1"}).status_code == 200

    def test_password_update_requires_session(self, client):
        response = client.post("/auth/password", json={"password": "another-pass-1"})
        assert response.status_code == 401


class TestProfileEndpoints:

    def test_get_and_update(self, auth_client):
        assert auth_client.get("/profile").json()["first_name"] == "Teto"

        response = auth_client.put(
            "/profile", json={"first_name": "Kasane", "last_name": "Teto", "email": "teto@shop.com"}
        )

        assert response.status_code == 200
        assert response.json()["first_name"] == "Kasane"

    def test_invalid_email_rejected(self, auth_client):
        response = auth_client.put("/profile", json={"first_name": "A", "last_name": "B", "email": "not-an-email"})

        assert response.status_code == 422
        assert response.json()["errors"] == [
            {"field": "email", "code": "invalid_email", "message": "Please enter a valid email address"}
        ]

    def test_special_use_email_domain_rejected(self, auth_client):
        response = auth_client.put("/profile", json={"first_name": "A", "last_name": "B", "email": "me@shop.local"})

        assert response.status_code == 422
        assert response.json()["errors"][0]["code"] == "invalid_email"
        assert auth_client.get("/profile").json()["email"] == "owner@shop.com"

    def test_requires_auth(self, client):
        assert client.get("/profile").status_code == 401


class TestKpiEndpoints:

    def test_create_returns_progress(self, auth_client):
        body = _create_kpi(auth_client)

        assert body["metric_name"] == "Monthly Revenue"
        assert body["progress"] == 90
        assert body["is_on_track"] is True
        assert body["unit_symbol"] == "$"
        assert body["formatted_value"] == "$45,000"
        assert body["trend"] == "up"

    def test_invalid_form_returns_field_errors(self, auth_client):
        response = auth_client.post("/kpis", json={"name": " ", "value": "x", "target": "10", "category": "Sales",
                                                   "unit": "furlongs"})

        assert response.status_code == 422
        errors = {error["field"]: error["message"] for error in response.json()["errors"]}
        assert errors == {
            "name": "KPI name is required",
            "value": "Value must be a number",
            "unit": "Unit type is invalid",
        }
        assert auth_client.get("/kpis").json() == []

    def test_list_unit_is_a_field_error(self, auth_client, kpi_form):
        response = auth_client.post("/kpis", json={**kpi_form, "unit": ["currency"]})

        assert response.status_code == 422
        assert response.json()["errors"] == [
            {"field": "unit", "code": "invalid_choice", "message": "Unit type is invalid"}
        ]

    def test_list_filters(self, auth_client):
        _create_kpi(auth_client)
        _create_kpi(auth_client, name="Conversion Rate", value="3.2", target="4", unit="percentage",
                    category="Marketing")

        assert len(auth_client.get("/kpis").json()) == 2
        assert len(auth_client.get("/kpis", params={"limit": 1}).json()) == 1
        marketing = auth_client.get("/kpis", params={"category": "Marketing"}).json()
        assert [row["metric_name"] for row in marketing] == ["Conversion Rate"]
        assert len(auth_client.get("/kpis", params={"period": "week"}).json()) == 2

    def test_invalid_period(self, auth_client):
        assert auth_client.get("/kpis", params={"period": "decade"}).status_code == 422

    def test_metrics(self, auth_client):
        _create_kpi(auth_client)
        _create_kpi(auth_client, name="AOV", value="85", target="90", category="Sales", change_percent="-2.1")

        metrics = auth_client.get("/kpis/metrics").json()

        assert metrics == {
            "total_kpis": 2,
            "on_track_kpis": 2,
            "average_progress": 92,
            "trends_up": 1,
            "trends_down": 1,
        }

    def test_update_and_delete(self, auth_client):
        kpi = _create_kpi(auth_client)

        updated = auth_client.put(f"/kpis/{kpi['id']}", json={"value": 50000})
        assert updated.status_code == 200
        assert updated.json()["progress"] == 100

        assert auth_client.delete(f"/kpis/{kpi['id']}").status_code == 204
        assert auth_client.get(f"/kpis/{kpi['id']}").status_code == 404

    def test_update_rejects_unknown_fields(self, auth_client):
        kpi = _create_kpi(auth_client)
        response = auth_client.put(f"/kpis/{kpi['id']}", json={"owner": "someone"})
        assert response.status_code == 422

    def test_missing_kpi(self, auth_client):
        assert auth_client.put("/kpis/missing", json={"value": 1}).status_code == 404
        assert auth_client.delete("/kpis/missing").status_code == 404

    def test_requires_auth(self, client, kpi_form):
        assert client.get("/kpis").status_code == 401
        assert client.post("/kpis", json=kpi_form).status_code == 401


class TestIntegrationEndpoints:

    def _connect(self, api, **overrides):
        form = {"platform": "shopify", "store_name": "Teto's Store", "api_key": "shpat_secret"}
        form.update(overrides)
        response = api.post("/integrations", json=form)
        assert response.status_code == 201, response.text
        return response.json()

    def test_api_key_never_returned(self, auth_client):
        body = self._connect(auth_client)

        assert "api_key" not in body
        assert body["has_api_key"] is True
        assert body["platform_name"] == "Shopify"
        assert body["is_healthy"] is False
        assert body["last_sync_formatted"] == "Never synced"

        listed = auth_client.get("/integrations").json()
        assert all("api_key" not in row for row in listed)

    def test_invalid_platform(self, auth_client):
        response = auth_client.post("/integrations", json={"platform": "amazon", "store_name": "Shop"})

        assert response.status_code == 422
        assert response.json()["errors"][0]["field"] == "platform"

    def test_non_string_platform(self, auth_client):
        response = auth_client.post("/integrations", json={"platform": {"name": "shopify"}, "store_name": "Shop"})

        assert response.status_code == 422
        assert response.json()["errors"][0]["code"] == "invalid_choice"

    def test_record_sync(self, auth_client):
        integration = self._connect(auth_client)

        response = auth_client.post(f"/integrations/{integration['id']}/syncs", json={"status": "success"})
        assert response.status_code == 201

        refreshed = auth_client.get(f"/integrations/{integration['id']}").json()
        assert refreshed["is_healthy"] is True
        assert refreshed["last_sync_formatted"] == "Just now"

        logs = auth_client.get("/sync-logs").json()
        assert logs[0]["integration"] == {"platform": "shopify", "store_name": "Teto's Store"}

    def test_update_and_delete(self, auth_client):
        integration = self._connect(auth_client)

        updated = auth_client.put(f"/integrations/{integration['id']}", json={"sync_frequency": "weekly"})
        assert updated.json()["sync_frequency"] == "weekly"

        assert auth_client.delete(f"/integrations/{integration['id']}").status_code == 204
        assert auth_client.get("/integrations").json() == []


class TestSyncLogEndpoints:

    def test_create_and_list(self, auth_client):
        integration = auth_client.post("/integrations", json={"platform": "etsy", "store_name": "Etsy"}).json()

        created = auth_client.post(
            "/sync-logs", json={"integration_id": integration["id"], "status": "error", "error_message": "Timeout"}
        )

        assert created.status_code == 201
        logs = auth_client.get("/sync-logs", params={"limit": 5}).json()
        assert logs[0]["error_message"] == "Timeout"

    def test_unknown_integration(self, auth_client):
        response = auth_client.post("/sync-logs", json={"integration_id": "missing", "status": "success"})
        assert response.status_code == 404

    def test_no_update_route(self, auth_client):
        assert auth_client.put("/sync-logs/anything", json={}).status_code in (404, 405)


class TestDashboardEndpoint:

    def test_dashboard(self, auth_client):
        _create_kpi(auth_client)
        auth_client.post("/integrations", json={"platform": "etsy", "store_name": "Etsy"})

        body = auth_client.get("/dashboard").json()

        assert body["metrics"]["total_kpis"] == 1
        assert body["recent_kpis"][0]["progress"] == 90
        assert body["integrations"][0]["platform_name"] == "Etsy"
        assert body["sync_logs"] == []

    def test_requires_auth(self, client):
        assert client.get("/dashboard").status_code == 401


@pytest.mark.parametrize("path", ["/openapi.json"])
def test_openapi_declares_cookie_auth(client, path):
    schema = client.get(path).json()
    assert "cookieAuth" in schema["components"]["securitySchemes"]
    assert "security" not in schema["paths"]["/health"]["get"]
