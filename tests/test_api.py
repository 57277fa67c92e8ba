"""
Tests for the HTTP endpoints.
"""
from datetime import timedelta

from campaignhq.gateway import MockGateway


CAMPAIGN = {
    "name": "Q1 Launch",
    "start_date": "2024-01-15",
    "end_date": "2024-03-15",
    "channels": ["linkedin", "twitter"],
    "goals": "Awareness",
}


def create_campaign(client, **overrides):
    response = client.post("/api/campaigns", json={**CAMPAIGN, **overrides})
    assert response.status_code == 201
    return response.json()


def create_content(client, **overrides):
    payload = {"title": "Launch post", "body": "We are live", "channels": ["linkedin"]}
    payload.update(overrides)
    response = client.post("/api/content", json=payload)
    assert response.status_code == 201
    return response.json()


class TestHealthEndpoint:

    def test_health_check(self, client):
        response = client.get("/api/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["analytics_reconciled"] is True
        assert data["gateway"] == "MockGateway"

    def test_security_headers(self, client):
        response = client.get("/api/health")
        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Frame-Options"] == "DENY"


class TestCampaignEndpoints:

    def test_create_campaign(self, client):
        data = create_campaign(client)
        assert data["status"] == "draft"
        assert data["channels"] == ["linkedin", "twitter"]
        assert data["metrics"] == {"impressions": 0, "clicks": 0, "engagement": 0, "conversions": 0}

    def test_create_invalid_dates(self, client):
        response = client.post(
            "/api/campaigns",
            json={**CAMPAIGN, "start_date": "2024-03-15", "end_date": "2024-01-15"},
        )
        assert response.status_code == 422
        body = response.json()
        assert body["ok"] is False
        assert body["error_code"] == "VALIDATION_ERROR"

    def test_list_and_filter(self, client):
        created = create_campaign(client)
        assert [c["id"] for c in client.get("/api/campaigns").json()] == [created["id"]]
        assert client.get("/api/campaigns", params={"status": "active"}).json() == []

    def test_get_missing(self, client):
        response = client.get("/api/campaigns/cmp_missing")
        assert response.status_code == 404
        assert response.json()["error_code"] == "NOT_FOUND"

    def test_update_and_activate(self, client):
        created = create_campaign(client)
        response = client.patch(f"/api/campaigns/{created['id']}", json={"name": "Renamed"})
        assert response.status_code == 200
        assert response.json()["name"] == "Renamed"

        response = client.post(f"/api/campaigns/{created['id']}/activate")
        assert response.json()["status"] == "scheduled"

        response = client.put(f"/api/campaigns/{created['id']}", json={"status": "draft"})
        assert response.status_code == 422

    def test_delete_orphans_content(self, client):
        created = create_campaign(client)
        content = create_content(client, campaign_id=created["id"])

        response = client.delete(f"/api/campaigns/{created['id']}")
        assert response.status_code == 200
        body = response.json()
        assert body["affected_content"] == [content["id"]]
        assert body["policy"] == "orphan"
        assert client.get(f"/api/content/{content['id']}").json()["campaign_id"] is None

    def test_campaign_content(self, client):
        created = create_campaign(client)
        content = create_content(client, campaign_id=created["id"])
        create_content(client)
        response = client.get(f"/api/campaigns/{created['id']}/content")
        assert [c["id"] for c in response.json()] == [content["id"]]


class TestContentEndpoints:

    def test_channels_outside_campaign_rejected(self, client):
        created = create_campaign(client)
        response = client.post(
            "/api/content",
            json={"title": "Post", "body": "Body", "channels": ["slack"], "campaign_id": created["id"]},
        )
        assert response.status_code == 422
        assert client.get("/api/content").json() == []

    def test_missing_fields_rejected(self, client):
        response = client.post("/api/content", json={"title": "Post"})
        assert response.status_code == 422

    def test_update_and_delete(self, client):
        content = create_content(client)
        response = client.patch(f"/api/content/{content['id']}", json={"title": "Edited"})
        assert response.json()["title"] == "Edited"

        assert client.delete(f"/api/content/{content['id']}").status_code == 200
        assert client.get(f"/api/content/{content['id']}").status_code == 404

    def test_metrics_on_draft_rejected(self, client):
        content = create_content(client)
        response = client.post(f"/api/content/{content['id']}/metrics", json={"impressions": 10})
        assert response.status_code == 422

    def test_metrics_require_a_counter(self, client, published):
        response = client.post(f"/api/content/{published.id}/metrics", json={})
        assert response.status_code == 422

    def test_metrics_absolute_and_increment(self, client, published):
        response = client.post(f"/api/content/{published.id}/metrics", json={"impressions": 100, "clicks": 10})
        assert response.status_code == 200
        response = client.post(
            f"/api/content/{published.id}/metrics",
            json={"impressions": 5, "increment": True},
        )
        assert response.json()["metrics"]["impressions"] == 105

        response = client.post(f"/api/content/{published.id}/metrics", json={"impressions": 50})
        assert response.status_code == 422


class TestScheduleEndpoints:

    def test_schedule_batch_and_sweep(self, client, clock):
        content = create_content(client, channels=["linkedin", "twitter"])
        at = (clock.now() + timedelta(hours=1)).isoformat()
        response = client.post(
            "/api/schedule",
            json={"items": [
                {"contentId": content["id"], "platform": "linkedin", "scheduledAt": at},
                {"content_id": content["id"], "channel": "twitter", "scheduled_at": at},
            ]},
        )
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["scheduled_count"] == 2

        listed = client.get("/api/schedule", params={"content_id": content["id"]}).json()
        assert {e["channel"] for e in listed} == {"linkedin", "twitter"}

        clock.advance(hours=1)
        report = client.post("/api/schedule/sweep").json()
        assert len(report["dispatched"]) == 2
        assert client.get(f"/api/content/{content['id']}").json()["status"] == "published"

    def test_schedule_past_rejected(self, client, clock):
        content = create_content(client)
        at = (clock.now() - timedelta(hours=1)).isoformat()
        response = client.post(
            "/api/schedule",
            json={"items": [{"content_id": content["id"], "channel": "linkedin", "scheduled_at": at}]},
        )
        assert response.status_code == 422

    def test_unschedule(self, client, clock):
        content = create_content(client)
        at = (clock.now() + timedelta(hours=1)).isoformat()
        client.post(
            "/api/schedule",
            json={"items": [{"content_id": content["id"], "channel": "linkedin", "scheduled_at": at}]},
        )
        response = client.delete(f"/api/schedule/{content['id']}/linkedin")
        assert response.status_code == 200
        assert client.get(f"/api/content/{content['id']}").json()["status"] == "draft"

        response = client.delete(f"/api/schedule/{content['id']}/linkedin")
        assert response.status_code == 404

    def test_unschedule_dispatched_conflicts(self, client, published):
        response = client.delete(f"/api/schedule/{published.id}/linkedin")
        assert response.status_code == 409
        assert response.json()["error_code"] == "CONFLICT"

    def test_sweeper_status_when_disabled(self, client):
        assert client.get("/api/schedule/sweeper/status").json() == {"running": False, "enabled": False}


class TestAnalyticsEndpoints:

    def test_snapshot(self, client, core, published):
        core.record_metrics(published.id, impressions=100, clicks=10)
        data = client.get("/api/analytics").json()
        assert data["overview"]["total_impressions"] == 100
        assert data["overview"]["ctr"] == 0.1
        assert [p["channel"] for p in data["by_platform"]] == ["linkedin", "twitter"]
        assert data["timeline"] == [{"date": "2024-01-10", "impressions": 100, "clicks": 10, "engagement": 0}]

    def test_campaign_snapshot_unknown(self, client):
        assert client.get("/api/analytics", params={"campaign_id": "cmp_missing"}).status_code == 404

    def test_top_content(self, client, core, published):
        core.record_metrics(published.id, impressions=100, clicks=10)
        data = client.get("/api/analytics/top-content", params={"limit": 3}).json()
        assert data[0]["id"] == published.id
        assert data[0]["score"] == 110

    def test_export_csv(self, client, core, published):
        core.record_metrics(published.id, impressions=100, clicks=10, likes=2)
        response = client.get("/api/analytics/export")
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert "analytics-report.csv" in response.headers["content-disposition"]
        assert response.text == "date,impressions,clicks,engagement\n2024-01-10,100,10,2\n"


class TestSettingsEndpoints:

    def test_connection_ok(self, client):
        data = client.post("/api/settings/test-connection").json()
        assert data == {"status": "connected", "healthy": True, "message": "Mock API connection successful"}

    def test_connection_error(self, client, gateway):
        gateway.healthy = False
        data = client.post("/api/settings/test-connection").json()
        assert data["status"] == "error"
        assert data["healthy"] is False


class TestAppFactory:

    def test_seeds_demo_data(self, core, settings):
        from fastapi.testclient import TestClient
        from campaignhq.main import create_app

        settings.seed_demo_data = True
        with TestClient(create_app(settings=settings, core=core)) as c:
            campaigns = c.get("/api/campaigns").json()
        assert [c["name"] for c in campaigns] == ["Q1 Product Launch", "Holiday Campaign"]
        assert core.get_analytics().overview.total_impressions == 5000

    def test_mock_gateway_default(self, core):
        assert isinstance(core.gateway, MockGateway)
