"""
Test suite for the SwoleGen stub backend

Covers the routes the console depends on:
- /strava/recent answers 401 with an oauth_url until a token is issued
- The OAuth start → callback round trip issues a usable bearer token
- /llm/analyze and /llm/generate accept exactly what the console sends
- The console orchestrator runs Recent → Analyze → Generate against it
"""

import base64

import pytest
from fastapi.testclient import TestClient

from equipment_parser import parse
from session_store import SessionStore
from stub_backend import _STATES, _TOKENS, app, estimate_sets
from workflow import AuthRequired, FormInput, WorkflowOrchestrator, WorkflowState

client = TestClient(app)


def _issue_token():
    response = client.get("/oauth/strava/start")
    assert response.status_code == 200
    return response.json()["access_token"]


class TestOAuth:
    """Test the stub OAuth handshake"""

    def setup_method(self):
        _TOKENS.clear()
        _STATES.clear()

    def test_start_redirects_to_callback(self):
        response = client.get("/oauth/strava/start", follow_redirects=False)
        assert response.status_code == 302
        assert response.headers["location"].startswith("/oauth/strava/callback?code=")

    def test_callback_rejects_unknown_state(self):
        response = client.get("/oauth/strava/callback", params={"code": "abc", "state": "forged"})
        assert response.status_code == 400

    def test_round_trip_issues_token(self):
        token = _issue_token()
        assert token in _TOKENS


class TestRecent:
    """Test the Strava recent-activities proxy"""

    def setup_method(self):
        _TOKENS.clear()

    def test_missing_token_returns_oauth_hint(self):
        response = client.get("/strava/recent")
        assert response.status_code == 401
        body = response.json()
        assert body["oauth_url"] == "/oauth/strava/start"
        assert body["requires_oauth"] is True

    def test_unknown_token_returns_oauth_hint(self):
        response = client.get("/strava/recent", headers={"Authorization": "Bearer nope"})
        assert response.status_code == 401
        assert response.json()["oauth_url"] == "/oauth/strava/start"

    def test_days_window_filters_activities(self):
        token = _issue_token()
        headers = {"Authorization": f"Bearer {token}"}

        week = client.get("/strava/recent", params={"days": 7}, headers=headers).json()
        month = client.get("/strava/recent", params={"days": 30}, headers=headers).json()

        assert week["count"] == len(week["activities"]) == 3
        assert month["count"] == 4

    @pytest.mark.parametrize("days", ["abc", "-1"])
    def test_invalid_days_fall_back_to_a_week(self, days):
        token = _issue_token()
        response = client.get("/strava/recent", params={"days": days}, headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 200
        assert response.json()["count"] == 3


class TestLLMStages:
    """Test the canned analyze/generate routes"""

    def test_estimate_sets(self):
        assert estimate_sets(45) == 30
        assert estimate_sets(0) == 0
        assert estimate_sets(30, avg_seconds_per_set=0) == 20

    def test_analyze_rejects_invalid_json(self):
        response = client.post("/llm/analyze", content=b"{not json", headers={"Content-Type": "application/json"})
        assert response.status_code == 400
        assert response.json()["error"].startswith("invalid json")

    def test_analyze_rejects_missing_fields(self):
        response = client.post("/llm/analyze", json={"location": "home"})
        assert response.status_code == 400

    def test_analyze_returns_plan(self):
        response = client.post("/llm/analyze", json={
            "instructions_url": "https://example.com/i.md",
            "history_url": "https://example.com/h.csv",
            "strava_recent": [{"suffer_score": 20}],
            "location": "home",
            "equipment_inventory": ["dumbbell", "band"],
            "duration_minutes": 45,
            "units": "kg",
            "garmin_sleep_score": 85,
        })
        assert response.status_code == 200
        plan = response.json()
        assert plan["estimated_sets"] == 30
        assert plan["units"] == "kg"
        assert plan["intensity"] == "high"
        assert [b["equipment"] for b in plan["blocks"]] == ["dumbbell", "band"]

    def test_generate_returns_base64_document(self):
        response = client.post("/llm/generate", json={"location": "home", "blocks": [{"equipment": "band", "sets": 4}]})
        assert response.status_code == 200
        document = base64.b64decode(response.json()).decode("utf-8")
        assert "equipment: band" in document

    def test_generate_rejects_non_object(self):
        response = client.post("/llm/generate", json=["plan"])
        assert response.status_code == 400


class TestConsoleAgainstStub:
    """Drive the orchestrator through the stub backend"""

    def setup_method(self):
        _TOKENS.clear()

    def test_catalog_from_stub(self):
        response = client.get("/equipment.yaml")
        keys = [e.key for e in parse(response.text)]
        assert keys == ["barbell", "dumbbell", "kettlebell", "band", "pullup_bar", "bench"]

    def test_full_pipeline(self, tmp_path):
        store = SessionStore(str(tmp_path / "session.db"))
        orchestrator = WorkflowOrchestrator(store, base_url="http://testserver", http=client)

        with pytest.raises(AuthRequired):
            orchestrator.fetch_recent(FormInput(days="7"))

        entries = orchestrator.load_catalog()
        selection = [entries[1].key, entries[3].key]
        form = FormInput(days="7", access_token=_issue_token(), equipment=selection, sleep_score="80")

        orchestrator.fetch_recent(form)
        assert len(orchestrator.last_recent) == 3

        orchestrator.analyze(form)
        assert orchestrator.last_analyze["recovery"]["recent_activities"] == 3

        result = orchestrator.generate()
        assert orchestrator.state is WorkflowState.GENERATED
        assert "equipment: dumbbell" in result["document"]
        assert store.get_equipment_selection() == ["dumbbell", "band"]
