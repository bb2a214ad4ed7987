"""
Development backend for the SwoleGen console.

Overview
--------
Implements the backend routes the console talks to, with in-memory stores and
canned logic, so the Recent → Analyze → Generate flow can be exercised end to
end without Strava credentials or an LLM key.

Routes
------
- GET  /healthz
- GET  /equipment.yaml                 → catalog text
- GET  /oauth/strava/start             → redirect to the stub callback
- GET  /oauth/strava/callback          → issues a bearer token as JSON
- GET  /strava/recent?days=<int>       → {count, activities} or 401 with oauth_url
- POST /llm/analyze                    → analysis plan JSON
- POST /llm/generate                   → base64-encoded plan document (JSON string)

Integration Notes
-----------------
- Run with `uvicorn stub_backend:app --port 8080` (or run_stub_backend.py).
- Point the console at it with SWOLEGEN_API_BASE=http://localhost:8080.
"""

from __future__ import annotations

import base64
import json
import os
import time
import uuid
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Set

from fastapi import FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse, PlainTextResponse, RedirectResponse
from pydantic import BaseModel, Field, ValidationError

app = FastAPI(title="SwoleGen Stub Backend")

OAUTH_START_PATH = "/oauth/strava/start"

DEFAULT_EQUIPMENT_YAML = """\
# Items a workout may use. Keys are what the analyzer receives.
equipment_inventory_items:
  barbell: "Olympic Barbell"
  dumbbell: "Dumbbells"
  kettlebell: "Kettlebell"
  band: "Resistance Band"
  pullup_bar: "Pull-up Bar"
  bench: "Adjustable Bench"

equipment_inventory_profiles:
  home:
    - dumbbell
    - band
    - pullup_bar
  full_gym:
    - barbell
    - dumbbell
    - kettlebell
    - bench
"""


# -------------------------
# Data Models
# -------------------------
class Activity(BaseModel):
    name: str
    type: str
    start_date: str
    suffer_score: float = 0.0


class AnalyzerInputs(BaseModel):
    instructions_url: str
    history_url: str
    strava_recent: Optional[List[Dict]] = None
    upcoming_cardio_text: str = ""
    location: str
    equipment_inventory: List[str] = Field(default_factory=list)
    duration_minutes: int
    units: str = "lbs"
    garmin_sleep_score: Optional[float] = None
    garmin_body_battery: Optional[float] = None


# -------------------------
# In-memory stores
# -------------------------
_TOKENS: Set[str] = set()
_STATES: Set[str] = set()
_ACTIVITIES: List[Activity] = []


def _seed_activities() -> None:
    now = datetime.now(timezone.utc)
    seed = [
        ("Morning Run", "Run", 1, 42),
        ("Lunch Ride", "Ride", 3, 65),
        ("Easy Spin", "Ride", 6, 18),
        ("Long Run", "Run", 12, 110),
    ]
    _ACTIVITIES.clear()
    for name, kind, days_ago, effort in seed:
        start = (now - timedelta(days=days_ago)).strftime("%Y-%m-%dT%H:%M:%SZ")
        _ACTIVITIES.append(Activity(name=name, type=kind, start_date=start, suffer_score=effort))


_seed_activities()


def _oauth_required(error: str) -> JSONResponse:
    return JSONResponse(
        status_code=401,
        content={
            "error": error,
            "oauth_url": OAUTH_START_PATH,
            "message": "Please authenticate with Strava first",
            "requires_oauth": True,
        },
    )


# -------------------------
# Utility: canned analysis
# -------------------------
def estimate_sets(duration_minutes: int, avg_seconds_per_set: int = 90) -> int:
    """Rough set count for a session of the given length."""
    if avg_seconds_per_set <= 0:
        avg_seconds_per_set = 90
    if duration_minutes <= 0:
        return 0
    return (duration_minutes * 60) // avg_seconds_per_set


def _intensity(inputs: AnalyzerInputs, recent_load: float) -> str:
    readiness = [s for s in (inputs.garmin_sleep_score, inputs.garmin_body_battery) if s is not None]
    score = sum(readiness) / len(readiness) if readiness else 50
    if score < 30 or recent_load > 300:
        return "low"
    if score > 70 and recent_load < 150:
        return "high"
    return "moderate"


def build_plan(inputs: AnalyzerInputs) -> Dict:
    recent = inputs.strava_recent or []
    recent_load = sum(float(a.get("suffer_score") or 0) for a in recent)
    total_sets = estimate_sets(inputs.duration_minutes)
    equipment = inputs.equipment_inventory or ["bodyweight"]

    blocks = []
    per_block = max(1, total_sets // max(1, len(equipment)))
    for idx, item in enumerate(equipment):
        blocks.append({"index": idx, "equipment": item, "sets": per_block})

    return {
        "version": "v1",
        "location": inputs.location,
        "units": inputs.units,
        "duration_minutes": inputs.duration_minutes,
        "estimated_sets": total_sets,
        "intensity": _intensity(inputs, recent_load),
        "recovery": {
            "recent_activities": len(recent),
            "recent_load": recent_load,
            "sleep_score": inputs.garmin_sleep_score,
            "body_battery": inputs.garmin_body_battery,
        },
        "cardio_notes": inputs.upcoming_cardio_text,
        "sources": {"instructions_url": inputs.instructions_url, "history_url": inputs.history_url},
        "blocks": blocks,
    }


def render_plan(plan: Dict) -> str:
    lines = [
        "workout:",
        f"  location: {plan.get('location', 'home')}",
        f"  duration_minutes: {plan.get('duration_minutes', 0)}",
        f"  units: {plan.get('units', 'lbs')}",
        f"  intensity: {plan.get('intensity', 'moderate')}",
        "  blocks:",
    ]
    for block in plan.get("blocks") or []:
        lines.append(f"    - equipment: {block.get('equipment')}")
        lines.append(f"      sets: {block.get('sets')}")
    return "\n".join(lines) + "\n"


# -------------------------
# Routes
# -------------------------
@app.get("/healthz")
def healthz():
    return PlainTextResponse("ok")


@app.get("/equipment.yaml")
def equipment_yaml():
    path = os.environ.get("EQUIPMENT_YAML_PATH")
    if path:
        try:
            with open(path, encoding="utf-8") as fh:
                return PlainTextResponse(fh.read(), media_type="application/yaml")
        except OSError:
            raise HTTPException(404, "equipment catalog not found")
    return PlainTextResponse(DEFAULT_EQUIPMENT_YAML, media_type="application/yaml")


@app.get(OAUTH_START_PATH)
def oauth_start():
    state = uuid.uuid4().hex
    _STATES.add(state)
    code = uuid.uuid4().hex
    return RedirectResponse(f"/oauth/strava/callback?code={code}&state={state}", status_code=302)


@app.get("/oauth/strava/callback")
def oauth_callback(code: str = "", state: str = ""):
    if state not in _STATES:
        raise HTTPException(400, "invalid state")
    _STATES.discard(state)
    if not code:
        raise HTTPException(400, "missing code")
    token = uuid.uuid4().hex
    _TOKENS.add(token)
    return {
        "access_token": token,
        "token_type": "Bearer",
        "expires_at": int(time.time()) + 6 * 3600,
    }


@app.get("/strava/recent")
def strava_recent(days: str = "7", authorization: Optional[str] = Header(None)):
    try:
        window = int(days)
    except ValueError:
        window = 7
    if window < 0:
        window = 7

    if not authorization or not authorization.startswith("Bearer "):
        return _oauth_required("No user token provided; OAuth handshake required")
    token = authorization[len("Bearer "):]
    if token not in _TOKENS:
        return _oauth_required("strava status 401")

    activities = _ACTIVITIES
    if window > 0:
        cutoff = datetime.now(timezone.utc) - timedelta(days=window)
        activities = [
            a for a in _ACTIVITIES
            if datetime.strptime(a.start_date, "%Y-%m-%dT%H:%M:%SZ").replace(tzinfo=timezone.utc) >= cutoff
        ]
    return {"count": len(activities), "activities": [a.model_dump() for a in activities]}


@app.post("/llm/analyze")
async def llm_analyze(request: Request):
    try:
        body = json.loads(await request.body())
    except ValueError as e:
        return JSONResponse(status_code=400, content={"error": f"invalid json: {e}"})
    try:
        inputs = AnalyzerInputs.model_validate(body)
    except ValidationError as e:
        return JSONResponse(status_code=400, content={"error": f"invalid analyzer inputs: {e.error_count()} error(s)"})
    return build_plan(inputs)


@app.post("/llm/generate")
async def llm_generate(request: Request):
    try:
        plan = json.loads(await request.body())
    except ValueError as e:
        return JSONResponse(status_code=400, content={"error": f"invalid json: {e}"})
    if not isinstance(plan, dict):
        return JSONResponse(status_code=400, content={"error": "plan must be a JSON object"})
    document = render_plan(plan)
    return JSONResponse(content=base64.b64encode(document.encode("utf-8")).decode("ascii"))
