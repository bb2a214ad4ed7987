"""
Workflow orchestration for the Recent → Analyze → Generate pipeline.

State Model
-----------
WorkflowState
  - idle           nothing cached yet
  - recent_loaded  last_recent holds a Strava activity list
  - analyzed       last_analyze holds the plan returned by /llm/analyze
  - generated      plan_document holds the decoded /llm/generate artifact

Gating Rules
------------
- Analyze may run from idle; the activity list then defaults to [].
- Starting Analyze drops last_analyze before the request goes out, so a stale
  plan can never reach Generate once a newer Analyze has begun.
- Generate only ever sends the cached plan; without one it fails locally and
  makes no request.
- A failed call records last_error and never clears another stage's cache.

Ordering
--------
Every stage call takes a sequence number when it starts. A response only
writes its cache slot when it is newer than whatever wrote that slot last, so
the caches reflect the most recently initiated request even when responses
resolve out of order.
"""

import base64
import logging
import math
import threading
from enum import Enum
from typing import Any, Dict, List, Optional

import requests
from pydantic import BaseModel, Field, field_validator

import config
from clipboard import ClipboardError, copy_to_clipboard
from equipment_parser import CatalogEntry, parse
from session_store import SessionField, SessionStore

logger = logging.getLogger(__name__)


class WorkflowState(str, Enum):
    IDLE = "idle"
    RECENT_LOADED = "recent_loaded"
    ANALYZED = "analyzed"
    GENERATED = "generated"


_STATE_ORDER = [
    WorkflowState.IDLE,
    WorkflowState.RECENT_LOADED,
    WorkflowState.ANALYZED,
    WorkflowState.GENERATED,
]


class Stage(str, Enum):
    RECENT = "recent"
    ANALYZE = "analyze"
    GENERATE = "generate"


# -------------------------
# Errors
# -------------------------
class WorkflowError(Exception):
    kind = "workflow_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "error": self.message}


class NetworkFailure(WorkflowError):
    kind = "network_failure"


class NonSuccessStatus(WorkflowError):
    kind = "non_success_status"

    def __init__(self, status: int, body: Any, message: Optional[str] = None):
        super().__init__(message or f"Backend returned HTTP {status}")
        self.status = status
        self.body = body

    def to_dict(self) -> Dict[str, Any]:
        out = super().to_dict()
        out.update(status=self.status, data=self.body)
        return out


class AuthRequired(NonSuccessStatus):
    kind = "auth_required"

    def __init__(self, status: int, body: Any, oauth_url: str):
        super().__init__(status, body, "Authentication with the activity provider is required")
        self.oauth_url = oauth_url

    def to_dict(self) -> Dict[str, Any]:
        out = super().to_dict()
        out["oauth_url"] = self.oauth_url
        return out


class PreconditionFailed(WorkflowError):
    kind = "precondition_failed"


class DecodeFailure(WorkflowError):
    kind = "decode_failure"

    def __init__(self, message: str, payload: Any = None):
        super().__init__(message)
        self.payload = payload

    def to_dict(self) -> Dict[str, Any]:
        out = super().to_dict()
        out["data"] = self.payload
        return out


# -------------------------
# Form input
# -------------------------
class FormInput(BaseModel):
    """Raw form values captured when a stage is triggered."""

    days: str = ""
    access_token: str = ""
    instructions_url: str = ""
    history_url: str = ""
    cardio_notes: str = ""
    location: str = ""
    duration_minutes: str = ""
    units: str = ""
    sleep_score: str = ""
    body_battery: str = ""
    equipment: List[str] = Field(default_factory=list)

    @field_validator(
        "days", "access_token", "instructions_url", "history_url", "cardio_notes",
        "location", "duration_minutes", "units", "sleep_score", "body_battery",
        mode="before",
    )
    @classmethod
    def _as_text(cls, value):
        if value is None:
            return ""
        return str(value)

    @field_validator("equipment", mode="before")
    @classmethod
    def _as_list(cls, value):
        if value is None:
            return []
        if isinstance(value, str):
            return [value] if value else []
        if not isinstance(value, (list, tuple, set)):
            raise ValueError("equipment must be a list of keys")
        return [str(v) for v in value]


def positive_int(raw: str, default: int) -> int:
    text = str(raw).strip()
    # int() would also accept "1_000"
    if "_" in text:
        return default
    try:
        value = int(text)
    except ValueError:
        return default
    return value if value > 0 else default


def optional_number(raw: str):
    """Parse a wellness score; None means the key is left out of the request."""
    text = (raw or "").strip()
    if not text or "_" in text:
        return None
    try:
        value = float(text)
    except ValueError:
        return None
    if not math.isfinite(value):
        return None
    return int(value) if value.is_integer() else value


def _text_or(raw: str, default: str) -> str:
    text = (raw or "").strip()
    return text or default


def _unique(items) -> List[str]:
    return list(dict.fromkeys(items))


def build_analyze_body(form: FormInput, recent: Optional[List[Any]]) -> Dict[str, Any]:
    body = {
        "instructions_url": _text_or(form.instructions_url, config.DEMO_INSTRUCTIONS_URL),
        "history_url": _text_or(form.history_url, config.DEMO_HISTORY_URL),
        "strava_recent": recent if recent is not None else [],
        "upcoming_cardio_text": form.cardio_notes,
        "location": _text_or(form.location, config.DEFAULT_LOCATION),
        "equipment_inventory": _unique(form.equipment),
        "duration_minutes": positive_int(form.duration_minutes, config.DEFAULT_DURATION_MINUTES),
        "units": _text_or(form.units, config.DEFAULT_UNITS),
    }

    sleep_score = optional_number(form.sleep_score)
    if sleep_score is not None:
        body["garmin_sleep_score"] = sleep_score
    body_battery = optional_number(form.body_battery)
    if body_battery is not None:
        body["garmin_body_battery"] = body_battery

    return body


def _response_body(resp):
    try:
        return resp.json()
    except ValueError:
        return resp.text


# -------------------------
# Orchestrator
# -------------------------
class WorkflowOrchestrator:
    def __init__(self, store: SessionStore, base_url: str = config.SWOLEGEN_API_BASE, http=None):
        self.store = store
        self.base_url = base_url.rstrip("/")
        self.http = http if http is not None else requests.Session()

        self.state = WorkflowState.IDLE
        self.last_recent: Optional[List[Any]] = None
        self.last_analyze: Optional[Any] = None
        self.plan_document: Optional[str] = None
        self.last_error: Optional[WorkflowError] = None
        self.warning: Optional[str] = None

        self._lock = threading.Lock()
        self._issued = {stage: 0 for stage in Stage}
        self._applied = {stage: 0 for stage in Stage}
        self._in_flight = {stage: 0 for stage in Stage}

    # -- bookkeeping --

    def _begin(self, stage: Stage) -> int:
        with self._lock:
            self._issued[stage] += 1
            self._in_flight[stage] += 1
            self.last_error = None
            return self._issued[stage]

    def _finish(self, stage: Stage) -> None:
        with self._lock:
            self._in_flight[stage] -= 1

    def _claim(self, stage: Stage, seq: int, latest_only: bool = False) -> bool:
        """True when the response tagged ``seq`` may write the stage's cache.

        Caller holds ``self._lock`` and applies its writes in that same hold.
        """
        newest = self._issued[stage] if latest_only else self._applied[stage] + 1
        if seq < newest:
            logger.warning("Discarding stale %s response (seq=%s)", stage.value, seq)
            return False
        self._applied[stage] = seq
        return True

    def _advance(self, target: WorkflowState) -> None:
        if _STATE_ORDER.index(target) > _STATE_ORDER.index(self.state):
            self.state = target

    def _invalidate_analysis(self) -> None:
        self.last_analyze = None
        if self.state in (WorkflowState.ANALYZED, WorkflowState.GENERATED):
            self.state = WorkflowState.RECENT_LOADED if self.last_recent is not None else WorkflowState.IDLE

    def _remember(self, field: SessionField, value: str) -> None:
        if value and value.strip():
            self.store.set(field, value.strip())

    def _request(self, method: str, path: str, **kwargs):
        url = f"{self.base_url}{path}"
        try:
            return getattr(self.http, method)(url, **kwargs)
        except requests.exceptions.RequestException as e:
            raise NetworkFailure(f"{method.upper()} {path} failed: {e}") from e

    @property
    def loading(self) -> bool:
        return any(count > 0 for count in self._in_flight.values())

    # -- catalog / oauth --

    def load_catalog(self) -> List[CatalogEntry]:
        resp = self._request("get", "/equipment.yaml")
        if resp.status_code != 200:
            raise NonSuccessStatus(resp.status_code, resp.text)
        return parse(resp.text)

    def oauth_start_url(self, provider: str = config.OAUTH_PROVIDER) -> str:
        return f"{self.base_url}/oauth/{provider}/start"

    # -- stages --

    def fetch_recent(self, form: FormInput) -> Dict[str, Any]:
        seq = self._begin(Stage.RECENT)
        try:
            days = positive_int(form.days, config.DEFAULT_DAYS)
            token = form.access_token.strip()
            headers = {}
            if token:
                headers["Authorization"] = f"Bearer {token}"

            logger.info("Fetching recent activities (days=%s, token=%s)", days, bool(token))
            resp = self._request("get", "/strava/recent", params={"days": days}, headers=headers)
            data = _response_body(resp)

            if resp.status_code == 401 and isinstance(data, dict) and data.get("oauth_url"):
                raise AuthRequired(resp.status_code, data, data["oauth_url"])
            if resp.status_code != 200:
                raise NonSuccessStatus(resp.status_code, data)

            activities = data.get("activities") if isinstance(data, dict) else None
            if not isinstance(activities, list):
                raise DecodeFailure("Recent response has no activities list", data)

            with self._lock:
                if self._claim(Stage.RECENT, seq):
                    self._remember(SessionField.ACCESS_TOKEN, token)
                    self._remember(SessionField.INSTRUCTIONS_URL, form.instructions_url)
                    self._remember(SessionField.HISTORY_URL, form.history_url)
                    self.store.set_equipment_selection(form.equipment)
                    self.last_recent = activities
                    self._advance(WorkflowState.RECENT_LOADED)

            return {"status": resp.status_code, "data": data}
        except WorkflowError as e:
            self.last_error = e
            raise
        finally:
            self._finish(Stage.RECENT)

    def analyze(self, form: FormInput) -> Dict[str, Any]:
        seq = self._begin(Stage.ANALYZE)
        with self._lock:
            self._invalidate_analysis()
        try:
            body = build_analyze_body(form, self.last_recent)
            logger.info(
                "Requesting analysis (%d activities, %d equipment items)",
                len(body["strava_recent"]), len(body["equipment_inventory"]),
            )
            resp = self._request("post", "/llm/analyze", json=body)
            data = _response_body(resp)

            if resp.status_code != 200:
                raise NonSuccessStatus(resp.status_code, data)
            if data is None or data == "":
                raise DecodeFailure("Analyze response has no plan", data)

            with self._lock:
                if self._claim(Stage.ANALYZE, seq, latest_only=True):
                    self.last_analyze = data
                    self.state = WorkflowState.ANALYZED
                    self._remember(SessionField.INSTRUCTIONS_URL, form.instructions_url)
                    self._remember(SessionField.HISTORY_URL, form.history_url)
                    self._remember(SessionField.CARDIO_NOTES, form.cardio_notes)
                    self.store.set_equipment_selection(form.equipment)

            return {"status": resp.status_code, "data": data}
        except WorkflowError as e:
            with self._lock:
                if seq == self._issued[Stage.ANALYZE]:
                    self._invalidate_analysis()
            self.last_error = e
            raise
        finally:
            self._finish(Stage.ANALYZE)

    def generate(self) -> Dict[str, Any]:
        seq = self._begin(Stage.GENERATE)
        try:
            with self._lock:
                plan = self.last_analyze
                if plan is None:
                    self._invalidate_analysis()
            if plan is None:
                raise PreconditionFailed("No analysis plan cached; run Analyze first")

            logger.info("Requesting plan generation")
            resp = self._request("post", "/llm/generate", json=plan)
            data = _response_body(resp)

            if resp.status_code != 200:
                raise NonSuccessStatus(resp.status_code, data)
            if not isinstance(data, str):
                raise DecodeFailure("Generate response is not a base64 string", data)
            try:
                document = base64.b64decode(data.strip(), validate=True).decode("utf-8")
            except ValueError as e:
                raise DecodeFailure(f"Generate response is not valid base64: {e}", data) from e

            with self._lock:
                if plan is self.last_analyze and self._claim(Stage.GENERATE, seq):
                    self.plan_document = document
                    self.state = WorkflowState.GENERATED

            return {"status": resp.status_code, "data": data, "document": document}
        except DecodeFailure as e:
            with self._lock:
                if self._claim(Stage.GENERATE, seq):
                    self.plan_document = None
                    if self.state is WorkflowState.GENERATED:
                        self.state = WorkflowState.ANALYZED
            self.last_error = e
            raise
        except WorkflowError as e:
            self.last_error = e
            raise
        finally:
            self._finish(Stage.GENERATE)

    def copy_plan(self, clipboard=copy_to_clipboard) -> bool:
        if not self.plan_document:
            self.warning = "No plan document to copy"
            return False
        try:
            clipboard(self.plan_document)
        except ClipboardError as e:
            logger.warning("Copy to clipboard failed: %s", e)
            self.warning = f"Copy failed: {e}"
            return False
        self.warning = None
        return True

    def snapshot(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "loading": self.loading,
            "error": self.last_error.to_dict() if self.last_error else None,
            "warning": self.warning,
            "has_recent": self.last_recent is not None,
            "has_analyze": self.last_analyze is not None,
            "plan_document": self.plan_document,
        }
