import logging
import os

from flask import Flask, jsonify, redirect, request
from pydantic import ValidationError

import config
from session_store import SessionStore
from workflow import (
    AuthRequired,
    FormInput,
    NetworkFailure,
    PreconditionFailed,
    WorkflowError,
    WorkflowOrchestrator,
)

logger = logging.getLogger(__name__)


def _error_status(err: WorkflowError) -> int:
    if isinstance(err, AuthRequired):
        return 401
    if isinstance(err, PreconditionFailed):
        return 409
    if isinstance(err, NetworkFailure):
        return 503
    return 502


def _error_response(err: WorkflowError):
    return jsonify(success=False, **err.to_dict()), _error_status(err)


def _form_from_request() -> FormInput:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        data = {}
    return FormInput.model_validate(data)


def create_app(store=None, orchestrator=None, http=None):
    app = Flask(__name__)
    app.secret_key = config.FLASK_SECRET_KEY

    if store is None:
        store = SessionStore(os.getenv('SESSION_DB', config.SESSION_DB))
    if orchestrator is None:
        base_url = os.getenv('SWOLEGEN_API_BASE', config.SWOLEGEN_API_BASE)
        orchestrator = WorkflowOrchestrator(store, base_url=base_url, http=http)

    app.config['SESSION_STORE'] = store
    app.config['ORCHESTRATOR'] = orchestrator

    @app.errorhandler(ValidationError)
    def invalid_form(e):
        return jsonify(success=False, error=f"Invalid form input: {e.error_count()} error(s)"), 400

    @app.route("/")
    def index():
        return jsonify(success=True, **orchestrator.snapshot())

    @app.route("/catalog")
    def catalog():
        """Equipment checkboxes, pre-ticked from the saved selection."""
        try:
            entries = orchestrator.load_catalog()
        except WorkflowError as e:
            logger.warning("Catalog load failed: %s", e)
            return _error_response(e)
        selected = set(store.get_equipment_selection())
        items = [dict(entry.to_dict(), selected=entry.key in selected) for entry in entries]
        return jsonify(success=True, entries=items)

    @app.route("/session")
    def session_defaults():
        return jsonify(success=True, form=store.load_form_defaults())

    @app.route("/oauth/start")
    def oauth_start():
        return redirect(orchestrator.oauth_start_url())

    @app.route("/recent", methods=["POST"])
    def recent():
        try:
            result = orchestrator.fetch_recent(_form_from_request())
        except WorkflowError as e:
            return _error_response(e)
        return jsonify(success=True, state=orchestrator.state.value, **result)

    @app.route("/analyze", methods=["POST"])
    def analyze():
        try:
            result = orchestrator.analyze(_form_from_request())
        except WorkflowError as e:
            return _error_response(e)
        return jsonify(success=True, state=orchestrator.state.value, **result)

    @app.route("/generate", methods=["POST"])
    def generate():
        try:
            result = orchestrator.generate()
        except WorkflowError as e:
            return _error_response(e)
        return jsonify(success=True, state=orchestrator.state.value, **result)

    @app.route("/copy", methods=["POST"])
    def copy_plan():
        copied = orchestrator.copy_plan()
        return jsonify(success=copied, warning=orchestrator.warning, state=orchestrator.state.value)

    return app


if __name__ == "__main__":
    logging.basicConfig(level=config.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    port = int(os.environ.get("PORT", "5000"))
    debug = os.environ.get("FLASK_DEBUG", "1") == "1"
    create_app().run(host="127.0.0.1", port=port, debug=debug)
