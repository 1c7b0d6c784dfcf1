import logging
import threading
import time
from contextlib import contextmanager
from functools import lru_cache

from flask import Flask, jsonify, render_template, request

from chart import build_chart_data, workload_to_json
from config import (
    config_fingerprint,
    get_collections,
    get_settings,
    has_complete_collection,
)
from constants import ALL
from devops.errors import ConfigurationError, DevOpsError, RunCancelled
from selection import load_catalog
from workload import AggregationRequest, WorkloadRunner

app = Flask(__name__)
# Member tables are ordered by workload, not by name
app.json.sort_keys = False

# Cache time-to-live in seconds for the project catalog
CATALOG_CACHE_TTL_SECONDS = 300


class DashboardState:
    """Busy flag and last error shown by the page.

    The error stays until the next operation replaces or clears it, and the
    busy counter is always released even when the operation fails.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._loading = 0
        self.error: str | None = None

    @property
    def loading(self) -> bool:
        return self._loading > 0

    @contextmanager
    def busy(self):
        with self._lock:
            self._loading += 1
        try:
            yield
        finally:
            with self._lock:
                self._loading -= 1

    def succeeded(self) -> None:
        self.error = None

    def failed(self, message: str) -> None:
        self.error = message

    def to_dict(self) -> dict:
        return {"loading": self.loading, "error": self.error}


state = DashboardState()
runner = WorkloadRunner()


@lru_cache(maxsize=4)
def _catalog(_fingerprint: str, _cache_epoch: int):
    settings = get_settings()
    return load_catalog(get_collections(), timeout=settings["request_timeout"])


def current_catalog():
    cache_epoch = int(time.time() / CATALOG_CACHE_TTL_SECONDS)
    return _catalog(config_fingerprint(), cache_epoch)


def _error_response(prefix: str, error: Exception):
    message = f"{prefix}: {error}"
    logging.error(message)
    state.failed(message)
    status = 400 if isinstance(error, ConfigurationError) else 502
    return jsonify({"error": message}), status


def _flag(name: str):
    value = request.args.get(name)
    if value is None:
        return None
    return value.lower() in {"1", "true", "yes", "on"}


@app.route("/")
def index():
    settings = get_settings()
    return render_template(
        "index.html",
        auto_load=has_complete_collection(),
        palette=settings["palette"],
        target_date_only=settings["target_date_only"],
    )


@app.route("/api/status")
def status():
    return jsonify(state.to_dict())


@app.route("/api/projects")
def projects():
    with state.busy():
        try:
            catalog = current_catalog()
        except DevOpsError as e:
            return _error_response("Failed to load projects", e)
        state.succeeded()
        return jsonify(
            [
                {
                    "id": project.id,
                    "name": project.name,
                    "description": project.description,
                    "collection": project.collection.name,
                }
                for project in catalog.projects
            ]
        )


@app.route("/api/teams")
def teams():
    project_id = request.args.get("project", "")
    if not project_id or project_id == ALL:
        return jsonify([])
    with state.busy():
        try:
            catalog = current_catalog()
            project = catalog.find_project(project_id)
            if project is None:
                raise ConfigurationError(f"Unknown project {project_id!r}")
            settings = get_settings()
            team_list = catalog.teams_for(project, timeout=settings["request_timeout"])
        except DevOpsError as e:
            return _error_response("Failed to load teams", e)
        state.succeeded()
        return jsonify(
            [
                {"id": team.id, "name": team.name, "description": team.description}
                for team in team_list
            ]
        )


@app.route("/api/workload")
def workload():
    """Aggregate open work per member and return chart and table data."""
    search = request.args.get("search", "")
    with state.busy():
        try:
            aggregation = AggregationRequest.from_settings(
                get_collections(),
                request.args.get("project", ""),
                request.args.get("team", ""),
                get_settings(),
                target_date_only=_flag("target_date_only"),
            )
            data = runner.run(aggregation, catalog=current_catalog())
        except RunCancelled as e:
            return jsonify({"error": str(e), "superseded": True}), 409
        except DevOpsError as e:
            runner.clear()
            return _error_response("Failed to load workload data", e)
        state.succeeded()
        return jsonify(_workload_payload(data, search))


@app.route("/api/chart")
def chart():
    """Re-filter the last aggregation without fetching again."""
    data = runner.latest
    if data is None:
        return jsonify({"error": "No workload has been loaded"}), 404
    return jsonify(_workload_payload(data, request.args.get("search", "")))


def _workload_payload(data, search):
    return {
        "chart": build_chart_data(data, get_settings()["palette"], search),
        "members": workload_to_json(data, search),
    }


def refresh_workload():
    """Drop cached catalogs and re-run the all-projects aggregation."""
    _catalog.cache_clear()
    with state.busy():
        try:
            aggregation = AggregationRequest.from_settings(
                get_collections(), ALL, ALL, get_settings()
            )
            runner.run(aggregation, catalog=current_catalog())
        except RunCancelled:
            return
        except DevOpsError as e:
            logging.error("Scheduled refresh failed: %s", e)
            runner.clear()
            state.failed(f"Failed to load workload data: {e}")
            return
        state.succeeded()


if __name__ == "__main__":
    from jobs import start_background_refresh

    start_background_refresh(refresh_workload)
    app.run()
