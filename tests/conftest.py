"""Shared fixtures: an in-memory stand-in for the server's REST API."""

from __future__ import annotations

import threading
from urllib.parse import unquote

import pytest

import devops.client
from devops.client import Collection


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=None):
        self.status_code = status_code
        self._payload = payload
        self.text = text if text is not None else str(payload)

    def json(self):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


class FakeServer:
    """Routes ``(method, url)`` to payloads, callables or exceptions."""

    def __init__(self):
        self.routes = {}
        self.calls = []
        self._lock = threading.Lock()

    def add(self, method, url, payload):
        self.routes[(method, url)] = payload

    def request(self, method, url, params=None, json=None, auth=None, timeout=None):
        with self._lock:
            self.calls.append(
                {
                    "method": method,
                    "url": url,
                    "params": params,
                    "json": json,
                    "auth": auth,
                    "timeout": timeout,
                }
            )
        handler = self.routes.get((method, unquote(url)))
        if handler is None:
            return FakeResponse(404, {"message": "not found"}, text=f"no route {url}")
        if isinstance(handler, Exception):
            raise handler
        if callable(handler):
            handler = handler(params=params, json=json)
        if isinstance(handler, FakeResponse):
            return handler
        return FakeResponse(200, handler)

    def calls_to(self, suffix, method=None):
        return [
            call
            for call in self.calls
            if unquote(call["url"]).endswith(suffix)
            and (method is None or call["method"] == method)
        ]


def add_collection(server, collection, projects, items=()):
    """Register a collection's projects, teams, rosters and work items.

    ``projects`` maps project name to ``{team name: [member display names]}``.
    Every query in the collection matches every item in ``items``.
    """
    base = collection.base_url
    server.add(
        "GET",
        f"{base}/_apis/projects",
        {"value": [{"id": f"{name}-id", "name": name} for name in projects]},
    )
    for project_name, teams in projects.items():
        project_id = f"{project_name}-id"
        server.add(
            "GET",
            f"{base}/_apis/projects/{project_id}/teams",
            {"value": [{"id": f"{team}-id", "name": team} for team in teams]},
        )
        for team, members in teams.items():
            server.add(
                "GET",
                f"{base}/_apis/projects/{project_id}/teams/{team}-id/members",
                {
                    "value": [
                        {"identity": {"displayName": m, "uniqueName": f"corp\\{m.lower()}"}}
                        for m in members
                    ]
                },
            )

    by_id = {item["id"]: item for item in items}
    server.add(
        "POST",
        f"{base}/_apis/wit/wiql",
        {"workItems": [{"id": item["id"]} for item in items]},
    )

    def details(params=None, json=None):
        ids = [int(i) for i in params["ids"].split(",")]
        return {"value": [by_id[i] for i in ids]}

    server.add("GET", f"{base}/_apis/wit/workitems", details)


def work_item(item_id, assignee=None, state="进行中", target=None, title="Item"):
    fields = {"System.Title": f"{title} {item_id}", "System.State": state}
    if assignee:
        fields["System.AssignedTo"] = {
            "displayName": assignee,
            "uniqueName": f"corp\\{assignee.lower()}",
        }
    if target:
        fields["Microsoft.VSTS.Scheduling.TargetDate"] = target
    return {"id": item_id, "fields": fields}


@pytest.fixture
def server(monkeypatch):
    fake = FakeServer()
    monkeypatch.setattr(devops.client, "_get_session", lambda: fake)
    return fake


@pytest.fixture
def collection():
    return Collection(server_url="http://tfs.test/tfs", name="Alpha", token="secret")


@pytest.fixture
def second_collection():
    return Collection(server_url="http://tfs.test/tfs", name="Beta", token="other")
