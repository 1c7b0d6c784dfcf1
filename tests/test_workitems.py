from __future__ import annotations

import pytest

from conftest import FakeResponse
from devops.errors import HttpError, LoopGuardError
from devops.wiql import QueryOptions, build_workload_query
from devops.workitems import batched, get_work_items, query_work_item_ids

QUERY = build_workload_query(QueryOptions("User Story", "Closed", "Removed"))
WIQL_URL = "http://tfs.test/tfs/Alpha/_apis/wit/wiql"
ITEMS_URL = "http://tfs.test/tfs/Alpha/_apis/wit/workitems"


def test_pages_until_no_cursor_and_stops(server, collection):
    pages = {
        None: {"workItems": [{"id": 1}, {"id": 2}], "continuationToken": "a"},
        "a": {"workItems": [{"id": 3}], "continuationToken": "b"},
        "b": {"workItems": [{"id": 4}, {"id": 5}]},
    }
    server.add("POST", WIQL_URL, lambda params, json: pages[json.get("continuationToken")])

    ids = query_work_item_ids(collection, QUERY)

    assert ids == [1, 2, 3, 4, 5]
    posts = server.calls_to("/_apis/wit/wiql", "POST")
    assert len(posts) == 3
    assert "continuationToken" not in posts[0]["json"]
    assert [p["json"].get("continuationToken") for p in posts[1:]] == ["a", "b"]
    assert posts[0]["json"]["query"] == QUERY.serialize()


def test_repeated_cursor_is_a_loop(server, collection):
    server.add(
        "POST", WIQL_URL, {"workItems": [{"id": 1}], "continuationToken": "same"}
    )

    with pytest.raises(LoopGuardError):
        query_work_item_ids(collection, QUERY)
    assert len(server.calls) == 2


def test_empty_result(server, collection):
    server.add("POST", WIQL_URL, {"workItems": []})

    assert query_work_item_ids(collection, QUERY) == []


def test_batched_sizes():
    assert [len(b) for b in batched(range(450), 200)] == [200, 200, 50]
    assert batched([], 200) == []
    with pytest.raises(ValueError):
        batched([1], 0)


def test_detail_fetch_batches_and_keeps_order(server, collection):
    ids = list(range(1000, 1450))

    def details(params, json):
        return {"value": [{"id": int(i)} for i in params["ids"].split(",")]}

    server.add("GET", ITEMS_URL, details)

    items = get_work_items(collection, ids)

    calls = server.calls_to("/_apis/wit/workitems")
    assert [len(c["params"]["ids"].split(",")) for c in calls] == [200, 200, 50]
    assert [item["id"] for item in items] == ids
    assert "System.Title" in calls[0]["params"]["fields"].split(",")


def test_failing_batch_propagates(server, collection):
    responses = iter(
        [
            {"value": [{"id": i} for i in range(200)]},
            FakeResponse(500, None, text="boom"),
        ]
    )
    server.add("GET", ITEMS_URL, lambda params, json: next(responses))

    with pytest.raises(HttpError):
        get_work_items(collection, list(range(300)))
