import logging

from constants import WORK_ITEM_BATCH_SIZE, WORK_ITEM_FIELDS
from .client import Collection, call, entry_id, list_entries
from .errors import DataShapeError, LoopGuardError
from .wiql import WiqlQuery


def query_work_item_ids(
    collection: Collection, query: WiqlQuery, timeout=None, cancel=None
) -> list[int]:
    """Run ``query`` and follow continuation cursors until none is returned.

    A cursor the server already handed out is treated as a loop and aborts
    the query instead of paging forever.
    """
    text = query.serialize()
    ids: list[int] = []
    seen_tokens: set[str] = set()
    token = None
    while True:
        body = {"query": text}
        if token:
            body["continuationToken"] = token
        data = call(
            collection,
            "/_apis/wit/wiql",
            method="POST",
            json=body,
            timeout=timeout,
            cancel=cancel,
        )
        if not isinstance(data, dict) or not isinstance(data.get("workItems", []), list):
            raise DataShapeError("Unexpected query response: missing 'workItems' list")
        try:
            ids += [item["id"] for item in data.get("workItems", [])]
        except (KeyError, TypeError) as e:
            raise DataShapeError("Query response has a work item without an id") from e
        token = data.get("continuationToken")
        if not token:
            break
        if token in seen_tokens:
            raise LoopGuardError(
                f"Continuation token {token!r} repeated after {len(ids)} ids"
            )
        seen_tokens.add(token)
    logging.info("Query against %s matched %d work items", collection.name, len(ids))
    return ids


def batched(ids, size=WORK_ITEM_BATCH_SIZE):
    """Split ``ids`` into consecutive lists of at most ``size`` items."""
    if size <= 0:
        raise ValueError("batch size must be positive")
    ids = list(ids)
    return [ids[i:i + size] for i in range(0, len(ids), size)]


def get_work_items(
    collection: Collection,
    ids,
    batch_size=WORK_ITEM_BATCH_SIZE,
    fields=None,
    timeout=None,
    cancel=None,
) -> list[dict]:
    """Resolve ids to full work item records, one request per batch.

    Records come back in batch order. Any failing batch propagates so the
    caller never sees a silently shortened list.
    """
    fields = fields or WORK_ITEM_FIELDS
    items: list[dict] = []
    for batch in batched(ids, batch_size):
        data = call(
            collection,
            "/_apis/wit/workitems",
            params={
                "ids": ",".join(str(i) for i in batch),
                "fields": ",".join(fields),
            },
            timeout=timeout,
            cancel=cancel,
        )
        batch_items = list_entries(data, "work items")
        for item in batch_items:
            entry_id(item, "work items")
        items += batch_items
    return items
