from __future__ import annotations

import logging
import re
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum

from constants import (
    DEFAULT_MAX_WORKERS,
    EMPTY_VALUE,
    STATE_CLOSED,
    STATE_REMOVED,
    STATE_RESOLVED,
    UNASSIGNED,
    UNKNOWN_MEMBER,
    UNKNOWN_STATE,
    UNTITLED,
    WORK_ITEM_TYPE,
)
from devops.client import Collection
from devops.errors import ConfigurationError, DataShapeError, DevOpsError, RunCancelled
from devops.projects import get_team_members
from devops.wiql import QueryOptions, build_workload_query
from devops.workitems import get_work_items, query_work_item_ids
from selection import Catalog, QueryScope, load_catalog, resolve_selection


class DelayStatus(str, Enum):
    DELAYED = "delayed"
    WARNING = "warning"
    NORMAL = "normal"
    UNKNOWN = "unknown"

    @property
    def rank(self) -> int:
        return SEVERITY_RANK[self]


# Lower sorts first within a member's list
SEVERITY_RANK = {
    DelayStatus.DELAYED: 1,
    DelayStatus.WARNING: 2,
    DelayStatus.NORMAL: 3,
    DelayStatus.UNKNOWN: 4,
}


def _to_day(value) -> date | None:
    """Truncate an API date (ISO string, datetime or date) to a local day."""
    if not value:
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        return value
    else:
        text = str(value).strip().replace("Z", "+00:00")
        # The server trims trailing zeros and emits up to seven digits
        text = re.sub(r"\.(\d+)", lambda m: "." + m.group(1)[:6].ljust(6, "0"), text)
        parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone()
    return parsed.date()


def delay_status(state, target_date, today: date, resolved_state=STATE_RESOLVED) -> DelayStatus:
    """Classify how late an item is relative to ``today``.

    Resolved items and items without a target date are never late. Otherwise
    a target before today is delayed, today or tomorrow is a warning.
    """
    if state == resolved_state:
        return DelayStatus.NORMAL
    if not target_date:
        return DelayStatus.NORMAL
    try:
        target = _to_day(target_date)
    except (TypeError, ValueError):
        return DelayStatus.UNKNOWN
    if target < today:
        return DelayStatus.DELAYED
    if target <= today + timedelta(days=1):
        return DelayStatus.WARNING
    return DelayStatus.NORMAL


def format_date(value) -> str:
    """Format an API date as YYYY/MM/DD."""
    if not value:
        return EMPTY_VALUE
    try:
        return _to_day(value).strftime("%Y/%m/%d")
    except (TypeError, ValueError):
        return str(value)


def identity_name(identity, member_identity="display_name", default=UNASSIGNED) -> str:
    """Return the join-key name of an identity reference field."""
    if not identity:
        return default
    if isinstance(identity, str):
        return identity
    if member_identity == "unique_name":
        return identity.get("uniqueName") or identity.get("displayName") or default
    return identity.get("displayName") or identity.get("uniqueName") or default


@dataclass(frozen=True)
class ProcessedWorkItem:
    id: int
    title: str
    description: str
    state: str
    priority: object
    start_date: str
    target_date: str
    changed_date: str
    changed_by: str
    assigned_to: str
    area_path: str
    iteration_path: str
    collection: str
    delay_status: DelayStatus

    def to_dict(self) -> dict:
        data = asdict(self)
        data["delay_status"] = self.delay_status.value
        return data


def process_work_item(
    item: dict,
    today: date,
    resolved_state=STATE_RESOLVED,
    member_identity="display_name",
    collection: str = "",
) -> ProcessedWorkItem:
    if not isinstance(item, dict) or item.get("id") is None:
        raise DataShapeError("Work item record without an id")
    fields = item.get("fields")
    if not isinstance(fields, dict):
        fields = {}
    state = fields.get("System.State") or UNKNOWN_STATE
    target = fields.get("Microsoft.VSTS.Scheduling.TargetDate")
    priority = fields.get("Microsoft.VSTS.Common.Priority")
    return ProcessedWorkItem(
        id=item["id"],
        title=fields.get("System.Title") or UNTITLED,
        description=fields.get("System.Description") or "",
        state=state,
        priority=EMPTY_VALUE if priority is None else priority,
        start_date=format_date(fields.get("Microsoft.VSTS.Scheduling.StartDate")),
        target_date=format_date(target),
        changed_date=format_date(fields.get("System.ChangedDate")),
        changed_by=identity_name(fields.get("System.ChangedBy"), member_identity, EMPTY_VALUE),
        assigned_to=identity_name(fields.get("System.AssignedTo"), member_identity),
        area_path=fields.get("System.AreaPath") or "",
        iteration_path=fields.get("System.IterationPath") or "",
        collection=collection,
        delay_status=delay_status(state, target, today, resolved_state),
    )


@dataclass
class WorkloadEntry:
    items: list[ProcessedWorkItem] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.items)

    def add(self, item: ProcessedWorkItem) -> None:
        self.items.append(item)

    def sort_by_severity(self) -> None:
        # list.sort is stable, so equal ranks keep insertion order
        self.items.sort(key=lambda item: item.delay_status.rank)

    def to_dict(self) -> dict:
        return {"total": self.total, "assigned": [item.to_dict() for item in self.items]}


@dataclass(frozen=True)
class AggregationRequest:
    """Everything one aggregation run needs; never mutated once built."""

    collections: tuple[Collection, ...]
    project: str
    team: str
    target_date_only: bool = False
    member_identity: str = "display_name"
    work_item_type: str = WORK_ITEM_TYPE
    resolved_state: str = STATE_RESOLVED
    closed_state: str = STATE_CLOSED
    removed_state: str = STATE_REMOVED
    timeout: float | None = None
    max_workers: int = DEFAULT_MAX_WORKERS

    @classmethod
    def from_settings(cls, collections, project, team, settings, **overrides):
        values = {
            "collections": tuple(collections),
            "project": project,
            "team": team,
            "target_date_only": settings["target_date_only"],
            "member_identity": settings["member_identity"],
            "work_item_type": settings["work_item_type"],
            "resolved_state": settings["resolved_state"],
            "closed_state": settings["closed_state"],
            "removed_state": settings["removed_state"],
            "timeout": settings["request_timeout"],
            "max_workers": settings["max_workers"],
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    @property
    def query_options(self) -> QueryOptions:
        return QueryOptions(
            work_item_type=self.work_item_type,
            closed_state=self.closed_state,
            removed_state=self.removed_state,
            require_target_date=self.target_date_only,
        )


@dataclass
class CollectionResult:
    collection: Collection
    member_names: list[str]
    items: list[ProcessedWorkItem]


def _collect_collection(request, collection, teams, scopes: list[QueryScope], today, cancel):
    """Fetch rosters and matching work items for one collection."""
    member_names: list[str] = []
    for team in teams:
        for member in get_team_members(team, timeout=request.timeout, cancel=cancel):
            name = member.key(request.member_identity)
            if name not in member_names:
                member_names.append(name)

    ids: dict[int, None] = {}
    for scope in scopes:
        query = build_workload_query(request.query_options, scope.project, scope.team)
        for work_item_id in query_work_item_ids(
            collection, query, timeout=request.timeout, cancel=cancel
        ):
            ids.setdefault(work_item_id, None)

    raw_items = []
    if ids:
        raw_items = get_work_items(collection, list(ids), timeout=request.timeout, cancel=cancel)
    items = [
        process_work_item(
            raw,
            today,
            resolved_state=request.resolved_state,
            member_identity=request.member_identity,
            collection=collection.name,
        )
        for raw in raw_items
    ]
    return CollectionResult(collection=collection, member_names=member_names, items=items)


def merge_results(results) -> dict[str, WorkloadEntry]:
    """Fold per-collection results into the member-keyed workload mapping.

    Roster members get an entry even with nothing assigned; assignees missing
    from every roster get one created on first sight.
    """
    workload: dict[str, WorkloadEntry] = {}
    for result in results:
        for name in result.member_names:
            workload.setdefault(name or UNKNOWN_MEMBER, WorkloadEntry())
    for result in results:
        for item in result.items:
            workload.setdefault(item.assigned_to, WorkloadEntry()).add(item)
    for entry in workload.values():
        entry.sort_by_severity()
    return workload


def aggregate_workload(
    request: AggregationRequest,
    catalog: Catalog | None = None,
    today: date | None = None,
    cancel: threading.Event | None = None,
) -> dict[str, WorkloadEntry]:
    """Build the per-member workload for ``request``.

    Each collection is fetched as an independent unit on a bounded pool. A
    unit that fails is logged and contributes nothing; results are merged in
    collection order afterwards so the output never depends on fetch timing.
    """
    if not request.collections:
        raise ConfigurationError("No fully configured collection is available")
    if not request.project or not request.team:
        raise ConfigurationError("Select a project and a team")

    today = today or date.today()
    if catalog is None:
        catalog = load_catalog(request.collections, timeout=request.timeout, cancel=cancel)
    selection = resolve_selection(
        request.project, request.team, catalog, timeout=request.timeout, cancel=cancel
    )

    units = []
    for collection in request.collections:
        teams, scopes = selection.for_collection(collection)
        if teams or scopes:
            units.append((collection, teams, scopes))

    results: list[CollectionResult] = []
    with ThreadPoolExecutor(max_workers=max(1, request.max_workers)) as executor:
        futures = [
            (
                collection,
                executor.submit(
                    _collect_collection, request, collection, teams, scopes, today, cancel
                ),
            )
            for collection, teams, scopes in units
        ]
        for collection, future in futures:
            try:
                results.append(future.result())
            except RunCancelled:
                raise
            except DevOpsError as e:
                logging.error("Skipping collection %s: %s", collection.name, e)

    if cancel is not None and cancel.is_set():
        raise RunCancelled("Aggregation superseded by a newer run")
    return merge_results(results)


class WorkloadRunner:
    """Run aggregations so that only the most recently started one publishes.

    Starting a run cancels the previous one; a run that finishes after being
    superseded raises ``RunCancelled`` instead of returning stale data.
    """

    def __init__(self, aggregate=aggregate_workload):
        self._aggregate = aggregate
        self._lock = threading.Lock()
        self._generation = 0
        self._cancel: threading.Event | None = None
        self.latest: dict[str, WorkloadEntry] | None = None

    def run(self, request: AggregationRequest, **kwargs) -> dict[str, WorkloadEntry]:
        with self._lock:
            if self._cancel is not None:
                self._cancel.set()
            self._generation += 1
            generation = self._generation
            cancel = self._cancel = threading.Event()
        try:
            workload = self._aggregate(request, cancel=cancel, **kwargs)
        except RunCancelled:
            raise
        except Exception:
            with self._lock:
                if generation == self._generation:
                    self.latest = None
            raise
        with self._lock:
            if generation != self._generation:
                raise RunCancelled("Aggregation superseded by a newer run")
            self.latest = workload
        return workload

    def clear(self) -> None:
        with self._lock:
            self.latest = None
