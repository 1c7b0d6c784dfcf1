"""Small builder for the work item query language.

Clauses are kept as data and only turned into text by ``serialize`` so
project and team names containing quotes cannot break the query.
"""

from __future__ import annotations

from dataclasses import dataclass


def quote_literal(value: str) -> str:
    return "'" + str(value).replace("'", "''") + "'"


@dataclass(frozen=True)
class Clause:
    field: str
    operator: str
    value: str | None = None

    def serialize(self) -> str:
        if self.value is None:
            return f"[{self.field}] {self.operator}"
        return f"[{self.field}] {self.operator} {quote_literal(self.value)}"


@dataclass(frozen=True)
class OrderBy:
    field: str
    descending: bool = False

    def serialize(self) -> str:
        return f"[{self.field}] {'DESC' if self.descending else 'ASC'}"


@dataclass(frozen=True)
class WiqlQuery:
    select: tuple[str, ...] = ("System.Id",)
    clauses: tuple[Clause, ...] = ()
    order_by: tuple[OrderBy, ...] = ()
    source: str = "WorkItems"

    def where(self, field_name: str, operator: str, value: str | None = None) -> WiqlQuery:
        return WiqlQuery(
            select=self.select,
            clauses=self.clauses + (Clause(field_name, operator, value),),
            order_by=self.order_by,
            source=self.source,
        )

    def serialize(self) -> str:
        parts = [
            "SELECT " + ", ".join(f"[{name}]" for name in self.select),
            f"FROM {self.source}",
        ]
        if self.clauses:
            parts.append(
                "WHERE " + "\n  AND ".join(clause.serialize() for clause in self.clauses)
            )
        if self.order_by:
            parts.append("ORDER BY " + ", ".join(o.serialize() for o in self.order_by))
        return "\n".join(parts)


@dataclass(frozen=True)
class QueryOptions:
    work_item_type: str
    closed_state: str
    removed_state: str
    require_target_date: bool = False


def area_path(project_name: str, team_name: str) -> str:
    return f"{project_name}\\{team_name}"


def build_workload_query(
    options: QueryOptions,
    project: str | None = None,
    team: str | None = None,
) -> WiqlQuery:
    """Return the open-items query for one scope.

    ``team`` only narrows the query when a project is given as well, since
    the area path is ``<project>\\<team>``.
    """
    query = WiqlQuery(
        select=("System.Id",),
        order_by=(OrderBy("System.State"), OrderBy("Microsoft.VSTS.Common.Priority")),
    )
    query = query.where("System.WorkItemType", "=", options.work_item_type)
    if project:
        query = query.where("System.TeamProject", "=", project)
        if team:
            query = query.where("System.AreaPath", "UNDER", area_path(project, team))
    if options.require_target_date:
        query = query.where("Microsoft.VSTS.Scheduling.TargetDate", "<>", "")
    query = query.where("System.State", "<>", options.closed_state)
    query = query.where("System.State", "<>", options.removed_state)
    return query
