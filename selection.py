from __future__ import annotations

import logging
from dataclasses import dataclass, field

from constants import ALL
from devops.client import Collection
from devops.errors import ConfigurationError, DevOpsError, RunCancelled
from devops.projects import Project, Team, get_projects, get_teams


@dataclass
class Catalog:
    """Projects known per collection, with team lists filled in on demand."""

    collections: list[Collection]
    projects: list[Project] = field(default_factory=list)
    teams: dict[tuple[str, str], list[Team]] = field(default_factory=dict)

    def find_project(self, selector: str) -> Project | None:
        for project in self.projects:
            if selector in (project.id, project.name):
                return project
        return None

    def teams_for(self, project: Project, timeout=None, cancel=None) -> list[Team]:
        key = (project.collection.base_url, project.id)
        if key not in self.teams:
            self.teams[key] = get_teams(project, timeout=timeout, cancel=cancel)
        return self.teams[key]


@dataclass(frozen=True)
class QueryScope:
    """One work item query: a whole collection, one project or one team."""

    collection: Collection
    project: str | None = None
    team: str | None = None


@dataclass
class Selection:
    triples: list[Team]
    scopes: list[QueryScope]

    def for_collection(self, collection: Collection) -> tuple[list[Team], list[QueryScope]]:
        return (
            [team for team in self.triples if team.collection == collection],
            [scope for scope in self.scopes if scope.collection == collection],
        )


def load_catalog(collections, timeout=None, cancel=None) -> Catalog:
    """List the projects of every collection.

    A collection that cannot be listed is logged and left out. If none of
    them can be listed the last failure is raised.
    """
    if not collections:
        raise ConfigurationError("No fully configured collection is available")
    catalog = Catalog(collections=list(collections))
    last_error = None
    listed = 0
    for collection in collections:
        try:
            catalog.projects += get_projects(collection, timeout=timeout, cancel=cancel)
            listed += 1
        except RunCancelled:
            raise
        except DevOpsError as e:
            logging.error("Failed to load projects for %s: %s", collection.name, e)
            last_error = e
    if not listed and last_error is not None:
        raise last_error
    return catalog


def _matching_teams(catalog, project, team_selector, timeout, cancel):
    teams = catalog.teams_for(project, timeout=timeout, cancel=cancel)
    if team_selector == ALL:
        return teams
    return [team for team in teams if team_selector in (team.id, team.name)]


def resolve_selection(
    project_selector: str,
    team_selector: str,
    catalog: Catalog,
    timeout=None,
    cancel=None,
) -> Selection:
    """Expand the project/team selectors into concrete teams and query scopes.

    ``"all"`` projects expands every project of every listed collection and
    the team selector is then applied per project. Failing to list one
    project's teams only drops that project's rosters.
    """
    if not project_selector or not team_selector:
        raise ConfigurationError("Select a project and a team")

    if project_selector == ALL:
        projects = list(catalog.projects)
    else:
        project = catalog.find_project(project_selector)
        if project is None:
            raise ConfigurationError(f"Unknown project {project_selector!r}")
        projects = [project]

    triples: list[Team] = []
    scopes: list[QueryScope] = []
    for project in projects:
        try:
            teams = _matching_teams(catalog, project, team_selector, timeout, cancel)
        except RunCancelled:
            raise
        except DevOpsError as e:
            logging.error(
                "Failed to load teams for %s/%s: %s",
                project.collection.name,
                project.name,
                e,
            )
            teams = []
        triples += teams
        if team_selector != ALL:
            scopes += [QueryScope(team.collection, project.name, team.name) for team in teams]
        elif project_selector != ALL:
            scopes.append(QueryScope(project.collection, project.name))

    if project_selector == ALL and team_selector == ALL:
        seen = []
        for project in projects:
            if project.collection not in seen:
                seen.append(project.collection)
        scopes = [QueryScope(collection) for collection in seen]

    return Selection(triples=triples, scopes=scopes)
