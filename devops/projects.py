from dataclasses import dataclass
from urllib.parse import quote

from constants import UNKNOWN_MEMBER
from .client import Collection, call, entry_id, list_entries


@dataclass(frozen=True)
class Project:
    id: str
    name: str
    collection: Collection
    description: str = ""


@dataclass(frozen=True)
class Team:
    id: str
    name: str
    project: Project
    description: str = ""

    @property
    def collection(self) -> Collection:
        return self.project.collection


@dataclass(frozen=True)
class Member:
    display_name: str
    unique_name: str = ""

    def key(self, identity: str = "display_name") -> str:
        """Name used to join rosters against work item assignees."""
        if identity == "unique_name":
            return self.unique_name or self.display_name or UNKNOWN_MEMBER
        return self.display_name or self.unique_name or UNKNOWN_MEMBER


def _segment(value: str) -> str:
    return quote(value, safe="")


def get_projects(collection: Collection, timeout=None, cancel=None) -> list[Project]:
    """Return every project in ``collection``, in server order."""
    data = call(collection, "/_apis/projects", timeout=timeout, cancel=cancel)
    return [
        Project(
            id=entry_id(proj, "projects"),
            name=proj.get("name", ""),
            collection=collection,
            description=proj.get("description") or "",
        )
        for proj in list_entries(data, "projects")
    ]


def get_teams(project: Project, timeout=None, cancel=None) -> list[Team]:
    """Return the teams of ``project``."""
    data = call(
        project.collection,
        f"/_apis/projects/{_segment(project.id)}/teams",
        timeout=timeout,
        cancel=cancel,
    )
    return [
        Team(
            id=entry_id(team, "teams"),
            name=team.get("name", ""),
            project=project,
            description=team.get("description") or "",
        )
        for team in list_entries(data, "teams")
    ]


def get_team_members(team: Team, timeout=None, cancel=None) -> list[Member]:
    """Return the roster of ``team``.

    Members without an identity block are kept under the unknown-member name
    so the roster size matches the server's.
    """
    data = call(
        team.collection,
        f"/_apis/projects/{_segment(team.project.id)}/teams/{_segment(team.id)}/members",
        timeout=timeout,
        cancel=cancel,
    )
    members = []
    for entry in list_entries(data, "team members"):
        identity = entry.get("identity")
        if not isinstance(identity, dict):
            identity = {}
        members.append(
            Member(
                display_name=identity.get("displayName") or "",
                unique_name=identity.get("uniqueName") or "",
            )
        )
    return members
