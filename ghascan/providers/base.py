"""
base.py - Interfaces the entity graph uses to reach repositories

The graph never talks to the network itself. It asks a metadata provider for
a repository's default branch and size, and a content provider for the action
and workflow files at a given ref.
"""

from dataclasses import dataclass
from typing import Dict, List, Protocol


@dataclass(frozen=True)
class RepositoryMetadata:
    """What the graph needs to know about a repository before fetching it"""

    owner: str
    name: str
    default_branch: str
    size_kb: int = 0
    archived: bool = False
    fork: bool = False

    @property
    def url(self) -> str:
        return f"https://github.com/{self.owner}/{self.name}"


class MetadataProvider(Protocol):
    def repository_metadata(self, owner: str, name: str) -> RepositoryMetadata:
        """Raise ResolutionError when the repository cannot be looked up"""
        ...

    def list_repositories(self, org: str) -> List[RepositoryMetadata]:
        """Raise ResolutionError when the organization cannot be listed"""
        ...


class ContentProvider(Protocol):
    def action_files(self, owner: str, name: str, ref: str) -> Dict[str, str]:
        """Map of repository-relative path to text for action/workflow files"""
        ...
