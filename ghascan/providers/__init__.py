"""
providers package for ghascan - GitHub Actions Scanner

Sources of repository metadata and action/workflow file content.
"""

from .base import RepositoryMetadata, MetadataProvider, ContentProvider
from .archive import extract_action_files, is_action_path
from .github import GitHubClient, make_session

__all__ = [
    "RepositoryMetadata",
    "MetadataProvider",
    "ContentProvider",
    "extract_action_files",
    "is_action_path",
    "GitHubClient",
    "make_session",
]
