"""
github.py - GitHub REST client

Implements both provider interfaces on top of the GitHub REST API: repository
metadata and organization listings, and action/workflow files read from the
repository tarball at a ref.
"""

import logging
import os
from typing import Any, Dict, List, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ..core.errors import ParseError, ResolutionError, SizeLimitExceeded
from ..utils.version import __version__
from .archive import DEFAULT_MAX_ARCHIVE_BYTES, extract_action_files, read_limited
from .base import RepositoryMetadata

DEFAULT_API_URL = "https://api.github.com"
DEFAULT_TIMEOUT = 60
PAGE_SIZE = 100


def make_session(token: Optional[str], user_agent: str = f"ghascan/{__version__}") -> requests.Session:
    """Create a requests Session with retries for transient failures and auth headers"""
    session = requests.Session()
    retry_strategy = Retry(
        total=3,
        backoff_factor=0.5,
        status_forcelist=[429, 500, 502, 503, 504],
        allowed_methods=["GET", "HEAD", "POST"],
        raise_on_status=False,
    )
    adapter = HTTPAdapter(max_retries=retry_strategy)
    session.mount("https://", adapter)
    session.mount("http://", adapter)

    headers = {
        "Accept": "application/vnd.github+json",
        "User-Agent": user_agent,
        "X-GitHub-Api-Version": "2022-11-28",
    }
    if token:
        headers["Authorization"] = f"Bearer {token}"
    session.headers.update(headers)
    return session


def _metadata_from_json(data: Dict[str, Any]) -> RepositoryMetadata:
    return RepositoryMetadata(
        owner=data["owner"]["login"],
        name=data["name"],
        default_branch=data.get("default_branch") or "main",
        size_kb=int(data.get("size") or 0),
        archived=bool(data.get("archived")),
        fork=bool(data.get("fork")),
    )


class GitHubClient:
    """Metadata and content provider backed by api.github.com"""

    def __init__(
        self,
        token: Optional[str] = None,
        api_url: str = DEFAULT_API_URL,
        timeout: float = DEFAULT_TIMEOUT,
        max_archive_bytes: int = DEFAULT_MAX_ARCHIVE_BYTES,
        session: Optional[requests.Session] = None,
    ) -> None:
        """
        Initialize the client

        Args:
            token: Personal access token; defaults to $GITHUB_TOKEN
            api_url: Base URL of the REST API
            timeout: Per-request timeout in seconds
            max_archive_bytes: Largest tarball that will be downloaded
            session: Pre-configured session (mainly for tests)
        """
        self.token = token if token is not None else os.environ.get("GITHUB_TOKEN")
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.max_archive_bytes = max_archive_bytes
        self.session = session or make_session(self.token)
        self.logger = logging.getLogger(__name__)

    def _get(self, path: str, **kwargs: Any) -> requests.Response:
        url = f"{self.api_url}{path}"
        kwargs.setdefault("timeout", self.timeout)
        try:
            response = self.session.get(url, **kwargs)
        except requests.RequestException as e:
            raise ResolutionError(f"GET {url} failed: {e}") from e
        if response.status_code != 200:
            response.close()
            raise ResolutionError(f"GET {url} returned {response.status_code}")
        return response

    def repository_metadata(self, owner: str, name: str) -> RepositoryMetadata:
        """
        Look up a repository's default branch and size

        Raises:
            ResolutionError: If the repository cannot be retrieved
        """
        response = self._get(f"/repos/{owner}/{name}")
        try:
            return _metadata_from_json(response.json())
        except (ValueError, KeyError) as e:
            raise ResolutionError(f"Unexpected repository payload for {owner}/{name}: {e}") from e

    def list_repositories(self, org: str) -> List[RepositoryMetadata]:
        """
        List the public repositories of an organization

        Raises:
            ResolutionError: If the organization cannot be listed
        """
        repositories: List[RepositoryMetadata] = []
        page = 1
        while True:
            response = self._get(
                f"/orgs/{org}/repos",
                params={"type": "public", "per_page": PAGE_SIZE, "page": page},
            )
            try:
                batch = response.json()
            except ValueError as e:
                raise ResolutionError(f"Unexpected repository listing for {org}: {e}") from e

            for data in batch:
                repositories.append(_metadata_from_json(data))

            if len(batch) < PAGE_SIZE:
                break
            page += 1

        return repositories

    def action_files(self, owner: str, name: str, ref: str) -> Dict[str, str]:
        """
        Fetch action and workflow files at ``ref`` from the repository tarball

        Raises:
            ResolutionError: If the archive cannot be downloaded or read
        """
        response = self._get(f"/repos/{owner}/{name}/tarball/{ref}", stream=True)
        try:
            data = read_limited(response.iter_content(chunk_size=1024 * 1024), self.max_archive_bytes)
            return extract_action_files(data)
        except (SizeLimitExceeded, ParseError) as e:
            raise ResolutionError(f"Tarball for {owner}/{name}@{ref}: {e}") from e
        except requests.RequestException as e:
            raise ResolutionError(f"Tarball download for {owner}/{name}@{ref} failed: {e}") from e
        finally:
            response.close()

    def status_code(self, url: str) -> Optional[int]:
        """HTTP status of ``url`` without following redirects; None when unreachable"""
        try:
            response = self.session.head(url, allow_redirects=False, timeout=self.timeout)
        except requests.RequestException as e:
            self.logger.warning(f"Failed to probe {url}: {e}")
            return None
        return response.status_code

    def authenticated_user(self) -> str:
        """Login of the token's owner"""
        response = self._get("/user")
        return str(response.json()["login"])

    def create_repository(self, name: str, description: str, private: bool = True) -> Dict[str, Any]:
        """
        Create a repository for the authenticated user

        Raises:
            ResolutionError: If GitHub refuses the request
        """
        url = f"{self.api_url}/user/repos"
        try:
            response = self.session.post(
                url,
                json={"name": name, "description": description, "private": private},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise ResolutionError(f"POST {url} failed: {e}") from e

        if response.status_code not in (200, 201):
            try:
                detail = response.json().get("message", "")
            except ValueError:
                detail = response.text
            raise ResolutionError(f"Creating repository {name} failed: {detail}")

        return dict(response.json())
