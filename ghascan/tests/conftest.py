"""
conftest.py - Pytest fixtures for ghascan tests
"""

import tempfile
import threading
from collections import Counter
from typing import Dict, Iterable, List, Optional, Tuple

import pytest

from ghascan.core.entities import Registry
from ghascan.core.errors import ResolutionError
from ghascan.providers.base import RepositoryMetadata
from ghascan.rules.engine import RuleEngine


class FakeGitHub:
    """In-memory metadata, content and status provider"""

    def __init__(self) -> None:
        self.metadata: Dict[Tuple[str, str], RepositoryMetadata] = {}
        self.files: Dict[Tuple[str, str, str], Dict[str, str]] = {}
        self.orgs: Dict[str, List[RepositoryMetadata]] = {}
        self.statuses: Dict[str, int] = {}
        self.metadata_calls: Counter = Counter()
        self.content_calls: Counter = Counter()
        self.lock = threading.Lock()

    def add_repository(
        self,
        owner: str,
        name: str,
        files: Optional[Dict[str, str]] = None,
        refs: Iterable[str] = (),
        default_branch: str = "main",
        size_kb: int = 10,
        archived: bool = False,
        fork: bool = False,
    ) -> RepositoryMetadata:
        metadata = RepositoryMetadata(owner, name, default_branch, size_kb, archived, fork)
        self.metadata[(owner.lower(), name.lower())] = metadata
        for ref in set(refs) | {default_branch}:
            self.files[(owner.lower(), name.lower(), ref)] = dict(files or {})
        self.orgs.setdefault(owner.lower(), []).append(metadata)
        return metadata

    def rename(self, old_owner: str, old_name: str, owner: str, name: str) -> None:
        """Serve ``owner/name`` when asked for ``old_owner/old_name``, as GitHub's redirect does"""
        self.metadata[(old_owner.lower(), old_name.lower())] = self.metadata[(owner.lower(), name.lower())]
        self.statuses[f"https://github.com/{old_owner}/{old_name}"] = 301

    def repository_metadata(self, owner: str, name: str) -> RepositoryMetadata:
        with self.lock:
            self.metadata_calls[(owner.lower(), name.lower())] += 1
        try:
            return self.metadata[(owner.lower(), name.lower())]
        except KeyError:
            raise ResolutionError(f"{owner}/{name} not found")

    def list_repositories(self, org: str) -> List[RepositoryMetadata]:
        if org.lower() not in self.orgs:
            raise ResolutionError(f"org {org} not found")
        return list(self.orgs[org.lower()])

    def action_files(self, owner: str, name: str, ref: str) -> Dict[str, str]:
        with self.lock:
            self.content_calls[(owner.lower(), name.lower(), ref)] += 1
        try:
            return self.files[(owner.lower(), name.lower(), ref)]
        except KeyError:
            raise ResolutionError(f"no tarball for {owner}/{name}@{ref}")

    def status_code(self, url: str) -> Optional[int]:
        return self.statuses.get(url, 200)


@pytest.fixture
def temp_dir():
    """Create a temporary directory that is removed after the test."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir


@pytest.fixture
def fake_github():
    """An empty in-memory GitHub."""
    return FakeGitHub()


@pytest.fixture
def registry(fake_github):
    """Registry backed by the in-memory GitHub, with the stuck watchdog off."""
    return Registry(fake_github, fake_github, stuck_timeout=None)


@pytest.fixture
def engine(fake_github):
    """Rule engine whose status probe never touches the network."""
    return RuleEngine(status_probe=fake_github.status_code)


@pytest.fixture
def load_action(fake_github, registry):
    """Register a single-file repository and return the resolved action."""

    def _load(content: str, path: str = ".github/workflows/ci.yml", owner: str = "acme", name: str = "app"):
        fake_github.add_repository(owner, name, {path: content})
        return registry.action(registry.repository(owner, name), path)

    return _load


@pytest.fixture
def sample_workflow_content():
    """Sample GitHub Actions workflow content without issues."""
    return """
name: Sample Workflow

on:
  push:
    branches: [ main ]

jobs:
  build:
    runs-on: ubuntu-latest
    steps:
      - uses: actions/checkout@8e5e7e5ab8b370d6c329ec480221332ada57f0ab
      - name: Run tests
        run: pytest
"""


@pytest.fixture
def insecure_workflow_content():
    """Sample pull_request_target workflow with several issues."""
    return """
name: Insecure Workflow

on:
  pull_request_target:
    branches: [ main ]

permissions:
  contents: read

jobs:
  build:
    runs-on: ubuntu-latest
    if: github.repository == 'acme/app'
    steps:
      - name: Checkout
        uses: actions/checkout@v3
        with:
          ref: ${{ github.event.pull_request.head.sha }}
      - name: Greet
        run: |
          echo "hello"
          echo "${{ github.event.pull_request.title }}"
      - name: Build
        run: npm install
        env:
          NPM_TOKEN: ${{ secrets.NPM_TOKEN }}
      - name: Local
        uses: ./.github/actions/setup
"""


@pytest.fixture
def composite_action_content():
    """Composite action interpolating an input into a run script."""
    return """
name: Greeter
inputs:
  who:
    description: who to greet
runs:
  using: composite
  steps:
    - name: Greet
      shell: bash
      run: echo "Hello ${{ inputs.who }}"
"""
