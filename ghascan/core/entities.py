"""
entities.py - Repositories, actions and the ``uses`` graph between them

A ``Registry`` owns the repository and action caches for one scanning run.
Every lookup goes through it, so one (owner, name, ref) is always the same
``Repository`` object and one (repository, subpath) is always the same
``Action`` object. Identity is what makes cycle detection and duplicate-scan
suppression work: an action that was already scanned is recognised wherever
it is reached from.
"""

import logging
import posixpath
import re
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, Hashable, List, Optional, Tuple, Union

from ..utils.timing import stuck_timer
from ..utils.yaml_handler import parse_config
from . import context
from .errors import ParseError, ResolutionError, UnsupportedReferenceKind
from .matcher import action_steps, step_id

if TYPE_CHECKING:
    from ..providers.base import ContentProvider, MetadataProvider, RepositoryMetadata
    from ..rules.engine import RuleEngine
    from .finding import Finding

logger = logging.getLogger(__name__)

GITHUB_URL_RE = re.compile(
    r"https://github\.com/(?P<owner>[^/]+)/(?P<repo>[^/]+?)(?:\.git)?(?:/commit/(?P<ref>[0-9A-Za-z._-]+))?/?$"
)
ACTION_NAME_RE = re.compile(r"^(?P<org>[^/]*)/(?P<action>[^@/]*)(/(?P<sub_path>[^@]*))?(@(?P<ref>.*))?")

ACTION_FILE = "action.yml"
DEFAULT_SIZE_LIMIT_KB = 1_000_000
DEFAULT_STUCK_TIMEOUT = 30
DEFAULT_MAX_DEPTH = 5


class ActionState(Enum):
    """Where an action is in its lifecycle"""

    UNRESOLVED = "unresolved"
    PENDING = "pending"
    RESOLVED = "resolved"
    PARSE_FAILED = "parse_failed"
    SCANNED = "scanned"


@dataclass
class UsedBy:
    """A call site of an action: who uses it, where, and with which arguments"""

    url: str
    job: Any
    step: Union[str, int]
    arguments: Any = None

    def to_dict(self) -> Dict[str, Any]:
        return {"url": self.url, "job": self.job, "step": self.step, "with": self.arguments}


@dataclass(frozen=True)
class UnresolvedReference:
    """The pieces of a ``uses:`` string whose repository could not be resolved"""

    uses: str
    org: str
    action: str
    sub_path: str = ""
    ref: str = ""


def parse_github_url(url: str) -> Tuple[str, str, str]:
    """
    Split a GitHub repository URL into (owner, name, ref)

    ``ref`` is empty unless the URL has a ``/commit/<ref>`` suffix.

    Raises:
        ResolutionError: If the URL is not a GitHub repository URL
    """
    match = GITHUB_URL_RE.match(url.strip())
    if not match:
        raise ResolutionError(f"Not a GitHub repository URL: {url}")
    return match.group("owner"), match.group("repo"), match.group("ref") or ""


def is_github_url(url: str) -> bool:
    return GITHUB_URL_RE.match(url.strip()) is not None


class Registry:
    """Identity-preserving caches for repositories and actions"""

    def __init__(
        self,
        metadata_provider: "MetadataProvider",
        content_provider: "ContentProvider",
        size_limit_kb: int = DEFAULT_SIZE_LIMIT_KB,
        stuck_timeout: Optional[float] = DEFAULT_STUCK_TIMEOUT,
    ) -> None:
        """
        Initialize the registry

        Args:
            metadata_provider: Source of default branch and size
            content_provider: Source of action/workflow files
            size_limit_kb: Repositories larger than this are skipped
            stuck_timeout: Seconds before a blocking fetch is reported as stuck
        """
        self.metadata_provider = metadata_provider
        self.content_provider = content_provider
        self.size_limit_kb = size_limit_kb
        self.stuck_timeout = stuck_timeout

        self.repositories: Dict[Tuple[str, str, str], "Repository"] = {}
        self.actions: Dict[Hashable, "Action"] = {}
        self._metadata: Dict[Tuple[str, str], Union["RepositoryMetadata", ResolutionError]] = {}

        self._lock = threading.Lock()
        self._key_locks: Dict[Hashable, threading.Lock] = {}

    def _lock_for(self, key: Hashable) -> threading.Lock:
        with self._lock:
            lock = self._key_locks.get(key)
            if lock is None:
                lock = self._key_locks[key] = threading.Lock()
            return lock

    def prime(self, metadata: "RepositoryMetadata") -> None:
        """Record metadata obtained elsewhere, e.g. from an organization listing"""
        key = (metadata.owner.lower(), metadata.name.lower())
        with self._lock_for(("metadata",) + key):
            self._metadata.setdefault(key, metadata)

    def metadata(self, owner: str, name: str) -> "RepositoryMetadata":
        """
        Look up (once) a repository's metadata

        Failures are remembered too, so a missing repository is asked about
        only once per run.

        Raises:
            ResolutionError: If the metadata provider cannot find the repository
        """
        key = (owner.lower(), name.lower())
        with self._lock_for(("metadata",) + key):
            cached = self._metadata.get(key)
            if cached is None:
                try:
                    with stuck_timer(f"metadata {owner}/{name}", self.stuck_timeout):
                        cached = self.metadata_provider.repository_metadata(owner, name)
                except ResolutionError as e:
                    cached = e
                self._metadata[key] = cached

        if isinstance(cached, ResolutionError):
            raise ResolutionError(f"Failed to get repo details for {owner}/{name}: {cached}")
        return cached

    def repository(self, owner: str, name: str, ref: str = "") -> "Repository":
        """
        Find or create the repository for (owner, name, ref)

        An empty ref means the default branch. The cache is keyed on the
        owner and name GitHub reports, so a renamed repository requested
        under its old and new names is one instance; every name it was
        requested under is kept in ``requested_names``.

        Raises:
            ResolutionError: If the repository metadata cannot be retrieved
        """
        metadata = self.metadata(owner, name)
        resolved_ref = ref or metadata.default_branch
        canonical_owner = metadata.owner or owner
        canonical_name = metadata.name or name
        key = (canonical_owner.lower(), canonical_name.lower(), resolved_ref)

        with self._lock_for(("repository",) + key):
            repository = self.repositories.get(key)
            if repository is not None:
                logger.debug(f"RepoCache HIT {repository.owner}/{repository.name}@{repository.ref}")
                repository.add_requested_name(owner, name)
                return repository

            skip = metadata.size_kb > self.size_limit_kb
            repository = Repository(
                self,
                owner=canonical_owner,
                name=canonical_name,
                ref=resolved_ref,
                default_branch=metadata.default_branch,
                size_kb=metadata.size_kb,
                skip=skip,
            )
            repository.add_requested_name(owner, name)
            if skip:
                logger.info(
                    f"{repository.url} size = {metadata.size_kb / 1000:.0f}MB "
                    f"> {self.size_limit_kb / 1000:.0f}MB, skipping."
                )
            self.repositories[key] = repository
            return repository

    def repository_from_url(self, url: str) -> "Repository":
        """
        Resolve a ``https://github.com/<owner>/<name>[/commit/<ref>]`` URL

        Raises:
            ResolutionError: If the URL is invalid or the repository unknown
        """
        owner, name, ref = parse_github_url(url)
        return self.repository(owner, name, ref)

    def action(self, repository: "Repository", subpath: str) -> "Action":
        """Find or create the action at ``subpath`` in ``repository``"""
        key = ("action",) + repository.key + (subpath,)
        with self._lock_for(key):
            action = self.actions.get(key)
            if action is not None:
                logger.debug(f"ActionCache HIT {repository.owner}/{repository.name}/{subpath}@{repository.ref}")
                return action
            action = self.actions[key] = Action(self, repository, subpath)
            return action

    def unresolved_action(self, reference: UnresolvedReference, subpath: str) -> "Action":
        """Find or create the placeholder action for an unresolvable reference"""
        key = ("unresolved", reference.uses)
        with self._lock_for(key):
            action = self.actions.get(key)
            if action is None:
                action = self.actions[key] = Action(self, None, subpath, reference=reference)
            return action

    def action_from_url(self, url: str) -> "Action":
        """
        The root ``action.yml`` of the repository at ``url``

        Raises:
            ResolutionError: If the repository cannot be resolved
        """
        return self.action(self.repository_from_url(url), ACTION_FILE)

    def action_from_uses(self, repository: Optional["Repository"], uses: str) -> Optional["Action"]:
        """
        Resolve a step's ``uses:`` string

        Args:
            repository: Repository the referencing file lives in
            uses: The ``uses:`` value

        Returns:
            The referenced action, or None for references the graph does not
            follow (container images, malformed strings)
        """
        try:
            return self._resolve_uses(repository, uses.strip())
        except UnsupportedReferenceKind as e:
            logger.warning(f"uses: {uses} not supported: {e}")
            return None

    def _resolve_uses(self, repository: Optional["Repository"], uses: str) -> "Action":
        if uses.startswith("."):
            if repository is None:
                raise UnsupportedReferenceKind("local reference without a repository")
            subpath = posixpath.normpath(posixpath.join(uses, ACTION_FILE))
            return self.action(repository, subpath)

        if uses.startswith("docker://"):
            raise UnsupportedReferenceKind("docker:// images are not scanned")

        match = ACTION_NAME_RE.match(uses)
        if not match or not match.group("org") or not match.group("action"):
            raise UnsupportedReferenceKind("not an owner/repo reference")

        org = match.group("org")
        action_name = match.group("action")
        sub_path = match.group("sub_path") or ""
        ref = match.group("ref") or ""
        subpath = posixpath.join(sub_path, ACTION_FILE)

        try:
            target = self.repository(org, action_name, ref)
        except ResolutionError as e:
            logger.warning(str(e))
            reference = UnresolvedReference(uses, org, action_name, sub_path, ref)
            return self.unresolved_action(reference, subpath)

        return self.action(target, subpath)


class Repository:
    """A GitHub repository at a resolved ref"""

    def __init__(
        self,
        registry: Registry,
        owner: str,
        name: str,
        ref: str,
        default_branch: str,
        size_kb: int = 0,
        skip: bool = False,
    ) -> None:
        self.registry = registry
        self.owner = owner
        self.name = name
        self.ref = ref
        self.default_branch = default_branch
        self.size_kb = size_kb
        self.skip = skip

        self.requested_names: List[Tuple[str, str]] = []

        self._files: Optional[Dict[str, str]] = None
        self._actions: Optional[List["Action"]] = None
        self._lock = threading.Lock()

    @classmethod
    def from_url(cls, registry: Registry, url: str) -> "Repository":
        return registry.repository_from_url(url)

    def add_requested_name(self, owner: str, name: str) -> None:
        """Remember an owner/name this repository was referenced by; called under the registry lock"""
        seen = {(o.lower(), n.lower()) for o, n in self.requested_names}
        if (owner.lower(), name.lower()) not in seen:
            self.requested_names.append((owner, name))

    @property
    def key(self) -> Tuple[str, str, str]:
        return (self.owner.lower(), self.name.lower(), self.ref)

    @property
    def url(self) -> str:
        return f"https://github.com/{self.owner}/{self.name}"

    def __repr__(self) -> str:
        return f"<Repository {self.owner}/{self.name}@{self.ref}>"

    def files(self) -> Dict[str, str]:
        """Action and workflow files of this repository, fetched on first use"""
        with self._lock:
            if self._files is None:
                self._files = {}
                if not self.skip:
                    try:
                        with stuck_timer(f"content {self.owner}/{self.name}@{self.ref}", self.registry.stuck_timeout):
                            self._files = dict(
                                self.registry.content_provider.action_files(self.owner, self.name, self.ref)
                            )
                    except ResolutionError as e:
                        logger.warning(f"Failed to get tarball for {self.owner}/{self.name}: {e}")
            return self._files

    def get_file(self, path: str) -> Optional[str]:
        """Content of ``path``, or None when the repository has no such file"""
        return self.files().get(path)

    def actions(self) -> List["Action"]:
        """Every action and workflow defined in this repository"""
        if self._actions is None:
            self._actions = [self.registry.action(self, path) for path in self.files()]
        return self._actions

    def scan(self, engine: "RuleEngine", config: Optional[Dict[str, Any]] = None) -> List["Finding"]:
        """Scan every action and workflow of this repository"""
        actions = self.actions()
        if actions:
            logger.info(f"Got {len(actions)} actions for {self.owner}/{self.name}...")

        findings: List["Finding"] = []
        for action in actions:
            findings.extend(action.scan(engine, config))
        return findings

    def triggered_by(self, workflow_name: Any) -> List["Action"]:
        """Workflows here that run on ``workflow_run`` of the named workflow"""
        triggered = []
        for action in self.actions():
            on = action.on()
            if not isinstance(on, dict):
                continue
            workflow_run = on.get("workflow_run")
            if isinstance(workflow_run, dict) and workflow_name in (workflow_run.get("workflows") or []):
                triggered.append(action)
        return triggered


_UNSET: Any = object()


class Action:
    """An action definition or workflow file"""

    def __init__(
        self,
        registry: Registry,
        repository: Optional[Repository],
        subpath: str,
        reference: Optional[UnresolvedReference] = None,
    ) -> None:
        self.registry = registry
        self.repository = repository
        self.subpath = subpath
        self.reference = reference
        self.scanned = False
        self.parse_failed = False
        self.used_by: List[UsedBy] = []

        self._config: Any = _UNSET
        self._uses: Optional[List["Action"]] = None
        self._content_lock = threading.RLock()
        self._uses_lock = threading.Lock()
        self._used_by_lock = threading.Lock()

    @classmethod
    def from_uses(cls, registry: Registry, repository: Optional[Repository], uses: str) -> Optional["Action"]:
        return registry.action_from_uses(repository, uses)

    @classmethod
    def from_url(cls, registry: Registry, url: str) -> "Action":
        return registry.action_from_url(url)

    @property
    def skip(self) -> bool:
        return self.repository is not None and self.repository.skip

    @property
    def state(self) -> ActionState:
        if self.repository is None:
            return ActionState.UNRESOLVED
        if self.scanned:
            return ActionState.SCANNED
        if self.parse_failed:
            return ActionState.PARSE_FAILED
        if self._config is _UNSET:
            return ActionState.PENDING
        return ActionState.RESOLVED

    @property
    def url(self) -> str:
        if self.repository is not None:
            return f"{self.repository.url}/blob/{self.repository.ref}/{self.subpath}"
        ref = self.reference
        if ref is None:
            return self.subpath
        return f"https://github.com/{ref.org}/{ref.action}/blob/{ref.ref}/{self.subpath}"

    @property
    def name(self) -> str:
        if self.repository is None:
            return self.reference.uses if self.reference else self.subpath
        return f"{self.repository.owner}/{self.repository.name}/{self.subpath}@{self.repository.ref}"

    def __repr__(self) -> str:
        return f"<Action {self.name}>"

    def file_content(self) -> str:
        if self.repository is None:
            return ""
        return self.repository.get_file(self.subpath) or ""

    def parsed_content(self) -> Any:
        """
        The parsed file, cached

        A file that does not exist or fails to parse yields an empty mapping,
        so rules simply find nothing in it.
        """
        with self._content_lock:
            if self._config is _UNSET:
                config: Any = None
                try:
                    config = parse_config(self.file_content())
                except ParseError as e:
                    self.parse_failed = True
                    logger.error(f"parsedContent: Error parsing YAML content for {self.name}: {e}")
                self._config = config if config is not None else {}
            return self._config

    def add_used_by(self, used_by: UsedBy) -> None:
        with self._used_by_lock:
            self.used_by.append(used_by)

    def all_uses(self) -> List[Tuple[Dict[str, Any], UsedBy]]:
        """Every step with a ``uses:`` directive, with its call-site description"""
        uses = []
        for job_key, _job, step, step_index in action_steps(self.parsed_content()):
            if isinstance(step, dict) and isinstance(step.get("uses"), str):
                uses.append(
                    (step, UsedBy(self.url, job_key, step_id(step, step_index), step.get("with")))
                )
        return uses

    def recursive_actions(self) -> List["Action"]:
        """Resolve (once) the actions this one uses, recording the call sites"""
        with self._uses_lock:
            if self._uses is None:
                resolved = []
                for step, used_by in self.all_uses():
                    action = self.registry.action_from_uses(self.repository, step["uses"])
                    if action is None:
                        continue
                    action.add_used_by(used_by)
                    resolved.append(action)
                self._uses = resolved
            return self._uses

    def scan(
        self,
        engine: "RuleEngine",
        config: Optional[Dict[str, Any]] = None,
        depth_remaining: Optional[int] = None,
    ) -> List["Finding"]:
        """
        Run the rule engine on this action and, if enabled, on what it uses

        Each action is scanned at most once per registry; the flag is set
        before recursing, which is what terminates reference cycles.

        Args:
            engine: Rule engine to evaluate
            config: Scan configuration (``recurse``, ``max_depth``)
            depth_remaining: Hops still allowed below this action; defaults
                to ``max_depth``

        Returns:
            Findings for this action and everything scanned below it
        """
        config = config or {}

        if self.skip:
            logger.debug(f"Skipping {self.name}")
            return []

        with self._content_lock:
            if self.scanned:
                logger.debug(f"Already scanned {self.name}. Skipping")
                return []
            self.parsed_content()
            self.scanned = True

        logger.info(f"Scanning {self.name}...")
        findings = list(engine.scan_action(self))

        if config.get("recurse") and self.repository is not None:
            if depth_remaining is None:
                depth_remaining = int(config.get("max_depth", DEFAULT_MAX_DEPTH))
            if depth_remaining > 0:
                for action in self.recursive_actions():
                    findings.extend(action.scan(engine, config, depth_remaining - 1))
            else:
                logger.debug(f"Max depth reached at {self.name}")

        return findings

    # Report-time context

    def permissions_for_job(self, job: Any) -> Dict[str, Any]:
        return context.permissions_for_job(self.parsed_content(), job)

    def conditions_for_job_step(self, job: Any, step: Optional[Union[str, int]]) -> Dict[str, Any]:
        return context.conditions_for_job_step(self.parsed_content(), job, step)

    def steps_after(self, job: Any, step: Optional[Union[str, int]]) -> Tuple[int, List[Any]]:
        return context.steps_after(self.parsed_content(), job, step)

    def secrets_after(self, job: Any, step: Optional[Union[str, int]]) -> List[Dict[str, Any]]:
        return context.secrets_after(self.parsed_content(), job, step)

    def on(self) -> Any:
        config = self.parsed_content()
        return config.get("on") if isinstance(config, dict) else None

    def runs_on(self, job: Any) -> Any:
        return context.runs_on(self.parsed_content(), job)

    def triggered_workflows(self) -> List["Action"]:
        """Workflows in the same repository started by ``workflow_run`` of this one"""
        config = self.parsed_content()
        if self.repository is None or not isinstance(config, dict) or not config.get("name"):
            return []
        return self.repository.triggered_by(config["name"])


class Organization:
    """A GitHub organization whose public repositories are scanned"""

    def __init__(self, name: str, registry: Registry) -> None:
        self.name = name
        self.registry = registry
        self._repositories: Optional[List[Repository]] = None

    def repositories(self) -> List[Repository]:
        """Public repositories that are neither archived nor forks"""
        if self._repositories is not None:
            return self._repositories

        self._repositories = []
        try:
            listing = self.registry.metadata_provider.list_repositories(self.name)
        except ResolutionError as e:
            logger.warning(f"Failed to list repos for org - {self.name}: {e}")
            return self._repositories

        for metadata in listing:
            if metadata.archived or metadata.fork:
                continue
            self.registry.prime(metadata)
            try:
                self._repositories.append(self.registry.repository(metadata.owner, metadata.name))
            except ResolutionError as e:
                logger.warning(str(e))

        return self._repositories

    def scan(self, engine: "RuleEngine", config: Optional[Dict[str, Any]] = None) -> List["Finding"]:
        """
        Scan every repository, optionally with a thread pool

        ``config["workers"]`` above 1 scans repositories concurrently; the
        registry's per-key locking keeps shared actions scanned once.
        """
        config = config or {}
        repositories = self.repositories()
        logger.info(f"Got {len(repositories)} repos in {self.name} to analyze.")

        workers = int(config.get("workers", 1) or 1)
        findings: List["Finding"] = []
        if workers > 1 and len(repositories) > 1:
            with ThreadPoolExecutor(max_workers=workers) as executor:
                for repository_findings in executor.map(lambda repo: repo.scan(engine, config), repositories):
                    findings.extend(repository_findings)
        else:
            for repository in repositories:
                findings.extend(repository.scan(engine, config))
        return findings

