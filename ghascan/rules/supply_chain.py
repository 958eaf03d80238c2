"""
supply_chain.py - Rules about how third-party actions are referenced
"""

import logging
import re
import threading
from typing import Callable, Dict, List, Optional, Tuple

from ..core.entities import ACTION_NAME_RE
from ..core.finding import Finding
from .base import Rule

COMMIT_RE = re.compile(r"[a-z0-9]{32}")

StatusProbe = Callable[[str], Optional[int]]


class UnpinnedActionRule(Rule):
    """Third-party actions referenced by branch or tag instead of a commit"""

    def __init__(self) -> None:
        super().__init__(
            rule_id="UNPINNED_ACTION",
            description="Action used with a branch or tag rather than a pinned commit",
            category="supply-chain",
        )

    def describe(self, finding: Finding) -> str:
        return (
            f"The action {finding.details.get('uses')} is used with branch/tag "
            f"{finding.details.get('ref')} rather than a pinned commit."
        )

    def scan(self, action) -> List[Finding]:
        findings = []
        for step, used_by in action.all_uses():
            uses = step["uses"].strip()
            if uses.startswith("."):
                continue

            match = ACTION_NAME_RE.match(uses)
            if not match:
                continue

            ref = match.group("ref") or ""
            if not COMMIT_RE.search(ref):
                findings.append(
                    self.create_finding(action, used_by.job, used_by.step, {"uses": uses, "ref": ref})
                )
        return findings


class RepojackableRule(Rule):
    """Actions whose repository was renamed, or whose owner no longer exists"""

    def __init__(self, status_probe: Optional[StatusProbe] = None, base_url: str = "https://github.com") -> None:
        """
        Initialize the rule

        Args:
            status_probe: Returns the HTTP status of a URL without following
                redirects; defaults to a ``GitHubClient``
            base_url: Web (not API) base URL of GitHub
        """
        super().__init__(
            rule_id="REPOJACKABLE",
            description="Used action's repository redirects or its owner is gone",
            category="supply-chain",
        )
        self.base_url = base_url.rstrip("/")
        self._status_probe = status_probe
        self._statuses: Dict[str, Optional[int]] = {}
        self._lock = threading.Lock()
        self.logger = logging.getLogger(__name__)

    def describe(self, finding: Finding) -> str:
        return f"The identified used action may be repojackable due to {finding.details.get('reason')}"

    @property
    def status_probe(self) -> StatusProbe:
        if self._status_probe is None:
            from ..providers.github import GitHubClient

            self._status_probe = GitHubClient().status_code
        return self._status_probe

    def status(self, url: str) -> Optional[int]:
        """HTTP status of ``url``, probed once per rule instance"""
        with self._lock:
            if url in self._statuses:
                return self._statuses[url]
        status = self.status_probe(url)
        with self._lock:
            self._statuses[url] = status
        return status

    @staticmethod
    def owner_and_names(action) -> List[Tuple[str, str]]:
        """Owner/name pairs the action was referenced by, as written in ``uses:``"""
        if action.repository is not None:
            return list(action.repository.requested_names) or [(action.repository.owner, action.repository.name)]
        if action.reference is not None:
            return [(action.reference.org, action.reference.action)]
        return []

    def scan(self, action) -> List[Finding]:
        for owner, name in self.owner_and_names(action):
            status = self.status(f"{self.base_url}/{owner}/{name}")
            if status is not None and 300 <= status < 400:
                return [self.create_finding(action, details={"reason": "repository redirect"})]

            if self.status(f"{self.base_url}/{owner}") == 404:
                self.logger.debug(f"Organisation {owner} not found")
                return [self.create_finding(action, details={"reason": "organisation not found"})]

        return []
