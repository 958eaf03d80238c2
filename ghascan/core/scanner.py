"""
scanner.py - Scan orchestration for ghascan

This module wires a registry, a rule engine and a GitHub client together and
walks a repository, an organization, or a list of standalone actions,
collecting findings and scan statistics.
"""

import copy
import logging
import os
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from ..providers.github import GitHubClient
from ..rules.engine import RuleEngine
from .config import DEFAULT_CONFIG, merge_configs
from .entities import Organization, Registry
from .errors import ResolutionError
from .finding import Finding

logger = logging.getLogger(__name__)


def create_client(config: Dict[str, Any]) -> GitHubClient:
    """Build a GitHubClient from the ``github`` and limit settings of a config"""
    github = config.get("github") or {}
    token_env = github.get("token_env") or "GITHUB_TOKEN"
    return GitHubClient(
        token=os.environ.get(token_env) or None,
        api_url=github.get("api_url") or DEFAULT_CONFIG["github"]["api_url"],
        timeout=config.get("request_timeout", DEFAULT_CONFIG["request_timeout"]),
        max_archive_bytes=config.get("max_archive_bytes", DEFAULT_CONFIG["max_archive_bytes"]),
    )


class ActionScanner:
    """Scans repositories, organizations and actions with one shared registry"""

    def __init__(
        self,
        config: Optional[Dict[str, Any]] = None,
        scan_rules: Optional[Sequence[str]] = None,
        client: Optional[Any] = None,
        engine: Optional[RuleEngine] = None,
        registry: Optional[Registry] = None,
    ) -> None:
        """
        Initialize the scanner

        Args:
            config: Configuration, merged over the defaults
            scan_rules: Rule selection passed to the engine
            client: Metadata/content provider; a GitHubClient by default
            engine: Pre-built rule engine
            registry: Pre-built registry
        """
        self.config = merge_configs(copy.deepcopy(DEFAULT_CONFIG), config or {})

        if client is None and (registry is None or engine is None):
            client = create_client(self.config)
        self.client = client

        self.registry = registry or Registry(
            client,
            client,
            size_limit_kb=self.config["size_limit_kb"],
            stuck_timeout=self.config["stuck_timeout"],
        )
        status_probe = getattr(client, "status_code", None)
        self.engine = engine or RuleEngine(self.config, scan_rules, status_probe)

    def _new_stats(self, target: str) -> Dict[str, Any]:
        return {
            "start_time": datetime.now().isoformat(),
            "target": target,
            "total_actions": 0,
            "total_repositories": 0,
            "total_findings": 0,
            "rule_counts": {},
        }

    def _finish(self, findings: List[Finding], stats: Dict[str, Any]) -> Tuple[List[Finding], Dict[str, Any]]:
        stats["total_actions"] = self.engine.scanned
        stats["total_repositories"] = len(self.registry.repositories)
        stats["total_findings"] = len(findings)
        for finding in findings:
            stats["rule_counts"][finding.rule_id] = stats["rule_counts"].get(finding.rule_id, 0) + 1
        stats["end_time"] = datetime.now().isoformat()

        logger.info(f"Scanned {self.engine.scanned} actions")
        return findings, stats

    def scan_repository(self, url: str) -> Tuple[List[Finding], Dict[str, Any]]:
        """
        Scan every action and workflow in a repository

        Args:
            url: ``https://github.com/<owner>/<name>[/commit/<ref>]``

        Returns:
            Tuple of (findings, stats)

        Raises:
            ResolutionError: If the repository cannot be resolved
        """
        stats = self._new_stats(url)
        repository = self.registry.repository_from_url(url)
        findings = repository.scan(self.engine, self.config)
        return self._finish(findings, stats)

    def scan_organization(self, org: str) -> Tuple[List[Finding], Dict[str, Any]]:
        """
        Scan every public, non-archived, non-fork repository of an organization

        Returns:
            Tuple of (findings, stats)
        """
        stats = self._new_stats(org)
        findings = Organization(org, self.registry).scan(self.engine, self.config)
        return self._finish(findings, stats)

    def scan_actions(self, urls: Iterable[str]) -> Tuple[List[Finding], Dict[str, Any]]:
        """
        Scan the root ``action.yml`` of each listed repository

        Repositories that cannot be resolved are logged and skipped.

        Returns:
            Tuple of (findings, stats)
        """
        urls = list(urls)
        stats = self._new_stats(f"{len(urls)} actions")

        actions = []
        for url in urls:
            try:
                actions.append(self.registry.action_from_url(url))
            except ResolutionError as e:
                logger.warning(str(e))

        findings: List[Finding] = []
        for action in actions:
            findings.extend(action.scan(self.engine, self.config))
        return self._finish(findings, stats)


def scan_repository(
    url: str,
    config: Optional[Dict[str, Any]] = None,
    scan_rules: Optional[Sequence[str]] = None,
    client: Optional[Any] = None,
) -> Tuple[List[Finding], Dict[str, Any]]:
    """
    Scan a GitHub repository for workflow security issues

    Args:
        url: Repository URL
        config: Configuration dictionary
        scan_rules: Rule selection
        client: Metadata/content provider

    Returns:
        Tuple of (findings, stats)
    """
    return ActionScanner(config, scan_rules, client).scan_repository(url)


def scan_organization(
    org: str,
    config: Optional[Dict[str, Any]] = None,
    scan_rules: Optional[Sequence[str]] = None,
    client: Optional[Any] = None,
) -> Tuple[List[Finding], Dict[str, Any]]:
    """Scan the public repositories of a GitHub organization"""
    return ActionScanner(config, scan_rules, client).scan_organization(org)


def scan_actions(
    urls: Iterable[str],
    config: Optional[Dict[str, Any]] = None,
    scan_rules: Optional[Sequence[str]] = None,
    client: Optional[Any] = None,
) -> Tuple[List[Finding], Dict[str, Any]]:
    """Scan the root actions of a list of repositories"""
    return ActionScanner(config, scan_rules, client).scan_actions(urls)
