"""
engine.py - Rule engine for ghascan

This module provides the rule engine that selects the enabled rules and runs
them against each action the scanner reaches.
"""

import logging
import threading
from typing import Any, Dict, List, Optional, Sequence

from ..core.finding import Finding
from .base import Rule
from .injection import CodeInjectionRule, CommandExecutionRule, UnsafeInputAssignRule
from .supply_chain import RepojackableRule, StatusProbe, UnpinnedActionRule
from .triggers import PwnRequestRule, WorkflowRunRule

logger = logging.getLogger(__name__)


def parse_scan_rules(value: Optional[str]) -> List[str]:
    """Split a ``"A,B,!C"`` option value into rule IDs"""
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


class RuleEngine:
    """Engine for managing and running GitHub Actions detection rules"""

    def __init__(
        self,
        config: Optional[Dict[str, Any]] = None,
        scan_rules: Optional[Sequence[str]] = None,
        status_probe: Optional[StatusProbe] = None,
    ) -> None:
        """
        Initialize the rule engine

        Args:
            config: Configuration dictionary; its ``rules`` mapping enables or
                disables rules by ID
            scan_rules: Rule selection, see ``select``
            status_probe: HTTP status probe handed to ``REPOJACKABLE``
        """
        self.config = config or {}
        self.rules: List[Rule] = []
        self.scanned = 0
        self._lock = threading.Lock()

        self._register_default_rules(status_probe)
        self._apply_config()

        if scan_rules:
            self.select(scan_rules)

        logger.debug(f"The following rules are enabled: {','.join(r.rule_id for r in self.enabled_rules)}")

    def _register_default_rules(self, status_probe: Optional[StatusProbe]) -> None:
        """Register the default set of rules"""

        self.rules.append(CommandExecutionRule())
        self.rules.append(CodeInjectionRule())
        self.rules.append(PwnRequestRule())
        self.rules.append(RepojackableRule(status_probe))
        self.rules.append(UnpinnedActionRule())
        self.rules.append(UnsafeInputAssignRule())
        self.rules.append(WorkflowRunRule())

    def _apply_config(self) -> None:
        """Apply the ``rules`` section of the configuration"""
        rules_config = self.config.get("rules") or {}
        for rule in self.rules:
            if rule.rule_id in rules_config:
                rule.enabled = bool(rules_config[rule.rule_id])

    def select(self, scan_rules: Sequence[str]) -> None:
        """
        Restrict the engine to a rule selection

        A list of plain IDs keeps only those rules. A list in which every
        entry is ``!``-prefixed keeps everything except the named rules.

        Args:
            scan_rules: Rule IDs, optionally negated
        """
        negate = all(rule_id.startswith("!") for rule_id in scan_rules)
        known = {rule.rule_id for rule in self.rules}
        for rule_id in scan_rules:
            if rule_id.lstrip("!") not in known:
                logger.warning(f"Unknown rule {rule_id.lstrip('!')}")

        for rule in self.rules:
            if negate:
                if f"!{rule.rule_id}" in scan_rules:
                    rule.enabled = False
            else:
                rule.enabled = rule.rule_id in scan_rules

    @property
    def enabled_rules(self) -> List[Rule]:
        return [rule for rule in self.rules if rule.enabled]

    def register_rule(self, rule: Rule) -> None:
        """
        Register a custom rule

        Args:
            rule: Rule instance to register
        """
        self.rules.append(rule)

    def get_rule_by_id(self, rule_id: str) -> Optional[Rule]:
        """
        Get a rule by its ID

        Args:
            rule_id: Rule ID to look for

        Returns:
            Rule instance or None if not found
        """
        for rule in self.rules:
            if rule.rule_id == rule_id:
                return rule
        return None

    def list_rules(self) -> List[Dict[str, Any]]:
        """
        Get information about all registered rules

        Returns:
            List of rule information dictionaries
        """
        return [
            {
                "id": rule.rule_id,
                "enabled": rule.enabled,
                "description": rule.description,
                "category": rule.category,
                "documentation": rule.documentation,
            }
            for rule in self.rules
        ]

    def enable_rule(self, rule_id: str) -> bool:
        """
        Enable a rule

        Returns:
            True if rule was found and enabled, False otherwise
        """
        rule = self.get_rule_by_id(rule_id)
        if rule:
            rule.enabled = True
            return True
        return False

    def disable_rule(self, rule_id: str) -> bool:
        """
        Disable a rule

        Returns:
            True if rule was found and disabled, False otherwise
        """
        rule = self.get_rule_by_id(rule_id)
        if rule:
            rule.enabled = False
            return True
        return False

    def scan_action(self, action) -> List[Finding]:
        """
        Scan an action with all enabled rules

        A rule that raises is logged and skipped; the remaining rules still
        run.

        Args:
            action: Resolved (or unresolved) action

        Returns:
            List of findings
        """
        with self._lock:
            self.scanned += 1

        findings: List[Finding] = []
        for rule in self.enabled_rules:
            try:
                findings.extend(rule.scan(action))
            except Exception as e:
                logger.warning(f"Failed to scan with {rule.rule_id} for {action.name}: {e}")

        return findings


def create_rule_engine(
    config: Optional[Dict[str, Any]] = None,
    scan_rules: Optional[Sequence[str]] = None,
    status_probe: Optional[StatusProbe] = None,
) -> RuleEngine:
    """
    Create a rule engine with the specified configuration

    Args:
        config: Configuration dictionary
        scan_rules: Rule selection
        status_probe: HTTP status probe for ``REPOJACKABLE``

    Returns:
        Configured RuleEngine instance
    """
    return RuleEngine(config, scan_rules, status_probe)
