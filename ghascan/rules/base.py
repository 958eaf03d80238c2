"""
base.py - Base classes for GitHub Actions detection rules

A rule inspects one resolved action at a time and returns findings. Rules only
read the action's parsed configuration through the matcher and the context
queries; they never fetch anything themselves, except where the vulnerability
is about the reference itself (see ``RepojackableRule``).
"""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Union

from ..core.finding import Finding
from ..core.matcher import action_steps

if TYPE_CHECKING:
    from ..core.entities import Action

DOCUMENTATION_URL = "https://github.com/snyk/github-actions-scanner#{rule_id}"


class Rule(ABC):
    """Base class for all ghascan detection rules"""

    def __init__(
        self,
        rule_id: str,
        description: str,
        category: str = "security",
        documentation: Optional[str] = None,
    ):
        """
        Initialize a rule

        Args:
            rule_id: Unique identifier for the rule, e.g. ``CMD_EXEC``
            description: Human-readable summary shown by ``list-rules``
            category: Category of the rule (injection, triggers, supply-chain)
            documentation: Link explaining the vulnerability class
        """
        self.rule_id = rule_id
        self.description = description
        self.category = category
        self.documentation = documentation or DOCUMENTATION_URL.format(rule_id=rule_id)
        self.enabled = True

    @abstractmethod
    def scan(self, action: "Action") -> List[Finding]:
        """
        Check an action for the vulnerability this rule describes

        Args:
            action: Resolved action or workflow

        Returns:
            List of findings
        """
        pass

    def describe(self, finding: Finding) -> Optional[str]:
        """Sentence describing a specific finding; None when the rule has none"""
        return None

    def prereport(self, finding: Finding) -> None:
        """Hook to enrich a finding's details just before it is reported"""
        return None

    def create_finding(
        self,
        action: "Action",
        job: Any = None,
        step: Optional[Union[str, int]] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> Finding:
        """
        Create a Finding object for this rule

        Args:
            action: Action the finding is in
            job: Job key, or None for findings about the action as a whole
            step: Step name or index
            details: Rule-specific details

        Returns:
            Finding object
        """
        return Finding(rule=self, action=action, job=job, step=step, details=details or {})


class StepRule(Rule):
    """Base class for rules evaluated step by step"""

    def scan(self, action: "Action") -> List[Finding]:
        findings: List[Finding] = []
        for job_key, job, step, step_index in action_steps(action.parsed_content()):
            if isinstance(step, dict):
                findings.extend(self.check_step(action, job_key, job, step, step_index))
        return findings

    @abstractmethod
    def check_step(
        self,
        action: "Action",
        job_key: Any,
        job: Dict[str, Any],
        step: Dict[str, Any],
        step_index: int,
    ) -> List[Finding]:
        """
        Check a single step

        Args:
            action: Action the step belongs to
            job_key: Key of the job (or the composite action's name)
            job: Job mapping (or the composite action's ``runs``)
            step: Step mapping
            step_index: Position of the step in its job

        Returns:
            List of findings
        """
        pass


class InputTracingRule(StepRule):
    """Step rule whose findings name an interpolated value that may be an action input"""

    def prereport(self, finding: Finding) -> None:
        """
        Record which callers set the input a finding interpolates

        When the tainted value is ``inputs.<key>``, every call site in
        ``used_by`` that passes ``<key>`` is copied into ``details["set_in"]``
        with its arguments narrowed to that key.
        """
        value = finding.details.get("value")
        if not isinstance(value, str) or not value.startswith("inputs."):
            return

        key = value[len("inputs."):]
        set_in = []
        for used_by in finding.action.used_by:
            arguments = used_by.arguments
            if isinstance(arguments, dict) and arguments.get(key):
                entry = used_by.to_dict()
                entry["with"] = {key: arguments[key]}
                set_in.append(entry)

        if set_in:
            finding.details["set_in"] = set_in
