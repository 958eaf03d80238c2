"""
finding.py - A rule match at a location in an action

Findings are cheap to create at scan time. Everything describing the security
context of the location (permissions, conditions, reachable secrets,
downstream workflows) is computed only when the finding is reported.
"""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, Optional, Union

from .context import flatten_secrets

if TYPE_CHECKING:
    from ..rules.base import Rule
    from .entities import Action


@dataclass
class Finding:
    """Represents one rule match in an action or workflow"""

    rule: "Rule"
    action: "Action"
    job: Any = None
    step: Optional[Union[str, int]] = None
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def rule_id(self) -> str:
        return self.rule.rule_id

    def prereport(self) -> None:
        """Let the rule enrich ``details`` before the finding is rendered"""
        self.rule.prereport(self)

    def description(self) -> Optional[str]:
        return self.rule.describe(self)

    def for_text(self) -> Dict[str, Any]:
        """
        Flatten the finding for the grouped text report

        Returns:
            Dictionary with rule, repo, subpath, job, step, description,
            permissions, secrets and documentation entries
        """
        permissions = ",".join(
            f"{key}:{value}" for key, value in self.action.permissions_for_job(self.job).items()
        )
        secrets = flatten_secrets(self.action.secrets_after(self.job, self.step))

        return {
            "rule": self.rule.rule_id,
            "repo": self.action.url,
            "subpath": self.action.subpath,
            "job": self.job if self.job is not None else "none",
            "step": self.step if self.step is not None else "none",
            "description": self.description(),
            "permissions": permissions or "none",
            "secrets": ", ".join(secrets) if secrets else "none",
            "documentation": self.rule.documentation,
        }

    def to_dict(self) -> Dict[str, Any]:
        """Convert the finding, with its full context, to a JSON-ready dictionary"""
        action = self.action
        repository = action.repository

        return {
            "rule": {
                "id": self.rule.rule_id,
                "documentation": self.rule.documentation,
            },
            "description": self.description(),
            "details": self.details,
            "source_uri": action.url,
            "location": {
                "workflow": action.subpath,
                "repo": repository.url if repository is not None else None,
                "job": self.job,
                "step": self.step,
            },
            "context": {
                "permissions": action.permissions_for_job(self.job),
                "conditionals": action.conditions_for_job_step(self.job, self.step),
                "subsequent_secrets": action.secrets_after(self.job, self.step),
                "triggered_workflows": [workflow.url for workflow in action.triggered_workflows()],
                "used_by": [used_by.to_dict() for used_by in action.used_by],
                "triggered_on": action.on(),
                "runs-on": action.runs_on(self.job),
            },
        }
