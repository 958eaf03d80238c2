"""
triggers.py - Rules for privileged triggers that run attacker-influenced code

``pull_request_target`` and ``workflow_run`` workflows run in the context of
the base repository, with its secrets and a write-capable token. Checking out
the pull request's head there hands that context to the pull request author.
"""

from typing import Any, Dict, List

from ..core.context import on_directive_contains
from ..core.finding import Finding
from ..core.matcher import any_match, compile_rules, extract, extract_all, pattern, step_id
from .base import StepRule
from .defs import CWD_COMPROMISABLE_RULES

CHECKOUT_PULL_REQUEST_RULES = compile_rules(
    [
        {
            "uses": pattern(r"actions/checkout"),
            "with": {"ref": pattern(r"(?P<ref>github\.event\.pull_request\.head[\w.-]*)")},
        },
        {
            "uses": pattern(r"actions/checkout"),
            "with": {"ref": pattern(r"(?P<ref>refs/pull/.*/merge)")},
        },
    ]
)

LOCAL_USES_RULES = compile_rules([{"uses": pattern(r"^\./")}])

CHECKOUT_WORKFLOW_RUN_RULE = compile_rules(
    [{"uses": pattern(r"actions/checkout"), "with": {"ref": pattern(r"github\.event\.workflow_run")}}]
)


class PwnRequestRule(StepRule):
    """Checkout of pull request code in a pull_request_target workflow"""

    def __init__(self) -> None:
        super().__init__(
            rule_id="PWN_REQUEST",
            description="pull_request_target workflow checks out the pull request head",
            category="triggers",
        )

    def describe(self, finding: Finding) -> str:
        return (
            f"The identified job performs a checkout of {finding.details.get('ref')} which, when "
            "triggered by pull_request_target, may be attacker controlled and may result in "
            "compromise of the job with higher privileges"
        )

    def scan(self, action) -> List[Finding]:
        if not on_directive_contains(action.parsed_content(), "pull_request_target"):
            return []
        return super().scan(action)

    def check_step(self, action, job_key, job, step, step_index) -> List[Finding]:
        findings = []
        for rule in any_match(CHECKOUT_PULL_REQUEST_RULES, step):
            ref = extract(rule, step, {"with": {"ref": "ref"}})["with"]["ref"]
            current = step_id(step, step_index)
            findings.append(
                self.create_finding(
                    action,
                    job_key,
                    current,
                    {
                        "ref": ref,
                        "potentially_compromisable_steps": self.compromisable_steps(action, job_key, current),
                    },
                )
            )
        return findings

    @staticmethod
    def compromisable_steps(action, job_key: Any, current: Any) -> List[Dict[str, Any]]:
        """
        Steps from the checkout onwards that execute code from the working tree

        Args:
            action: Action being scanned
            job_key: Job of the checkout
            current: Step name or index of the checkout

        Returns:
            Entries of ``{"step", "why"}``
        """
        compromisable = []
        offset, subsequent = action.steps_after(job_key, current)
        for index, subsequent_step in enumerate(subsequent):
            why = extract_all(CWD_COMPROMISABLE_RULES, subsequent_step, {"run": "line"})
            if why:
                compromisable.append({"step": step_id(subsequent_step, index, offset), "why": why})

            if any_match(LOCAL_USES_RULES, subsequent_step):
                compromisable.append(
                    {
                        "step": step_id(subsequent_step, index, offset),
                        "why": f"uses: {subsequent_step['uses']}",
                    }
                )
        return compromisable


class WorkflowRunRule(StepRule):
    """Checkout of the triggering run's code in a workflow_run workflow"""

    def __init__(self) -> None:
        super().__init__(
            rule_id="WORKFLOW_RUN",
            description="workflow_run workflow checks out code from the triggering run",
            category="triggers",
        )

    def describe(self, finding: Finding) -> str:
        ref = (finding.details.get("with") or {}).get("ref")
        return (
            f"The identified job checks out {ref} in a workflow triggered by workflow_run, which runs "
            "with the privileges of the base repository"
        )

    def scan(self, action) -> List[Finding]:
        if not on_directive_contains(action.parsed_content(), "workflow_run"):
            return []
        return super().scan(action)

    def check_step(self, action, job_key, job, step, step_index) -> List[Finding]:
        if not any_match(CHECKOUT_WORKFLOW_RUN_RULE, step):
            return []
        return [
            self.create_finding(
                action,
                job_key,
                step_id(step, step_index),
                {
                    "on": action.on(),
                    "if": job.get("if") or "",
                    "uses": step.get("uses"),
                    "with": step.get("with"),
                },
            )
        ]
