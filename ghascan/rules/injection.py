"""
injection.py - Rules for untrusted data interpolated into executable content

GitHub expands ``${{ ... }}`` expressions before a step runs, so an expression
that reads attacker-controlled event data inside a ``run:`` script or a
github-script body becomes part of the code itself.
"""

import re
from typing import Any, Dict, List

from ..core.finding import Finding
from ..core.matcher import any_match, as_text, extract, pattern, step_id
from .base import InputTracingRule, StepRule
from .defs import interpolation, interpolation_line, untrusted_input_rules


def _line_number(text: Any, line: str) -> int:
    lines = as_text(text).split("\n")
    return lines.index(line) if line in lines else -1


class CommandExecutionRule(InputTracingRule):
    """Untrusted values interpolated into a ``run:`` script"""

    def __init__(self) -> None:
        super().__init__(
            rule_id="CMD_EXEC",
            description="Untrusted input interpolated into a 'run' directive",
            category="injection",
        )
        self.rules = untrusted_input_rules(
            lambda source: {"run": pattern(interpolation_line(source), re.MULTILINE, multi=True)}
        )

    def describe(self, finding: Finding) -> str:
        return (
            f"Run line {finding.details.get('run_lineno')} in the identified step unsafely interpolates "
            f"{finding.details.get('value')} into a 'run' directive, which may result in arbitrary "
            "command execution"
        )

    def check_step(self, action, job_key, job, step, step_index) -> List[Finding]:
        findings = []
        for rule in any_match(self.rules, step):
            lines = extract(rule, step, {"run": "line"})["run"]
            sources = extract(rule, step, {"run": "src"})["run"]
            for line, value in zip(lines, sources):
                findings.append(
                    self.create_finding(
                        action,
                        job_key,
                        step_id(step, step_index),
                        {
                            "run_lineno": _line_number(step["run"], line),
                            "line": line,
                            "value": value,
                        },
                    )
                )
        return findings


class CodeInjectionRule(InputTracingRule):
    """Untrusted values interpolated into an actions/github-script body"""

    def __init__(self) -> None:
        super().__init__(
            rule_id="CODE_INJECT",
            description="Untrusted input interpolated into an actions/github-script 'script'",
            category="injection",
        )
        self.rules = untrusted_input_rules(
            lambda source: {
                "uses": pattern(r"actions/github-script"),
                "with": {"script": pattern(interpolation_line(source), re.MULTILINE, multi=True)},
            }
        )

    def describe(self, finding: Finding) -> str:
        return (
            f"Run line {finding.details.get('run_lineno')} in the identified step unsafely interpolates "
            f"{finding.details.get('value')} into actions/github-script 'script' directive, which may "
            "result in arbitrary code execution"
        )

    def check_step(self, action, job_key, job, step, step_index) -> List[Finding]:
        findings = []
        for rule in any_match(self.rules, step):
            lines = extract(rule, step, {"with": {"script": "line"}})["with"]["script"]
            sources = extract(rule, step, {"with": {"script": "src"}})["with"]["script"]
            for line, value in zip(lines, sources):
                findings.append(
                    self.create_finding(
                        action,
                        job_key,
                        step_id(step, step_index),
                        {
                            "run_lineno": _line_number(step["with"]["script"], line),
                            "line": line,
                            "value": value,
                        },
                    )
                )
        return findings


class UnsafeInputAssignRule(StepRule):
    """Untrusted values passed as arguments to another action"""

    def __init__(self) -> None:
        super().__init__(
            rule_id="UNSAFE_INPUT_ASSIGN",
            description="Untrusted input passed through 'with' to a used action",
            category="injection",
        )
        self.rules = untrusted_input_rules(
            lambda source: {"with": {"*": pattern(interpolation(source), re.MULTILINE)}}
        )

    def describe(self, finding: Finding) -> str:
        return (
            f"The identified step passes the potentially attacker controlled value "
            f"{finding.details.get('value')}. This may result in undesirable behaviour"
        )

    def check_step(self, action, job_key, job, step, step_index) -> List[Finding]:
        findings = []
        for rule in any_match(self.rules, step):
            with_item: Dict[str, Any] = extract(rule, step)["with"]
            sources: Dict[str, Any] = extract(rule, step, {"with": {"*": "src"}})["with"]
            findings.append(
                self.create_finding(
                    action,
                    job_key,
                    step_id(step, step_index),
                    {"with_item": with_item, "value": list(sources.values())},
                )
            )
        return findings
