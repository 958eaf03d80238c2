"""
defs.py - Shared detection data

Expression sources for attacker-influenced values, and step shapes that
execute code from the working directory.
"""

import re
from typing import Callable, List

from ..core.matcher import RuleNode, compile_rules, pattern

# One rule is compiled per expression.
UNTRUSTED_INPUT = [
    # Workflows
    r"github\.event\.issue\.title",
    r"github\.event\.issue\.body",
    r"github\.event\.pull_request\.title",
    r"github\.event\.pull_request\.body",
    r"github\.event\.comment\.body",
    r"github\.event\.review\.body",
    r"github\.event\.pages\.[\w.-]*\.page_name",
    r"github\.event\.commits\.[\w.-]*\.message",
    r"github\.event\.head_commit\.message",
    r"github\.event\.head_commit\.author\.email",
    r"github\.event\.head_commit\.author\.name",
    r"github\.event\.commits\.[\w.-]*\.author\.email",
    r"github\.event\.commits\.[\w.-]*\.author\.name",
    r"github\.event\.pull_request\.head\.ref",
    r"github\.event\.pull_request\.head\.label",
    r"github\.event\.pull_request\.head\.repo\.default_branch",
    r"github\.event\.workflow_run\.head_branch",
    r"github\.event\.workflow_run\.head_commit\.message",
    r"github\.event\.workflow_run\.head_commit\.author\.email",
    r"github\.event\.workflow_run\.head_commit\.author\.name",
    r"github\.head_ref",
    # Actions
    r"inputs\.[\w.-]*",
]

CWD_COMPROMISABLE_RULES = compile_rules(
    [
        {"uses": pattern(r"nick-invision/retry"), "with": {"command": pattern(r"^make\s")}},
        {"run": pattern(r"(?P<line>npm i(nstall)?.*)$", re.MULTILINE)},
        {"run": pattern(r"(?P<line>make\s.*)$", re.MULTILINE)},
        {"run": pattern(r"(?P<line>poetry install.*)$", re.MULTILINE)},
        {"run": pattern(r"(?P<line>poetry run.*)$", re.MULTILINE)},
        {"run": pattern(r"[&|;]\s*(?P<line>[.]/.*)$", re.MULTILINE)},
    ]
)


def interpolation_line(source: str) -> str:
    """A whole line containing a ``${{ }}`` expression that references ``source``"""
    return r"^(?P<line>.*[$]\{\{[^}]*?(?P<src>" + source + r").*?\}\}.*)$"


def interpolation(source: str) -> str:
    """A single ``${{ }}`` expression that references ``source``"""
    return r"[$]\{\{[^}]*?(?P<src>" + source + r")[^}]*\}\}"


def untrusted_input_rules(build: Callable[[str], dict]) -> List[RuleNode]:
    """Compile one rule per untrusted input expression"""
    return compile_rules([build(source) for source in UNTRUSTED_INPUT])
