"""
matcher.py - Structural rule matching and value extraction

Detection rules are written as templates shaped like the configuration they
inspect::

    {"uses": re.compile("actions/checkout"),
     "with": {"ref": pattern(r"(?P<ref>github\\.event\\.pull_request\\.head.*)")}}

Leaves are literals (must be equal), regular expressions (must match the value
as text), ``ABSENT`` (the key must not exist) or nested templates. The key
``"*"`` matches when any value of the mapping satisfies the nested rule.
Templates are compiled once into the variants below; ``matches`` and
``extract`` dispatch on the variant instead of inspecting raw template types.
"""

import re
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

from ..utils.yaml_handler import is_composite_action

WILDCARD = "*"


class _Raw:
    """Binding marker: bind the raw subject instead of a capture group"""

    _instance: Optional["_Raw"] = None

    def __new__(cls) -> "_Raw":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "RAW"


@dataclass(frozen=True)
class Literal:
    value: Any

    def template(self) -> Any:
        return self.value


@dataclass(frozen=True)
class Pattern:
    """A compiled expression; ``multi`` binds every occurrence instead of the first"""

    regex: "re.Pattern[str]"
    multi: bool = False

    def template(self) -> Any:
        return self.regex


@dataclass(frozen=True)
class Absent:
    """The key must not be present"""

    def template(self) -> Any:
        return None

    def __repr__(self) -> str:
        return "ABSENT"


@dataclass(frozen=True)
class Wildcard:
    rule: "RuleNode"

    def template(self) -> Any:
        return self.rule.template()


@dataclass(frozen=True)
class Shape:
    """A mapping rule: every (key, rule) pair must hold"""

    fields: Tuple[Tuple[str, "RuleNode"], ...]

    def template(self) -> Any:
        return {key: rule.template() for key, rule in self.fields}


RuleNode = Union[Literal, Pattern, Absent, Wildcard, Shape]


ABSENT = Absent()
RAW = _Raw()


def pattern(expr: str, flags: int = 0, multi: bool = False) -> Pattern:
    """
    Build a Pattern leaf

    Args:
        expr: Regular expression source
        flags: ``re`` flags, e.g. ``re.MULTILINE``
        multi: Extract every occurrence rather than the first

    Returns:
        Pattern rule node
    """
    return Pattern(re.compile(expr, flags), multi)


def compile_rule(template: Any) -> RuleNode:
    """
    Compile a rule template into rule nodes

    Already compiled nodes are returned unchanged, so compiling twice is safe.
    """
    if isinstance(template, (Literal, Pattern, Absent, Wildcard, Shape)):
        return template
    if isinstance(template, re.Pattern):
        return Pattern(template)
    if isinstance(template, dict):
        fields = []
        for key, value in template.items():
            rule = compile_rule(value)
            if key == WILDCARD:
                rule = Wildcard(rule)
            fields.append((key, rule))
        return Shape(tuple(fields))
    return Literal(template)


def compile_rules(templates: List[Any]) -> List[RuleNode]:
    """Compile a list of rule templates"""
    return [compile_rule(template) for template in templates]


def as_text(node: Any) -> str:
    """Coerce a configuration value to the text a pattern is matched against"""
    if node is None:
        return ""
    if isinstance(node, bool):
        return "true" if node else "false"
    return str(node)


def _entries(node: Any) -> List[Tuple[Any, Any]]:
    if isinstance(node, dict):
        return list(node.items())
    if isinstance(node, list):
        return list(enumerate(node))
    return []


def _strict_equal(left: Any, right: Any) -> bool:
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left == right
    return bool(left == right)


def matches(rule: Any, node: Any) -> bool:
    """
    Test a rule against a configuration node

    Args:
        rule: Rule node or raw template
        node: Configuration value

    Returns:
        True if the node satisfies the rule
    """
    rule = compile_rule(rule)

    if isinstance(rule, Pattern):
        return rule.regex.search(as_text(node)) is not None

    if isinstance(rule, Wildcard):
        return any(matches(rule.rule, value) for _, value in _entries(node))

    if isinstance(rule, Shape):
        for key, sub_rule in rule.fields:
            if isinstance(sub_rule, Wildcard):
                if not matches(sub_rule, node):
                    return False
            elif isinstance(node, dict) and key in node:
                if not matches(sub_rule, node[key]):
                    return False
            elif not isinstance(sub_rule, Absent):
                return False
        return True

    if isinstance(rule, Absent):
        return False

    return _strict_equal(rule.value, node)


def any_match(rules: List[Any], node: Any) -> List[RuleNode]:
    """
    Return the rules from ``rules`` that match ``node``

    Rules are alternatives; each one is a conjunction of its own fields.
    """
    return [rule for rule in compile_rules(rules) if matches(rule, node)]


def _child_binding(binding: Any, key: Any) -> Any:
    if not isinstance(binding, dict):
        return None
    child = binding.get(key)
    if child is None:
        child = binding.get(WILDCARD)
    return child


def _bind(match: "re.Match[str]", group: str) -> str:
    if group in match.re.groupindex and match.group(group):
        return match.group(group)
    return match.group(0)


def extract(rule: Any, node: Any, binding: Any = None) -> Any:
    """
    Extract bound values from a node the rule matches

    ``binding`` mirrors the rule's shape; its leaves name the capture group to
    bind, or are ``RAW`` to bind the subject itself. Leaves without a binding
    return the subject unchanged.

    Args:
        rule: Rule node or raw template
        node: Configuration value (expected to satisfy ``rule``)
        binding: Binding specification

    Returns:
        Bound values shaped like the rule
    """
    rule = compile_rule(rule)

    if isinstance(rule, Pattern):
        if binding is None or binding is RAW or not isinstance(binding, str):
            return node
        subject = as_text(node)
        if rule.multi:
            return [_bind(found, binding) for found in rule.regex.finditer(subject)]
        found = rule.regex.search(subject)
        if found is None:
            return None
        return _bind(found, binding)

    if isinstance(rule, Shape):
        result: Dict[Any, Any] = {}
        for key, sub_rule in rule.fields:
            if isinstance(sub_rule, Wildcard):
                for entry_key, value in _entries(node):
                    if matches(sub_rule.rule, value):
                        result[entry_key] = extract(
                            sub_rule.rule, value, _child_binding(binding, entry_key)
                        )
            elif isinstance(node, dict) and key in node:
                result[key] = extract(sub_rule, node[key], _child_binding(binding, key))
            else:
                result[key] = sub_rule.template()
        return result

    return node


def extract_all(rules: List[Any], node: Any, binding: Any = None) -> List[Any]:
    """Extract from ``node`` with every rule in ``rules`` that matches it"""
    return [extract(rule, node, binding) for rule in any_match(rules, node)]


@dataclass(frozen=True)
class StepContainer:
    """A job-like holder of steps: a workflow job or a composite action's runs"""

    job_key: Any
    job: Dict[str, Any]
    steps: List[Any]


def _workflow_jobs(config: Dict[str, Any]) -> Iterator[StepContainer]:
    jobs = config.get("jobs")
    if not isinstance(jobs, dict):
        return
    for job_key, job in jobs.items():
        if isinstance(job, dict) and isinstance(job.get("steps"), list):
            yield StepContainer(job_key, job, job["steps"])


def _composite_runs(config: Dict[str, Any]) -> Iterator[StepContainer]:
    if is_composite_action(config):
        runs = config["runs"]
        yield StepContainer(config.get("name"), runs, runs["steps"])


def step_containers(config: Any) -> Iterator[StepContainer]:
    """Yield every step container in a workflow or composite action"""
    if not isinstance(config, dict):
        return
    yield from _workflow_jobs(config)
    yield from _composite_runs(config)


def find_container(config: Any, job_key: Any) -> Optional[StepContainer]:
    """
    Find the container for ``job_key``

    A workflow job with that key wins; otherwise a composite action's steps
    are returned whatever the key, since an action has exactly one.
    """
    if not isinstance(config, dict):
        return None

    for container in _workflow_jobs(config):
        if container.job_key == job_key:
            return container

    for container in _composite_runs(config):
        return container

    return None


def action_steps(config: Any) -> Iterator[Tuple[Any, Dict[str, Any], Any, int]]:
    """Yield ``(job_key, job, step, step_index)`` for every non-empty step"""
    for container in step_containers(config):
        for step_index, step in enumerate(container.steps):
            if step:
                yield container.job_key, container.job, step, step_index


def step_id(step: Any, step_index: int, offset: int = 0) -> Union[str, int]:
    """A step's name if it has one, else its position in the job"""
    if isinstance(step, dict) and step.get("name"):
        return str(step["name"])
    return offset + step_index
