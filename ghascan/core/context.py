"""
context.py - Security context of a job or step

These queries answer the questions a finding raises once it has been located:
which token permissions the job runs with, which conditions gate it, which
steps run after it, and which secrets those steps can reach. They are pure
functions over a parsed configuration tree and never raise on malformed or
missing configuration; the empty or default answer is returned instead.
"""

import re
from typing import Any, Dict, List, Optional, Tuple, Union

from .matcher import any_match, extract, find_container, pattern, step_id

StepID = Union[str, int]

DEFAULT_PERMISSIONS = {
    "contents": "read",
    "packages": "read",
    "metadata": "read",
}

SECRET_REFERENCE = r"\$\{\{\s*(?P<secret>secrets[.].*?)\s*\}\}"

SECRET_RULES = [
    {"with": {"*": pattern(SECRET_REFERENCE)}},
    {"env": {"*": pattern(SECRET_REFERENCE)}},
]


def triggers(config: Any) -> List[str]:
    """
    List the events in a workflow's ``on:`` directive

    Args:
        config: Parsed workflow

    Returns:
        Event names, empty for actions and malformed configs
    """
    if not isinstance(config, dict):
        return []

    on = config.get("on")
    if isinstance(on, str):
        return [on]
    if isinstance(on, list):
        return [str(event) for event in on]
    if isinstance(on, dict):
        return [str(event) for event in on.keys()]
    return []


def on_directive_contains(config: Any, event: str) -> bool:
    """Check whether the workflow is triggered by ``event``"""
    return event in triggers(config)


def _normalize_permissions(permissions: Any) -> Dict[str, Any]:
    if isinstance(permissions, dict):
        return dict(permissions)
    if isinstance(permissions, str):
        # read-all / write-all shorthand
        return {"all": permissions.split("-", 1)[0]}
    return {}


def permissions_for_job(config: Any, job: Any) -> Dict[str, Any]:
    """
    Resolve the token permissions a job runs with

    Job-level permissions win over workflow-level ones; without either the
    restricted default applies. ``pull_request_target`` additionally grants
    repository write access on top of whichever level was selected.

    Args:
        config: Parsed workflow or action
        job: Job key

    Returns:
        Mapping of scope to access level
    """
    if not isinstance(config, dict) or not config:
        return {}

    jobs = config.get("jobs")
    job_config = jobs.get(job) if isinstance(jobs, dict) else None

    if isinstance(job_config, dict) and job_config.get("permissions") is not None:
        resolved = _normalize_permissions(job_config["permissions"])
    elif config.get("permissions") is not None:
        resolved = _normalize_permissions(config["permissions"])
    else:
        resolved = dict(DEFAULT_PERMISSIONS)

    if on_directive_contains(config, "pull_request_target"):
        resolved["repository"] = "write"

    return resolved


def _is_named(candidate: Any, name: StepID) -> bool:
    """Compare as ``step_id`` does, so a step named ``2024`` is found by ``"2024"``"""
    return isinstance(candidate, dict) and bool(candidate.get("name")) and str(candidate["name"]) == str(name)


def _find_step(steps: List[Any], target: Optional[StepID]) -> Any:
    if target is None:
        return None
    if isinstance(target, int):
        return steps[target] if 0 <= target < len(steps) else None
    for step in steps:
        if _is_named(step, target):
            return step
    return None


def conditions_for_job_step(config: Any, job: Any, step: Optional[StepID]) -> Dict[str, Any]:
    """
    Collect the conditions gating a step

    Args:
        config: Parsed workflow or action
        job: Job key
        step: Step index, or step name (first match wins)

    Returns:
        ``{"job": {"if", "needs"}, "step": {"if"}}``, or {} when there is no
        such job
    """
    container = find_container(config, job)
    if container is None:
        return {}

    jobs = config.get("jobs")
    job_config = jobs.get(job) if isinstance(jobs, dict) else None
    if not isinstance(job_config, dict):
        job_config = {}

    found = _find_step(container.steps, step)
    step_if = found.get("if") if isinstance(found, dict) else None

    return {
        "job": {"if": job_config.get("if"), "needs": job_config.get("needs")},
        "step": {"if": step_if},
    }


def steps_after(config: Any, job: Any, step: Optional[StepID]) -> Tuple[int, List[Any]]:
    """
    Slice a job from the identified step onwards

    With an index this is a plain slice. With a name the slice starts at the
    first step carrying that name, inclusive, and runs to the end of the job.
    Without a step the whole job is returned.

    Args:
        config: Parsed workflow or action
        job: Job key
        step: Step index or name

    Returns:
        ``(offset, steps)`` where ``offset`` is the index of the first
        returned step
    """
    container = find_container(config, job)
    if container is None:
        return 0, []

    steps = container.steps
    if step is None:
        after = steps
    elif isinstance(step, int):
        after = steps[step:]
    else:
        after = []
        for index, candidate in enumerate(steps):
            if _is_named(candidate, step):
                after = steps[index:]
                break

    return len(steps) - len(after), list(after)


def _secret_entries(node: Any) -> List[Dict[str, Any]]:
    entries = []
    for rule in any_match(SECRET_RULES, node):
        entries.append(
            {
                "with_secrets": extract(rule, node, {"with": {"*": "secret"}}).get("with"),
                "env_secrets": extract(rule, node, {"env": {"*": "secret"}}).get("env"),
            }
        )
    return entries


def secrets_after(config: Any, job: Any, step: Optional[StepID]) -> List[Dict[str, Any]]:
    """
    Collect the secrets reachable from a step onwards

    Sources are the workflow's own ``with``/``env`` blocks, secrets the job
    passes to a reusable workflow, and the ``with``/``env`` blocks of the
    identified step and every step after it.

    Returns:
        List of entries tagged with ``src`` of workflow, job or step
    """
    if not isinstance(config, dict) or not config:
        return []

    secrets: List[Dict[str, Any]] = []

    for entry in _secret_entries(config):
        secrets.append({"src": "workflow", **entry})

    jobs = config.get("jobs")
    job_config = jobs.get(job) if isinstance(jobs, dict) else None
    if isinstance(job_config, dict) and isinstance(job_config.get("secrets"), dict):
        for key, value in job_config["secrets"].items():
            secrets.append({"src": "job", "key": key, "value": value})

    offset, subsequent = steps_after(config, job, step)
    for index, subsequent_step in enumerate(subsequent):
        for entry in _secret_entries(subsequent_step):
            secrets.append(
                {"src": "step", "step": step_id(subsequent_step, index, offset), **entry}
            )

    return secrets


def flatten_secrets(entries: List[Dict[str, Any]]) -> List[str]:
    """Reduce ``secrets_after`` output to the list of referenced secret names"""
    names: List[str] = []
    for entry in entries:
        for key in ("with_secrets", "env_secrets"):
            values = entry.get(key)
            if isinstance(values, dict):
                names.extend(str(value) for value in values.values())
        if entry.get("src") == "job":
            found = re.search(SECRET_REFERENCE, str(entry.get("value", "")))
            names.append(found.group("secret") if found else str(entry.get("value")))
    return names


def runs_on(config: Any, job: Any) -> Any:
    """The runner a job is scheduled on, if declared"""
    if not isinstance(config, dict):
        return None
    jobs = config.get("jobs")
    job_config = jobs.get(job) if isinstance(jobs, dict) else None
    if isinstance(job_config, dict):
        return job_config.get("runs-on")
    return None
