"""
yaml_handler.py - Utilities for YAML processing

This module turns workflow and action file text into plain configuration trees
(dicts, lists and scalars) and recognises composite actions.
"""

import re
from typing import Any, Optional

import yaml

from ..core.errors import ParseError


class WorkflowLoader(yaml.SafeLoader):
    """SafeLoader with YAML 1.2 style booleans"""


# PyYAML follows the YAML 1.1 specification which treats plain strings such
# as ``on``, ``off``, ``yes`` and ``no`` as booleans. GitHub Actions uses
# ``on`` as the trigger key, so with the default resolver ``config["on"]``
# would be missing. Only ``true`` and ``false`` keep resolving to booleans.
WorkflowLoader.yaml_implicit_resolvers = {
    first_char: [(tag, regexp) for tag, regexp in resolvers if tag != "tag:yaml.org,2002:bool"]
    for first_char, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
}

WorkflowLoader.add_implicit_resolver(
    "tag:yaml.org,2002:bool",
    re.compile(r"^(?:true|True|TRUE|false|False|FALSE)$"),
    list("tTfF"),
)


def parse_config(content: Optional[str]) -> Any:
    """
    Parse workflow or action text into a configuration tree

    Args:
        content: YAML text; None and empty text parse to None

    Returns:
        Parsed tree (usually a dictionary)

    Raises:
        ParseError: If the text is not valid YAML
    """
    if not content:
        return None

    try:
        return yaml.load(content, Loader=WorkflowLoader)
    except yaml.YAMLError as e:
        raise ParseError(str(e)) from e


def load_yaml_file(file_path: str) -> Any:
    """
    Load and parse a YAML file

    Raises:
        FileNotFoundError: If file is not found
        ParseError: If YAML parsing fails
    """
    with open(file_path, "r", encoding="utf-8") as f:
        return parse_config(f.read())


def is_composite_action(yaml_content: Any) -> bool:
    """Check if YAML content is an action definition with ``runs.steps``"""
    if not isinstance(yaml_content, dict):
        return False

    runs = yaml_content.get("runs")
    return isinstance(runs, dict) and isinstance(runs.get("steps"), list)
