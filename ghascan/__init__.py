"""
ghascan - GitHub Actions Scanner

A static-analysis tool that finds security vulnerabilities in the GitHub
Actions workflows and actions of GitHub repositories, following every action
a workflow uses through the repositories that define it.
"""

from ghascan.utils.version import __version__, get_version, get_version_info

from .core import (
    ABSENT,
    RAW,
    Action,
    ActionScanner,
    ConfigurationError,
    Finding,
    Organization,
    Registry,
    Repository,
    ResolutionError,
    any_match,
    extract,
    load_config,
    matches,
    pattern,
    scan_actions,
    scan_organization,
    scan_repository,
)
from .reports import generate_report, print_report, save_report
from .rules import Rule, RuleEngine, create_rule_engine

__all__ = [
    "__version__",
    "get_version",
    "get_version_info",
    "ABSENT",
    "RAW",
    "pattern",
    "matches",
    "any_match",
    "extract",
    "Registry",
    "Repository",
    "Action",
    "Organization",
    "Finding",
    "ActionScanner",
    "scan_repository",
    "scan_organization",
    "scan_actions",
    "ResolutionError",
    "load_config",
    "ConfigurationError",
    "generate_report",
    "save_report",
    "print_report",
    "Rule",
    "RuleEngine",
    "create_rule_engine",
]


def main() -> None:
    """Main entry point for the ghascan CLI tool"""
    from .cli import cli

    cli()
