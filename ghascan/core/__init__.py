"""
core package for ghascan - GitHub Actions Scanner

This package contains the rule matcher, the repository/action graph, the
security context queries and the scan orchestration.
"""

from .errors import (
    GhascanError,
    ResolutionError,
    ParseError,
    UnsupportedReferenceKind,
    SizeLimitExceeded,
)
from .matcher import ABSENT, RAW, WILDCARD, pattern, compile_rule, matches, any_match, extract
from .entities import Registry, Repository, Action, Organization, UsedBy, UnresolvedReference
from .finding import Finding
from .config import (
    load_config,
    generate_default_config,
    save_config,
    disable_rules,
    ConfigurationError,
)
from .scanner import ActionScanner, scan_repository, scan_organization, scan_actions

__all__ = [
    "GhascanError",
    "ResolutionError",
    "ParseError",
    "UnsupportedReferenceKind",
    "SizeLimitExceeded",
    "ABSENT",
    "RAW",
    "WILDCARD",
    "pattern",
    "compile_rule",
    "matches",
    "any_match",
    "extract",
    "Registry",
    "Repository",
    "Action",
    "Organization",
    "UsedBy",
    "UnresolvedReference",
    "Finding",
    "load_config",
    "generate_default_config",
    "save_config",
    "disable_rules",
    "ConfigurationError",
    "ActionScanner",
    "scan_repository",
    "scan_organization",
    "scan_actions",
]
