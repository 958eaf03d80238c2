"""
rules package for ghascan - GitHub Actions Scanner

This package contains the detection rules and the rule engine that runs them
against every action and workflow the scanner reaches.
"""

from .base import Rule, StepRule, InputTracingRule
from .engine import RuleEngine, create_rule_engine, parse_scan_rules
from .injection import CommandExecutionRule, CodeInjectionRule, UnsafeInputAssignRule
from .triggers import PwnRequestRule, WorkflowRunRule
from .supply_chain import UnpinnedActionRule, RepojackableRule

__all__ = [
    # Base classes
    "Rule",
    "StepRule",
    "InputTracingRule",
    # Rule engine
    "RuleEngine",
    "create_rule_engine",
    "parse_scan_rules",
    # Injection rules
    "CommandExecutionRule",
    "CodeInjectionRule",
    "UnsafeInputAssignRule",
    # Trigger rules
    "PwnRequestRule",
    "WorkflowRunRule",
    # Supply-chain rules
    "UnpinnedActionRule",
    "RepojackableRule",
]
