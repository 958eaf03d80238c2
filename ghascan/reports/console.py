"""
console.py - Console/terminal reporting for ghascan

This module formats findings as human-readable text, grouped by rule and
repository, then by workflow, job and step.
"""

import os
import sys
from datetime import datetime
from typing import Any, Callable, Dict, Hashable, List, Optional, TextIO, TypeVar

import click

from ..core.finding import Finding

T = TypeVar("T")

COLORS = {
    "RULE": "red",
    "WORKFLOW": "yellow",
    "BOLD": "bold",
}


def colorize(text: str, color: str, enabled: bool = True) -> str:
    """
    Apply color to text if color output is enabled

    Args:
        text: Text to colorize
        color: Color (or ``bold``/``underline``) to apply
        enabled: Whether the output supports color

    Returns:
        Colorized text or original text if color is disabled
    """
    if not enabled or os.environ.get("NO_COLOR"):
        return text
    if color in ("bold", "underline"):
        return click.style(text, **{color: True})
    return click.style(text, fg=color)


def group_by(items: List[T], key: Callable[[T], Hashable]) -> Dict[Hashable, List[T]]:
    """Group items by key, keeping first-seen order"""
    groups: Dict[Hashable, List[T]] = {}
    for item in items:
        groups.setdefault(key(item), []).append(item)
    return groups


def format_findings(findings: List[Finding], color: bool = False) -> str:
    """
    Format findings grouped by (rule, repo), workflow, job and step

    Args:
        findings: List of findings to format
        color: Whether to emit ANSI colors

    Returns:
        Formatted findings as string
    """
    if not findings:
        return "No issues found.\n"

    formatted = []
    for finding in findings:
        finding.prereport()
        formatted.append(finding.for_text())

    output = ""
    for rule_group in group_by(formatted, lambda item: (item["rule"], item["repo"])).values():
        first = rule_group[0]
        output += f"The rule {colorize(first['rule'], COLORS['RULE'], color)} triggered for {first['repo']}\n"
        output += f"  Documentation: {first['documentation']}\n"
        for workflow_group in group_by(rule_group, lambda item: item["subpath"]).values():
            output += f"  Workflow: {colorize(workflow_group[0]['subpath'], COLORS['WORKFLOW'], color)}\n"
            for job_group in group_by(workflow_group, lambda item: str(item["job"])).values():
                output += f"    Job: {job_group[0]['job']}\n"
                for step_group in group_by(job_group, lambda item: str(item["step"])).values():
                    output += f"      Step: {step_group[0]['step']}\n"
                    for item in step_group:
                        output += f"        - Description: {item['description']}\n"
                        output += f"          Permissions: {item['permissions']}\n"
                        output += f"          Secrets: {item['secrets']}\n"
                        output += "\n"

    return output


def format_summary(stats: Dict[str, Any], color: bool = False) -> str:
    """
    Format summary statistics

    Args:
        stats: Statistics dictionary
        color: Whether to emit ANSI colors

    Returns:
        Formatted summary as string
    """
    output = f"\n{colorize('Scan Summary', COLORS['BOLD'], color)}\n"
    output += "=" * 50 + "\n"

    output += f"Target: {stats.get('target', '')}\n"
    output += f"Repositories resolved: {stats.get('total_repositories', 0)}\n"
    output += f"Actions scanned: {stats.get('total_actions', 0)}\n"
    output += f"Total issues found: {stats.get('total_findings', 0)}\n"

    if stats.get("rule_counts"):
        output += "\nIssues by rule:\n"
        for rule, count in sorted(stats["rule_counts"].items(), key=lambda x: x[1], reverse=True):
            output += f"  {rule}: {count}\n"

    start_time = stats.get("start_time")
    end_time = stats.get("end_time")
    if start_time and end_time:
        try:
            duration = (datetime.fromisoformat(end_time) - datetime.fromisoformat(start_time)).total_seconds()
            output += f"\nScan duration: {duration:.2f} seconds\n"
        except (ValueError, TypeError):
            pass

    return output


def format_console_report(
    findings: List[Finding],
    stats: Dict[str, Any],
    show_summary: bool = True,
    color: bool = False,
) -> str:
    """
    Generate a complete console report

    Args:
        findings: List of findings
        stats: Statistics dictionary
        show_summary: Whether to include summary statistics
        color: Whether to emit ANSI colors

    Returns:
        Complete formatted report as string
    """
    output = format_findings(findings, color)

    if show_summary:
        output += format_summary(stats, color)

    return output


def print_console_report(
    findings: List[Finding],
    stats: Dict[str, Any],
    show_summary: bool = True,
    output_stream: Optional[TextIO] = None,
) -> None:
    """
    Print console report to output stream

    Args:
        findings: List of findings
        stats: Statistics dictionary
        show_summary: Whether to include summary statistics
        output_stream: Output stream to write to (defaults to sys.stdout)
    """
    if output_stream is None:
        output_stream = sys.stdout

    color = hasattr(output_stream, "isatty") and output_stream.isatty()
    output_stream.write(format_console_report(findings, stats, show_summary, color))
    output_stream.flush()
