"""
report.py - Main reporting interface for ghascan

This module provides a unified interface for generating reports in different formats.
"""

import os
import sys
from typing import Any, Dict, List

from ..core.finding import Finding
from .console import format_console_report, print_console_report
from .json import generate_json_report

REPORT_FORMATS = ["text", "json"]


def generate_report(
    findings: List[Finding],
    stats: Dict[str, Any],
    format: str = "text",
    show_summary: bool = True,
) -> str:
    """
    Generate a report in the specified format

    Args:
        findings: List of findings
        stats: Statistics dictionary
        format: Output format ('text' or 'json')
        show_summary: Whether to include summary statistics

    Returns:
        Generated report as a string

    Raises:
        ValueError: If an invalid format is specified
    """
    if format == "text":
        return format_console_report(findings, stats, show_summary=show_summary)
    elif format == "json":
        return generate_json_report(findings, stats, include_stats=show_summary)
    else:
        raise ValueError(f"Invalid report format: {format}")


def save_report(
    findings: List[Finding],
    stats: Dict[str, Any],
    output_path: str,
    format: str = "text",
    show_summary: bool = True,
) -> None:
    """
    Generate a report and save it to a file

    Args:
        findings: List of findings
        stats: Statistics dictionary
        output_path: Path to save the report to
        format: Output format ('text' or 'json')
        show_summary: Whether to include summary statistics

    Raises:
        IOError: If the file cannot be written
        ValueError: If an invalid format is specified
    """
    report = generate_report(findings, stats, format=format, show_summary=show_summary)

    os.makedirs(os.path.dirname(os.path.abspath(output_path)), exist_ok=True)

    with open(output_path, "w", encoding="utf-8") as f:
        f.write(report)


def print_report(
    findings: List[Finding],
    stats: Dict[str, Any],
    format: str = "text",
    show_summary: bool = True,
) -> None:
    """
    Generate a report and print it to stdout

    Raises:
        ValueError: If an invalid format is specified
    """
    if format == "text":
        print_console_report(findings, stats, show_summary=show_summary, output_stream=sys.stdout)
    else:
        print(generate_report(findings, stats, format=format, show_summary=show_summary))
