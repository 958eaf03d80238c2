"""
reports package for ghascan - GitHub Actions Scanner

This package contains reporting functionality for presenting scan results
as grouped console text or JSON.
"""

from .report import generate_report, save_report, print_report, REPORT_FORMATS

from .console import (
    format_console_report,
    print_console_report,
    format_findings,
    format_summary,
)

from .json import generate_json_report, save_json_report, finding_to_dict

__all__ = [
    "generate_report",
    "save_report",
    "print_report",
    "REPORT_FORMATS",
    "format_console_report",
    "print_console_report",
    "format_findings",
    "format_summary",
    "generate_json_report",
    "save_json_report",
    "finding_to_dict",
]
