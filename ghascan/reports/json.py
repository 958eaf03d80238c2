"""
json.py - JSON reporting for ghascan

This module provides functionality for formatting scanning results as JSON,
suitable for machine processing or integration with other tools.
"""

import json
from datetime import datetime
from typing import Any, Dict, List

from ..core.finding import Finding
from ..utils.version import __version__


def finding_to_dict(finding: Finding) -> Dict[str, Any]:
    """
    Convert a Finding object, after its rule's prereport hook, to a dictionary

    Args:
        finding: Finding to convert

    Returns:
        Dictionary representation of the finding with its report-time context
    """
    finding.prereport()
    return finding.to_dict()


def generate_json_report(findings: List[Finding], stats: Dict[str, Any], include_stats: bool = True) -> str:
    """
    Generate a JSON report of findings and statistics

    Args:
        findings: List of findings
        stats: Statistics dictionary
        include_stats: Whether to include statistics in the output

    Returns:
        JSON string representation of the report
    """
    report: Dict[str, Any] = {
        "ghascan_version": __version__,
        "generated_at": datetime.now().isoformat(),
        "findings": [finding_to_dict(finding) for finding in findings],
    }

    if include_stats:
        clean_stats: Dict[str, Any] = {}
        for key, value in stats.items():
            if isinstance(value, (str, int, float, bool, list, dict)) or value is None:
                clean_stats[key] = value

        report["stats"] = clean_stats

    # YAML scalars such as timestamps are not JSON types
    return json.dumps(report, indent=2, default=str)


def save_json_report(
    findings: List[Finding],
    stats: Dict[str, Any],
    output_path: str,
    include_stats: bool = True,
) -> None:
    """
    Generate a JSON report and save it to a file

    Raises:
        IOError: If the file cannot be written
    """
    report = generate_json_report(findings, stats, include_stats)

    with open(output_path, "w", encoding="utf-8") as f:
        f.write(report)
