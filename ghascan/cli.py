"""
cli.py - Command-line interface for ghascan

This module provides the command-line interface for the ghascan tool,
allowing users to scan GitHub repositories, organizations and standalone
actions for workflow security issues.
"""

import json
import os
from typing import Any, Callable, Dict, List, Optional, Tuple

import click
import yaml
from dotenv import load_dotenv

from .core import (
    ActionScanner,
    ConfigurationError,
    Finding,
    GhascanError,
    ParseError,
    ResolutionError,
    generate_default_config,
    load_config,
)
from .core.entities import is_github_url
from .reports import REPORT_FORMATS, print_report, save_report
from .rules import create_rule_engine, parse_scan_rules
from .utils.clone import Cloner
from .utils.logs import setup_logging
from .utils.version import __version__
from .utils.yaml_handler import load_yaml_file

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]


def validate_url(ctx: click.Context, param: click.Parameter, value: Optional[str]) -> Optional[str]:
    """Reject anything that is not a GitHub repository URL"""
    if value is not None and not is_github_url(value):
        raise click.BadParameter("Invalid Github URL")
    return value


def _settings(ctx: click.Context) -> Dict[str, Any]:
    return ctx.ensure_object(dict)


def _run_scan(ctx: click.Context, scan: Callable[[ActionScanner], Tuple[List[Finding], Dict[str, Any]]]) -> None:
    """Build a scanner from the group options, run ``scan`` and emit the report"""
    settings = _settings(ctx)
    scanner = ActionScanner(settings["config"], settings["scan_rules"])

    try:
        findings, stats = scan(scanner)
    except ResolutionError as e:
        raise click.ClickException(str(e))

    output = settings["output"]
    report_format = settings["format"]
    if output:
        try:
            save_report(findings, stats, output_path=output, format=report_format)
        except OSError as e:
            raise click.ClickException(f"Failed writing to {output}: {e}")
        click.echo(f"Results written to {output}", err=True)
    else:
        print_report(findings, stats, format=report_format)


@click.group()
@click.version_option(version=__version__)
@click.option("-e", "--env", "env_path", default=".env", show_default=True, help=".env file path.")
@click.option("--config", "config_path", type=click.Path(), help="Path to YAML config file.")
@click.option("-r", "--recurse", is_flag=True, default=None, help="Recurse into referenced actions.")
@click.option(
    "-m",
    "--max-depth",
    type=click.IntRange(min=1),
    help="Max recursion depth (implies --recurse).",
)
@click.option(
    "-s",
    "--scan-rules",
    default="",
    help="Comma separated list of rules to use, by ID. Negate by prefixing with !",
)
@click.option("--output", type=click.Path(), help="Output file path.")
@click.option("-f", "--format", "report_format", type=click.Choice(REPORT_FORMATS), help="Output format.")
@click.option("--log-level", type=click.Choice(LOG_LEVELS, case_sensitive=False), help="Logging level.")
@click.pass_context
def cli(
    ctx: click.Context,
    env_path: str,
    config_path: Optional[str],
    recurse: Optional[bool],
    max_depth: Optional[int],
    scan_rules: str,
    output: Optional[str],
    report_format: Optional[str],
    log_level: Optional[str],
) -> None:
    """ghascan - GitHub Actions Scanner

    Finds injection, pwn request, unpinned and repojackable actions in the
    workflows of GitHub repositories, following the actions they use.
    """
    if env_path and os.path.exists(env_path):
        load_dotenv(env_path)

    try:
        setup_logging(log_level)
    except ValueError as e:
        raise click.ClickException(str(e))

    try:
        config = load_config(config_path)
    except ConfigurationError as e:
        raise click.ClickException(f"Error loading config file: {e}")

    if recurse:
        config["recurse"] = True
    if max_depth is not None:
        config["recurse"] = True
        config["max_depth"] = max_depth

    report = config.get("report") or {}
    settings = _settings(ctx)
    settings["config"] = config
    settings["scan_rules"] = parse_scan_rules(scan_rules)
    settings["output"] = output or report.get("output")
    settings["format"] = report_format or report.get("format") or "text"


@cli.command("list-rules")
@click.option("--json", "as_json", is_flag=True, help="Print rule details as JSON")
@click.pass_context
def list_rules(ctx: click.Context, as_json: bool) -> None:
    """List all available rules"""
    settings = _settings(ctx)
    engine = create_rule_engine(settings["config"], settings["scan_rules"])

    if as_json:
        click.echo(json.dumps(engine.list_rules(), indent=2))
        return

    for rule in engine.list_rules():
        if rule["enabled"]:
            click.echo(rule["id"])


@cli.command("scan-repo")
@click.option("-u", "--url", required=True, callback=validate_url, help="Github repository URL.")
@click.pass_context
def scan_repo(ctx: click.Context, url: str) -> None:
    """Scan a single repo"""
    _run_scan(ctx, lambda scanner: scanner.scan_repository(url))


@cli.command("scan-org")
@click.option("-o", "--org", required=True, help="Github org name.")
@click.pass_context
def scan_org(ctx: click.Context, org: str) -> None:
    """Scan all repos in an org"""
    _run_scan(ctx, lambda scanner: scanner.scan_organization(org))


@cli.command("scan-actions")
@click.option(
    "-a",
    "--actions-yaml",
    default="./github-action-repos.yml",
    show_default=True,
    type=click.Path(),
    help="YAML file with a 'repos' list of action repository URLs.",
)
@click.pass_context
def scan_actions(ctx: click.Context, actions_yaml: str) -> None:
    """Scan a list of standalone actions from a file"""
    try:
        content = load_yaml_file(actions_yaml)
    except (OSError, ParseError) as e:
        raise click.ClickException(f"Error parsing {actions_yaml}: {e}")

    repos = content.get("repos") if isinstance(content, dict) else None
    if not isinstance(repos, list):
        raise click.ClickException(f"Error parsing {actions_yaml}: expected a 'repos' list")

    _run_scan(ctx, lambda scanner: scanner.scan_actions(str(url) for url in repos))


@cli.command()
@click.option("-u", "--url", required=True, callback=validate_url, help="Github repository URL.")
def clone(url: str) -> None:
    """Pseudo-fork a repo for testing"""
    try:
        cloned = Cloner(url).run()
    except GhascanError as e:
        raise click.ClickException(str(e))
    click.echo(cloned)


@cli.command()
@click.option("--generate", is_flag=True, help="Generate a default config file")
@click.option("--output", type=click.Path(), help="Output path for generated config")
@click.pass_context
def config(ctx: click.Context, generate: bool, output: Optional[str]) -> None:
    """Validate the active configuration or generate a default one"""
    if generate:
        try:
            config_str = generate_default_config(output)
        except ConfigurationError as e:
            raise click.ClickException(str(e))
        if output:
            click.echo(f"Default config written to {output}")
        else:
            click.echo(config_str)
        return

    click.echo(yaml.safe_dump(_settings(ctx)["config"], default_flow_style=False, sort_keys=False))


if __name__ == "__main__":
    cli()
