"""
test_cli.py - Tests for the command-line interface
"""

import json
import logging
import os
from unittest.mock import MagicMock, patch

import pytest
from click.testing import CliRunner

from ghascan.cli import cli
from ghascan.core.scanner import ActionScanner
from ghascan.utils.version import __version__

ALL_RULES = [
    "CMD_EXEC",
    "CODE_INJECT",
    "PWN_REQUEST",
    "REPOJACKABLE",
    "UNPINNED_ACTION",
    "UNSAFE_INPUT_ASSIGN",
    "WORKFLOW_RUN",
]


@pytest.fixture
def cli_runner(monkeypatch, temp_dir):
    """Click runner in an empty directory, with no user config or token around."""
    monkeypatch.chdir(temp_dir)
    monkeypatch.setenv("HOME", temp_dir)
    monkeypatch.setenv("GITHUB_TOKEN", "placeholder")
    monkeypatch.delenv("GITHUB_TOKEN")
    monkeypatch.delenv("NO_COLOR", raising=False)
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    return CliRunner()


@pytest.fixture(autouse=True)
def restore_logger():
    logger = logging.getLogger("ghascan")
    level, handlers = logger.level, list(logger.handlers)
    yield
    logger.setLevel(level)
    logger.handlers = handlers


@pytest.fixture
def offline_scanner(fake_github, insecure_workflow_content):
    """Make every CLI scan run against the in-memory GitHub."""
    fake_github.add_repository("acme", "app", {".github/workflows/ci.yml": insecure_workflow_content})

    def factory(config, scan_rules):
        return ActionScanner(config, scan_rules, client=fake_github)

    with patch("ghascan.cli.ActionScanner", side_effect=factory):
        yield fake_github


def test_cli_version(cli_runner):
    """Test getting the version with --version."""
    result = cli_runner.invoke(cli, ["--version"])

    assert result.exit_code == 0
    assert __version__ in result.output


def test_cli_help(cli_runner):
    """Test getting help with --help."""
    result = cli_runner.invoke(cli, ["--help"])

    assert result.exit_code == 0
    assert "ghascan - GitHub Actions Scanner" in result.output
    for command in ["list-rules", "scan-repo", "scan-org", "scan-actions", "clone", "config"]:
        assert command in result.output


def test_list_rules(cli_runner):
    result = cli_runner.invoke(cli, ["list-rules"])

    assert result.exit_code == 0
    assert result.output.split() == ALL_RULES


def test_list_rules_respects_selection(cli_runner):
    negated = cli_runner.invoke(cli, ["-s", "!REPOJACKABLE,!WORKFLOW_RUN", "list-rules"])
    kept = cli_runner.invoke(cli, ["--scan-rules", "CMD_EXEC,PWN_REQUEST", "list-rules"])

    assert "REPOJACKABLE" not in negated.output.split()
    assert "WORKFLOW_RUN" not in negated.output.split()
    assert "CMD_EXEC" in negated.output.split()
    assert kept.output.split() == ["CMD_EXEC", "PWN_REQUEST"]


def test_list_rules_json(cli_runner):
    result = cli_runner.invoke(cli, ["--log-level", "ERROR", "list-rules", "--json"])

    rules = json.loads(result.output)
    assert [rule["id"] for rule in rules] == ALL_RULES
    assert rules[0]["documentation"].endswith("#CMD_EXEC")


def test_scan_repo_rejects_invalid_url(cli_runner):
    result = cli_runner.invoke(cli, ["scan-repo", "-u", "https://gitlab.com/acme/app"])

    assert result.exit_code == 2
    assert "Invalid Github URL" in result.output


def test_scan_repo_text_report(cli_runner, offline_scanner):
    result = cli_runner.invoke(cli, ["--log-level", "ERROR", "scan-repo", "-u", "https://github.com/acme/app"])

    assert result.exit_code == 0
    assert "The rule CMD_EXEC triggered for https://github.com/acme/app/blob/main/.github/workflows/ci.yml" in result.output
    assert "The rule PWN_REQUEST" in result.output
    assert "Total issues found: 3" in result.output


def test_scan_repo_json_to_file(cli_runner, offline_scanner):
    result = cli_runner.invoke(
        cli,
        [
            "-f",
            "json",
            "--output",
            "out/report.json",
            "-s",
            "!UNPINNED_ACTION",
            "scan-repo",
            "-u",
            "https://github.com/acme/app",
        ],
    )

    assert result.exit_code == 0
    assert "Results written to out/report.json" in result.output
    with open(os.path.join("out", "report.json"), encoding="utf-8") as f:
        report = json.load(f)
    assert [finding["rule"]["id"] for finding in report["findings"]] == ["CMD_EXEC", "PWN_REQUEST"]
    assert report["stats"]["target"] == "https://github.com/acme/app"


def test_scan_repo_unknown_repository(cli_runner, offline_scanner):
    result = cli_runner.invoke(cli, ["scan-repo", "-u", "https://github.com/ghost/missing"])

    assert result.exit_code == 1
    assert "Failed to get repo details for ghost/missing" in result.output


def test_scan_org(cli_runner, offline_scanner, sample_workflow_content):
    offline_scanner.add_repository("acme", "site", {".github/workflows/ci.yml": sample_workflow_content})

    result = cli_runner.invoke(cli, ["--log-level", "ERROR", "scan-org", "-o", "acme"])

    assert result.exit_code == 0
    assert "Target: acme" in result.output
    assert "Actions scanned: 2" in result.output


def test_scan_actions(cli_runner, offline_scanner, composite_action_content):
    offline_scanner.add_repository("acme", "greeter", {"action.yml": composite_action_content})
    with open("github-action-repos.yml", "w", encoding="utf-8") as f:
        f.write("repos:\n  - https://github.com/acme/greeter\n")

    result = cli_runner.invoke(cli, ["--log-level", "ERROR", "scan-actions"])

    assert result.exit_code == 0
    assert "The rule CMD_EXEC triggered for https://github.com/acme/greeter/blob/main/action.yml" in result.output


def test_scan_actions_bad_file(cli_runner):
    missing = cli_runner.invoke(cli, ["scan-actions", "-a", "nope.yml"])
    with open("list.yml", "w", encoding="utf-8") as f:
        f.write("- https://github.com/acme/greeter\n")
    not_a_mapping = cli_runner.invoke(cli, ["scan-actions", "-a", "list.yml"])
    with open("broken.yml", "w", encoding="utf-8") as f:
        f.write("repos: [unclosed\n")
    broken = cli_runner.invoke(cli, ["scan-actions", "-a", "broken.yml"])

    assert broken.exit_code == 1
    assert "Error parsing broken.yml" in broken.output
    assert missing.exit_code == 1
    assert "Error parsing nope.yml" in missing.output
    assert not_a_mapping.exit_code == 1
    assert "expected a 'repos' list" in not_a_mapping.output


def test_unknown_log_level_in_environment(cli_runner, monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "LOUD")

    result = cli_runner.invoke(cli, ["list-rules"])

    assert result.exit_code == 1
    assert "Unknown log level: LOUD" in result.output
    assert not isinstance(result.exception, ValueError)


def test_max_depth_implies_recurse(cli_runner):
    result = cli_runner.invoke(cli, ["-m", "3", "config"])

    assert result.exit_code == 0
    assert "recurse: true" in result.output
    assert "max_depth: 3" in result.output


def test_max_depth_must_be_positive(cli_runner):
    result = cli_runner.invoke(cli, ["-m", "0", "config"])

    assert result.exit_code == 2


def test_config_file_option(cli_runner):
    with open("custom.yml", "w", encoding="utf-8") as f:
        f.write("workers: 8\n")

    result = cli_runner.invoke(cli, ["--config", "custom.yml", "config"])

    assert result.exit_code == 0
    assert "workers: 8" in result.output


def test_invalid_config_file(cli_runner):
    with open("custom.yml", "w", encoding="utf-8") as f:
        f.write("colour: true\n")

    result = cli_runner.invoke(cli, ["--config", "custom.yml", "list-rules"])

    assert result.exit_code == 1
    assert "Error loading config file" in result.output


def test_config_generate(cli_runner):
    printed = cli_runner.invoke(cli, ["config", "--generate"])
    written = cli_runner.invoke(cli, ["config", "--generate", "--output", "ghascan.yml"])

    assert printed.exit_code == 0
    assert "max_depth: 5" in printed.output
    assert "Default config written to ghascan.yml" in written.output
    assert os.path.exists("ghascan.yml")


def test_clone_requires_token(cli_runner):
    result = cli_runner.invoke(cli, ["clone", "-u", "https://github.com/acme/app"])

    assert result.exit_code == 1
    assert "GITHUB_TOKEN not defined" in result.output


def test_clone_reads_token_from_env_file(cli_runner):
    with open("secrets.env", "w", encoding="utf-8") as f:
        f.write("GITHUB_TOKEN=from-env-file\n")

    with patch("ghascan.cli.Cloner") as cloner:
        cloner.return_value.run.return_value = "https://github.com/mallory/app"
        result = cli_runner.invoke(cli, ["-e", "secrets.env", "clone", "-u", "https://github.com/acme/app"])

    assert result.exit_code == 0
    assert "https://github.com/mallory/app" in result.output
    cloner.assert_called_once_with("https://github.com/acme/app")
    assert os.environ["GITHUB_TOKEN"] == "from-env-file"


def test_scan_uses_configured_report_format(cli_runner, offline_scanner):
    with open("ghascan.yml", "w", encoding="utf-8") as f:
        f.write("report:\n  format: json\n  output: report.json\n")

    result = cli_runner.invoke(cli, ["scan-repo", "-u", "https://github.com/acme/app"])

    assert result.exit_code == 0
    with open("report.json", encoding="utf-8") as f:
        assert len(json.load(f)["findings"]) == 3


def test_scanner_built_from_group_options(cli_runner):
    scanner = MagicMock()
    scanner.scan_repository.return_value = ([], {"target": "https://github.com/acme/app"})

    with patch("ghascan.cli.ActionScanner", return_value=scanner) as factory:
        result = cli_runner.invoke(
            cli, ["-r", "-s", "CMD_EXEC", "scan-repo", "-u", "https://github.com/acme/app/commit/abc123"]
        )

    assert result.exit_code == 0
    config, scan_rules = factory.call_args.args
    assert config["recurse"] is True
    assert scan_rules == ["CMD_EXEC"]
    scanner.scan_repository.assert_called_once_with("https://github.com/acme/app/commit/abc123")
    assert "No issues found." in result.output
