"""
test_config.py - Tests for configuration loading and validation
"""

import os

import pytest
import yaml

from ghascan.core.config import (
    DEFAULT_CONFIG,
    RULE_IDS,
    ConfigurationError,
    disable_rules,
    generate_default_config,
    get_config_paths,
    load_config,
    merge_configs,
    save_config,
    validate_config,
)


def write_config(path, content):
    with open(path, "w", encoding="utf-8") as f:
        f.write(content)
    return path


def test_load_default_config(monkeypatch, temp_dir):
    monkeypatch.chdir(temp_dir)
    monkeypatch.setenv("HOME", temp_dir)

    config = load_config()

    assert config == DEFAULT_CONFIG
    assert config is not DEFAULT_CONFIG


def test_load_config_file_merges_over_defaults(temp_dir):
    path = write_config(
        os.path.join(temp_dir, "ghascan.yml"),
        """
recurse: true
max_depth: 3
rules:
  REPOJACKABLE: false
github:
  token_env: GH_PAT
""",
    )

    config = load_config(path)

    assert config["recurse"] is True
    assert config["max_depth"] == 3
    assert config["rules"]["REPOJACKABLE"] is False
    assert config["rules"]["CMD_EXEC"] is True
    assert config["github"] == {"api_url": "https://api.github.com", "token_env": "GH_PAT"}
    assert DEFAULT_CONFIG["rules"]["REPOJACKABLE"] is True


def test_config_autodetected_in_working_directory(monkeypatch, temp_dir):
    monkeypatch.chdir(temp_dir)
    monkeypatch.setenv("HOME", temp_dir)
    write_config(os.path.join(temp_dir, ".ghascan.yml"), "workers: 4\n")

    assert load_config()["workers"] == 4


def test_empty_config_file_gives_defaults(temp_dir):
    path = write_config(os.path.join(temp_dir, "empty.yml"), "")

    assert load_config(path) == DEFAULT_CONFIG


def test_missing_config_file(temp_dir):
    with pytest.raises(ConfigurationError, match="not found"):
        load_config(os.path.join(temp_dir, "nope.yml"))


def test_invalid_yaml(temp_dir):
    path = write_config(os.path.join(temp_dir, "bad.yml"), "rules: [unclosed")

    with pytest.raises(ConfigurationError, match="Error parsing YAML"):
        load_config(path)


def test_non_mapping_config(temp_dir):
    path = write_config(os.path.join(temp_dir, "list.yml"), "- a\n- b\n")

    with pytest.raises(ConfigurationError, match="must be a mapping"):
        load_config(path)


@pytest.mark.parametrize(
    "config, message",
    [
        ({"colour": True}, "Unknown configuration option 'colour'"),
        ({"recurse": "yes"}, "'recurse' must be a boolean"),
        ({"max_depth": 0}, "'max_depth' must be a positive integer"),
        ({"workers": True}, "'workers' must be a positive integer"),
        ({"stuck_timeout": -1}, "'stuck_timeout' must be a positive number"),
        ({"rules": ["CMD_EXEC"]}, "'rules' must be a dictionary"),
        ({"rules": {"NOPE": True}}, "Unknown rule 'NOPE'"),
        ({"rules": {"CMD_EXEC": "off"}}, "Rule 'CMD_EXEC' must be a boolean"),
        ({"github": {"token": "x"}}, "Unknown configuration option 'github.token'"),
        ({"report": {"format": "sarif"}}, "Invalid report format 'sarif'"),
    ],
)
def test_validate_config_rejects(config, message):
    with pytest.raises(ConfigurationError) as excinfo:
        validate_config(config)

    assert message in str(excinfo.value)


def test_validate_config_accepts_defaults():
    validate_config(DEFAULT_CONFIG)
    validate_config({"request_timeout": 2.5, "report": {"format": "json"}})


def test_merge_configs_is_recursive():
    base = {"a": 1, "nested": {"x": 1, "y": 2}}

    merged = merge_configs(base, {"nested": {"y": 3}, "b": 2})

    assert merged == {"a": 1, "b": 2, "nested": {"x": 1, "y": 3}}
    assert base == {"a": 1, "nested": {"x": 1, "y": 2}}


def test_config_paths_prefer_working_directory(monkeypatch, temp_dir):
    monkeypatch.chdir(temp_dir)

    paths = get_config_paths()

    assert paths[0] == os.path.join(os.getcwd(), "ghascan.yml")
    assert paths[-1].endswith(os.path.join(".config", "ghascan", "config.yaml"))


def test_save_and_reload(temp_dir):
    path = os.path.join(temp_dir, "nested", "config.yml")
    config = disable_rules(DEFAULT_CONFIG, ["CMD_EXEC", "NOPE"])

    save_config(config, path)

    reloaded = load_config(path)
    assert reloaded["rules"]["CMD_EXEC"] is False
    assert "NOPE" not in reloaded["rules"]
    assert DEFAULT_CONFIG["rules"]["CMD_EXEC"] is True


def test_generate_default_config(temp_dir):
    path = os.path.join(temp_dir, "default.yml")

    text = generate_default_config(path)

    assert yaml.safe_load(text) == DEFAULT_CONFIG
    with open(path, encoding="utf-8") as f:
        assert f.read() == text
    assert list(yaml.safe_load(text)["rules"]) == RULE_IDS
