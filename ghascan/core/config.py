"""
config.py - Configuration management for ghascan

This module handles loading, validating, and managing configuration for the ghascan tool.
"""

import copy
import os
from typing import Any, Dict, List, Optional, cast

import yaml

RULE_IDS = [
    "CMD_EXEC",
    "CODE_INJECT",
    "PWN_REQUEST",
    "REPOJACKABLE",
    "UNPINNED_ACTION",
    "UNSAFE_INPUT_ASSIGN",
    "WORKFLOW_RUN",
]

REPORT_FORMATS = ["text", "json"]

DEFAULT_CONFIG: Dict[str, Any] = {
    "recurse": False,
    "max_depth": 5,
    "size_limit_kb": 1_000_000,
    "stuck_timeout": 30,
    "request_timeout": 60,
    "max_archive_bytes": 1024 * 1024 * 1024,
    "workers": 1,
    "rules": {rule_id: True for rule_id in RULE_IDS},
    "github": {
        "api_url": "https://api.github.com",
        "token_env": "GITHUB_TOKEN",
    },
    "report": {
        "format": "text",
        "output": None,
    },
}

POSITIVE_INTEGERS = ["max_depth", "size_limit_kb", "max_archive_bytes", "workers"]
POSITIVE_NUMBERS = ["stuck_timeout", "request_timeout"]


class ConfigurationError(Exception):
    """Exception raised for configuration errors"""

    pass


def get_config_paths() -> List[str]:
    """
    Get list of possible config file locations in priority order

    Returns:
        List of config file paths to check
    """
    paths = []

    paths.append(os.path.join(os.getcwd(), "ghascan.yml"))
    paths.append(os.path.join(os.getcwd(), "ghascan.yaml"))
    paths.append(os.path.join(os.getcwd(), ".ghascan.yml"))
    paths.append(os.path.join(os.getcwd(), ".ghascan.yaml"))

    home_dir = os.path.expanduser("~")
    paths.append(os.path.join(home_dir, ".ghascan.yml"))
    paths.append(os.path.join(home_dir, ".ghascan.yaml"))
    paths.append(os.path.join(home_dir, ".config", "ghascan", "config.yml"))
    paths.append(os.path.join(home_dir, ".config", "ghascan", "config.yaml"))

    return paths


def merge_configs(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """
    Recursively merge two config dictionaries

    Args:
        base: Base configuration
        override: Configuration to override base

    Returns:
        Merged configuration dictionary
    """
    result = base.copy()

    for key, override_value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(override_value, dict):
            result[key] = merge_configs(result[key], override_value)
        else:
            result[key] = override_value

    return result


def _validate_numbers(config: Dict[str, Any]) -> None:
    """Validate numeric limits"""

    for key in POSITIVE_INTEGERS:
        if key in config:
            value = config[key]
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                raise ConfigurationError(f"'{key}' must be a positive integer")

    for key in POSITIVE_NUMBERS:
        if key in config:
            value = config[key]
            if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
                raise ConfigurationError(f"'{key}' must be a positive number")


def _validate_rules(config: Dict[str, Any]) -> None:
    """Validate the rule enable/disable mapping"""

    if "rules" in config:
        if not isinstance(config["rules"], dict):
            raise ConfigurationError("'rules' must be a dictionary")

        for rule_id, enabled in config["rules"].items():
            if rule_id not in RULE_IDS:
                raise ConfigurationError(f"Unknown rule '{rule_id}'")
            if not isinstance(enabled, bool):
                raise ConfigurationError(f"Rule '{rule_id}' must be a boolean (true/false)")


def _validate_sections(config: Dict[str, Any]) -> None:
    """Validate the github and report sections"""

    if "github" in config:
        if not isinstance(config["github"], dict):
            raise ConfigurationError("'github' must be a dictionary")
        for key in config["github"]:
            if key not in DEFAULT_CONFIG["github"]:
                raise ConfigurationError(f"Unknown configuration option 'github.{key}'")

    if "report" in config:
        if not isinstance(config["report"], dict):
            raise ConfigurationError("'report' must be a dictionary")
        report_format = config["report"].get("format", "text")
        if report_format not in REPORT_FORMATS:
            raise ConfigurationError(
                f"Invalid report format '{report_format}'. Must be one of: {', '.join(REPORT_FORMATS)}"
            )


def validate_config(config: Dict[str, Any]) -> None:
    """Validate configuration structure and values"""

    for key in config.keys():
        if key not in DEFAULT_CONFIG:
            raise ConfigurationError(f"Unknown configuration option '{key}'")

    if "recurse" in config and not isinstance(config["recurse"], bool):
        raise ConfigurationError("'recurse' must be a boolean (true/false)")

    _validate_numbers(config)
    _validate_rules(config)
    _validate_sections(config)


def _read_config_file(path: str) -> Optional[Dict[str, Any]]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            user_config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Error parsing YAML configuration: {e}")
    except OSError as e:
        raise ConfigurationError(f"Error loading configuration: {e}")

    if user_config is None:
        return None
    if not isinstance(user_config, dict):
        raise ConfigurationError(f"Configuration in {path} must be a mapping")
    return user_config


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load configuration from file or use defaults

    Args:
        config_path: Path to configuration file, or None to auto-detect

    Returns:
        Loaded configuration dictionary

    Raises:
        ConfigurationError: If configuration file is invalid
    """
    config = copy.deepcopy(DEFAULT_CONFIG)

    if config_path:
        if not os.path.exists(config_path):
            raise ConfigurationError(f"Configuration file not found: {config_path}")
        candidates = [config_path]
    else:
        candidates = [path for path in get_config_paths() if os.path.exists(path)]

    for path in candidates:
        user_config = _read_config_file(path)
        if user_config:
            validate_config(user_config)
            config = merge_configs(config, user_config)
            break

    return config


def save_config(config: Dict[str, Any], config_path: str) -> None:
    """
    Save configuration to file

    Args:
        config: Configuration dictionary to save
        config_path: Path to save configuration to

    Raises:
        ConfigurationError: If configuration cannot be saved
    """
    try:
        os.makedirs(os.path.dirname(os.path.abspath(config_path)), exist_ok=True)

        with open(config_path, "w", encoding="utf-8") as f:
            yaml.safe_dump(config, f, default_flow_style=False, sort_keys=False)

    except OSError as e:
        raise ConfigurationError(f"Error saving configuration: {e}")


def generate_default_config(output_path: Optional[str] = None) -> str:
    """
    Generate default configuration YAML

    Args:
        output_path: Path to save default configuration to, or None to return as string

    Returns:
        Default configuration YAML

    Raises:
        ConfigurationError: If configuration cannot be saved
    """
    default_config_yaml = cast(
        str,
        yaml.safe_dump(DEFAULT_CONFIG, default_flow_style=False, sort_keys=False),
    )

    if output_path:
        try:
            os.makedirs(os.path.dirname(os.path.abspath(output_path)), exist_ok=True)

            with open(output_path, "w", encoding="utf-8") as f:
                f.write(default_config_yaml)
        except OSError as e:
            raise ConfigurationError(f"Error saving default configuration: {e}")

    return default_config_yaml


def disable_rules(config: Dict[str, Any], rules: List[str]) -> Dict[str, Any]:
    """
    Disable specific rules in a configuration

    Args:
        config: Configuration dictionary
        rules: List of rule IDs to disable

    Returns:
        Updated configuration dictionary
    """
    updated_config = copy.deepcopy(config)
    rules_config = updated_config.setdefault("rules", {})

    for rule in rules:
        if rule in RULE_IDS:
            rules_config[rule] = False

    return updated_config
