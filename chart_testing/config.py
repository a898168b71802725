"""Configuration loading and validation.

Options come from four layers, highest priority first:
1. Options passed explicitly on the command line
2. CT_* environment variables (e.g. CT_TARGET_BRANCH=main)
3. A config file (YAML, JSON or TOML), given with --config or found as
   ct.{yaml,yml,json,toml} in the config search locations
4. Defaults declared on the Configuration model

Option names use dashes in files ("target-branch") and underscores in
Python; both spellings are accepted.
"""

from __future__ import annotations

import json
import os
import re
import sys
from pathlib import Path
from typing import Any

import tomlkit
import yaml
from pydantic import BaseModel, Field, create_model, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigurationError
from .shell import begin_block, end_block

CONFIG_DIR_ENV = "CT_CONFIG_DIR"
CONFIG_NAME = "ct"
CONFIG_SUFFIXES = (".yaml", ".yml", ".json", ".toml")
CHART_SCHEMA_FILE = "chart_schema.yaml"
LINT_CONF_FILE = "lintconf.yaml"

CONFIG_SEARCH_LOCATIONS = [
    ".",
    ".ct",
    str(Path.home() / ".ct"),
    "/usr/local/etc/ct",
    "/etc/ct",
]

# Option names whose Python field name differs
_OPTION_ALIASES = {"all": "process_all_charts"}

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|s|m|h)")
_DURATION_UNITS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}


def parse_duration(value: Any) -> float:
    """Parse a duration into seconds.

    Accepts plain numbers (seconds) and Go-style strings such as "30s",
    "2m" or "1h30m".

    Raises:
        ValueError: If the value is not a duration.
    """
    if isinstance(value, bool):
        raise ValueError(f"invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip()
    try:
        return float(text)
    except ValueError:
        pass
    parts = _DURATION_PART.findall(text)
    if not parts or "".join(n + u for n, u in parts) != text:
        raise ValueError(f"invalid duration: {value!r}")
    return sum(float(n) * _DURATION_UNITS[u] for n, u in parts)


class Configuration(BaseModel):
    """Typed options for a chart testing run.

    Each boolean check option independently enables a pipeline stage; the
    set is consumed once when the pipeline is assembled.
    """

    remote: str = "origin"
    target_branch: str = "master"
    since: str = "HEAD"
    build_id: str = ""
    lint_conf: str = ""
    chart_yaml_schema: str = ""
    validate_maintainers: bool = True
    validate_chart_schema: bool = True
    validate_yaml: bool = True
    check_version_increment: bool = True
    additional_commands: list[str] = Field(default_factory=list)
    process_all_charts: bool = False
    charts: list[str] = Field(default_factory=list)
    chart_repos: list[str] = Field(default_factory=list)
    chart_dirs: list[str] = Field(default_factory=lambda: ["charts"])
    excluded_charts: list[str] = Field(default_factory=list)
    helm_extra_args: str = ""
    helm_lint_extra_args: str = ""
    helm_repo_extra_args: list[str] = Field(default_factory=list)
    helm_dependency_extra_args: list[str] = Field(default_factory=list)
    debug: bool = False
    upgrade: bool = False
    skip_missing_values: bool = False
    skip_clean_up: bool = False
    namespace: str = ""
    release_label: str = "app.kubernetes.io/instance"
    exclude_deprecated: bool = False
    kubectl_timeout: float = 30.0
    print_logs: bool = True
    github_groups: bool = False
    use_helmignore: bool = False

    @field_validator(
        "additional_commands",
        "charts",
        "chart_repos",
        "chart_dirs",
        "excluded_charts",
        "helm_repo_extra_args",
        "helm_dependency_extra_args",
        mode="before",
    )
    @classmethod
    def _split_lists(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value

    @field_validator("kubectl_timeout", mode="before")
    @classmethod
    def _parse_timeout(cls, value: Any) -> float:
        return parse_duration(value)

    @field_validator("chart_repos")
    @classmethod
    def _check_repos(cls, value: list[str]) -> list[str]:
        for repo in value:
            if "=" not in repo:
                raise ValueError(f"chart repo {repo!r} must be formatted as 'name=url'")
        return value

    def repo_urls(self) -> dict[str, str]:
        """Configured chart repositories as name → URL."""
        return dict(repo.split("=", 1) for repo in self.chart_repos)

    def repo_extra_args(self) -> dict[str, list[str]]:
        """Per-repo extra arguments for 'helm repo add' as name → args."""
        args: dict[str, list[str]] = {}
        for entry in self.helm_repo_extra_args:
            name, _, extra = entry.partition("=")
            args[name] = extra.split()
        return args


def option_name(field_name: str) -> str:
    """Map a Configuration field to its external option name (dashes)."""
    for option, field in _OPTION_ALIASES.items():
        if field == field_name:
            return option
    return field_name.replace("_", "-")


def normalize_keys(data: dict[str, Any]) -> dict[str, Any]:
    """Convert option names ("target-branch", "all") to field names."""
    normalized: dict[str, Any] = {}
    for key, value in data.items():
        name = str(key).replace("-", "_")
        normalized[_OPTION_ALIASES.get(name, name)] = value
    return normalized


class _EnvironmentSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="CT_", extra="ignore", case_sensitive=False)


def environment_overrides() -> dict[str, Any]:
    """Read CT_* environment variables for every configuration option.

    Values are returned as raw strings; Configuration validation coerces
    them (booleans, durations, comma-separated lists).
    """
    fields = {
        option_name(name).replace("-", "_"): (str | None, None)
        for name in Configuration.model_fields
    }
    env_model = create_model("EnvironmentOverrides", __base__=_EnvironmentSettings, **fields)
    return normalize_keys(env_model().model_dump(exclude_none=True))


def search_locations() -> list[str]:
    """Directories searched for config, schema and lint config files."""
    config_dir = os.environ.get(CONFIG_DIR_ENV)
    if config_dir:
        return [config_dir]
    return list(CONFIG_SEARCH_LOCATIONS)


def find_config_file(file_name: str) -> str:
    """Locate ``file_name`` in the config search locations.

    If CT_CONFIG_DIR is set, the file is assumed to live there.

    Raises:
        ConfigurationError: If the file is not found in any location.
    """
    config_dir = os.environ.get(CONFIG_DIR_ENV)
    if config_dir:
        return str(Path(config_dir) / file_name)
    for location in CONFIG_SEARCH_LOCATIONS:
        path = Path(location) / file_name
        if path.is_file():
            return str(path)
    raise ConfigurationError(f"config file not found: {file_name}")


def _find_default_config_file() -> Path | None:
    for location in search_locations():
        for suffix in CONFIG_SUFFIXES:
            path = Path(location) / f"{CONFIG_NAME}{suffix}"
            if path.is_file():
                return path
    return None


def read_config_file(path: str | Path) -> dict[str, Any]:
    """Parse a YAML, JSON or TOML config file into a dict of field values.

    Raises:
        ConfigurationError: If the file cannot be read or parsed.
    """
    path = Path(path)
    try:
        text = path.read_text()
        if path.suffix == ".json":
            data = json.loads(text)
        elif path.suffix == ".toml":
            data = tomlkit.parse(text).unwrap()
        else:
            data = yaml.safe_load(text)
    except (OSError, ValueError, yaml.YAMLError) as err:
        raise ConfigurationError(f"failed loading config file {str(path)!r}: {err}") from err
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"config file {str(path)!r} must contain a mapping")
    return normalize_keys(data)


def load_configuration(
    config_file: str | None,
    command: str,
    cli_values: dict[str, Any] | None = None,
    print_config: bool = False,
) -> Configuration:
    """Merge all configuration layers and validate the result for ``command``.

    Args:
        config_file: Explicit config file, or None to search default locations.
        command: CLI command name ("lint", "install", "lint-and-install",
              "list-changed"); decides which checks are relevant.
        cli_values: Options given explicitly on the command line. None values
              are ignored.
        print_config: Print the effective configuration to stderr.

    Raises:
        ConfigurationError: On unreadable files, invalid values or
              contradictory options.
    """
    values: dict[str, Any] = {}
    if config_file:
        values.update(read_config_file(config_file))
        used = config_file
    else:
        default_file = _find_default_config_file()
        used = str(default_file) if default_file else None
        if default_file:
            values.update(read_config_file(default_file))
    if used and print_config:
        print(f"Using config file: {used}", file=sys.stderr)

    values.update(environment_overrides())
    values.update(normalize_keys({k: v for k, v in (cli_values or {}).items() if v is not None}))

    try:
        cfg = Configuration.model_validate(values)
    except PydanticValidationError as err:
        raise ConfigurationError(f"failed unmarshaling configuration: {err}") from err

    is_lint = "lint" in command
    is_install = "install" in command

    if cfg.process_all_charts and cfg.charts:
        raise ConfigurationError("specifying both, '--all' and '--charts', is not allowed")
    if cfg.namespace and not cfg.release_label:
        raise ConfigurationError(
            "specifying '--namespace' without '--release-label' is not allowed"
        )

    # Upgrade testing checks out and builds previous revisions; only install needs it
    updates: dict[str, Any] = {"upgrade": is_install and cfg.upgrade}
    if updates["upgrade"] and (not cfg.target_branch or not cfg.remote):
        raise ConfigurationError(
            "specifying '--upgrade=true' without '--target-branch' or '--remote', is not allowed"
        )

    if not cfg.chart_yaml_schema:
        updates["chart_yaml_schema"] = _locate_support_file(
            CHART_SCHEMA_FILE, required=is_lint and cfg.validate_chart_schema
        )
    if not cfg.lint_conf:
        updates["lint_conf"] = _locate_support_file(
            LINT_CONF_FILE, required=is_lint and cfg.validate_yaml
        )

    if cfg.charts or cfg.process_all_charts:
        if cfg.check_version_increment:
            print("Version increment checking disabled.", file=sys.stderr)
        updates["check_version_increment"] = False

    cfg = cfg.model_copy(update=updates)
    if print_config:
        print_configuration(cfg)
    return cfg


def _locate_support_file(file_name: str, required: bool) -> str:
    try:
        return find_config_file(file_name)
    except ConfigurationError:
        if required:
            raise ConfigurationError(
                f"{file_name!r} neither specified nor found in default locations"
            ) from None
        return ""


def print_configuration(cfg: Configuration) -> None:
    """Print every effective option to stderr."""
    begin_block("Configuration", "-", cfg.github_groups, sys.stderr)
    for name, value in cfg.model_dump().items():
        print(f"{option_name(name)}: {value}", file=sys.stderr)
    end_block("-", cfg.github_groups, sys.stderr)
