"""CLI entry point for chart-testing."""

from __future__ import annotations

from collections.abc import Callable
from importlib.metadata import PackageNotFoundError, version
from typing import Any

import click

from .config import Configuration, load_configuration
from .errors import ChartTestingError
from .git import ShellGit
from .linter import ShellLinter
from .pipeline import ChartTester
from .results import TestResults, print_results
from .selector import compute_changed_chart_directories
from .shell import configure_logging, fatal

_common_options = [
    click.option("--config", type=click.Path(), help="Config file (YAML, JSON or TOML)."),
    click.option("--remote", help="Git remote used to identify changed charts. [default: origin]"),
    click.option("--target-branch", help="Branch changed charts are compared to. [default: master]"),
    click.option("--since", help="Revision changes are computed from. [default: HEAD]"),
    click.option(
        "--chart-dirs", multiple=True,
        help="Directories containing charts (comma-separated or repeated). [default: charts]",
    ),
    click.option("--excluded-charts", multiple=True, help="Charts that should be skipped."),
    click.option(
        "--use-helmignore/--no-use-helmignore", default=None,
        help="Ignore changed files matched by the chart's .helmignore.",
    ),
    click.option("--print-config", is_flag=True, help="Print the effective configuration."),
    click.option("--debug/--no-debug", default=None, help="Print external commands."),
    click.option(
        "--github-groups/--no-github-groups", default=None,
        help="Wrap output sections in GitHub Actions groups.",
    ),
]

_selection_options = [
    click.option("--all", "all", is_flag=True, default=None,
                 help="Process all charts, not just changed ones."),
    click.option("--charts", multiple=True, help="Specific charts to process."),
    click.option("--build-id", help="Build ID used in generated namespaces."),
    click.option("--chart-repos", multiple=True, help="Chart repositories to add (name=url)."),
    click.option(
        "--helm-repo-extra-args", multiple=True,
        help="Extra arguments for 'helm repo add' per repo (name=args).",
    ),
    click.option(
        "--helm-dependency-extra-args", multiple=True,
        help="Extra arguments for 'helm dependency build'.",
    ),
    click.option("--helm-extra-args", help="Extra arguments for all helm commands."),
    click.option(
        "--exclude-deprecated/--no-exclude-deprecated", default=None,
        help="Skip charts marked deprecated.",
    ),
]

_lint_options = [
    click.option("--lint-conf", help="Config file for YAML linting."),
    click.option("--chart-yaml-schema", help="Schema for Chart.yaml validation."),
    click.option("--validate-maintainers/--no-validate-maintainers", default=None,
                 help="Validate maintainers as accounts on the git host."),
    click.option("--validate-chart-schema/--no-validate-chart-schema", default=None,
                 help="Validate Chart.yaml against the schema."),
    click.option("--validate-yaml/--no-validate-yaml", default=None,
                 help="Lint Chart.yaml and values files with yamllint."),
    click.option("--check-version-increment/--no-check-version-increment", default=None,
                 help="Require a chart version bump."),
    click.option("--additional-commands", multiple=True,
                 help="Extra commands to run per chart, e.g. 'helm unittest {{ .Path }}'."),
    click.option("--helm-lint-extra-args", help="Extra arguments for 'helm lint'."),
]

_install_options = [
    click.option("--upgrade/--no-upgrade", default=None,
                 help="Test upgrades from the previous chart revision."),
    click.option("--skip-missing-values/--no-skip-missing-values", default=None,
                 help="Skip upgrade tests for values files missing in the new revision."),
    click.option("--skip-clean-up/--no-skip-clean-up", default=None,
                 help="Keep releases and namespaces after testing."),
    click.option("--namespace", help="Fixed namespace to install into."),
    click.option("--release-label", help="Label identifying the release's resources."),
    click.option("--kubectl-timeout", help="Timeout for kubectl calls, e.g. 30s. [default: 30s]"),
    click.option("--print-logs/--no-print-logs", default=None,
                 help="Print container logs on cleanup."),
    click.option("--helm-extra-set-args", help="Extra '--set' arguments for install/upgrade."),
]


_VERBS = {
    "lint": "linting",
    "install": "installing",
    "lint-and-install": "linting and installing",
}


def _options(*groups: list[Callable]) -> Callable:
    def decorator(f: Callable) -> Callable:
        for group in reversed(groups):
            for option in reversed(group):
                f = option(f)
        return f

    return decorator


def _cli_values(options: dict[str, Any]) -> dict[str, Any]:
    """Drop unset options and join repeated ones into comma-separated strings."""
    values: dict[str, Any] = {}
    for name, value in options.items():
        if isinstance(value, tuple):
            value = ",".join(value) if value else None
        if value is not None:
            values[name] = value
    return values


def _load(command: str, options: dict[str, Any]) -> Configuration:
    config_file = options.pop("config", None)
    print_config = options.pop("print_config", False)
    cfg = load_configuration(config_file, command, _cli_values(options), print_config)
    configure_logging(cfg.debug)
    return cfg


def _ensure_linters(cfg: Configuration) -> None:
    needed = []
    if cfg.validate_yaml:
        needed.append("yamllint")
    if cfg.validate_chart_schema:
        needed.append("yamale")
    ShellLinter.ensure_executables(*needed)


def _run_tests(
    command: str, options: dict[str, Any], action: Callable[[ChartTester], TestResults]
) -> None:
    extra_set_args = options.pop("helm_extra_set_args", None) or ""
    verb = _VERBS[command]
    try:
        cfg = _load(command, options)
        if "lint" in command:
            _ensure_linters(cfg)
        tester = ChartTester.from_config(cfg, extra_set_args)
        results = action(tester)
    except ChartTestingError as err:
        fatal(f"failed {verb} charts: {err}")
        return

    print_results(results, cfg.github_groups)
    if not results.overall_success:
        fatal(f"failed {verb} charts")


@click.group()
@click.version_option(package_name="chart-testing")
def cli() -> None:
    """Lint and test Helm charts, only those that changed."""


@cli.command()
@_options(_common_options, _selection_options, _lint_options)
def lint(**options: Any) -> None:
    """Run 'helm lint', version checking, YAML and schema validation and maintainer checks."""
    _run_tests("lint", options, ChartTester.lint_charts)


@cli.command()
@_options(_common_options, _selection_options, _install_options)
def install(**options: Any) -> None:
    """Install and test charts, optionally testing upgrades from the previous revision."""
    _run_tests("install", options, ChartTester.install_charts)


@cli.command("lint-and-install")
@_options(_common_options, _selection_options, _lint_options, _install_options)
def lint_and_install(**options: Any) -> None:
    """Lint, install and test charts."""
    _run_tests("lint-and-install", options, ChartTester.lint_and_install_charts)


@cli.command("list-changed")
@_options(_common_options)
def list_changed(**options: Any) -> None:
    """List chart directories changed since the merge base with the target branch."""
    try:
        cfg = _load("list-changed", options)
        changed = compute_changed_chart_directories(cfg, ShellGit())
    except ChartTestingError as err:
        fatal(f"failed identifying changed charts: {err}")
        return

    for chart_dir in changed:
        click.echo(chart_dir)


@cli.command("version")
def version_command() -> None:
    """Print version information."""
    try:
        current = version("chart-testing")
    except PackageNotFoundError:
        current = "unknown"
    click.echo(f"Version: {current}")


def main() -> None:
    cli()
