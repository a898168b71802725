"""The per-chart validation chain.

The chain is an ordered list of checks assembled once from the
configuration. Each check is a tagged variant: a CheckKind plus the
callable (with its bound settings) that processes a chart. Disabled checks
are simply not part of the chain; the first failing check stops it.
"""

from __future__ import annotations

import posixpath
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from functools import partial

from .chart import CHART_DESCRIPTOR, Chart, parse_chart_yaml
from .config import Configuration
from .errors import ChartTestingError, ProcessError, ValidationError
from .ports import AccountValidator, CommandExecutor, Git, Helm, Linter, Tools
from .results import TestResult
from .versions import compare_versions


class CheckKind(Enum):
    VERSION_CHECK = "version-check"
    SCHEMA_CHECK = "schema-check"
    YAML_CHECK = "yaml-check"
    MAINTAINER_CHECK = "maintainer-check"
    CUSTOM_CHECKS = "custom-checks"
    VALUE_FILE_LINT = "value-file-lint"


@dataclass(frozen=True)
class Check:
    kind: CheckKind
    run: Callable[[Chart], None]

    def process(self, chart: Chart) -> None:
        self.run(chart)


def get_old_chart_version(git: Git, chart_path: str, remote: str, target_branch: str) -> str:
    """Return the chart version on <remote>/<target-branch>, or "" for a new chart.

    Raises:
        ValidationError: If the old descriptor cannot be read or parsed.
    """
    descriptor = posixpath.join(chart_path, CHART_DESCRIPTOR)
    if not git.file_exists_on_branch(descriptor, remote, target_branch):
        print(f"Unable to find chart on {target_branch}. New chart detected.")
        return ""
    try:
        contents = git.show(descriptor, remote, target_branch)
    except ProcessError as err:
        raise ValidationError(f"failed reading old Chart.yaml: {err}") from err
    try:
        return parse_chart_yaml(contents, descriptor).version
    except ChartTestingError as err:
        raise ValidationError(f"failed reading old chart version: {err}") from err


def check_version_increment(git: Git, remote: str, target_branch: str, chart: Chart) -> None:
    """Require the chart version to be greater than on the target branch."""
    print(f"Checking chart {str(chart)!r} for a version bump...")
    old_version = get_old_chart_version(git, chart.path, remote, target_branch)
    if not old_version:
        return

    print(f"Old chart version: {old_version}")
    print(f"New chart version: {chart.version}")
    if compare_versions(old_version, chart.version) >= 0:
        raise ValidationError("chart version not ok. Needs a version bump!")
    print("Chart version ok.")


def validate_schema(linter: Linter, schema_file: str, chart: Chart) -> None:
    linter.yamale(chart.descriptor_path, schema_file)


def validate_yaml(linter: Linter, lint_conf: str, chart: Chart) -> None:
    for yaml_file in [chart.descriptor_path, chart.values_path, *chart.ci_values_paths]:
        linter.yamllint(yaml_file, lint_conf)


def validate_maintainers(
    git: Git, account_validator: AccountValidator, remote: str, chart: Chart
) -> None:
    """Check maintainers against the deprecation flag and the hosting domain.

    Deprecated charts must not list maintainers; all others need at least one,
    and each must be an existing account on the host of ``remote``.
    """
    print("Validating maintainers...")
    maintainers = chart.yaml.maintainers
    if chart.yaml.deprecated:
        if maintainers:
            raise ValidationError("deprecated chart must not have maintainers")
        return
    if not maintainers:
        raise ValidationError("chart doesn't have maintainers")

    repo_url = git.get_url_for_remote(remote)
    for maintainer in maintainers:
        account_validator.validate(repo_url, maintainer.name)


def run_additional_commands(
    executor: CommandExecutor, commands: list[str], chart: Chart
) -> None:
    for command in commands:
        executor.run_command(command, chart)


def lint_with_values_files(helm: Helm, chart: Chart) -> None:
    """Lint once per CI values file, or once with chart defaults."""
    for values_file in chart.values_files_or_default():
        if values_file:
            print(f"\nLinting chart with values file {values_file!r}...\n")
        helm.lint_with_values(chart.path, values_file)


def build_validation_chain(cfg: Configuration, tools: Tools) -> list[Check]:
    """Assemble the enabled checks in their fixed order."""
    chain: list[Check] = []
    if cfg.check_version_increment:
        chain.append(Check(
            CheckKind.VERSION_CHECK,
            partial(check_version_increment, tools.git, cfg.remote, cfg.target_branch),
        ))
    if cfg.validate_chart_schema:
        chain.append(Check(
            CheckKind.SCHEMA_CHECK,
            partial(validate_schema, tools.linter, cfg.chart_yaml_schema),
        ))
    if cfg.validate_yaml:
        chain.append(Check(
            CheckKind.YAML_CHECK,
            partial(validate_yaml, tools.linter, cfg.lint_conf),
        ))
    if cfg.validate_maintainers:
        chain.append(Check(
            CheckKind.MAINTAINER_CHECK,
            partial(validate_maintainers, tools.git, tools.account_validator, cfg.remote),
        ))
    if cfg.additional_commands:
        chain.append(Check(
            CheckKind.CUSTOM_CHECKS,
            partial(run_additional_commands, tools.command_executor, list(cfg.additional_commands)),
        ))
    chain.append(Check(CheckKind.VALUE_FILE_LINT, partial(lint_with_values_files, tools.helm)))
    return chain


def lint_chart(chart: Chart, chain: list[Check]) -> TestResult:
    """Run ``chain`` against ``chart``, stopping at the first failure."""
    print(f"Linting chart {str(chart)!r}")
    for check in chain:
        try:
            check.process(chart)
        except ChartTestingError as err:
            return TestResult(chart=chart, error=err)
    return TestResult(chart=chart)
