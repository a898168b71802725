"""Chart testing pipeline: select → add repos → build deps → lint/install → aggregate.

This module orchestrates a chart testing run:
1. Select the charts to process (all, explicit, or changed since the merge base)
2. Drop deprecated charts if requested
3. Add the configured chart repositories
4. For upgrade testing, check out the merge base as a worktree and build
   the dependencies of every chart's previous revision
5. Per chart, build dependencies and run the action (lint, install, or both)
6. Aggregate the per-chart results

A failing chart never stops the run; structural errors (selection, repo
setup, worktree creation, dependency builds) abort it.
"""

from __future__ import annotations

import logging
import shlex
import shutil
import tempfile
from collections.abc import Callable, Iterator
from contextlib import contextmanager

from .account import HttpAccountValidator
from .chart import Chart
from .checks import Check, build_validation_chain, lint_chart
from .commands import TemplateCommandExecutor
from .config import Configuration
from .errors import ChartTestingError, ProcessError, RepositoryError
from .git import ShellGit
from .helm import MINIMUM_MAJOR_VERSION, ShellHelm
from .install import ChartInstaller, UpgradeContext
from .kubectl import ShellKubectl
from .linter import ShellLinter
from .ports import Git, Tools
from .results import TestResult, TestResults, aggregate
from .selector import compute_merge_base, select_charts
from .shell import begin_block, end_block, step
from .versions import require_major

logger = logging.getLogger(__name__)

WORKTREE_PREFIX = "ct_previous_revision"

Action = Callable[[Chart, "UpgradeContext | None"], TestResult]


@contextmanager
def previous_revision(git: Git, merge_base: str) -> Iterator[UpgradeContext]:
    """Check out ``merge_base`` as a temporary worktree for the whole run.

    The worktree is removed on every exit path.

    Raises:
        RepositoryError: If the directory or the worktree cannot be created.
    """
    try:
        path = tempfile.mkdtemp(prefix=WORKTREE_PREFIX, dir=".")
    except OSError as err:
        raise RepositoryError(f"could not create previous revision directory: {err}") from err

    try:
        try:
            git.add_worktree(path, merge_base)
        except ProcessError as err:
            raise RepositoryError(
                f"could not create worktree for previous revision: {err}"
            ) from err
        yield UpgradeContext(worktree=path)
    finally:
        try:
            git.remove_worktree(path)
        except ProcessError as err:
            logger.warning("Failed removing worktree %r: %s", path, err)
        shutil.rmtree(path, ignore_errors=True)


class ChartTester:
    """Runs lint and install testing for the selected charts.

    Args:
        cfg: Validated run configuration.
        tools: Collaborators (git, helm, kubectl, linters, validators).
    """

    def __init__(self, cfg: Configuration, tools: Tools) -> None:
        self.cfg = cfg
        self.tools = tools
        self.installer = ChartInstaller(cfg, tools)
        self._chain: list[Check] | None = None

    @classmethod
    def from_config(cls, cfg: Configuration, extra_set_args: str = "") -> ChartTester:
        """Create a tester backed by the real CLI tools.

        Raises:
            ConfigurationError: If helm is older than the minimum supported version.
        """
        tools = Tools(
            git=ShellGit(),
            helm=ShellHelm(
                extra_args=shlex.split(cfg.helm_extra_args),
                lint_extra_args=shlex.split(cfg.helm_lint_extra_args),
                extra_set_args=shlex.split(extra_set_args),
            ),
            kubectl=ShellKubectl(timeout=cfg.kubectl_timeout),
            linter=ShellLinter(),
            account_validator=HttpAccountValidator(),
            command_executor=TemplateCommandExecutor(),
        )
        require_major(tools.helm.version(), MINIMUM_MAJOR_VERSION, "Helm")
        return cls(cfg, tools)

    @property
    def validation_chain(self) -> list[Check]:
        if self._chain is None:
            self._chain = build_validation_chain(self.cfg, self.tools)
        return self._chain

    def select(self) -> list[Chart]:
        """Select the charts to process, dropping deprecated ones if configured."""
        try:
            charts = select_charts(self.cfg, self.tools.git)
        except ChartTestingError as err:
            raise ChartTestingError(f"failed identifying charts to process: {err}") from err

        selected: list[Chart] = []
        for chart in charts:
            if self.cfg.exclude_deprecated and chart.yaml.deprecated:
                print(
                    f"Chart {str(chart)!r} is deprecated and will be ignored "
                    "because '--exclude-deprecated' is set"
                )
                continue
            selected.append(chart)
        return selected

    def add_repositories(self) -> None:
        extra_args = self.cfg.repo_extra_args()
        for name, url in self.cfg.repo_urls().items():
            try:
                self.tools.helm.add_repo(name, url, extra_args.get(name, []))
            except ProcessError as err:
                raise ChartTestingError(f"failed adding repo: {name}={url}: {err}") from err

    def build_dependencies(self, chart_path: str) -> None:
        self.tools.helm.build_dependencies(chart_path, self.cfg.helm_dependency_extra_args)

    def process_charts(self, action: Action) -> TestResults:
        """Run ``action`` for every selected chart and aggregate the results.

        Raises:
            ChartTestingError: On structural errors that abort the run.
        """
        charts = self.select()
        if not charts:
            return TestResults()

        print()
        begin_block("Charts to be processed:", "-", self.cfg.github_groups)
        for chart in charts:
            print(f" {chart}")
        end_block("-", self.cfg.github_groups)
        print()

        self.add_repositories()

        if not self.cfg.upgrade:
            return aggregate(self._run_action(charts, action, None))

        try:
            merge_base = compute_merge_base(self.cfg, self.tools.git)
        except ChartTestingError as err:
            raise RepositoryError(f"failed identifying merge base: {err}") from err

        with previous_revision(self.tools.git, merge_base) as context:
            for chart in charts:
                try:
                    self.build_dependencies(context.previous_revision_path(chart.path))
                except ProcessError as err:
                    print(
                        f"failed building dependencies for previous revision "
                        f"of chart {str(chart)!r}: {err}"
                    )
            return aggregate(self._run_action(charts, action, context))

    def _run_action(
        self, charts: list[Chart], action: Action, context: UpgradeContext | None
    ) -> list[TestResult]:
        results: list[TestResult] = []
        for chart in charts:
            try:
                self.build_dependencies(chart.path)
            except ProcessError as err:
                raise ChartTestingError(
                    f"failed building dependencies for chart {str(chart)!r}: {err}"
                ) from err
            results.append(action(chart, context))
        return results

    def lint_chart(self, chart: Chart, context: UpgradeContext | None = None) -> TestResult:
        return lint_chart(chart, self.validation_chain)

    def install_chart(self, chart: Chart, context: UpgradeContext | None = None) -> TestResult:
        return self.installer.install_chart(chart, context)

    def lint_and_install_chart(
        self, chart: Chart, context: UpgradeContext | None = None
    ) -> TestResult:
        result = self.lint_chart(chart, context)
        if not result.success:
            return result
        return self.install_chart(chart, context)

    def lint_charts(self) -> TestResults:
        step("Linting charts")
        return self.process_charts(self.lint_chart)

    def install_charts(self) -> TestResults:
        step("Installing charts")
        return self.process_charts(self.install_chart)

    def lint_and_install_charts(self) -> TestResults:
        step("Linting and installing charts")
        return self.process_charts(self.lint_and_install_chart)

