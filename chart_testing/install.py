"""Install and upgrade testing against a live cluster.

Per chart, with upgrade testing enabled, three stages run in order:

1. Upgrade from previous revision: install the chart as checked out at the
   merge base, test it, upgrade it to the current revision and test again.
   Skipped when the version change crosses the SemVer compatibility band.
   A broken previous revision (install or test failure) skips the stage.
2. Upgrade to same version: install the current chart and upgrade it in
   place to itself.
3. Fresh install: install the current chart and test it.

Every install attempt runs inside install_scope(), which calls the
attempt's cleanup exactly once on every exit path before the next attempt
begins.
"""

from __future__ import annotations

import logging
import posixpath
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass

from .chart import Chart
from .checks import get_old_chart_version
from .config import Configuration
from .errors import ChartTestingError, NotAChartError
from .models import InstallConfig
from .ports import Tools
from .results import TestResult
from .shell import begin_block, delimiter, end_block
from .versions import NO_PREVIOUS_REVISION, breaking_change_allowed

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UpgradeContext:
    """The previous revision of the repository, checked out as a worktree.

    Attributes:
        worktree: Root of the worktree holding the merge-base revision.
    """

    worktree: str

    def previous_revision_path(self, path: str) -> str:
        return posixpath.join(self.worktree, path)


@contextmanager
def install_scope(install_config: InstallConfig) -> Iterator[InstallConfig]:
    """Yield ``install_config`` and run its cleanup exactly once afterwards."""
    try:
        yield install_config
    finally:
        install_config.cleanup()


class ChartInstaller:
    """Runs the install/upgrade stages for charts.

    Args:
        cfg: Run configuration (namespace, release label, build ID, upgrade
             and cleanup options).
        tools: Collaborators used to drive git, helm and kubectl.
    """

    def __init__(self, cfg: Configuration, tools: Tools) -> None:
        self.cfg = cfg
        self.tools = tools

    def generate_install_config(self, chart: Chart) -> InstallConfig:
        """Create identifiers and the cleanup action for one install attempt.

        With a fixed namespace, only the randomized release is created and
        cleaned up. Otherwise the namespace is generated too and deleted on
        cleanup.
        """
        if self.cfg.namespace:
            namespace = self.cfg.namespace
            release, _ = chart.create_install_params(self.cfg.build_id)
            selector = f"{self.cfg.release_label}={release}"
            owns_namespace = False
        else:
            release, namespace = chart.create_install_params(self.cfg.build_id)
            selector = ""
            owns_namespace = True

        return InstallConfig(
            namespace=namespace,
            release=release,
            release_selector=selector,
            owns_namespace=owns_namespace,
            cleanup=self._cleanup_action(namespace, release, selector, owns_namespace),
        )

    def _cleanup_action(
        self, namespace: str, release: str, selector: str, owns_namespace: bool
    ) -> Callable[[], None]:
        if self.cfg.skip_clean_up:
            return lambda: None

        def cleanup() -> None:
            self.print_events_pod_details_and_logs(namespace, selector)
            self.tools.helm.delete_release(namespace, release)
            if owns_namespace:
                self.tools.kubectl.delete_namespace(namespace)

        return cleanup

    def test_release(self, install_config: InstallConfig) -> None:
        """Wait for the release's workloads, then run its tests."""
        self.tools.kubectl.wait_for_deployments(
            install_config.namespace, install_config.release_selector
        )
        self.tools.helm.test(install_config.namespace, install_config.release)

    def do_install(self, chart: Chart) -> None:
        """Install and test ``chart`` once per values file."""
        print(f"Installing chart {str(chart)!r}...")
        for values_file in chart.values_files_or_default():
            if values_file:
                print(f"\nInstalling chart with values file {values_file!r}...\n")

            with install_scope(self.generate_install_config(chart)) as ic:
                if ic.owns_namespace:
                    self.tools.kubectl.create_namespace(ic.namespace)
                self.tools.helm.install_with_values(
                    chart.path, values_file, ic.namespace, ic.release
                )
                self.test_release(ic)

    def do_upgrade(self, old_chart: Chart, new_chart: Chart, old_chart_must_pass: bool) -> None:
        """Install ``old_chart``, upgrade it to ``new_chart`` and test, per values file.

        Unless ``old_chart_must_pass`` is set, a failing install or test of
        the old chart skips that values file instead of failing.
        """
        print(
            f"Testing upgrades of chart {str(new_chart)!r} "
            f"relative to previous revision {str(old_chart)!r}..."
        )
        for values_file in old_chart.values_files_or_default():
            if values_file:
                if self.cfg.skip_missing_values and not new_chart.has_ci_values_file(values_file):
                    print(
                        f"Upgrade testing for values file {values_file!r} skipped because a "
                        f"corresponding values file was not found in {new_chart.path}/ci"
                    )
                    continue
                print(f"\nInstalling chart {str(old_chart)!r} with values file {values_file!r}...\n")

            with install_scope(self.generate_install_config(old_chart)) as ic:
                if ic.owns_namespace:
                    self.tools.kubectl.create_namespace(ic.namespace)

                try:
                    self.tools.helm.install_with_values(
                        old_chart.path, values_file, ic.namespace, ic.release
                    )
                except ChartTestingError as err:
                    if old_chart_must_pass:
                        raise
                    print(
                        f"Upgrade testing for release {ic.release!r} skipped because of "
                        f"previous revision installation error: {err}"
                    )
                    continue

                try:
                    self.test_release(ic)
                except ChartTestingError as err:
                    if old_chart_must_pass:
                        raise
                    print(
                        f"Upgrade testing for release {ic.release!r} skipped because of "
                        f"previous revision testing error: {err}"
                    )
                    continue

                self.tools.helm.upgrade(new_chart.path, ic.namespace, ic.release)
                self.test_release(ic)

    def check_breaking_change_allowed(self, chart: Chart) -> tuple[bool, str | None]:
        old_version = get_old_chart_version(
            self.tools.git, chart.path, self.cfg.remote, self.cfg.target_branch
        )
        if not old_version:
            return True, NO_PREVIOUS_REVISION
        return breaking_change_allowed(old_version, chart.version)

    def upgrade_chart(self, chart: Chart, context: UpgradeContext) -> TestResult:
        """Test upgrading from the previous revision of ``chart``."""
        try:
            allowed, reason = self.check_breaking_change_allowed(chart)
        except ChartTestingError as err:
            print(f"Error comparing chart versions for {str(chart)!r}")
            return TestResult(chart=chart, error=err)

        if allowed:
            print(f"Skipping upgrade test of {str(chart)!r} because: {reason}")
            return TestResult(chart=chart)

        try:
            old_chart = Chart.from_dir(context.previous_revision_path(chart.path))
        except NotAChartError as err:
            print(f"Skipping upgrade test of {str(chart)!r} because: {err}")
            return TestResult(chart=chart)

        try:
            self.do_upgrade(old_chart, chart, old_chart_must_pass=False)
        except ChartTestingError as err:
            return TestResult(chart=chart, error=err)
        return TestResult(chart=chart)

    def install_chart(self, chart: Chart, context: UpgradeContext | None = None) -> TestResult:
        """Run the install stages for ``chart``.

        The upgrade stages run only when ``context`` is given; the first
        failing stage determines the result.
        """
        if context is not None:
            result = self.upgrade_chart(chart, context)
            if not result.success:
                return result
            try:
                self.do_upgrade(chart, chart, old_chart_must_pass=True)
            except ChartTestingError as err:
                return TestResult(chart=chart, error=err)

        try:
            self.do_install(chart)
        except ChartTestingError as err:
            return TestResult(chart=chart, error=err)
        return TestResult(chart=chart)

    def print_events_pod_details_and_logs(self, namespace: str, selector: str) -> None:
        """Print namespace events, pod descriptions and logs.

        Diagnostics never fail the run; errors are printed and logged.
        """
        delimiter("=")
        kubectl = self.tools.kubectl
        try:
            self._print_details(namespace, "Events of namespace", ".", kubectl.get_events, [namespace])
            for pod in kubectl.get_pods(namespace, selector):
                pod = pod.strip("'")
                self._print_details(
                    pod, "Description of pod", "~",
                    lambda _, pod=pod: kubectl.describe_pod(namespace, pod), [pod],
                )
                if not self.cfg.print_logs:
                    continue
                init_containers = kubectl.get_init_containers(namespace, pod)
                self._print_details(
                    pod, "Logs of init container", "-",
                    lambda c, pod=pod: kubectl.logs(namespace, pod, c), init_containers,
                )
                containers = kubectl.get_containers(namespace, pod)
                self._print_details(
                    pod, "Logs of container", "-",
                    lambda c, pod=pod: kubectl.logs(namespace, pod, c), containers,
                )
        except ChartTestingError as err:
            print(f"Error printing logs: {err}")
            logger.warning("Failed collecting diagnostics for namespace %r: %s", namespace, err)
        delimiter("=")

    def _print_details(
        self,
        resource: str,
        text: str,
        char: str,
        print_func: Callable[[str], None],
        items: list[str],
    ) -> None:
        groups = self.cfg.github_groups
        for item in items:
            item = item.strip("'")
            begin_block(f"{text} {resource}" if groups else f"==> {text} {resource}", char, groups)
            try:
                print_func(item)
            except ChartTestingError as err:
                print(f"Error printing details: {err}")
                logger.warning("Failed printing %s %s: %s", text.lower(), resource, err)
                return
            if groups:
                end_block(char, groups)
            else:
                begin_block(f"<== {text} {resource}", char, groups)
