"""Tests for chart_testing.install."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from unittest.mock import MagicMock, call, patch

import pytest

from chart_testing.chart import Chart
from chart_testing.config import Configuration
from chart_testing.errors import ProcessError, ValidationError
from chart_testing.install import ChartInstaller, UpgradeContext, install_scope
from chart_testing.models import InstallConfig
from chart_testing.ports import Tools


def _install_config(cleanup: MagicMock) -> InstallConfig:
    return InstallConfig(namespace="ns", release="rel", cleanup=cleanup)


def _old_descriptor(tools: Tools, version: str) -> None:
    tools.git.file_exists_on_branch.return_value = True
    tools.git.show.return_value = f"name: foo\nversion: {version}\n"


@pytest.fixture
def installer(tools: Tools) -> ChartInstaller:
    return ChartInstaller(Configuration(), tools)


@pytest.fixture
def cleanups(installer: ChartInstaller) -> list[MagicMock]:
    """Replace generated cleanup actions with mocks, one per install attempt."""
    created: list[MagicMock] = []
    original = installer.generate_install_config

    def generate(chart: Chart) -> InstallConfig:
        cleanup = MagicMock(name=f"cleanup-{len(created)}")
        created.append(cleanup)
        return original(chart).model_copy(update={"cleanup": cleanup})

    installer.generate_install_config = generate  # type: ignore[method-assign]
    return created


class TestInstallScope:
    """Tests for install_scope()."""

    def test_cleanup_on_success(self) -> None:
        cleanup = MagicMock()

        with install_scope(_install_config(cleanup)) as ic:
            assert ic.release == "rel"
            cleanup.assert_not_called()

        cleanup.assert_called_once_with()

    def test_cleanup_on_failure(self) -> None:
        cleanup = MagicMock()

        with pytest.raises(ValidationError):
            with install_scope(_install_config(cleanup)):
                raise ValidationError("boom")

        cleanup.assert_called_once_with()


class TestGenerateInstallConfig:
    """Tests for ChartInstaller.generate_install_config()."""

    @patch("chart_testing.chart.random_string", return_value="0123456789")
    def test_generated_namespace(
        self, _mock: MagicMock, tools: Tools, make_chart: Callable[..., Chart]
    ) -> None:
        installer = ChartInstaller(Configuration(build_id="42"), tools)

        ic = installer.generate_install_config(make_chart("charts/foo"))

        assert ic.release == "foo-0123456789"
        assert ic.namespace == "foo-42-0123456789"
        assert ic.release_selector == ""
        assert ic.owns_namespace

    @patch("chart_testing.chart.random_string", return_value="0123456789")
    def test_fixed_namespace(
        self, _mock: MagicMock, tools: Tools, make_chart: Callable[..., Chart]
    ) -> None:
        installer = ChartInstaller(Configuration(namespace="ci"), tools)

        ic = installer.generate_install_config(make_chart("charts/foo"))

        assert ic.namespace == "ci"
        assert ic.release == "foo-0123456789"
        assert ic.release_selector == "app.kubernetes.io/instance=foo-0123456789"
        assert not ic.owns_namespace

    def test_releases_are_distinct_in_fixed_namespace(
        self, tools: Tools, make_chart: Callable[..., Chart]
    ) -> None:
        installer = ChartInstaller(Configuration(namespace="ci"), tools)
        chart = make_chart("charts/foo")

        first = installer.generate_install_config(chart)
        second = installer.generate_install_config(chart)

        assert first.namespace == second.namespace == "ci"
        assert first.release != second.release

    def test_cleanup_of_generated_namespace(
        self, tools: Tools, make_chart: Callable[..., Chart]
    ) -> None:
        installer = ChartInstaller(Configuration(print_logs=False), tools)
        tools.kubectl.get_pods.return_value = []

        ic = installer.generate_install_config(make_chart("charts/foo"))
        ic.cleanup()

        tools.kubectl.get_events.assert_called_once_with(ic.namespace)
        tools.helm.delete_release.assert_called_once_with(ic.namespace, ic.release)
        tools.kubectl.delete_namespace.assert_called_once_with(ic.namespace)

    def test_cleanup_of_fixed_namespace_keeps_namespace(
        self, tools: Tools, make_chart: Callable[..., Chart]
    ) -> None:
        installer = ChartInstaller(Configuration(namespace="ci"), tools)
        tools.kubectl.get_pods.return_value = []

        ic = installer.generate_install_config(make_chart("charts/foo"))
        ic.cleanup()

        tools.kubectl.get_pods.assert_called_once_with("ci", ic.release_selector)
        tools.helm.delete_release.assert_called_once_with("ci", ic.release)
        tools.kubectl.delete_namespace.assert_not_called()

    def test_skip_clean_up(self, tools: Tools, make_chart: Callable[..., Chart]) -> None:
        installer = ChartInstaller(Configuration(skip_clean_up=True), tools)

        installer.generate_install_config(make_chart("charts/foo")).cleanup()

        tools.helm.delete_release.assert_not_called()
        tools.kubectl.delete_namespace.assert_not_called()
        tools.kubectl.get_events.assert_not_called()


class TestDoInstall:
    """Tests for ChartInstaller.do_install()."""

    def test_install_sequence(
        self,
        installer: ChartInstaller,
        cleanups: list[MagicMock],
        tools: Tools,
        make_chart: Callable[..., Chart],
    ) -> None:
        manager = MagicMock()
        manager.attach_mock(tools.kubectl, "kubectl")
        manager.attach_mock(tools.helm, "helm")
        chart = make_chart("charts/foo")

        installer.do_install(chart)

        names = [c[0] for c in manager.mock_calls]
        assert names == [
            "kubectl.create_namespace",
            "helm.install_with_values",
            "kubectl.wait_for_deployments",
            "helm.test",
        ]
        assert len(cleanups) == 1
        cleanups[0].assert_called_once_with()

    def test_once_per_values_file(
        self,
        installer: ChartInstaller,
        cleanups: list[MagicMock],
        tools: Tools,
        make_chart: Callable[..., Chart],
    ) -> None:
        chart = make_chart("charts/foo", ci_values=("a-values.yaml", "b-values.yaml"))

        installer.do_install(chart)

        values = [c.args[1] for c in tools.helm.install_with_values.call_args_list]
        assert values == ["charts/foo/ci/a-values.yaml", "charts/foo/ci/b-values.yaml"]
        assert [c.call_count for c in cleanups] == [1, 1]

    def test_fixed_namespace_is_not_created(
        self, tools: Tools, make_chart: Callable[..., Chart]
    ) -> None:
        installer = ChartInstaller(Configuration(namespace="ci"), tools)

        installer.do_install(make_chart("charts/foo"))

        tools.kubectl.create_namespace.assert_not_called()
        assert tools.helm.install_with_values.call_args.args[2] == "ci"

    @pytest.mark.parametrize(
        "failing",
        [
            ("kubectl", "create_namespace"),
            ("helm", "install_with_values"),
            ("kubectl", "wait_for_deployments"),
            ("helm", "test"),
        ],
    )
    def test_cleanup_exactly_once_on_failure(
        self,
        installer: ChartInstaller,
        cleanups: list[MagicMock],
        tools: Tools,
        make_chart: Callable[..., Chart],
        failing: tuple[str, str],
    ) -> None:
        """A failure at any state still runs the attempt's cleanup once."""
        tool, method = failing
        getattr(getattr(tools, tool), method).side_effect = ProcessError([tool, method], 1)
        chart = make_chart("charts/foo", ci_values=("a-values.yaml", "b-values.yaml"))

        with pytest.raises(ProcessError):
            installer.do_install(chart)

        assert len(cleanups) == 1
        cleanups[0].assert_called_once_with()


class TestDoUpgrade:
    """Tests for ChartInstaller.do_upgrade()."""

    @pytest.fixture
    def old_chart(self, make_chart: Callable[..., Chart]) -> Chart:
        return make_chart("prev/charts/foo", version="1.2.0", ci_values=("a-values.yaml",))

    @pytest.fixture
    def new_chart(self, make_chart: Callable[..., Chart]) -> Chart:
        return make_chart("charts/foo", version="1.2.1", ci_values=("a-values.yaml",))

    def test_upgrade_sequence(
        self,
        installer: ChartInstaller,
        cleanups: list[MagicMock],
        tools: Tools,
        old_chart: Chart,
        new_chart: Chart,
    ) -> None:
        installer.do_upgrade(old_chart, new_chart, old_chart_must_pass=False)

        install = tools.helm.install_with_values.call_args
        assert install.args[:2] == ("prev/charts/foo", "prev/charts/foo/ci/a-values.yaml")
        tools.helm.upgrade.assert_called_once_with("charts/foo", install.args[2], install.args[3])
        assert tools.helm.test.call_count == 2
        cleanups[0].assert_called_once_with()

    @pytest.mark.parametrize(
        "failing", [("helm", "install_with_values"), ("kubectl", "wait_for_deployments")]
    )
    def test_broken_previous_revision_is_skipped(
        self,
        installer: ChartInstaller,
        cleanups: list[MagicMock],
        tools: Tools,
        old_chart: Chart,
        new_chart: Chart,
        failing: tuple[str, str],
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        tool, method = failing
        getattr(getattr(tools, tool), method).side_effect = ProcessError([tool, method], 1)

        installer.do_upgrade(old_chart, new_chart, old_chart_must_pass=False)

        tools.helm.upgrade.assert_not_called()
        cleanups[0].assert_called_once_with()
        assert "skipped because of previous revision" in capsys.readouterr().out

    @pytest.mark.parametrize(
        "failing", [("helm", "install_with_values"), ("helm", "test")]
    )
    def test_old_chart_must_pass(
        self,
        installer: ChartInstaller,
        cleanups: list[MagicMock],
        tools: Tools,
        new_chart: Chart,
        failing: tuple[str, str],
    ) -> None:
        tool, method = failing
        getattr(getattr(tools, tool), method).side_effect = ProcessError([tool, method], 1)

        with pytest.raises(ProcessError):
            installer.do_upgrade(new_chart, new_chart, old_chart_must_pass=True)

        cleanups[0].assert_called_once_with()

    def test_upgrade_failure_is_fatal(
        self,
        installer: ChartInstaller,
        cleanups: list[MagicMock],
        tools: Tools,
        old_chart: Chart,
        new_chart: Chart,
    ) -> None:
        tools.helm.upgrade.side_effect = ProcessError(["helm", "upgrade"], 1)

        with pytest.raises(ProcessError):
            installer.do_upgrade(old_chart, new_chart, old_chart_must_pass=False)

        cleanups[0].assert_called_once_with()

    def test_test_after_upgrade_failure_is_fatal(
        self,
        installer: ChartInstaller,
        cleanups: list[MagicMock],
        tools: Tools,
        old_chart: Chart,
        new_chart: Chart,
    ) -> None:
        tools.helm.test.side_effect = [None, ProcessError(["helm", "test"], 1)]

        with pytest.raises(ProcessError):
            installer.do_upgrade(old_chart, new_chart, old_chart_must_pass=False)

        cleanups[0].assert_called_once_with()

    def test_skip_missing_values(
        self, tools: Tools, make_chart: Callable[..., Chart], capsys: pytest.CaptureFixture[str]
    ) -> None:
        """A values file renamed in the new revision is skipped."""
        old_chart = make_chart("prev/charts/foo", ci_values=("old-values.yaml",))
        new_chart = make_chart("charts/foo", ci_values=("new-values.yaml",))
        installer = ChartInstaller(Configuration(skip_missing_values=True), tools)

        installer.do_upgrade(old_chart, new_chart, old_chart_must_pass=False)

        tools.helm.install_with_values.assert_not_called()
        assert "old-values.yaml" in capsys.readouterr().out


class TestInstallChart:
    """Tests for ChartInstaller.install_chart() and upgrade_chart()."""

    @pytest.fixture
    def context(self, write_chart: Callable[..., Path], repo: Path) -> UpgradeContext:
        write_chart("prev/charts/foo", version="1.2.0")
        return UpgradeContext(worktree="prev")

    def test_fresh_install_only_without_context(
        self, installer: ChartInstaller, tools: Tools, make_chart: Callable[..., Chart]
    ) -> None:
        result = installer.install_chart(make_chart("charts/foo"))

        assert result.success
        tools.helm.install_with_values.assert_called_once()
        tools.helm.upgrade.assert_not_called()
        tools.git.file_exists_on_branch.assert_not_called()

    def test_non_breaking_runs_all_three_stages(
        self,
        installer: ChartInstaller,
        tools: Tools,
        make_chart: Callable[..., Chart],
        context: UpgradeContext,
    ) -> None:
        """1.2.0 → 1.2.1: upgrade from previous, self-upgrade and fresh install."""
        _old_descriptor(tools, "1.2.0")
        chart = make_chart("charts/foo", version="1.2.1")

        result = installer.install_chart(chart, context)

        assert result.success
        installed = [c.args[0] for c in tools.helm.install_with_values.call_args_list]
        assert installed == ["prev/charts/foo", "charts/foo", "charts/foo"]
        assert [c.args[0] for c in tools.helm.upgrade.call_args_list] == [
            "charts/foo",
            "charts/foo",
        ]

    def test_breaking_skips_upgrade_from_previous(
        self,
        installer: ChartInstaller,
        tools: Tools,
        make_chart: Callable[..., Chart],
        context: UpgradeContext,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        """1.2.0 → 2.0.0: only the self-upgrade and fresh install run."""
        _old_descriptor(tools, "1.2.0")
        chart = make_chart("charts/foo", version="2.0.0")

        result = installer.install_chart(chart, context)

        assert result.success
        installed = [c.args[0] for c in tools.helm.install_with_values.call_args_list]
        assert installed == ["charts/foo", "charts/foo"]
        assert tools.helm.upgrade.call_count == 1
        assert "does not satisfy ^1.2.0" in capsys.readouterr().out

    def test_new_chart_skips_upgrade_from_previous(
        self,
        installer: ChartInstaller,
        tools: Tools,
        make_chart: Callable[..., Chart],
        context: UpgradeContext,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        tools.git.file_exists_on_branch.return_value = False

        result = installer.install_chart(make_chart("charts/foo"), context)

        assert result.success
        assert tools.helm.install_with_values.call_count == 2
        assert "chart has no previous revision" in capsys.readouterr().out

    def test_missing_in_worktree_skips_upgrade_from_previous(
        self,
        installer: ChartInstaller,
        tools: Tools,
        make_chart: Callable[..., Chart],
        repo: Path,
    ) -> None:
        _old_descriptor(tools, "1.2.0")

        result = installer.install_chart(
            make_chart("charts/foo", version="1.2.1"), UpgradeContext(worktree="elsewhere")
        )

        assert result.success
        assert tools.helm.install_with_values.call_count == 2

    def test_version_parse_error_fails_chart(
        self,
        installer: ChartInstaller,
        tools: Tools,
        make_chart: Callable[..., Chart],
        context: UpgradeContext,
    ) -> None:
        _old_descriptor(tools, "not-a-version")

        result = installer.install_chart(make_chart("charts/foo"), context)

        assert not result.success
        tools.helm.install_with_values.assert_not_called()

    def test_self_upgrade_failure_stops_before_fresh_install(
        self,
        installer: ChartInstaller,
        tools: Tools,
        make_chart: Callable[..., Chart],
        context: UpgradeContext,
    ) -> None:
        _old_descriptor(tools, "1.2.0")
        error = ProcessError(["helm", "upgrade"], 1)
        tools.helm.upgrade.side_effect = [None, error]

        result = installer.install_chart(make_chart("charts/foo", version="1.2.1"), context)

        assert result.error is error
        assert tools.helm.install_with_values.call_count == 2

    def test_fresh_install_failure(
        self, installer: ChartInstaller, tools: Tools, make_chart: Callable[..., Chart]
    ) -> None:
        tools.helm.install_with_values.side_effect = ProcessError(["helm", "install"], 1)

        result = installer.install_chart(make_chart("charts/foo"))

        assert isinstance(result.error, ProcessError)
        tools.helm.delete_release.assert_called_once()


class TestDiagnostics:
    """Tests for ChartInstaller.print_events_pod_details_and_logs()."""

    def test_prints_everything(self, tools: Tools, capsys: pytest.CaptureFixture[str]) -> None:
        installer = ChartInstaller(Configuration(), tools)
        tools.kubectl.get_pods.return_value = ["'pod-a'"]
        tools.kubectl.get_init_containers.return_value = ["init"]
        tools.kubectl.get_containers.return_value = ["app", "sidecar"]

        installer.print_events_pod_details_and_logs("ns", "sel")

        tools.kubectl.get_events.assert_called_once_with("ns")
        tools.kubectl.describe_pod.assert_called_once_with("ns", "pod-a")
        assert tools.kubectl.logs.call_args_list == [
            call("ns", "pod-a", "init"),
            call("ns", "pod-a", "app"),
            call("ns", "pod-a", "sidecar"),
        ]
        assert "==> Logs of container pod-a" in capsys.readouterr().out

    def test_without_logs(self, tools: Tools) -> None:
        installer = ChartInstaller(Configuration(print_logs=False), tools)
        tools.kubectl.get_pods.return_value = ["pod-a"]

        installer.print_events_pod_details_and_logs("ns", "sel")

        tools.kubectl.describe_pod.assert_called_once()
        tools.kubectl.logs.assert_not_called()

    def test_github_groups(self, tools: Tools, capsys: pytest.CaptureFixture[str]) -> None:
        installer = ChartInstaller(Configuration(github_groups=True), tools)
        tools.kubectl.get_pods.return_value = []

        installer.print_events_pod_details_and_logs("ns", "sel")

        out = capsys.readouterr().out
        assert "::group::Events of namespace ns" in out
        assert "::endgroup::" in out

    def test_failures_are_never_raised(
        self, tools: Tools, capsys: pytest.CaptureFixture[str]
    ) -> None:
        installer = ChartInstaller(Configuration(), tools)
        tools.kubectl.get_events.side_effect = ProcessError(["kubectl", "get", "events"], 1)
        tools.kubectl.get_pods.side_effect = ProcessError(["kubectl", "get", "pods"], 1)

        installer.print_events_pod_details_and_logs("ns", "sel")

        out = capsys.readouterr().out
        assert "Error printing details" in out
        assert "Error printing logs" in out
