"""Shared test fixtures."""

from __future__ import annotations

import os
from collections.abc import Callable
from pathlib import Path
from unittest.mock import MagicMock

import pytest
import yaml

from chart_testing.chart import Chart
from chart_testing.config import Configuration
from chart_testing.ports import (
    AccountValidator,
    CommandExecutor,
    Git,
    Helm,
    Kubectl,
    Linter,
    Tools,
)


@pytest.fixture
def repo(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """An empty working directory standing in for the repository root."""
    monkeypatch.chdir(tmp_path)
    for name in list(os.environ):
        if name.startswith("CT_"):
            monkeypatch.delenv(name)
    return tmp_path


@pytest.fixture
def write_chart(repo: Path) -> Callable[..., Path]:
    """Create a chart directory with a Chart.yaml below the repository root."""

    def _write(
        path: str,
        name: str | None = None,
        version: str = "1.0.0",
        maintainers: list[str] | None = None,
        deprecated: bool = False,
        ci_values: tuple[str, ...] = (),
    ) -> Path:
        chart_dir = repo / path
        (chart_dir / "templates").mkdir(parents=True, exist_ok=True)
        descriptor = {
            "apiVersion": "v2",
            "name": name or chart_dir.name,
            "version": version,
        }
        if maintainers is not None:
            descriptor["maintainers"] = [{"name": m} for m in maintainers]
        if deprecated:
            descriptor["deprecated"] = True
        (chart_dir / "Chart.yaml").write_text(yaml.safe_dump(descriptor))
        (chart_dir / "values.yaml").write_text("replicaCount: 1\n")
        for values_name in ci_values:
            (chart_dir / "ci").mkdir(exist_ok=True)
            (chart_dir / "ci" / values_name).write_text("replicaCount: 2\n")
        return chart_dir

    return _write


@pytest.fixture
def tools() -> Tools:
    """Mocked collaborators."""
    return Tools(
        git=MagicMock(spec=Git),
        helm=MagicMock(spec=Helm),
        kubectl=MagicMock(spec=Kubectl),
        linter=MagicMock(spec=Linter),
        account_validator=MagicMock(spec=AccountValidator),
        command_executor=MagicMock(spec=CommandExecutor),
    )


@pytest.fixture
def make_chart(write_chart: Callable[..., Path]) -> Callable[..., Chart]:
    """Create a chart on disk and return it parsed."""

    def _make(path: str = "charts/foo", **kwargs) -> Chart:
        write_chart(path, **kwargs)
        return Chart.from_dir(path)

    return _make


@pytest.fixture
def cfg() -> Configuration:
    """Configuration with all lint checks enabled and no upgrade testing."""
    return Configuration(lint_conf="lintconf.yaml", chart_yaml_schema="chart_schema.yaml")
