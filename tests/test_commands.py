"""Tests for chart_testing.commands."""

from __future__ import annotations

from collections.abc import Callable
from unittest.mock import MagicMock, patch

import pytest

from chart_testing.chart import Chart
from chart_testing.commands import TemplateCommandExecutor, render_command
from chart_testing.errors import ValidationError


class TestRenderCommand:
    """Tests for render_command()."""

    def test_command_without_arguments(self) -> None:
        assert render_command("echo", None) == ["echo"]

    def test_command_with_arguments(self) -> None:
        assert render_command("echo hello world", None) == ["echo", "hello", "world"]

    def test_interpolates_mapping(self) -> None:
        words = render_command(
            "helm unittest --helm3 -f tests/*.yaml {{ .Path }}", {"Path": "charts/my-chart"}
        )

        assert words == ["helm", "unittest", "--helm3", "-f", "tests/*.yaml", "charts/my-chart"]

    def test_interpolates_chart_attributes(self, make_chart: Callable[..., Chart]) -> None:
        chart = make_chart("charts/foo", version="1.2.3")

        words = render_command("echo {{ .Path }} {{.Name}} {{ .Yaml.Version }}", chart)

        assert words == ["echo", "charts/foo", "foo", "1.2.3"]

    def test_quoting(self) -> None:
        assert render_command("sh -c 'echo a b'", None) == ["sh", "-c", "echo a b"]

    def test_unknown_field(self) -> None:
        with pytest.raises(ValidationError, match="unknown template field 'Nope'"):
            render_command("echo {{ .Nope }}", {"Path": "x"})

    def test_empty_command(self) -> None:
        with pytest.raises(ValidationError, match="empty command"):
            render_command("   ", None)


class TestTemplateCommandExecutor:
    """Tests for TemplateCommandExecutor."""

    @patch("chart_testing.commands.run")
    def test_runs_rendered_command(self, mock_run: MagicMock) -> None:
        TemplateCommandExecutor().run_command("echo {{ .Path }}", {"Path": "charts/foo"})

        mock_run.assert_called_once_with("echo", "charts/foo")
