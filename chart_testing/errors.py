"""Exception types raised by the chart tester.

Structural errors (configuration, repository state) abort a whole run.
Per-chart errors are captured into that chart's TestResult instead.
"""

from __future__ import annotations

from collections.abc import Sequence


class ChartTestingError(Exception):
    """Base class for all chart tester errors."""


class ConfigurationError(ChartTestingError):
    """Invalid or contradictory configuration; reported before any processing."""


class RepositoryError(ChartTestingError):
    """Version-control state prevents the run (no repo, no merge base, no worktree)."""


class NotAChartError(ChartTestingError):
    """A directory has no readable chart descriptor."""


class VersionError(ChartTestingError):
    """A string could not be parsed as a semantic version."""


class ValidationError(ChartTestingError):
    """A chart failed one of the validation checks."""


class ProcessError(ChartTestingError):
    """An external command exited non-zero.

    Attributes:
        command: The argv that was executed.
        returncode: Exit status of the process.
        output: Captured error output, if any.
    """

    def __init__(self, command: Sequence[str], returncode: int, output: str = "") -> None:
        self.command = list(command)
        self.returncode = returncode
        self.output = output
        msg = f"command {' '.join(self.command)!r} failed with exit code {returncode}"
        if output:
            msg = f"{msg}: {output}"
        super().__init__(msg)
