"""Selection of the charts a run processes.

Selection order (first match wins):
1. --all: every chart directly below the configured chart dirs
2. --charts: the explicit list, verbatim
3. otherwise: charts touched by the diff between the merge base with
   <remote>/<target-branch> and the working tree
"""

from __future__ import annotations

import sys

from .chart import Chart
from .config import Configuration
from .discovery import group_changed_files, read_all_chart_directories
from .errors import NotAChartError, RepositoryError
from .ignore import IgnoreRules
from .ports import Git


def compute_merge_base(cfg: Configuration, git: Git) -> str:
    """Return the merge base of <remote>/<target-branch> and ``cfg.since``.

    Raises:
        RepositoryError: If not inside a git working tree, the target branch
            does not exist, or no merge base can be computed.
    """
    git.validate_repository()
    target = f"{cfg.remote}/{cfg.target_branch}"
    if not git.branch_exists(target):
        raise RepositoryError(f"target branch {target!r} does not exist")
    return git.merge_base(target, cfg.since)


def compute_changed_chart_directories(cfg: Configuration, git: Git) -> list[str]:
    """Return chart directories with changes since the merge base.

    With ``use_helmignore``, a chart only counts as changed when at least
    one of its changed files survives the chart's .helmignore rules.
    """
    merge_base = compute_merge_base(cfg, git)
    changed_files = git.list_changed_files_in_dirs(merge_base, *cfg.chart_dirs)
    grouped = group_changed_files(changed_files, cfg.chart_dirs, set(cfg.excluded_charts))
    if not cfg.use_helmignore:
        return list(grouped)

    changed: list[str] = []
    for chart_dir, files in grouped.items():
        try:
            rules = IgnoreRules.load(chart_dir)
        except OSError as err:
            raise RepositoryError(f"failed loading .helmignore of {chart_dir!r}: {err}") from err
        if rules.filter_files(files):
            changed.append(chart_dir)
        else:
            print(f"Ignoring changes in {chart_dir!r} (.helmignore)", file=sys.stderr)
    return changed


def find_chart_dirs_to_be_processed(cfg: Configuration, git: Git) -> list[str]:
    """Return the chart directories selected by the configuration."""
    if cfg.process_all_charts:
        return read_all_chart_directories(cfg.chart_dirs, set(cfg.excluded_charts))
    if cfg.charts:
        return list(cfg.charts)
    return compute_changed_chart_directories(cfg, git)


def load_charts(chart_dirs: list[str]) -> list[Chart]:
    """Parse each selected directory into a Chart.

    Raises:
        NotAChartError: If a directory has no readable Chart.yaml.
    """
    charts: list[Chart] = []
    for chart_dir in chart_dirs:
        try:
            charts.append(Chart.from_dir(chart_dir))
        except NotAChartError as err:
            raise NotAChartError(f"failed reading chart {chart_dir!r}: {err}") from err
    return charts


def select_charts(cfg: Configuration, git: Git) -> list[Chart]:
    """Select and parse the charts to process."""
    return load_charts(find_chart_dirs_to_be_processed(cfg, git))
