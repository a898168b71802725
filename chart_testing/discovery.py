"""Mapping of changed files and directories to chart root directories.

Charts live one level below a configured chart directory (e.g. charts/foo
for chart dir "charts"). Changed files may sit arbitrarily deep inside a
chart, including inside nested subcharts, so each file's directory is
walked upward until the top-level chart boundary is found.
"""

from __future__ import annotations

import os
import posixpath
import sys
from collections.abc import Callable, Collection, Sequence
from pathlib import PurePath

from .chart import is_chart_dir
from .errors import ChartTestingError, NotAChartError


def _normalize(path: str) -> str:
    return posixpath.normpath(PurePath(path).as_posix()) if path else "."


def lookup_chart_dir(chart_dirs: Sequence[str], directory: str) -> str:
    """Find the chart root containing ``directory``.

    For each configured chart dir (in order), walks upward from
    ``directory`` looking for the nearest ancestor that has a Chart.yaml
    and is a direct child of that chart dir. The walk stops at the chart
    dir itself or as soon as it leaves it.

    Examples:
        lookup_chart_dir(["charts"], "charts/foo/templates") → "charts/foo"
        lookup_chart_dir(["charts"], "charts/foo/charts/sub") → "charts/foo"

    Raises:
        NotAChartError: If no chart root is found under any chart dir.
    """
    start = _normalize(directory)
    for chart_dir in chart_dirs:
        root = _normalize(chart_dir)
        current = start
        while True:
            parent = posixpath.dirname(current) or "."
            if parent == root and is_chart_dir(current):
                return current
            current = posixpath.dirname(current) or "."
            relative = posixpath.relpath(current, root)
            if relative == "." or relative.startswith(".."):
                break
    raise NotAChartError(f"no chart directory found for {directory!r}")


def group_changed_files(
    changed_paths: Sequence[str],
    chart_dirs: Sequence[str],
    excluded: Collection[str],
    lookup: Callable[[Sequence[str], str], str] = lookup_chart_dir,
) -> dict[str, list[str]]:
    """Group changed files by the chart root they belong to.

    Paths with fewer than two segments, paths whose second segment is an
    excluded chart name, and files that do not resolve to a chart root are
    skipped. Charts whose directory name is excluded are dropped even when
    discovered through nested files.

    Args:
        changed_paths: Changed file paths relative to the repository root.
        chart_dirs: Configured chart directories, checked in order.
        excluded: Chart directory names to skip.
        lookup: Chart root resolver (injectable for tests).

    Returns:
        Map of chart directory → changed files relative to that directory,
        in order of first occurrence.
    """
    grouped: dict[str, list[str]] = {}
    for file in changed_paths:
        path = PurePath(file).as_posix()
        segments = path.split("/", 2)
        if len(segments) < 2 or segments[1] in excluded:
            continue

        directory = posixpath.dirname(path)
        try:
            chart_dir = lookup(chart_dirs, directory)
        except NotAChartError:
            print(
                f"Directory {directory!r} is not a valid chart directory. Skipping...",
                file=sys.stderr,
            )
            continue

        if posixpath.basename(chart_dir) in excluded:
            continue
        relative = posixpath.relpath(path, chart_dir)
        grouped.setdefault(chart_dir, []).append(relative)
    return grouped


def classify_changed_files(
    changed_paths: Sequence[str],
    chart_dirs: Sequence[str],
    excluded: Collection[str],
    lookup: Callable[[Sequence[str], str], str] = lookup_chart_dir,
) -> list[str]:
    """Return the distinct chart directories touched by ``changed_paths``.

    Example:
        classify_changed_files(
            ["charts/foo/Chart.yaml", "charts/bar/sub/templates/x.yaml",
             "charts/excluded/Chart.yaml"],
            ["charts"], {"excluded"},
        ) → ["charts/foo", "charts/bar"]
    """
    return list(group_changed_files(changed_paths, chart_dirs, excluded, lookup))


def list_child_dirs(parent_dir: str, test: Callable[[str], bool]) -> list[str]:
    """List direct child directories of ``parent_dir`` that pass ``test``.

    Children are visited in name order and returned as ``parent/child``.

    Raises:
        ChartTestingError: If ``parent_dir`` cannot be read.
    """
    try:
        with os.scandir(parent_dir) as entries:
            names = sorted(e.name for e in entries if e.is_dir())
    except OSError as err:
        raise ChartTestingError(f"failed reading chart directories: {err}") from err

    dirs: list[str] = []
    for name in names:
        child = posixpath.normpath(posixpath.join(_normalize(parent_dir), name))
        if test(child):
            dirs.append(child)
    return dirs


def read_all_chart_directories(
    chart_dirs: Sequence[str],
    excluded: Collection[str],
    lister: Callable[[str, Callable[[str], bool]], list[str]] = list_child_dirs,
    lookup: Callable[[Sequence[str], str], str] = lookup_chart_dir,
) -> list[str]:
    """Return every chart directly below the configured chart dirs, minus excluded ones."""

    def is_selectable(directory: str) -> bool:
        if posixpath.basename(directory) in excluded:
            return False
        try:
            lookup(chart_dirs, directory)
        except NotAChartError:
            return False
        return True

    found: list[str] = []
    for parent in chart_dirs:
        found.extend(lister(parent, is_selectable))
    return found
