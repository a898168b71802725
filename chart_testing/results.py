"""Per-chart results and their aggregation."""

from __future__ import annotations

import sys
from collections.abc import Iterable
from typing import TextIO

from pydantic import BaseModel, ConfigDict, Field

from .chart import Chart
from .shell import begin_block, end_block


class TestResult(BaseModel):
    """Outcome of processing a single chart.

    Attributes:
        chart: The chart that was processed.
        error: The error that stopped processing, or None on success.
    """

    __test__ = False
    model_config = ConfigDict(arbitrary_types_allowed=True)

    chart: Chart
    error: Exception | None = None

    @property
    def success(self) -> bool:
        return self.error is None


class TestResults(BaseModel):
    """Aggregated outcome of a run.

    An empty ``results`` list means no charts were selected, which is a
    successful no-op rather than a failure.

    Attributes:
        overall_success: True iff no chart result carries an error.
        results: Per-chart results in processing order.
    """

    __test__ = False

    overall_success: bool = True
    results: list[TestResult] = Field(default_factory=list)

    @property
    def failed(self) -> list[TestResult]:
        return [r for r in self.results if not r.success]


def aggregate(results: Iterable[TestResult]) -> TestResults:
    """Combine per-chart results into an overall outcome."""
    collected = list(results)
    return TestResults(
        overall_success=all(r.success for r in collected),
        results=collected,
    )


def print_results(
    results: TestResults, github_groups: bool = False, stream: TextIO | None = None
) -> None:
    """Print the pass/fail summary, or a notice when nothing was selected."""
    out = stream or sys.stdout
    begin_block("Summary", "-", github_groups, out)
    if not results.results:
        print("No chart changes detected.", file=out)
    for result in results.results:
        if result.success:
            print(f" ✔︎ {result.chart}", file=out)
        else:
            print(f" ✖︎ {result.chart} > {result.error}", file=out)
    end_block("-", github_groups, out)
