"""Shell and console utilities.

Provides thin wrappers around subprocess calls for the external tools the
chart tester drives (git, helm, kubectl, yamllint, yamale), plus the output
helpers used for progress headers, delimiter blocks and fatal errors.
"""

from __future__ import annotations

import logging
import subprocess
import sys
from collections.abc import Sequence
from typing import TextIO

from .errors import ProcessError

logger = logging.getLogger(__name__)

DELIMITER_WIDTH = 120


def _spawn(args: Sequence[str], **kwargs) -> subprocess.CompletedProcess:
    logger.debug(">>> %s", " ".join(args))
    try:
        return subprocess.run(list(args), **kwargs)
    except FileNotFoundError as err:
        raise ProcessError(args, 127, f"executable not found: {args[0]}") from err


def run(*args: str, cwd: str | None = None) -> None:
    """Run an external command, streaming its output to the terminal.

    Args:
        *args: Command and arguments (e.g., "helm", "lint", "charts/foo").
        cwd: Optional working directory.

    Raises:
        ProcessError: If the command exits non-zero or cannot be started.
    """
    result = _spawn(args, cwd=cwd)
    if result.returncode != 0:
        raise ProcessError(args, result.returncode)


def capture(
    *args: str,
    cwd: str | None = None,
    merge_stderr: bool = False,
    stdin: str | None = None,
) -> str:
    """Run an external command and return its stripped output.

    Args:
        *args: Command and arguments (e.g., "git", "merge-base", "a", "b").
        cwd: Optional working directory.
        merge_stderr: If True, stderr is folded into the returned output
               (useful for tools that report on stderr only).
        stdin: Optional text fed to the command's standard input.

    Raises:
        ProcessError: If the command exits non-zero. The captured stderr is
               attached to the error for context.
    """
    result = _spawn(
        args,
        cwd=cwd,
        input=stdin,
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT if merge_stderr else subprocess.PIPE,
        text=True,
    )
    if result.returncode != 0:
        detail = result.stdout if merge_stderr else result.stderr
        raise ProcessError(args, result.returncode, (detail or "").strip())
    return (result.stdout or "").strip()


def succeeds(*args: str, cwd: str | None = None) -> bool:
    """Return whether a command exits zero, discarding its output."""
    result = _spawn(
        args, cwd=cwd, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL
    )
    return result.returncode == 0


def step(msg: str) -> None:
    """Print a visually distinct step header.

    Used to separate major phases of a run in terminal output.
    """
    print(f"\n{'─' * 60}\n{msg}\n{'─' * 60}")


def fatal(msg: str) -> None:
    """Print an error message and exit with code 1.

    Use for unrecoverable errors that should halt the run.
    """
    print(f"Error: {msg}", file=sys.stderr)
    sys.exit(1)


def delimiter(char: str, stream: TextIO | None = None) -> None:
    """Print a full-width line made of ``char``."""
    print(char * DELIMITER_WIDTH, file=stream or sys.stdout)


def begin_block(title: str, char: str, github_groups: bool, stream: TextIO | None = None) -> None:
    """Open an output block, either as a delimited header or a GitHub group."""
    out = stream or sys.stdout
    if github_groups:
        print(f"::group::{title}", file=out)
    else:
        delimiter(char, out)
        print(f" {title}", file=out)
        delimiter(char, out)


def end_block(char: str, github_groups: bool, stream: TextIO | None = None) -> None:
    """Close a block opened with begin_block()."""
    out = stream or sys.stdout
    if github_groups:
        print("::endgroup::", file=out)
    else:
        delimiter(char, out)


def configure_logging(debug: bool = False) -> None:
    """Configure the root logger for CLI runs.

    External command lines are logged at DEBUG, best-effort failures at
    WARNING.
    """
    root = logging.getLogger()
    root.handlers.clear()

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
    root.addHandler(handler)
    root.setLevel(logging.DEBUG if debug else logging.WARNING)
