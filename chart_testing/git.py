"""Git adapter backed by the git CLI."""

from __future__ import annotations

from .errors import ProcessError, RepositoryError
from .ports import Git
from .shell import capture, succeeds


class ShellGit(Git):
    def __init__(self, executable: str = "git") -> None:
        self._git = executable

    def file_exists_on_branch(self, file: str, remote: str, branch: str) -> bool:
        return succeeds(self._git, "cat-file", "-e", f"{remote}/{branch}:{file}")

    def show(self, file: str, remote: str, branch: str) -> str:
        return capture(self._git, "show", f"{remote}/{branch}:{file}")

    def merge_base(self, commit1: str, commit2: str) -> str:
        try:
            return capture(self._git, "merge-base", commit1, commit2)
        except ProcessError as err:
            raise RepositoryError(
                f"failed computing merge base of {commit1!r} and {commit2!r}: {err}"
            ) from err

    def list_changed_files_in_dirs(self, commit: str, *dirs: str) -> list[str]:
        try:
            output = capture(
                self._git, "diff", "--find-renames", "--name-only", commit, "--", *dirs
            )
        except ProcessError as err:
            raise RepositoryError(f"failed creating diff: {err}") from err
        return output.splitlines() if output else []

    def get_url_for_remote(self, remote: str) -> str:
        return capture(self._git, "ls-remote", "--get-url", remote)

    def add_worktree(self, path: str, ref: str) -> None:
        capture(self._git, "worktree", "add", path, ref, merge_stderr=True)

    def remove_worktree(self, path: str) -> None:
        capture(self._git, "worktree", "remove", "--force", path, merge_stderr=True)

    def validate_repository(self) -> None:
        if not succeeds(self._git, "rev-parse", "--is-inside-work-tree"):
            raise RepositoryError("must be in a git repository")

    def branch_exists(self, branch: str) -> bool:
        return succeeds(self._git, "rev-parse", "--verify", "--quiet", branch)
