"""Collaborator interfaces consumed by the selection and test pipeline.

The pipeline depends only on these abstractions. Shell-backed adapters
(git.py, helm.py, kubectl.py, linter.py, account.py, commands.py) provide
the concrete implementations; tests substitute mocks.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any


class Git(ABC):
    """Version-control operations."""

    @abstractmethod
    def file_exists_on_branch(self, file: str, remote: str, branch: str) -> bool:
        """Return whether ``file`` exists on ``remote/branch``."""
        raise NotImplementedError

    @abstractmethod
    def show(self, file: str, remote: str, branch: str) -> str:
        """Return the contents of ``file`` on ``remote/branch``."""
        raise NotImplementedError

    @abstractmethod
    def merge_base(self, commit1: str, commit2: str) -> str:
        """Return the merge base revision of two commits."""
        raise NotImplementedError

    @abstractmethod
    def list_changed_files_in_dirs(self, commit: str, *dirs: str) -> list[str]:
        """Return files changed between ``commit`` and the working tree under ``dirs``."""
        raise NotImplementedError

    @abstractmethod
    def get_url_for_remote(self, remote: str) -> str:
        """Return the URL configured for ``remote``."""
        raise NotImplementedError

    @abstractmethod
    def add_worktree(self, path: str, ref: str) -> None:
        """Check out ``ref`` as a separate working tree at ``path``."""
        raise NotImplementedError

    @abstractmethod
    def remove_worktree(self, path: str) -> None:
        """Remove the working tree at ``path``."""
        raise NotImplementedError

    @abstractmethod
    def validate_repository(self) -> None:
        """Raise if the current directory is not inside a git working tree."""
        raise NotImplementedError

    @abstractmethod
    def branch_exists(self, branch: str) -> bool:
        """Return whether ``branch`` (e.g. "origin/main") resolves."""
        raise NotImplementedError


class Helm(ABC):
    """Chart install/test tool operations."""

    @abstractmethod
    def add_repo(self, name: str, url: str, extra_args: Sequence[str] = ()) -> None:
        raise NotImplementedError

    @abstractmethod
    def build_dependencies(self, chart: str, extra_args: Sequence[str] = ()) -> None:
        raise NotImplementedError

    @abstractmethod
    def lint_with_values(self, chart: str, values_file: str) -> None:
        """Lint ``chart``; an empty ``values_file`` lints with chart defaults."""
        raise NotImplementedError

    @abstractmethod
    def install_with_values(
        self, chart: str, values_file: str, namespace: str, release: str
    ) -> None:
        """Install ``chart``; an empty ``values_file`` installs with chart defaults."""
        raise NotImplementedError

    @abstractmethod
    def upgrade(self, chart: str, namespace: str, release: str) -> None:
        """Upgrade an existing release in place, reusing its values."""
        raise NotImplementedError

    @abstractmethod
    def test(self, namespace: str, release: str) -> None:
        """Run the release's post-install tests."""
        raise NotImplementedError

    @abstractmethod
    def delete_release(self, namespace: str, release: str) -> None:
        """Uninstall a release. Best effort: failures are logged, not raised."""
        raise NotImplementedError

    @abstractmethod
    def version(self) -> str:
        raise NotImplementedError


class Kubectl(ABC):
    """Cluster operations."""

    @abstractmethod
    def create_namespace(self, namespace: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def delete_namespace(self, namespace: str) -> None:
        """Delete a namespace. Best effort: failures are logged, not raised."""
        raise NotImplementedError

    @abstractmethod
    def wait_for_deployments(self, namespace: str, selector: str) -> None:
        """Block until every deployment matching ``selector`` is available."""
        raise NotImplementedError

    @abstractmethod
    def get_pods(self, namespace: str, selector: str) -> list[str]:
        raise NotImplementedError

    @abstractmethod
    def get_events(self, namespace: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def describe_pod(self, namespace: str, pod: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def logs(self, namespace: str, pod: str, container: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def get_init_containers(self, namespace: str, pod: str) -> list[str]:
        raise NotImplementedError

    @abstractmethod
    def get_containers(self, namespace: str, pod: str) -> list[str]:
        raise NotImplementedError


class Linter(ABC):
    """Schema validation and YAML style linting."""

    @abstractmethod
    def yamllint(self, yaml_file: str, config_file: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def yamale(self, yaml_file: str, schema_file: str) -> None:
        raise NotImplementedError


class AccountValidator(ABC):
    """Maintainer account lookup on the repository's hosting domain."""

    @abstractmethod
    def validate(self, repo_url: str, account: str) -> None:
        """Raise if ``account`` does not exist on the host of ``repo_url``."""
        raise NotImplementedError


class CommandExecutor(ABC):
    """Runs user-supplied commands templated with chart data."""

    @abstractmethod
    def run_command(self, template: str, data: Any) -> None:
        raise NotImplementedError


@dataclass(frozen=True)
class Tools:
    """The collaborators a chart testing run drives."""

    git: Git
    helm: Helm
    kubectl: Kubectl
    linter: Linter
    account_validator: AccountValidator
    command_executor: CommandExecutor
