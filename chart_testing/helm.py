"""Helm adapter backed by the helm CLI."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from .errors import ProcessError
from .ports import Helm
from .shell import capture, run

logger = logging.getLogger(__name__)

OCI_PREFIX = "oci://"
MINIMUM_MAJOR_VERSION = 3


class ShellHelm(Helm):
    """Runs helm with optional extra arguments appended to each call.

    Attributes:
        extra_args: Appended to lint/install/upgrade/test/uninstall.
        lint_extra_args: Appended to lint only.
        extra_set_args: Appended to install/upgrade (e.g. "--set foo=bar").
    """

    def __init__(
        self,
        extra_args: Sequence[str] = (),
        lint_extra_args: Sequence[str] = (),
        extra_set_args: Sequence[str] = (),
        executable: str = "helm",
    ) -> None:
        self.extra_args = list(extra_args)
        self.lint_extra_args = list(lint_extra_args)
        self.extra_set_args = list(extra_set_args)
        self._helm = executable

    def add_repo(self, name: str, url: str, extra_args: Sequence[str] = ()) -> None:
        if url.startswith(OCI_PREFIX):
            registry = url[len(OCI_PREFIX):]
            run(self._helm, "registry", "login", registry, *extra_args)
            return
        run(self._helm, "repo", "add", name, url, *extra_args)

    def build_dependencies(self, chart: str, extra_args: Sequence[str] = ()) -> None:
        run(self._helm, "dependency", "build", chart, *extra_args)

    def lint_with_values(self, chart: str, values_file: str) -> None:
        values = ["--values", values_file] if values_file else []
        run(self._helm, "lint", chart, *values, *self.extra_args, *self.lint_extra_args)

    def install_with_values(
        self, chart: str, values_file: str, namespace: str, release: str
    ) -> None:
        values = ["--values", values_file] if values_file else []
        run(
            self._helm, "install", release, chart,
            "--namespace", namespace, "--wait",
            *values, *self.extra_args, *self.extra_set_args,
        )

    def upgrade(self, chart: str, namespace: str, release: str) -> None:
        run(
            self._helm, "upgrade", release, chart,
            "--namespace", namespace, "--reuse-values", "--wait",
            *self.extra_args, *self.extra_set_args,
        )

    def test(self, namespace: str, release: str) -> None:
        run(self._helm, "test", release, "--namespace", namespace, *self.extra_args)

    def delete_release(self, namespace: str, release: str) -> None:
        print(f"Deleting release {release!r}...")
        try:
            run(self._helm, "uninstall", release, "--namespace", namespace, *self.extra_args)
        except ProcessError as err:
            logger.warning("Error deleting Helm release %r: %s", release, err)

    def version(self) -> str:
        return capture(self._helm, "version", "--template", "{{ .Version }}")
