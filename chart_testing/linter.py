"""Linter adapter backed by yamllint and yamale."""

from __future__ import annotations

import shutil

from .errors import ConfigurationError
from .ports import Linter
from .shell import run


class ShellLinter(Linter):
    def yamllint(self, yaml_file: str, config_file: str) -> None:
        run("yamllint", "--config-file", config_file, yaml_file)

    def yamale(self, yaml_file: str, schema_file: str) -> None:
        run("yamale", "--schema", schema_file, yaml_file)

    @staticmethod
    def ensure_executables(*names: str) -> None:
        """Raise if any of the given linter executables is not on PATH."""
        missing = [name for name in names if shutil.which(name) is None]
        if missing:
            raise ConfigurationError(f"executables not found in PATH: {', '.join(missing)}")
