"""Execution of user-supplied additional commands.

Commands are templates such as ``helm unittest -f 'tests/*.yaml' {{ .Path }}``;
placeholders are resolved against the chart being processed (attribute
names are matched case-insensitively, CamelCase maps to snake_case, and
dotted paths like ``{{ .Yaml.Version }}`` walk nested attributes).
"""

from __future__ import annotations

import re
import shlex
from collections.abc import Mapping
from typing import Any

from .errors import ValidationError
from .ports import CommandExecutor
from .shell import run

_PLACEHOLDER = re.compile(r"\{\{\s*\.([A-Za-z_][\w.]*)\s*\}\}")
_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def _resolve(data: Any, dotted: str) -> Any:
    value = data
    for part in dotted.split("."):
        if isinstance(value, Mapping):
            if part in value:
                value = value[part]
                continue
            key = part.lower()
        else:
            key = _CAMEL_BOUNDARY.sub("_", part).lower()
        try:
            value = value[key] if isinstance(value, Mapping) else getattr(value, key)
        except (AttributeError, KeyError) as err:
            raise ValidationError(f"unknown template field {dotted!r}") from err
    return value


def render_command(template: str, data: Any) -> list[str]:
    """Render ``template`` against ``data`` and split it into argv.

    Raises:
        ValidationError: On unknown fields, bad quoting or an empty command.
    """
    rendered = _PLACEHOLDER.sub(lambda m: str(_resolve(data, m.group(1))), template)
    try:
        words = shlex.split(rendered)
    except ValueError as err:
        raise ValidationError(f"could not parse command {rendered!r}: {err}") from err
    if not words:
        raise ValidationError(f"empty command rendered from {template!r}")
    return words


class TemplateCommandExecutor(CommandExecutor):
    def run_command(self, template: str, data: Any) -> None:
        run(*render_command(template, data))
