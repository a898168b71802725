"""Chart (package) model and descriptor reading.

A chart is a directory holding a Chart.yaml descriptor. Optional values
override files live in its ci/ subdirectory and match *-values.yaml; each
of them triggers a separate lint/install run.
"""

from __future__ import annotations

import random
import re
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from .errors import NotAChartError
from .models import ChartYaml

CHART_DESCRIPTOR = "Chart.yaml"
VALUES_FILE = "values.yaml"
CI_VALUES_PATTERN = "*-values.yaml"
MAX_NAME_LENGTH = 63

_RANDOM_CHARS = "1234567890abcdefghijklmnopqrstuvwxyz"
_LEADING_NON_ALNUM = re.compile(r"^[^a-zA-Z0-9]+")


class _DescriptorLoader(yaml.SafeLoader):
    """SafeLoader that keeps numeric scalars as their source text ("1.10" stays "1.10")."""


for _tag in ("tag:yaml.org,2002:int", "tag:yaml.org,2002:float"):
    _DescriptorLoader.add_constructor(_tag, yaml.SafeLoader.construct_scalar)


def parse_chart_yaml(text: str, source: str = CHART_DESCRIPTOR) -> ChartYaml:
    """Parse Chart.yaml contents into a ChartYaml model.

    Raises:
        NotAChartError: If the text is not valid YAML, not a mapping, or
            does not fit the descriptor model.
    """
    try:
        data = yaml.load(text, Loader=_DescriptorLoader) or {}
    except yaml.YAMLError as err:
        raise NotAChartError(f"could not unmarshal {source!r}: {err}") from err
    if not isinstance(data, dict):
        raise NotAChartError(f"could not unmarshal {source!r}: not a mapping")
    try:
        return ChartYaml.model_validate(data)
    except PydanticValidationError as err:
        raise NotAChartError(f"could not unmarshal {source!r}: {err}") from err


def read_chart_yaml(chart_dir: str | Path) -> ChartYaml:
    """Read and parse the Chart.yaml in ``chart_dir``.

    Raises:
        NotAChartError: If no descriptor is present or it cannot be parsed.
    """
    descriptor = Path(chart_dir) / CHART_DESCRIPTOR
    try:
        text = descriptor.read_text()
    except OSError as err:
        raise NotAChartError(f"could not read {str(descriptor)!r}: {err}") from err
    return parse_chart_yaml(text, str(descriptor))


def is_chart_dir(path: str | Path) -> bool:
    """Return whether ``path`` contains a chart descriptor."""
    return (Path(path) / CHART_DESCRIPTOR).is_file()


def random_string(length: int) -> str:
    """Return a random string of digits and lower-case ASCII letters."""
    return "".join(random.choices(_RANDOM_CHARS, k=length))


def sanitize_name(name: str, max_length: int) -> str:
    """Trim ``name`` to ``max_length`` from the left and drop leading non-alphanumerics.

    Examples:
        sanitize_name("way-longer-than-max-length", 10) → "max-length"
        sanitize_name("foo-bar", 4) → "bar"
    """
    excess = len(name) - max_length
    if excess > 0:
        name = name[excess:]
    return _LEADING_NON_ALNUM.sub("", name)


class Chart(BaseModel):
    """A chart directory and its parsed descriptor.

    Immutable for the duration of a run; create with Chart.from_dir().

    Attributes:
        path: Chart directory as configured or discovered (e.g. "charts/foo").
        yaml: Parsed Chart.yaml.
        ci_values_paths: Sorted paths of ci/*-values.yaml override files.
    """

    model_config = ConfigDict(frozen=True)

    path: str
    yaml: ChartYaml
    ci_values_paths: list[str] = Field(default_factory=list)

    @classmethod
    def from_dir(cls, chart_path: str | Path) -> Chart:
        """Parse the chart at ``chart_path``.

        Raises:
            NotAChartError: If the directory has no readable Chart.yaml.
        """
        chart_yaml = read_chart_yaml(chart_path)
        ci_dir = Path(chart_path) / "ci"
        values = sorted(str(p) for p in ci_dir.glob(CI_VALUES_PATTERN) if p.is_file())
        return cls(path=str(chart_path), yaml=chart_yaml, ci_values_paths=values)

    @property
    def name(self) -> str:
        return self.yaml.name

    @property
    def version(self) -> str:
        return self.yaml.version

    @property
    def descriptor_path(self) -> str:
        return str(Path(self.path) / CHART_DESCRIPTOR)

    @property
    def values_path(self) -> str:
        return str(Path(self.path) / VALUES_FILE)

    def __str__(self) -> str:
        return f'{self.yaml.name} => (version: "{self.yaml.version}", path: "{self.path}")'

    def values_files_or_default(self) -> list[str]:
        """CI values files, or a single "" entry meaning "chart defaults"."""
        return list(self.ci_values_paths) or [""]

    def has_ci_values_file(self, path: str) -> bool:
        """Check whether a CI values file with the same base name exists."""
        file_name = Path(path).name
        return any(Path(f).name == file_name for f in self.ci_values_paths)

    def create_install_params(self, build_id: str = "") -> tuple[str, str]:
        """Generate a randomized release name and namespace for this chart.

        The release is derived from the chart directory name; the namespace
        additionally carries ``build_id`` if one is given. Both share a
        random suffix and are limited to 63 characters.

        Returns:
            Tuple of (release, namespace).
        """
        release = Path(self.path).name
        if release in ("", ".", "/"):
            release = self.yaml.name
        namespace = f"{release}-{build_id}" if build_id else release
        suffix = random_string(10)
        return (
            sanitize_name(f"{release}-{suffix}", MAX_NAME_LENGTH),
            sanitize_name(f"{namespace}-{suffix}", MAX_NAME_LENGTH),
        )
