"""Data models for the chart tester.

These Pydantic models represent the descriptor data and per-install
identifiers passed between the selection, validation and install stages.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Maintainer(BaseModel):
    """A chart maintainer as declared in Chart.yaml.

    Attributes:
        name: Account name on the hosting domain (validated when
              maintainer validation is enabled).
        email: Optional contact address.
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    name: str = ""
    email: str = ""

    @field_validator("name", "email", mode="before")
    @classmethod
    def _none_is_empty(cls, value: Any) -> Any:
        return "" if value is None else value


class ChartYaml(BaseModel):
    """The subset of Chart.yaml the tester relies on.

    Attributes:
        name: Declared chart name.
        version: Declared chart version (a SemVer string).
        deprecated: Whether the chart is marked deprecated.
        maintainers: Declared maintainers, possibly empty.
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    name: str = ""
    version: str = ""
    deprecated: bool = False
    maintainers: list[Maintainer] = Field(default_factory=list)

    @field_validator("name", "version", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> Any:
        # YAML reads `version: 1.0` as a float
        if value is None:
            return ""
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator("maintainers", mode="before")
    @classmethod
    def _none_is_empty(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator("deprecated", mode="before")
    @classmethod
    def _none_is_false(cls, value: Any) -> Any:
        return False if value is None else value


class InstallConfig(BaseModel):
    """Identifiers and cleanup action for a single install attempt.

    Attributes:
        namespace: Namespace the release is installed into.
        release: Randomly suffixed release name.
        release_selector: Label selector matching the release's workloads.
        owns_namespace: True when the namespace was generated for this
              attempt and must be created and deleted with it.
        cleanup: Action run exactly once after the attempt (diagnostics,
              uninstall, namespace deletion).
    """

    model_config = ConfigDict(frozen=True)

    namespace: str
    release: str
    release_selector: str = ""
    owns_namespace: bool = True
    cleanup: Callable[[], None]
