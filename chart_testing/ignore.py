"""Chart-level ignore rules (.helmignore).

Used by diff-based selection to drop charts whose only changes are files
the chart itself ignores (docs, CI scaffolding, editor files, ...).

Rule syntax, one pattern per line:
- blank lines and lines starting with "#" are skipped
- a leading "!" re-includes paths matched by earlier rules
- a trailing "/" restricts the rule to directories
- a pattern containing "/" is matched against the whole relative path,
  segment by segment ("**" is one segment, as in Helm); otherwise it is
  matched against the base name
The last matching rule wins. A matched directory excludes everything below it.
"""

from __future__ import annotations

import fnmatch
from dataclasses import dataclass, field
from pathlib import Path

HELMIGNORE = ".helmignore"
DEFAULT_RULES = ("templates/.?*",)


@dataclass(frozen=True)
class IgnoreRule:
    pattern: str
    negate: bool = False
    dir_only: bool = False

    @classmethod
    def parse(cls, line: str) -> IgnoreRule | None:
        text = line.strip()
        if not text or text.startswith("#"):
            return None
        negate = text.startswith("!")
        if negate:
            text = text[1:]
        dir_only = text.endswith("/")
        text = text.strip("/")
        if not text:
            return None
        return cls(pattern=text, negate=negate, dir_only=dir_only)

    def matches(self, path: str, is_dir: bool) -> bool:
        if self.dir_only and not is_dir:
            return False
        if "/" not in self.pattern:
            return fnmatch.fnmatchcase(path.rsplit("/", 1)[-1], self.pattern)
        pattern_parts = self.pattern.split("/")
        path_parts = path.split("/")
        if len(pattern_parts) != len(path_parts):
            return False
        return all(
            fnmatch.fnmatchcase(part, pat)
            for part, pat in zip(path_parts, pattern_parts)
        )


@dataclass
class IgnoreRules:
    rules: list[IgnoreRule] = field(default_factory=list)

    @classmethod
    def parse(cls, text: str) -> IgnoreRules:
        rules = [r for r in (IgnoreRule.parse(line) for line in text.splitlines()) if r]
        return cls(rules=rules)

    @classmethod
    def load(cls, chart_dir: str | Path) -> IgnoreRules:
        """Load ``<chart_dir>/.helmignore`` plus the default rules.

        A missing file yields just the defaults; an unreadable one raises OSError.
        """
        ignore_file = Path(chart_dir) / HELMIGNORE
        if ignore_file.is_file():
            rules = cls.parse(ignore_file.read_text())
        else:
            rules = cls()
        rules.add_defaults()
        return rules

    def add_defaults(self) -> None:
        for line in DEFAULT_RULES:
            rule = IgnoreRule.parse(line)
            if rule:
                self.rules.append(rule)

    def ignores(self, path: str, is_dir: bool = False) -> bool:
        ignored = False
        for rule in self.rules:
            if rule.matches(path, is_dir):
                ignored = not rule.negate
        return ignored

    def filter_files(self, files: list[str]) -> list[str]:
        """Return the files (relative to the chart root) not ignored by these rules.

        Order is preserved and duplicates are dropped.
        """
        kept: list[str] = []
        for file in files:
            path = Path(file).as_posix().strip("/")
            parts = path.split("/")
            parents = ("/".join(parts[:i]) for i in range(1, len(parts)))
            if any(self.ignores(parent, is_dir=True) for parent in parents):
                continue
            if self.ignores(path) or path in kept:
                continue
            kept.append(path)
        return kept
