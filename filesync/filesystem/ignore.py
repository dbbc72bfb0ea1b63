"""Parsing and matching of ``.syncignore`` rules."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

SYNCIGNORE_FILE = ".syncignore"


def compile_pattern(pattern: str) -> re.Pattern[str]:
    """Compile one ignore pattern into a regex anchored at the path start.

    ``*`` matches any run of characters, including ``/``.  Everything else is
    literal.  A pattern ending in ``/`` matches every path below that prefix;
    any other pattern must match the whole path or one of its leading
    directories (so ``build`` excludes ``build/out.o`` but not ``builder.py``).
    """
    body = ".*".join(re.escape(part) for part in pattern.split("*"))
    if pattern.endswith("/"):
        return re.compile(body)
    return re.compile(f"{body}(?:/|$)")


@dataclass
class IgnoreRuleSet:
    """Ordered ignore patterns loaded from a directory's ``.syncignore``."""

    patterns: list[str] = field(default_factory=list)
    _compiled: list[re.Pattern[str]] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        self._compiled = [compile_pattern(p) for p in self.patterns]

    @classmethod
    def parse(cls, text: str) -> IgnoreRuleSet:
        """Build a rule set from ignore-file text: one pattern per line."""
        patterns = [line.strip() for line in text.splitlines()]
        return cls([p for p in patterns if p])

    def matches(self, relative_path: str) -> bool:
        """Return True if the relative POSIX path is excluded.

        The ignore file itself is always excluded, wherever it sits in the tree.
        """
        if relative_path.rsplit("/", 1)[-1] == SYNCIGNORE_FILE:
            return True
        return any(regex.match(relative_path) for regex in self._compiled)


def load_ignore_rules(directory: Path) -> IgnoreRuleSet:
    """Load ``.syncignore`` from ``directory``; an absent file yields no patterns."""
    path = directory / SYNCIGNORE_FILE
    if not path.is_file():
        return IgnoreRuleSet()
    rules = IgnoreRuleSet.parse(path.read_text(encoding="utf-8", errors="replace"))
    logger.debug("Loaded %d ignore pattern(s) from %s", len(rules.patterns), path)
    return rules
