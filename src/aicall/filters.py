"""Include/exclude filter expressions for tools and context providers.

Grammar: names separated by commas or spaces. ``*`` includes everything,
``-name`` excludes a name, and ``-*`` excludes everything (it overrides any
other term). A blank expression includes everything. Names compare
case-insensitively.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
import re

log = logging.getLogger(__name__)

_SEPARATORS = re.compile(r"[,\s]+")


@dataclass(frozen=True)
class Filter:
    """Parsed filter expression."""

    exclude_all: bool = False
    include_all: bool = True
    #: casefolded name -> first spelling seen
    includes: dict[str, str] = field(default_factory=dict)
    excludes: dict[str, str] = field(default_factory=dict)

    @classmethod
    def parse(cls, raw: str | None) -> Filter:
        if raw is None or not raw.strip():
            return cls()

        parts = [p for p in _SEPARATORS.split(raw.strip()) if p]
        if "-*" in parts:
            return cls(exclude_all=True, include_all=False)

        includes: dict[str, str] = {}
        excludes: dict[str, str] = {}
        include_all = False
        for part in parts:
            if part.startswith("-"):
                name = part[1:]
                if name and name != "*":
                    excludes.setdefault(name.casefold(), name)
            elif part == "*":
                include_all = True
            else:
                includes.setdefault(part.casefold(), part)

        parsed = cls(
            exclude_all=False,
            include_all=include_all or not includes,
            includes=includes,
            excludes=excludes,
        )
        log.debug(
            "Parsed filter %r: include_all=%s include=%s exclude=%s",
            raw,
            parsed.include_all,
            sorted(includes.values()),
            sorted(excludes.values()),
        )
        return parsed

    def should_include(self, name: str) -> bool:
        key = name.casefold()
        if self.exclude_all or key in self.excludes:
            return False
        return self.include_all or key in self.includes

    def canonical(self) -> str:
        """Render the filter in its canonical form.

        ``-*``, ``*``, ``* -a -b`` or ``a,b -c``, with names sorted
        case-insensitively.
        """
        if self.exclude_all:
            return "-*"
        excluded = " ".join(f"-{name}" for name in _sorted_names(self.excludes))
        if self.include_all:
            return f"* {excluded}" if excluded else "*"
        included = ",".join(_sorted_names(self.includes))
        return f"{included} {excluded}" if excluded else included


def _sorted_names(names: dict[str, str]) -> list[str]:
    return [names[key] for key in sorted(names)]


def canonicalize(raw: str | None) -> str:
    """Parse *raw* and return its canonical rendering."""
    return Filter.parse(raw).canonical()
