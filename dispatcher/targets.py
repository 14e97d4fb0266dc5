"""
Target names and target groups.

Front-ends may ask for a group ("mainline") instead of listing every
architecture. Groups are expanded, duplicates dropped and the result sorted
so the same request always produces the same set of jobs.
"""

from config.settings import settings
from store.errors import InvalidTarget


def expand_targets(
    requested: list[str],
    known: list[str] | None = None,
    groups: dict[str, list[str]] | None = None,
) -> list[str]:
    known = known if known is not None else settings.KNOWN_TARGETS
    groups = groups if groups is not None else settings.TARGET_GROUPS

    expanded: set[str] = set()
    for name in requested:
        name = name.strip()
        if not name:
            continue
        if name in groups:
            expanded.update(groups[name])
        elif name in known:
            expanded.add(name)
        else:
            raise InvalidTarget(name, known + sorted(groups))

    if not expanded:
        raise InvalidTarget("", known + sorted(groups))
    return sorted(expanded)
