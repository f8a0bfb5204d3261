"""Mutation ledger: paths changed by file edits, per repository.

``git-stage`` stages exactly what the ledger holds for the repository, so
files that were already dirty before the run are never swept into a commit.
Each repository is written by one worker at a time and no method awaits,
so the ledger needs no lock.
"""

from collections.abc import Iterable


class MutationLedger:
    """Ordered, deduplicated record of touched paths keyed by repository."""

    def __init__(self) -> None:
        self._paths: dict[str, dict[str, None]] = {}

    def record(self, repository: str, paths: Iterable[str]) -> None:
        recorded = self._paths.setdefault(repository, {})
        for path in paths:
            recorded[path] = None

    def paths(self, repository: str) -> list[str]:
        return list(self._paths.get(repository, {}))

    def has_changes(self, repository: str) -> bool:
        return bool(self._paths.get(repository))
