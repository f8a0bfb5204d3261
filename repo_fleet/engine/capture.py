"""Capture/restore store.

Per-run, per-repository map from a variable name to a captured branch name
or commit id. Values are write-once: a second capture under the same name
keeps the first value unless the capture asks to overwrite.

Writes and lookups take the run-wide lock owned by RunState, the same lock
the confirmation session holds, so a capture never races a prompt answer.
"""

import asyncio
from dataclasses import dataclass

import structlog

from repo_fleet.enums import CaptureKind
from repo_fleet.exceptions import CaptureError

log = structlog.get_logger(__name__)


@dataclass(frozen=True)
class CapturedValue:
    """A value recorded for one repository.

    Attributes:
        name: Variable name
        kind: branch or commit
        value: Branch name or commit id
        overwritten: Whether this value replaced an earlier capture
    """

    name: str
    kind: CaptureKind
    value: str
    overwritten: bool = False


class CaptureStore:
    """Store of captured values keyed by repository.

    Args:
        lock: Run-wide lock, a private one when omitted
    """

    def __init__(self, lock: asyncio.Lock | None = None) -> None:
        self._values: dict[str, dict[str, CapturedValue]] = {}
        self._lock = lock or asyncio.Lock()

    async def record(
        self,
        repository: str,
        name: str,
        kind: CaptureKind,
        value: str,
        overwrite: bool = False,
    ) -> CapturedValue:
        """Record ``value`` under ``name`` for ``repository``.

        Returns:
            The value now stored, which is the earlier capture when one
            exists and ``overwrite`` is False
        """
        async with self._lock:
            values = self._values.setdefault(repository, {})
            existing = values.get(name)
            if existing is not None and not overwrite:
                retained = existing
            else:
                retained = CapturedValue(name, kind, value.strip(), overwritten=existing is not None)
                values[name] = retained

        if retained is existing:
            log.debug("capture_retained", repository=repository, variable=name, value=existing.value)
        else:
            log.debug("capture_recorded", repository=repository, variable=name, kind=kind.value, value=retained.value)
        return retained

    async def lookup(self, repository: str, name: str) -> CapturedValue | None:
        async with self._lock:
            return self._values.get(repository, {}).get(name)

    async def require(self, repository: str, name: str) -> CapturedValue:
        """Captured value for a restore.

        Raises:
            CaptureError: If nothing was captured under ``name``
        """
        captured = await self.lookup(repository, name)
        if captured is None:
            raise CaptureError(f"no captured value named {name!r} for {repository}")
        return captured

    def snapshot(self, repository: str) -> dict[str, str]:
        """Name to value mapping for templates.

        Runs without awaiting, so no other coroutine can interleave with it.
        """
        return {name: captured.value for name, captured in self._values.get(repository, {}).items()}
