"""File edit application for the ``files-apply`` action.

Modes:
    overwrite          write the content, skipped when the file already holds it
    skip-if-exists     write only when the file does not exist
    append-if-missing  append each template line the file lacks (exact line
                       match, so ``.env`` is not satisfied by ``.envrc``)
    replace            substitute ``find`` with ``replace`` in every file the
                       path/glob patterns select

Each helper returns the repository-relative paths it actually changed; the
pipeline records them in the mutation ledger.
"""

import os
from pathlib import Path

import aiofiles
import structlog

from repo_fleet.engine.tasks import FileEdit
from repo_fleet.enums import FileMode

log = structlog.get_logger(__name__)

EXCLUDED_DIRECTORIES = {".git"}


def append_missing_lines(existing: str, template: str) -> str:
    """Append every template line not already present as a whole line.

    Existing content is never modified. Lines are compared exactly, with
    whitespace preserved; blank template lines are ignored. Each missing
    line is appended once even if the template repeats it.
    """
    present = set(existing.splitlines())
    missing: list[str] = []
    for line in template.splitlines():
        if not line.strip() or line in present:
            continue
        present.add(line)
        missing.append(line)

    if not missing:
        return existing

    prefix = existing
    if prefix and not prefix.endswith("\n"):
        prefix += "\n"
    return prefix + "\n".join(missing) + "\n"


def resolve_replace_targets(root: Path, patterns: list[str]) -> list[Path]:
    """Files under ``root`` selected by glob patterns (``**`` is recursive).

    Anything inside ``.git`` is excluded. Results are sorted and unique.
    """
    selected: set[Path] = set()
    for pattern in patterns:
        for candidate in root.glob(pattern):
            relative = candidate.relative_to(root)
            if EXCLUDED_DIRECTORIES.intersection(relative.parts):
                continue
            if candidate.is_file():
                selected.add(candidate)
    return sorted(selected)


async def _read(path: Path) -> str:
    async with aiofiles.open(path, encoding="utf-8") as handle:
        return str(await handle.read())


async def _write(path: Path, content: str, permissions: int | None = None) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    async with aiofiles.open(path, "w", encoding="utf-8") as handle:
        await handle.write(content)
    if permissions is not None:
        os.chmod(path, permissions)


async def apply_file_edit(root: Path, edit: FileEdit, content: str) -> list[str]:
    """Apply one edit inside the repository at ``root``.

    Args:
        root: Repository working tree
        edit: The edit definition
        content: Rendered content (already templated)

    Returns:
        Repository-relative paths that changed
    """
    if edit.mode == FileMode.REPLACE:
        return await _apply_replace(root, edit)

    assert edit.path is not None
    target = root / edit.path
    exists = target.is_file()

    if edit.mode == FileMode.SKIP_IF_EXISTS and exists:
        log.debug("file_edit_skipped", path=edit.path, reason="exists")
        return []

    if edit.mode == FileMode.APPEND_IF_MISSING:
        existing = await _read(target) if exists else ""
        updated = append_missing_lines(existing, content)
        if exists and updated == existing:
            return []
        await _write(target, updated, None if exists else edit.permissions)
        return [edit.path]

    if exists and await _read(target) == content:
        log.debug("file_edit_skipped", path=edit.path, reason="unchanged")
        return []
    await _write(target, content, edit.permissions)
    return [edit.path]


async def _apply_replace(root: Path, edit: FileEdit) -> list[str]:
    assert edit.find is not None
    changed = []
    for target in resolve_replace_targets(root, edit.targets):
        try:
            original = await _read(target)
        except UnicodeDecodeError:
            log.debug("file_edit_skipped", path=str(target), reason="binary")
            continue
        if edit.find not in original:
            continue
        await _write(target, original.replace(edit.find, edit.replace))
        changed.append(target.relative_to(root).as_posix())
    return changed
