"""Remove the files a processing attempt leaves behind."""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class CleanupResult:
    removed: list[Path] = field(default_factory=list)
    errors: list[tuple[Path, str]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


def temp_paths_for(archive_path: Path) -> list[Path]:
    """Partial-download and scratch names that may sit next to a downloaded archive."""

    name = archive_path.name
    return [
        archive_path.with_name(f"{name}.tmp"),
        archive_path.with_name(f"{name}.download"),
        archive_path.with_name(f".temp_{name}"),
    ]


def _remove(path: Path, result: CleanupResult) -> None:
    try:
        if path.is_dir() and not path.is_symlink():
            shutil.rmtree(path)
        elif path.exists() or path.is_symlink():
            path.unlink()
        else:
            return
    except OSError as exc:
        logger.warning("Could not remove %s: %s", path, exc)
        result.errors.append((path, str(exc)))
        return
    result.removed.append(path)


def cleanup_after_attempt(
    archive_path: Path, scratch_dir: Path | None, *, keep: bool
) -> CleanupResult:
    """Delete the scratch directory and, unless *keep* is set, the archive and its temp files.

    Runs after success and failure alike. Errors are logged per path and collected in
    the result; nothing is raised.
    """

    result = CleanupResult()
    if scratch_dir is not None:
        _remove(scratch_dir, result)
    if keep:
        logger.debug("Keeping archive %s", archive_path)
    else:
        _remove(archive_path, result)
    for temp_path in temp_paths_for(archive_path):
        _remove(temp_path, result)
    if result.removed:
        logger.debug("Cleaned up %d paths for %s", len(result.removed), archive_path.name)
    return result


__all__ = ["CleanupResult", "cleanup_after_attempt", "temp_paths_for"]
