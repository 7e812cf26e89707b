"""
Staging directories: build a directory tree next to its final location and
move it into place only once it is complete.

Readers never observe a half-written version directory, and a failed build
leaves the previous directory (if any) untouched.
"""
from __future__ import annotations

import logging
import shutil
from datetime import datetime, timezone
from pathlib import Path

from hotcode.errors import StorageError

logger = logging.getLogger(__name__)


def remove_tree(path: Path) -> None:
    """Delete a directory tree, raising StorageError on failure."""
    if not path.exists():
        return
    try:
        shutil.rmtree(path)
    except OSError as exc:
        raise StorageError(f"Could not remove directory {path}: {exc}") from exc


class StagingDirectory:
    """
    Scratch directory that is renamed onto ``final_path`` on success.

    Usage:
        with StagingDirectory(versions_dir / version) as staging:
            (staging.path / "index.html").write_bytes(data)
            # Renamed into place on success, deleted on exception
    """

    def __init__(self, final_path: Path, *, replace: bool = False) -> None:
        self.final_path = final_path
        self.replace = replace
        stamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S_%f")
        self.path = final_path.parent / f".{final_path.name}.staging-{stamp}"
        self.committed = False
        self.rolled_back = False

    def __enter__(self) -> StagingDirectory:
        try:
            self.path.mkdir(parents=True, exist_ok=False)
        except OSError as exc:
            raise StorageError(f"Could not create staging directory {self.path}: {exc}") from exc
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        if exc_type is not None:
            logger.warning(
                "Staging of %s failed with %s: %s - rolling back",
                self.final_path,
                exc_type.__name__,
                exc_val,
            )
            self.rollback()
            return False

        try:
            self.commit()
        except Exception as commit_exc:
            logger.error("Commit failed for %s: %s", self.final_path, commit_exc)
            self.rollback()
            raise
        return False

    def commit(self) -> None:
        if self.committed:
            return
        displaced = None
        if self.final_path.exists():
            if not self.replace:
                raise StorageError(f"Directory already exists: {self.final_path}")
            displaced = self.path.with_name(self.path.name + "-old")
            try:
                self.final_path.rename(displaced)
            except OSError as exc:
                raise StorageError(f"Could not move aside {self.final_path}: {exc}") from exc

        try:
            self.path.rename(self.final_path)
        except OSError as exc:
            if displaced is not None:
                displaced.rename(self.final_path)
            raise StorageError(f"Could not move {self.path} to {self.final_path}: {exc}") from exc

        self.committed = True
        if displaced is not None:
            try:
                shutil.rmtree(displaced)
            except OSError as exc:
                logger.warning("Failed to cleanup displaced directory %s: %s", displaced, exc)
        logger.debug("Committed staging directory %s", self.final_path)

    def rollback(self) -> None:
        if self.rolled_back:
            return
        try:
            shutil.rmtree(self.path)
        except FileNotFoundError:
            pass
        except OSError as exc:
            logger.error("Failed to remove staging directory %s: %s", self.path, exc)
        self.rolled_back = True
