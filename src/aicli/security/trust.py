"""Persistent store of trusted folders.

A folder is trusted when it, or one of its ancestors, has been explicitly
trusted by the user. The store is a JSON file; every write re-reads the file
under an exclusive lock and replaces it atomically, so a second invocation
never observes a half-written store.
"""

import fcntl
import json
import logging
import os
import tempfile
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Iterator

from pydantic import BaseModel, Field, ValidationError

from aicli.exceptions import ConfigError, TrustViolationError

logger = logging.getLogger(__name__)

STORE_VERSION = 1


class TrustEntry(BaseModel):
    """A single trusted folder."""

    path: Path = Field(..., description="Canonical absolute directory path")
    trusted_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="When the folder was trusted",
    )

    def covers(self, path: Path) -> bool:
        """Check if this entry trusts ``path`` (itself or a descendant)."""
        return path == self.path or self.path in path.parents


class TrustStoreData(BaseModel):
    """On-disk layout of the trust store."""

    version: int = Field(default=STORE_VERSION)
    folders: list[TrustEntry] = Field(default_factory=list)


def canonicalize(path: str | Path) -> Path:
    """Return the absolute, symlink-resolved form of a path."""
    return Path(path).expanduser().resolve()


def is_restricted(path: Path) -> bool:
    """Check if a path is too broad to ever be trusted.

    The filesystem root and the user's home directory itself are restricted;
    trusting them would trust nearly everything.
    """
    path = canonicalize(path)
    return path == Path(path.anchor) or path == canonicalize(Path.home())


class TrustStore:
    """File-backed set of trusted folders.

    Attributes:
        path: Location of the JSON store
    """

    def __init__(self, path: Path):
        """Initialize the store.

        Args:
            path: JSON file holding the trusted folders (created on first write)
        """
        self.path = path
        self._lock_path = path.with_name(path.name + ".lock")

    def entries(self) -> list[TrustEntry]:
        """List all trusted folders sorted by path.

        Raises:
            ConfigError: If the store is unreadable or corrupt
        """
        return sorted(self._load().folders, key=lambda e: str(e.path))

    def is_trusted(self, path: str | Path) -> bool:
        """Check if a folder is covered by a trusted entry.

        Args:
            path: Folder to check

        Returns:
            bool: True if the folder or one of its ancestors is trusted

        Raises:
            ConfigError: If the store is unreadable or corrupt
        """
        target = canonicalize(path)
        return any(entry.covers(target) for entry in self._load().folders)

    def trust(self, path: str | Path) -> TrustEntry:
        """Trust a folder. Trusting an already-trusted folder is a no-op.

        Args:
            path: Folder to trust

        Returns:
            TrustEntry: The new or existing entry

        Raises:
            TrustViolationError: If the folder is restricted
            ConfigError: If the store is unreadable or corrupt
        """
        target = canonicalize(path)
        if is_restricted(target):
            raise TrustViolationError(target, f"Refusing to trust restricted location: {target}")

        with self._locked():
            data = self._load()
            for entry in data.folders:
                if entry.path == target:
                    logger.debug(f"Folder already trusted: {target}")
                    return entry

            entry = TrustEntry(path=target)
            data.folders.append(entry)
            self._write(data)

        logger.info(f"Folder '{target}' is now trusted")
        return entry

    def revoke(self, path: str | Path) -> bool:
        """Remove the exact entry for a folder.

        Args:
            path: Folder to revoke

        Returns:
            bool: True if an entry was removed, False if there was none

        Raises:
            ConfigError: If the store is unreadable or corrupt
        """
        target = canonicalize(path)

        with self._locked():
            data = self._load()
            remaining = [e for e in data.folders if e.path != target]
            if len(remaining) == len(data.folders):
                return False
            data.folders = remaining
            self._write(data)

        logger.info(f"Folder '{target}' is no longer trusted")
        return True

    def _load(self) -> TrustStoreData:
        if not self.path.exists():
            return TrustStoreData()

        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError) as e:
            raise ConfigError(f"Cannot read trust store: {e}", self.path) from e
        except json.JSONDecodeError as e:
            raise ConfigError(f"Trust store is not valid JSON: {e}", self.path) from e

        # Older releases stored a bare list of folder strings.
        folders = raw.get("folders") if isinstance(raw, dict) else None
        if isinstance(folders, list) and folders and all(isinstance(f, str) for f in folders):
            raw = {"version": STORE_VERSION, "folders": [{"path": f} for f in raw["folders"]]}

        try:
            data = TrustStoreData.model_validate(raw)
        except ValidationError as e:
            raise ConfigError(f"Trust store is corrupt: {e.error_count()} invalid field(s)", self.path) from e

        # Entries must be ones ``trust`` could have written.
        for entry in data.folders:
            if not entry.path.is_absolute() or is_restricted(entry.path):
                raise ConfigError(f"Trust store lists a folder that cannot be trusted: {entry.path}", self.path)
        return data

    def _write(self, data: TrustStoreData) -> None:
        content = data.model_dump_json(indent=2)
        fd, tmp_path = tempfile.mkstemp(prefix=self.path.stem + "_", suffix=".tmp", dir=self.path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
        except BaseException:
            Path(tmp_path).unlink(missing_ok=True)
            raise

    @contextmanager
    def _locked(self) -> Iterator[None]:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            lock_file = open(self._lock_path, "a")
        except OSError as e:
            raise ConfigError(f"Cannot lock trust store: {e}", self.path) from e

        with lock_file:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)
