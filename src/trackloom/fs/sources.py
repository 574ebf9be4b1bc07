"""Raw file adapters and folder scanning.

This module provides the concrete RawFile implementations the loader is fed
with:
- LocalFile wraps a path on disk; blocking reads run in a worker thread.
- MemoryFile wraps bytes already held in memory (uploads, tests).
- scan_folder walks a directory and returns LocalFile handles for every
  regular file, leaving classification to the loader.
"""

import asyncio
import logging
import mimetypes
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from trackloom.core.errors import PrimaryFileReadError

logger = logging.getLogger(__name__)


def is_hidden(path: Path) -> bool:
    """Check if a path is hidden (any component starts with a dot).

    Args:
        path: The path to check

    Returns:
        True if the path is hidden, False otherwise
    """
    return any(part.startswith(".") for part in path.parts)


@dataclass
class LocalFile:
    """A file on the local filesystem."""

    path: Path
    name: str = ""
    size: int = 0
    last_modified: datetime = field(default_factory=datetime.now)
    mime_hint: Optional[str] = None
    closed: bool = False

    @classmethod
    def from_path(cls, path: Path) -> "LocalFile":
        """Stat *path* and build a handle for it.

        Raises:
            PrimaryFileReadError: If the file cannot be stat'ed.
        """
        try:
            stat = path.stat()
        except OSError as e:
            raise PrimaryFileReadError(path.name, str(e)) from e
        mime_hint, _ = mimetypes.guess_type(path.name)
        return cls(
            path=path.absolute(),
            name=path.name,
            size=stat.st_size,
            last_modified=datetime.fromtimestamp(stat.st_mtime),
            mime_hint=mime_hint,
        )

    async def read_bytes(self) -> bytes:
        """Read the whole file.

        Raises:
            PrimaryFileReadError: If the file cannot be read.
        """
        try:
            return await asyncio.to_thread(self.path.read_bytes)
        except OSError as e:
            raise PrimaryFileReadError(self.name, str(e)) from e

    async def read_text(self, encoding: str = "utf-8") -> str:
        """Read the whole file as text, replacing undecodable bytes."""
        data = await self.read_bytes()
        return data.decode(encoding, errors="replace")

    def close(self) -> None:
        self.closed = True


@dataclass
class MemoryFile:
    """A file whose contents are already in memory."""

    name: str
    data: bytes = b""
    mime_hint: Optional[str] = None
    last_modified: datetime = field(default_factory=datetime.now)
    size: int = -1
    closed: bool = False

    def __post_init__(self) -> None:
        if self.size < 0:
            self.size = len(self.data)

    async def read_bytes(self) -> bytes:
        if self.closed:
            raise PrimaryFileReadError(self.name, "file handle was released")
        return self.data

    async def read_text(self, encoding: str = "utf-8") -> str:
        data = await self.read_bytes()
        return data.decode(encoding, errors="replace")

    def close(self) -> None:
        self.closed = True


def scan_folder(
    root: Path, *, recursive: bool = False, include_hidden: bool = False
) -> List[LocalFile]:
    """Collect every regular file under *root* as a LocalFile.

    Args:
        root: Directory to scan.
        recursive: Descend into subdirectories.
        include_hidden: Include dot-files and dot-directories.

    Returns:
        Handles in a stable (sorted path) order. Files that cannot be stat'ed
        are skipped with a warning.

    Raises:
        FileNotFoundError: If the directory doesn't exist
        ValueError: If the path is not a directory
    """
    if not root.exists():
        raise FileNotFoundError(f"Directory does not exist: {root}")
    if not root.is_dir():
        raise ValueError(f"Path is not a directory: {root}")

    root = root.absolute()
    candidates = root.rglob("*") if recursive else root.iterdir()
    files: List[LocalFile] = []
    for item in sorted(candidates):
        if not include_hidden and is_hidden(item.relative_to(root)):
            continue
        if not item.is_file():
            continue
        try:
            files.append(LocalFile.from_path(item))
        except PrimaryFileReadError as e:
            logger.warning("Couldn't access %s: %s", item, e)
    logger.debug("Found %d files in %s", len(files), root)
    return files
