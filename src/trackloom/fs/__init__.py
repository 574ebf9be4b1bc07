"""Filesystem adapters for trackloom."""

from trackloom.fs.sources import LocalFile, MemoryFile, scan_folder

__all__ = ["LocalFile", "MemoryFile", "scan_folder"]
