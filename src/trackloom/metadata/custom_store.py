"""JSON-file backed store for user metadata overrides.

Users correct titles, artists and artwork by hand; those corrections are keyed
by the lower-cased file name plus the file size, so they follow a file across
folders but not across re-encodes.

File layout::

    {
      "version": "2.0",
      "entries": {
        "song.mp3_1234": {"title": "...", "saved_at": "...", "edit_count": 2}
      }
    }
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from trackloom.metadata.base import CustomMetadataStore
from trackloom.utils.json import DateTimeEncoder

logger = logging.getLogger(__name__)

STORE_VERSION = "2.0"
MAX_FIELD_LENGTH = 200
MAX_IMAGE_BYTES = 1024 * 1024

# Bookkeeping fields stripped from lookups.
_INTERNAL_FIELDS = ("saved_at", "edited_at", "edit_count", "version")


@dataclass
class ValidationReport:
    """Outcome of validating an override record."""

    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors


class MetadataValidationError(ValueError):
    """Raised when an override record fails validation."""

    def __init__(self, report: ValidationReport) -> None:
        """Initialize the error from a failed validation report."""
        super().__init__("; ".join(report.errors))
        self.report = report


def make_key(file_name: str, file_size: int) -> str:
    """Build the store key for a file."""
    return f"{file_name.strip().lower()}_{file_size}"


def validate_metadata(metadata: Dict[str, Any]) -> ValidationReport:
    """Check an override record before it is saved.

    A title is required; overly long text fields and very large inline
    artwork only produce warnings.
    """
    report = ValidationReport()
    title = metadata.get("title")
    if not isinstance(title, str) or not title.strip():
        report.errors.append("Title is required")
    for name in ("title", "artist", "album"):
        value = metadata.get(name)
        if isinstance(value, str) and len(value) > MAX_FIELD_LENGTH:
            report.warnings.append(
                f"{name.capitalize()} is very long (>{MAX_FIELD_LENGTH} chars)"
            )
    image = metadata.get("image")
    if isinstance(image, str) and image.startswith("data:"):
        if round(len(image) * 3 / 4) > MAX_IMAGE_BYTES:
            report.warnings.append("Album art is very large (>1MB)")
    return report


class JsonCustomMetadataStore(CustomMetadataStore):
    """Override store persisted as a single JSON document."""

    def __init__(self, path: Path) -> None:
        """Open (or lazily create) the store at *path*."""
        self.path = path
        self._entries: Dict[str, Dict[str, Any]] = self._load()

    def _load(self) -> Dict[str, Dict[str, Any]]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            logger.warning("Ignoring unreadable metadata store %s: %s", self.path, e)
            return {}
        if not isinstance(data, dict):
            logger.warning(
                "Ignoring metadata store %s: expected an object, got %s",
                self.path,
                type(data).__name__,
            )
            return {}
        if data.get("version") != STORE_VERSION:
            logger.info(
                "Migrating metadata store %s from v%s to v%s",
                self.path,
                data.get("version"),
                STORE_VERSION,
            )
        entries = data.get("entries", {})
        return entries if isinstance(entries, dict) else {}

    def _persist(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = {"version": STORE_VERSION, "entries": self._entries}
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(
            json.dumps(payload, cls=DateTimeEncoder, indent=2), encoding="utf-8"
        )
        tmp_path.replace(self.path)

    def save(
        self,
        file_name: str,
        file_size: int,
        metadata: Dict[str, Any],
        *,
        skip_validation: bool = False,
    ) -> ValidationReport:
        """Save overrides for a file.

        Args:
            file_name: Name of the audio file.
            file_size: Size of the audio file in bytes.
            metadata: Override fields (``title`` is required).
            skip_validation: Store the record even if it fails validation.

        Returns:
            The validation report (warnings are kept even on success).

        Raises:
            MetadataValidationError: If validation fails and is not skipped.
        """
        report = validate_metadata(metadata)
        if not report.valid and not skip_validation:
            raise MetadataValidationError(report)
        key = make_key(file_name, file_size)
        now = datetime.now()
        existing = self._entries.get(key)
        record = {k: v for k, v in metadata.items() if k not in _INTERNAL_FIELDS}
        record.update(
            saved_at=existing.get("saved_at", now) if existing else now,
            edited_at=now,
            edit_count=(existing.get("edit_count", 0) if existing else 0) + 1,
            version=STORE_VERSION,
        )
        self._entries[key] = record
        self._persist()
        return report

    def get(self, file_name: str, file_size: int) -> Optional[Dict[str, Any]]:
        """Return the public override fields for a file, or None."""
        record = self._entries.get(make_key(file_name, file_size))
        if record is None:
            return None
        return self._public(record)

    def lookup(self, file_name: str, file_size: int) -> Optional[Dict[str, Any]]:
        """Alias of :meth:`get` used by the loader."""
        return self.get(file_name, file_size)

    def has(self, file_name: str, file_size: int) -> bool:
        return make_key(file_name, file_size) in self._entries

    def delete(self, file_name: str, file_size: int) -> bool:
        """Remove the overrides for a file. Returns False if there were none."""
        key = make_key(file_name, file_size)
        if key not in self._entries:
            return False
        del self._entries[key]
        self._persist()
        return True

    def search(self, query: str) -> List[Dict[str, Any]]:
        """Case-insensitive search over title, artist and album."""
        needle = query.strip().lower()
        results = []
        for key, record in self._entries.items():
            haystack = " ".join(
                str(record.get(name) or "") for name in ("title", "artist", "album")
            ).lower()
            if needle in haystack:
                results.append({"key": key, **self._public(record)})
        return results

    def all(self) -> Dict[str, Dict[str, Any]]:
        """Every stored record, keyed by store key, without bookkeeping fields."""
        return {key: self._public(record) for key, record in self._entries.items()}

    @staticmethod
    def _public(record: Dict[str, Any]) -> Dict[str, Any]:
        return {k: v for k, v in record.items() if k not in _INTERNAL_FIELDS}
