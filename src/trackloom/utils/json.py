"""JSON serialization helpers for trackloom.

This module provides helpers for serializing objects to JSON, especially for
types not natively supported by the standard library.
- Used by the custom metadata store and the CLI's ``--json`` output.
- datetime objects are stored in ISO 8601 format.
- Path objects are serialized as strings.
- pydantic models are serialized through ``model_dump(mode="json")``.
"""

import json
from datetime import datetime
from pathlib import Path
from typing import Any, Self

from pydantic import BaseModel


class DateTimeEncoder(json.JSONEncoder):
    """Custom JSON encoder for trackloom.

    Handles serialization of datetime, Path and pydantic model objects.
    """

    def default(self: Self, obj: object) -> Any:  # noqa: ANN401
        """Convert objects to JSON-serializable format.

        Args:
            obj: Object to serialize.

        Returns:
            JSON-serializable representation of the object.
        """
        if isinstance(obj, datetime):
            return obj.isoformat()
        if isinstance(obj, Path):
            return str(obj)
        if isinstance(obj, BaseModel):
            return obj.model_dump(mode="json")
        # Let the base class default method handle it or raise TypeError
        return super().default(obj)
