"""Loader options.

This module defines the configuration recognised by the file loading manager.
- Every option has a sensible default, so ``LoaderOptions()`` is usable as is.
- ``from_settings`` resolves each option through the layered config (CLI >
  environment > config.toml > default) and validates the result.
"""

from typing import Any, List

from pydantic import BaseModel, ConfigDict, Field, field_validator

from trackloom.utils.config import resolve_setting

DEFAULT_AUDIO_FORMATS = [
    "mp3",
    "wav",
    "ogg",
    "m4a",
    "flac",
    "aac",
    "wma",
    "opus",
    "webm",
]

SETTINGS_PREFIX = "loader"


class LoaderOptions(BaseModel):
    """Options for a file loading manager."""

    model_config = ConfigDict(validate_assignment=True)

    max_concurrent: int = Field(default=3, ge=1)
    """Ceiling on outstanding enrichment operations in standard mode."""

    retry_attempts: int = Field(default=2, ge=0)
    """Retries allowed after the first attempt of a transiently failing file."""

    retry_base_delay_ms: int = Field(default=1000, ge=0)
    """Backoff base; retry n waits about base * 2^(n-1)."""

    retry_max_delay_ms: int = Field(default=30_000, ge=0)
    """Upper bound on a single backoff delay."""

    fuzzy_match_threshold: float = Field(default=0.8, ge=0.0, le=1.0)
    """Minimum similarity for a fuzzy sidecar match."""

    chunk_size: int = Field(default=5, ge=1)
    """Files per chunk in standard mode."""

    progressive_mode: bool = False
    """Deliver stubs first and enrich afterwards."""

    priority_count: int = Field(default=3, ge=0)
    """Entries enriched in the foreground priority phase."""

    duration_timeout_ms: int = Field(default=3000, ge=0)
    """Budget for one duration probe; a timeout yields duration 0."""

    background_yield_ms: int = Field(default=0, ge=0)
    """Pause between background items, handing control back to the loop."""

    audio_formats: List[str] = Field(default_factory=lambda: list(DEFAULT_AUDIO_FORMATS))
    """Extensions (without dot) classified as primary files."""

    @field_validator("audio_formats")
    @classmethod
    def _normalize_formats(cls, value: List[str]) -> List[str]:
        return [fmt.strip().lower().lstrip(".") for fmt in value if fmt.strip()]

    @property
    def max_attempts(self) -> int:
        """Total attempts per file: the first one plus the retries."""
        return self.retry_attempts + 1

    @classmethod
    def from_settings(cls, **cli_values: Any) -> "LoaderOptions":
        """Resolve every option from CLI values, env, config file and defaults.

        Args:
            **cli_values: Option values given on the command line. ``None``
                means "not given".

        Returns:
            Validated LoaderOptions.
        """
        unknown = set(cli_values) - set(cls.model_fields)
        if unknown:
            raise TypeError(f"Unknown loader option(s): {', '.join(sorted(unknown))}")
        defaults = cls()
        resolved = {
            name: resolve_setting(
                f"{SETTINGS_PREFIX}.{name}",
                default=getattr(defaults, name),
                cli_value=cli_values.get(name),
            )
            for name in cls.model_fields
        }
        return cls(**resolved)
