"""Data models for track metadata and deep-analysis reports.

This module defines the provider-agnostic records that enrichment attaches to
an entry.
- TrackMetadata is what a metadata extractor returns (tags, artwork) after
  custom overrides have been merged in.
- AnalysisReport is the structured form of a "Deep Analysis" text sidecar.

Design:
- Fields mirror what the extractors and the analysis tool actually produce;
  everything beyond the title is optional.
- ``extra="allow"`` on TrackMetadata keeps override fields from the custom
  store that have no dedicated attribute.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class TrackMetadata(BaseModel):
    """Descriptive tags for one primary (audio) file."""

    model_config = ConfigDict(extra="allow")

    title: str
    """Track title. Falls back to the file name without extension."""

    artist: str = "Unknown Artist"
    """Performing artist."""

    album: str = "Unknown Album"
    """Album the track belongs to."""

    year: Optional[int] = None
    """Release year, when tagged."""

    genre: Optional[str] = None
    """Genre tag, when present."""

    track: Optional[int] = None
    """Track number within the album."""

    image: Optional[str] = None
    """Artwork reference (URL or data URI)."""

    has_metadata: bool = False
    """True when the values came from real tags rather than filename defaults."""

    is_loading: bool = False
    """True while the entry is a phase-1 stub awaiting enrichment."""

    is_custom: bool = False
    """True when user overrides from the custom metadata store were applied."""


class DynamicRange(BaseModel):
    """Dynamics block of an analysis report."""

    crest_factor: Optional[float] = None
    classification: Optional[str] = None
    peak: Optional[float] = None
    rms: Optional[float] = None


class FrequencyBands(BaseModel):
    """Energy share per frequency band, as fractions in [0, 1]."""

    sub_bass: Optional[float] = None
    bass: Optional[float] = None
    low_mid: Optional[float] = None
    midrange: Optional[float] = None
    presence: Optional[float] = None
    brilliance: Optional[float] = None


class AnalysisReport(BaseModel):
    """Structured result of parsing a deep-analysis text sidecar.

    Percentages from the report are stored as fractions (``87%`` -> ``0.87``).
    """

    duration: Optional[int] = None
    """Duration in whole seconds."""

    bpm: Optional[int] = None
    bpm_confidence: Optional[str] = None
    key: Optional[str] = None
    mode: Optional[str] = None
    key_confidence: Optional[str] = None
    tempo: Optional[str] = None
    genre: Optional[str] = None
    mood: Optional[str] = None

    energy: Optional[float] = None
    loudness_lufs: Optional[float] = None
    loudness: Optional[float] = None
    danceability: Optional[float] = None
    valence: Optional[float] = None
    speechiness: Optional[float] = None
    acousticness: Optional[float] = None
    instrumentalness: Optional[float] = None

    spectral_centroid: Optional[float] = None
    spectral_rolloff: Optional[float] = None
    spectral_flux: Optional[float] = None
    zero_crossing_rate: Optional[float] = None
    vocal_prominence: Optional[float] = None

    onset_rate: Optional[float] = None
    rhythmic_complexity: Optional[str] = None
    dynamic_range: Optional[DynamicRange] = None
    frequency_bands: Optional[FrequencyBands] = None

    is_vintage: Optional[bool] = None

    extra: dict[str, str] = Field(default_factory=dict)
    """Unrecognised ``Key: value`` lines, kept verbatim."""
