"""Parser for "Deep Analysis" text reports.

The analysis tool writes one ``Label: value`` pair per line, for example::

    Duration: 3:45
    BPM: 128 (High confidence)
    Key: A minor (Medium confidence)
    Mood: Happy/Energetic
    Energy: 87.5% (-8.2 LUFS)
    Sub-Bass (20-60 Hz): 12.0%

Percentages become fractions, times become seconds, and the free-form mood is
normalised to one of five moods. Lines that look like ``Label: value`` but are
not recognised end up in ``AnalysisReport.extra``.
"""

import logging
import re
from typing import Dict, Optional

from trackloom.metadata.base import AnalysisTextParser
from trackloom.metadata.models import AnalysisReport, DynamicRange, FrequencyBands

logger = logging.getLogger(__name__)

PRIMARY_MOODS = ("energetic", "bright", "calm", "dark", "neutral")

_PERCENT = re.compile(r"(\d+\.?\d*)%")
_LUFS = re.compile(r"\(([-\d.]+) LUFS\)")
_BPM = re.compile(r"BPM:\s*(\d+)")
_KEY = re.compile(r"^(\w#?) (major|minor)")
_LABEL = re.compile(r"^([A-Za-z][\w \-()/]*?):\s*(.*)$")

# Report lines for percentage metrics, by line prefix.
_PERCENT_FIELDS = {
    "Loudness:": "loudness",
    "Danceability:": "danceability",
    "Valence (Positivity):": "valence",
    "Speechiness:": "speechiness",
    "Acousticness:": "acousticness",
    "Instrumentalness:": "instrumentalness",
}

# Lines whose value starts with a plain number, e.g. "Onset Rate: 3.2 /s".
_NUMBER_FIELDS = (
    "Spectral Centroid:",
    "Spectral Rolloff:",
    "Spectral Flux:",
    "Zero-Crossing Rate:",
    "Vocal Prominence:",
    "Onset Rate:",
)

_BAND_FIELDS = {
    "Sub-Bass": "sub_bass",
    "Bass (60-200": "bass",
    "Low-Mid": "low_mid",
    "Midrange": "midrange",
    "Presence": "presence",
    "Brilliance": "brilliance",
}


def parse_time(value: str) -> int:
    """Convert ``m:ss`` or ``h:mm:ss`` to seconds; anything else is 0."""
    digits = re.sub(r"[^\d:]", "", value.strip())
    parts = digits.split(":")
    try:
        if len(parts) == 2:
            return int(parts[0]) * 60 + int(parts[1])
        if len(parts) == 3:
            return int(parts[0]) * 3600 + int(parts[1]) * 60 + int(parts[2])
    except ValueError:
        return 0
    return 0


def normalize_mood(text: str) -> str:
    """Map a free-form mood description onto one of PRIMARY_MOODS.

    Slash-separated parts are tried first, then an exact match, then a
    substring search. Returns ``"Neutral"`` when nothing matches.
    """
    lowered = text.strip().lower()
    if "/" in lowered:
        for part in lowered.split("/"):
            if part.strip() in PRIMARY_MOODS:
                return part.strip().capitalize()
    if lowered in PRIMARY_MOODS:
        return lowered.capitalize()
    for mood in PRIMARY_MOODS:
        if mood in lowered:
            return mood.capitalize()
    logger.debug("No mood term found in %r, defaulting to Neutral", text)
    return "Neutral"


def _confidence(line: str) -> Optional[str]:
    for level in ("High", "Medium", "Low"):
        if level in line:
            return level.lower()
    return None


def _percent(line: str) -> Optional[float]:
    match = _PERCENT.search(line)
    return float(match.group(1)) / 100 if match else None


def _first_number(value: str) -> Optional[float]:
    token = value.strip().split(" ")[0] if value.strip() else ""
    try:
        return float(token)
    except ValueError:
        return None


def _value(line: str) -> str:
    return line.split(":", 1)[1].strip()


class DeepAnalysisParser(AnalysisTextParser):
    """Parses deep-analysis text sidecars into :class:`AnalysisReport`."""

    def parse(self, text: str) -> Optional[AnalysisReport]:
        """Parse the report text.

        Args:
            text: Full contents of the analysis sidecar.

        Returns:
            The parsed report, or None when *text* holds no recognisable line.
        """
        fields: Dict[str, object] = {}
        dynamics: Dict[str, object] = {}
        bands: Dict[str, float] = {}
        extra: Dict[str, str] = {}

        for raw_line in text.splitlines():
            line = raw_line.strip()
            if not line:
                continue
            if not self._parse_line(line, fields, dynamics, bands):
                label = _LABEL.match(line)
                if label and label.group(2):
                    extra[label.group(1).strip()] = label.group(2).strip()

        if not fields and not dynamics and not bands:
            return None
        if dynamics:
            fields["dynamic_range"] = DynamicRange(**dynamics)
        if bands:
            fields["frequency_bands"] = FrequencyBands(**bands)
        return AnalysisReport(**fields, extra=extra)

    def is_valid(self, report: Optional[AnalysisReport]) -> bool:
        """A report is usable when it has a BPM, an energy value and a mood."""
        return (
            report is not None
            and report.bpm is not None
            and report.energy is not None
            and bool(report.mood)
        )

    def _parse_line(  # noqa: C901, PLR0911, PLR0912
        self,
        line: str,
        fields: Dict[str, object],
        dynamics: Dict[str, object],
        bands: Dict[str, float],
    ) -> bool:
        """Consume one line; returns False when the line is not recognised."""
        if line.startswith("Duration:"):
            fields["duration"] = parse_time(_value(line))
            return True
        if line.startswith("BPM:"):
            match = _BPM.search(line)
            if match:
                fields["bpm"] = int(match.group(1))
            fields["bpm_confidence"] = _confidence(line)
            return True
        if line.startswith("Key:"):
            key_text = _value(line)
            match = _KEY.match(key_text)
            if match:
                fields["key"], fields["mode"] = match.group(1), match.group(2)
            else:
                fields["key"] = key_text
            fields["key_confidence"] = _confidence(line)
            return True
        if line.startswith("Tempo:"):
            fields["tempo"] = _value(line)
            return True
        if line.startswith("Genre:"):
            fields["genre"] = _value(line)
            return True
        if line.startswith("Mood:"):
            fields["mood"] = normalize_mood(_value(line))
            return True
        if line.startswith("Energy:"):
            energy = _percent(line)
            if energy is not None:
                fields["energy"] = energy
            lufs = _LUFS.search(line)
            if lufs:
                fields["loudness_lufs"] = float(lufs.group(1))
            return True
        for prefix, name in _PERCENT_FIELDS.items():
            if line.startswith(prefix):
                value = _percent(line)
                if value is not None:
                    fields[name] = value
                return True

        for prefix in _NUMBER_FIELDS:
            if line.startswith(prefix):
                name = prefix[:-1].lower().replace("-", "_").replace(" ", "_")
                fields[name] = _first_number(_value(line))
                return True

        if line.startswith("Rhythmic Complexity:"):
            fields["rhythmic_complexity"] = _value(line)
            return True
        if line.startswith("Crest Factor:"):
            dynamics["crest_factor"] = _first_number(_value(line))
            return True
        if line.startswith("Dynamic Range:"):
            dynamics["classification"] = _value(line)
            return True
        if line.startswith("Peak Amplitude:"):
            dynamics["peak"] = _first_number(_value(line))
            return True
        if line.startswith("RMS:") and line.count(":") == 1:
            dynamics["rms"] = _first_number(_value(line))
            return True
        for prefix, name in _BAND_FIELDS.items():
            if line.startswith(prefix):
                value = _percent(line)
                if value is not None:
                    bands[name] = value
                return True
        if line.startswith("Vintage Recording:"):
            fields["is_vintage"] = _value(line).lower() == "yes"
            return True
        return False
