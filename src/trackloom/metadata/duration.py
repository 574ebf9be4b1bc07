"""Duration probes.

A probe answers "how long does this file play?" within a time budget. Missing
answers are not errors: every failure path returns 0.0.
"""

import asyncio
import json
import logging
import shutil
from pathlib import Path
from typing import Optional

from trackloom.metadata.base import DurationProbe
from trackloom.models.core import RawFile

logger = logging.getLogger(__name__)


class NullDurationProbe(DurationProbe):
    """Probe used when no real prober is available; always reports 0."""

    async def probe(self, file: RawFile, timeout_ms: int) -> float:
        return 0.0


class FFprobeDurationProbe(DurationProbe):
    """Reads the container duration with ``ffprobe``.

    Only files backed by a filesystem path (``file.path``) can be probed;
    other handles report 0.
    """

    def __init__(self, executable: Optional[str] = None) -> None:
        """Use *executable*, or look ``ffprobe`` up on PATH."""
        self.executable = executable or shutil.which("ffprobe")

    @property
    def available(self) -> bool:
        return self.executable is not None

    async def probe(self, file: RawFile, timeout_ms: int) -> float:
        """Run ffprobe on the file, killing it when the budget runs out."""
        path: Optional[Path] = getattr(file, "path", None)
        if not self.executable or path is None:
            return 0.0

        proc = await asyncio.create_subprocess_exec(
            self.executable,
            "-v",
            "error",
            "-show_entries",
            "format=duration",
            "-of",
            "json",
            str(path),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            stdout, _ = await asyncio.wait_for(
                proc.communicate(), timeout=timeout_ms / 1000
            )
        except TimeoutError:
            proc.kill()
            await proc.wait()
            logger.debug("ffprobe timed out after %dms for %s", timeout_ms, file.name)
            return 0.0

        if proc.returncode != 0:
            logger.debug("ffprobe exited with %s for %s", proc.returncode, file.name)
            return 0.0
        try:
            return float(json.loads(stdout)["format"]["duration"])
        except (ValueError, KeyError, TypeError):
            return 0.0


def default_duration_probe() -> DurationProbe:
    """FFprobe when it is installed, otherwise the null probe."""
    ffprobe = FFprobeDurationProbe()
    return ffprobe if ffprobe.available else NullDurationProbe()
