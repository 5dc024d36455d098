"""Spoken cues - prerecorded mp3 clips played with mpg123, gated by a speech log level."""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import Protocol, runtime_checkable

logger = logging.getLogger(__name__)

LEVELS = ("DEBUG", "INFO", "WARN", "ERROR")
AUDIO_DIR = "asset/audio"
PLAYER = "mpg123"


def level_enabled(level: str, threshold: str) -> bool:
    """True when `level` is at or above `threshold` (DEBUG < INFO < WARN < ERROR)."""
    lv = level.upper().replace("WARNING", "WARN")
    th = threshold.upper().replace("WARNING", "WARN")
    if lv not in LEVELS or th not in LEVELS:
        return False
    return LEVELS.index(lv) >= LEVELS.index(th)


@runtime_checkable
class SpeakerIO(Protocol):
    """Speech output. Implementations: Speaker, MockDevice."""

    def speak(self, name: str, level: str = "INFO") -> bool:
        """Play clip `name`; return True if it was played."""
        ...


class Speaker:
    """Fire-and-forget mp3 playback. A missing player or clip is logged, never raised."""

    def __init__(self, *, lang: str = "ja", threshold: str = "INFO", audio_dir: str | Path = AUDIO_DIR) -> None:
        self._dir = Path(audio_dir) / lang
        self._threshold = threshold
        self._procs: list[subprocess.Popen] = []

    def clip_path(self, name: str) -> Path:
        return self._dir / f"{name}.mp3"

    def speak(self, name: str, level: str = "INFO") -> bool:
        if not level_enabled(level, self._threshold):
            logger.debug("Speech %s suppressed at level %s", name, level)
            return False
        logger.info("Speak: %s", name)
        return self.play(self.clip_path(name))

    def play(self, path: str | Path, *, sync: bool = False) -> bool:
        # Reap finished players so Popen handles don't pile up
        self._procs = [p for p in self._procs if p.poll() is None]
        try:
            if sync:
                subprocess.run([PLAYER, "-q", str(path)], check=True, timeout=30, capture_output=True)
            else:
                self._procs.append(
                    subprocess.Popen(
                        [PLAYER, "-q", str(path)],
                        stdout=subprocess.DEVNULL,
                        stderr=subprocess.DEVNULL,
                    )
                )
            return True
        except (FileNotFoundError, subprocess.TimeoutExpired, subprocess.CalledProcessError) as e:
            logger.warning("Audio playback of %s failed: %s", path, e)
            return False
