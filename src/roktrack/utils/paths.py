"""App directories: persistent data, ephemeral tmp, images, logs."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

NAME = "roktrack"
PERSISTENT_DIR = "/data/"
EPHEMERAL_DIR = "/run/user/1000/"
IMG_DIR = "img"
LOG_DIR = "log"
CONF_FILE = "conf.toml"
LAST_IMAGE = "vision.jpg"
CROP_IMAGE = "crop.jpg"


@dataclass(frozen=True)
class RoktrackPaths:
    """Resolved directories and well-known files."""

    data: Path
    tmp: Path
    img: Path
    log: Path

    @property
    def conf_file(self) -> Path:
        return self.data / CONF_FILE

    @property
    def last_image(self) -> Path:
        """Latest camera frame, overwritten every capture."""
        return self.tmp / LAST_IMAGE

    @property
    def crop_image(self) -> Path:
        """Scratch crop used by the OCR pass."""
        return self.tmp / CROP_IMAGE

    @property
    def log_file(self) -> Path:
        return self.log / f"{NAME}.log"


def _pick_parent(preferred: str | Path, fallback: str | Path) -> Path:
    """Use preferred if it already exists as a directory, else fallback."""
    p = Path(preferred)
    return p if p.is_dir() else Path(fallback)


def create_app_dirs(
    persistent_dir: str | Path = PERSISTENT_DIR,
    ephemeral_dir: str | Path = EPHEMERAL_DIR,
) -> RoktrackPaths:
    """Create data/tmp/img/log directories and return their paths.

    Data lives under persistent_dir when that mount exists (SD card data
    partition), otherwise under ephemeral_dir. Tmp is always ephemeral.
    """
    data = _pick_parent(persistent_dir, ephemeral_dir) / NAME
    tmp = Path(ephemeral_dir) / NAME
    paths = RoktrackPaths(data=data, tmp=tmp, img=data / IMG_DIR, log=data / LOG_DIR)
    for d in (paths.data, paths.tmp, paths.img, paths.log):
        d.mkdir(parents=True, exist_ok=True)
    logger.debug("App dirs: data=%s tmp=%s", paths.data, paths.tmp)
    return paths
