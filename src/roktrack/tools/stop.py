"""Emergency stop - drive every motor pin low and exit."""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Any

from roktrack.config import load_config
from roktrack.device.motor import DriveMotor, WorkMotor, load_gpio
from roktrack.errors import RoktrackError
from roktrack.utils.logging import setup_logging
from roktrack.utils.paths import EPHEMERAL_DIR, PERSISTENT_DIR, create_app_dirs

logger = logging.getLogger(__name__)


def stop_all(conf: Any, gpio: Any) -> None:
    """Stop both drive motors and both work motor channels."""
    pin = conf.pin
    DriveMotor(pin.left_pin1, pin.left_pin2, 0.0, gpio).stop()
    DriveMotor(pin.right_pin1, pin.right_pin2, 0.0, gpio).stop()
    WorkMotor(pin.work1_pin, pin.work_ctrl_positive, gpio).stop()
    WorkMotor(pin.work2_pin, not pin.work_ctrl_positive, gpio).stop()


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(description="Stop all Roktrack motors.")
    p.add_argument("--data-dir", type=str, default=PERSISTENT_DIR, help="Persistent data directory")
    p.add_argument("--tmp-dir", type=str, default=EPHEMERAL_DIR, help="Ephemeral directory")
    args = p.parse_args(argv)
    setup_logging("INFO")
    try:
        paths = create_app_dirs(args.data_dir, args.tmp_dir)
        conf = load_config(paths.data)
        stop_all(conf, load_gpio())
    except (RoktrackError, OSError) as e:
        logger.error("Stop failed: %s", e)
        return 1
    logger.info("All motors stopped")
    return 0


if __name__ == "__main__":
    sys.exit(main())
