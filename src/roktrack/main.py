"""Entrypoint for the Roktrack pilot."""

from __future__ import annotations

import argparse
import logging
import queue
import signal
import sys
import threading
from typing import Any

from roktrack.com.ble import BleBroadcast, LoopbackTransport
from roktrack.config import MODE_NAMES, RoktrackProperty, load_config
from roktrack.device.interface import DeviceCommand
from roktrack.device.mock import MockDevice
from roktrack.drive import DriveLoop
from roktrack.errors import ConfigError, DeviceError
from roktrack.notify import Notifier
from roktrack.pilot.command import create_handler, session_command
from roktrack.pilot.state import PilotState, parse_mode
from roktrack.utils.logging import setup_logging
from roktrack.utils.paths import EPHEMERAL_DIR, PERSISTENT_DIR, create_app_dirs
from roktrack.vision.camera import Camera, StillImageSource
from roktrack.vision.detector import YoloDetector
from roktrack.vision.runner import VisionRunner
from roktrack.vision.types import VisionCommand

logger = logging.getLogger(__name__)

# Channel capacities. Batches keep only the freshest frame.
NEIGHBOR_QUEUE_SIZE = 64
BATCH_QUEUE_SIZE = 1
VISION_COMMAND_QUEUE_SIZE = 16
DEVICE_COMMAND_QUEUE_SIZE = 4
JOIN_TIMEOUT_S = 3.0


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments."""
    p = argparse.ArgumentParser(
        description="Roktrack pilot - marker-guided mower. Runs until Ctrl+C or SIGTERM.",
    )
    p.add_argument(
        "--io",
        choices=["pi", "mock"],
        default="pi",
        help="IO mode: pi (GPIO, camera, BLE) or mock (MockDevice, still image, loopback peers)",
    )
    p.add_argument("--data-dir", type=str, default=PERSISTENT_DIR, help="Persistent data directory (default /data/)")
    p.add_argument("--tmp-dir", type=str, default=EPHEMERAL_DIR, help="Ephemeral directory (default /run/user/1000/)")
    p.add_argument("--mode", choices=MODE_NAMES, default=None, help="Override drive.mode from conf.toml")
    p.add_argument("--state", choices=["on", "off"], default=None, help="Override drive.default_state")
    p.add_argument("--no-ocr", action="store_false", dest="ocr", default=None, help="Disable marker digit OCR")
    p.add_argument("--image", type=str, default="", help="Still image fed to the detector (--io mock)")
    p.add_argument("--hci", type=str, default="hci0", help="Bluetooth adapter (default hci0)")
    p.add_argument("--log-level", type=str, default=None, help="Log level")
    return p.parse_args(argv)


def build_io(args: argparse.Namespace, property: RoktrackProperty) -> tuple[Any, Any, Any]:
    """Device, video source and peer transport for the chosen IO mode."""
    conf = property.conf
    if args.io == "mock":
        if not args.image:
            raise ConfigError("--image is required with --io mock")
        return MockDevice(turn_adj=conf.drive.turn_adj), StillImageSource(args.image), LoopbackTransport()
    from roktrack.device.roktrack import Roktrack

    device = Roktrack.from_config(conf)
    camera = Camera(
        conf.camera.video_idx,
        width=conf.camera.width,
        height=conf.camera.height,
        grab_times=conf.camera.grab_times,
    )
    return device, camera, BleBroadcast(args.hci)


def initial_state(property: RoktrackProperty) -> PilotState:
    conf = property.conf
    state = PilotState(on=conf.drive.default_state == "on", mode=parse_mode(conf.drive.mode))
    if conf.system.identifier:
        state.identifier = conf.system.identifier
    return state


def main(argv: list[str] | None = None) -> int:
    """Run the pilot. Returns 0 on clean shutdown, 1 on startup failure."""
    args = parse_args(argv)
    setup_logging(args.log_level or "INFO")
    try:
        paths = create_app_dirs(args.data_dir, args.tmp_dir)
        conf = load_config(
            paths.data,
            mode=args.mode,
            default_state=args.state,
            log_level=args.log_level,
            ocr=args.ocr,
        )
    except (ConfigError, OSError) as e:
        logger.error("Startup failed: %s", e)
        return 1
    setup_logging(conf.system.log_level, paths.log_file)
    property = RoktrackProperty(paths=paths, conf=conf)

    try:
        device, source, transport = build_io(args, property)
    except (ConfigError, DeviceError) as e:
        logger.error("Startup failed: %s", e)
        return 1

    neighbor_q: queue.Queue = queue.Queue(maxsize=NEIGHBOR_QUEUE_SIZE)
    batch_q: queue.Queue = queue.Queue(maxsize=BATCH_QUEUE_SIZE)
    vision_q: queue.Queue = queue.Queue(maxsize=VISION_COMMAND_QUEUE_SIZE)
    device_q: queue.Queue = queue.Queue(maxsize=DEVICE_COMMAND_QUEUE_SIZE)

    state = initial_state(property)
    notifier = Notifier(conf.notification.endpoint, conf.notification.token)
    handler = create_handler(state.mode, notifier)
    vision = VisionRunner(source, YoloDetector(conf), paths, batch_q, vision_q, on=state.on)
    vision_q.put_nowait(session_command(state.mode, property))
    vision_q.put_nowait(VisionCommand.SWITCH_SZ_320)
    drive = DriveLoop(
        state, device, handler, property, neighbor_q, batch_q, vision_q, transport, notifier=notifier
    )
    logger.info(
        "Roktrack: io=%s mode=%s state=%s id=%d data=%s",
        args.io, state.mode.name, "on" if state.on else "off", state.identifier, paths.data,
    )

    stop_event = threading.Event()

    def shutdown(signum: int, _frame: Any) -> None:
        logger.info("Signal %d, shutting down", signum)
        stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        signal.signal(sig, shutdown)

    transport.start()
    threads = [
        threading.Thread(target=vision.run, args=(stop_event,), name="vision", daemon=True),
        threading.Thread(target=transport.listen, args=(neighbor_q, stop_event), name="peer", daemon=True),
        threading.Thread(target=drive.run, args=(stop_event,), name="drive", daemon=True),
    ]
    if hasattr(device, "watchdog"):
        threads.append(
            threading.Thread(target=device.watchdog, args=(device_q, stop_event), name="watchdog", daemon=True)
        )
    for t in threads:
        t.start()
    try:
        while not stop_event.is_set():
            stop_event.wait(0.5)
    finally:
        try:
            device_q.put_nowait(DeviceCommand.STOP)
        except queue.Full:
            logger.debug("Device command queue full, watchdog stops on exit")
        for t in threads:
            t.join(timeout=JOIN_TIMEOUT_S)
        transport.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
