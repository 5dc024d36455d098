"""BLE advertisement transport (hcitool / hcidump) and an in-process loopback."""

from __future__ import annotations

import logging
import queue
import subprocess
import threading
from typing import IO, Iterable, Iterator, Protocol, runtime_checkable

from roktrack.com.payload import Neighbor, parse_advertising_report
from roktrack.errors import PayloadError

logger = logging.getLogger(__name__)

HCI_DEVICE = "hci0"
# LE Set Advertising Parameters: 100 ms interval, non-connectable undirected, all channels
ADV_PARAMS = ["0x08", "0x0006", "A0", "00", "A0", "00", "03", "00", "00", "00", "00", "00", "00", "00", "00", "07", "00"]
ADV_ENABLE = ["0x08", "0x000a", "01"]
# LE Set Advertising Data: flags + manufacturer specific (company 0xFFFF)
ADV_DATA_HEADER = ["0x08", "0x0008", "1E", "02", "01", "06", "1A", "FF", "FF", "FF"]


@runtime_checkable
class PeerTransport(Protocol):
    """Broadcast own state, receive neighbors. Implementations: BleBroadcast, LoopbackTransport."""

    def cast(self, identifier: int, payload: bytes) -> None:
        ...

    def listen(self, tx: "queue.Queue[Neighbor]", stop_event: threading.Event) -> None:
        """Blocking; push decoded neighbors to tx until stop_event is set."""
        ...


def _offer(tx: "queue.Queue[Neighbor]", neighbor: Neighbor) -> None:
    try:
        tx.put_nowait(neighbor)
    except queue.Full:
        logger.debug("Neighbor queue full, dropped %d", neighbor.identifier)


def iter_hcidump_frames(lines: Iterable[str]) -> Iterator[bytes]:
    """Reassemble `hcidump --raw` output into one bytes object per HCI event.

    An event starts with a line prefixed by '> ' and continues on indented lines.
    Lines that are not hex are skipped.
    """
    buf = ""
    for line in lines:
        line = line.rstrip("\n")
        if line.startswith("> "):
            if buf:
                frame = _decode_hex(buf)
                if frame is not None:
                    yield frame
            buf = line[2:]
        elif buf:
            buf += line
    if buf:
        frame = _decode_hex(buf)
        if frame is not None:
            yield frame


def _decode_hex(text: str) -> bytes | None:
    try:
        return bytes.fromhex(text.replace(" ", ""))
    except ValueError:
        logger.debug("Non-hex hcidump line skipped: %r", text[:40])
        return None


class BleBroadcast:
    """Advertise state via hcitool and scan neighbors via hcidump. Linux + BlueZ only."""

    def __init__(self, device: str = HCI_DEVICE) -> None:
        self._device = device
        self._scan: subprocess.Popen | None = None

    def start(self) -> None:
        """Start passive scanning and configure advertising."""
        self._scan = subprocess.Popen(
            ["hcitool", "lescan", "--duplicates"],
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
        )
        self._hcitool(ADV_PARAMS)
        self._hcitool(ADV_ENABLE)
        logger.info("BLE advertising started on %s", self._device)

    def close(self) -> None:
        if self._scan is not None and self._scan.poll() is None:
            self._scan.terminate()
        self._scan = None

    def _hcitool(self, args: list[str]) -> bool:
        try:
            subprocess.run(
                ["hcitool", "-i", self._device, "cmd", *args],
                check=True,
                timeout=5,
                capture_output=True,
            )
            return True
        except (FileNotFoundError, subprocess.TimeoutExpired, subprocess.CalledProcessError) as e:
            logger.warning("hcitool %s failed: %s", args[:2], e)
            return False

    def cast(self, identifier: int, payload: bytes) -> None:
        """Replace the advertising data with identifier + payload."""
        data = [f"{identifier:02X}"] + [f"{b:02X}" for b in payload]
        self._hcitool(ADV_DATA_HEADER[:] + data)

    def listen(self, tx: "queue.Queue[Neighbor]", stop_event: threading.Event) -> None:
        logger.debug("BLE listener started")
        try:
            proc = subprocess.Popen(
                ["hcidump", "--raw"],
                stdout=subprocess.PIPE,
                stderr=subprocess.DEVNULL,
                text=True,
            )
        except FileNotFoundError as e:
            logger.error("hcidump not available: %s", e)
            return
        try:
            self._pump(proc.stdout, tx, stop_event)
        finally:
            proc.terminate()
            logger.debug("BLE listener exit")

    @staticmethod
    def _pump(stream: IO[str] | None, tx: "queue.Queue[Neighbor]", stop_event: threading.Event) -> None:
        if stream is None:
            return
        for frame in iter_hcidump_frames(stream):
            if stop_event.is_set():
                break
            try:
                neighbor = parse_advertising_report(frame)
            except PayloadError as e:
                logger.debug("Dropped advertisement: %s", e)
                continue
            if neighbor is None:
                continue
            logger.debug("Neighbor %d from %s rssi=%d", neighbor.identifier, neighbor.mac, neighbor.rssi)
            _offer(tx, neighbor)


class LoopbackTransport:
    """In-process transport for mock runs and tests. cast() records, inject() feeds listen()."""

    def __init__(self) -> None:
        self.sent: list[tuple[int, bytes]] = []
        self._inbox: queue.Queue[Neighbor] = queue.Queue()
        self._lock = threading.Lock()

    def start(self) -> None:
        logger.info("Loopback peer transport (no radio)")

    def close(self) -> None:
        pass

    def cast(self, identifier: int, payload: bytes) -> None:
        with self._lock:
            self.sent.append((identifier, bytes(payload)))

    @property
    def last_cast(self) -> tuple[int, bytes] | None:
        with self._lock:
            return self.sent[-1] if self.sent else None

    def inject(self, neighbor: Neighbor) -> None:
        self._inbox.put(neighbor)

    def listen(self, tx: "queue.Queue[Neighbor]", stop_event: threading.Event) -> None:
        while not stop_event.is_set():
            try:
                neighbor = self._inbox.get(timeout=0.1)
            except queue.Empty:
                continue
            _offer(tx, neighbor)
