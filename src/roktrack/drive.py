"""Drive loop - scheduler owning the pilot state, neighbor table and active mode handler."""

from __future__ import annotations

import logging
import queue
import threading
from typing import Callable

from roktrack.com.ble import PeerTransport
from roktrack.com.payload import Neighbor
from roktrack.config import RoktrackProperty
from roktrack.device.interface import Chassis
from roktrack.notify import NotifierIO
from roktrack.pilot import actions
from roktrack.pilot.base import PilotHandler
from roktrack.pilot.command import route_command
from roktrack.pilot.state import PilotState
from roktrack.utils.clock import now_ms
from roktrack.vision.types import DetectionBatch, VisionCommand

logger = logging.getLogger(__name__)

TICK_S = 0.01
# Broadcast even without detections so the controller sees an idle robot
KEEPALIVE_MS = 1000


class DriveLoop:
    """One tick: neighbor in, batch in, handler dispatch, state out. Never raises out of tick()."""

    def __init__(
        self,
        state: PilotState,
        device: Chassis,
        handler: PilotHandler | None,
        property: RoktrackProperty,
        neighbor_rx: "queue.Queue[Neighbor]",
        batch_rx: "queue.Queue[DetectionBatch]",
        vision_tx: "queue.Queue[VisionCommand]",
        transport: PeerTransport,
        *,
        notifier: NotifierIO | None = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.state = state
        self.device = device
        self.handler = handler
        self.property = property
        self.neighbors: dict[int, Neighbor] = {}
        self._neighbor_rx = neighbor_rx
        self._batch_rx = batch_rx
        self._vision_tx = vision_tx
        self._transport = transport
        self._notifier = notifier
        self._clock = clock
        self._last_cast = 0

    def _receive_neighbor(self) -> bool:
        """Take one neighbor frame and route it if it is a controller broadcast. Returns True if one arrived."""
        try:
            neighbor = self._neighbor_rx.get_nowait()
        except queue.Empty:
            return False
        self.neighbors[neighbor.identifier] = neighbor
        if not (neighbor.is_controller and neighbor.is_broadcast):
            return True
        handler = route_command(
            self.state,
            neighbor,
            self.device,
            self._vision_tx,
            self.property,
            notifier=self._notifier,
            clock=self._clock,
        )
        if handler is not None:
            logger.info("Handler switched to %s", type(handler).__name__)
            self.handler = handler
        return True

    def _dispatch(self, batch: DetectionBatch) -> None:
        if batch.img_width != self.state.img_width:
            batch = batch.scaled_to(self.state.img_width)
        self.state.pi_temp = self.device.measure_temp()
        if self.handler is None:
            # Climb/Around have no handler; still honour on/off
            if not self.state.on:
                actions.stop(self.device)
            return
        try:
            self.handler.handle(self.state, self.device, batch, self._vision_tx, self.property)
        except Exception:
            logger.exception("Handler %s failed", type(self.handler).__name__)

    def broadcast(self) -> None:
        left, right = self.device.powers
        payload = self.state.dump(
            self.neighbors,
            appearance=self.property.conf.system.appearance,
            left_power=left,
            right_power=right,
        )
        self._transport.cast(self.state.identifier, payload)
        self._last_cast = self._clock()

    def tick(self) -> bool:
        """Returns True when a batch was dispatched.

        State goes out whenever a neighbor or batch was processed, so identifier
        collisions and controller commands are answered without waiting for vision.
        """
        received = self._receive_neighbor()
        try:
            batch = self._batch_rx.get_nowait()
        except queue.Empty:
            batch = None
        if batch is not None:
            self._dispatch(batch)
        if batch is not None or received or self._clock() - self._last_cast >= KEEPALIVE_MS:
            try:
                self.broadcast()
            except Exception:
                logger.exception("Broadcast failed")
        return batch is not None

    def run(self, stop_event: threading.Event) -> None:
        logger.info("Drive loop started: mode=%s on=%s id=%d", self.state.mode.name, self.state.on, self.state.identifier)
        try:
            while not stop_event.is_set():
                self.tick()
                stop_event.wait(TICK_S)
        finally:
            self.device.stop()
            logger.info("Drive loop exit")
