import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Sequence

import zmq
import zmq.asyncio
from zmq.utils.monitor import parse_monitor_message

logger = logging.getLogger(__name__)


class ZmqKind(Enum):
    HASH_TX = "hashtx"
    HASH_BLOCK = "hashblock"


@dataclass(frozen=True)
class ZmqEvent:
    kind: ZmqKind
    hash: str


def decode_frames(frames: Sequence[bytes]) -> ZmqEvent | None:
    """Turn a [topic, body, sequence] multipart message into an event.

    Bitcoin Core publishes hashes in RPC display order, so the body is hex
    encoded as-is. Other topics and malformed messages are ignored.
    """
    if len(frames) < 2:
        logger.warning("zmq: skipping message with %d frame(s)", len(frames))
        return None
    topic = bytes(frames[0]).rstrip(b"\0").decode("ascii", errors="replace")
    try:
        kind = ZmqKind(topic)
    except ValueError:
        return None
    body = bytes(frames[1])
    if len(body) != 32:
        logger.warning("zmq: %s body is %d bytes, expected 32", topic, len(body))
        return None
    return ZmqEvent(kind=kind, hash=body.hex())


class ZmqSubscriber:
    """Long-lived SUB socket listener feeding decoded events to callbacks."""

    def __init__(self, address: str) -> None:
        self.address = address
        self._context: zmq.asyncio.Context | None = None
        self._socket: zmq.asyncio.Socket | None = None

    async def run(
        self,
        on_event: Callable[[ZmqEvent], Awaitable[None]],
        on_status: Callable[[bool, str], Awaitable[None]],
    ) -> None:
        self._context = zmq.asyncio.Context()
        self._socket = self._context.socket(zmq.SUB)
        # Subscribe to everything and filter here so a topic prefix mismatch
        # cannot silently hide notifications.
        self._socket.setsockopt(zmq.SUBSCRIBE, b"")
        monitor = self._socket.get_monitor_socket(zmq.EVENT_CONNECTED | zmq.EVENT_DISCONNECTED)
        watcher = asyncio.ensure_future(self._watch(monitor, on_status))
        try:
            logger.info("zmq connecting to %s", self.address)
            self._socket.connect(self.address)
            while True:
                frames = await self._socket.recv_multipart()
                event = decode_frames(frames)
                if event is not None:
                    logger.debug("zmq %s %s", event.kind.value, event.hash)
                    await on_event(event)
        except zmq.ZMQError as e:
            logger.error("zmq failure on %s: %s", self.address, e)
            await on_status(False, f"ZMQ {self.address}: {e}")
        finally:
            watcher.cancel()
            if self._socket is not None:
                self._socket.disable_monitor()
            monitor.close(linger=0)
            self.close()

    async def _watch(self, monitor: zmq.asyncio.Socket, on_status: Callable[[bool, str], Awaitable[None]]) -> None:
        while True:
            frames = await monitor.recv_multipart()
            event = parse_monitor_message(frames)["event"]
            if event == zmq.EVENT_CONNECTED:
                logger.info("zmq connected to %s", self.address)
                await on_status(True, "")
            elif event == zmq.EVENT_DISCONNECTED:
                logger.warning("zmq disconnected from %s", self.address)
                await on_status(False, f"ZMQ disconnected from {self.address}")

    def close(self) -> None:
        if self._socket is not None:
            self._socket.close(linger=0)
            self._socket = None
        if self._context is not None:
            self._context.term()
            self._context = None
