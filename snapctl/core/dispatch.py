"""Inform dispatcher: pumps inbound lines and routes them.

Informs whose name appears in the dispatch table are consumed by their
handler. Everything else (unmatched informs and all replies) is forwarded to
the correlation channel in wire order, followed by ``CHANNEL_CLOSED`` when the
connection ends.
"""

from __future__ import annotations

import logging
import queue
import threading
from collections.abc import Callable, Mapping
from types import MappingProxyType

from snapctl.core.codec import decode_fpga_status, parse_line
from snapctl.core.errors import ProtocolError, SnapctlError, TransportConnectError, TransportError
from snapctl.core.model import DeviceState, Message, MessageKind
from snapctl.transports.base import LineTransport

LOGGER = logging.getLogger(__name__)
DEVICE_LOGGER = logging.getLogger("snapctl.device")

DispatchFn = Callable[[Message], None]
CHANNEL_CLOSED = object()

_DEVICE_LOG_LEVELS = {
    "fatal": logging.ERROR,
    "error": logging.ERROR,
    "warn": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
    "trace": logging.DEBUG,
}


class InformDispatcher:
    def __init__(
        self,
        transport: LineTransport,
        dispatchers: Mapping[str, DispatchFn],
        channel: queue.Queue,
    ) -> None:
        self._transport = transport
        self._dispatchers = MappingProxyType(dict(dispatchers))
        self._channel = channel
        self._stopping = False
        self.failure: SnapctlError | None = None
        self._thread = threading.Thread(target=self._run, name="inform-dispatcher", daemon=True)

    def start(self) -> None:
        self._thread.start()

    def stop(self) -> None:
        """Mark the coming end of stream as requested by us."""
        self._stopping = True

    def join(self, timeout: float | None = None) -> None:
        self._thread.join(timeout=timeout)

    def dispatch(self, message: Message) -> None:
        handler = None
        if message.kind is MessageKind.INFORM:
            handler = self._dispatchers.get(message.name)
        if handler is None:
            self._channel.put(message)
            return
        try:
            handler(message)
        except Exception:
            LOGGER.exception("Handler for inform '%s' failed", message.name)

    def _run(self) -> None:
        try:
            self._pump()
        except SnapctlError as exc:
            self._fail(exc)
        except Exception as exc:
            LOGGER.exception("Inform dispatcher crashed")
            self._fail(TransportError(f"Reading from the device failed: {exc}"))
        finally:
            self._channel.put(CHANNEL_CLOSED)

    def _pump(self) -> None:
        while True:
            line = self._transport.read_line()
            if line is None:
                if not self._stopping:
                    raise TransportConnectError("Connection closed by the device")
                LOGGER.debug("Connection closed")
                return
            if not line.strip():
                continue
            try:
                message = parse_line(line)
            except ValueError as exc:
                raise ProtocolError(f"Could not decode line {line!r}: {exc}") from exc
            self.dispatch(message)

    def _fail(self, exc: SnapctlError) -> None:
        self.failure = exc
        LOGGER.error("Inform dispatcher stopped: %s", exc)
        self._transport.close()


def handle_log(message: Message) -> None:
    if len(message.arguments) < 4:
        LOGGER.error("Couldn't decode 'log' inform: %s", message.arguments)
        return
    level, _timestamp, name, text = message.arguments[:4]
    severity = _DEVICE_LOG_LEVELS.get(level)
    if severity is None:
        DEVICE_LOGGER.warning("Unexpected log: [%s] %s %s", level, name, text)
        return
    DEVICE_LOGGER.log(severity, "%s: %s", name, text)


def make_dispatchers(state: DeviceState) -> dict[str, DispatchFn]:
    """Build the default dispatch table, recording status on ``state``."""

    def handle_fpga(message: Message) -> None:
        if not message.arguments:
            LOGGER.error("Couldn't decode 'fpga' inform: no status")
            return
        try:
            status = decode_fpga_status(message.arguments[0])
        except ProtocolError as exc:
            LOGGER.error("Couldn't decode 'fpga' inform: %s", exc)
            return
        state.fpga_status = status
        LOGGER.info("FPGA %s", status.value.capitalize())

    def handle_metadata(message: Message) -> None:
        if not message.arguments:
            LOGGER.error("Couldn't decode '%s' inform: no arguments", message.name)
            return
        if message.name == "version-connect":
            key, value = message.arguments[0], " ".join(message.arguments[1:])
        else:
            key, value = message.name, " ".join(message.arguments)
        state.metadata[key] = value
        LOGGER.info("%s: %s", key, value)

    return {
        "log": handle_log,
        "fpga": handle_fpga,
        "version-connect": handle_metadata,
        "version": handle_metadata,
        "build-state": handle_metadata,
    }
