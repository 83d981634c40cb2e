"""Device session: connection state and the request/reply correlator."""

from __future__ import annotations

import logging
import queue
import threading
from collections.abc import Mapping
from types import TracebackType

from snapctl.core.codec import decode_ret_code, format_message
from snapctl.core.dispatch import CHANNEL_CLOSED, DispatchFn, InformDispatcher, make_dispatchers
from snapctl.core.errors import (
    DeviceError,
    ProtocolError,
    SnapctlError,
    TransportConnectError,
    TransportTimeoutError,
)
from snapctl.core.model import DeviceState, Message, MessageKind, Response, ReturnCode
from snapctl.transports.base import LineTransport
from snapctl.transports.tcp import TCPTransport

LOGGER = logging.getLogger(__name__)
DEFAULT_CONTROL_PORT = 7147


class DeviceSession:
    """One live connection to the device.

    Only one request may be outstanding at a time; a second concurrent
    ``call`` is rejected with ProtocolError rather than interleaved.
    """

    def __init__(
        self,
        transport: LineTransport,
        *,
        address: str,
        timeout_s: float = 10.0,
        dispatchers: Mapping[str, DispatchFn] | None = None,
        state: DeviceState | None = None,
    ) -> None:
        self.address = address
        self.state = state if state is not None else DeviceState()
        self._transport = transport
        self._timeout_s = timeout_s
        self._channel: queue.Queue = queue.Queue()
        self._call_lock = threading.Lock()
        self._closed = False
        self._closed_event = threading.Event()
        if dispatchers is None:
            dispatchers = make_dispatchers(self.state)
        self._dispatcher = InformDispatcher(transport, dispatchers, self._channel)
        self._dispatcher.start()

    @classmethod
    def open(
        cls,
        host: str,
        port: int = DEFAULT_CONTROL_PORT,
        *,
        timeout_s: float = 10.0,
        connect_timeout_s: float = 5.0,
    ) -> DeviceSession:
        transport = TCPTransport.connect(host, port, timeout_s=connect_timeout_s)
        return cls(transport, address=transport.peer_address, timeout_s=timeout_s)

    @property
    def closed(self) -> bool:
        return self._closed

    def __enter__(self) -> DeviceSession:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._closed_event.set()
        self._dispatcher.stop()
        self._transport.close()
        self._dispatcher.join(timeout=1.0)

    def wait(self, seconds: float) -> bool:
        """Sleep for up to ``seconds``; return True early if the session closes."""
        return self._closed_event.wait(seconds)

    def call(self, request: Message) -> list[Message]:
        """Send one request and return its informs followed by its reply."""
        if request.kind is not MessageKind.REQUEST:
            raise ProtocolError(
                f"Refusing to send '{request.name}': it is a {request.kind.name.lower()}, not a request"
            )
        if self._closed:
            raise TransportConnectError(f"Cannot send '{request.name}': session is closed")
        if not self._call_lock.acquire(blocking=False):
            raise ProtocolError(
                f"Cannot send '{request.name}' while another request is outstanding"
            )
        try:
            line = format_message(request)
            LOGGER.debug("Sending request: %s", line.rstrip("\n"))
            try:
                self._transport.send_line(line)
            except SnapctlError:
                self.close()
                raise
            return self._collect(request.name)
        finally:
            self._call_lock.release()

    def request(self, name: str, *arguments: object) -> Response:
        messages = self.call(Message.request(name, *arguments))
        return Response(reply=messages[-1], informs=tuple(messages[:-1]))

    def _collect(self, name: str) -> list[Message]:
        messages: list[Message] = []
        while True:
            try:
                item = self._channel.get(timeout=self._timeout_s)
            except queue.Empty:
                self.close()
                raise TransportTimeoutError(
                    f"Timed out after {self._timeout_s}s waiting for reply to '{name}'"
                ) from None

            if item is CHANNEL_CLOSED:
                # Leave the marker for any later call.
                self._channel.put(CHANNEL_CLOSED)
                self.close()
                if self._dispatcher.failure is not None:
                    raise self._dispatcher.failure
                raise TransportConnectError(f"Session closed while waiting for reply to '{name}'")

            message: Message = item
            if message.kind is MessageKind.REQUEST:
                self.close()
                raise ProtocolError(f"Device sent request '{message.name}' while we awaited '{name}'")
            messages.append(message)
            if message.kind is MessageKind.REPLY:
                if message.name != name:
                    self.close()
                    raise ProtocolError(f"Expected reply to '{name}', got reply '{message.name}'")
                LOGGER.debug("Reply to '%s': %s (%d informs)", name, message.arguments, len(messages) - 1)
                return messages


def expect_ok(response: Response) -> Response:
    """Return ``response`` if its reply reports ok, else raise DeviceError."""
    reply = response.reply
    ret_code = decode_ret_code(reply)
    if ret_code is not ReturnCode.OK:
        detail = " ".join(reply.arguments[1:]) or None
        raise DeviceError(reply.name, ret_code.value, detail)
    return response
