"""TCP transport implementation using Python sockets."""

from __future__ import annotations

import logging
import socket
from pathlib import Path

from snapctl.core.errors import (
    ProtocolError,
    TransportConnectError,
    TransportSendError,
    TransportTimeoutError,
)

LOGGER = logging.getLogger(__name__)
UPLOAD_CHUNK_BYTES = 64 * 1024


class TCPTransport:
    """Line-oriented connection to the device's control port."""

    def __init__(self, sock: socket.socket) -> None:
        self._socket = sock
        self._reader = sock.makefile("rb")
        self._closed = False

    @classmethod
    def connect(cls, host: str, port: int, *, timeout_s: float = 5.0) -> TCPTransport:
        try:
            sock = socket.create_connection((host, port), timeout=timeout_s)
        except TimeoutError as exc:
            raise TransportTimeoutError(f"TCP connect timed out for {host}:{port}") from exc
        except (OSError, OverflowError) as exc:
            raise TransportConnectError(f"TCP connect failed for {host}:{port}: {exc}") from exc
        # The dispatcher blocks on reads for the life of the session.
        sock.settimeout(None)
        LOGGER.debug("Connected to %s:%s", host, port)
        return cls(sock)

    @property
    def peer_address(self) -> str:
        return self._socket.getpeername()[0]

    def send_line(self, line: str) -> None:
        if not line.endswith("\n"):
            line = f"{line}\n"
        try:
            self._socket.sendall(line.encode("utf-8"))
        except OSError as exc:
            raise TransportSendError(f"TCP send failed: {exc}") from exc

    def read_line(self) -> str | None:
        try:
            raw = self._reader.readline()
        except (OSError, ValueError) as exc:
            # ValueError: the reader was closed under us by close().
            if self._closed:
                return None
            raise TransportSendError(f"TCP receive failed: {exc}") from exc
        if not raw:
            return None
        try:
            return raw.decode("utf-8").rstrip("\r\n")
        except UnicodeDecodeError as exc:
            raise ProtocolError(f"Received a line that is not valid UTF-8: {raw!r}") from exc

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._socket.shutdown(socket.SHUT_RDWR)
        except OSError as exc:
            LOGGER.debug("Socket shutdown during close: %s", exc)
        self._reader.close()
        self._socket.close()


class TCPUploader:
    """Streams a file over a short-lived side connection."""

    def upload(self, host: str, port: int, path: Path, *, timeout_s: float = 30.0) -> int:
        try:
            handle = path.open("rb")
        except OSError as exc:
            raise TransportSendError(f"Could not open {path}: {exc}") from exc

        with handle:
            try:
                upload_socket = socket.create_connection((host, port), timeout=timeout_s)
            except TimeoutError as exc:
                raise TransportTimeoutError(f"Upload connect timed out for {host}:{port}") from exc
            except (OSError, OverflowError) as exc:
                raise TransportConnectError(f"Upload connect failed for {host}:{port}: {exc}") from exc

            sent = 0
            try:
                try:
                    while chunk := handle.read(UPLOAD_CHUNK_BYTES):
                        upload_socket.sendall(chunk)
                        sent += len(chunk)
                    # The device detects the end of the transfer from our FIN.
                    upload_socket.shutdown(socket.SHUT_WR)
                except TimeoutError as exc:
                    raise TransportTimeoutError(f"Upload to {host}:{port} timed out") from exc
                except OSError as exc:
                    raise TransportSendError(f"Upload to {host}:{port} failed: {exc}") from exc
            finally:
                upload_socket.close()

        LOGGER.debug("Uploaded %d bytes of %s to %s:%s", sent, path, host, port)
        return sent
