from __future__ import annotations

import queue
from collections.abc import Callable, Generator

import pytest

from snapctl.core.codec import parse_line
from snapctl.core.errors import TransportSendError
from snapctl.core.model import GbeSettings, Message, Profile, SettleIntervals
from snapctl.core.service import SnapService
from snapctl.core.session import DeviceSession

Responder = Callable[[Message], list[str | None]]


class FakeDevice:
    """In-memory device end of a line transport.

    Each request line written by the client is answered with the lines
    registered for its name. ``None`` in a response simulates the device
    hanging up.
    """

    def __init__(self) -> None:
        self.sent: list[str] = []
        self.closed = False
        self._inbound: queue.Queue[str | None] = queue.Queue()
        self._responders: dict[str, Responder] = {}

    def on(self, name: str, *lines: str | None | Responder) -> None:
        if len(lines) == 1 and callable(lines[0]):
            self._responders[name] = lines[0]
        else:
            self._responders[name] = lambda _message: list(lines)

    def feed(self, *lines: str | None) -> None:
        for line in lines:
            self._inbound.put(line)

    @property
    def requests(self) -> list[Message]:
        return [parse_line(line) for line in self.sent]

    def send_line(self, line: str) -> None:
        if self.closed:
            raise TransportSendError("fake device is closed")
        self.sent.append(line)
        message = parse_line(line)
        responder = self._responders.get(message.name)
        if responder is not None:
            self.feed(*responder(message))

    def read_line(self) -> str | None:
        return self._inbound.get()

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._inbound.put(None)


class FakeUploader:
    def __init__(self) -> None:
        self.calls: list[tuple[str, int, bytes]] = []

    def upload(self, host, port, path, *, timeout_s=30.0) -> int:
        data = path.read_bytes()
        self.calls.append((host, port, data))
        return len(data)


def make_profile(**settle: float) -> Profile:
    return Profile(
        id="test",
        name="Test",
        gbe=GbeSettings(
            ip="192.168.5.20",
            port=6000,
            gateway="192.168.5.1",
            dest_ip="192.168.5.1",
            dest_port=6000,
        ),
        settle=SettleIntervals(gbe_s=settle.get("gbe_s", 0.0), upload_s=settle.get("upload_s", 0.0)),
    )


@pytest.fixture
def device() -> FakeDevice:
    return FakeDevice()


@pytest.fixture
def session(device: FakeDevice) -> Generator[DeviceSession, None, None]:
    session = DeviceSession(device, address="10.0.0.2", timeout_s=2.0)
    yield session
    session.close()


@pytest.fixture
def profile() -> Profile:
    return make_profile()


@pytest.fixture
def uploader() -> FakeUploader:
    return FakeUploader()


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def service(session: DeviceSession, profile: Profile, uploader: FakeUploader, sleeps: list[float]) -> SnapService:
    return SnapService(session, profile=profile, uploader=uploader, sleep=sleeps.append)
