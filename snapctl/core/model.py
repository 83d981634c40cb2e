"""Core data models used across codec, session, service, and CLI."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class MessageKind(Enum):
    REQUEST = "?"
    INFORM = "#"
    REPLY = "!"


class ReturnCode(Enum):
    OK = "ok"
    FAIL = "fail"
    INVALID = "invalid"


class FpgaStatus(Enum):
    LOADED = "loaded"
    READY = "ready"
    DOWN = "down"
    MAPPED = "mapped"


@dataclass(frozen=True)
class Message:
    kind: MessageKind
    name: str
    arguments: tuple[str, ...] = ()
    mid: int | None = None

    @classmethod
    def request(cls, name: str, *arguments: object) -> Message:
        return cls(MessageKind.REQUEST, name, tuple(str(a) for a in arguments))

    @classmethod
    def inform(cls, name: str, *arguments: object) -> Message:
        return cls(MessageKind.INFORM, name, tuple(str(a) for a in arguments))

    @classmethod
    def reply(cls, name: str, *arguments: object) -> Message:
        return cls(MessageKind.REPLY, name, tuple(str(a) for a in arguments))


@dataclass(frozen=True)
class Response:
    """Reply to a request together with the informs that preceded it."""

    reply: Message
    informs: tuple[Message, ...]


@dataclass(frozen=True)
class RegisterDescriptor:
    name: str
    byte_offset: int


@dataclass
class DeviceState:
    """Device status delivered through unsolicited informs."""

    fpga_status: FpgaStatus | None = None
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class GbeRegisters:
    tx_en: str = "tx_en"
    tx_rst: str = "tx_rst"
    dest_ip: str = "dest_ip"
    dest_port: str = "dest_port"


@dataclass(frozen=True)
class GbeSettings:
    ip: str
    port: int
    gateway: str
    dest_ip: str
    dest_port: int
    port_mask: int = 0
    registers: GbeRegisters = GbeRegisters()


@dataclass(frozen=True)
class Timeouts:
    request_s: float = 10.0
    connect_s: float = 5.0


@dataclass(frozen=True)
class SettleIntervals:
    gbe_s: float = 0.5
    upload_s: float = 10.0


@dataclass(frozen=True)
class Profile:
    id: str
    name: str
    gbe: GbeSettings
    device_log_level: str = "info"
    timeouts: Timeouts = Timeouts()
    settle: SettleIntervals = SettleIntervals()


@dataclass(frozen=True)
class LoadResult:
    filename: str
    uploaded: bool


@dataclass(frozen=True)
class GbeResult:
    core: str
    link_up: bool
