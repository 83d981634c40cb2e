"""Register codecs for the CASPER 10GbE core.

The core is exposed as one large register named after its Simulink block.
Each field below lives at a fixed byte offset inside it and occupies one
big-endian 32-bit word. Bit numbers are LSB-first within that word.
"""

from __future__ import annotations

from dataclasses import dataclass
from ipaddress import IPv4Address
from typing import ClassVar

from snapctl.core.codec import u32_from_bytes, u32_to_bytes


def _bit(word: int, bit: int) -> bool:
    return bool((word >> bit) & 1)


@dataclass(frozen=True)
class CoreType:
    address: ClassVar[int] = 0x00
    size: ClassVar[int] = 4

    core_type: int
    revision: int
    cpu_rx_enable: bool
    cpu_tx_enable: bool

    def pack(self) -> bytes:
        word = (
            (self.core_type & 0xFF)
            | (self.revision & 0xFF) << 8
            | int(self.cpu_rx_enable) << 16
            | int(self.cpu_tx_enable) << 24
        )
        return u32_to_bytes(word)

    @classmethod
    def unpack(cls, data: bytes) -> CoreType:
        word = u32_from_bytes(data)
        return cls(
            core_type=word & 0xFF,
            revision=(word >> 8) & 0xFF,
            cpu_rx_enable=_bit(word, 16),
            cpu_tx_enable=_bit(word, 24),
        )


@dataclass(frozen=True)
class _Ipv4Field:
    address: ClassVar[int]
    size: ClassVar[int] = 4

    ip: IPv4Address

    def pack(self) -> bytes:
        return self.ip.packed

    @classmethod
    def unpack(cls, data: bytes):
        if len(data) != cls.size:
            raise ValueError(f"Expected {cls.size} bytes, got {len(data)}")
        return cls(IPv4Address(data))


@dataclass(frozen=True)
class IpAddress(_Ipv4Field):
    address: ClassVar[int] = 0x14


@dataclass(frozen=True)
class GatewayAddress(_Ipv4Field):
    address: ClassVar[int] = 0x18


@dataclass(frozen=True)
class PromiscRstEn:
    address: ClassVar[int] = 0x2C
    size: ClassVar[int] = 4

    soft_rst: bool
    promisc: bool
    enable: bool

    def pack(self) -> bytes:
        word = int(self.enable) | int(self.promisc) << 16 | int(self.soft_rst) << 24
        return u32_to_bytes(word)

    @classmethod
    def unpack(cls, data: bytes) -> PromiscRstEn:
        word = u32_from_bytes(data)
        return cls(soft_rst=_bit(word, 24), promisc=_bit(word, 16), enable=_bit(word, 0))


@dataclass(frozen=True)
class Port:
    address: ClassVar[int] = 0x30
    size: ClassVar[int] = 4

    port_mask: int
    port: int

    def pack(self) -> bytes:
        if not (0 <= self.port <= 0xFFFF and 0 <= self.port_mask <= 0xFFFF):
            raise ValueError(f"Port {self.port} / mask {self.port_mask} must fit in 16 bits")
        return u32_to_bytes(self.port_mask << 16 | self.port)

    @classmethod
    def unpack(cls, data: bytes) -> Port:
        word = u32_from_bytes(data)
        return cls(port_mask=word >> 16, port=word & 0xFFFF)


@dataclass(frozen=True)
class Status:
    address: ClassVar[int] = 0x34
    size: ClassVar[int] = 4

    link_up: bool

    def pack(self) -> bytes:
        return u32_to_bytes(int(self.link_up))

    @classmethod
    def unpack(cls, data: bytes) -> Status:
        return cls(link_up=_bit(u32_from_bytes(data), 0))
