"""Register access over read/write requests.

Registers on CASPER designs are named memory regions. This layer moves raw
bytes in and out of them; any structure inside a register is applied by a
register codec on top of the raw bytes.
"""

from __future__ import annotations

import logging
from typing import ClassVar, Protocol, TypeVar

from snapctl.core.codec import (
    decode_bytes,
    decode_word,
    encode_bytes,
    encode_word,
    u32_from_bytes,
    u32_to_bytes,
)
from snapctl.core.errors import ProtocolError
from snapctl.core.model import RegisterDescriptor, Response
from snapctl.core.session import DeviceSession, expect_ok

LOGGER = logging.getLogger(__name__)


class RegisterCodec(Protocol):
    address: ClassVar[int]
    size: ClassVar[int]

    def pack(self) -> bytes: ...

    @classmethod
    def unpack(cls, data: bytes) -> RegisterCodec: ...


CodecT = TypeVar("CodecT", bound=RegisterCodec)


def _payload(response: Response, index: int = 1) -> str:
    reply = response.reply
    if len(reply.arguments) <= index:
        raise ProtocolError(f"Reply '{reply.name}' is missing its payload")
    return reply.arguments[index]


class RegisterAccess:
    def __init__(self, session: DeviceSession) -> None:
        self._session = session

    def read(self, name: str, offset: int, length: int) -> bytes:
        response = expect_ok(self._session.request("read", name, offset, length))
        data = decode_bytes(_payload(response))
        if len(data) != length:
            raise ProtocolError(
                f"Reply 'read' for {name}@{offset} returned {len(data)} bytes, expected {length}"
            )
        LOGGER.debug("Read %d bytes from %s@%d", length, name, offset)
        return data

    def write(self, name: str, offset: int, data: bytes) -> None:
        expect_ok(self._session.request("write", name, offset, encode_bytes(data)))
        LOGGER.debug("Wrote %d bytes to %s@%d", len(data), name, offset)

    def read_word(self, name: str, offset: int) -> int:
        response = expect_ok(self._session.request("wordread", name, offset))
        return decode_word(_payload(response))

    def write_word(self, name: str, offset: int, value: int) -> None:
        expect_ok(self._session.request("wordwrite", name, offset, encode_word(value)))

    def read_bool(self, name: str) -> bool:
        return self.read(name, 0, 1)[0] == 1

    def write_bool(self, name: str, value: bool) -> None:
        self.write(name, 0, bytes([int(value)]))

    def read_int(self, name: str) -> int:
        return u32_from_bytes(self.read(name, 0, 4))

    def write_int(self, name: str, value: int) -> None:
        self.write(name, 0, u32_to_bytes(value))

    def read_packed(self, name: str, codec: type[CodecT]) -> CodecT:
        target = RegisterDescriptor(name, codec.address)
        data = self.read(target.name, target.byte_offset, codec.size)
        return codec.unpack(data)  # type: ignore[return-value]

    def write_packed(self, name: str, value: RegisterCodec) -> None:
        target = RegisterDescriptor(name, value.address)
        self.write(target.name, target.byte_offset, value.pack())
