"""Line codec for the KATCP-style request/inform/reply protocol.

A message occupies one line:

    <sigil><name>[<mid>] <arg> <arg> ...

where the sigil is ``?`` (request), ``#`` (inform) or ``!`` (reply). Arguments
are separated by spaces or tabs; whitespace and control characters inside an
argument are backslash-escaped, and ``\\@`` stands for an empty argument.

Binary payloads travel either as base64 blocks or as ``0x``-prefixed 32-bit
words. Registers on the device are big-endian.
"""

from __future__ import annotations

import base64
import binascii
import re

from snapctl.core.errors import ProtocolError
from snapctl.core.model import FpgaStatus, Message, MessageKind, ReturnCode

_NAME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9-]*$")
_HEADER_RE = re.compile(r"^(?P<name>[^\[]+)(?:\[(?P<mid>[^\]]*)\])?$")
_WORD_RE = re.compile(r"^0x[0-9a-fA-F]{1,8}$")
_SPLIT_RE = re.compile(r"[ \t]+")
_UINT_RE = re.compile(r"[0-9]+")

_ESCAPES = {
    "\\": "\\",
    "_": " ",
    "0": "\0",
    "n": "\n",
    "r": "\r",
    "e": "\x1b",
    "t": "\t",
}
_UNESCAPES = {value: f"\\{key}" for key, value in _ESCAPES.items()}

U32_MAX = 0xFFFFFFFF
BYTE_ORDER = "big"


def parse_line(line: str) -> Message:
    """Decode one line (without terminator) into a Message."""
    text = line.rstrip("\r\n")
    if not text:
        raise ProtocolError("Cannot decode an empty line")

    try:
        kind = MessageKind(text[0])
    except ValueError:
        raise ProtocolError(f"Unknown message sigil in line {line!r}") from None

    tokens = _SPLIT_RE.split(text[1:].rstrip(" \t"))
    header = _HEADER_RE.match(tokens[0])
    if header is None or not _NAME_RE.match(header.group("name")):
        raise ProtocolError(f"Invalid message name in line {line!r}")

    mid: int | None = None
    if header.group("mid") is not None:
        raw_mid = header.group("mid")
        if not _UINT_RE.fullmatch(raw_mid) or int(raw_mid) == 0:
            raise ProtocolError(f"Invalid message id in line {line!r}")
        mid = int(raw_mid)

    arguments = tuple(_unescape(token, line) for token in tokens[1:] if token)
    return Message(kind=kind, name=header.group("name"), arguments=arguments, mid=mid)


def format_message(message: Message) -> str:
    """Encode a Message into one line, including the trailing newline."""
    if not _NAME_RE.match(message.name):
        raise ProtocolError(f"Invalid message name {message.name!r}")
    header = f"{message.kind.value}{message.name}"
    if message.mid is not None:
        header = f"{header}[{message.mid}]"
    parts = [header, *(_escape(arg) for arg in message.arguments)]
    return " ".join(parts) + "\n"


def _escape(argument: str) -> str:
    if argument == "":
        return "\\@"
    return "".join(_UNESCAPES.get(char, char) for char in argument)


def _unescape(token: str, line: str) -> str:
    if token == "\\@":
        return ""
    out: list[str] = []
    chars = iter(token)
    for char in chars:
        if char != "\\":
            out.append(char)
            continue
        code = next(chars, None)
        if code is None or code not in _ESCAPES:
            raise ProtocolError(f"Invalid escape sequence in line {line!r}")
        out.append(_ESCAPES[code])
    return "".join(out)


def encode_bytes(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def decode_bytes(argument: str) -> bytes:
    try:
        return base64.b64decode(argument.encode("ascii"), validate=True)
    except (binascii.Error, UnicodeEncodeError) as exc:
        raise ProtocolError(f"Invalid base64 payload {argument!r}") from exc


def encode_word(value: int) -> str:
    if not 0 <= value <= U32_MAX:
        raise ValueError(f"Word value {value} does not fit in 32 bits")
    return f"0x{value:08x}"


def decode_word(argument: str) -> int:
    if not _WORD_RE.match(argument):
        raise ProtocolError(f"Invalid hexadecimal word {argument!r}")
    return int(argument, 16)


def decode_uint(argument: str) -> int:
    if not _UINT_RE.fullmatch(argument):
        raise ProtocolError(f"Expected an unsigned integer, got {argument!r}")
    return int(argument)


def u32_to_bytes(value: int) -> bytes:
    if not 0 <= value <= U32_MAX:
        raise ValueError(f"Value {value} does not fit in 32 bits")
    return value.to_bytes(4, BYTE_ORDER, signed=False)


def u32_from_bytes(data: bytes) -> int:
    if len(data) != 4:
        raise ValueError(f"Expected 4 bytes, got {len(data)}")
    return int.from_bytes(data, BYTE_ORDER, signed=False)


def decode_ret_code(message: Message) -> ReturnCode:
    if not message.arguments:
        raise ProtocolError(f"Reply '{message.name}' carries no return code")
    try:
        return ReturnCode(message.arguments[0])
    except ValueError:
        raise ProtocolError(
            f"Reply '{message.name}' carries unknown return code {message.arguments[0]!r}"
        ) from None


def decode_fpga_status(argument: str) -> FpgaStatus:
    try:
        return FpgaStatus(argument)
    except ValueError:
        raise ProtocolError(f"Unknown FPGA status {argument!r}") from None
