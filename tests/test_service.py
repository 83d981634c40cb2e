from __future__ import annotations

import logging
import threading
import time
from dataclasses import replace
from pathlib import Path

import pytest

from snapctl.core.codec import encode_bytes
from snapctl.core.errors import (
    DeviceError,
    InventoryMismatchError,
    ProtocolError,
    TransportConnectError,
    TransportError,
)
from snapctl.core.model import SettleIntervals
from snapctl.core.service import SnapService

INVENTORY = ("#listbof fw_a.bin", "#listbof fw_b.bin", "!listbof ok 2")


def _bitstream(tmp_path: Path, name: str, content: bytes = b"\x00BOF\xff" * 100) -> Path:
    path = tmp_path / name
    path.write_bytes(content)
    return path


def _names(device) -> list[str]:
    return [request.name for request in device.requests]


def test_load_uses_stored_image(device, service, uploader, tmp_path: Path) -> None:
    device.on("listbof", *INVENTORY)
    device.on("progdev", "#fpga ready", "!progdev ok")

    result = service.load(_bitstream(tmp_path, "fw_a.bin"))

    assert result.uploaded is False
    assert result.filename == "fw_a.bin"
    assert _names(device) == ["listbof", "progdev"]
    assert device.requests[1].arguments == ("fw_a.bin",)
    assert uploader.calls == []


def test_load_uploads_missing_image(device, service, uploader, sleeps, tmp_path: Path) -> None:
    device.on("listbof", *INVENTORY)
    device.on("progremote", "!progremote ok")
    device.on("fpgastatus", "!fpgastatus ok")
    path = _bitstream(tmp_path, "fw_c.bin")

    result = service.load(path, port=3001)

    assert result.uploaded is True
    assert _names(device) == ["listbof", "progremote", "fpgastatus"]
    assert device.requests[1].arguments == ("3001",)
    assert uploader.calls == [("10.0.0.2", 3001, path.read_bytes())]
    assert sleeps == [service.profile.settle.upload_s]


def test_force_skips_inventory(device, service, uploader, tmp_path: Path) -> None:
    device.on("progremote", "!progremote ok")
    device.on("fpgastatus", "!fpgastatus ok")

    result = service.load(_bitstream(tmp_path, "fw_a.bin"), force=True)

    assert result.uploaded is True
    assert _names(device) == ["progremote", "fpgastatus"]
    assert len(uploader.calls) == 1


def test_inventory_count_mismatch_is_reported(device, service, uploader, tmp_path: Path) -> None:
    device.on("listbof", "#listbof fw_a.bin", "#listbof fw_b.bin", "!listbof ok 3")

    with pytest.raises(InventoryMismatchError):
        service.load(_bitstream(tmp_path, "fw_a.bin"))

    assert _names(device) == ["listbof"]
    assert uploader.calls == []


def test_inventory_with_matching_count(device, service) -> None:
    device.on("listbof", "#listbof a", "#listbof b", "#listbof c", "!listbof ok 3")
    assert service.list_bitstreams() == ["a", "b", "c"]


def test_program_failure_is_not_retried(device, service, uploader, tmp_path: Path) -> None:
    device.on("listbof", *INVENTORY)
    device.on("progdev", "!progdev fail")

    with pytest.raises(DeviceError) as exc:
        service.load(_bitstream(tmp_path, "fw_b.bin"))

    assert exc.value.message_name == "progdev"
    assert _names(device) == ["listbof", "progdev"]
    assert uploader.calls == []


def test_inventory_failure_falls_back_to_upload(device, service, uploader, tmp_path: Path) -> None:
    device.on("listbof", "!listbof fail")
    device.on("progremote", "!progremote ok")
    device.on("fpgastatus", "!fpgastatus ok")

    assert service.load(_bitstream(tmp_path, "fw_a.bin")).uploaded is True
    assert _names(device) == ["listbof", "progremote", "fpgastatus"]


def test_upload_port_refused(device, service, uploader, tmp_path: Path) -> None:
    device.on("progremote", "!progremote fail")

    with pytest.raises(DeviceError) as exc:
        service.upload(_bitstream(tmp_path, "fw_c.bin"))

    assert exc.value.ret_code == "fail"
    assert uploader.calls == []


def test_post_upload_status_failure(device, service, tmp_path: Path) -> None:
    device.on("progremote", "!progremote ok")
    device.on("fpgastatus", "!fpgastatus fail")

    with pytest.raises(DeviceError) as exc:
        service.upload(_bitstream(tmp_path, "fw_c.bin"))
    assert exc.value.message_name == "fpgastatus"


def test_missing_bitstream_file(device, service, tmp_path: Path) -> None:
    with pytest.raises(TransportError):
        service.load(tmp_path / "nope.bin", force=True)
    assert device.sent == []


def test_ping_and_log_level(device, service) -> None:
    device.on("watchdog", "!watchdog ok")
    device.on("log-level", "!log-level ok debug")

    service.ping()
    with pytest.raises(ProtocolError):
        service.set_device_log_level("info")


def test_list_registers(device, service) -> None:
    device.on("listdev", "#listdev sys_board_id", "#listdev gbe0", "!listdev ok")
    assert service.list_registers() == ["sys_board_id", "gbe0"]


def _gbe_device(device, *, link: bytes = b"\x00\x00\x00\x01", fail_offset: str | None = None) -> None:
    def write(message):
        if message.arguments[1] == fail_offset:
            return ["!write fail"]
        return ["!write ok"]

    device.on("write", write)
    device.on("read", f"!read ok {encode_bytes(link)}")


def test_config_gbe_sequence(device, service, sleeps) -> None:
    _gbe_device(device)

    result = service.config_gbe("gbe0")

    port = encode_bytes(b"\x00\x00\x17\x70")
    assert [(r.name, *r.arguments) for r in device.requests] == [
        ("write", "tx_en", "0", encode_bytes(b"\x00")),
        ("write", "gbe0", "20", encode_bytes(bytes([192, 168, 5, 20]))),
        ("write", "gbe0", "48", port),
        ("write", "gbe0", "24", encode_bytes(bytes([192, 168, 5, 1]))),
        ("write", "dest_ip", "0", encode_bytes(bytes([192, 168, 5, 1]))),
        ("write", "dest_port", "0", port),
        ("write", "gbe0", "44", encode_bytes(b"\x01\x00\x00\x01")),
        ("write", "gbe0", "44", encode_bytes(b"\x00\x00\x00\x01")),
        ("write", "tx_rst", "0", encode_bytes(b"\x01")),
        ("write", "tx_rst", "0", encode_bytes(b"\x00")),
        ("write", "tx_en", "0", encode_bytes(b"\x01")),
        ("read", "gbe0", "52", "4"),
    ]
    assert result.link_up is True
    assert sleeps == [service.profile.settle.gbe_s]


def test_config_gbe_stops_at_failed_write(device, service, sleeps) -> None:
    _gbe_device(device, fail_offset="48")

    with pytest.raises(DeviceError) as exc:
        service.config_gbe("gbe0")

    assert exc.value.ret_code == "fail"
    assert exc.value.message_name == "write"
    assert len(device.requests) == 3
    assert sleeps == []


def test_config_gbe_link_down_is_a_warning(device, service, caplog) -> None:
    _gbe_device(device, link=b"\x00\x00\x00\x00")

    with caplog.at_level(logging.WARNING):
        result = service.config_gbe("gbe0")

    assert result.link_up is False
    assert any("not up" in record.getMessage() for record in caplog.records)


def test_inventory_count_must_be_ascii_digits(device, service) -> None:
    device.on("listbof", "#listbof fw_a.bin", "!listbof ok ¹")

    with pytest.raises(ProtocolError):
        service.list_bitstreams()


def test_upload_port_out_of_range_sends_nothing(device, service, uploader, tmp_path: Path) -> None:
    with pytest.raises(TransportError):
        service.upload(_bitstream(tmp_path, "fw_c.bin"), port=70000)

    assert device.sent == []
    assert uploader.calls == []


def test_closing_session_cuts_settle_short(device, session, profile, uploader, tmp_path: Path) -> None:
    class ClosingUploader(type(uploader)):
        def upload(self, host, port, path, *, timeout_s=30.0) -> int:
            threading.Timer(0.05, session.close).start()
            return super().upload(host, port, path, timeout_s=timeout_s)

    device.on("progremote", "!progremote ok")
    device.on("fpgastatus", "!fpgastatus ok")
    slow = replace(profile, settle=SettleIntervals(gbe_s=0.0, upload_s=30.0))
    service = SnapService(session, profile=slow, uploader=ClosingUploader())

    started = time.monotonic()
    with pytest.raises(TransportConnectError):
        service.upload(_bitstream(tmp_path, "fw_c.bin"))

    assert time.monotonic() - started < 10
    assert _names(device) == ["progremote"]
