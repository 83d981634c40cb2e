"""Service layer used by CLI and future UI frontends."""

from __future__ import annotations

import logging
from collections.abc import Callable
from ipaddress import IPv4Address
from pathlib import Path
from types import TracebackType

from snapctl.core.codec import decode_uint
from snapctl.core.errors import (
    DeviceError,
    InventoryMismatchError,
    ProtocolError,
    SnapctlError,
    TransportError,
)
from snapctl.core.model import GbeResult, LoadResult, Profile
from snapctl.core.registers import RegisterAccess
from snapctl.core.session import DEFAULT_CONTROL_PORT, DeviceSession, expect_ok
from snapctl.core.tengbe import GatewayAddress, IpAddress, Port, PromiscRstEn, Status
from snapctl.transports.base import Uploader
from snapctl.transports.tcp import TCPUploader

LOGGER = logging.getLogger(__name__)
DEFAULT_UPLOAD_PORT = 3000
MAX_PORT = 65535


class SnapService:
    def __init__(
        self,
        session: DeviceSession,
        *,
        profile: Profile,
        uploader: Uploader | None = None,
        sleep: Callable[[float], object] | None = None,
    ) -> None:
        self.session = session
        self.profile = profile
        self.registers = RegisterAccess(session)
        self.uploader = uploader or TCPUploader()
        # Settle waits end early when the session is closed.
        self._sleep = sleep if sleep is not None else session.wait

    @classmethod
    def connect(
        cls,
        address: str,
        *,
        profile: Profile,
        port: int = DEFAULT_CONTROL_PORT,
        timeout_s: float | None = None,
    ) -> SnapService:
        """Open a session, check the device answers, and set its log level."""
        session = DeviceSession.open(
            address,
            port,
            timeout_s=timeout_s or profile.timeouts.request_s,
            connect_timeout_s=profile.timeouts.connect_s,
        )
        service = cls(session, profile=profile)
        try:
            service.ping()
            LOGGER.info("Connected to the SNAP at %s:%s", session.address, port)
            service.set_device_log_level(profile.device_log_level)
        except SnapctlError:
            session.close()
            raise
        return service

    def __enter__(self) -> SnapService:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def close(self) -> None:
        self.session.close()

    def ping(self) -> None:
        expect_ok(self.session.request("watchdog"))
        LOGGER.debug("Got a successful ping")

    def set_device_log_level(self, level: str) -> None:
        response = expect_ok(self.session.request("log-level", level))
        echoed = response.reply.arguments[1] if len(response.reply.arguments) > 1 else None
        if echoed != level:
            raise ProtocolError(f"Reply 'log-level' echoed level {echoed!r}, requested {level!r}")
        LOGGER.debug("Device log level set to %s", level)

    def list_bitstreams(self) -> list[str]:
        """Return the bitstream images stored on the device."""
        response = expect_ok(self.session.request("listbof"))
        if len(response.reply.arguments) < 2:
            raise ProtocolError("Reply 'listbof' is missing its image count")
        count = decode_uint(response.reply.arguments[1])
        filenames = [
            inform.arguments[0]
            for inform in response.informs
            if inform.name == "listbof" and inform.arguments
        ]
        if len(filenames) != count:
            raise InventoryMismatchError(
                f"Reply 'listbof' announced {count} images but {len(filenames)} were listed"
            )
        return filenames

    def list_registers(self) -> list[str]:
        response = expect_ok(self.session.request("listdev"))
        return [
            inform.arguments[0]
            for inform in response.informs
            if inform.name == "listdev" and inform.arguments
        ]

    def program(self, filename: str) -> None:
        """Program the FPGA from an image already stored on the device."""
        LOGGER.info("Programming stored image %s", filename)
        expect_ok(self.session.request("progdev", filename))
        LOGGER.info("Programming successful")

    def upload(self, path: Path, port: int = DEFAULT_UPLOAD_PORT) -> None:
        """Upload ``path`` over a side connection and program the FPGA with it."""
        if not path.is_file():
            raise TransportError(f"Bitstream {path} does not exist or is not a file")
        if not 1 <= port <= MAX_PORT:
            raise TransportError(f"Upload port {port} is outside 1-{MAX_PORT}")

        LOGGER.info("Attempting to program: %s", path)
        expect_ok(self.session.request("progremote", port))
        LOGGER.debug("Upload port %d open, sending data", port)

        LOGGER.info("Uploading %s", path)
        sent = self.uploader.upload(
            self.session.address,
            port,
            path,
            timeout_s=self.profile.timeouts.request_s,
        )
        LOGGER.info("Upload complete (%d bytes), waiting for programming", sent)
        self._sleep(self.profile.settle.upload_s)

        expect_ok(self.session.request("fpgastatus"))
        LOGGER.info("Programming successful")

    def load(self, path: Path, *, force: bool = False, port: int = DEFAULT_UPLOAD_PORT) -> LoadResult:
        """Program ``path``, reusing the stored copy unless missing or forced."""
        filename = path.name
        if not force:
            try:
                stored = self.list_bitstreams()
            except DeviceError as exc:
                LOGGER.warning("Could not list stored images (%s), uploading instead", exc)
                stored = []
            if filename in stored:
                self.program(filename)
                return LoadResult(filename=filename, uploaded=False)
            LOGGER.debug("%s is not stored on the device, uploading it", filename)
        else:
            LOGGER.debug("Forced upload of %s", filename)

        self.upload(path, port)
        return LoadResult(filename=filename, uploaded=True)

    def config_gbe(self, core: str) -> GbeResult:
        """Bring up the 10GbE core named ``core`` using the profile's addresses."""
        gbe = self.profile.gbe
        names = gbe.registers
        registers = self.registers

        # Hold off transmission for the duration of the setup
        registers.write_bool(names.tx_en, False)
        registers.write_packed(core, IpAddress(IPv4Address(gbe.ip)))
        registers.write_packed(core, Port(port_mask=gbe.port_mask, port=gbe.port))
        registers.write_packed(core, GatewayAddress(IPv4Address(gbe.gateway)))
        registers.write_int(names.dest_ip, int(IPv4Address(gbe.dest_ip)))
        registers.write_int(names.dest_port, gbe.dest_port)
        registers.write_packed(core, PromiscRstEn(soft_rst=True, promisc=False, enable=True))
        registers.write_packed(core, PromiscRstEn(soft_rst=False, promisc=False, enable=True))
        registers.write_bool(names.tx_rst, True)
        registers.write_bool(names.tx_rst, False)
        registers.write_bool(names.tx_en, True)

        self._sleep(self.profile.settle.gbe_s)
        status = registers.read_packed(core, Status)
        if status.link_up:
            LOGGER.info("10 GbE link on %s is up", core)
        else:
            LOGGER.warning("10 GbE link on %s is not up, something might be wrong", core)
        return GbeResult(core=core, link_up=status.link_up)
