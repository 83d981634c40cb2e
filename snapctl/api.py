"""Stable public API for building tooling on top of snapctl.

This module is the supported integration surface for third-party callers.
Avoid importing from private/internal modules unless intentionally depending on
non-stable internals.
"""

from __future__ import annotations

from pathlib import Path
from types import TracebackType

from snapctl.core.errors import (
    DeviceError,
    InventoryMismatchError,
    ProfileLoadError,
    ProfileResolutionError,
    ProfileValidationError,
    ProtocolError,
    SnapctlError,
    TransportConnectError,
    TransportError,
    TransportSendError,
    TransportTimeoutError,
)
from snapctl.core.model import (
    DeviceState,
    FpgaStatus,
    GbeResult,
    LoadResult,
    Message,
    MessageKind,
    Profile,
    RegisterDescriptor,
    Response,
    ReturnCode,
)
from snapctl.core.profile_loader import load_profiles
from snapctl.core.registers import RegisterAccess
from snapctl.core.service import DEFAULT_UPLOAD_PORT, SnapService
from snapctl.core.session import DEFAULT_CONTROL_PORT, DeviceSession

__all__ = [
    "SnapctlError",
    "DeviceError",
    "InventoryMismatchError",
    "ProfileLoadError",
    "ProfileResolutionError",
    "ProfileValidationError",
    "ProtocolError",
    "TransportError",
    "TransportConnectError",
    "TransportSendError",
    "TransportTimeoutError",
    "DeviceState",
    "FpgaStatus",
    "GbeResult",
    "LoadResult",
    "Message",
    "MessageKind",
    "Profile",
    "RegisterDescriptor",
    "Response",
    "ReturnCode",
    "DeviceSession",
    "RegisterAccess",
    "Client",
]


class Client:
    """Public client for one connected SNAP board.

    A `Client` wraps profile loading, session setup and the programming and
    bring-up workflows behind a stable API intended for third-party tools
    (scripts/services/notebooks). Use it as a context manager so the session
    is closed on exit.
    """

    def __init__(self, service: SnapService) -> None:
        self._service = service

    @classmethod
    def connect(
        cls,
        address: str,
        *,
        port: int = DEFAULT_CONTROL_PORT,
        profile_id: str | None = None,
        timeout_s: float | None = None,
    ) -> Client:
        profile = load_profiles().resolve(profile_id)
        return cls(SnapService.connect(address, profile=profile, port=port, timeout_s=timeout_s))

    def __enter__(self) -> Client:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def close(self) -> None:
        self._service.close()

    @property
    def state(self) -> DeviceState:
        return self._service.session.state

    @property
    def registers(self) -> RegisterAccess:
        return self._service.registers

    def list_bitstreams(self) -> list[str]:
        return self._service.list_bitstreams()

    def list_registers(self) -> list[str]:
        return self._service.list_registers()

    def load(
        self,
        path: str | Path,
        *,
        force: bool = False,
        port: int = DEFAULT_UPLOAD_PORT,
    ) -> LoadResult:
        return self._service.load(Path(path), force=force, port=port)

    def config_gbe(self, core: str) -> GbeResult:
        return self._service.config_gbe(core)
