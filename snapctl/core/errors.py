"""Domain-specific errors for snapctl."""

from __future__ import annotations


class SnapctlError(Exception):
    """Base error for snapctl."""


class ProfileValidationError(SnapctlError):
    """Raised when a profile file does not conform to schema or semantics."""


class ProfileLoadError(SnapctlError):
    """Raised when loading profile sources fails."""


class ProfileResolutionError(SnapctlError):
    """Raised when a requested profile id is not known."""


class ProtocolError(SnapctlError):
    """Raised on malformed lines or unexpected message kinds/order."""


class InventoryMismatchError(ProtocolError):
    """Raised when an enumeration reply count disagrees with its informs."""


class DeviceError(SnapctlError):
    """Raised when a reply reports a non-ok return code."""

    def __init__(self, message_name: str, ret_code: str, detail: str | None = None) -> None:
        self.message_name = message_name
        self.ret_code = ret_code
        self.detail = detail
        text = f"Request '{message_name}' failed with '{ret_code}'"
        if detail:
            text = f"{text}: {detail}"
        super().__init__(text)


class TransportError(SnapctlError):
    """Base transport error."""


class TransportConnectError(TransportError):
    """Raised on TCP connect failures or when the session has closed."""


class TransportSendError(TransportError):
    """Raised when writing to or reading from the socket fails."""


class TransportTimeoutError(TransportError):
    """Raised when a bounded wait on the device expires."""
