"""Custom exception classes for MCP Warden."""

from typing import Dict, Optional

from mcp_warden.constants import (
    ERR_MALFORMED_REFERENCE,
    ERR_NOT_FOUND,
    ERR_POLICY_DENIED,
    ERR_UNKNOWN_BACKEND,
    ERR_UPSTREAM_UNAVAILABLE,
)


class WardenBaseError(Exception):
    """Base class for all custom exceptions in MCP Warden."""

    #: JSON-RPC error code used when the error is reported to an MCP client.
    code: int = -32603


class ConfigurationError(WardenBaseError):
    """Raised when loading or validating the configuration file fails."""

    pass


class BackendServerError(WardenBaseError):
    """
    Raised when interacting with a backend MCP server fails,
    or when a backend server reports an error.
    """

    def __init__(
        self,
        message: str,
        svr_name: Optional[str] = None,
        orig_exc: Optional[BaseException] = None,
    ):
        self.svr_name = svr_name
        self.orig_exc = orig_exc

        full_msg = "Backend server error"
        if svr_name:
            full_msg += f" (server: {svr_name})"
        full_msg += f": {message}"
        if orig_exc:
            full_msg += f" (original error: {type(orig_exc).__name__}: {orig_exc})"
        super().__init__(full_msg)


# ── Connection lifecycle ─────────────────────────────────────────────────


class AlreadyConnectedError(BackendServerError):
    """Raised by ``connect`` when the backend id is already registered."""

    def __init__(self, svr_name: str):
        super().__init__("already connected", svr_name=svr_name)


class UnsupportedTransportError(BackendServerError):
    """Raised when a backend definition names an unknown transport kind."""

    def __init__(self, svr_name: str, kind: object):
        self.kind = kind
        super().__init__(
            f"unsupported transport kind {kind!r} (expected 'stdio' or 'http')",
            svr_name=svr_name,
        )


class HandshakeError(BackendServerError):
    """Raised when the transport or the MCP initialize handshake fails."""

    def __init__(self, svr_name: str, orig_exc: BaseException):
        super().__init__("connect/initialize failed", svr_name=svr_name, orig_exc=orig_exc)


class CloseAllError(WardenBaseError):
    """Aggregate of per-backend failures raised by ``close_all``."""

    def __init__(self, errors: Dict[str, BaseException]):
        self.errors = dict(errors)
        details = "; ".join(
            f"{name}: {type(exc).__name__}: {exc}" for name, exc in self.errors.items()
        )
        super().__init__(f"Errors closing {len(self.errors)} backend(s): {details}")


# ── Request-time errors ──────────────────────────────────────────────────


class UnknownBackendError(WardenBaseError):
    """No live connection is registered under the resolved backend id."""

    code = ERR_UNKNOWN_BACKEND

    def __init__(self, svr_name: str):
        self.svr_name = svr_name
        super().__init__(f"Upstream server '{svr_name}' not found.")


class MalformedReferenceError(WardenBaseError):
    """Prefix mode is on but the reference lacks the routing separator."""

    code = ERR_MALFORMED_REFERENCE

    def __init__(self, kind: str, reference: str):
        self.kind = kind
        self.reference = reference
        super().__init__(
            f"{kind} reference '{reference}' must be in the form "
            "'<server>:<name>' when server prefixing is enabled."
        )


class PolicyDeniedError(WardenBaseError):
    """The active profile does not allow the requested capability.

    Unknown profiles and backends missing from the profile surface through
    this same error so that callers cannot discover which backends exist.
    """

    code = ERR_POLICY_DENIED

    def __init__(self, kind: str, reference: str):
        self.kind = kind
        self.reference = reference
        super().__init__(f"{kind} '{reference}' is not allowed by profile.")


class CapabilityNotFoundError(WardenBaseError):
    """No permitted backend was found for an unprefixed reference."""

    code = ERR_NOT_FOUND

    def __init__(self, kind: str, reference: str):
        self.kind = kind
        self.reference = reference
        super().__init__(
            f"{kind} '{reference}' not found in any upstream or not allowed by profile."
        )


class UpstreamUnavailableError(WardenBaseError):
    """The backend is registered but has no live session."""

    code = ERR_UPSTREAM_UNAVAILABLE

    def __init__(self, svr_name: str):
        self.svr_name = svr_name
        super().__init__(f"Upstream server '{svr_name}' is unavailable (session missing or closed).")


class UnsupportedOperationError(WardenBaseError):
    """The request is not one of the six dispatched operations."""

    def __init__(self, method: str):
        self.method = method
        super().__init__(f"Unsupported method '{method}'.")
