"""Exception hierarchy for peerlink.

Every module imports from here. The hierarchy is:

    PeerlinkError
    ├── CodecError
    │   ├── DecodeError
    │   └── EncodeError
    ├── PeerConnectionError
    │   ├── NotConnectedError
    │   └── DeadlineExceededError
    ├── AlreadyConnectedError
    ├── HandshakeError
    │   └── VersionMismatchError(expected, actual)
    ├── DiscoveryError
    │   └── MalformedResponseError
    ├── CallError(code, message, data, tool)
    ├── ValidationError(field, expected, actual)
    ├── NotFoundError
    │   ├── PeerNotFoundError(peer)
    │   └── ToolNotFoundError(tool)
    ├── DuplicateError
    │   ├── DuplicateToolError(tool, owner)
    │   └── PeerExistsError(peer)
    ├── NoPeersError
    ├── LaunchError(peer)
    ├── ShutdownError(peer)
    └── ConfigError
"""

from __future__ import annotations

from typing import Any


class PeerlinkError(Exception):
    """Base exception for all peerlink errors."""


class CodecError(PeerlinkError):
    """Envelope could not be converted to or from wire bytes."""


class DecodeError(CodecError):
    """Bytes on the wire are not a valid envelope."""


class EncodeError(CodecError):
    """Envelope holds a value JSON cannot represent."""


# ─── Transport Errors ─────────────────────────────────────────


class PeerConnectionError(PeerlinkError):
    """Transport could not start, or an I/O operation on it failed."""


class NotConnectedError(PeerConnectionError):
    """No live transport is attached."""


class DeadlineExceededError(PeerConnectionError, TimeoutError):
    """The caller's deadline expired before the send completed."""


class AlreadyConnectedError(PeerlinkError):
    """Client already has a live transport."""


# ─── Protocol Errors ──────────────────────────────────────────


class HandshakeError(PeerlinkError):
    """Handshake was rejected or its reply could not be understood."""


class VersionMismatchError(HandshakeError):
    """Peer speaks a different protocol version."""

    def __init__(self, expected: str, actual: str) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"incompatible protocol version: got {actual}, expected {expected}"
        )


class DiscoveryError(PeerlinkError):
    """Capability discovery (tool or resource listing) failed."""


class MalformedResponseError(DiscoveryError):
    """A reply was missing the expected structure."""


class CallError(PeerlinkError):
    """Peer answered with an error envelope. Code and message are preserved."""

    def __init__(
        self,
        code: int,
        message: str,
        data: Any = None,
        tool: str | None = None,
    ) -> None:
        self.code = code
        self.message = message
        self.data = data
        self.tool = tool
        prefix = f"{tool}: " if tool else ""
        super().__init__(f"{prefix}{message} (code: {code})")


class ValidationError(PeerlinkError):
    """Arguments do not match a schema. Names the offending field."""

    def __init__(
        self,
        field: str,
        message: str,
        expected: str | None = None,
        actual: str | None = None,
    ) -> None:
        self.field = field
        self.expected = expected
        self.actual = actual
        super().__init__(message)


# ─── Lookup Errors ────────────────────────────────────────────


class NotFoundError(PeerlinkError):
    """Unknown peer or tool."""


class PeerNotFoundError(NotFoundError):
    def __init__(self, peer: str) -> None:
        self.peer = peer
        super().__init__(f"peer not found: {peer}")


class ToolNotFoundError(NotFoundError):
    def __init__(self, tool: str) -> None:
        self.tool = tool
        super().__init__(f"tool not found: {tool}")


class DuplicateError(PeerlinkError):
    """Name collision on register or launch."""


class DuplicateToolError(DuplicateError):
    def __init__(self, tool: str, owner: str) -> None:
        self.tool = tool
        self.owner = owner
        super().__init__(f"tool {tool} already registered by source {owner}")


class PeerExistsError(DuplicateError):
    def __init__(self, peer: str) -> None:
        self.peer = peer
        super().__init__(f"peer already exists: {peer}")


class NoPeersError(PeerlinkError):
    """Manager holds no peers."""

    def __init__(self) -> None:
        super().__init__("no peers available")


# ─── Lifecycle Errors ─────────────────────────────────────────


class LaunchError(PeerlinkError):
    """Peer process could not be started or connected."""

    def __init__(self, peer: str, message: str) -> None:
        self.peer = peer
        super().__init__(f"[{peer}] {message}")


class ShutdownError(PeerlinkError):
    """Disconnecting from a peer failed."""

    def __init__(self, peer: str, message: str) -> None:
        self.peer = peer
        super().__init__(f"[{peer}] {message}")


# ─── Configuration Errors ─────────────────────────────────────


class ConfigError(PeerlinkError):
    """Invalid configuration."""
