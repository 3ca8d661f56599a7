"""Tool hub: every peer's tools in one namespace.

The hub pairs a :class:`PeerManager` with a :class:`ToolRegistry`. Adding
a peer imports its tools under the peer's name; calling a tool resolves the
owning peer through the registry and forwards the call to that peer.
"""

from __future__ import annotations

import logging
from typing import Any

from peerlink.config import PeerConfig, PeerlinkConfig
from peerlink.errors import DuplicateToolError, PeerlinkError, ShutdownError
from peerlink.manager import PeerHandle, PeerManager
from peerlink.registry import ToolRegistry
from peerlink.types import CallToolResult, ToolCall, ToolDefinition

logger = logging.getLogger(__name__)


class ToolHub:
    def __init__(
        self,
        manager: PeerManager | None = None,
        registry: ToolRegistry | None = None,
    ) -> None:
        # Both define __len__, so an empty injected instance is falsy
        self.manager = manager if manager is not None else PeerManager()
        self.registry = registry if registry is not None else ToolRegistry()
        self.registry.set_invoker(self._invoke)

    @classmethod
    def from_config(cls, config: PeerlinkConfig) -> ToolHub:
        """A hub whose manager uses ``config.client`` settings. Peers are not started."""
        return cls(manager=PeerManager(config.client))

    # ── Peers ────────────────────────────────────────────────────

    def add_peer(self, config: PeerConfig) -> PeerHandle:
        """Launch a peer and register its tools under its name.

        If one of its tool names is already owned by another peer, the new
        peer is shut down again and nothing of it is registered.

        Raises:
            PeerExistsError, LaunchError: From the manager.
            DuplicateToolError: Tool name collision with another peer.
        """
        handle = self.manager.launch(config)
        try:
            self._register_all(handle.name, handle.tools)
        except DuplicateToolError:
            self.registry.unregister_source(handle.name)
            try:
                self.manager.shutdown(handle.name)
            except ShutdownError as e:
                logger.error(f"Rollback of {handle.name} failed: {e}")
            raise
        return handle

    def remove_peer(self, name: str) -> None:
        """Drop a peer's tools, then shut the peer down."""
        removed = self.registry.unregister_source(name)
        logger.debug(f"Unregistered {len(removed)} tools from {name}")
        self.manager.shutdown(name)

    def peers(self) -> list[str]:
        return self.manager.names()

    def refresh(self, timeout: float | None = None) -> dict[str, list[ToolDefinition]]:
        """Re-discover tools and re-sync the registry for peers that answered.

        A tool whose name is now owned by a different peer is skipped with
        a warning.
        """
        discovered = self.manager.discover_tools(timeout)
        for peer, tools in discovered.items():
            self.registry.unregister_source(peer)
            for tool in tools:
                try:
                    self.registry.register(tool, peer)
                except DuplicateToolError as e:
                    logger.warning(f"Skipping tool from {peer}: {e}")
        return discovered

    def shutdown(self) -> None:
        """Shut every peer down and empty the registry."""
        try:
            self.manager.shutdown_all()
        finally:
            for name in self.registry.list_names():
                self.registry.unregister(name)

    # ── Tools ────────────────────────────────────────────────────

    def list_tools(self) -> list[ToolDefinition]:
        return self.registry.list()

    def get_tool(self, name: str) -> ToolDefinition:
        return self.registry.get(name)

    def call_tool(
        self,
        name: str,
        arguments: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> CallToolResult:
        """Validate and run ``name`` on whichever peer owns it.

        Raises:
            ToolNotFoundError: No peer advertises the tool.
            ValidationError: Arguments do not match its schema.
            PeerNotFoundError: The owning peer is gone.
            CallError: The peer reported a failure.
        """
        call = ToolCall(name=name, arguments=dict(arguments or {}))
        return self.registry.execute(
            call,
            invoker=lambda source, tool, args: self._invoke(source, tool, args, timeout),
        )

    def __enter__(self) -> ToolHub:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.shutdown()

    # ── Internals ────────────────────────────────────────────────

    def _register_all(self, source: str, tools: list[ToolDefinition]) -> None:
        for tool in tools:
            try:
                self.registry.register(tool, source)
            except DuplicateToolError:
                raise
            except PeerlinkError as e:
                logger.warning(f"Skipping invalid tool from {source}: {e}")

    def _invoke(
        self,
        source: str,
        name: str,
        arguments: dict[str, Any],
        timeout: float | None = None,
    ) -> Any:
        return self.manager.call_tool(source, name, arguments, timeout)
