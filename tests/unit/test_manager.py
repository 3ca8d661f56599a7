"""Tests for PeerManager using in-memory clients and transports."""

from __future__ import annotations

from typing import Any

import pytest

from peerlink.config import ClientSettings, PeerConfig
from peerlink.errors import (
    CallError,
    LaunchError,
    NoPeersError,
    NotConnectedError,
    PeerConnectionError,
    PeerExistsError,
    PeerNotFoundError,
    ShutdownError,
)
from peerlink.manager import PeerManager
from peerlink.mock import MockPeerClient
from peerlink.transport import StdioTransport
from tests.fakes import FakeTransport


class _Factories:
    """Hands out one MockPeerClient and FakeTransport per launch."""

    def __init__(self, make_tool: Any) -> None:
        self.make_tool = make_tool
        self.clients: dict[str, MockPeerClient] = {}
        self.transports: dict[str, FakeTransport] = {}
        self._pending: str | None = None
        self.tools_for: dict[str, list[str]] = {}

    def transport(self, config: PeerConfig) -> FakeTransport:
        self._pending = config.name
        transport = FakeTransport()
        self.transports[config.name] = transport
        return transport

    def client(self) -> MockPeerClient:
        name = self._pending or "?"
        tools = [self.make_tool(t) for t in self.tools_for.get(name, ["add"])]
        client = MockPeerClient(tools=tools, results={"add": {"sum": 8}})
        self.clients[name] = client
        return client


@pytest.fixture
def factories(make_tool: Any) -> _Factories:
    return _Factories(make_tool)


@pytest.fixture
def manager(factories: _Factories) -> PeerManager:
    return PeerManager(transport_factory=factories.transport, client_factory=factories.client)


def _peer(name: str) -> PeerConfig:
    return PeerConfig(name=name, command="peer-bin", args=["--serve"])


# ── Launch ──────────────────────────────────────────────────────────


class TestLaunch:
    def test_launch_records_handle(self, manager: PeerManager, factories: _Factories) -> None:
        handle = manager.launch(_peer("calc"))
        assert handle.name == "calc"
        assert [t.name for t in handle.tools] == ["add"]
        assert handle.is_running()
        assert handle.transport is factories.transports["calc"]
        assert factories.clients["calc"].transport is handle.transport
        assert handle.capabilities is not None
        assert manager.names() == ["calc"]
        assert "calc" in manager
        assert len(manager) == 1

    def test_duplicate_name_leaves_existing_untouched(
        self, manager: PeerManager, factories: _Factories
    ) -> None:
        first = manager.launch(_peer("calc"))
        with pytest.raises(PeerExistsError, match="calc"):
            manager.launch(_peer("calc"))
        assert manager.get("calc") is first
        assert first.is_running()
        assert first.transport.closed == 0

    def test_connect_failure(self, factories: _Factories) -> None:
        def failing_client() -> MockPeerClient:
            client = MockPeerClient()
            client.connect_error = PeerConnectionError("exec failed")
            return client

        manager = PeerManager(transport_factory=factories.transport, client_factory=failing_client)
        with pytest.raises(LaunchError, match=r"\[calc\] failed to connect: exec failed") as exc_info:
            manager.launch(_peer("calc"))
        assert isinstance(exc_info.value.__cause__, PeerConnectionError)
        assert "calc" not in manager

    def test_name_free_again_after_failed_launch(self, factories: _Factories) -> None:
        attempts = {"n": 0}

        def flaky_client() -> MockPeerClient:
            attempts["n"] += 1
            client = MockPeerClient()
            if attempts["n"] == 1:
                client.connect_error = PeerConnectionError("first try fails")
            return client

        manager = PeerManager(transport_factory=factories.transport, client_factory=flaky_client)
        with pytest.raises(LaunchError):
            manager.launch(_peer("calc"))
        assert manager.launch(_peer("calc")).name == "calc"

    def test_tool_listing_failure_gives_empty_tools(self, factories: _Factories) -> None:
        def client() -> MockPeerClient:
            c = MockPeerClient()
            c.list_error = CallError(-32601, "no listing")
            return c

        manager = PeerManager(transport_factory=factories.transport, client_factory=client)
        handle = manager.launch(_peer("calc"))
        assert handle.tools == []
        assert handle.is_running()

    def test_default_factories_build_stdio_transport(self) -> None:
        manager = PeerManager(ClientSettings(shutdown_grace=0.5))
        config = PeerConfig(name="p", command="peer-bin", args=["-x"], env={"K": "V"}, cwd="/tmp")
        transport = manager._stdio_transport(config)
        assert isinstance(transport, StdioTransport)
        assert transport.command == ["peer-bin", "-x"]
        assert transport.env == {"K": "V"}
        assert transport.cwd == "/tmp"
        assert transport.shutdown_grace == 0.5


# ── Shutdown ────────────────────────────────────────────────────────


class TestShutdown:
    def test_shutdown(self, manager: PeerManager, factories: _Factories) -> None:
        manager.launch(_peer("calc"))
        manager.shutdown("calc")
        assert "calc" not in manager
        assert factories.clients["calc"].disconnect_count == 1

    def test_shutdown_unknown(self, manager: PeerManager) -> None:
        with pytest.raises(PeerNotFoundError, match="peer not found: ghost"):
            manager.shutdown("ghost")

    def test_shutdown_failure_still_removes(self, manager: PeerManager, factories: _Factories) -> None:
        manager.launch(_peer("calc"))
        factories.clients["calc"].disconnect_error = PeerConnectionError("stuck")
        with pytest.raises(ShutdownError, match=r"\[calc\]"):
            manager.shutdown("calc")
        assert "calc" not in manager

    def test_shutdown_all_continues_past_failures(
        self, manager: PeerManager, factories: _Factories
    ) -> None:
        for name in ("a", "b", "c"):
            manager.launch(_peer(name))
        factories.clients["b"].disconnect_error = PeerConnectionError("stuck")

        with pytest.raises(ShutdownError, match=r"\[b\]"):
            manager.shutdown_all()

        assert len(manager) == 0
        assert all(c.disconnect_count == 1 for c in factories.clients.values())

    def test_shutdown_all_empty(self, manager: PeerManager) -> None:
        manager.shutdown_all()

    def test_context_manager(self, factories: _Factories) -> None:
        with PeerManager(transport_factory=factories.transport, client_factory=factories.client) as m:
            m.launch(_peer("calc"))
        assert len(m) == 0
        assert factories.clients["calc"].disconnect_count == 1


# ── Discovery, health, routing ──────────────────────────────────────


class TestDiscovery:
    def test_no_peers(self, manager: PeerManager) -> None:
        with pytest.raises(NoPeersError, match="no peers available"):
            manager.discover_tools()

    def test_two_peers(self, manager: PeerManager, factories: _Factories) -> None:
        factories.tools_for = {"calc": ["add", "sub"], "echo": ["echo"]}
        manager.launch(_peer("calc"))
        manager.launch(_peer("echo"))
        found = manager.discover_tools()
        assert set(found) == {"calc", "echo"}
        assert [t.name for t in found["calc"]] == ["add", "sub"]

    def test_skips_failing_and_stopped_peers(self, manager: PeerManager, factories: _Factories) -> None:
        for name in ("a", "b", "c"):
            manager.launch(_peer(name))
        factories.clients["b"].list_error = CallError(-32000, "busy")
        factories.clients["c"].disconnect()
        assert set(manager.discover_tools()) == {"a"}

    def test_updates_handle_tools(self, manager: PeerManager, factories: _Factories, make_tool: Any) -> None:
        manager.launch(_peer("calc"))
        factories.clients["calc"].tools = [make_tool("mul")]
        manager.discover_tools()
        assert [t.name for t in manager.get("calc").tools] == ["mul"]


class TestHealth:
    def test_monitor_health(self, manager: PeerManager, factories: _Factories) -> None:
        for name in ("ok", "sick", "gone"):
            manager.launch(_peer(name))
        factories.clients["sick"].health_error = CallError(-32000, "sick")
        factories.clients["gone"].disconnect()

        report = manager.monitor_health()
        assert report["ok"] is None
        assert isinstance(report["sick"], CallError)
        assert isinstance(report["gone"], NotConnectedError)

    def test_empty(self, manager: PeerManager) -> None:
        assert manager.monitor_health() == {}


class TestCallTool:
    def test_routes_to_peer(self, manager: PeerManager, factories: _Factories) -> None:
        manager.launch(_peer("calc"))
        assert manager.call_tool("calc", "add", {"a": 5, "b": 3}) == {"sum": 8}
        assert factories.clients["calc"].calls == [("add", {"a": 5, "b": 3})]

    def test_unknown_peer(self, manager: PeerManager) -> None:
        with pytest.raises(PeerNotFoundError):
            manager.call_tool("ghost", "add", {})

    def test_stopped_peer(self, manager: PeerManager, factories: _Factories) -> None:
        manager.launch(_peer("calc"))
        factories.clients["calc"].disconnect()
        with pytest.raises(NotConnectedError):
            manager.call_tool("calc", "add", {"a": 1, "b": 1})
