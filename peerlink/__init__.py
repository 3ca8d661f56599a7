"""
peerlink — launch tool peers over stdio and call their tools from one place.

Architecture:
    ┌──────────────┐     stdio      ┌──────────────┐
    │   ToolHub    │ ──────────── │     Peer      │
    │ (registry +  │  JSON-RPC    │  (subprocess) │
    │  manager)    │     pipes     └──────────────┘
    └──────────────┘

Each peer is a standalone process that communicates via stdin/stdout
using newline-delimited JSON-RPC 2.0 messages.

The StdioToolServer base class handles the peer side of the protocol.
Subclasses of ToolHandler implement specific tools.

The PeerManager launches and supervises peer processes, the ToolRegistry
keeps one namespace of tools across all of them, and the ToolHub ties the
two together. The bridge turns hub tools into LangChain tools.
"""

__version__ = "0.1.0"

from peerlink.client import PeerClient, ProtocolClient
from peerlink.config import PeerConfig, PeerlinkConfig, load_config
from peerlink.errors import PeerlinkError
from peerlink.hub import ToolHub
from peerlink.manager import PeerHandle, PeerManager
from peerlink.registry import ToolRegistry
from peerlink.server import StdioToolServer, ToolHandler
from peerlink.transport import StdioTransport, Transport
from peerlink.types import CallToolResult, ToolCall, ToolDefinition


# Bridge imports langchain lazily so peers stay standalone
def to_langchain_tool(*args, **kwargs):
    from peerlink.bridge import to_langchain_tool as _impl
    return _impl(*args, **kwargs)


def langchain_tools(*args, **kwargs):
    from peerlink.bridge import langchain_tools as _impl
    return _impl(*args, **kwargs)


__all__ = [
    "__version__",
    "CallToolResult",
    "PeerClient",
    "PeerConfig",
    "PeerHandle",
    "PeerManager",
    "PeerlinkConfig",
    "PeerlinkError",
    "ProtocolClient",
    "StdioToolServer",
    "StdioTransport",
    "ToolCall",
    "ToolDefinition",
    "ToolHandler",
    "ToolHub",
    "ToolRegistry",
    "Transport",
    "load_config",
    "langchain_tools",
    "to_langchain_tool",
]
