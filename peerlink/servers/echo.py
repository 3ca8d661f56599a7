"""
Echo peer — minimal reference implementation.

Use this as a template for building new peers. ``echo`` returns its input,
``environment`` reports the working directory and one environment
variable; both are useful for testing the transport layer.

Launch:
    python -m peerlink.servers.echo

Test:
    echo '{"jsonrpc":"2.0","method":"mcp.ping","params":{},"id":1}' | python -m peerlink.servers.echo
"""

import logging
import os

from peerlink.server import StdioToolServer, ToolHandler


class EchoTool(ToolHandler):
    name = "echo"
    description = "Echoes back the input message. Useful for testing."
    parameters = {
        "message": {
            "type": "string",
            "description": "The message to echo back",
        },
    }
    required = ["message"]

    def handle(self, params: dict) -> dict:
        message = params["message"]
        return {"echoed": message, "length": len(message)}


class EnvironmentTool(ToolHandler):
    name = "environment"
    description = "Reports the working directory and the value of one environment variable."
    parameters = {
        "key": {"type": "string", "description": "Environment variable to read"},
    }

    def handle(self, params: dict) -> dict:
        key = params.get("key", "")
        return {"cwd": os.getcwd(), "key": key, "value": os.environ.get(key)}


def main() -> None:
    logging.basicConfig(
        level=os.environ.get("PEERLINK_LOG_LEVEL", "WARNING"),
        format="%(levelname)s: %(message)s",
    )
    server = StdioToolServer("echo")
    server.register(EchoTool())
    server.register(EnvironmentTool())
    server.run()


if __name__ == "__main__":
    main()
