"""
Calculator peer.

A reference implementation showing how to build a peer with typed
arguments. Runs as a subprocess, communicates via stdin/stdout JSON-RPC.

Launch:
    python -m peerlink.servers.calculator

Test manually:
    echo '{"jsonrpc":"2.0","method":"mcp.ping","params":{},"id":1}' | python -m peerlink.servers.calculator
    echo '{"jsonrpc":"2.0","method":"add","params":{"a":5,"b":3},"id":2}' | python -m peerlink.servers.calculator
"""

import logging
import os

from peerlink.server import StdioToolServer, ToolHandler
from peerlink.types import Resource


class AddTool(ToolHandler):
    name = "add"
    description = "Add two numbers."
    parameters = {
        "a": {"type": "number", "description": "First addend"},
        "b": {"type": "number", "description": "Second addend"},
    }
    required = ["a", "b"]

    def handle(self, params: dict) -> dict:
        return {"sum": params["a"] + params["b"]}


class ConvertUnitsTool(ToolHandler):
    name = "convert_units"
    description = "Convert between common units (length, weight, temperature)."
    parameters = {
        "value": {"type": "number", "description": "The value to convert"},
        "from_unit": {"type": "string", "description": "Source unit (e.g., 'km', 'lb', 'celsius')"},
        "to_unit": {"type": "string", "description": "Target unit (e.g., 'miles', 'kg', 'fahrenheit')"},
    }
    required = ["value", "from_unit", "to_unit"]

    _conversions = {
        ("km", "miles"): lambda v: v * 0.621371,
        ("miles", "km"): lambda v: v * 1.60934,
        ("kg", "lb"): lambda v: v * 2.20462,
        ("lb", "kg"): lambda v: v * 0.453592,
        ("celsius", "fahrenheit"): lambda v: v * 9 / 5 + 32,
        ("fahrenheit", "celsius"): lambda v: (v - 32) * 5 / 9,
        ("m", "ft"): lambda v: v * 3.28084,
        ("ft", "m"): lambda v: v * 0.3048,
    }

    def handle(self, params: dict) -> dict:
        value = params["value"]
        from_unit = params["from_unit"].lower()
        to_unit = params["to_unit"].lower()

        converter = self._conversions.get((from_unit, to_unit))
        if not converter:
            available = [f"{f} -> {t}" for f, t in self._conversions]
            raise ValueError(f"Unknown conversion: {from_unit} -> {to_unit}. Available: {available}")

        result = converter(value)
        return {"value": value, "from": from_unit, "to": to_unit, "result": result}


def main() -> None:
    logging.basicConfig(
        level=os.environ.get("PEERLINK_LOG_LEVEL", "WARNING"),
        format="%(levelname)s: %(message)s",
    )
    server = StdioToolServer("calculator")
    server.register(AddTool())
    server.register(ConvertUnitsTool())
    server.add_resource(Resource(
        name="units",
        uri="calc://units",
        description="Supported unit conversions",
        mime_type="text/plain",
    ))
    server.run()


if __name__ == "__main__":
    main()
