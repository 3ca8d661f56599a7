"""Prompt templates with declared arguments.

Placeholders are written ``{name}``. Arguments that are not declared are
still substituted; declared ``required`` arguments must be present.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from peerlink.errors import ValidationError
from peerlink.types import Content, ToolDefinition


@dataclass(frozen=True, slots=True)
class PromptArgument:
    name: str
    description: str = ""
    required: bool = False


@dataclass(frozen=True, slots=True)
class PromptMessage:
    role: str  # "user" or "assistant"
    content: Content


@dataclass
class Prompt:
    name: str
    template: str
    description: str = ""
    arguments: list[PromptArgument] = field(default_factory=list)

    def validate_arguments(self, args: dict[str, str]) -> None:
        """Raises ValidationError naming the first missing required argument."""
        for arg in self.arguments:
            if arg.required and arg.name not in args:
                raise ValidationError(arg.name, f"missing required argument: {arg.name}")

    def execute(self, args: dict[str, str]) -> str:
        """Validate ``args`` and substitute them into the template."""
        self.validate_arguments(args)
        result = self.template
        for name, value in args.items():
            result = result.replace("{" + name + "}", value)
        return result


def tool_instructions(tool: ToolDefinition) -> str:
    """System-prompt instructions generated from a tool's schema."""
    params = tool.input_schema.get("properties", {})
    required = set(tool.input_schema.get("required") or [])

    lines = [f"## Tool: {tool.name}", tool.description, ""]
    if params:
        lines.append("Parameters:")
        for pname, pinfo in params.items():
            ptype = pinfo.get("type", "any")
            pdesc = pinfo.get("description", "")
            marker = " (required)" if pname in required else ""
            lines.append(f"  - {pname} ({ptype}){marker}: {pdesc}")

    return "\n".join(lines)
