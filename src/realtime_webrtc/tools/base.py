"""Base class for model-callable tools."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class ToolResult:
    """Result of a tool invocation, re-entered into the conversation as user text.

    Attributes:
        kind: Short noun describing the data ("weather"), used in the message
        payload: Text payload (typically pretty-printed JSON)
        instructions: Instructions for the follow-up response, or None for defaults
    """

    kind: str
    payload: str
    instructions: str | None = None

    def as_message(self) -> str:
        return f"Here is the {self.kind} data: {self.payload}"


class Tool(ABC):
    """A named function the model may call."""

    name: str
    description: str
    parameters: dict[str, Any] | None = None

    @property
    def declaration(self) -> dict[str, Any]:
        """Function declaration sent in ``session.update``."""
        declaration: dict[str, Any] = {
            "type": "function",
            "name": self.name,
            "description": self.description,
        }
        if self.parameters is not None:
            declaration["parameters"] = self.parameters
        return declaration

    @abstractmethod
    async def run(self, args: dict[str, Any]) -> ToolResult:
        """Execute the tool.

        Args:
            args: Decoded JSON arguments from the function call

        Raises:
            ToolError: If the underlying lookup fails
        """
