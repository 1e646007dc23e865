from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Literal, Optional, Tuple

Role = Literal["user", "model", "tool-result"]
ROLES: Tuple[str, ...] = ("user", "model", "tool-result")


@dataclass(frozen=True)
class ToolCall:
    """A tool invocation requested by the model."""

    name: str
    arguments: Dict[str, Any] = field(default_factory=dict)
    call_id: str = ""
    # Set when the endpoint sent argument text that is not a JSON object.
    argument_error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "arguments": self.arguments, "call_id": self.call_id}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ToolCall":
        return cls(
            name=str(data["name"]),
            arguments=dict(data.get("arguments") or {}),
            call_id=str(data.get("call_id", "")),
        )


@dataclass(frozen=True)
class ToolResult:
    """Result of one tool call, correlated to its call by position."""

    name: str
    result: Dict[str, Any]
    call_id: str = ""

    @property
    def is_error(self) -> bool:
        return "error" in self.result

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "result": self.result, "call_id": self.call_id}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ToolResult":
        return cls(
            name=str(data["name"]),
            result=dict(data.get("result") or {}),
            call_id=str(data.get("call_id", "")),
        )


@dataclass(frozen=True)
class Turn:
    """One message of a conversation: user text, model text/calls, or tool results."""

    role: Role
    text: Optional[str] = None
    tool_calls: Tuple[ToolCall, ...] = ()
    tool_results: Tuple[ToolResult, ...] = ()

    @classmethod
    def user(cls, text: str) -> "Turn":
        return cls(role="user", text=text)

    @classmethod
    def model(cls, text: str) -> "Turn":
        return cls(role="model", text=text)

    @classmethod
    def calls(cls, tool_calls: Iterable[ToolCall], text: Optional[str] = None) -> "Turn":
        return cls(role="model", text=text, tool_calls=tuple(tool_calls))

    @classmethod
    def results(cls, tool_results: Iterable[ToolResult]) -> "Turn":
        return cls(role="tool-result", tool_results=tuple(tool_results))

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"role": self.role}
        if self.text is not None:
            data["text"] = self.text
        if self.tool_calls:
            data["tool_calls"] = [c.to_dict() for c in self.tool_calls]
        if self.tool_results:
            data["tool_results"] = [r.to_dict() for r in self.tool_results]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Turn":
        role = data["role"]
        if role not in ROLES:
            raise ValueError(f"Unknown turn role: {role!r}")
        text = data.get("text")
        return cls(
            role=role,
            text=None if text is None else str(text),
            tool_calls=tuple(ToolCall.from_dict(c) for c in data.get("tool_calls", [])),
            tool_results=tuple(ToolResult.from_dict(r) for r in data.get("tool_results", [])),
        )


@dataclass(frozen=True)
class ConversationHistory:
    """Ordered turns of a session, newest last."""

    turns: Tuple[Turn, ...] = ()

    def __len__(self) -> int:
        return len(self.turns)

    def windowed(self, window: int) -> "ConversationHistory":
        """Keep the newest `window` turns.

        A kept window never starts with a model or tool-result turn whose
        matching user turn was evicted, so it may come out shorter than `window`.
        """
        turns = self.turns[-window:] if window > 0 else ()
        start = 0
        while start < len(turns) and turns[start].role != "user":
            start += 1
        return ConversationHistory(turns=turns[start:])


@dataclass(frozen=True)
class ModelResponse:
    """Normalized model reply: terminal text, or one or more tool calls."""

    text: Optional[str] = None
    tool_calls: Tuple[ToolCall, ...] = ()

    @property
    def is_terminal(self) -> bool:
        return not self.tool_calls


@dataclass(frozen=True)
class ChatReply:
    """What a single engine run hands back to its caller."""

    text: str
    session_id: str
    tool_calls_count: int = 0
    rounds: int = 0
