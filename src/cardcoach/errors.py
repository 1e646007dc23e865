from typing import Sequence


class CardCoachError(Exception):
    """Base class for errors raised by the conversation engine and its parts."""


class InvalidArgumentsError(CardCoachError):
    """A tool call is missing required arguments or carries unreadable ones."""

    def __init__(self, tool: str, missing: Sequence[str] = (), detail: str = "") -> None:
        self.tool = tool
        self.missing = list(missing)
        self.detail = detail
        if self.missing:
            message = f"{tool}: missing required arguments {', '.join(self.missing)}"
        else:
            message = f"{tool}: {detail or 'invalid arguments'}"
        super().__init__(message)


class UnknownToolError(CardCoachError):
    """The model asked for a tool that is not registered."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Unknown tool: {name}")


class HandlerFailureError(CardCoachError):
    """A tool handler raised while running."""

    def __init__(self, tool: str, cause: BaseException) -> None:
        self.tool = tool
        self.cause = cause
        super().__init__(f"{tool} failed: {cause}")


class AdapterFailureError(CardCoachError):
    """The model endpoint errored, timed out or returned an unusable reply."""
