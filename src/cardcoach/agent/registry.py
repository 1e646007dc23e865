from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Tuple

from ..errors import InvalidArgumentsError, UnknownToolError
from .tools import CATEGORIES, FinanceTools

ToolHandler = Callable[..., Awaitable[Dict[str, Any]]]


@dataclass(frozen=True)
class ToolSpec:
    """A registered tool: name, JSON-schema parameters and async handler."""

    name: str
    description: str
    parameters: Dict[str, Any]
    handler: ToolHandler

    @property
    def required(self) -> Tuple[str, ...]:
        return tuple(self.parameters.get("required", ()))

    @property
    def properties(self) -> Dict[str, Any]:
        return self.parameters.get("properties", {})

    def bind(self, arguments: Dict[str, Any]) -> Dict[str, Any]:
        """Return the declared arguments from the bag, checking required ones are present."""
        missing = [p for p in self.required if arguments.get(p) is None]
        if missing:
            raise InvalidArgumentsError(self.name, missing=missing)
        return {k: v for k, v in arguments.items() if k in self.properties}

    def schema(self) -> Dict[str, Any]:
        """OpenAI tool schema for this spec."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


class ToolRegistry:
    """Tool name -> ToolSpec lookup. Fixed once built."""

    def __init__(self, specs: Iterable[ToolSpec]) -> None:
        tools: Dict[str, ToolSpec] = {}
        for spec in specs:
            if spec.name in tools:
                raise ValueError(f"Duplicate tool name: {spec.name}")
            tools[spec.name] = spec
        self._tools = tools

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def names(self) -> List[str]:
        return list(self._tools)

    def resolve(self, name: str) -> ToolSpec:
        """Return the spec registered under name.

        Raises:
            UnknownToolError: no tool has that name.
        """
        try:
            return self._tools[name]
        except KeyError:
            raise UnknownToolError(name) from None

    def schemas(self) -> List[Dict[str, Any]]:
        return [spec.schema() for spec in self._tools.values()]


def build_registry(tools: FinanceTools) -> ToolRegistry:
    """Register the finance tools backed by the given handlers."""
    category = {
        "type": "string",
        "enum": list(CATEGORIES),
        "description": "The category of the purchase",
    }
    return ToolRegistry(
        [
            ToolSpec(
                name="get_account_balance",
                description="Get the balance of one or more accounts",
                parameters={
                    "type": "object",
                    "properties": {
                        "account_names": {
                            "type": "array",
                            "items": {"type": "string"},
                            "description": "List of account names or nicknames to check balance for",
                        }
                    },
                    "required": ["account_names"],
                },
                handler=tools.get_account_balance,
            ),
            ToolSpec(
                name="check_affordability",
                description=(
                    "Check if user can afford an item and recommend best account "
                    "based on cashback and balances"
                ),
                parameters={
                    "type": "object",
                    "properties": {
                        "item": {"type": "string", "description": "The item the user wants to buy"},
                        "amount": {"type": "number", "description": "The cost of the item"},
                        "category": category,
                    },
                    "required": ["item", "amount"],
                },
                handler=tools.check_affordability,
            ),
            ToolSpec(
                name="get_market_card_recommendations",
                description=(
                    "List the best credit cards on the market for a spending category, "
                    "to compare against the cards the user already owns"
                ),
                parameters={
                    "type": "object",
                    "properties": {"category": category},
                    "required": ["category"],
                },
                handler=tools.get_market_card_recommendations,
            ),
            ToolSpec(
                name="get_financial_summary",
                description=(
                    "Summarize the user's cards (limit and balance) and total spending "
                    "per category"
                ),
                parameters={"type": "object", "properties": {}},
                handler=tools.get_financial_summary,
            ),
        ]
    )
