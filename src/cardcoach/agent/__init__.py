from __future__ import annotations

"""Agent package for the CardCoach tool-calling assistant.

The conversation engine lives in `engine`; the tool registry, the finance
tool handlers and the model adapter it drives are kept in separate modules.
"""

from .client import ModelClient
from .engine import ENGINE_ERROR_MESSAGE, LOOP_BOUND_MESSAGE, ConversationEngine
from .registry import ToolRegistry, ToolSpec, build_registry
from .tools import FinanceTools

__all__ = [
    "ConversationEngine",
    "ENGINE_ERROR_MESSAGE",
    "FinanceTools",
    "LOOP_BOUND_MESSAGE",
    "ModelClient",
    "ToolRegistry",
    "ToolSpec",
    "build_registry",
]
