import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence, Set

from ..errors import (
    AdapterFailureError,
    HandlerFailureError,
    InvalidArgumentsError,
    UnknownToolError,
)
from ..models import ChatReply, ConversationHistory, ModelResponse, ToolCall, ToolResult, Turn
from ..services.history_service import HistoryStore
from .client import ModelClient
from .registry import ToolRegistry

logger = logging.getLogger(__name__)

ENGINE_ERROR_MESSAGE = "Sorry, I encountered an error processing that request."
LOOP_BOUND_MESSAGE = (
    "I'm sorry, I couldn't finish working that out. Please try rephrasing your question."
)


class ConversationEngine:
    """Drives one user turn through model requests and tool dispatch until a text answer.

    Runs for the same session are serialized with a per-session lock so that
    load -> model/tool rounds -> save never interleave. Runs for different
    sessions proceed independently.
    """

    def __init__(
        self,
        model_client: ModelClient,
        registry: ToolRegistry,
        history_store: HistoryStore,
        max_tool_rounds: int = 6,
        model_timeout_seconds: float = 30.0,
        tool_timeout_seconds: float = 10.0,
        default_session_id: str = "default",
    ) -> None:
        if max_tool_rounds < 1:
            raise ValueError("max_tool_rounds must be at least 1")
        self._model = model_client
        self._registry = registry
        self._history = history_store
        self._max_tool_rounds = max_tool_rounds
        self._model_timeout = model_timeout_seconds
        self._tool_timeout = tool_timeout_seconds
        self._default_session_id = default_session_id
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}
        # Tool batches that outlived a cancelled run; kept referenced until done.
        self._inflight: Set[asyncio.Future] = set()

    @property
    def default_session_id(self) -> str:
        return self._default_session_id

    @asynccontextmanager
    async def session_lock(self, session_id: str) -> AsyncIterator[None]:
        """Hold the session's lock; the lock is dropped once nobody holds or awaits it."""
        lock = self._locks.setdefault(session_id, asyncio.Lock())
        self._lock_users[session_id] = self._lock_users.get(session_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[session_id] -= 1
            if not self._lock_users[session_id]:
                del self._lock_users[session_id]
                del self._locks[session_id]

    async def run(self, user_text: str, session_id: Optional[str] = None) -> ChatReply:
        """Answer user_text within session_id and persist the conversation.

        Args:
            user_text: Non-empty user message.
            session_id: Conversation scope; None or "" maps to the default session.

        Returns:
            ChatReply: Final text plus how many tool calls and rounds it took.

        Raises:
            ValueError: user_text is empty.
            AdapterFailureError: the model endpoint failed; history is left untouched.
        """
        if not user_text or not user_text.strip():
            raise ValueError("user_text must not be empty")
        session_id = session_id or self._default_session_id

        async with self.session_lock(session_id):
            history = await self._history.load(session_id)
            logger.info("Session %s: run started with %d stored turns", session_id, len(history))
            tools = self._registry.schemas()
            new_turns: List[Turn] = [Turn.user(user_text)]

            response = await self._send(history.turns + tuple(new_turns), tools)
            rounds = 0
            calls_count = 0
            while not response.is_terminal:
                if rounds >= self._max_tool_rounds:
                    logger.warning(
                        "Session %s: model still requesting tools after %d rounds; giving up",
                        session_id,
                        rounds,
                    )
                    final_text = LOOP_BOUND_MESSAGE
                    break
                rounds += 1
                calls_count += len(response.tool_calls)
                logger.info(
                    "Session %s: round %d tools: %s",
                    session_id,
                    rounds,
                    ", ".join(c.name for c in response.tool_calls),
                )
                new_turns.append(Turn.calls(response.tool_calls, text=response.text))
                results = await self._dispatch(response.tool_calls)
                new_turns.append(Turn.results(results))
                response = await self._send(history.turns + tuple(new_turns), tools)
            else:
                final_text = response.text or ""

            new_turns.append(Turn.model(final_text))
            updated = ConversationHistory(turns=history.turns + tuple(new_turns))
            if not await self._history.save(session_id, updated):
                logger.warning("Session %s: history could not be saved", session_id)

        return ChatReply(
            text=final_text,
            session_id=session_id,
            tool_calls_count=calls_count,
            rounds=rounds,
        )

    async def _send(
        self, conversation: Sequence[Turn], tools: Sequence[Dict[str, Any]]
    ) -> ModelResponse:
        try:
            return await asyncio.wait_for(
                self._model.send(conversation, tools), timeout=self._model_timeout
            )
        except asyncio.TimeoutError as e:
            logger.error("Model did not answer within %.1fs", self._model_timeout)
            raise AdapterFailureError(
                f"Model did not answer within {self._model_timeout}s"
            ) from e

    async def _dispatch(self, calls: Sequence[ToolCall]) -> List[ToolResult]:
        """Run all calls concurrently and return their results in call order.

        If the caller is cancelled, the batch keeps running to completion and its
        results are dropped.
        """
        batch = asyncio.gather(*(self._call_tool(call) for call in calls))
        self._inflight.add(batch)
        batch.add_done_callback(self._inflight.discard)
        return list(await asyncio.shield(batch))

    async def _call_tool(self, call: ToolCall) -> ToolResult:
        try:
            spec = self._registry.resolve(call.name)
            if call.argument_error:
                raise InvalidArgumentsError(call.name, detail=call.argument_error)
            arguments = spec.bind(call.arguments)
        except UnknownToolError:
            logger.warning("Model requested unknown tool %r", call.name)
            return _error_result(call, {"error": "unknown tool", "tool": call.name})
        except InvalidArgumentsError as e:
            logger.warning("Rejected tool call: %s", e)
            payload: Dict[str, Any] = {"error": "invalid arguments", "tool": call.name}
            if e.missing:
                payload["missing"] = e.missing
            if e.detail:
                payload["detail"] = e.detail
            return _error_result(call, payload)

        logger.info("Executing tool: %s", call.name)
        try:
            result = await asyncio.wait_for(spec.handler(**arguments), timeout=self._tool_timeout)
        except asyncio.TimeoutError:
            logger.warning("Tool %s timed out after %.1fs", call.name, self._tool_timeout)
            return _error_result(call, {"error": "tool timed out", "tool": call.name})
        except Exception as e:
            logger.exception("%s", HandlerFailureError(call.name, e))
            return _error_result(call, {"error": "tool failed", "tool": call.name, "detail": str(e)})

        if not isinstance(result, dict):
            result = {"result": result}
        return ToolResult(name=call.name, result=result, call_id=call.call_id)


def _error_result(call: ToolCall, payload: Dict[str, Any]) -> ToolResult:
    return ToolResult(name=call.name, result=payload, call_id=call.call_id)
