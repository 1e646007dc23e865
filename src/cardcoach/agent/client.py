import json
import logging
from typing import Any, Dict, List, Sequence

from openai import APIError, AsyncOpenAI

from ..errors import AdapterFailureError
from ..models import ModelResponse, ToolCall, Turn
from ..settings import Settings

logger = logging.getLogger(__name__)


def _call_id(call: ToolCall, position: int) -> str:
    return call.call_id or f"call_{position}"


def turns_to_messages(system_prompt: str, conversation: Sequence[Turn]) -> List[Dict[str, Any]]:
    """Convert conversation turns to chat-completions messages.

    A tool-result turn expands to one `tool` message per result, in order, each
    answering the call at the same position of the preceding model turn.
    """
    messages: List[Dict[str, Any]] = [{"role": "system", "content": system_prompt}]
    for turn in conversation:
        if turn.role == "user":
            messages.append({"role": "user", "content": turn.text or ""})
        elif turn.role == "model" and turn.tool_calls:
            messages.append(
                {
                    "role": "assistant",
                    "content": turn.text or None,
                    "tool_calls": [
                        {
                            "id": _call_id(call, i),
                            "type": "function",
                            "function": {
                                "name": call.name,
                                "arguments": json.dumps(call.arguments),
                            },
                        }
                        for i, call in enumerate(turn.tool_calls)
                    ],
                }
            )
        elif turn.role == "model":
            messages.append({"role": "assistant", "content": turn.text or ""})
        else:
            for i, result in enumerate(turn.tool_results):
                messages.append(
                    {
                        "role": "tool",
                        "tool_call_id": result.call_id or f"call_{i}",
                        "content": json.dumps(result.result, default=str),
                    }
                )
    return messages


def _parse_tool_call(raw: Any, position: int) -> ToolCall:
    name = raw.function.name or ""
    call_id = raw.id or f"call_{position}"
    text = raw.function.arguments or ""
    if not text.strip():
        return ToolCall(name=name, arguments={}, call_id=call_id)
    try:
        arguments = json.loads(text)
    except json.JSONDecodeError as e:
        return ToolCall(name=name, call_id=call_id, argument_error=f"arguments are not valid JSON: {e}")
    if not isinstance(arguments, dict):
        return ToolCall(name=name, call_id=call_id, argument_error="arguments must be a JSON object")
    return ToolCall(name=name, arguments=arguments, call_id=call_id)


class ModelClient:
    """Chat-completions adapter: sends the conversation, normalizes the reply."""

    def __init__(
        self,
        client: AsyncOpenAI,
        model: str,
        system_prompt: str,
        temperature: float = 0.0,
    ) -> None:
        self._client = client
        self._model = model
        self._system_prompt = system_prompt
        self._temperature = temperature

    @classmethod
    def from_settings(cls, settings: Settings) -> "ModelClient":
        client = AsyncOpenAI(
            api_key=settings.openai_api_key,
            base_url=settings.openai_base_url,
            timeout=settings.model_request_timeout_seconds,
            max_retries=0,
        )
        return cls(
            client=client,
            model=settings.model,
            system_prompt=settings.agent_system_prompt,
            temperature=settings.temperature,
        )

    async def send(
        self,
        conversation: Sequence[Turn],
        tools: Sequence[Dict[str, Any]] = (),
    ) -> ModelResponse:
        """Send the conversation (last turn is the new user text or tool results).

        Returns:
            ModelResponse: terminal text, or every tool call of the reply in order.

        Raises:
            AdapterFailureError: the endpoint errored or returned no choices.
        """
        messages = turns_to_messages(self._system_prompt, conversation)
        request: Dict[str, Any] = {
            "model": self._model,
            "messages": messages,
            "temperature": self._temperature,
        }
        if tools:
            request["tools"] = list(tools)
            request["tool_choice"] = "auto"

        try:
            response = await self._client.chat.completions.create(**request)
        except APIError as e:
            logger.error("Model request failed: %s", e)
            raise AdapterFailureError(f"Model request failed: {e}") from e

        if not response.choices:
            raise AdapterFailureError("Model returned no choices")
        message = response.choices[0].message
        if message.tool_calls:
            calls = tuple(_parse_tool_call(tc, i) for i, tc in enumerate(message.tool_calls))
            logger.debug("Model requested %d tool call(s)", len(calls))
            return ModelResponse(text=message.content, tool_calls=calls)
        return ModelResponse(text=message.content or "")
