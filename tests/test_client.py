import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import openai
import pytest

from cardcoach.agent.client import ModelClient, turns_to_messages
from cardcoach.errors import AdapterFailureError
from cardcoach.models import ToolCall, ToolResult, Turn


def _completion(content=None, tool_calls=None) -> SimpleNamespace:
    message = SimpleNamespace(content=content, tool_calls=tool_calls)
    return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def _raw_call(call_id, name, arguments) -> SimpleNamespace:
    return SimpleNamespace(id=call_id, function=SimpleNamespace(name=name, arguments=arguments))


@pytest.fixture
def openai_client() -> MagicMock:
    m = MagicMock()
    m.chat.completions.create = AsyncMock(return_value=_completion(content="Hello!"))
    return m


@pytest.fixture
def model_client(openai_client: MagicMock) -> ModelClient:
    return ModelClient(openai_client, model="gpt-4o-mini", system_prompt="Be helpful.")


@pytest.mark.asyncio
async def test_send_terminal_text(model_client: ModelClient, openai_client: MagicMock) -> None:
    tools = [{"type": "function", "function": {"name": "x", "parameters": {}}}]
    response = await model_client.send([Turn.user("hi")], tools)
    assert response.is_terminal
    assert response.text == "Hello!"
    kwargs = openai_client.chat.completions.create.call_args.kwargs
    assert kwargs["model"] == "gpt-4o-mini"
    assert kwargs["tools"] == tools
    assert kwargs["tool_choice"] == "auto"
    assert kwargs["messages"] == [
        {"role": "system", "content": "Be helpful."},
        {"role": "user", "content": "hi"},
    ]


@pytest.mark.asyncio
async def test_send_without_tools_omits_tool_choice(model_client: ModelClient, openai_client: MagicMock) -> None:
    await model_client.send([Turn.user("hi")])
    kwargs = openai_client.chat.completions.create.call_args.kwargs
    assert "tools" not in kwargs
    assert "tool_choice" not in kwargs


@pytest.mark.asyncio
async def test_send_exposes_every_tool_call(model_client: ModelClient, openai_client: MagicMock) -> None:
    openai_client.chat.completions.create.return_value = _completion(
        tool_calls=[
            _raw_call("c1", "get_account_balance", '{"account_names": ["card1"]}'),
            _raw_call("c2", "get_financial_summary", ""),
            _raw_call(None, "check_affordability", "{oops"),
            _raw_call("c4", "check_affordability", "[1, 2]"),
        ]
    )
    response = await model_client.send([Turn.user("hi")])
    assert not response.is_terminal
    calls = response.tool_calls
    assert [c.name for c in calls] == [
        "get_account_balance",
        "get_financial_summary",
        "check_affordability",
        "check_affordability",
    ]
    assert calls[0] == ToolCall(name="get_account_balance", arguments={"account_names": ["card1"]}, call_id="c1")
    assert calls[1].arguments == {} and calls[1].argument_error is None
    assert calls[2].call_id == "call_2"
    assert "not valid JSON" in calls[2].argument_error
    assert calls[3].argument_error == "arguments must be a JSON object"


@pytest.mark.asyncio
async def test_send_maps_api_errors(model_client: ModelClient, openai_client: MagicMock) -> None:
    request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
    openai_client.chat.completions.create.side_effect = openai.APIConnectionError(request=request)
    with pytest.raises(AdapterFailureError):
        await model_client.send([Turn.user("hi")])


@pytest.mark.asyncio
async def test_send_rejects_empty_choices(model_client: ModelClient, openai_client: MagicMock) -> None:
    openai_client.chat.completions.create.return_value = SimpleNamespace(choices=[])
    with pytest.raises(AdapterFailureError):
        await model_client.send([Turn.user("hi")])


def test_turns_to_messages_pairs_calls_and_results() -> None:
    calls = (
        ToolCall(name="a", arguments={"x": 1}, call_id="c1"),
        ToolCall(name="b", arguments={}, call_id=""),
    )
    results = (
        ToolResult(name="a", result={"v": 1}, call_id="c1"),
        ToolResult(name="b", result={"error": "unknown tool"}, call_id=""),
    )
    messages = turns_to_messages(
        "sys",
        [Turn.user("q"), Turn.calls(calls), Turn.results(results), Turn.model("done")],
    )
    assert [m["role"] for m in messages] == ["system", "user", "assistant", "tool", "tool", "assistant"]
    assistant = messages[2]
    assert assistant["content"] is None
    assert [tc["id"] for tc in assistant["tool_calls"]] == ["c1", "call_1"]
    assert json.loads(assistant["tool_calls"][0]["function"]["arguments"]) == {"x": 1}
    assert [m["tool_call_id"] for m in messages[3:5]] == ["c1", "call_1"]
    assert json.loads(messages[4]["content"]) == {"error": "unknown tool"}
    assert messages[5] == {"role": "assistant", "content": "done"}
