"""Tests for inception.tools — the three delegation tools and their payloads."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock

import pytest

from inception.orchestration.dispatcher import ParallelDispatcher
from inception.orchestration.models import DelegateResult
from inception.rpc import INVALID_PARAMS, METHOD_NOT_FOUND, InvalidToolArguments, UnknownToolError
from inception.tools import (
    MAP_REDUCE_TOOL,
    PARALLEL_TOOL,
    SINGLE_TOOL,
    DelegationTools,
    text_result,
)


def _tools(channel, max_concurrent: int = 10) -> DelegationTools:
    return DelegationTools(channel, ParallelDispatcher(channel, max_concurrent=max_concurrent))


def _text(result: dict) -> str:
    return result["content"][0]["text"]


class TestDefinitions:
    def test_three_tools_advertised(self, fake_channel) -> None:
        names = [tool["name"] for tool in _tools(fake_channel).definitions()]
        assert names == [SINGLE_TOOL, PARALLEL_TOOL, MAP_REDUCE_TOOL]

    def test_required_arguments(self, fake_channel) -> None:
        by_name = {tool["name"]: tool for tool in _tools(fake_channel).definitions()}
        assert by_name[SINGLE_TOOL]["inputSchema"]["required"] == ["command"]
        assert by_name[PARALLEL_TOOL]["inputSchema"]["required"] == ["prompt", "items"]
        assert by_name[MAP_REDUCE_TOOL]["inputSchema"]["required"] == [
            "mapPrompt",
            "reducePrompt",
            "items",
        ]

    def test_text_result_shape(self) -> None:
        assert text_result("hi") == {
            "content": [{"type": "text", "text": "hi"}],
            "isError": False,
        }


class TestSingle:
    @pytest.mark.asyncio
    async def test_success_returns_raw_text(self, fake_channel) -> None:
        result = await _tools(fake_channel).call(SINGLE_TOOL, {"command": "what is 2+2"})
        assert result == text_result("what is 2+2")
        assert fake_channel.calls == [("what is 2+2", False)]

    @pytest.mark.asyncio
    async def test_failure_is_error_flagged(self, make_fake_channel) -> None:
        channel = make_fake_channel(
            responder=lambda prompt: DelegateResult.failure("Failed to start process: nope")
        )
        result = await _tools(channel).call(SINGLE_TOOL, {"command": "x"})
        assert result["isError"] is True
        assert _text(result) == "Error executing MCP client command: Failed to start process: nope"

    @pytest.mark.asyncio
    async def test_lone_surrogate_still_returns_tool_result(self, echo_channel) -> None:
        result = await _tools(echo_channel).call(SINGLE_TOOL, {"command": json.loads('"hi \\ud800"')})
        assert result["isError"] is False
        assert _text(result) == "echo:hi ?"

    @pytest.mark.asyncio
    async def test_missing_command_rejected(self, fake_channel) -> None:
        with pytest.raises(InvalidToolArguments, match="command") as excinfo:
            await _tools(fake_channel).call(SINGLE_TOOL, {})
        assert excinfo.value.code == INVALID_PARAMS
        assert fake_channel.calls == []


class TestParallel:
    @pytest.mark.asyncio
    async def test_payload_and_flag(self, make_fake_channel) -> None:
        def responder(prompt: str) -> DelegateResult:
            if prompt.endswith("bad"):
                return DelegateResult.failure("Command failed with code 1. stderr: e", exit_code=1)
            return DelegateResult.success(prompt.upper(), "")

        channel = make_fake_channel(responder=responder)
        result = await _tools(channel, max_concurrent=1).call(
            PARALLEL_TOOL, {"prompt": "go", "items": ["a", "bad", "b"]}
        )
        payload = json.loads(_text(result))
        assert payload == {
            "results": ["GO A", "GO B"],
            "errors": ['Failed to process item "bad": Command failed with code 1. stderr: e'],
        }
        assert result["isError"] is True

    @pytest.mark.asyncio
    async def test_clean_run_not_flagged(self, fake_channel) -> None:
        result = await _tools(fake_channel).call(PARALLEL_TOOL, {"prompt": "p", "items": ["a"]})
        assert result["isError"] is False
        assert json.loads(_text(result)) == {"results": ["p a"], "errors": []}

    @pytest.mark.asyncio
    async def test_pretty_printed(self, fake_channel) -> None:
        result = await _tools(fake_channel).call(PARALLEL_TOOL, {"prompt": "p", "items": []})
        assert _text(result) == json.dumps({"results": [], "errors": []}, indent=2)

    @pytest.mark.asyncio
    async def test_dispatcher_crash_reported(self, fake_channel) -> None:
        dispatcher = ParallelDispatcher(fake_channel)
        dispatcher.dispatch = AsyncMock(side_effect=RuntimeError("kaput"))
        tools = DelegationTools(fake_channel, dispatcher)
        result = await tools.call(PARALLEL_TOOL, {"prompt": "p", "items": ["a"]})
        assert result["isError"] is True
        assert _text(result) == "Error executing parallel MCP client commands: kaput"

    @pytest.mark.asyncio
    async def test_items_must_be_list(self, fake_channel) -> None:
        with pytest.raises(InvalidToolArguments, match="items"):
            await _tools(fake_channel).call(PARALLEL_TOOL, {"prompt": "p", "items": "a"})


class TestMapReduce:
    @pytest.mark.asyncio
    async def test_camel_case_arguments(self, make_fake_channel) -> None:
        def responder(prompt: str) -> DelegateResult:
            return DelegateResult.success(prompt.replace("map ", "").replace("reduce ", ""), "")

        channel = make_fake_channel(responder=responder)
        result = await _tools(channel, max_concurrent=1).call(
            MAP_REDUCE_TOOL,
            {
                "mapPrompt": "map {item}",
                "reducePrompt": "reduce {accumulator}{result}",
                "items": ["a", "b"],
                "initialValue": "0",
            },
        )
        assert json.loads(_text(result)) == {"result": "0ab", "errors": []}
        assert result["isError"] is False

    @pytest.mark.asyncio
    async def test_initial_value_optional(self, fake_channel) -> None:
        result = await _tools(fake_channel).call(
            MAP_REDUCE_TOOL,
            {"mapPrompt": "{item}", "reducePrompt": "{accumulator}{result}", "items": []},
        )
        assert json.loads(_text(result)) == {"result": "", "errors": []}

    @pytest.mark.asyncio
    async def test_errors_flagged(self, make_fake_channel) -> None:
        channel = make_fake_channel(
            responder=lambda prompt: DelegateResult.failure("Command failed with code 4. stderr: ")
        )
        result = await _tools(channel).call(
            MAP_REDUCE_TOOL,
            {"mapPrompt": "{item}", "reducePrompt": "{result}", "items": ["z"], "initialValue": "s"},
        )
        payload = json.loads(_text(result))
        assert payload["result"] == "s"
        assert len(payload["errors"]) == 1
        assert result["isError"] is True


class TestUnknownTool:
    @pytest.mark.asyncio
    async def test_unknown_tool_raises(self, fake_channel) -> None:
        with pytest.raises(UnknownToolError) as excinfo:
            await _tools(fake_channel).call("nope", {})
        assert str(excinfo.value) == "Unknown tool: nope"
        assert excinfo.value.code == METHOD_NOT_FOUND
