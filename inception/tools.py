"""
Tool Surface — The Three Delegation Tools.

Defines the MCP tool descriptors and argument models, and turns a validated
tools/call into a run of the channel, the dispatcher or the reducer. Results
are rendered as MCP ``content`` blocks with an ``isError`` flag:

  execute_mcp_client           raw text, or an error-flagged message
  execute_parallel_mcp_client  {"results", "errors"} as JSON text
  map_reduce_mcp_client        {"result", "errors"} as JSON text
"""

from __future__ import annotations

import json
from typing import Any, Optional

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from inception.orchestration.channel import DelegateChannelBase
from inception.orchestration.dispatcher import ParallelDispatcher
from inception.orchestration.reducer import MapReducer
from inception.rpc import InvalidToolArguments, UnknownToolError

logger = structlog.get_logger(__name__)

SINGLE_TOOL = "execute_mcp_client"
PARALLEL_TOOL = "execute_parallel_mcp_client"
MAP_REDUCE_TOOL = "map_reduce_mcp_client"


class SingleArgs(BaseModel):
    model_config = ConfigDict(extra="ignore")

    command: str


class ParallelArgs(BaseModel):
    model_config = ConfigDict(extra="ignore")

    prompt: str
    items: list[str]


class MapReduceArgs(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    map_prompt: str = Field(alias="mapPrompt")
    reduce_prompt: str = Field(alias="reducePrompt")
    items: list[str]
    initial_value: Optional[str] = Field(None, alias="initialValue")


TOOL_DEFINITIONS: list[dict[str, Any]] = [
    {
        "name": SINGLE_TOOL,
        "description": (
            "Offload certain tasks to AI. Used for research purposes, do not use for "
            "code editing or anything code related. Only used to fetch data."
        ),
        "inputSchema": {
            "type": "object",
            "properties": {
                "command": {
                    "type": "string",
                    "description": "The MCP client command to execute",
                },
            },
            "required": ["command"],
        },
    },
    {
        "name": PARALLEL_TOOL,
        "description": (
            "Execute multiple AI tasks in parallel, with responses in JSON key-value pairs."
        ),
        "inputSchema": {
            "type": "object",
            "properties": {
                "prompt": {
                    "type": "string",
                    "description": "The base prompt to use for all executions",
                },
                "items": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "Array of parameters to process in parallel",
                },
            },
            "required": ["prompt", "items"],
        },
    },
    {
        "name": MAP_REDUCE_TOOL,
        "description": (
            "Process multiple items in parallel, then sequentially reduce the results "
            "to a single output."
        ),
        "inputSchema": {
            "type": "object",
            "properties": {
                "mapPrompt": {
                    "type": "string",
                    "description": "Template prompt for processing each item. Use {item} as placeholder",
                },
                "reducePrompt": {
                    "type": "string",
                    "description": (
                        "Template prompt for reducing results. Use {accumulator} and "
                        "{result} as placeholders"
                    ),
                },
                "items": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "Array of items to process",
                },
                "initialValue": {
                    "type": "string",
                    "description": "Initial value for the accumulator (optional)",
                },
            },
            "required": ["mapPrompt", "reducePrompt", "items"],
        },
    },
]


def text_result(text: str, is_error: bool = False) -> dict[str, Any]:
    """Build an MCP tools/call result with a single text block."""
    return {"content": [{"type": "text", "text": text}], "isError": is_error}


def _validate(model: type[BaseModel], tool: str, arguments: dict[str, Any]) -> Any:
    try:
        return model.model_validate(arguments)
    except ValidationError as exc:
        details = exc.errors()
        first = details[0] if details else {}
        loc = ".".join(str(part) for part in first.get("loc") or [])
        msg = str(first.get("msg") or "invalid value")
        raise InvalidToolArguments(tool, f"{loc}: {msg}" if loc else msg) from exc


class DelegationTools:
    """Executes the delegation tools against one channel/dispatcher/reducer trio."""

    def __init__(
        self,
        channel: DelegateChannelBase,
        dispatcher: ParallelDispatcher,
    ):
        self._channel = channel
        self._dispatcher = dispatcher
        self._handlers = {
            SINGLE_TOOL: self._execute_single,
            PARALLEL_TOOL: self._execute_parallel,
            MAP_REDUCE_TOOL: self._execute_map_reduce,
        }

    @staticmethod
    def definitions() -> list[dict[str, Any]]:
        return [dict(tool) for tool in TOOL_DEFINITIONS]

    async def call(self, name: str, arguments: Optional[dict[str, Any]]) -> dict[str, Any]:
        """Run tool *name*. Raises UnknownToolError / InvalidToolArguments."""
        handler = self._handlers.get(name)
        if handler is None:
            raise UnknownToolError(name)
        logger.info("tools.call", tool=name)
        return await handler(arguments or {})

    async def _execute_single(self, arguments: dict[str, Any]) -> dict[str, Any]:
        args: SingleArgs = _validate(SingleArgs, SINGLE_TOOL, arguments)
        result = await self._channel.delegate(args.command)
        if result.ok:
            return text_result(result.text)
        return text_result(f"Error executing MCP client command: {result.error}", is_error=True)

    async def _execute_parallel(self, arguments: dict[str, Any]) -> dict[str, Any]:
        args: ParallelArgs = _validate(ParallelArgs, PARALLEL_TOOL, arguments)
        try:
            outcome = await self._dispatcher.dispatch(args.prompt, args.items)
        except Exception as exc:
            logger.error("tools.parallel_error", error=str(exc), exc_info=True)
            return text_result(
                f"Error executing parallel MCP client commands: {exc}",
                is_error=True,
            )
        return text_result(json.dumps(outcome.payload(), indent=2), is_error=outcome.has_errors)

    async def _execute_map_reduce(self, arguments: dict[str, Any]) -> dict[str, Any]:
        args: MapReduceArgs = _validate(MapReduceArgs, MAP_REDUCE_TOOL, arguments)
        # One reducer per run; its phase tracking is per pipeline.
        reducer = MapReducer(self._dispatcher, self._channel)
        outcome = await reducer.map_reduce(
            args.map_prompt,
            args.reduce_prompt,
            args.items,
            initial=args.initial_value,
        )
        return text_result(json.dumps(outcome.payload(), indent=2), is_error=outcome.has_errors)
