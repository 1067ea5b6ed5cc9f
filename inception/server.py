"""
MCP Stdio Server — Serving the Delegation Tools.

Speaks newline-delimited JSON-RPC 2.0 on stdin/stdout. Every request runs as
its own asyncio task so a long map-reduce never blocks a tools/list or a
second delegation; responses are written one line at a time under a lock.
All logging goes to stderr (see ``inception.main.configure_logging``) so
stdout carries protocol frames only.

Supported methods:
  initialize, ping, tools/list, tools/call
  notifications/* are accepted and never answered
"""

from __future__ import annotations

import asyncio
import json
import signal
import sys
from typing import Any, Awaitable, Callable, Optional

import structlog

from inception import __version__
from inception.config import InceptionConfig
from inception.orchestration.channel import DelegateChannel
from inception.orchestration.dispatcher import ParallelDispatcher
from inception.rpc import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    PARSE_ERROR,
    InvalidToolArguments,
    UnknownToolError,
    make_error,
    make_response,
)
from inception.tools import DelegationTools

logger = structlog.get_logger(__name__)

SERVER_NAME = "mcp-inception"
DEFAULT_PROTOCOL_VERSION = "2024-11-05"

# stdin lines can carry large prompts and item lists.
_STDIN_LIMIT_BYTES = 16 * 1024 * 1024

Handler = Callable[["InceptionServer", dict[str, Any]], Awaitable[dict[str, Any]]]


class InceptionServer:
    """Routes MCP JSON-RPC messages to the delegation tools."""

    def __init__(
        self,
        tools: DelegationTools,
        write_line: Optional[Callable[[str], Awaitable[None]]] = None,
    ) -> None:
        self._tools = tools
        self._write_line = write_line or _write_stdout_line
        self._write_lock = asyncio.Lock()
        self._shutdown = asyncio.Event()
        self._inflight: set[asyncio.Task] = set()

    @classmethod
    def from_config(cls, config: InceptionConfig) -> "InceptionServer":
        channel = DelegateChannel.from_config(config)
        dispatcher = ParallelDispatcher(channel, max_concurrent=config.max_concurrent)
        return cls(DelegationTools(channel, dispatcher))

    # ------------------------------------------------------------------
    # Message handling
    # ------------------------------------------------------------------

    async def handle_line(self, line: str | bytes) -> Optional[dict[str, Any]]:
        """Parse one frame and return the response (None for notifications)."""
        if isinstance(line, bytes):
            line = line.decode("utf-8", errors="replace")
        text = line.strip()
        if not text:
            return None
        try:
            message = json.loads(text)
        except json.JSONDecodeError as exc:
            logger.warning("server.parse_error", error=str(exc))
            return make_error(None, PARSE_ERROR, f"Parse error: {exc}")
        if not isinstance(message, dict):
            return make_error(None, INVALID_REQUEST, "request must be a JSON object")
        return await self.handle_message(message)

    async def handle_message(self, message: dict[str, Any]) -> Optional[dict[str, Any]]:
        method = message.get("method")
        is_notification = "id" not in message
        req_id = message.get("id")

        if not isinstance(method, str):
            if is_notification or "result" in message or "error" in message:
                # Responses to requests we never send.
                return None
            return make_error(req_id, INVALID_REQUEST, "missing method")

        if is_notification:
            logger.debug("server.notification", method=method)
            return None

        params = message.get("params") or {}
        if not isinstance(params, dict):
            return make_error(req_id, INVALID_PARAMS, "params must be an object")

        handler = self._handlers.get(method)
        if handler is None:
            return make_error(req_id, METHOD_NOT_FOUND, f"unknown method: {method}")

        logger.debug("server.request", method=method, id=req_id)
        try:
            return make_response(req_id, await handler(self, params))
        except UnknownToolError as exc:
            return make_error(req_id, exc.code, str(exc))
        except InvalidToolArguments as exc:
            return make_error(req_id, exc.code, str(exc))
        except Exception as e:
            logger.error("server.dispatch_error", method=method, error=str(e), exc_info=True)
            return make_error(req_id, INTERNAL_ERROR, "internal error")

    async def _handle_initialize(self, params: dict[str, Any]) -> dict[str, Any]:
        protocol_version = params.get("protocolVersion") or DEFAULT_PROTOCOL_VERSION
        client = params.get("clientInfo") or {}
        logger.info(
            "server.initialize",
            client=client.get("name") if isinstance(client, dict) else None,
            protocol=protocol_version,
        )
        return {
            "protocolVersion": protocol_version,
            "capabilities": {"tools": {}},
            "serverInfo": {"name": SERVER_NAME, "version": __version__},
        }

    async def _handle_ping(self, params: dict[str, Any]) -> dict[str, Any]:
        return {}

    async def _handle_tools_list(self, params: dict[str, Any]) -> dict[str, Any]:
        return {"tools": self._tools.definitions()}

    async def _handle_tools_call(self, params: dict[str, Any]) -> dict[str, Any]:
        name = params.get("name")
        if not isinstance(name, str) or not name:
            raise InvalidToolArguments("tools/call", "name is required")
        arguments = params.get("arguments")
        if arguments is not None and not isinstance(arguments, dict):
            raise InvalidToolArguments(name, "arguments must be an object")
        return await self._tools.call(name, arguments)

    _handlers: dict[str, Handler] = {
        "initialize": _handle_initialize,
        "ping": _handle_ping,
        "tools/list": _handle_tools_list,
        "tools/call": _handle_tools_call,
    }

    # ------------------------------------------------------------------
    # Transport loop
    # ------------------------------------------------------------------

    def request_shutdown(self) -> None:
        if not self._shutdown.is_set():
            logger.info("server.shutdown_requested")
        self._shutdown.set()

    async def serve(self, reader: asyncio.StreamReader) -> None:
        """Read frames until EOF or shutdown, then wait for in-flight requests."""
        stop = asyncio.ensure_future(self._shutdown.wait())
        try:
            while True:
                read = asyncio.ensure_future(reader.readline())
                done, _ = await asyncio.wait({read, stop}, return_when=asyncio.FIRST_COMPLETED)
                if read not in done:
                    read.cancel()
                    break
                try:
                    line = read.result()
                except ValueError as exc:
                    # StreamReader has already discarded the oversized frame.
                    logger.warning("server.frame_too_large", error=str(exc))
                    await self._send(
                        make_error(None, INVALID_REQUEST, f"request line too long: {exc}")
                    )
                    continue
                if not line:
                    break
                task = asyncio.create_task(self._process(line))
                self._inflight.add(task)
                task.add_done_callback(self._inflight.discard)
        finally:
            stop.cancel()
            if self._inflight:
                await asyncio.gather(*self._inflight, return_exceptions=True)
        logger.info("server.stopped")

    async def _process(self, line: bytes) -> None:
        response = await self.handle_line(line)
        if response is None:
            return
        await self._send(response)

    async def _send(self, response: dict[str, Any]) -> None:
        frame = json.dumps(response, ensure_ascii=False)
        async with self._write_lock:
            await self._write_line(frame)


async def _write_stdout_line(frame: str) -> None:
    loop = asyncio.get_running_loop()

    def _write() -> None:
        sys.stdout.write(frame + "\n")
        sys.stdout.flush()

    await loop.run_in_executor(None, _write)


async def _open_stdin_reader() -> asyncio.StreamReader:
    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader(limit=_STDIN_LIMIT_BYTES)
    await loop.connect_read_pipe(lambda: asyncio.StreamReaderProtocol(reader), sys.stdin)
    return reader


async def run_stdio_server(config: InceptionConfig) -> None:
    """Serve the delegation tools on stdin/stdout until EOF or a signal."""
    server = InceptionServer.from_config(config)
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, server.request_shutdown)
        except (NotImplementedError, RuntimeError):  # pragma: no cover - non-Unix loops
            pass

    logger.info(
        "server.started",
        executable=str(config.executable_path),
        max_concurrent=config.max_concurrent,
    )
    reader = await _open_stdin_reader()
    await server.serve(reader)
