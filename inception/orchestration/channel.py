"""
Delegate Channel — One Process, One Request, One Response.

Every delegated task gets a fresh external process. The channel writes the
prompt as a single line to the process's stdin, closes stdin to signal end
of input, and drains stdout and stderr until the process exits. The exit
code decides the outcome:

  exit 0        -> DelegateResult "ok"   (stdout, or stderr when stdout is empty)
  exit != 0     -> DelegateResult "fail" (exit code + full stderr)
  spawn error   -> DelegateResult "fail" (process never started)

Process errors never raise out of ``delegate``. Every lifecycle event and
I/O chunk is traced to an injectable structlog logger; tracing never changes
the returned result.
"""

from __future__ import annotations

import asyncio
import codecs
import os
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional

import structlog

from inception.config import DEFAULT_INTERPRETER, InceptionConfig
from inception.orchestration.models import DelegateResult

logger = structlog.get_logger(__name__)

# Prompt-level hint only; the response is still returned as raw text.
STRUCTURED_DIRECTIVE = " [RESPOND IN JSON KEY-VALUE PAIRS]"

_READ_CHUNK_BYTES = 64 * 1024


class DelegateChannelBase(ABC):
    """Abstract base for anything that can answer a single delegated prompt."""

    @abstractmethod
    async def delegate(self, input_text: str, force_structured: bool = False) -> DelegateResult:
        """Run one request/response exchange and return its outcome."""


class DelegateChannel(DelegateChannelBase):
    """Spawn the configured executable once per call and collect its output."""

    def __init__(
        self,
        executable: str,
        working_directory: Path,
        interpreter: str = DEFAULT_INTERPRETER,
        log: Any = None,  # structlog BoundLogger
        trace_io: bool = True,
    ):
        self._working_directory = Path(working_directory)
        self._executable_path = self._working_directory / executable
        self._interpreter = interpreter
        self._log = log if log is not None else logger
        self._trace_io = trace_io

    @classmethod
    def from_config(cls, config: InceptionConfig, log: Any = None) -> "DelegateChannel":
        return cls(
            executable=config.executable,
            working_directory=config.working_directory,
            interpreter=config.interpreter,
            log=log,
            trace_io=config.trace_io,
        )

    @property
    def executable_path(self) -> Path:
        return self._executable_path

    def command(self) -> list[str]:
        """argv for one delegated call."""
        if self._interpreter:
            return [self._interpreter, str(self._executable_path)]
        return [str(self._executable_path)]

    async def delegate(self, input_text: str, force_structured: bool = False) -> DelegateResult:
        if force_structured:
            input_text = input_text + STRUCTURED_DIRECTIVE
        argv = self.command()
        start = time.monotonic()

        self._trace(
            "delegate.start",
            level="info",
            command=argv,
            cwd=str(self._working_directory),
        )

        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=str(self._working_directory),
                env=os.environ.copy(),
            )
        except OSError as exc:
            self._trace("delegate.spawn_failed", command=argv, error=str(exc), level="warning")
            return DelegateResult.failure(
                f"Failed to start process: {exc}",
                elapsed_seconds=round(time.monotonic() - start, 2),
            )

        self._trace("delegate.spawned", pid=proc.pid)

        stdout_chunks: list[str] = []
        stderr_chunks: list[str] = []
        reaped = False
        try:
            await asyncio.gather(
                self._send_input(proc, input_text + "\n"),
                self._drain(proc.stdout, "stdout", stdout_chunks, proc.pid),
                self._drain(proc.stderr, "stderr", stderr_chunks, proc.pid),
            )
            returncode = await proc.wait()
            reaped = True
        finally:
            if not reaped:
                await self._kill(proc)

        stdout = "".join(stdout_chunks)
        stderr = "".join(stderr_chunks)
        elapsed = round(time.monotonic() - start, 2)
        self._trace("delegate.exit", level="info", pid=proc.pid, exit_code=returncode, elapsed=elapsed)

        if returncode == 0:
            return DelegateResult.success(stdout, stderr, elapsed_seconds=elapsed)
        return DelegateResult.failure(
            f"Command failed with code {returncode}. stderr: {stderr}",
            exit_code=returncode,
            stderr=stderr,
            elapsed_seconds=elapsed,
        )

    async def _send_input(self, proc: asyncio.subprocess.Process, payload: str) -> None:
        """Write the whole request, then close stdin so the process starts answering."""
        assert proc.stdin is not None
        self._trace("delegate.stdin", pid=proc.pid, data=payload)
        try:
            proc.stdin.write(payload.encode("utf-8", errors="replace"))
            await proc.stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as exc:
            # The process exited without reading its input; the exit code
            # still decides the outcome.
            self._trace("delegate.stdin_closed_early", pid=proc.pid, error=str(exc), level="warning")
        finally:
            proc.stdin.close()
            try:
                await proc.stdin.wait_closed()
            except (BrokenPipeError, ConnectionResetError):
                pass

    async def _drain(
        self,
        stream: Optional[asyncio.StreamReader],
        name: str,
        sink: list[str],
        pid: int,
    ) -> None:
        assert stream is not None
        # An incremental decoder keeps multi-byte characters split across
        # chunk boundaries intact.
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        while True:
            chunk = await stream.read(_READ_CHUNK_BYTES)
            if not chunk:
                break
            text = decoder.decode(chunk)
            if text:
                self._trace(f"delegate.{name}", pid=pid, data=text)
                sink.append(text)
        tail = decoder.decode(b"", True)
        if tail:
            self._trace(f"delegate.{name}", pid=pid, data=tail)
            sink.append(tail)

    async def _kill(self, proc: asyncio.subprocess.Process) -> None:
        if proc.returncode is None:
            try:
                proc.kill()
            except ProcessLookupError:
                pass
        await proc.wait()
        self._trace("delegate.killed", pid=proc.pid, exit_code=proc.returncode, level="warning")

    def _trace(self, event: str, level: str = "debug", **fields: Any) -> None:
        if not self._trace_io:
            return
        getattr(self._log, level)(event, **fields)

