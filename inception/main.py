"""
Main — Entry Points for the Inception Tool Server.

    inception                  serve the MCP tools on stdio (default)
    inception serve            same, explicitly
    inception run TEXT         one delegated call, printed to stdout
    inception parallel ...     one chunked fan-out, printed as JSON
    inception map-reduce ...   map in parallel, fold sequentially, print JSON

Logging always goes to stderr: when serving, stdout is the protocol channel.
"""

from __future__ import annotations

import asyncio
import functools
import json
import logging
import sys
from typing import Any, Optional

import click
import structlog

from inception.config import InceptionConfig
from inception.orchestration.channel import DelegateChannel
from inception.orchestration.dispatcher import ParallelDispatcher
from inception.orchestration.reducer import MapReducer

_MAX_TRACE_FIELD_LEN = 500


def _truncate_trace_fields(logger, method_name, event_dict):
    """
    Structlog processor that bounds the size of traced I/O chunks.

    The delegate channel logs every stdin/stdout/stderr chunk under ``data``;
    prompts and completions can be arbitrarily long.
    """
    for key in ("data", "error"):
        val = event_dict.get(key)
        if isinstance(val, str) and len(val) > _MAX_TRACE_FIELD_LEN:
            event_dict[key] = val[:_MAX_TRACE_FIELD_LEN] + "... [truncated]"
    return event_dict


_logging_configured = False


def configure_logging(level: str = "INFO") -> None:
    """Configure structlog and standard-library logging, writing to stderr.

    Safe to call more than once; subsequent calls only adjust the level.
    """
    global _logging_configured  # noqa: PLW0603
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    if _logging_configured:
        logging.getLogger().setLevel(numeric_level)
        return
    _logging_configured = True

    logging.basicConfig(format="%(message)s", level=numeric_level, stream=sys.stderr)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            _truncate_trace_fields,
            structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
    )


logger = structlog.get_logger(__name__)


def async_cmd(func):
    """Decorator to run an async Click command via asyncio.run()."""

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        return asyncio.run(func(*args, **kwargs))

    return wrapper


def _load_config(overrides: dict[str, Any]) -> InceptionConfig:
    values = {key: value for key, value in overrides.items() if value is not None}
    try:
        return InceptionConfig(**values)
    except Exception as exc:
        raise click.ClickException(f"Invalid configuration: {exc}") from exc


def _pipeline(config: InceptionConfig) -> tuple[DelegateChannel, ParallelDispatcher]:
    channel = DelegateChannel.from_config(config)
    return channel, ParallelDispatcher(channel, max_concurrent=config.max_concurrent)


@click.group(invoke_without_command=True)
@click.option("--executable", default=None, help="Executable to delegate to (default: llm)")
@click.option(
    "--workdir",
    "working_directory",
    type=click.Path(file_okay=False),
    default=None,
    help="Working directory the executable is resolved against",
)
@click.option("--max-concurrent", type=int, default=None, help="Concurrency ceiling per batch")
@click.option(
    "--interpreter",
    default=None,
    help="Interpreter used to launch the executable ('none' to exec directly)",
)
@click.option("--log-level", default=None, help="Log level (DEBUG, INFO, WARNING, ...)")
@click.pass_context
def cli(
    ctx: click.Context,
    executable: Optional[str],
    working_directory: Optional[str],
    max_concurrent: Optional[int],
    interpreter: Optional[str],
    log_level: Optional[str],
) -> None:
    """Inception - delegate natural-language tasks to an external completion CLI."""
    config = _load_config(
        {
            "executable": executable,
            "working_directory": working_directory,
            "max_concurrent": max_concurrent,
            "interpreter": interpreter,
            "log_level": log_level,
        }
    )
    configure_logging(config.log_level)
    ctx.ensure_object(dict)
    ctx.obj["config"] = config

    if ctx.invoked_subcommand is None:
        ctx.invoke(serve_cmd)


@cli.command("serve")
@click.pass_context
@async_cmd
async def serve_cmd(ctx: click.Context) -> None:
    """Serve the delegation tools over MCP stdio."""
    from inception.server import run_stdio_server

    await run_stdio_server(ctx.obj["config"])


@cli.command("run")
@click.argument("command")
@click.option("--structured", is_flag=True, help="Ask for JSON key-value output")
@click.pass_context
@async_cmd
async def run_cmd(ctx: click.Context, command: str, structured: bool) -> None:
    """Delegate a single COMMAND and print the response."""
    channel, _ = _pipeline(ctx.obj["config"])
    result = await channel.delegate(command, force_structured=structured)
    if not result.ok:
        raise click.ClickException(str(result.error))
    click.echo(result.text, nl=not result.text.endswith("\n"))


@cli.command("parallel")
@click.argument("prompt")
@click.argument("items", nargs=-1)
@click.pass_context
@async_cmd
async def parallel_cmd(ctx: click.Context, prompt: str, items: tuple[str, ...]) -> None:
    """Run PROMPT against every ITEM in bounded parallel chunks."""
    _, dispatcher = _pipeline(ctx.obj["config"])
    outcome = await dispatcher.dispatch(prompt, list(items))
    click.echo(json.dumps(outcome.payload(), indent=2))
    if outcome.has_errors:
        ctx.exit(1)


@cli.command("map-reduce")
@click.argument("map_prompt")
@click.argument("reduce_prompt")
@click.argument("items", nargs=-1)
@click.option("--initial", default=None, help="Initial accumulator value")
@click.pass_context
@async_cmd
async def map_reduce_cmd(
    ctx: click.Context,
    map_prompt: str,
    reduce_prompt: str,
    items: tuple[str, ...],
    initial: Optional[str],
) -> None:
    """Map ITEMS with MAP_PROMPT ({item}), then fold with REDUCE_PROMPT ({accumulator}, {result})."""
    channel, dispatcher = _pipeline(ctx.obj["config"])
    outcome = await MapReducer(dispatcher, channel).map_reduce(
        map_prompt, reduce_prompt, list(items), initial=initial
    )
    click.echo(json.dumps(outcome.payload(), indent=2))
    if outcome.has_errors:
        ctx.exit(1)


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
