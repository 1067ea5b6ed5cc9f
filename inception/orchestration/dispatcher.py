"""
Bounded Parallel Dispatcher — Chunked Fan-Out / Fan-In.

Applies one instruction template to a list of items. Items are split into
consecutive chunks of ``ceiling``; every task in a chunk runs concurrently
through the delegate channel, and the next chunk starts only once the whole
current chunk has settled. Peak concurrency is therefore ``ceiling``, and a
slow task in chunk k holds back all of chunk k+1.

Failures are item-scoped: a failed or crashing item becomes one error
message and never aborts its siblings or later chunks.
"""

from __future__ import annotations

import asyncio
from typing import Optional, Sequence

import structlog

from inception.config import DEFAULT_MAX_CONCURRENT
from inception.orchestration.channel import DelegateChannelBase
from inception.orchestration.models import (
    BatchOutcome,
    DelegateResult,
    DelegateTask,
    RenderMode,
)

logger = structlog.get_logger(__name__)


def chunked(items: Sequence[str], size: int) -> list[list[str]]:
    """Split *items* into consecutive chunks of at most *size*, order preserved."""
    if size < 1:
        raise ValueError(f"chunk size must be >= 1, got {size}")
    return [list(items[i : i + size]) for i in range(0, len(items), size)]


class ParallelDispatcher:
    """Runs homogeneous delegate tasks with at most ``ceiling`` in flight."""

    def __init__(
        self,
        channel: DelegateChannelBase,
        max_concurrent: int = DEFAULT_MAX_CONCURRENT,
    ):
        self._channel = channel
        self._max_concurrent = max(1, int(max_concurrent))

    @property
    def max_concurrent(self) -> int:
        return self._max_concurrent

    async def dispatch(
        self,
        template: str,
        items: Sequence[str],
        ceiling: Optional[int] = None,
        mode: RenderMode = "concat",
    ) -> BatchOutcome:
        """Delegate ``template`` once per item and collect every outcome."""
        size = self._max_concurrent if ceiling is None else int(ceiling)
        chunks = chunked(items, size)
        outcome = BatchOutcome()

        logger.info(
            "dispatcher.start",
            items=len(items),
            ceiling=size,
            chunks=len(chunks),
            mode=mode,
        )

        for index, chunk in enumerate(chunks):
            tasks = [
                asyncio.create_task(
                    self._run_item(DelegateTask(instruction=template, item=item, mode=mode))
                )
                for item in chunk
            ]
            # Record in completion order; the loop ends only once every task
            # in the chunk has settled.
            for finished in asyncio.as_completed(tasks):
                item, result, error = await finished
                self._record(outcome, item, result, error)
            outcome.chunks += 1
            logger.debug(
                "dispatcher.chunk_done",
                chunk=index,
                size=len(chunk),
                results=len(outcome.results),
                errors=len(outcome.errors),
            )

        logger.info(
            "dispatcher.complete",
            results=len(outcome.results),
            errors=len(outcome.errors),
            chunks=outcome.chunks,
        )
        return outcome

    async def _run_item(
        self, task: DelegateTask
    ) -> tuple[str, Optional[DelegateResult], Optional[BaseException]]:
        item = task.item or ""
        try:
            result = await self._channel.delegate(task.render(), force_structured=True)
        except Exception as exc:
            logger.error("dispatcher.item_error", item=item, error=str(exc), exc_info=True)
            return item, None, exc
        return item, result, None

    @staticmethod
    def _record(
        outcome: BatchOutcome,
        item: str,
        result: Optional[DelegateResult],
        error: Optional[BaseException],
    ) -> None:
        if error is not None:
            outcome.errors.append(f'Failed to process item "{item}": {error}')
            return
        assert result is not None
        if not result.ok:
            outcome.errors.append(f'Failed to process item "{item}": {result.error}')
            return
        if result.stdout:
            outcome.results.append(result.stdout)
        elif result.stderr:
            outcome.errors.append(f'Error processing item "{item}": {result.stderr}')
        else:
            logger.debug("dispatcher.empty_output", item=item)
