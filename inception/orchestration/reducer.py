"""
Sequential Reducer — Map in Parallel, Fold One Step at a Time.

The map phase is an ordinary parallel dispatch with ``{item}`` substitution.
The reduce phase walks the map outputs in the order the map phase returned
them and asks the external process to merge each one into a running
accumulator, substituting ``{accumulator}`` and ``{result}`` into the
reduce template. Each step depends on the previous one, so steps never
overlap.

Failure policy:
  - map-phase failures are reported in ``errors`` exactly as the dispatcher
    records them
  - a failed reduce step leaves the accumulator unchanged and is only logged
  - any unexpected exception ends the run with a summary error and whatever
    accumulator had been reached
"""

from __future__ import annotations

from typing import Literal, Optional, Sequence

import structlog

from inception.orchestration.channel import DelegateChannelBase
from inception.orchestration.dispatcher import ParallelDispatcher
from inception.orchestration.models import ReductionOutcome, render_template

logger = structlog.get_logger(__name__)

Phase = Literal["idle", "mapping", "reducing", "done"]


class MapReducer:
    """Map-then-fold pipeline built on the dispatcher and the delegate channel."""

    def __init__(self, dispatcher: ParallelDispatcher, channel: DelegateChannelBase):
        self._dispatcher = dispatcher
        self._channel = channel
        self.phase: Phase = "idle"
        self.step = 0

    async def map_reduce(
        self,
        map_template: str,
        reduce_template: str,
        items: Sequence[str],
        initial: Optional[str] = None,
    ) -> ReductionOutcome:
        accumulator = initial if initial is not None else ""
        errors: list[str] = []
        self.phase = "idle"
        self.step = 0

        try:
            self.phase = "mapping"
            mapped = await self._dispatcher.dispatch(map_template, items, mode="substitute")
            errors.extend(mapped.errors)

            self.phase = "reducing"
            for index, result in enumerate(mapped.results):
                self.step = index
                prompt = render_template(
                    reduce_template,
                    {"accumulator": accumulator, "result": result},
                )
                reduced = await self._channel.delegate(prompt, force_structured=True)
                if reduced.ok:
                    accumulator = reduced.text
                else:
                    logger.warning(
                        "reducer.step_failed",
                        step=index,
                        error=reduced.error,
                    )
        except Exception as exc:
            logger.error("reducer.error", phase=self.phase, error=str(exc), exc_info=True)
            errors.append(f"Error in map-reduce: {exc}")

        self.phase = "done"
        logger.info(
            "reducer.complete",
            items=len(items),
            errors=len(errors),
        )
        return ReductionOutcome(result=accumulator, errors=errors)
