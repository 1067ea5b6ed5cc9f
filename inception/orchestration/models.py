"""
Orchestration Data Models — The Language of Delegation.

These Pydantic models define what flows between the channel, the dispatcher
and the reducer. DelegateTask describes *what* to ask. DelegateResult
describes *what happened* for one task. BatchOutcome and ReductionOutcome
collect the results of a fan-out and of a map-reduce run.
"""

from __future__ import annotations

import re
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

ITEM_PLACEHOLDER = "{item}"
ACCUMULATOR_PLACEHOLDER = "{accumulator}"
RESULT_PLACEHOLDER = "{result}"

# Matches every known placeholder so substitution happens in a single pass.
_PLACEHOLDER_RE = re.compile(r"\{(item|accumulator|result)\}")

RenderMode = Literal["concat", "substitute"]


def render_template(template: str, values: dict[str, str]) -> str:
    """Substitute ``{name}`` placeholders in one pass.

    Text inside substituted values is never re-expanded, and placeholders
    without a supplied value are left as written.
    """

    def _replace(match: re.Match[str]) -> str:
        name = match.group(1)
        if name in values:
            return values[name]
        return match.group(0)

    return _PLACEHOLDER_RE.sub(_replace, template)


class DelegateTask(BaseModel):
    """One instruction for the external process, optionally bound to an item."""

    model_config = ConfigDict(frozen=True)

    instruction: str
    item: Optional[str] = None
    mode: RenderMode = "concat"

    def render(self) -> str:
        if self.item is None:
            return self.instruction
        if self.mode == "substitute":
            return render_template(self.instruction, {"item": self.item})
        return f"{self.instruction} {self.item}"


class DelegateResult(BaseModel):
    """Outcome of exactly one delegated call: ``ok`` or ``fail``."""

    model_config = ConfigDict(frozen=True)

    status: Literal["ok", "fail"]
    text: str = ""
    stdout: str = ""
    stderr: str = ""
    error: Optional[str] = None
    exit_code: Optional[int] = None
    elapsed_seconds: float = 0.0

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    @classmethod
    def success(
        cls,
        stdout: str,
        stderr: str,
        elapsed_seconds: float = 0.0,
    ) -> "DelegateResult":
        return cls(
            status="ok",
            text=stdout or stderr,
            stdout=stdout,
            stderr=stderr,
            exit_code=0,
            elapsed_seconds=elapsed_seconds,
        )

    @classmethod
    def failure(
        cls,
        error: str,
        exit_code: Optional[int] = None,
        stderr: str = "",
        elapsed_seconds: float = 0.0,
    ) -> "DelegateResult":
        return cls(
            status="fail",
            error=error,
            exit_code=exit_code,
            stderr=stderr,
            elapsed_seconds=elapsed_seconds,
        )


class BatchOutcome(BaseModel):
    """Results and failure messages collected from one parallel dispatch.

    ``results`` holds outputs in completion order within each chunk, chunks
    in submission order. ``len(results) + len(errors)`` can be smaller than
    the item count: a call that succeeds with no output on either stream
    contributes to neither list.
    """

    results: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
    chunks: int = 0

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    def payload(self) -> dict[str, list[str]]:
        return {"results": list(self.results), "errors": list(self.errors)}


class ReductionOutcome(BaseModel):
    """Final accumulator of a map-reduce run plus the map-phase errors."""

    result: str = ""
    errors: list[str] = Field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    def payload(self) -> dict[str, object]:
        return {"result": self.result, "errors": list(self.errors)}
