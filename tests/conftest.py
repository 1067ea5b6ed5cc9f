"""
Shared fixtures for the Inception test suite.

Provides stub executables (small bash scripts written to tmp_path) for
exercising the real delegate channel, and an instrumented in-memory channel
for the dispatcher and reducer concurrency properties.
"""

from __future__ import annotations

import asyncio
import shutil
import textwrap
from pathlib import Path
from typing import Callable, Optional

import pytest

from inception.orchestration.channel import DelegateChannel, DelegateChannelBase
from inception.orchestration.models import DelegateResult

BASH = shutil.which("bash") or "/bin/bash"


# ---------------------------------------------------------------------------
# Stub executables
# ---------------------------------------------------------------------------

# Reads one line, strips the structured-output directive, then dispatches on
# the content. Deterministic: the same input always gives the same output.
ECHO_STUB = r"""
read -r line
line="${line%" [RESPOND IN JSON KEY-VALUE PAIRS]"}"
case "$line" in
  *bad*)
    echo "boom: $line" >&2
    exit 3
    ;;
  *quiet*)
    exit 0
    ;;
  *stderr-only*)
    echo "diagnostic for $line" >&2
    exit 0
    ;;
esac
printf 'echo:%s' "$line"
"""


@pytest.fixture()
def write_stub(tmp_path: Path) -> Callable[[str, str], Path]:
    """Write a bash stub into tmp_path and return its path."""

    def _write(body: str, name: str = "stub.sh") -> Path:
        path = tmp_path / name
        path.write_text("#!/usr/bin/env bash\n" + textwrap.dedent(body).lstrip("\n"))
        path.chmod(0o755)
        return path

    return _write


@pytest.fixture()
def echo_channel(tmp_path: Path, write_stub) -> DelegateChannel:
    """A real DelegateChannel backed by the deterministic echo stub."""
    write_stub(ECHO_STUB)
    return DelegateChannel(
        executable="stub.sh",
        working_directory=tmp_path,
        interpreter=BASH,
    )


# ---------------------------------------------------------------------------
# Instrumented in-memory channel
# ---------------------------------------------------------------------------


class FakeChannel(DelegateChannelBase):
    """Records every call and tracks how many calls are in flight at once."""

    def __init__(
        self,
        responder: Optional[Callable[[str], DelegateResult]] = None,
        delays: Optional[dict[str, float]] = None,
    ):
        self._responder = responder or (lambda prompt: DelegateResult.success(prompt, ""))
        self._delays = delays or {}
        self.calls: list[tuple[str, bool]] = []
        self.events: list[tuple[str, str]] = []
        self.in_flight = 0
        self.peak_in_flight = 0

    async def delegate(self, input_text: str, force_structured: bool = False) -> DelegateResult:
        self.calls.append((input_text, force_structured))
        self.events.append(("start", input_text))
        self.in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self._delays.get(input_text, 0.0))
            return self._responder(input_text)
        finally:
            self.in_flight -= 1
            self.events.append(("end", input_text))


@pytest.fixture()
def fake_channel() -> FakeChannel:
    return FakeChannel()


@pytest.fixture()
def make_fake_channel() -> type[FakeChannel]:
    """The FakeChannel class, for tests that need custom responders or delays."""
    return FakeChannel


@pytest.fixture()
def bash() -> str:
    return BASH
