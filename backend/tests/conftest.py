from __future__ import annotations

import asyncio
from typing import Any

import pytest


class ControlledCall:
    """Async stand-in for a provider whose completions the test releases by hand."""

    def __init__(self) -> None:
        self.calls: list[tuple[tuple[Any, ...], asyncio.Future]] = []

    async def __call__(self, *args: Any) -> Any:
        future = asyncio.get_running_loop().create_future()
        self.calls.append((args, future))
        return await future

    def args(self, index: int) -> tuple[Any, ...]:
        return self.calls[index][0]

    def resolve(self, index: int, value: Any) -> None:
        self.calls[index][1].set_result(value)

    def fail(self, index: int, error: BaseException) -> None:
        self.calls[index][1].set_exception(error)


async def settle(rounds: int = 10) -> None:
    """Let every ready task run up to its next real suspension point."""

    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def controlled_call():
    return ControlledCall


@pytest.fixture
def run_pending():
    return settle
