from __future__ import annotations

from dataclasses import dataclass, field
from itertools import count
from typing import Iterator


@dataclass(slots=True)
class SequenceGuard:
    """
    Hands out strictly increasing tickets and answers whether a ticket is
    still the newest one issued.

    Tickets are drawn when a request is initiated, so completion order never
    decides which result wins.
    """

    name: str
    _counter: Iterator[int] = field(default_factory=lambda: count(1), repr=False)
    _latest: int = 0

    def issue(self) -> int:
        self._latest = next(self._counter)
        return self._latest

    def is_current(self, ticket: int) -> bool:
        return ticket == self._latest

    @property
    def latest(self) -> int:
        return self._latest
