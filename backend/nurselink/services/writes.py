"""Shared plumbing for the engine's keyed, per-candidate writes."""

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, List, TypeVar

from nurselink.exceptions import StepTimeoutError

T = TypeVar("T")


@dataclass(frozen=True)
class WriteFailure:
    nurse_id: str
    operation: str  # "application", "notification" or "delivery"
    error: str


@dataclass
class WriteReport:
    records: List = field(default_factory=list)
    created: int = 0
    existing: int = 0
    delivered: int = 0
    failures: List[WriteFailure] = field(default_factory=list)

    @property
    def attempted(self) -> int:
        write_failures = [f for f in self.failures if f.operation != "delivery"]
        return len(self.records) + len(write_failures)

    @property
    def all_failed(self) -> bool:
        return bool(self.failures) and not self.records


async def with_timeout(awaitable: Awaitable[T], timeout: float, step: str) -> T:
    """Await with a time bound, raising StepTimeoutError on expiry."""
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError as e:
        raise StepTimeoutError(step, timeout) from e
