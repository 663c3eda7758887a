"""Run one engine operation per top-level identifier without letting one failure stop the rest."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Generic, Iterable, TypeVar

from .errors import PullkitError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class BatchResult(Generic[T]):
    results: dict[str, T] = field(default_factory=dict)
    errors: dict[str, Exception] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.errors


def run_batch(items: Iterable[str], operation: Callable[[str], T]) -> BatchResult[T]:
    batch: BatchResult[T] = BatchResult()
    for item in items:
        try:
            batch.results[item] = operation(item)
        except (PullkitError, OSError) as exc:
            logger.error("processing %s failed: %s", item, exc)
            batch.errors[item] = exc
    return batch
