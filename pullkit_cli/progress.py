"""Text progress rendering driven by transfer events."""

from __future__ import annotations

import sys
from typing import TextIO

from pullkit_core.events import (
    ARTIFACT_CACHED,
    LAYER_ADDED,
    TRANSFER_FINISHED,
    TRANSFER_PROGRESS,
    TRANSFER_STARTED,
    Event,
    EventBus,
)

_BAR_WIDTH = 30
_UNKNOWN_STEP = 1024 * 1024


def _kib(value: int) -> str:
    return f"{value / 1024:,.0f}KB"


class ProgressRenderer:
    """Single-line progress bar per transfer, redrawn in place."""

    def __init__(self, stream: TextIO | None = None) -> None:
        self.stream = stream or sys.stderr
        self._last_mark = -1

    def attach(self, events: EventBus) -> "ProgressRenderer":
        events.on(TRANSFER_STARTED, self._on_started)
        events.on(TRANSFER_PROGRESS, self._on_progress)
        events.on(TRANSFER_FINISHED, self._on_finished)
        events.on(ARTIFACT_CACHED, self._on_cached)
        events.on(LAYER_ADDED, self._on_layer)
        return self

    def _on_started(self, event: Event) -> None:
        self._last_mark = -1
        self._draw(event.payload)

    def _on_progress(self, event: Event) -> None:
        payload = event.payload
        total = payload.get("total")
        written = int(payload.get("written") or 0)
        mark = written * 100 // total if total else written // _UNKNOWN_STEP
        if mark == self._last_mark:
            return
        self._last_mark = mark
        self._draw(payload)

    def _on_finished(self, event: Event) -> None:
        self._draw(event.payload)
        self.stream.write("\n")
        self.stream.flush()

    def _on_cached(self, event: Event) -> None:
        self.stream.write(f"already downloaded: {event.payload.get('path')}\n")
        self.stream.flush()

    def _on_layer(self, event: Event) -> None:
        payload = event.payload
        self.stream.write(f"layers {payload.get('position')}/{payload.get('total')}\n")
        self.stream.flush()

    def _draw(self, payload: dict) -> None:
        label = payload.get("label") or ""
        written = int(payload.get("written") or 0)
        total = payload.get("total")
        if total:
            ratio = min(written / total, 1.0)
            filled = int(ratio * _BAR_WIDTH)
            bar = "█" * filled + "░" * (_BAR_WIDTH - filled)
            line = f"\r{label} [{bar}] {ratio * 100:3.0f}% | {_kib(written)}/{_kib(total)}"
        else:
            line = f"\r{label} {_kib(written)}"
        self.stream.write(line)
        self.stream.flush()
