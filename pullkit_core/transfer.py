"""Streamed blob downloads with progress notifications.

``BlobStreamer.stream`` never holds a whole payload in memory: the response is
read in ``chunk_size`` pieces and each piece is written through a
``ProgressWriter`` that counts bytes and reports them on the event bus.

The body lands in ``<destination>.part`` first and is moved over the
destination only once it is complete, so an interrupted transfer never leaves
a file that the "skip if present" cache check would accept.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO, Mapping

import requests
from requests import RequestException

from .errors import TransferError
from .events import TRANSFER_FINISHED, TRANSFER_PROGRESS, TRANSFER_STARTED, EventBus
from .http import Timeout, body_snippet, build_session

logger = logging.getLogger(__name__)

PARTIAL_SUFFIX = ".part"


def partial_path(destination: Path) -> Path:
    return destination.with_name(destination.name + PARTIAL_SUFFIX)


class ProgressWriter:
    """File writer that reports the running byte count after every write."""

    def __init__(
        self,
        handle: BinaryIO,
        *,
        label: str,
        total: int | None,
        events: EventBus | None = None,
    ) -> None:
        self._handle = handle
        self.label = label
        self.total = total
        self.written = 0
        self._events = events

    def start(self) -> None:
        self._emit(TRANSFER_STARTED)

    def write(self, chunk: bytes) -> int:
        self._handle.write(chunk)
        self.written += len(chunk)
        self._emit(TRANSFER_PROGRESS)
        return len(chunk)

    def finish(self) -> None:
        self._emit(TRANSFER_FINISHED)

    def _emit(self, name: str) -> None:
        if self._events is None:
            return
        self._events.emit(name, {"label": self.label, "written": self.written, "total": self.total})


@dataclass
class BlobStreamer:
    """Download one binary object to disk with streamed HTTP."""

    timeout: Timeout = 30.0
    chunk_size: int = 64 * 1024
    events: EventBus | None = None
    session: requests.Session | None = field(default=None, repr=False)

    def __post_init__(self) -> None:
        if self.session is None:
            self.session = build_session()

    def stream(
        self,
        url: str,
        destination: Path | str,
        *,
        headers: Mapping[str, str] | None = None,
        label: str | None = None,
    ) -> int:
        """Write the body of ``url`` to ``destination`` and return the byte count."""

        target = Path(destination)
        target.parent.mkdir(parents=True, exist_ok=True)
        temp = partial_path(target)
        logger.info("downloading %s -> %s", url, target)
        try:
            written = self._stream_to(url, temp, headers=headers, label=label or target.name)
        except BaseException:
            temp.unlink(missing_ok=True)
            raise
        os.replace(temp, target)
        return written

    def _stream_to(
        self,
        url: str,
        temp: Path,
        *,
        headers: Mapping[str, str] | None,
        label: str,
    ) -> int:
        try:
            resp = self.session.get(url, headers=dict(headers or {}), stream=True, timeout=self.timeout)
        except RequestException as exc:
            raise TransferError(f"GET {url} failed: {exc}") from exc

        with resp:
            if resp.status_code >= 400:
                raise TransferError(f"GET {url} returned {resp.status_code}: {body_snippet(resp)}")
            total = _content_length(resp)
            with temp.open("wb") as handle:
                writer = ProgressWriter(handle, label=label, total=total, events=self.events)
                writer.start()
                try:
                    for chunk in resp.iter_content(chunk_size=self.chunk_size):
                        if chunk:
                            writer.write(chunk)
                except RequestException as exc:
                    raise TransferError(
                        f"GET {url} interrupted after {writer.written} bytes: {exc}"
                    ) from exc
                if total is not None and writer.written != total:
                    raise TransferError(
                        f"GET {url} delivered {writer.written} of {total} bytes"
                    )
                writer.finish()
        return writer.written


def _content_length(resp: requests.Response) -> int | None:
    # requests decodes gzip transparently, so a compressed Content-Length does not describe the body we write
    if resp.headers.get("Content-Encoding"):
        return None
    raw = resp.headers.get("Content-Length")
    if raw is None:
        return None
    try:
        value = int(raw)
    except ValueError:
        return None
    return value if value >= 0 else None
