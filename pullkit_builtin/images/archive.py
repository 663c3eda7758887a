"""Pack image blobs into a single uncompressed tar archive."""

from __future__ import annotations

import logging
import os
import re
import tarfile
import time
from pathlib import Path
from typing import Optional

from pullkit_core.transfer import partial_path

logger = logging.getLogger(__name__)

CONFIG_ENTRY_NAME = "config.json"
_UNSAFE_RE = re.compile(r"[^A-Za-z0-9]")


def layer_entry_name(digest: str) -> str:
    """``sha256:ab12..`` -> ``layer-sha256_ab12...tar.gz``; the blob itself stays compressed."""
    return f"layer-{_UNSAFE_RE.sub('_', digest)}.tar.gz"


class ImageArchive:
    """Archive under construction.

    Entries are appended to ``<destination>.part``; ``finalize`` closes the
    tar stream and moves it over ``destination``. ``abort`` throws the
    partial file away. As a context manager the archive is finalised on a
    clean exit and aborted when an exception escapes.
    """

    def __init__(self, destination: Path | str) -> None:
        self.destination = Path(destination)
        self.entries: list[str] = []
        self._temp = partial_path(self.destination)
        self._tar: Optional[tarfile.TarFile] = None

    @classmethod
    def begin(cls, destination: Path | str) -> "ImageArchive":
        archive = cls(destination)
        archive.destination.parent.mkdir(parents=True, exist_ok=True)
        archive._tar = tarfile.open(archive._temp, mode="w", format=tarfile.PAX_FORMAT)
        return archive

    @property
    def is_open(self) -> bool:
        return self._tar is not None

    def add_entry(self, name: str, source: Path | str) -> None:
        if self._tar is None:
            raise RuntimeError("archive is not open")
        if name in self.entries:
            raise ValueError(f"duplicate archive entry {name!r}")
        source_path = Path(source)
        info = tarfile.TarInfo(name=name)
        info.size = source_path.stat().st_size
        info.mtime = int(time.time())
        info.mode = 0o644
        with source_path.open("rb") as handle:
            self._tar.addfile(info, handle)
        self.entries.append(name)
        logger.debug("added %s (%d bytes) to %s", name, info.size, self.destination)

    def finalize(self) -> Path:
        if self._tar is None:
            raise RuntimeError("archive is not open")
        self._tar.close()
        self._tar = None
        os.replace(self._temp, self.destination)
        logger.info("wrote %s with %d entries", self.destination, len(self.entries))
        return self.destination

    def abort(self) -> None:
        if self._tar is not None:
            self._tar.close()
            self._tar = None
        self._temp.unlink(missing_ok=True)

    def __enter__(self) -> "ImageArchive":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if not self.is_open:
            return
        if exc_type is None:
            self.finalize()
        else:
            self.abort()
