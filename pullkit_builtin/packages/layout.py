"""Layout helpers for the npm downloads tree."""

from __future__ import annotations

import posixpath
from pathlib import Path
from urllib.parse import unquote, urlparse

__all__ = ["tarball_filename", "tarball_path"]


def tarball_filename(url: str) -> str:
    name = posixpath.basename(unquote(urlparse(url).path))
    if not name or name in (".", ".."):
        raise ValueError(f"cannot derive a file name from {url!r}")
    return name


def tarball_path(packages_dir: Path, url: str) -> Path:
    return packages_dir / tarball_filename(url)
