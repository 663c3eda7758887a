"""Top-level package requests: pick the root version, then walk its graph."""

from __future__ import annotations

import logging
from typing import Callable, Iterable, Optional, Sequence

from pullkit_core.batch import BatchResult, run_batch
from pullkit_core.errors import InvalidReferenceError, VersionNotFoundError

from .types import PackageDocument, split_spec
from .versions import sort_versions
from .walker import DependencyWalker, WalkReport, pick_version

logger = logging.getLogger(__name__)

# (package name, versions newest first) -> chosen version
VersionChooser = Callable[[str, Sequence[str]], str]


def choose_latest(document: PackageDocument) -> Optional[str]:
    latest = document.dist_tags.get("latest")
    if latest and latest in document.versions:
        return latest
    ordered = sort_versions(document.versions)
    return ordered[-1] if ordered else None


class PackageFetcher:
    def __init__(
        self,
        walker: DependencyWalker,
        choose_version: VersionChooser | None = None,
    ) -> None:
        self.walker = walker
        self.choose_version = choose_version

    def select_version(self, name: str, requested: Optional[str] = None) -> str:
        document = self.walker.document(name)
        if requested:
            if requested in document.versions:
                return requested
            return pick_version(document, requested)

        newest_first = list(reversed(sort_versions(document.versions)))
        if not newest_first:
            raise VersionNotFoundError(name, "*")
        if len(newest_first) == 1:
            return newest_first[0]
        if self.choose_version is None:
            return choose_latest(document) or newest_first[0]
        chosen = self.choose_version(name, newest_first)
        if chosen not in document.versions:
            raise InvalidReferenceError(f"{name}@{chosen} is not a published version")
        return chosen

    def fetch(self, spec: str) -> WalkReport:
        name, requested = split_spec(spec)
        if not name:
            raise InvalidReferenceError("package name must not be empty")
        version = self.select_version(name, requested)
        logger.info("selected %s@%s", name, version)
        return self.walker.acquire(name, version)

    def fetch_all(self, specs: Iterable[str]) -> BatchResult[WalkReport]:
        return run_batch(specs, self.fetch)
