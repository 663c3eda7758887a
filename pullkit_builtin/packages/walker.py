"""Transitive dependency acquisition for npm packages."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Protocol

from pullkit_core.errors import InvalidRangeError, NotFoundError, PullkitError, RegistryError
from pullkit_core.events import ARTIFACT_CACHED, ARTIFACT_FAILED, EventBus

from .layout import tarball_path
from .types import DependencyRange, PackageDocument, PackageIdentity, ResolvedArtifact, VersionMetadata
from .versions import parse_range, resolve_version

logger = logging.getLogger(__name__)

__all__ = ["DependencyWalker", "MetadataSource", "Streamer", "WalkReport", "pick_version"]


class MetadataSource(Protocol):
    def get_metadata(self, name: str) -> PackageDocument: ...

    def get_version_metadata(self, name: str, version: str) -> VersionMetadata: ...


class Streamer(Protocol):
    def stream(self, url: str, destination: Path, *, headers=None, label: Optional[str] = None) -> int: ...


@dataclass
class WalkReport:
    root: PackageIdentity
    downloaded: list[ResolvedArtifact] = field(default_factory=list)
    cached: list[ResolvedArtifact] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    failures: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


def pick_version(document: PackageDocument, range_text: str) -> str:
    """Resolve ``range_text`` against a packument; dist-tag names win over ranges."""

    tagged = document.dist_tags.get(range_text)
    if tagged and tagged in document.versions:
        return tagged
    parse_range(range_text)
    return resolve_version(document.versions.keys(), range_text, name=document.name)


class DependencyWalker:
    """Download a package and everything it depends on, each identity at most once.

    The walker owns its ``seen`` set for the lifetime of the instance (one CLI
    batch). An identity is recorded as seen before any I/O happens for it, so
    cycles and diamonds terminate and a repeated request is a no-op.

    Traversal uses an explicit stack. Children are pushed in reverse so the
    download order matches a recursive depth-first walk in declaration order.
    """

    def __init__(
        self,
        client: MetadataSource,
        streamer: Streamer,
        packages_dir: Path,
        *,
        events: EventBus | None = None,
    ) -> None:
        self.client = client
        self.streamer = streamer
        self.packages_dir = Path(packages_dir)
        self.events = events
        self.seen: set[PackageIdentity] = set()
        self._documents: dict[str, PackageDocument] = {}

    def acquire(self, name: str, version: str) -> WalkReport:
        root = PackageIdentity(name, version)
        report = WalkReport(root=root)
        stack = [root]
        while stack:
            identity = stack.pop()
            if identity in self.seen:
                continue
            self.seen.add(identity)
            children = self._visit(identity, report)
            stack.extend(reversed(children))
        return report

    def document(self, name: str) -> PackageDocument:
        cached = self._documents.get(name)
        if cached is None:
            cached = self.client.get_metadata(name)
            self._documents[name] = cached
        return cached

    # ------------------------- steps -------------------------

    def _visit(self, identity: PackageIdentity, report: WalkReport) -> list[PackageIdentity]:
        logger.info("processing %s", identity)
        try:
            metadata = self._version_metadata(identity)
        except PullkitError as exc:
            self._fail(report, identity, f"metadata for {identity} unavailable: {exc}")
            return []
        self._materialize(identity, metadata, report)
        return self._resolve_edges(metadata.edges(), report)

    def _version_metadata(self, identity: PackageIdentity) -> VersionMetadata:
        if not identity.name.startswith("@"):
            return self.client.get_version_metadata(identity.name, identity.version)
        # scoped packages have no per-version document; reuse the memoised packument
        try:
            return self.document(identity.name).version_metadata(identity.version)
        except (KeyError, ValueError) as exc:
            raise RegistryError(str(exc)) from exc

    def _materialize(self, identity: PackageIdentity, metadata: VersionMetadata, report: WalkReport) -> None:
        try:
            destination = tarball_path(self.packages_dir, metadata.tarball_url)
        except ValueError as exc:
            self._fail(report, identity, str(exc))
            return
        artifact = ResolvedArtifact(identity=identity, source_url=metadata.tarball_url, local_path=destination)
        if destination.exists():
            artifact.mark_completed(destination.stat().st_size)
            report.cached.append(artifact)
            logger.info("%s already downloaded at %s", identity, destination)
            self._emit(ARTIFACT_CACHED, {"identity": identity.spec, "path": str(destination)})
            return
        try:
            size = self.streamer.stream(metadata.tarball_url, destination, label=identity.spec)
        except (PullkitError, OSError) as exc:
            self._fail(report, identity, f"download of {identity} failed: {exc}")
            return
        artifact.mark_completed(size)
        report.downloaded.append(artifact)

    def _resolve_edges(self, edges: tuple[DependencyRange, ...], report: WalkReport) -> list[PackageIdentity]:
        resolved: list[PackageIdentity] = []
        for edge in edges:
            try:
                version = pick_version(self.document(edge.target), edge.range)
            except InvalidRangeError:
                self._warn(report, f"unsupported dependency spec {edge.target}@{edge.range} (required by {edge.dependent})")
            except NotFoundError:
                self._warn(report, f"no matching version for {edge.target}@{edge.range} (required by {edge.dependent})")
            except PullkitError as exc:
                report.failures.append(f"resolving {edge.target}@{edge.range} failed: {exc}")
                logger.error("resolving %s@%s failed: %s", edge.target, edge.range, exc)
            else:
                resolved.append(PackageIdentity(edge.target, version))
        return resolved

    def _warn(self, report: WalkReport, message: str) -> None:
        report.warnings.append(message)
        logger.warning(message)

    def _fail(self, report: WalkReport, identity: PackageIdentity, message: str) -> None:
        report.failures.append(message)
        logger.error(message)
        self._emit(ARTIFACT_FAILED, {"identity": identity.spec, "error": message})

    def _emit(self, name: str, payload: dict) -> None:
        if self.events is not None:
            self.events.emit(name, payload)
