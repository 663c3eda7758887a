"""Pull one container image into ``<repository>_<tag>.tar``."""

from __future__ import annotations

import logging
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, Optional, Sequence

from pullkit_core.batch import BatchResult, run_batch
from pullkit_core.errors import InvalidReferenceError, PullkitError, TagNotFoundError
from pullkit_core.events import ARTIFACT_CACHED, LAYER_ADDED, LAYER_FAILED, EventBus
from pullkit_core.transfer import BlobStreamer

from .archive import CONFIG_ENTRY_NAME, ImageArchive, layer_entry_name
from .client import ImageRegistryClient
from .manifest import ConcreteManifest, ManifestResolver, PlatformSelector
from .reference import ImageReference, parse_reference

logger = logging.getLogger(__name__)

# (repository, tags newest first) -> chosen tag
TagSelector = Callable[[str, Sequence[str]], str]
ClientFactory = Callable[[ImageReference], ImageRegistryClient]


@dataclass
class PullReport:
    reference: ImageReference
    destination: Path
    skipped: bool = False
    layers_added: list[str] = field(default_factory=list)
    layer_failures: dict[str, str] = field(default_factory=dict)

    @property
    def complete(self) -> bool:
        return not self.layer_failures


@dataclass
class _PullContext:
    client: ImageRegistryClient
    reference: ImageReference
    token: Optional[str]


class ImagePuller:
    def __init__(
        self,
        client_factory: ClientFactory,
        streamer: BlobStreamer,
        output_dir: Path,
        *,
        select_tag: TagSelector | None = None,
        select_platform: PlatformSelector | None = None,
        events: EventBus | None = None,
    ) -> None:
        self.client_factory = client_factory
        self.streamer = streamer
        self.output_dir = Path(output_dir)
        self.select_tag = select_tag
        self.select_platform = select_platform
        self.events = events

    def pull(self, image_name: str) -> PullReport:
        reference = parse_reference(image_name)
        client = self.client_factory(reference)
        token: Optional[str] = None
        authenticated = False

        if reference.reference is None:
            token = client.get_token(reference.repository)
            authenticated = True
            reference = reference.with_tag(self._choose_tag(client, reference, token))

        destination = self.output_dir / reference.archive_name()
        if destination.exists():
            logger.info("%s already downloaded at %s", reference, destination)
            self._emit(ARTIFACT_CACHED, {"identity": str(reference), "path": str(destination)})
            return PullReport(reference=reference, destination=destination, skipped=True)

        if not authenticated:
            token = client.get_token(reference.repository)
        manifest = ManifestResolver(client, reference.repository, token).resolve(
            reference.reference, self.select_platform
        )
        logger.info("%s: %d layers", reference, len(manifest.layers))

        report = PullReport(reference=reference, destination=destination)
        context = _PullContext(client=client, reference=reference, token=token)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        with tempfile.TemporaryDirectory(prefix=".pullkit-", dir=self.output_dir) as staging, \
                ImageArchive.begin(destination) as archive:
            self._add_layers(context, manifest, archive, Path(staging), report)
            self._add_config(context, manifest, archive, Path(staging))
        return report

    def pull_all(self, image_names: Iterable[str]) -> BatchResult[PullReport]:
        return run_batch(image_names, self.pull)

    # ------------------------- steps -------------------------

    def _choose_tag(self, client: ImageRegistryClient, reference: ImageReference, token: Optional[str]) -> str:
        tags = client.list_tags(reference.repository, token)
        if not tags:
            raise TagNotFoundError(f"{reference.repository} has no tags")
        newest_first = list(reversed(tags))
        if self.select_tag is None:
            return "latest" if "latest" in tags else newest_first[0]
        chosen = self.select_tag(reference.repository, newest_first)
        if chosen not in tags:
            raise InvalidReferenceError(f"{reference.repository}:{chosen} is not a published tag")
        return chosen

    def _add_layers(
        self,
        context: _PullContext,
        manifest: ConcreteManifest,
        archive: ImageArchive,
        staging: Path,
        report: PullReport,
    ) -> None:
        total = len(manifest.layers)
        for position, layer in enumerate(manifest.layers, start=1):
            entry_name = layer_entry_name(layer.digest)
            if entry_name in archive.entries or layer.digest in report.layer_failures:
                logger.debug("layer %s repeated in manifest, fetched once", layer.digest)
                continue
            blob = staging / f"layer-{position}.blob"
            try:
                self._fetch_blob(context, layer.digest, blob)
            except (PullkitError, OSError) as exc:
                report.layer_failures[layer.digest] = str(exc)
                logger.error("layer %s of %s failed: %s", layer.digest, context.reference, exc)
                self._emit(LAYER_FAILED, {"digest": layer.digest, "error": str(exc)})
                continue
            try:
                archive.add_entry(entry_name, blob)
            finally:
                blob.unlink(missing_ok=True)
            report.layers_added.append(entry_name)
            self._emit(LAYER_ADDED, {"digest": layer.digest, "position": position, "total": total})

    def _add_config(
        self,
        context: _PullContext,
        manifest: ConcreteManifest,
        archive: ImageArchive,
        staging: Path,
    ) -> None:
        blob = staging / CONFIG_ENTRY_NAME
        self._fetch_blob(context, manifest.config.digest, blob)
        archive.add_entry(CONFIG_ENTRY_NAME, blob)

    def _fetch_blob(self, context: _PullContext, digest: str, destination: Path) -> int:
        return self.streamer.stream(
            context.client.blob_url(context.reference.repository, digest),
            destination,
            headers=context.client.auth_headers(context.token),
            label=digest[:19],
        )

    def _emit(self, name: str, payload: dict) -> None:
        if self.events is not None:
            self.events.emit(name, payload)
