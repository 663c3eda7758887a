"""Manifest variants and the index-to-concrete resolution state machine."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Mapping, Optional, Protocol, Sequence, Tuple, Union

from pullkit_core.errors import InvalidReferenceError, RegistryError, UnsupportedManifestError

logger = logging.getLogger(__name__)

OCI_INDEX = "application/vnd.oci.image.index.v1+json"
DOCKER_MANIFEST_LIST = "application/vnd.docker.distribution.manifest.list.v2+json"
OCI_MANIFEST = "application/vnd.oci.image.manifest.v1+json"
DOCKER_MANIFEST = "application/vnd.docker.distribution.manifest.v2+json"

INDEX_MEDIA_TYPES = (OCI_INDEX, DOCKER_MANIFEST_LIST)
CONCRETE_MEDIA_TYPES = (OCI_MANIFEST, DOCKER_MANIFEST)
# preference order of the first request
ALL_MEDIA_TYPES = INDEX_MEDIA_TYPES + CONCRETE_MEDIA_TYPES


@dataclass(frozen=True)
class Descriptor:
    digest: str
    media_type: Optional[str] = None
    size: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Descriptor":
        digest = data.get("digest")
        if not isinstance(digest, str) or not digest:
            raise ValueError("descriptor without digest")
        size = data.get("size")
        return cls(
            digest=digest,
            media_type=data.get("mediaType"),
            size=int(size) if isinstance(size, int) else None,
        )


@dataclass(frozen=True)
class PlatformEntry:
    os: str
    architecture: str
    digest: str
    variant: Optional[str] = None
    media_type: Optional[str] = None

    @property
    def label(self) -> str:
        base = f"{self.os}/{self.architecture}"
        return f"{base}/{self.variant}" if self.variant else base


@dataclass(frozen=True)
class PlatformIndex:
    media_type: str
    entries: Tuple[PlatformEntry, ...]


@dataclass(frozen=True)
class ConcreteManifest:
    media_type: str
    config: Descriptor
    layers: Tuple[Descriptor, ...]


Manifest = Union[PlatformIndex, ConcreteManifest]


def normalize_media_type(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    return value.split(";", 1)[0].strip() or None


def parse_manifest(payload: Mapping[str, Any], content_type: Optional[str] = None) -> Manifest:
    """Turn a manifest body into one of the two variants.

    The body's ``mediaType`` is authoritative; the response ``Content-Type``
    is only consulted when the body does not carry one.
    """

    media_type = normalize_media_type(payload.get("mediaType")) or normalize_media_type(content_type)
    try:
        if media_type in INDEX_MEDIA_TYPES:
            entries = []
            for item in payload.get("manifests") or []:
                platform = item.get("platform") or {}
                entries.append(
                    PlatformEntry(
                        os=str(platform.get("os", "unknown")),
                        architecture=str(platform.get("architecture", "unknown")),
                        variant=platform.get("variant") or None,
                        digest=Descriptor.from_dict(item).digest,
                        media_type=item.get("mediaType"),
                    )
                )
            return PlatformIndex(media_type=media_type, entries=tuple(entries))
        if media_type in CONCRETE_MEDIA_TYPES:
            config = payload.get("config")
            if not isinstance(config, Mapping):
                raise ValueError("manifest without config descriptor")
            layers = tuple(Descriptor.from_dict(layer) for layer in payload.get("layers") or [])
            return ConcreteManifest(media_type=media_type, config=Descriptor.from_dict(config), layers=layers)
    except (AttributeError, TypeError, ValueError) as exc:
        raise RegistryError(f"malformed {media_type} manifest: {exc}") from exc
    raise UnsupportedManifestError(media_type)


class ManifestSource(Protocol):
    def get_manifest(
        self,
        repository: str,
        reference: str,
        accept: Sequence[str],
        token: Optional[str] = None,
    ) -> Manifest: ...


# entries of the index -> index of the chosen entry
PlatformSelector = Callable[[Sequence[PlatformEntry]], int]


class ManifestState(Enum):
    UNRESOLVED = "unresolved"
    INDEX_FETCHED = "index_fetched"
    PLATFORM_SELECTED = "platform_selected"
    CONCRETE_FETCHED = "concrete_fetched"


class ManifestResolver:
    """Walk ``UNRESOLVED -> [INDEX_FETCHED -> PLATFORM_SELECTED ->] CONCRETE_FETCHED``.

    A platform index never picks an entry on its own: the caller's selector
    decides, and without one the resolution fails.
    """

    def __init__(self, source: ManifestSource, repository: str, token: Optional[str] = None) -> None:
        self.source = source
        self.repository = repository
        self.token = token
        self.state = ManifestState.UNRESOLVED
        self.index: Optional[PlatformIndex] = None
        self.selected: Optional[PlatformEntry] = None
        self.manifest: Optional[ConcreteManifest] = None

    def resolve(self, reference: str, select_platform: PlatformSelector | None = None) -> ConcreteManifest:
        if self.state is not ManifestState.UNRESOLVED:
            raise RuntimeError(f"resolver already used (state={self.state.value})")

        fetched = self.source.get_manifest(self.repository, reference, ALL_MEDIA_TYPES, self.token)
        if isinstance(fetched, PlatformIndex):
            self.index = fetched
            self.state = ManifestState.INDEX_FETCHED
            entry = self._select(fetched, select_platform)
            self.selected = entry
            self.state = ManifestState.PLATFORM_SELECTED
            logger.info("%s: selected platform %s (%s)", self.repository, entry.label, entry.digest)
            fetched = self.source.get_manifest(self.repository, entry.digest, CONCRETE_MEDIA_TYPES, self.token)

        if not isinstance(fetched, ConcreteManifest):
            raise UnsupportedManifestError(fetched.media_type)
        self.manifest = fetched
        self.state = ManifestState.CONCRETE_FETCHED
        return fetched

    def _select(self, index: PlatformIndex, select_platform: PlatformSelector | None) -> PlatformEntry:
        if not index.entries:
            raise RegistryError(f"{self.repository}: platform index lists no manifests")
        if select_platform is None:
            labels = ", ".join(entry.label for entry in index.entries)
            raise InvalidReferenceError(f"{self.repository}: choose a platform ({labels})")
        choice = select_platform(index.entries)
        if not 0 <= choice < len(index.entries):
            raise InvalidReferenceError(f"{self.repository}: platform choice {choice} out of range")
        return index.entries[choice]


def platform_selector(label: str) -> PlatformSelector:
    """Non-interactive selector for ``os/arch[/variant]``."""

    wanted = label.strip().lower()

    def select(entries: Sequence[PlatformEntry]) -> int:
        for position, entry in enumerate(entries):
            if entry.label.lower() == wanted:
                return position
        # "linux/arm64" also matches "linux/arm64/v8" when it is the only arm64 entry
        loose = [i for i, entry in enumerate(entries) if f"{entry.os}/{entry.architecture}".lower() == wanted]
        if len(loose) == 1:
            return loose[0]
        available = ", ".join(entry.label for entry in entries)
        raise InvalidReferenceError(f"platform {label!r} not in index ({available})")

    return select
