"""Image reference parsing and normalisation."""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from typing import Optional

from pullkit_core.errors import InvalidReferenceError

DEFAULT_NAMESPACE = "library"
# spellings of the default registry; references naming them resolve like bare names
DEFAULT_REGISTRY_HOSTS = frozenset({"docker.io", "index.docker.io", "registry-1.docker.io"})

_DIGEST_RE = re.compile(r"^[a-z0-9]+(?:[+._-][a-z0-9]+)*:[a-zA-Z0-9=_-]+$")
_TAG_RE = re.compile(r"^[\w][\w.-]{0,127}$")
_SAFE_RE = re.compile(r"[^A-Za-z0-9._-]")


@dataclass(frozen=True)
class ImageReference:
    repository: str
    tag: Optional[str] = None
    digest: Optional[str] = None
    registry: Optional[str] = None

    @property
    def reference(self) -> Optional[str]:
        """What to ask the manifests endpoint for: the digest wins over the tag."""
        return self.digest or self.tag

    def with_tag(self, tag: str) -> "ImageReference":
        return replace(self, tag=tag)

    def archive_name(self) -> str:
        label = self.tag or (self.digest or "").replace(":", "_")
        return f"{self.repository.replace('/', '_')}_{_SAFE_RE.sub('_', label)}.tar"

    def __str__(self) -> str:
        text = self.repository
        if self.registry:
            text = f"{self.registry}/{text}"
        if self.tag:
            text += f":{self.tag}"
        if self.digest:
            text += f"@{self.digest}"
        return text


def _looks_like_registry(component: str) -> bool:
    return "." in component or ":" in component or component == "localhost"


def parse_reference(text: str) -> ImageReference:
    """Parse ``[registry/]name[:tag][@digest]``.

    Unqualified names on the default registry belong to the ``library``
    namespace, so ``alpine:3.18`` becomes ``library/alpine`` tag ``3.18``.
    """

    raw = (text or "").strip()
    if not raw:
        raise InvalidReferenceError("image name must not be empty")

    digest: Optional[str] = None
    if "@" in raw:
        raw, digest = raw.split("@", 1)
        if not _DIGEST_RE.match(digest):
            raise InvalidReferenceError(f"invalid digest in {text!r}")

    tag: Optional[str] = None
    last_slash = raw.rfind("/")
    colon = raw.rfind(":")
    if colon > last_slash:
        raw, tag = raw[:colon], raw[colon + 1:]
        if not _TAG_RE.match(tag):
            raise InvalidReferenceError(f"invalid tag in {text!r}")

    registry: Optional[str] = None
    parts = raw.split("/")
    if len(parts) > 1 and _looks_like_registry(parts[0]):
        registry = parts[0]
        parts = parts[1:]
        if registry in DEFAULT_REGISTRY_HOSTS:
            registry = None
    if not parts or any(not part for part in parts):
        raise InvalidReferenceError(f"invalid repository in {text!r}")
    if registry is None and len(parts) == 1:
        parts = [DEFAULT_NAMESPACE, *parts]
    return ImageReference(repository="/".join(parts), tag=tag, digest=digest, registry=registry)
