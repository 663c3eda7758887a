"""Datatypes for npm package acquisition."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional, Tuple

ALIAS_PREFIX = "npm:"


@dataclass(frozen=True)
class PackageIdentity:
    name: str
    version: str

    @property
    def spec(self) -> str:
        return f"{self.name}@{self.version}"

    def __str__(self) -> str:
        return self.spec


@dataclass(frozen=True)
class DependencyRange:
    dependent: str
    target: str
    range: str

    @classmethod
    def from_entry(cls, dependent: str, name: str, spec: str) -> "DependencyRange":
        """Build an edge, unwrapping ``npm:<name>@<range>`` aliases."""

        spec = (spec or "").strip()
        if spec.startswith(ALIAS_PREFIX):
            target, range_text = split_spec(spec[len(ALIAS_PREFIX):])
            return cls(dependent=dependent, target=target, range=range_text or "*")
        return cls(dependent=dependent, target=name, range=spec or "*")


@dataclass
class ResolvedArtifact:
    identity: PackageIdentity
    source_url: str
    local_path: Path
    size_bytes: int = 0
    completed: bool = False

    def mark_completed(self, size_bytes: int) -> None:
        self.size_bytes = size_bytes
        self.completed = True


@dataclass(frozen=True)
class VersionMetadata:
    name: str
    version: str
    dependencies: Mapping[str, str]
    tarball_url: str

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], *, name: str = "", version: str = "") -> "VersionMetadata":
        dist = data.get("dist")
        tarball = dist.get("tarball") if isinstance(dist, Mapping) else None
        if not tarball:
            raise ValueError(f"{name or data.get('name')}@{version or data.get('version')} has no dist.tarball")
        raw_deps = data.get("dependencies") or {}
        dependencies = (
            {str(k): str(v) for k, v in raw_deps.items()} if isinstance(raw_deps, Mapping) else {}
        )
        return cls(
            name=str(data.get("name") or name),
            version=str(data.get("version") or version),
            dependencies=dependencies,
            tarball_url=str(tarball),
        )

    def edges(self) -> Tuple[DependencyRange, ...]:
        return tuple(
            DependencyRange.from_entry(self.name, dep, spec) for dep, spec in self.dependencies.items()
        )


@dataclass(frozen=True)
class PackageDocument:
    """Parsed packument: every published version plus the dist-tags."""

    name: str
    versions: Mapping[str, Mapping[str, Any]]
    dist_tags: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], *, name: str = "") -> "PackageDocument":
        raw_versions = data.get("versions")
        if not isinstance(raw_versions, Mapping):
            raise ValueError(f"packument for {name or data.get('name')} has no versions map")
        versions = {
            str(version): details
            for version, details in raw_versions.items()
            if isinstance(details, Mapping)
        }
        raw_tags = data.get("dist-tags") or {}
        tags = {str(k): str(v) for k, v in raw_tags.items()} if isinstance(raw_tags, Mapping) else {}
        return cls(name=str(data.get("name") or name), versions=versions, dist_tags=tags)

    def version_metadata(self, version: str) -> VersionMetadata:
        details = self.versions.get(version)
        if details is None:
            raise KeyError(f"{self.name}@{version} is not published")
        return VersionMetadata.from_dict(details, name=self.name, version=version)


def split_spec(spec: str) -> tuple[str, Optional[str]]:
    """Split ``name@range`` honouring scoped names such as ``@scope/pkg@1.x``."""

    text = (spec or "").strip()
    at = text.rfind("@")
    if at <= 0:
        return text, None
    name, version = text[:at].strip(), text[at + 1:].strip()
    return name, version or None
