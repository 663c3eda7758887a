"""npm package acquisition: version ranges, registry metadata and the dependency walker."""

from __future__ import annotations

from .client import NpmRegistryClient
from .fetcher import PackageFetcher, choose_latest
from .types import DependencyRange, PackageDocument, PackageIdentity, ResolvedArtifact, VersionMetadata, split_spec
from .versions import max_satisfying, parse_range, parse_version, resolve_version, sort_versions
from .walker import DependencyWalker, WalkReport

__all__ = [
    "DependencyRange",
    "DependencyWalker",
    "NpmRegistryClient",
    "PackageDocument",
    "PackageFetcher",
    "PackageIdentity",
    "ResolvedArtifact",
    "VersionMetadata",
    "WalkReport",
    "choose_latest",
    "max_satisfying",
    "parse_range",
    "parse_version",
    "resolve_version",
    "sort_versions",
    "split_spec",
]
