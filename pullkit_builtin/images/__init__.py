"""Container image acquisition from Docker Registry HTTP API v2 registries."""

from __future__ import annotations

from .archive import CONFIG_ENTRY_NAME, ImageArchive, layer_entry_name
from .client import ImageRegistryClient, client_for_registry
from .manifest import (
    ConcreteManifest,
    Descriptor,
    ManifestResolver,
    ManifestState,
    PlatformEntry,
    PlatformIndex,
    parse_manifest,
    platform_selector,
)
from .puller import ImagePuller, PullReport
from .reference import ImageReference, parse_reference

__all__ = [
    "CONFIG_ENTRY_NAME",
    "ConcreteManifest",
    "Descriptor",
    "ImageArchive",
    "ImagePuller",
    "ImageReference",
    "ImageRegistryClient",
    "ManifestResolver",
    "ManifestState",
    "PlatformEntry",
    "PlatformIndex",
    "PullReport",
    "client_for_registry",
    "layer_entry_name",
    "parse_manifest",
    "parse_reference",
    "platform_selector",
]
