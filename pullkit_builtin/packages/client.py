"""HTTP client for npm-compatible package registries."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from urllib.parse import quote

from pullkit_core.errors import RegistryError
from pullkit_core.http import HttpClient

from .types import PackageDocument, VersionMetadata

log = logging.getLogger(__name__)

DEFAULT_NPM_REGISTRY = "https://registry.npmjs.org"

# abbreviated "corgi" documents carry versions, dependencies and dist, nothing else
PACKUMENT_ACCEPT = "application/vnd.npm.install-v1+json; q=1.0, application/json; q=0.8, */*"


def escape_name(name: str) -> str:
    """Registry path segment for ``name``; the scope separator is percent-encoded."""

    return quote(name, safe="@")


@dataclass
class NpmRegistryClient(HttpClient):
    """Fetch package metadata from the registry. Holds no per-package state."""

    base_url: str = DEFAULT_NPM_REGISTRY

    def get_metadata(self, name: str) -> PackageDocument:
        payload = self._get_json(f"/{escape_name(name)}", headers={"Accept": PACKUMENT_ACCEPT})
        try:
            return PackageDocument.from_dict(payload, name=name)
        except ValueError as exc:
            raise RegistryError(str(exc)) from exc

    def get_version_metadata(self, name: str, version: str) -> VersionMetadata:
        if name.startswith("@"):
            # the public registry does not serve per-version documents for scoped packages
            document = self.get_metadata(name)
            try:
                return document.version_metadata(version)
            except (KeyError, ValueError) as exc:
                raise RegistryError(str(exc)) from exc

        payload = self._get_json(f"/{escape_name(name)}/{quote(version, safe='')}")
        try:
            return VersionMetadata.from_dict(payload, name=name, version=version)
        except ValueError as exc:
            raise RegistryError(str(exc)) from exc
