"""Docker Registry HTTP API v2 client: token exchange, manifests, tags and blob URLs."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Optional, Sequence, Tuple

from pullkit_core.errors import RegistryAuthError, RegistryError
from pullkit_core.http import HttpClient

from .manifest import Manifest, parse_manifest

log = logging.getLogger(__name__)

DEFAULT_REGISTRY = "https://registry-1.docker.io"
DEFAULT_AUTH_URL = "https://auth.docker.io/token"
DEFAULT_AUTH_SERVICE = "registry.docker.io"

_CHALLENGE_PARAM_RE = re.compile(r'(\w+)="([^"]*)"')


def parse_bearer_challenge(header: str) -> Tuple[str, Optional[str]]:
    """Return ``(realm, service)`` from a ``WWW-Authenticate: Bearer ...`` header."""

    scheme, _, params = header.strip().partition(" ")
    if scheme.lower() != "bearer":
        raise RegistryAuthError(f"unsupported registry auth scheme {scheme or '<empty>'!r}")
    values = dict(_CHALLENGE_PARAM_RE.findall(params))
    realm = values.get("realm")
    if not realm:
        raise RegistryAuthError("bearer challenge without realm")
    return realm, values.get("service")


def natural_key(tag: str) -> tuple:
    parts = [part for part in re.split(r"(\d+)", tag) if part]
    return tuple((0, int(part), "") if part.isdigit() else (1, 0, part.lower()) for part in parts)


@dataclass
class ImageRegistryClient(HttpClient):
    """Talk to one registry. Tokens are pull-scoped to a single repository."""

    base_url: str = DEFAULT_REGISTRY
    auth_url: Optional[str] = DEFAULT_AUTH_URL
    auth_service: Optional[str] = DEFAULT_AUTH_SERVICE
    _challenge: Optional[Tuple[str, Optional[str]]] = field(default=None, init=False, repr=False)
    _challenge_checked: bool = field(default=False, init=False, repr=False)

    # ------------------------- auth -------------------------

    def get_token(self, repository: str) -> Optional[str]:
        """Exchange anonymous credentials for a pull token; ``None`` if the registry is open."""

        if self.auth_url:
            realm, service = self.auth_url, self.auth_service
        else:
            challenge = self._discover_challenge()
            if challenge is None:
                return None
            realm, service = challenge

        params = {"scope": f"repository:{repository}:pull"}
        if service:
            params["service"] = service
        resp = self._request("GET", realm, params=params, error_cls=RegistryAuthError)
        try:
            payload = resp.json()
        except ValueError as exc:
            raise RegistryAuthError(f"token endpoint {realm} returned invalid JSON") from exc
        if not isinstance(payload, dict):
            raise RegistryAuthError(f"token endpoint {realm} returned {type(payload).__name__}")
        token = payload.get("token") or payload.get("access_token")
        if not token:
            raise RegistryAuthError(f"token endpoint {realm} returned no token")
        return str(token)

    def _discover_challenge(self) -> Optional[Tuple[str, Optional[str]]]:
        if not self._challenge_checked:
            resp = self._request("GET", "/v2/", ok_statuses=(200, 401), error_cls=RegistryAuthError)
            if resp.status_code == 401:
                self._challenge = parse_bearer_challenge(resp.headers.get("WWW-Authenticate", ""))
            self._challenge_checked = True
        return self._challenge

    @staticmethod
    def auth_headers(token: Optional[str]) -> dict[str, str]:
        return {"Authorization": f"Bearer {token}"} if token else {}

    # ------------------------- content -------------------------

    def get_manifest(
        self,
        repository: str,
        reference: str,
        accept: Sequence[str],
        token: Optional[str] = None,
    ) -> Manifest:
        headers = {"Accept": ", ".join(accept), **self.auth_headers(token)}
        path = f"/v2/{repository}/manifests/{reference}"
        resp = self._request("GET", path, headers=headers)
        try:
            payload = resp.json()
        except ValueError as exc:
            raise RegistryError(f"manifest {repository}:{reference} is not JSON") from exc
        if not isinstance(payload, dict):
            raise RegistryError(f"manifest {repository}:{reference} is not a JSON object")
        return parse_manifest(payload, resp.headers.get("Content-Type"))

    def list_tags(self, repository: str, token: Optional[str] = None) -> list[str]:
        """All tags, de-duplicated and naturally ordered (``3.9`` before ``3.10``)."""

        headers = self.auth_headers(token)
        url: Optional[str] = self._url(f"/v2/{repository}/tags/list")
        found: set[str] = set()
        visited: set[str] = set()
        while url and url not in visited:
            visited.add(url)
            resp = self._request("GET", url, headers=headers)
            try:
                payload = resp.json()
            except ValueError as exc:
                raise RegistryError(f"tag list for {repository} is not JSON") from exc
            tags = payload.get("tags") if isinstance(payload, dict) else None
            found.update(str(tag) for tag in tags or [])
            next_link = resp.links.get("next", {}).get("url")
            url = self._url(next_link) if next_link else None
        if url:
            log.warning("tag list for %s repeats page %s, stopping", repository, url)
        return sorted(found, key=lambda tag: (natural_key(tag), tag))

    def blob_url(self, repository: str, digest: str) -> str:
        return self._url(f"/v2/{repository}/blobs/{digest}")


def client_for_registry(
    registry: Optional[str],
    *,
    default_registry: str = DEFAULT_REGISTRY,
    auth_url: Optional[str] = DEFAULT_AUTH_URL,
    auth_service: Optional[str] = DEFAULT_AUTH_SERVICE,
    timeout: float = 30.0,
    session=None,
) -> ImageRegistryClient:
    """Client for the reference's registry host, or the configured default one."""

    if registry is None:
        return ImageRegistryClient(
            base_url=default_registry,
            timeout=timeout,
            session=session,
            auth_url=auth_url,
            auth_service=auth_service,
        )
    scheme = "http" if registry.startswith(("localhost", "127.0.0.1")) else "https"
    return ImageRegistryClient(
        base_url=f"{scheme}://{registry}",
        timeout=timeout,
        session=session,
        auth_url=None,
        auth_service=None,
    )
