"""Shared ``requests`` plumbing for the registry clients."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence, Tuple

import requests
from requests import RequestException, Response

from .errors import RegistryError

log = logging.getLogger(__name__)

USER_AGENT = "pullkit/0.1.0"

Timeout = float | Tuple[float, float]


def build_session(headers: Mapping[str, str] | None = None) -> requests.Session:
    session = requests.Session()
    session.headers["User-Agent"] = USER_AGENT
    if headers:
        session.headers.update(headers)
    return session


def body_snippet(response: Response, max_chars: int = 200) -> str:
    compact = " ".join((response.text or "").split())
    return compact[:max_chars]


@dataclass
class HttpClient:
    """Base for JSON registry clients: one session, one timeout, typed failures."""

    base_url: str
    timeout: Timeout = 30.0
    session: requests.Session | None = field(default=None, repr=False)

    def __post_init__(self) -> None:
        self.base_url = self.base_url.rstrip("/")
        if self.session is None:
            self.session = build_session()

    def _url(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return f"{self.base_url}{path}"

    def _request(
        self,
        method: str,
        path: str,
        *,
        ok_statuses: Sequence[int] = tuple(range(200, 300)),
        error_cls: type[RegistryError] = RegistryError,
        **kwargs: Any,
    ) -> Response:
        url = self._url(path)
        log.debug("%s %s", method, url)
        try:
            resp = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except RequestException as exc:
            raise error_cls(f"{method} {url} failed: {exc}") from exc

        if resp.status_code not in ok_statuses:
            raise error_cls(f"{method} {url} returned {resp.status_code}: {body_snippet(resp)}")
        return resp

    def _get_json(self, path: str, **kwargs: Any) -> dict[str, Any]:
        resp = self._request("GET", path, **kwargs)
        try:
            payload = resp.json()
        except ValueError as exc:
            raise RegistryError(f"GET {self._url(path)} returned invalid JSON") from exc
        if not isinstance(payload, dict):
            raise RegistryError(f"GET {self._url(path)} returned {type(payload).__name__}, expected object")
        return payload
