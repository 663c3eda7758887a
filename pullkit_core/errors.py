"""Typed pullkit errors."""

from __future__ import annotations


class PullkitError(RuntimeError):
    """Base pullkit error."""


class ConfigError(PullkitError):
    """A setting could not be parsed."""


class RegistryError(PullkitError):
    """Registry request failed or returned an unusable payload."""


class RegistryAuthError(RegistryError):
    """Token exchange with the registry failed."""


class TransferError(PullkitError):
    """Streaming a blob to disk failed."""


class NotFoundError(PullkitError):
    """Nothing matched the requested artifact."""


class VersionNotFoundError(NotFoundError):
    """No published version satisfies a range."""

    def __init__(self, name: str, requested: str) -> None:
        super().__init__(f"no version of {name} satisfies {requested!r}")
        self.name = name
        self.requested = requested


class TagNotFoundError(NotFoundError):
    """The image repository has no tags."""


class UnsupportedManifestError(PullkitError):
    """Manifest media type is not one pullkit can assemble."""

    def __init__(self, media_type: str | None) -> None:
        super().__init__(f"unsupported manifest media type: {media_type or '<missing>'}")
        self.media_type = media_type


class InvalidReferenceError(PullkitError, ValueError):
    """User supplied an empty or malformed identifier."""


class InvalidRangeError(PullkitError, ValueError):
    """A semantic version range could not be parsed."""


class SelectionAbortedError(PullkitError):
    """Input ended before the user made a choice."""
