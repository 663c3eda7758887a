"""Core runtime pieces shared by the pullkit acquisition engines."""

from .config import PullSettings, SettingsResolver, load_settings
from .errors import (
    ConfigError,
    InvalidRangeError,
    InvalidReferenceError,
    NotFoundError,
    PullkitError,
    RegistryAuthError,
    RegistryError,
    SelectionAbortedError,
    TagNotFoundError,
    TransferError,
    UnsupportedManifestError,
    VersionNotFoundError,
)
from .events import Event, EventBus
from .http import HttpClient, build_session
from .paths import UserDirs
from .transfer import BlobStreamer, ProgressWriter

__all__ = [
    "BlobStreamer",
    "ConfigError",
    "Event",
    "EventBus",
    "HttpClient",
    "InvalidRangeError",
    "InvalidReferenceError",
    "NotFoundError",
    "ProgressWriter",
    "PullSettings",
    "PullkitError",
    "RegistryAuthError",
    "RegistryError",
    "SelectionAbortedError",
    "SettingsResolver",
    "TagNotFoundError",
    "TransferError",
    "UnsupportedManifestError",
    "UserDirs",
    "VersionNotFoundError",
    "build_session",
    "load_settings",
]
