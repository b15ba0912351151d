"""
Exception hierarchy shared by the fetcher, the index store and the syncer.
"""
from __future__ import annotations


class AurMirrorError(Exception):
    """Base class for all errors raised by aur-mirror-meta."""


class TransportError(AurMirrorError):
    """Network or HTTP failure talking to the upstream mirror."""


class FetchError(TransportError):
    """The upstream could not be reached or returned an unusable response."""


class UpstreamError(TransportError):
    """The upstream answered with an error that carries no retry signal."""


class StorageError(AurMirrorError):
    """A read or write against the index database failed."""


class ConfigError(AurMirrorError):
    """Required configuration (database path, config file location) is missing."""
