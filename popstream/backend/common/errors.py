from __future__ import annotations



class PopstreamError(Exception):
    """Base for all popstream exceptions."""


class ConfigError(PopstreamError):
    """Configuration related issues."""


class TaskError(PopstreamError):
    """Task scheduling/execution issues."""


class ProviderError(PopstreamError):
    """Metadata, torrent, subtitle or device-discovery provider issues."""


class InvalidSelection(PopstreamError, ValueError):
    """Raised synchronously for bad mode, scope or backend parameters."""


class BackendDispatchError(PopstreamError):
    """A playback backend could not be resolved or constructed."""
