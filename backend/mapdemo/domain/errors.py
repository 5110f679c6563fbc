from __future__ import annotations


class MapSessionError(RuntimeError):
    """Base class for every failure the session knows how to report."""

    kind = "error"


class NotFound(MapSessionError):
    """A search or resolution returned no candidates."""

    kind = "not_found"


class ServiceError(MapSessionError):
    """A provider or network failure, including timeouts."""

    kind = "service_error"


class MissingPrerequisite(MapSessionError):
    """A route was requested without a known location or destination."""

    kind = "missing_prerequisite"


class PermissionDenied(MapSessionError):
    """Location access was refused."""

    kind = "permission_denied"


class Stale(MapSessionError):
    """A result was dropped because a newer request was initiated after it."""

    kind = "stale"


class ProviderConfigurationError(ServiceError):
    """Raised when a provider cannot be configured with provided settings."""
