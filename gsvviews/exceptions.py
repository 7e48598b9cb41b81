"""Exception hierarchy for gsvviews.

Tile-level errors are retried by the fetcher and end up as invalid tiles.
Scene-level errors stop one scene and are caught by the orchestrator.

Usage:
    from gsvviews.exceptions import NetworkError, GenerationUndetected

    raise NetworkError("HTTP 503")
    raise GenerationUndetected("no probe matched")
"""


class GSVViewsError(Exception):
    """Base exception for all gsvviews errors."""
    pass


class TileError(GSVViewsError):
    """Raised when a single tile cannot be used."""
    pass


class NetworkError(TileError):
    """Raised on transport failures, timeouts and non-200 responses."""
    pass


class DecodeError(TileError):
    """Raised when a tile body is empty or not a decodable image."""
    pass


class ValidityError(TileError):
    """Raised when a tile decodes but is (near) uniformly black."""
    pass


class SceneError(GSVViewsError):
    """Raised when a scene cannot continue through the pipeline."""
    pass


class GenerationUndetected(SceneError):
    """Raised when every generation probe fails for a scene."""
    pass


class AssemblyFailure(SceneError):
    """Raised when no valid tile is available to build a panorama."""
    pass


class ConfigurationError(GSVViewsError):
    """Raised when run configuration is invalid."""
    pass
