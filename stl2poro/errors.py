"""Exception hierarchy for stl2poro.

Every error raised by the pipeline derives from :class:`Stl2PoroError`, so a
caller can catch the whole family at once.  All of them are deterministic
input-validation failures; none are worth retrying.
"""

from __future__ import annotations


class Stl2PoroError(Exception):
    """Base class for all stl2poro errors."""


class InvalidGridParameters(Stl2PoroError, ValueError):
    """Degenerate grid extents, pitch axis or target cell count."""


class InvalidParameter(Stl2PoroError, ValueError):
    """A transform parameter lies outside its valid domain."""


class DimensionMismatch(Stl2PoroError):
    """A scalar array does not have one value per grid node."""


class MeshQueryFailure(Stl2PoroError):
    """The closest-distance query could not resolve a point."""


class ConfigError(Stl2PoroError, ValueError):
    """A configuration value is missing or malformed."""


class PipelineError(Stl2PoroError):
    """A pipeline stage failed; ``stage`` names which one."""

    def __init__(self, stage: str, message: str) -> None:
        super().__init__(f"{stage} stage failed: {message}")
        self.stage = stage
