"""
Exception types raised by the face clustering pass.

Every failure of a clustering run is fatal: the orchestrator never skips a
failing image or returns a partial result.  Failures coming from the
external detector or embedding model are wrapped in :class:`DetectionFailure`
or :class:`EmbeddingFailure` so the caller learns which image (and which
face) broke the run; the original exception stays available as
``__cause__``.
"""

from __future__ import annotations

from typing import Any, Optional


class FaceClusterError(Exception):
    """Base class for all errors raised by :mod:`photoface_cluster`."""


class ConfigError(FaceClusterError, ValueError):
    """Invalid configuration value."""


class DimensionMismatch(FaceClusterError, ValueError):
    """Two embeddings of different lengths were compared or stored."""

    def __init__(self, expected: int, actual: int, message: Optional[str] = None) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(message or f"embedding length mismatch: expected {expected}, got {actual}")


class InvalidCropRegion(FaceClusterError, ValueError):
    """A bounding box is empty once clamped to the image bounds."""

    def __init__(self, box: Any, clamped: Any) -> None:
        self.box = box
        self.clamped = clamped
        super().__init__(f"degenerate crop region {tuple(clamped)} (detected box {tuple(box)})")


class DetectionFailure(FaceClusterError):
    """The face localizer raised while processing an image."""

    def __init__(self, image: Any, image_index: int) -> None:
        self.image = image
        self.image_index = image_index
        super().__init__(f"face detection failed for image #{image_index} ({_describe(image)})")


class EmbeddingFailure(FaceClusterError):
    """The embedding model raised while processing a face crop."""

    def __init__(self, image: Any, image_index: int, crop_index: int) -> None:
        self.image = image
        self.image_index = image_index
        self.crop_index = crop_index
        super().__init__(
            f"embedding failed for face {crop_index} of image #{image_index} ({_describe(image)})"
        )


def _describe(image: Any) -> str:
    path = getattr(image, "path", None)
    return str(path) if path is not None else repr(image)
