"""
Face crops cut out of a photo.

The detector reports boxes in photo pixel coordinates, possibly reaching
outside the photo.  :func:`extract_faces` clamps each box to the photo and
copies the region out.  Boxes that are empty after clamping are skipped with
a warning, or rejected with :class:`InvalidCropRegion` when ``strict`` is
set.  No embedding work happens here.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, List, NamedTuple

import numpy as np

from .errors import InvalidCropRegion
from .images import Photo

logger = logging.getLogger(__name__)


class BoundingBox(NamedTuple):
    """Axis-aligned box ``[left, right) x [top, bottom)`` in pixels."""
    left: int
    top: int
    right: int
    bottom: int

    @property
    def width(self) -> int:
        return self.right - self.left

    @property
    def height(self) -> int:
        return self.bottom - self.top

    @property
    def is_empty(self) -> bool:
        return self.right <= self.left or self.bottom <= self.top


@dataclass(eq=False)
class FaceCrop:
    """Pixels of one detected face.

    Attributes
    ----------
    pixels: ndarray
        Copy of the clamped region of the source photo.
    box: BoundingBox
        The clamped region, in source photo coordinates.
    source: Photo
        Photo the face was cut from.
    index: int
        Position of the box in the detector output for ``source``.
    """
    pixels: np.ndarray
    box: BoundingBox
    source: Photo
    index: int

    def __repr__(self) -> str:
        return f"<FaceCrop #{self.index} {tuple(self.box)} of {self.source!r}>"


def clamp_box(box: BoundingBox, width: int, height: int) -> BoundingBox:
    """Clamp ``box`` to an image of the given size.

    The result may be empty when the box lies entirely outside the image.
    """
    left, top, right, bottom = (int(v) for v in box)
    return BoundingBox(max(left, 0), max(top, 0), min(right, width), min(bottom, height))


def extract_faces(image: Photo, boxes: Iterable[BoundingBox], strict: bool = False) -> List[FaceCrop]:
    """Cut the faces described by ``boxes`` out of ``image``.

    Parameters
    ----------
    image: Photo
        Photo the boxes were detected in.
    boxes: iterable of BoundingBox
        Detector output, in detection order.  Plain 4-tuples are accepted.
    strict: bool
        Raise :class:`InvalidCropRegion` for a box that is empty once
        clamped.  By default such boxes are skipped.

    Returns
    -------
    list of FaceCrop
        One crop per usable box, in the order of ``boxes``.
    """
    crops: List[FaceCrop] = []
    for index, raw in enumerate(boxes):
        box = BoundingBox(*raw)
        clamped = clamp_box(box, image.width, image.height)
        if clamped.is_empty:
            if strict:
                raise InvalidCropRegion(box, clamped)
            logger.warning("Skipping face %d of %r: box %s is empty inside the image", index, image, tuple(box))
            continue
        pixels = image.pixels[clamped.top:clamped.bottom, clamped.left:clamped.right].copy()
        crops.append(FaceCrop(pixels=pixels, box=clamped, source=image, index=index))
    return crops
