"""
Image scanning and decoding.

This module provides the :class:`Photo` handle passed through the
clustering pass, plus helpers to iterate over all image files in a directory
tree, decode them with OpenCV and optionally compute perceptual hashes to
skip duplicates.  It is intentionally kept decoupled from the detection and
clustering logic: library callers can build :class:`Photo` objects from any
pixel source.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Optional

import cv2
import imagehash
import numpy as np
from PIL import Image

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".bmp", ".webp")


@dataclass(eq=False)
class Photo:
    """A decoded photo.

    Photos compare and hash by identity: two photos decoded from the same
    file are distinct entries and both count as sources of a cluster.

    Attributes
    ----------
    pixels: ndarray, shape (height, width[, channels])
        Image data in OpenCV's BGR channel order.
    path: Path, optional
        File the photo was read from, if any.
    """
    pixels: np.ndarray
    path: Optional[Path] = None

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    def __repr__(self) -> str:
        where = f" {self.path}" if self.path is not None else ""
        return f"<Photo{where} {self.width}x{self.height}>"


def iter_image_paths(root: Path) -> Iterator[Path]:
    """Yield all files under ``root`` that have an image-like extension.

    Paths are yielded in sorted order so repeated runs over the same folder
    process photos in the same order.
    """
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames.sort()
        for fn in sorted(filenames):
            if fn.lower().endswith(IMAGE_EXTENSIONS):
                yield Path(dirpath) / fn


def load_photo(path: Path) -> Optional[Photo]:
    """Decode an image file, returning ``None`` if OpenCV cannot read it."""
    pixels = cv2.imread(str(path), cv2.IMREAD_COLOR)
    if pixels is None:
        return None
    return Photo(pixels=pixels, path=path)


def perceptual_hash(photo: Photo) -> str:
    """Return the hexadecimal perceptual hash of a photo."""
    rgb = cv2.cvtColor(photo.pixels, cv2.COLOR_BGR2RGB)
    return str(imagehash.phash(Image.fromarray(rgb)))


def scan_photos(root: Path, use_phash: bool = False) -> Iterator[Photo]:
    """Iterate over the photos found under ``root``.

    Files that cannot be decoded are logged and skipped.  With ``use_phash``
    a photo whose perceptual hash was already seen is skipped as well.
    """
    seen_hashes = set()
    for path in iter_image_paths(root):
        photo = load_photo(path)
        if photo is None:
            logger.warning("Skipping unreadable image %s", path)
            continue
        if use_phash:
            phash = perceptual_hash(photo)
            if phash in seen_hashes:
                logger.info("Skipping duplicate image %s", path)
                continue
            seen_hashes.add(phash)
        yield photo
