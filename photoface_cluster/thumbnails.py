"""
Thumbnail generation.

To keep album pages light, each photo is shown through a resized JPEG
thumbnail.  Thumbnails preserve aspect ratio and are rendered from the
already decoded pixels, so photos that never came from a file can be shown
as well.  Generation runs in a thread pool and skips existing files unless
asked to regenerate.
"""

from __future__ import annotations

import concurrent.futures
import logging
from pathlib import Path
from typing import Iterable, Tuple

import cv2
import numpy as np
from PIL import Image

logger = logging.getLogger(__name__)


def to_pil(pixels: np.ndarray) -> Image.Image:
    """Convert OpenCV BGR (or grayscale) pixels to a Pillow image."""
    if pixels.ndim == 2:
        return Image.fromarray(pixels)
    return Image.fromarray(cv2.cvtColor(pixels, cv2.COLOR_BGR2RGB))


def _generate_thumbnail(pixels: np.ndarray, dst: Path, max_size: int) -> None:
    """Generate a thumbnail JPEG for a single image."""
    im = to_pil(pixels)
    im.thumbnail((max_size, max_size), Image.LANCZOS)
    dst.parent.mkdir(parents=True, exist_ok=True)
    im.save(dst, format="JPEG", quality=85, optimize=True, progressive=True)


def build_thumbnails(items: Iterable[Tuple[np.ndarray, Path]], max_size: int = 420,
                     workers: int = 4, regen: bool = False) -> int:
    """Generate thumbnails for a collection of pixels/destination pairs.

    Parameters
    ----------
    items: iterable of (pixels, dst)
        Decoded image data and the path where its thumbnail is stored.
    max_size: int
        Maximum dimension (width or height) of the generated thumbnail.
    workers: int
        Number of worker threads used for parallel thumbnail generation.
    regen: bool
        If False (default), skip creating thumbnails for which the dst file
        already exists.  If True, regenerate thumbnails unconditionally.

    Returns
    -------
    int
        Number of thumbnails that could not be written.
    """
    def work(pair: Tuple[np.ndarray, Path]) -> bool:
        pixels, dst = pair
        if not regen and dst.exists():
            return True
        try:
            _generate_thumbnail(pixels, dst, max_size)
        except OSError as exc:
            logger.warning("Could not write thumbnail %s: %s", dst, exc)
            return False
        return True

    # Convert items to list to avoid issues with multiple iteration
    pairs = list(items)
    if not pairs:
        return 0
    with concurrent.futures.ThreadPoolExecutor(max_workers=workers) as executor:
        ok = list(executor.map(work, pairs))
    return ok.count(False)
