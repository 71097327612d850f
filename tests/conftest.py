from typing import Dict, List, Optional, Sequence

import numpy as np
import pytest

from photoface_cluster.embedders import FaceEmbedder, FaceLocalizer
from photoface_cluster.faces import BoundingBox
from photoface_cluster.images import Photo


DIM = 128


def unit(index: int, dim: int = DIM) -> np.ndarray:
    vec = np.zeros(dim, dtype=np.float32)
    vec[index] = 1.0
    return vec


def make_photo(width: int = 100, height: int = 80, faces: Sequence[tuple] = (), path=None) -> Photo:
    """Blank photo with each face box painted with its own gray level.

    ``faces`` holds ``(box, value)`` pairs; the fake embedder reads the
    value back from the crop's top-left pixel.
    """
    pixels = np.zeros((height, width, 3), dtype=np.uint8)
    for box, value in faces:
        left, top, right, bottom = box
        pixels[max(top, 0):max(bottom, 0), max(left, 0):max(right, 0)] = value
    return Photo(pixels=pixels, path=path)


class TableLocalizer(FaceLocalizer):
    """Returns the boxes registered for each photo, in registration order."""

    def __init__(self, boxes: Optional[Dict[Photo, List[BoundingBox]]] = None, fail_on=None, on_detect=None):
        self.boxes = boxes if boxes is not None else {}
        self.fail_on = fail_on
        self.on_detect = on_detect
        self.calls: List[Photo] = []
        self.closed = False

    def detect(self, image: Photo) -> List[BoundingBox]:
        self.calls.append(image)
        if self.on_detect is not None:
            self.on_detect(image)
        if image is self.fail_on:
            raise RuntimeError("detector exploded")
        return list(self.boxes.get(image, []))

    def close(self) -> None:
        self.closed = True


class PixelEmbedder(FaceEmbedder):
    """Maps the gray level of a crop to a registered embedding."""

    embedding_dim = DIM

    def __init__(self, vectors: Dict[int, np.ndarray], fail_on_value: Optional[int] = None):
        self.vectors = vectors
        self.fail_on_value = fail_on_value
        self.calls = 0

    def embed(self, crop) -> np.ndarray:
        self.calls += 1
        value = int(crop.pixels[0, 0, 0])
        if value == self.fail_on_value:
            raise RuntimeError("model exploded")
        return self.vectors[value]


@pytest.fixture
def vectors():
    # 10 and 11 are the same person, 20 is someone else
    return {
        10: unit(0),
        11: unit(0) * 3.0 + unit(1) * 0.1,
        20: unit(5),
        30: unit(9),
    }


@pytest.fixture
def embedder(vectors):
    return PixelEmbedder(vectors)


class ScenePhotos:
    """Builds photos together with the localizer table describing them."""

    def __init__(self):
        self.boxes: Dict[Photo, List[BoundingBox]] = {}

    def photo(self, *faces, width=100, height=80, path=None, extra_boxes=()) -> Photo:
        photo = make_photo(width, height, faces, path=path)
        self.boxes[photo] = [BoundingBox(*box) for box, _ in faces] + [BoundingBox(*b) for b in extra_boxes]
        return photo

    def localizer(self, **kwargs) -> TableLocalizer:
        return TableLocalizer(self.boxes, **kwargs)


@pytest.fixture
def scene():
    return ScenePhotos()
