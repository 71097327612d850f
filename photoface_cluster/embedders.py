"""
Face detector and embedding model wrappers.

This module abstracts away the details of loading and running the external
models used by the clustering pass.  The pass needs two capabilities:

- a :class:`FaceLocalizer`, whose :meth:`~FaceLocalizer.detect` returns the
  bounding boxes of the faces in a photo, in detector order;
- a :class:`FaceEmbedder`, whose :meth:`~FaceEmbedder.embed` turns a face
  crop into a fixed-length vector.

Models are loaded once in the constructor, reused for every call and
released by :meth:`close`.  Both base classes are context managers, so the
command line tool owns exactly one instance of each per run.

By default faces are found with OpenCV's bundled Haar cascade and embedded
with a FaceNet model exported to ONNX (128-d, 160x160 input).  InsightFace
can be used for either role when the optional ``insightface`` extra is
installed.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

import cv2
import numpy as np

from .errors import DimensionMismatch
from .faces import BoundingBox, FaceCrop
from .images import Photo

logger = logging.getLogger(__name__)


def _onnx_providers(use_gpu: bool) -> List[str]:
    """Return ONNX Runtime execution providers, preferring CUDA when present."""
    if not use_gpu:
        return ["CPUExecutionProvider"]
    try:
        import onnxruntime as ort
    except ImportError:
        return ["CPUExecutionProvider"]
    if "CUDAExecutionProvider" in ort.get_available_providers():
        return ["CUDAExecutionProvider", "CPUExecutionProvider"]
    return ["CPUExecutionProvider"]


class FaceLocalizer:
    """Base class for face detectors."""

    def detect(self, image: Photo) -> List[BoundingBox]:
        """Return the boxes of the faces found in ``image``.

        Boxes may reach outside the photo.  An empty list means no face.
        Subclasses must implement this method.
        """
        raise NotImplementedError

    def close(self) -> None:
        """Release the underlying model."""

    def __enter__(self):
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class FaceEmbedder:
    """Base class for embedding models.

    ``embedding_dim`` is the length of the vectors returned by
    :meth:`embed`.
    """

    embedding_dim: Optional[int] = None

    def embed(self, crop: FaceCrop) -> np.ndarray:
        """Return the embedding of a face crop.

        Must be deterministic for identical pixels.  Subclasses must
        implement this method.
        """
        raise NotImplementedError

    def close(self) -> None:
        """Release the underlying model."""

    def __enter__(self):
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class HaarCascadeLocalizer(FaceLocalizer):
    """Frontal face detector based on the Haar cascades shipped with OpenCV.

    Parameters
    ----------
    min_face_size: int
        Minimum side length (in pixels) of detected faces.
    scale_factor, min_neighbors:
        Passed to :meth:`cv2.CascadeClassifier.detectMultiScale`.
    cascade_file: str
        Cascade file name inside ``cv2.data.haarcascades``.
    """

    def __init__(self, min_face_size: int = 40, scale_factor: float = 1.1, min_neighbors: int = 5,
                 cascade_file: str = "haarcascade_frontalface_default.xml") -> None:
        cascade_path = Path(cv2.data.haarcascades) / cascade_file
        self.detector = cv2.CascadeClassifier(str(cascade_path))
        if self.detector.empty():
            raise RuntimeError(f"Could not load Haar cascade from {cascade_path}")
        self.min_face_size = min_face_size
        self.scale_factor = scale_factor
        self.min_neighbors = min_neighbors

    def detect(self, image: Photo) -> List[BoundingBox]:
        pixels = image.pixels
        gray = cv2.cvtColor(pixels, cv2.COLOR_BGR2GRAY) if pixels.ndim == 3 else pixels
        faces = self.detector.detectMultiScale(
            gray,
            scaleFactor=self.scale_factor,
            minNeighbors=self.min_neighbors,
            minSize=(self.min_face_size, self.min_face_size),
        )
        return [BoundingBox(int(x), int(y), int(x + w), int(y + h)) for (x, y, w, h) in faces]

    def close(self) -> None:
        self.detector = None


class InsightFaceLocalizer(FaceLocalizer):
    """Wrapper around the detection module of InsightFace ``FaceAnalysis``.

    Parameters
    ----------
    pack: str
        Name of the InsightFace model package, ``"buffalo_l"`` by default.
    min_face_size: int
        Minimum side length (in pixels) of detected faces.  Smaller faces
        are filtered out.
    use_gpu: bool
        Whether to use CUDA if available; falls back to CPU otherwise.
    """

    def __init__(self, pack: str = "buffalo_l", min_face_size: int = 40, use_gpu: bool = True) -> None:
        try:
            from insightface.app import FaceAnalysis
        except ImportError as e:
            raise RuntimeError("InsightFace is not installed.  Install the optional dependency insightface.") from e
        self.app = FaceAnalysis(name=pack, allowed_modules=["detection"], providers=_onnx_providers(use_gpu))
        self.app.prepare(ctx_id=0 if use_gpu else -1, det_size=(640, 640))
        self.min_face_size = min_face_size

    def detect(self, image: Photo) -> List[BoundingBox]:
        boxes: List[BoundingBox] = []
        for f in self.app.get(image.pixels):
            x1, y1, x2, y2 = (int(round(float(v))) for v in f.bbox)
            # Filter by face size
            if min(x2 - x1, y2 - y1) < self.min_face_size:
                continue
            boxes.append(BoundingBox(x1, y1, x2, y2))
        return boxes

    def close(self) -> None:
        self.app = None


class OnnxFaceNetEmbedder(FaceEmbedder):
    """FaceNet embedding model run with ONNX Runtime.

    The crop is resized to ``input_size`` x ``input_size``, converted to RGB
    and standardised per image (zero mean, unit variance) before inference.

    Parameters
    ----------
    model_path: Path
        ONNX export of a FaceNet model taking a ``(1, H, W, 3)`` or
        ``(1, 3, H, W)`` float input.
    input_size: int
        Side length of the model input.
    embedding_dim: int
        Expected length of the model output.
    use_gpu: bool
        Whether to use CUDA if available; falls back to CPU otherwise.
    """

    def __init__(self, model_path: Path, input_size: int = 160, embedding_dim: int = 128,
                 use_gpu: bool = True) -> None:
        import onnxruntime as ort
        self.session = ort.InferenceSession(str(model_path), providers=_onnx_providers(use_gpu))
        model_input = self.session.get_inputs()[0]
        self.input_name = model_input.name
        # NCHW models put the channel axis second
        shape = list(model_input.shape)
        self.channels_first = len(shape) == 4 and shape[1] == 3
        self.input_size = input_size
        self.embedding_dim = embedding_dim

    def preprocess(self, pixels: np.ndarray) -> np.ndarray:
        if pixels.ndim == 2:
            pixels = cv2.cvtColor(pixels, cv2.COLOR_GRAY2BGR)
        face = cv2.resize(pixels, (self.input_size, self.input_size), interpolation=cv2.INTER_LINEAR)
        face = cv2.cvtColor(face, cv2.COLOR_BGR2RGB).astype(np.float32)
        std = max(float(face.std()), 1.0 / np.sqrt(face.size))
        face = (face - face.mean()) / std
        if self.channels_first:
            face = face.transpose(2, 0, 1)
        return face[np.newaxis, ...]

    def embed(self, crop: FaceCrop) -> np.ndarray:
        outputs = self.session.run(None, {self.input_name: self.preprocess(crop.pixels)})
        embedding = np.asarray(outputs[0], dtype=np.float32).reshape(-1)
        if embedding.shape[0] != self.embedding_dim:
            raise DimensionMismatch(self.embedding_dim, embedding.shape[0])
        return embedding

    def close(self) -> None:
        self.session = None


class InsightFaceEmbedder(FaceEmbedder):
    """Wrapper around the recognition module of InsightFace ``FaceAnalysis``.

    The ArcFace model resizes the crop itself.  Embeddings are 512-d for the
    bundled packages.
    """

    embedding_dim = 512

    def __init__(self, pack: str = "buffalo_l", use_gpu: bool = True) -> None:
        try:
            from insightface.app import FaceAnalysis
        except ImportError as e:
            raise RuntimeError("InsightFace is not installed.  Install the optional dependency insightface.") from e
        app = FaceAnalysis(name=pack, allowed_modules=["detection", "recognition"],
                           providers=_onnx_providers(use_gpu))
        app.prepare(ctx_id=0 if use_gpu else -1, det_size=(640, 640))
        self.model = app.models["recognition"]

    def embed(self, crop: FaceCrop) -> np.ndarray:
        pixels = crop.pixels
        if pixels.ndim == 2:
            pixels = cv2.cvtColor(pixels, cv2.COLOR_GRAY2BGR)
        return np.asarray(self.model.get_feat(pixels), dtype=np.float32).reshape(-1)

    def close(self) -> None:
        self.model = None


def get_localizer(name: str, min_face_size: int = 40, pack: str = "buffalo_l",
                  use_gpu: bool = True) -> FaceLocalizer:
    """Factory function returning a face detector given its name."""
    name = name.lower()
    if name == "haar":
        return HaarCascadeLocalizer(min_face_size=min_face_size)
    elif name == "insightface":
        return InsightFaceLocalizer(pack=pack, min_face_size=min_face_size, use_gpu=use_gpu)
    raise ValueError(f"Unknown face localizer: {name}")


def get_embedder(name: str, model_path: Optional[Path] = None, input_size: int = 160,
                 embedding_dim: Optional[int] = None, pack: str = "buffalo_l",
                 use_gpu: bool = True) -> FaceEmbedder:
    """Factory function returning an embedding model given its name."""
    name = name.lower()
    if name == "facenet":
        if model_path is None:
            raise ValueError("The FaceNet embedder needs a model path")
        return OnnxFaceNetEmbedder(model_path, input_size=input_size,
                                   embedding_dim=embedding_dim or 128, use_gpu=use_gpu)
    elif name == "insightface":
        return InsightFaceEmbedder(pack=pack, use_gpu=use_gpu)
    raise ValueError(f"Unknown face embedder: {name}")
