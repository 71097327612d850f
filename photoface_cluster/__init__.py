"""
Top-level package for the photoface clustering tool.

Groups a photo collection by the people appearing in it: faces are detected
in each photo, embedded, and clustered online in a single greedy pass so
that every occurrence of a person lands in one cluster.

The functionality is organised into smaller modules:

- :mod:`photoface_cluster.config` – dataclasses for clustering and run configuration.
- :mod:`photoface_cluster.errors` – exception types of a clustering run.
- :mod:`photoface_cluster.images` – the :class:`Photo` handle and folder scanning.
- :mod:`photoface_cluster.faces` – bounding boxes and face crop extraction.
- :mod:`photoface_cluster.embedders` – face detector and embedding model wrappers.
- :mod:`photoface_cluster.clustering` – cosine similarity and the online cluster store.
- :mod:`photoface_cluster.pipeline` – orchestrates a clustering pass and a full run.
- :mod:`photoface_cluster.export` – Parquet/CSV cluster tables.
- :mod:`photoface_cluster.thumbnails` – thumbnails for HTML albums.
- :mod:`photoface_cluster.album` – building HTML albums from cluster results.

You can run the tool from the command line using the `photoface` script
installed by this package.
"""

from .clustering import Cluster, ClusterStore, cosine_similarity
from .config import ClusterConfig
from .errors import (
    DetectionFailure, DimensionMismatch, EmbeddingFailure, FaceClusterError, InvalidCropRegion,
)
from .faces import BoundingBox, FaceCrop, extract_faces
from .images import Photo
from .pipeline import ClusteringResult, FaceClusterer, cluster_in_background

__version__ = "0.1.0"

__all__ = [
    "BoundingBox",
    "Cluster",
    "ClusterConfig",
    "ClusterStore",
    "ClusteringResult",
    "DetectionFailure",
    "DimensionMismatch",
    "EmbeddingFailure",
    "FaceClusterError",
    "FaceClusterer",
    "FaceCrop",
    "InvalidCropRegion",
    "Photo",
    "cluster_in_background",
    "cosine_similarity",
    "extract_faces",
]
