"""
Online clustering of face embeddings into identities.

Faces arrive one at a time.  Each face is compared, in cluster creation
order, with the embedding of every cluster found so far and joins the first
cluster whose cosine similarity is above the threshold.  When nothing
matches, the face starts a new cluster and becomes its representative.

The policy is greedy and order sensitive on purpose:

- the first matching cluster wins, even when a later cluster is more
  similar;
- a cluster's embedding is the one of the face that created it and is never
  averaged or updated;
- the list of source photos of a cluster only grows, and a photo appears
  once per matching face, so a photo holding two faces of the same person
  is listed twice.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from .config import DEFAULT_SIMILARITY_THRESHOLD
from .errors import DimensionMismatch
from .faces import FaceCrop
from .images import Photo

logger = logging.getLogger(__name__)

ClusterId = int


def _as_vector(embedding) -> np.ndarray:
    vec = np.asarray(embedding, dtype=np.float64)
    if vec.ndim != 1:
        raise DimensionMismatch(1, vec.ndim, f"embedding must be one-dimensional, got shape {vec.shape}")
    return vec


def cosine_similarity(a, b) -> float:
    """Cosine similarity ``dot(a, b) / (|a| * |b|)`` of two embeddings.

    Embeddings need not be normalised.  A zero vector has no direction and
    is given a similarity of ``0.0`` with anything.

    Raises
    ------
    DimensionMismatch
        If the embeddings have different lengths.
    """
    va = _as_vector(a)
    vb = _as_vector(b)
    if va.shape[0] != vb.shape[0]:
        raise DimensionMismatch(va.shape[0], vb.shape[0])
    denom = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if denom == 0.0:
        return 0.0
    return float(np.dot(va, vb) / denom)


@dataclass(eq=False)
class Cluster:
    """One identity: the face that founded it and every photo it was seen in."""
    cluster_id: ClusterId
    representative: FaceCrop
    embedding: np.ndarray
    source_images: List[Photo] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.source_images)


class ClusterStore:
    """Insertion-ordered collection of clusters for a single run.

    Parameters
    ----------
    similarity_threshold: float
        A face joins a cluster when the similarity is strictly above this.
    embedding_dim: int, optional
        Required embedding length.  When ``None`` the first stored embedding
        fixes the length for the rest of the run.
    """

    def __init__(self, similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
                 embedding_dim: Optional[int] = None) -> None:
        self.similarity_threshold = similarity_threshold
        self.embedding_dim = embedding_dim
        self._clusters: List[Cluster] = []
        # Scan and insert form one step; see match_or_create.
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._clusters)

    def __iter__(self):
        return iter(self._clusters)

    def __getitem__(self, cluster_id: ClusterId) -> Cluster:
        return self._clusters[cluster_id]

    @property
    def clusters(self) -> Tuple[Cluster, ...]:
        return tuple(self._clusters)

    def _check_dimension(self, vec: np.ndarray) -> None:
        expected = self.embedding_dim
        if expected is None and self._clusters:
            expected = self._clusters[0].embedding.shape[0]
        if expected is not None and vec.shape[0] != expected:
            raise DimensionMismatch(expected, vec.shape[0])

    def find_match(self, embedding) -> Optional[ClusterId]:
        """Return the first cluster whose similarity exceeds the threshold.

        Clusters are scanned in creation order and the scan stops at the
        first hit, so a later and more similar cluster is never considered.
        """
        vec = _as_vector(embedding)
        self._check_dimension(vec)
        for cluster in self._clusters:
            if cosine_similarity(cluster.embedding, vec) > self.similarity_threshold:
                return cluster.cluster_id
        return None

    def match_or_create(self, crop: FaceCrop, embedding, source_image: Photo) -> ClusterId:
        """Assign a face to a cluster and record the photo it came from.

        Parameters
        ----------
        crop: FaceCrop
            The face; kept as representative if it founds a new cluster.
        embedding: array-like
            Embedding of ``crop``.
        source_image: Photo
            Photo the face was found in.  Appended to the matched cluster's
            sources even if already listed.

        Returns
        -------
        int
            Id of the matched or newly created cluster.

        Raises
        ------
        DimensionMismatch
            If the embedding length differs from the run's embedding length.
            The store is left unchanged.
        """
        vec = _as_vector(embedding)
        with self._lock:
            cluster_id = self.find_match(vec)
            if cluster_id is not None:
                self._clusters[cluster_id].source_images.append(source_image)
                return cluster_id
            cluster_id = len(self._clusters)
            self._clusters.append(Cluster(
                cluster_id=cluster_id,
                representative=crop,
                embedding=vec.copy(),
                source_images=[source_image],
            ))
        logger.debug("New cluster %d founded by %r", cluster_id, crop)
        return cluster_id

    def representatives(self) -> List[FaceCrop]:
        return representatives(self._clusters)

    def images_by_face(self) -> Dict[FaceCrop, List[Photo]]:
        return images_by_face(self._clusters)

    def images_by_cluster(self) -> Dict[ClusterId, List[Photo]]:
        return images_by_cluster(self._clusters)


def representatives(clusters: Sequence[Cluster]) -> List[FaceCrop]:
    """Representative faces, in cluster creation order."""
    return [c.representative for c in clusters]


def images_by_face(clusters: Sequence[Cluster]) -> Dict[FaceCrop, List[Photo]]:
    """Map each representative face to a copy of its cluster's photo list."""
    return {c.representative: list(c.source_images) for c in clusters}


def images_by_cluster(clusters: Sequence[Cluster]) -> Dict[ClusterId, List[Photo]]:
    """Map each cluster id to a copy of its cluster's photo list."""
    return {c.cluster_id: list(c.source_images) for c in clusters}


def assign_labels(clusters: Sequence[Cluster]) -> List[str]:
    """Assign canonical string labels (Person_0000, Person_0001, ...).

    Labels follow cluster creation order, so the person seen first in the
    collection is ``Person_0000``.
    """
    return [f"Person_{idx:04d}" for idx in range(len(clusters))]
