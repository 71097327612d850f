"""
High-level orchestration of the photoface clustering pass.

:class:`FaceClusterer` drives one pass over an ordered sequence of photos:
for each photo it asks the detector for face boxes, cuts the faces out,
embeds them one by one and hands every embedding to a fresh
:class:`~photoface_cluster.clustering.ClusterStore`.  Work is strictly
sequential, because the store's first-match policy depends on the order in
which faces arrive.

:func:`cluster_in_background` runs a pass on a worker thread and delivers
the result once.  :func:`run_pipeline` is the command line flow: scan a
folder, cluster, then write the album and the cluster table.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from .clustering import Cluster, ClusterId, ClusterStore, images_by_cluster, images_by_face, representatives
from .config import ClusterConfig, RunConfig
from .embedders import FaceEmbedder, FaceLocalizer, get_embedder, get_localizer
from .errors import DetectionFailure, EmbeddingFailure, FaceClusterError
from .faces import FaceCrop, extract_faces
from .images import Photo, scan_photos

logger = logging.getLogger(__name__)


@dataclass
class ClusteringResult:
    """Outcome of one clustering pass.

    Attributes
    ----------
    clusters: tuple of Cluster
        Clusters in creation order.
    n_images: int
        Number of photos processed.
    n_faces: int
        Number of faces embedded and assigned to a cluster.
    cancelled: bool
        ``True`` when the pass was stopped before the last photo.  The
        clusters built so far are complete and consistent.
    """
    clusters: Tuple[Cluster, ...]
    n_images: int = 0
    n_faces: int = 0
    cancelled: bool = False

    @property
    def unique_faces(self) -> List[FaceCrop]:
        """One representative face per person, first seen first."""
        return representatives(self.clusters)

    @property
    def images_by_face(self) -> Dict[FaceCrop, List[Photo]]:
        """Photos of each person keyed by representative face, in append order."""
        return images_by_face(self.clusters)

    @property
    def images_by_cluster(self) -> Dict[ClusterId, List[Photo]]:
        return images_by_cluster(self.clusters)


class FaceClusterer:
    """Group faces across a photo collection into identities.

    Parameters
    ----------
    localizer: FaceLocalizer
        Face detector.  Its box order decides the order in which the faces
        of a photo are clustered.
    embedder: FaceEmbedder
        Embedding model; owned by the caller.
    config: ClusterConfig, optional
        Clustering parameters.
    """

    def __init__(self, localizer: FaceLocalizer, embedder: FaceEmbedder,
                 config: Optional[ClusterConfig] = None) -> None:
        self.localizer = localizer
        self.embedder = embedder
        self.config = (config or ClusterConfig()).validate()

    def cluster(self, images: Iterable[Photo],
                cancel_event: Optional[threading.Event] = None) -> ClusteringResult:
        """Cluster every face of ``images`` in a single pass.

        Photos are processed in the given order and the faces of a photo in
        detection order.  A new store is used for every call.

        Parameters
        ----------
        images: iterable of Photo
            Photos to process.
        cancel_event: threading.Event, optional
            Checked before each photo; once set, no further photo is
            processed and the partial result is returned with
            ``cancelled=True``.

        Raises
        ------
        DetectionFailure
            The detector raised for a photo.
        EmbeddingFailure
            The embedding model raised for a face.
        DimensionMismatch
            An embedding had an unexpected length.
        InvalidCropRegion
            A box was empty after clamping and ``strict_crops`` is set.
        """
        store = ClusterStore(
            similarity_threshold=self.config.similarity_threshold,
            embedding_dim=self.config.embedding_dim,
        )
        n_images = 0
        n_faces = 0
        cancelled = False
        for image_index, image in enumerate(images):
            if cancel_event is not None and cancel_event.is_set():
                logger.info("Clustering cancelled after %d images", n_images)
                cancelled = True
                break
            try:
                boxes = self.localizer.detect(image)
            except FaceClusterError:
                raise
            except Exception as exc:
                raise DetectionFailure(image, image_index) from exc
            crops = extract_faces(image, boxes, strict=self.config.strict_crops)
            for crop in crops:
                try:
                    embedding = self.embedder.embed(crop)
                except FaceClusterError:
                    # DimensionMismatch and friends keep their own type
                    raise
                except Exception as exc:
                    raise EmbeddingFailure(image, image_index, crop.index) from exc
                store.match_or_create(crop, embedding, image)
                n_faces += 1
            n_images += 1
        logger.info("Clustered %d faces from %d images into %d people", n_faces, n_images, len(store))
        return ClusteringResult(clusters=store.clusters, n_images=n_images, n_faces=n_faces,
                                cancelled=cancelled)


def cluster_in_background(clusterer: FaceClusterer, images: Iterable[Photo],
                          on_complete: Callable[[ClusteringResult], None],
                          on_error: Optional[Callable[[BaseException], None]] = None,
                          cancel_event: Optional[threading.Event] = None) -> threading.Thread:
    """Run :meth:`FaceClusterer.cluster` on a daemon thread.

    ``on_complete`` is called once with the full result.  If the pass or
    ``on_complete`` itself fails, ``on_error`` is called with the exception
    instead; without ``on_error`` the failure is logged.  Returns the started
    thread.
    """
    def _fail(exc: Exception) -> None:
        if on_error is None:
            logger.error("Background clustering failed", exc_info=exc)
        else:
            on_error(exc)

    def _work() -> None:
        try:
            result = clusterer.cluster(images, cancel_event=cancel_event)
        except Exception as exc:
            _fail(exc)
            return
        try:
            on_complete(result)
        except Exception as exc:
            _fail(exc)

    thread = threading.Thread(target=_work, name="photoface-cluster", daemon=True)
    thread.start()
    return thread


def run_pipeline(config: RunConfig) -> Path:
    """Cluster the photos of ``config.input_dir`` and write the outputs.

    Loads the detector and embedding model, runs one clustering pass over the
    photos in sorted path order, then writes the HTML album and the cluster
    table under ``config.output_root``.

    Parameters
    ----------
    config: RunConfig
        Configuration settings for this run.

    Returns
    -------
    Path
        Path of the album's top-level ``index.html``.
    """
    # Imported here so library users of FaceClusterer do not pull in pandas
    from .album import build_album
    from .export import write_cluster_table

    logger.info("Starting run over %s", config.input_dir)
    with get_localizer(config.localizer_name, min_face_size=config.min_face_size,
                       pack=config.insightface_pack) as localizer, \
            get_embedder(config.embedder_name, model_path=config.model_path,
                         input_size=config.cluster.input_size,
                         embedding_dim=config.cluster.embedding_dim,
                         pack=config.insightface_pack) as embedder:
        cluster_config = config.cluster
        if cluster_config.embedding_dim is None:
            cluster_config = replace(cluster_config, embedding_dim=embedder.embedding_dim)
        clusterer = FaceClusterer(localizer, embedder, cluster_config)
        result = clusterer.cluster(scan_photos(config.input_dir, use_phash=config.use_phash))

    config.output_root.mkdir(parents=True, exist_ok=True)
    table_path = config.output_root / config.table_name
    write_cluster_table(result, table_path)
    album_path = build_album(
        result,
        config.output_root,
        thumbs_size=config.thumbs_size,
        thumbs_workers=config.thumbs_workers,
    )
    logger.info("Wrote %s and %s", album_path, table_path)
    return album_path
