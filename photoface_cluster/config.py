"""
Configuration structures for the photoface clustering tool.

We use :class:`dataclasses.dataclass` to describe the tunable parameters.
:class:`ClusterConfig` holds the few knobs of the clustering pass itself and
is all a library caller needs.  :class:`RunConfig` wraps it together with
the input/output settings of the command line tool.

The :func:`parse_args` function converts command line arguments into a
:class:`RunConfig` instance.
"""

from __future__ import annotations

import argparse
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Dict, Any

from .errors import ConfigError

DEFAULT_SIMILARITY_THRESHOLD = 0.6
DEFAULT_EMBEDDING_DIM = 128
DEFAULT_INPUT_SIZE = 160


@dataclass
class ClusterConfig:
    """Parameters of a single clustering pass.

    Attributes
    ----------
    similarity_threshold: float
        A face joins the first existing cluster whose representative
        embedding has a cosine similarity strictly above this value.
    embedding_dim: int, optional
        Expected embedding length.  Every embedding is checked against it;
        ``None`` checks only that all embeddings of a run agree.
    input_size: int
        Side length of the square crop fed to the embedding model.  Only the
        embedder consumes it; the clustering pass itself does not resize.
    strict_crops: bool
        Raise :class:`~photoface_cluster.errors.InvalidCropRegion` for a box
        that is empty once clamped to the image, instead of skipping it.
    """
    similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD
    embedding_dim: Optional[int] = DEFAULT_EMBEDDING_DIM
    input_size: int = DEFAULT_INPUT_SIZE
    strict_crops: bool = False

    def validate(self) -> "ClusterConfig":
        if not -1.0 <= self.similarity_threshold <= 1.0:
            raise ConfigError(f"similarity_threshold must lie in [-1, 1], got {self.similarity_threshold}")
        if self.embedding_dim is not None and self.embedding_dim <= 0:
            raise ConfigError(f"embedding_dim must be positive, got {self.embedding_dim}")
        if self.input_size <= 0:
            raise ConfigError(f"input_size must be positive, got {self.input_size}")
        return self


@dataclass
class RunConfig:
    """Parameters controlling a command line run.

    Attributes
    ----------
    input_dir: Path
        Directory containing photos to process, scanned recursively in
        sorted path order.
    output_root: Path
        Directory where the HTML album and the cluster table are written.
    localizer_name: str
        Face detector, ``"haar"`` (OpenCV cascade, the default) or
        ``"insightface"``.
    embedder_name: str
        Embedding model, ``"facenet"`` (ONNX FaceNet, needs ``model_path``)
        or ``"insightface"``.
    model_path: Path, optional
        ONNX model file for the FaceNet embedder.
    insightface_pack: str
        InsightFace model package name used by the InsightFace detector and
        embedder.
    min_face_size: int
        Detected faces with a side shorter than this are discarded.
    cluster: ClusterConfig
        Parameters of the clustering pass.
    use_phash: bool
        Skip photos whose perceptual hash was already seen.
    thumbs_size: int
        Maximum side length of album thumbnails.
    thumbs_workers: int
        Number of threads used to generate thumbnails.
    table_name: str
        File name of the cluster table written under ``output_root``;
        ``.parquet`` or ``.csv``.
    log_level: str
        Logging level for the command line tool.
    command_line: str, optional
        Original command line invocation.
    """
    input_dir: Path
    output_root: Path
    localizer_name: str = "haar"
    embedder_name: str = "facenet"
    model_path: Optional[Path] = None
    insightface_pack: str = "buffalo_l"
    min_face_size: int = 40
    cluster: ClusterConfig = field(default_factory=ClusterConfig)
    use_phash: bool = False
    thumbs_size: int = 420
    thumbs_workers: int = 4
    table_name: str = "clusters.parquet"
    log_level: str = "INFO"
    command_line: Optional[str] = None
    # Additional fields can be stored as needed
    extra: Dict[str, Any] = field(default_factory=dict)


def parse_args(argv: Optional[list[str]] = None) -> RunConfig:
    """Parse command line arguments and return a :class:`RunConfig` instance.

    Parameters
    ----------
    argv: list of str, optional
        List of command line arguments.  If omitted, :mod:`sys.argv` will be
        used.  This parameter facilitates testing.

    Returns
    -------
    RunConfig
        Populated configuration object.
    """
    parser = argparse.ArgumentParser(
        prog="photoface",
        description="Group photos by the people appearing in them",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("--input", dest="input_dir", type=Path, required=True,
                        help="Path to input folder containing images")
    parser.add_argument("--output", dest="output_root", type=Path, required=True,
                        help="Output folder for the album and cluster table")
    parser.add_argument("--localizer", dest="localizer_name", type=str, default="haar",
                        choices=["haar", "insightface"],
                        help="Face detector to use")
    parser.add_argument("--embedder", dest="embedder_name", type=str, default="facenet",
                        choices=["facenet", "insightface"],
                        help="Embedding model to use")
    parser.add_argument("--model-path", dest="model_path", type=Path, default=None,
                        help="ONNX FaceNet model file (required with --embedder facenet)")
    parser.add_argument("--insightface-pack", dest="insightface_pack", type=str, default="buffalo_l",
                        help="InsightFace model package name")
    parser.add_argument("--min-face-size", dest="min_face_size", type=int, default=40,
                        help="Discard faces smaller than this many pixels")
    parser.add_argument("--similarity-threshold", dest="similarity_threshold", type=float,
                        default=DEFAULT_SIMILARITY_THRESHOLD,
                        help="Cosine similarity above which a face joins an existing cluster")
    parser.add_argument("--embedding-dim", dest="embedding_dim", type=int, default=None,
                        help="Expected embedding length (defaults to the embedder's own)")
    parser.add_argument("--input-size", dest="input_size", type=int, default=DEFAULT_INPUT_SIZE,
                        help="Square crop size fed to the FaceNet embedder (pixels)")
    parser.add_argument("--strict-crops", dest="strict_crops", action="store_true",
                        help="Fail on face boxes lying outside the image instead of skipping them")
    parser.add_argument("--use-phash", dest="use_phash", action="store_true",
                        help="Compute perceptual hashes of images to skip duplicates")
    parser.add_argument("--thumb-size", dest="thumbs_size", type=int, default=420,
                        help="Maximum side length of generated thumbnails (pixels)")
    parser.add_argument("--thumbs-workers", dest="thumbs_workers", type=int, default=4,
                        help="Number of parallel workers for thumbnail generation")
    parser.add_argument("--table", dest="table_name", type=str, default="clusters.parquet",
                        help="File name of the cluster table (.parquet or .csv)")
    parser.add_argument("--log-level", dest="log_level", type=str, default="INFO",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
                        help="Logging verbosity")
    args = parser.parse_args(argv)

    if args.embedder_name == "facenet" and args.model_path is None:
        parser.error("--model-path must be provided with --embedder facenet")
    if not args.table_name.lower().endswith((".parquet", ".csv")):
        parser.error("--table must end with .parquet or .csv")

    cluster = ClusterConfig(
        similarity_threshold=args.similarity_threshold,
        embedding_dim=args.embedding_dim,
        input_size=args.input_size,
        strict_crops=args.strict_crops,
    )
    try:
        cluster.validate()
    except ConfigError as exc:
        parser.error(str(exc))

    return RunConfig(
        input_dir=args.input_dir,
        output_root=args.output_root,
        localizer_name=args.localizer_name,
        embedder_name=args.embedder_name,
        model_path=args.model_path,
        insightface_pack=args.insightface_pack,
        min_face_size=args.min_face_size,
        cluster=cluster,
        use_phash=args.use_phash,
        thumbs_size=args.thumbs_size,
        thumbs_workers=args.thumbs_workers,
        table_name=args.table_name,
        log_level=args.log_level,
        command_line=" ".join([parser.prog] + list(argv or [])),
    )
