"""
Command-line entry point for the photoface clustering tool.

This module parses command line arguments, constructs a :class:`RunConfig`
object, configures logging and dispatches to the pipeline runner.
"""

from __future__ import annotations

import logging
import sys

from .config import parse_args
from .errors import FaceClusterError
from .pipeline import run_pipeline

logger = logging.getLogger("photoface_cluster")


def _gpu_preflight() -> None:
    """Best-effort check for ONNX Runtime GPU availability and provide guidance.

    This does not stop execution; it only warns when CUDA is not available so
    users know how to enable GPU acceleration.
    """
    try:
        import onnxruntime as ort
    except ImportError:
        # ONNX Runtime not importable; the embedder will report it.
        return
    if "CUDAExecutionProvider" not in ort.get_available_providers():
        msg = (
            "GPU not detected by ONNX Runtime; falling back to CPU.\n"
            "To enable GPU: uninstall CPU onnxruntime and install CUDA build:\n"
            "  pip uninstall -y onnxruntime && pip install onnxruntime-gpu\n"
            "Verify with: python -c 'import onnxruntime as o; print(o.get_available_providers())'"
        )
        print(msg, file=sys.stderr)


def main(argv: list[str] | None = None) -> int:
    """Entry point called by the ``photoface`` script."""
    cfg = parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, cfg.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    _gpu_preflight()
    try:
        album_path = run_pipeline(cfg)
    except FaceClusterError as exc:
        logger.error("Run failed: %s", exc)
        if exc.__cause__ is not None:
            logger.debug("Caused by", exc_info=exc.__cause__)
        return 1
    print(album_path)
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
