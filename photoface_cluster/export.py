"""
Tabular export of clustering results.

The cluster table has one row per (person, source photo occurrence): a
photo holding two faces of the same person produces two rows for that
person, mirroring the cluster's source list.  Rows are ordered by cluster
creation order, then by the order photos were appended to the cluster.

Tables are written with pandas, as Parquet (through PyArrow) or CSV
depending on the file suffix.  The representative embedding is included as
a list column in Parquet output only.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List

import pandas as pd
import pyarrow as pa
import pyarrow.parquet as pq

from .clustering import assign_labels
from .pipeline import ClusteringResult

COLUMNS = [
    "label", "cluster_id", "occurrence", "image_path",
    "rep_image_path", "rep_face_index",
    "rep_left", "rep_top", "rep_right", "rep_bottom",
    "n_occurrences",
]


def cluster_frame(result: ClusteringResult, include_embedding: bool = False) -> pd.DataFrame:
    """Build the cluster table of a clustering result as a DataFrame."""
    labels = assign_labels(result.clusters)
    rows: List[Dict[str, Any]] = []
    for cluster, label in zip(result.clusters, labels):
        rep = cluster.representative
        rep_path = rep.source.path
        for occurrence, photo in enumerate(cluster.source_images):
            row = {
                "label": label,
                "cluster_id": cluster.cluster_id,
                "occurrence": occurrence,
                "image_path": str(photo.path) if photo.path is not None else None,
                "rep_image_path": str(rep_path) if rep_path is not None else None,
                "rep_face_index": rep.index,
                "rep_left": rep.box.left,
                "rep_top": rep.box.top,
                "rep_right": rep.box.right,
                "rep_bottom": rep.box.bottom,
                "n_occurrences": len(cluster.source_images),
            }
            if include_embedding:
                row["embedding"] = [float(v) for v in cluster.embedding]
            rows.append(row)
    columns = COLUMNS + (["embedding"] if include_embedding else [])
    return pd.DataFrame(rows, columns=columns)


def write_cluster_table(result: ClusteringResult, path: Path) -> None:
    """Write the cluster table to ``path`` (``.parquet`` or ``.csv``).

    Parameters
    ----------
    result: ClusteringResult
        Result of a clustering pass.
    path: Path
        Destination file.  Parent directories are created.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    suffix = path.suffix.lower()
    if suffix == ".parquet":
        df = cluster_frame(result, include_embedding=True)
        table = pa.Table.from_pandas(df, preserve_index=False)
        pq.write_table(table, path)
    elif suffix == ".csv":
        cluster_frame(result).to_csv(path, index=False)
    else:
        raise ValueError(f"Unsupported table format: {path.suffix}")


def read_cluster_table(path: Path) -> pd.DataFrame:
    """Read a cluster table written by :func:`write_cluster_table`."""
    path = Path(path)
    if path.suffix.lower() == ".parquet":
        return pq.read_table(path).to_pandas()
    return pd.read_csv(path)
