"""
HTML album generation.

This module builds minimal static HTML pages for browsing the result of a
clustering pass.  Each person gets a directory named after its label
holding the representative face crop and an index page with thumbnails of
the photos the person was found in.  A top-level index lists all people in
the order they were first seen, with their face and photo count.
"""

from __future__ import annotations

import html
import logging
import shutil
from pathlib import Path
from typing import Dict, List, Tuple

import cv2

from .clustering import assign_labels
from .images import Photo
from .pipeline import ClusteringResult
from .thumbnails import build_thumbnails

logger = logging.getLogger(__name__)

ALBUM_DIR = "album"
FACE_FILE = "face.jpg"


def _unique_photos(photos: List[Photo]) -> List[Photo]:
    """Photos in first-appearance order, each listed once."""
    seen = set()
    out = []
    for photo in photos:
        if id(photo) not in seen:
            seen.add(id(photo))
            out.append(photo)
    return out


def _thumb_name(number: int, photo: Photo) -> str:
    stem = photo.path.name if photo.path is not None else "photo"
    return f"{number:06d}_{stem}.jpg"


def build_album(result: ClusteringResult, output_root: Path, thumbs_size: int = 420,
                thumbs_workers: int = 4, thumb_regen: bool = True) -> Path:
    """Generate an HTML album and return the path to its root index.

    Parameters
    ----------
    result: ClusteringResult
        Result of a clustering pass.
    output_root: Path
        Directory under which an ``album`` folder is (re)created.
    thumbs_size, thumbs_workers, thumb_regen: int, int, bool
        Parameters for thumbnail generation.

    Returns
    -------
    Path
        Path to the generated top-level ``index.html``.
    """
    album_dir = Path(output_root) / ALBUM_DIR
    album_dir.mkdir(parents=True, exist_ok=True)
    thumbs_dir = album_dir / "thumbnails"
    thumbs_dir.mkdir(exist_ok=True)
    labels = assign_labels(result.clusters)

    # One thumbnail per distinct photo across all people
    thumb_names: Dict[int, str] = {}
    thumb_pairs = []
    for cluster in result.clusters:
        for photo in _unique_photos(cluster.source_images):
            if id(photo) in thumb_names:
                continue
            name = _thumb_name(len(thumb_names), photo)
            thumb_names[id(photo)] = name
            thumb_pairs.append((photo.pixels, thumbs_dir / name))
    # Clear thumbnails left over from earlier runs
    wanted = set(thumb_names.values())
    for p in thumbs_dir.iterdir():
        if p.is_file() and p.name not in wanted:
            p.unlink()
    failed = build_thumbnails(thumb_pairs, max_size=thumbs_size, workers=thumbs_workers, regen=thumb_regen)
    if failed:
        logger.warning("%d thumbnails could not be written", failed)

    # Remove directories for labels that no longer exist (stale)
    target_labels = set(labels)
    for p in album_dir.iterdir():
        if p.is_dir() and p.name != "thumbnails" and p.name not in target_labels:
            shutil.rmtree(p, ignore_errors=True)

    person_links: List[Tuple[str, int, int]] = []
    for cluster, label in zip(result.clusters, labels):
        person_dir = album_dir / label
        person_dir.mkdir(parents=True, exist_ok=True)
        if not cv2.imwrite(str(person_dir / FACE_FILE), cluster.representative.pixels):
            logger.warning("Could not write face crop for %s", label)
        photos = _unique_photos(cluster.source_images)
        entries = []
        for photo in photos:
            thumb_rel = f"../thumbnails/{thumb_names[id(photo)]}"
            alt = photo.path.name if photo.path is not None else "photo"
            img_tag = f'<img src="{html.escape(thumb_rel)}" alt="{html.escape(alt)}" loading="lazy" />'
            if photo.path is not None:
                href = photo.path.resolve().as_uri()
                entries.append(f'<a href="{html.escape(href)}">{img_tag}</a>')
            else:
                entries.append(img_tag)
        # Write per-person HTML
        with (person_dir / "index.html").open("w", encoding="utf-8") as fh:
            fh.write("<html><head><meta charset='utf-8'/><title>{}</title></head><body>\n".format(html.escape(label)))
            fh.write(f"<h1><img src='{FACE_FILE}' style='width:96px;vertical-align:middle;'/> {html.escape(label)}</h1>\n")
            fh.write(f"<p>Seen {len(cluster.source_images)} times in {len(photos)} photos.</p>\n")
            fh.write("<div style='display:flex;flex-wrap:wrap;gap:8px;'>\n")
            for e in entries:
                fh.write(e + "\n")
            fh.write("</div>\n")
            fh.write("</body></html>")
        person_links.append((label, len(photos), len(cluster.source_images)))

    # Write top-level index, people in first-seen order
    index_path = album_dir / "index.html"
    with index_path.open("w", encoding="utf-8") as fh:
        fh.write("<html><head><meta charset='utf-8'/><title>Photoface album</title></head><body>\n")
        fh.write(f"<h1>{len(person_links)} people in {result.n_images} photos</h1>\n")
        if result.cancelled:
            fh.write("<p><em>The run was cancelled before all photos were processed.</em></p>\n")
        fh.write("<ul style='list-style:none;padding:0;'>\n")
        for label, n_photos, n_faces in person_links:
            fh.write("<li style='margin-bottom:1em;'>\n")
            fh.write(f"<a href='{html.escape(label)}/index.html' style='text-decoration:none;color:black;'>\n")
            fh.write(f"<img src='{html.escape(label)}/{FACE_FILE}' style='width:64px;height:64px;object-fit:cover;margin-right:8px;vertical-align:middle;' alt='{html.escape(label)}'/>\n")
            fh.write(f"<span style='font-size:1.2em;'>{html.escape(label)} ({n_photos} photos, {n_faces} faces)</span></a>\n")
            fh.write("</li>\n")
        fh.write("</ul>\n")
        fh.write("</body></html>")
    return index_path
