import math

import numpy as np
import pytest

from conftest import make_photo, unit
from photoface_cluster.clustering import ClusterStore, assign_labels, cosine_similarity
from photoface_cluster.errors import DimensionMismatch
from photoface_cluster.faces import BoundingBox, FaceCrop
from photoface_cluster.pipeline import ClusteringResult


def crop_of(photo, index=0):
    return FaceCrop(pixels=photo.pixels[:2, :2].copy(), box=BoundingBox(0, 0, 2, 2), source=photo, index=index)


def at_angle(degrees):
    rad = math.radians(degrees)
    return np.array([math.cos(rad), math.sin(rad)])


class TestCosineSimilarity:

    def test_symmetric(self):
        rng = np.random.default_rng(0)
        for _ in range(20):
            a, b = rng.normal(size=128), rng.normal(size=128)
            assert cosine_similarity(a, b) == pytest.approx(cosine_similarity(b, a))

    def test_self_similarity_is_one(self):
        a = np.arange(1, 129, dtype=np.float32)
        assert cosine_similarity(a, a) == pytest.approx(1.0)

    def test_scale_invariant(self):
        a = np.array([1.0, 2.0, 3.0])
        b = np.array([-2.0, 0.5, 4.0])
        assert cosine_similarity(a * 10, b * 0.01) == pytest.approx(cosine_similarity(a, b))

    def test_opposite_and_orthogonal(self):
        assert cosine_similarity([1, 0], [-1, 0]) == pytest.approx(-1.0)
        assert cosine_similarity([1, 0], [0, 5]) == pytest.approx(0.0)

    def test_zero_vector(self):
        assert cosine_similarity([0, 0, 0], [1, 2, 3]) == 0.0

    def test_length_mismatch(self):
        with pytest.raises(DimensionMismatch) as info:
            cosine_similarity(np.ones(128), np.ones(127))
        assert info.value.expected == 128
        assert info.value.actual == 127

    def test_rejects_matrices(self):
        with pytest.raises(DimensionMismatch):
            cosine_similarity(np.ones((2, 2)), np.ones((2, 2)))


class TestClusterStore:

    def test_new_face_creates_cluster(self):
        store = ClusterStore()
        photo = make_photo()
        crop = crop_of(photo)
        assert store.match_or_create(crop, unit(0), photo) == 0
        assert len(store) == 1
        assert store[0].representative is crop
        assert store[0].source_images == [photo]

    def test_dissimilar_faces_do_not_merge(self):
        store = ClusterStore()
        photos = [make_photo() for _ in range(5)]
        ids = [store.match_or_create(crop_of(p), unit(i), p) for i, p in enumerate(photos)]
        assert ids == [0, 1, 2, 3, 4]
        assert store.images_by_cluster() == {i: [p] for i, p in enumerate(photos)}

    def test_identical_embeddings_share_cluster(self):
        store = ClusterStore()
        first, second = make_photo(), make_photo()
        store.match_or_create(crop_of(first), unit(3), first)
        assert store.match_or_create(crop_of(second), unit(3), second) == 0
        assert store[0].source_images == [first, second]

    def test_first_match_beats_best_match(self):
        store = ClusterStore(similarity_threshold=0.6)
        c1, c2, face = at_angle(0), at_angle(75.3), at_angle(49.46)
        assert cosine_similarity(c1, c2) < 0.6
        assert cosine_similarity(c1, face) == pytest.approx(0.65, abs=1e-3)
        assert cosine_similarity(c2, face) == pytest.approx(0.9, abs=1e-3)
        p1, p2, p3 = make_photo(), make_photo(), make_photo()
        store.match_or_create(crop_of(p1), c1, p1)
        store.match_or_create(crop_of(p2), c2, p2)
        assert store.find_match(face) == 0
        assert store.match_or_create(crop_of(p3), face, p3) == 0
        assert store[0].source_images == [p1, p3]
        assert store[1].source_images == [p2]

    def test_threshold_is_strict(self):
        store = ClusterStore(similarity_threshold=0.6)
        p1, p2 = make_photo(), make_photo()
        store.match_or_create(crop_of(p1), np.array([5.0, 0.0]), p1)
        # exactly 0.6 in floating point, not above the threshold
        assert cosine_similarity([5.0, 0.0], [3.0, 4.0]) == 0.6
        assert store.match_or_create(crop_of(p2), np.array([3.0, 4.0]), p2) == 1

    def test_threshold_is_tunable(self):
        loose = ClusterStore(similarity_threshold=0.1)
        p1, p2 = make_photo(), make_photo()
        loose.match_or_create(crop_of(p1), at_angle(0), p1)
        assert loose.match_or_create(crop_of(p2), at_angle(60), p2) == 0

    def test_same_photo_appended_twice(self):
        store = ClusterStore()
        owner, group = make_photo(), make_photo()
        store.match_or_create(crop_of(owner), unit(0), owner)
        store.match_or_create(crop_of(group, 0), unit(0), group)
        store.match_or_create(crop_of(group, 1), unit(0) * 2, group)
        assert store[0].source_images == [owner, group, group]

    def test_embedding_never_updated(self):
        store = ClusterStore()
        p1, p2 = make_photo(), make_photo()
        store.match_or_create(crop_of(p1), at_angle(0), p1)
        store.match_or_create(crop_of(p2), at_angle(40), p2)
        np.testing.assert_allclose(store[0].embedding, at_angle(0))

    def test_mismatched_embedding_leaves_store_unchanged(self):
        store = ClusterStore()
        p1, p2 = make_photo(), make_photo()
        store.match_or_create(crop_of(p1), unit(0), p1)
        with pytest.raises(DimensionMismatch):
            store.match_or_create(crop_of(p2), np.ones(64), p2)
        assert len(store) == 1
        assert store[0].source_images == [p1]

    def test_configured_dimension_checked_on_first_face(self):
        store = ClusterStore(embedding_dim=128)
        photo = make_photo()
        with pytest.raises(DimensionMismatch):
            store.match_or_create(crop_of(photo), np.ones(512), photo)
        assert len(store) == 0

    def test_mappings_follow_creation_order(self):
        store = ClusterStore()
        photos = [make_photo() for _ in range(3)]
        crops = [crop_of(p) for p in photos]
        store.match_or_create(crops[0], unit(7), photos[0])
        store.match_or_create(crops[1], unit(2), photos[1])
        store.match_or_create(crops[2], unit(7), photos[2])
        assert store.representatives() == [crops[0], crops[1]]
        assert list(store.images_by_face()) == [crops[0], crops[1]]
        assert store.images_by_face()[crops[0]] == [photos[0], photos[2]]

    def test_returned_lists_are_copies(self):
        store = ClusterStore()
        photo = make_photo()
        crop = crop_of(photo)
        store.match_or_create(crop, unit(0), photo)
        store.images_by_face()[crop].append(photo)
        assert store[0].source_images == [photo]

    def test_result_mappings_match_store(self):
        store = ClusterStore()
        photos = [make_photo() for _ in range(3)]
        for i, p in enumerate(photos):
            store.match_or_create(crop_of(p), unit(i % 2), p)
        result = ClusteringResult(clusters=store.clusters)
        assert result.unique_faces == store.representatives()
        assert result.images_by_face == store.images_by_face()
        assert result.images_by_cluster == store.images_by_cluster() == {0: [photos[0], photos[2]], 1: [photos[1]]}


def test_assign_labels():
    assert assign_labels([object(), object(), object()]) == ["Person_0000", "Person_0001", "Person_0002"]
    assert assign_labels([]) == []
