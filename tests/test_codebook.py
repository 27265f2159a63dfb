import numpy as np
import pytest

from bovw.clustering import KMeansClusterer
from bovw.codebook import Codebook
from bovw.config import ClusterParams
from bovw.exceptions import ClusteringFailure, DescriptorLengthMismatch, NotBuilt

from conftest import PickClusterer


def test_unbuilt_codebook_fails_loudly():
    codebook = Codebook()
    assert codebook.size == 0
    assert not codebook.is_built
    with pytest.raises(NotBuilt):
        codebook.nearest_centroid([0.0, 0.0])
    with pytest.raises(NotBuilt):
        codebook.quantize(np.zeros((3, 2)))


def test_nearest_centroid_is_deterministic():
    codebook = Codebook([[0, 0], [5, 5], [10, 0]])
    v = np.array([4.0, 4.5])
    first = codebook.nearest_centroid(v)
    assert first == 1
    assert all(codebook.nearest_centroid(v) == first for _ in range(10))


def test_ties_go_to_lowest_index():
    codebook = Codebook([[1, 0], [-1, 0], [0, 1]])
    assert codebook.nearest_centroid([0, 0]) == 0
    assert list(codebook.quantize([[0, 0], [-1, 0.2]])) == [0, 1]


def test_quantize_matches_nearest_centroid():
    rng = np.random.default_rng(3)
    codebook = Codebook(rng.normal(size=(50, 16)))
    descriptors = rng.normal(size=(200, 16))
    words = codebook.quantize(descriptors)
    assert words.shape == (200,)
    assert [codebook.nearest_centroid(d) for d in descriptors[:20]] == list(words[:20])


def test_quantize_in_blocks(monkeypatch):
    import bovw.codebook
    monkeypatch.setattr(bovw.codebook, 'DISTANCE_BLOCK', 8)
    rng = np.random.default_rng(4)
    centroids = rng.normal(size=(4, 3))
    descriptors = rng.normal(size=(25, 3))
    expected = np.argmin(((descriptors[:, None, :] - centroids[None]) ** 2).sum(-1), axis=1)
    assert list(Codebook(centroids).quantize(descriptors)) == list(expected)


def test_length_mismatch():
    codebook = Codebook([[0, 0], [1, 1]])
    with pytest.raises(DescriptorLengthMismatch):
        codebook.nearest_centroid([0, 0, 0])


def test_build_stores_clusterer_output():
    vectors = np.array([[0, 0], [0, 1], [10, 0], [10, 1]], dtype=np.float32)
    codebook = Codebook()
    codebook.build(vectors, 3, PickClusterer())
    assert codebook.size == 3
    assert codebook.length == 2
    np.testing.assert_array_equal(codebook.centroids, vectors[:3])


def test_build_propagates_infeasible_k():
    vectors = np.zeros((3, 2), dtype=np.float32)
    codebook = Codebook()
    with pytest.raises(ClusteringFailure):
        codebook.build(vectors, 5, KMeansClusterer(ClusterParams()))
    assert not codebook.is_built


def test_scenario_two_clusters_of_two_points():
    vectors = np.array([[0, 0], [0, 1], [10, 0], [10, 1]], dtype=np.float32)
    params = ClusterParams()
    params.num_pass = 3
    codebook = Codebook()
    codebook.build(vectors, 4, KMeansClusterer(params))
    found = sorted(map(tuple, np.round(codebook.centroids, 3)))
    assert found == [(0, 0), (0, 1), (10, 0), (10, 1)]


def test_snapshot_is_a_copy():
    codebook = Codebook([[0, 0], [1, 1]])
    snap = codebook.snapshot()
    codebook.set_centroids([[5, 5], [6, 6], [7, 7]])
    assert snap.size == 2
    np.testing.assert_array_equal(snap.centroids, [[0, 0], [1, 1]])


def test_save_and_load(tmp_path):
    codebook = Codebook([[0, 0.5], [1, 1]])
    path = tmp_path / 'codebook.joblib'
    codebook.save(path)
    loaded = Codebook.load(path)
    np.testing.assert_array_equal(loaded.centroids, codebook.centroids)
