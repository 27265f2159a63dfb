import numpy as np
import pytest

from bovw.codebook import Codebook
from bovw.exceptions import NotBuilt
from bovw.histogram import Histogram, encode, encode_sparse


@pytest.fixture
def codebook():
    return Codebook([[0, 0], [0, 1], [10, 0], [10, 1]])


def test_bins_sum_to_one(codebook):
    descriptors = np.array([[0, 0.1], [0.1, 0.9], [0, 0.2], [9.8, 0.1]])
    histogram = encode(descriptors, codebook, label=3)
    assert histogram.size == codebook.size
    assert histogram.label == 3
    assert histogram.bins.sum() == pytest.approx(1.0)
    np.testing.assert_allclose(histogram.bins, [0.5, 0.25, 0.25, 0.0])


def test_empty_descriptor_set_gives_zero_histogram(codebook):
    histogram = encode(np.zeros((0, 2), dtype=np.float32), codebook, label=1)
    assert histogram.size == 4
    assert not histogram.bins.any()
    assert encode(None, codebook, label=1).bins.sum() == 0


def test_encoding_before_build_fails():
    with pytest.raises(NotBuilt):
        encode(np.ones((2, 2)), Codebook(), label=0)


def test_histogram_length_follows_codebook():
    descriptors = np.random.default_rng(0).normal(size=(30, 2))
    small = encode(descriptors, Codebook(np.eye(2)), 0)
    large = encode(descriptors, Codebook(np.random.default_rng(1).normal(size=(7, 2))), 0)
    assert len(small) == 2
    assert len(large) == 7


def test_class_descriptors_land_near_their_class(codebook):
    class0 = np.array([[0, 0], [0, 1], [0.1, 0.1], [0, 0.9]])
    class1 = np.array([[10, 0], [10, 1], [9.9, 0.2]])
    assert encode(class0, codebook, 0).bins[:2].sum() == pytest.approx(1.0)
    assert encode(class1, codebook, 1).bins[2:].sum() == pytest.approx(1.0)


def test_encode_is_pure(codebook):
    descriptors = np.array([[0, 0.2], [10, 0.8]])
    before = codebook.centroids.copy()
    first = encode(descriptors, codebook, 0)
    second = encode(descriptors, codebook, 0)
    np.testing.assert_array_equal(first.bins, second.bins)
    np.testing.assert_array_equal(codebook.centroids, before)


def test_encode_sparse_skips_zero_bins():
    histogram = Histogram([0.0, 0.25, 0.0, 0.75, 0.0], label=0)
    assert encode_sparse(histogram) == [(2, 0.25), (4, 0.75), (-1, 0.0)]
    assert encode_sparse(Histogram(np.zeros(3), label=0)) == [(-1, 0.0)]
