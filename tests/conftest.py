import numpy as np
import pytest

from bovw.clustering import BaseClusterer
from bovw.config import BoFParameters
from bovw.dataset import DataSet
from bovw.exceptions import ClusteringFailure, ExtractionFailure


class FakeExtractor():
    '''Descriptor sets looked up by path instead of read from image files.'''
    def __init__(self, descriptors, descriptor_length=2):
        self.descriptors = descriptors
        self.descriptor_length = descriptor_length
        self.calls = []

    def extract(self, path):
        self.calls.append(path)
        if path not in self.descriptors:
            raise ExtractionFailure(path)
        return self.descriptors[path]


class PickClusterer(BaseClusterer):
    '''Uses the first k training vectors as centroids and remembers what it was given.'''
    name = 'pick'

    def __init__(self):
        super().__init__()
        self.seen = []

    def _cluster(self, vectors, k):
        self.seen.append(vectors.copy())
        return vectors[:k].copy()


class FailingClusterer(BaseClusterer):
    name = 'failing'

    def cluster(self, vectors, k):
        raise ClusteringFailure(f"cannot cluster into {k}")


def blob(center, n, rng, spread=0.1):
    return (np.asarray(center, dtype=np.float32) + rng.normal(0, spread, size=(n, 2))).astype(np.float32)


def make_two_class_data(n_train=4, n_valid=2, n_test=2, per_image=6, seed=0):
    '''
    Two classes in 2-D: class 0 descriptors sit near (0, 0) and (0, 1), class 1 near (10, 0) and (10, 1).
    '''
    rng = np.random.default_rng(seed)
    centers = {0: [(0, 0), (0, 1)], 1: [(10, 0), (10, 1)]}
    descriptors = {}
    datasets = []
    total = n_train + n_valid + n_test
    for label in (0, 1):
        paths = [f"class{label}/img{i}.png" for i in range(total)]
        for path in paths:
            half = per_image // 2
            descriptors[path] = np.vstack([blob(centers[label][0], half, rng),
                                           blob(centers[label][1], per_image - half, rng)])
        datasets.append(DataSet(paths, n_train, n_valid, n_test, label, name=f"class{label}"))
    return datasets, descriptors


@pytest.fixture
def two_class_data():
    return make_two_class_data()


@pytest.fixture
def quiet_params():
    params = BoFParameters(verbose=False, cluster_type='kmeans')
    params.clust_params.num_clusters = 4
    params.clust_params.num_pass = 3
    return params
