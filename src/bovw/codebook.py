#Code by Christopher Kaelin, 2025
# This code is licensed under the MIT License - see the LICENSE file for details.
'''
The visual vocabulary: K centroid vectors of descriptor length L and nearest-centroid lookup.
'''
import joblib
import numpy as np
from scipy.spatial.distance import cdist

from .exceptions import ClusteringFailure, DescriptorLengthMismatch, NotBuilt

# Max number of distances computed at once by quantize()
DISTANCE_BLOCK = 2 ** 22


class Codebook():
    def __init__(self, centroids=None):
        self.centroids = None
        if centroids is not None:
            self.set_centroids(centroids)

    @property
    def size(self):
        '''K, 0 while the codebook is unbuilt.'''
        return 0 if self.centroids is None else self.centroids.shape[0]

    @property
    def length(self):
        return 0 if self.centroids is None else self.centroids.shape[1]

    @property
    def is_built(self):
        return self.size > 0

    def set_centroids(self, centroids):
        centroids = np.array(centroids, dtype=np.float32)
        if centroids.ndim != 2:
            raise ClusteringFailure(f"Centroids must form a (K, L) array, got shape {centroids.shape}")
        self.centroids = centroids

    def build(self, training_descriptors, k, clusterer):
        '''
        training_descriptors:   (N, L) array, training split only
        k:                      number of visual words
        clusterer:              object with cluster(vectors, k) -> (k, L) centroids
        '''
        vectors = np.asarray(training_descriptors, dtype=np.float32)
        centroids = clusterer.cluster(vectors, k)
        if centroids.shape[1] != vectors.shape[1]:
            raise DescriptorLengthMismatch(f"Clusterer returned centroids of length {centroids.shape[1]} "
                                           f"for descriptors of length {vectors.shape[1]}")
        self.set_centroids(centroids)
        return self.centroids

    def _check(self, length):
        if not self.is_built:
            raise NotBuilt("The codebook has not been built")
        if length != self.length:
            raise DescriptorLengthMismatch(f"Descriptor length {length} does not match codebook length {self.length}")

    def nearest_centroid(self, vector):
        '''Index of the centroid with the smallest squared Euclidean distance, lowest index on ties.'''
        vector = np.asarray(vector, dtype=np.float32).reshape(1, -1)
        return int(self.quantize(vector)[0])

    def quantize(self, descriptors):
        '''Nearest centroid of every row of an (N, L) array.'''
        descriptors = np.asarray(descriptors, dtype=np.float32)
        if descriptors.ndim == 1:
            descriptors = descriptors.reshape(1, -1)
        self._check(descriptors.shape[1])
        if descriptors.shape[0] == 0:
            return np.zeros(0, dtype=np.intp)

        rows = max(1, DISTANCE_BLOCK // self.size)
        words = np.empty(descriptors.shape[0], dtype=np.intp)
        for start in range(0, descriptors.shape[0], rows):
            block = descriptors[start:start + rows]
            words[start:start + rows] = np.argmin(cdist(block, self.centroids, 'sqeuclidean'), axis=1)
        return words

    def snapshot(self):
        return Codebook(None if self.centroids is None else self.centroids.copy())

    def save(self, path):
        joblib.dump(self.centroids, path)

    @classmethod
    def load(cls, path):
        return cls(joblib.load(path))

    def __repr__(self):
        return f"Codebook(size={self.size}, length={self.length})"
