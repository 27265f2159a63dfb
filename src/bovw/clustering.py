#Code by Christopher Kaelin, 2025
# This code is licensed under the MIT License - see the LICENSE file for details.
'''
Clustering backends used to build the visual vocabulary.

Each clusterer turns an (N, L) array of training descriptors into K centroids, or raises
ClusteringFailure when K centroids can not be produced from the given vectors.
'''
import cv2
import numpy as np
from sklearn.cluster import KMeans, MiniBatchKMeans

from .config import ClusterParams
from .exceptions import ClusteringFailure


class BaseClusterer():
    name = 'base'

    def __init__(self, params=None, verbose=False):
        self.params = params if params is not None else ClusterParams()
        self.verbose = verbose

    def check(self, vectors, k):
        if vectors.ndim != 2:
            raise ClusteringFailure(f"Expected an (N, L) array of descriptors, got shape {vectors.shape}")
        if k < 1:
            raise ClusteringFailure(f"Number of clusters must be positive, got {k}")
        if k > vectors.shape[0]:
            raise ClusteringFailure(f"Cannot build {k} clusters from {vectors.shape[0]} training descriptors")

    def cluster(self, vectors, k):
        vectors = np.asarray(vectors, dtype=np.float32)
        k = int(k)
        self.check(vectors, k)
        centroids = self._cluster(vectors, k)
        if centroids.shape != (k, vectors.shape[1]):
            raise ClusteringFailure(f"{self.name} returned centroids of shape {centroids.shape}, "
                                    f"expected {(k, vectors.shape[1])}")
        return centroids

    def _cluster(self, vectors, k):
        raise NotImplementedError


class MiniBatchKMeansClusterer(BaseClusterer):
    name = 'minibatch'

    def _cluster(self, vectors, k):
        p = self.params
        kmeans_model = MiniBatchKMeans(n_clusters=k,
                                       random_state=p.random_state,
                                       batch_size=max(p.batch_size, k * 2),
                                       n_init=p.num_pass,
                                       max_iter=p.max_iter,
                                       verbose=0,
                                       compute_labels=False)
        try:
            kmeans_model.fit(vectors)
        except ValueError as e:
            raise ClusteringFailure(str(e)) from e
        return kmeans_model.cluster_centers_.astype(np.float32)


class KMeansClusterer(BaseClusterer):
    name = 'kmeans'

    def _cluster(self, vectors, k):
        p = self.params
        kmeans_model = KMeans(n_clusters=k, n_init=p.num_pass, max_iter=p.max_iter,
                              tol=p.eps, random_state=p.random_state)
        try:
            kmeans_model.fit(vectors)
        except ValueError as e:
            raise ClusteringFailure(str(e)) from e
        return kmeans_model.cluster_centers_.astype(np.float32)


class OpenCVKMeansClusterer(BaseClusterer):
    name = 'opencv'

    def _cluster(self, vectors, k):
        p = self.params
        if p.random_state is not None:
            cv2.setRNGSeed(int(p.random_state))
        criteria = (cv2.TERM_CRITERIA_EPS + cv2.TERM_CRITERIA_MAX_ITER, p.max_iter, p.eps)
        try:
            _, _, centers = cv2.kmeans(vectors, k, None, criteria, max(p.num_pass, 1), cv2.KMEANS_PP_CENTERS)
        except cv2.error as e:
            raise ClusteringFailure(str(e)) from e
        return centers.astype(np.float32)


CLUSTERERS = {
    'minibatch': MiniBatchKMeansClusterer,
    'kmeans': KMeansClusterer,
    'opencv': OpenCVKMeansClusterer,
}


def get_clusterer(params):
    '''Clusterer selected by params.cluster_type.'''
    return CLUSTERERS[params.cluster_type](params.clust_params, verbose=params.verbose)
