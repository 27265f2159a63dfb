#Code by Christopher Kaelin, 2025
# This code is licensed under the MIT License - see the LICENSE file for details.
'''
Descriptor sets and histograms of one class for one split (train, valid or test).
'''
import numpy as np
from joblib import Parallel, delayed

from .exceptions import EmptyCollection, StaleHistogram
from .histogram import encode


class ObjectCollection():
    def __init__(self, n=0, name=None):
        self.name = name
        self.descriptors = []
        self.histograms = []
        self.allocate(n)

    def allocate(self, n):
        '''Reserve n empty slots, dropping whatever was stored before.'''
        if n < 0:
            raise ValueError(f"Cannot allocate {n} slots")
        self.descriptors = [None] * n
        self.histograms = [None] * n

    def __len__(self):
        return len(self.descriptors)

    def set_descriptors(self, i, descriptors):
        self.descriptors[i] = descriptors
        self.histograms[i] = None

    def feature_count(self):
        return sum(d.shape[0] for d in self.descriptors if d is not None)

    def invalidate(self):
        self.histograms = [None] * len(self.descriptors)

    def encode_all(self, codebook, label, n_jobs=1):
        '''Re-encode every occupied slot against codebook, stamping label.'''
        occupied = [i for i, d in enumerate(self.descriptors) if d is not None]
        if n_jobs == 1 or len(occupied) < 2:
            encoded = [encode(self.descriptors[i], codebook, label) for i in occupied]
        else:
            encoded = Parallel(n_jobs=n_jobs)(delayed(encode)(self.descriptors[i], codebook, label)
                                              for i in occupied)
        self.invalidate()
        for i, histogram in zip(occupied, encoded):
            self.histograms[i] = histogram

    def matrix(self, size):
        '''
        Histograms stacked into an (n, size) array. Every slot must hold a histogram
        built against a codebook of the given size.
        '''
        for i, histogram in enumerate(self.histograms):
            if histogram is None:
                raise StaleHistogram(f"{self.name or 'collection'}: slot {i} has no histogram")
            if histogram.size != size:
                raise StaleHistogram(f"{self.name or 'collection'}: slot {i} was built for "
                                     f"{histogram.size} words, codebook has {size}")
        if not self.histograms:
            return np.zeros((0, size), dtype=np.float32)
        return np.vstack([h.bins for h in self.histograms])

    def predict(self, classifier, model, size):
        if len(self) == 0:
            raise EmptyCollection(f"{self.name or 'collection'} holds no images")
        return np.asarray(classifier.predict(model, self.matrix(size)))

    def empty_slots(self):
        '''Mask of the slots whose image gave no descriptors (all-zero histogram).'''
        return np.array([h is None or not h.bins.any() for h in self.histograms], dtype=bool)

    def score_against(self, classifier, model, label, size=None):
        '''
        Fraction of the histograms the classifier assigns to label. Images without descriptors
        are always a miss, whatever the classifier makes of the all-zero histogram.
        '''
        if len(self) == 0:
            raise EmptyCollection(f"{self.name or 'collection'} holds no images, accuracy is undefined")
        if size is None:
            size = self.histograms[0].size if self.histograms[0] is not None else 0
        predicted = self.predict(classifier, model, size)
        hits = (predicted == label) & ~self.empty_slots()
        return float(np.mean(hits))
