#Code by Christopher Kaelin, 2025
# This code is licensed under the MIT License - see the LICENSE file for details.
'''
Bag of Features encoding of one image against a codebook.
'''
import numpy as np
from sklearn.preprocessing import normalize

SPARSE_SENTINEL = (-1, 0.0)


class Histogram():
    def __init__(self, bins, label):
        self.bins = np.asarray(bins, dtype=np.float32)
        self.label = label

    @property
    def size(self):
        return self.bins.shape[0]

    def __len__(self):
        return self.size

    def __repr__(self):
        return f"Histogram(size={self.size}, label={self.label})"


def encode(descriptors, codebook, label):
    '''
    descriptors:    (N, L) array of one image, may be empty
    codebook:       built Codebook
    label:          class label stamped on the histogram

    Returns the L1 normalized histogram of nearest-centroid assignments. An image without
    descriptors gives the all-zero histogram.
    '''
    if descriptors is None:
        descriptors = np.zeros((0, codebook.length), dtype=np.float32)
    visual_words = codebook.quantize(descriptors)

    histogram = np.bincount(visual_words, minlength=codebook.size).astype(np.float32)

    if np.sum(histogram) > 0:
        histogram = normalize(histogram.reshape(1, -1), norm='l1')[0]

    return Histogram(histogram, label)


def encode_sparse(histogram):
    '''
    libsvm style sparse form: (index, value) pairs with 1-based indices for the non-zero bins,
    terminated by (-1, 0.0).
    '''
    bins = histogram.bins if isinstance(histogram, Histogram) else np.asarray(histogram)
    nonzero = np.flatnonzero(bins)
    pairs = [(int(k) + 1, float(bins[k])) for k in nonzero]
    pairs.append(SPARSE_SENTINEL)
    return pairs
