#Code by Christopher Kaelin, 2025
# This code is licensed under the MIT License - see the LICENSE file for details.
'''
This package provides the Bag of Visual Words (BoVW) model for image classification.
Images are turned into local descriptor sets, the training descriptors are clustered into a
visual vocabulary (codebook), every image is re-encoded as a normalized histogram over that
vocabulary and a classifier is trained on the histograms. The vocabulary size can be searched
against validation accuracy.
'''

__version__ = '0.2.0'

from .config import BoFParameters, load_parameters
from .exceptions import *
from .dataset import DataSet, load_manifest, manifest_from_yaml
from .codebook import Codebook
from .histogram import Histogram, encode, encode_sparse
from .collection import ObjectCollection
from .clustering import get_clusterer
from .classifiers import get_classifier
from .features import FeatureExtractor
from .pipeline import BagOfFeatures, IterationResult

__all__ = ['BoFParameters', 'load_parameters', 'DataSet', 'load_manifest', 'manifest_from_yaml',
           'Codebook', 'Histogram', 'encode', 'encode_sparse', 'ObjectCollection',
           'get_clusterer', 'get_classifier', 'FeatureExtractor', 'BagOfFeatures', 'IterationResult']
