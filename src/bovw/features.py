#Code by Christopher Kaelin, 2025
# This code is licensed under the MIT License - see the LICENSE file for details.
'''
Local feature extraction (SIFT, ORB, SURF) and the HDF5 descriptor cache.
'''
import cv2
import h5py
import numpy as np

from .exceptions import BoFError, ExtractionFailure

DESCRIPTOR_LENGTHS = {'sift': 128, 'orb': 32}


class FeatureExtractor():
    def __init__(self, feature_type='sift', params=None, preprocess=None):
        '''
        feature_type:   'sift', 'orb' or 'surf' (needs opencv-contrib)
        params:         matching parameter group of BoFParameters (SiftParams, OrbParams, SurfParams)
        preprocess:     optional callable applied to the grayscale image before detection
        '''
        self.feature_type = feature_type
        self.params = params
        self.preprocess = preprocess
        self.detector = None

    def _create_detector(self):
        p = self.params
        if self.feature_type == 'sift':
            if p is None:
                return cv2.SIFT_create()
            return cv2.SIFT_create(nfeatures=p.nfeatures, contrastThreshold=p.detection_threshold,
                                   edgeThreshold=p.edge_threshold)
        elif self.feature_type == 'orb':
            return cv2.ORB_create(nfeatures=1000 if p is None else p.nfeatures)
        elif self.feature_type == 'surf':
            if not hasattr(cv2, 'xfeatures2d'):
                raise BoFError("SURF needs the opencv-contrib build (cv2.xfeatures2d)")
            if p is None:
                return cv2.xfeatures2d.SURF_create()
            return cv2.xfeatures2d.SURF_create(hessianThreshold=p.hessian_threshold, nOctaves=p.n_octaves,
                                               nOctaveLayers=p.n_layers, extended=p.extended)
        raise BoFError(f"Unknown feature type '{self.feature_type}'")

    @property
    def descriptor_length(self):
        if self.feature_type == 'surf':
            extended = True if self.params is None else self.params.extended
            return 128 if extended else 64
        return DESCRIPTOR_LENGTHS[self.feature_type]

    def empty(self):
        return np.zeros((0, self.descriptor_length), dtype=np.float32)

    def describe(self, gray):
        '''Descriptors of a grayscale image as a float32 (N, L) array.'''
        if self.detector is None:
            self.detector = self._create_detector()
        if self.preprocess is not None:
            gray = self.preprocess(gray)
        # keypoints not needed
        _, descriptors = self.detector.detectAndCompute(gray, None)
        if descriptors is None:
            return self.empty()
        # ORB descriptors are uint8
        return descriptors.astype(np.float32)

    def extract(self, image_path):
        gray = cv2.imread(str(image_path), cv2.IMREAD_GRAYSCALE)
        if gray is None:
            raise ExtractionFailure(image_path)
        try:
            return self.describe(gray)
        except cv2.error as e:
            raise ExtractionFailure(image_path, str(e)) from e

    def __getstate__(self):
        # cv2 detectors can not be pickled, they are created again in worker processes
        state = dict(self.__dict__)
        state['detector'] = None
        return state


def save_descriptors(path, collections):
    '''
    path:           HDF5 file to write
    collections:    {(split, class_index): [descriptor arrays, ...]}
    '''
    with h5py.File(path, 'w') as hf:
        for (split, class_idx), descriptor_sets in collections.items():
            group = hf.require_group(f"{split}/{class_idx}")
            group.attrs['count'] = len(descriptor_sets)
            for slot, descriptors in enumerate(descriptor_sets):
                if descriptors is None:
                    continue
                group.create_dataset(str(slot), data=descriptors)


def load_descriptors(path):
    '''Inverse of save_descriptors. Slots never filled come back as None.'''
    collections = {}
    with h5py.File(path, 'r') as hf:
        for split in hf:
            for class_idx in hf[split]:
                group = hf[split][class_idx]
                sets = [None] * int(group.attrs['count'])
                for slot in group:
                    sets[int(slot)] = group[slot][:]
                collections[(split, int(class_idx))] = sets
    return collections
