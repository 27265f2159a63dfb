#Code by Christopher Kaelin, 2025
# This code is licensed under the MIT License - see the LICENSE file for details.
'''
Per-class dataset manifests.

Every class owns one ordered list of image paths split into three contiguous blocks:
the training images first, then the validation images, then the test images.
'''
import os

import numpy as np
import yaml
from sklearn.preprocessing import LabelEncoder

from .config import RANDOM_SEED
from .exceptions import ManifestMismatch

SPLITS = ('train', 'valid', 'test')
IMAGE_EXTENSIONS = ('.jpg', '.jpeg', '.png', '.bmp', '.pgm', '.tif', '.tiff')


class DataSet():
    def __init__(self, paths, train, valid, test, label, name=None):
        '''
        paths:      ordered list of image paths (train block, valid block, test block)
        train:      number of training images
        valid:      number of validation images
        test:       number of test images
        label:      integer class label shared by all three splits
        name:       readable class name, defaults to the label
        '''
        self.paths = list(paths)
        self.counts = {'train': int(train), 'valid': int(valid), 'test': int(test)}
        self.label = int(label)
        self.name = str(label) if name is None else name

        if min(self.counts.values()) < 0:
            raise ManifestMismatch(f"Class {self.name}: negative split size {self.counts}")
        if sum(self.counts.values()) > len(self.paths):
            raise ManifestMismatch(f"Class {self.name}: split sizes {self.counts} need "
                                   f"{sum(self.counts.values())} images, only {len(self.paths)} listed")

    def data_info(self):
        return self.counts['train'], self.counts['valid'], self.counts['test'], self.label

    def size(self, split):
        return self.counts[split]

    def train_size(self):
        return self.counts['train']

    def offset(self, split):
        offset = 0
        for s in SPLITS:
            if s == split:
                return offset
            offset += self.counts[s]
        raise KeyError(f"Unknown split '{split}'")

    def data_list(self, i):
        return self.paths[i]

    def image_path(self, split, i):
        if not 0 <= i < self.counts[split]:
            raise IndexError(f"Class {self.name}: {split} image {i} out of range ({self.counts[split]})")
        return self.paths[self.offset(split) + i]

    def split_paths(self, split):
        start = self.offset(split)
        return self.paths[start:start + self.counts[split]]

    def __repr__(self):
        return f"DataSet(name={self.name!r}, label={self.label}, counts={self.counts})"


def split_counts(n, valid_fraction, test_fraction):
    if valid_fraction < 0 or test_fraction < 0 or valid_fraction + test_fraction > 1:
        raise ManifestMismatch(f"Invalid split fractions valid={valid_fraction} test={test_fraction}")
    valid = min(int(round(n * valid_fraction)), n)
    # both halves may round up, the test split takes what is left
    test = min(int(round(n * test_fraction)), n - valid)
    return n - valid - test, valid, test


def load_manifest(root_dir, valid_fraction=0.2, test_fraction=0.2, random_state=RANDOM_SEED):
    '''
    Build one DataSet per class sub-directory of root_dir.

    root_dir:           directory with one sub-directory of images per class
    valid_fraction:     fraction of each class used for validation
    test_fraction:      fraction of each class used for testing
    random_state:       seed of the per-class shuffle
    '''
    if not os.path.isdir(root_dir):
        raise ManifestMismatch(f"Data directory does not exist: {root_dir}")

    class_names = sorted(d for d in os.listdir(root_dir) if os.path.isdir(os.path.join(root_dir, d)))
    if not class_names:
        raise ManifestMismatch(f"No class directories found in {root_dir}")

    label_encoder = LabelEncoder()
    labels = label_encoder.fit_transform(class_names)
    rng = np.random.default_rng(random_state)

    datasets = []
    for name, label in zip(class_names, labels):
        class_dir = os.path.join(root_dir, name)
        paths = sorted(os.path.join(class_dir, f) for f in os.listdir(class_dir)
                       if f.lower().endswith(IMAGE_EXTENSIONS))
        paths = [paths[i] for i in rng.permutation(len(paths))]
        train, valid, test = split_counts(len(paths), valid_fraction, test_fraction)
        datasets.append(DataSet(paths, train, valid, test, label, name=name))
    return datasets


def manifest_from_yaml(path):
    '''
    Explicit manifest, a list of entries like

        - name: cars
          label: 0
          train: 20
          valid: 5
          test: 5
          paths: [...]
    '''
    with open(path, 'r') as f:
        entries = yaml.safe_load(f) or []
    base_dir = os.path.dirname(os.path.abspath(path))
    datasets = []
    for entry in entries:
        try:
            paths = [p if os.path.isabs(p) else os.path.join(base_dir, p) for p in entry['paths']]
            datasets.append(DataSet(paths, entry['train'], entry['valid'], entry['test'],
                                    entry['label'], name=entry.get('name')))
        except KeyError as e:
            raise ManifestMismatch(f"Manifest entry {entry.get('name', '?')} is missing {e}") from e
    labels = [d.label for d in datasets]
    if len(set(labels)) != len(labels):
        raise ManifestMismatch(f"Class labels must be unique, got {labels}")
    return datasets
