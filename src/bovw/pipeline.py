#Code by Christopher Kaelin, 2025
# This code is licensed under the MIT License - see the LICENSE file for details.
'''
The Bag of Features pipeline.

BagOfFeatures owns the per-class train/valid/test collections, the codebook and the trained
classifier model. It extracts descriptors for every image, builds the codebook from the
training descriptors only, encodes every image as a histogram over the codebook and trains
and evaluates the classifier. optimize_dictionary() searches the codebook size that gives
the best average per-class validation accuracy.
'''
import os
from collections import namedtuple

import numpy as np
from joblib import Parallel, delayed
from sklearn.metrics import accuracy_score, classification_report, confusion_matrix
from tqdm import tqdm

from .classifiers import get_classifier
from .clustering import get_clusterer
from .codebook import Codebook
from .collection import ObjectCollection
from .config import BoFParameters, save_parameters
from .dataset import SPLITS
from .exceptions import (ClusteringFailure, DescriptorLengthMismatch, EmptyCollection, ExtractionFailure,
                         InfeasibleParameters, ManifestMismatch, NoFeasibleCodebook, NotTrained)
from .features import FeatureExtractor, load_descriptors, save_descriptors
from .histogram import encode

IMPROVED = 'improved'
NOT_IMPROVED = 'not_improved'

IterationResult = namedtuple('IterationResult',
                             ['step', 'repeat', 'num_clusters', 'score', 'best_score', 'status', 'error'])

SPLIT_NAMES = {'train': 'training', 'valid': 'validation', 'test': 'test'}


def _extract_image(extractor, path):
    # worker side, returns the error text instead of raising so one bad image does not stop the batch
    try:
        return extractor.extract(path), None
    except ExtractionFailure as e:
        return None, str(e)


class BagOfFeatures():
    def __init__(self, params=None, datasets=None, extractor=None, clusterer=None, classifier=None):
        '''
        params:         BoFParameters, defaults when None
        datasets:       list of DataSet, one per class
        extractor:      object with extract(path) -> (N, L) array, built from params when None
        clusterer:      object with cluster(vectors, k) -> (k, L) array, built from params when None
        classifier:     classifier backend, built from params.classifier_type when None
        '''
        self.params = params if params is not None else BoFParameters()
        if extractor is None:
            group = getattr(self.params, f"{self.params.feature_type}_params")
            extractor = FeatureExtractor(self.params.feature_type, group, self.params.preprocess)
        self.extractor = extractor
        self.clusterer = clusterer if clusterer is not None else get_clusterer(self.params)
        self.classifier = classifier if classifier is not None else get_classifier(self.params)

        self.codebook = Codebook()
        self.model = None
        self.history = []
        self.num_features = 0
        self.extracted = False
        self.data = []
        self.objects = {split: [] for split in SPLITS}
        if datasets is not None:
            self.alloc(datasets)

    @property
    def verbose(self):
        return self.params.verbose

    @property
    def num_classes(self):
        return len(self.data)

    @property
    def feature_length(self):
        if self.params.feature_length is not None:
            return self.params.feature_length
        return getattr(self.extractor, 'descriptor_length', None)

    def alloc(self, datasets, params=None):
        '''(Re)allocate the collections of every class and split, dropping all previous state.'''
        if params is not None:
            self.params = params
        self.model = None
        self.codebook = Codebook()
        self.history = []
        self.num_features = 0
        self.extracted = False
        self.data = list(datasets)

        labels = [d.label for d in self.data]
        if len(set(labels)) != len(labels):
            raise ManifestMismatch(f"Every class needs its own label, got {labels}")

        self.objects = {split: [] for split in SPLITS}
        for dataset in self.data:
            for split in SPLITS:
                self.objects[split].append(ObjectCollection(dataset.size(split), name=f"{dataset.name}/{split}"))

    def collection(self, split, i):
        return self.objects[split][i]

    def collections(self):
        for split in SPLITS:
            for i, obj in enumerate(self.objects[split]):
                yield split, i, obj

    # --- Feature extraction ---
    def _check_length(self, descriptors, dataset, split, slot):
        # empty sets carry no length, they are reshaped by _fill_empty_slots
        if descriptors.size == 0:
            return
        expected = self.feature_length
        if expected is None and descriptors.ndim == 2:
            self.params.feature_length = expected = descriptors.shape[1]
        if descriptors.ndim != 2 or descriptors.shape[1] != expected:
            raise DescriptorLengthMismatch(f"Class {dataset.name}, {split} image {slot}: descriptors of shape "
                                           f"{descriptors.shape}, expected length {expected}")

    def _empty_descriptors(self):
        return np.zeros((0, self.feature_length or 0), dtype=np.float32)

    def _fill_empty_slots(self):
        '''Give every empty descriptor set the (0, L) shape once L is known.'''
        if self.feature_length is None:
            return
        for _, _, obj in self.collections():
            for slot, descriptors in enumerate(obj.descriptors):
                if descriptors is not None and descriptors.size == 0 and descriptors.shape != (0, self.feature_length):
                    obj.set_descriptors(slot, self._empty_descriptors())

    def process_dataset(self, dataset, obj):
        '''Extract the descriptors of every image of one class into its three collections.'''
        for split in SPLITS:
            paths = dataset.split_paths(split)
            if not paths:
                continue
            if self.params.n_jobs != 1 and len(paths) > 1:
                results = Parallel(n_jobs=self.params.n_jobs)(delayed(_extract_image)(self.extractor, p)
                                                             for p in paths)
            else:
                iterator = tqdm(paths, desc=f"Loading {SPLIT_NAMES[split]} images ({dataset.name})") \
                    if self.verbose else paths
                results = [_extract_image(self.extractor, p) for p in iterator]

            collection = self.objects[split][obj]
            for slot, (descriptors, error) in enumerate(results):
                if error is not None:
                    print(f"Warning: skipping {SPLIT_NAMES[split]} image of class {dataset.name}: {error}")
                    descriptors = self._empty_descriptors()
                descriptors = np.asarray(descriptors, dtype=np.float32)
                self._check_length(descriptors, dataset, split, slot)
                collection.set_descriptors(slot, descriptors)

    def extract_features(self):
        for i, dataset in enumerate(self.data):
            self.process_dataset(dataset, i)
        self._fill_empty_slots()
        self.extracted = True
        self.num_features = sum(obj.feature_count() for obj in self.objects['train'])

        if self.verbose:
            print(f"Total number of training features: {self.num_features}")
        return self.num_features

    def training_descriptors(self):
        '''All training descriptors stacked; validation and test images never reach the clusterer.'''
        sets = [d for obj in self.objects['train'] for d in obj.descriptors if d is not None and d.shape[0] > 0]
        if not sets:
            raise ClusteringFailure("No training descriptors to cluster")
        return np.vstack(sets)

    # --- Codebook ---
    def invalidate_histograms(self):
        for _, _, obj in self.collections():
            obj.invalidate()

    def cluster_features(self, num_clusters=None):
        k = self.params.clust_params.num_clusters if num_clusters is None else num_clusters
        if self.verbose:
            print(f"Clustering using {self.clusterer.name} with {k} clusters...")
        self.codebook.build(self.training_descriptors(), k, self.clusterer)
        # histograms and model built against the previous codebook are no longer valid
        self.invalidate_histograms()
        self.model = None
        return self.codebook

    def build_histograms(self, splits=SPLITS):
        for i, dataset in enumerate(self.data):
            for split in splits:
                self.objects[split][i].encode_all(self.codebook, dataset.label, n_jobs=self.params.n_jobs)

    # --- Classifier ---
    def training_matrix(self):
        X, y = [], []
        for i, dataset in enumerate(self.data):
            obj = self.objects['train'][i]
            if len(obj) == 0:
                continue
            X.append(obj.matrix(self.codebook.size))
            y.append(np.full(len(obj), dataset.label))
        if not X:
            raise EmptyCollection("No training images")
        return np.vstack(X), np.concatenate(y)

    def train(self):
        X, y = self.training_matrix()
        # the old model goes before the new one is trained
        self.model = None
        self.model = self.classifier.fit(X, y)
        return self.model

    def test_set(self, obj, label):
        if self.model is None:
            raise NotTrained("Train the classifier before testing")
        result = obj.score_against(self.classifier, self.model, label, self.codebook.size)
        if self.verbose:
            print(f"Accuracy for {label}: {result:.4f}")
        return result

    def validation_accuracy(self):
        '''Average over classes of the per-class validation accuracy.'''
        scores = [self.test_set(self.objects['valid'][i], d.label) for i, d in enumerate(self.data)]
        return float(np.mean(scores))

    # --- Dictionary size search ---
    def optimize_dictionary(self):
        opt = self.params.opt_params
        num_clusters = self.params.clust_params.num_clusters
        best_codebook = None
        best_score = -np.inf
        self.history = []

        print("\nOptimizing the dictionary for the Bag of Features...")

        for step in range(opt.num_steps):
            for repeat in range(opt.cluster_repeat):
                try:
                    self.cluster_features(num_clusters)
                    if self.verbose:
                        print("Building the histograms of features...")
                    self.build_histograms(('train', 'valid'))
                    self.train()
                except (ClusteringFailure, InfeasibleParameters) as e:
                    print(f"Step {step}, repeat {repeat} (K={num_clusters}) failed: {e}")
                    self.history.append(IterationResult(step, repeat, num_clusters, None, best_score,
                                                        NOT_IMPROVED, str(e)))
                    continue

                score = self.validation_accuracy()
                if score > best_score:
                    best_score = score
                    best_codebook = self.codebook.snapshot()
                    status = IMPROVED
                else:
                    status = NOT_IMPROVED
                self.history.append(IterationResult(step, repeat, num_clusters, score, best_score, status, None))

                if self.verbose:
                    print(f"K={num_clusters} Average accuracy: {score:.4f} (Best so far: {best_score:.4f})")
                    print()
            num_clusters += opt.cluster_step

        if best_codebook is None:
            raise NoFeasibleCodebook(f"All {opt.num_steps * opt.cluster_repeat} dictionary iterations failed")

        if self.verbose:
            print(f"Best validation results: {best_score:.4f} with {best_codebook.size} clusters")

        self.codebook = best_codebook
        self.params.clust_params.num_clusters = best_codebook.size
        self.invalidate_histograms()
        self.model = None
        return best_score

    def build_bof(self):
        if not self.extracted:
            self.extract_features()

        if self.params.opt_params.num_steps:
            self.optimize_dictionary()
        else:
            self.cluster_features()

        if self.verbose:
            print("Building the histograms...")
        self.build_histograms(SPLITS)
        return self.codebook

    # --- Evaluation ---
    def test_dataset(self):
        '''Accuracy of every class on each of its non-empty splits.'''
        if self.model is None:
            raise NotTrained("Train the classifier before testing")
        results = {}
        for i, dataset in enumerate(self.data):
            for split in SPLITS:
                obj = self.objects[split][i]
                if len(obj) == 0:
                    continue
                accuracy = obj.score_against(self.classifier, self.model, dataset.label, self.codebook.size)
                results[(dataset.name, split)] = accuracy
                print(f"{SPLIT_NAMES[split].capitalize()} dataset accuracy for class {dataset.name}: {accuracy:.4f}")
        return results

    def evaluate(self, split='test'):
        if self.model is None:
            raise NotTrained("Train the classifier before evaluating")
        y_true, y_pred = [], []
        for i, dataset in enumerate(self.data):
            obj = self.objects[split][i]
            if len(obj) == 0:
                continue
            y_pred.append(obj.predict(self.classifier, self.model, self.codebook.size))
            y_true.append(np.full(len(obj), dataset.label))
        if not y_true:
            raise EmptyCollection(f"No {SPLIT_NAMES[split]} images to evaluate")
        y_true = np.concatenate(y_true)
        y_pred = np.concatenate(y_pred)

        labels = [d.label for d in self.data]
        names = [str(d.name) for d in self.data]
        return {
            'y_true': y_true,
            'y_pred': y_pred,
            'accuracy': accuracy_score(y_true, y_pred),
            'report': classification_report(y_true, y_pred, labels=labels, target_names=names, zero_division=0),
            'confusion_matrix': confusion_matrix(y_true, y_pred, labels=labels),
            'class_names': names,
        }

    def predict_image(self, image_path):
        if self.model is None:
            raise NotTrained("Train the classifier before predicting")
        descriptors = self.extractor.extract(image_path)
        histogram = encode(descriptors, self.codebook, None)
        return self.classifier.predict(self.model, histogram.bins.reshape(1, -1))[0]

    # --- Persistence ---
    def model_path(self, directory):
        extension = '.xml' if self.classifier.name == 'opencv' else '.joblib'
        return os.path.join(directory, f"model_{self.classifier.name}{extension}")

    def save(self, directory):
        os.makedirs(directory, exist_ok=True)
        self.codebook.save(os.path.join(directory, 'codebook.joblib'))
        save_parameters(self.params, os.path.join(directory, 'params.yaml'))
        if self.model is not None:
            self.classifier.save_model(self.model, self.model_path(directory))
        if self.verbose:
            print(f"Saved codebook and model to {directory}")

    def load(self, directory):
        self.codebook = Codebook.load(os.path.join(directory, 'codebook.joblib'))
        self.params.clust_params.num_clusters = self.codebook.size
        self.invalidate_histograms()
        path = self.model_path(directory)
        self.model = self.classifier.load_model(path) if os.path.exists(path) else None

    def save_features(self, path):
        save_descriptors(path, {(split, i): obj.descriptors for split, i, obj in self.collections()})
        if self.verbose:
            print(f"Saved descriptors to {path}")

    def load_features(self, path):
        stored = load_descriptors(path)
        for split, i, obj in self.collections():
            if len(obj) == 0:
                continue
            sets = stored.get((split, i))
            if sets is None or len(sets) != len(obj):
                raise ManifestMismatch(f"{path} does not match the manifest for class "
                                       f"{self.data[i].name} ({split})")
            for slot, descriptors in enumerate(sets):
                if descriptors is None:
                    descriptors = self._empty_descriptors()
                self._check_length(descriptors, self.data[i], split, slot)
                obj.set_descriptors(slot, descriptors)
        self._fill_empty_slots()
        self.extracted = True
        self.num_features = sum(obj.feature_count() for obj in self.objects['train'])
        return self.num_features
