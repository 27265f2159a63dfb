#Code by Christopher Kaelin, 2025
# This code is licensed under the MIT License - see the LICENSE file for details.
'''
Configuration of the BoVW pipeline.

The module level constants are the defaults. A run is configured by a BoFParameters object,
either built in code or loaded from a YAML file with load_parameters().
'''
import yaml

from .exceptions import ConfigError

# --- Feature Parameters ---
FEATURE_TYPE = 'sift'  # 'sift', 'orb' or 'surf'
SIFT_NFEATURES = 0  # 0 keeps every keypoint
ORB_NFEATURES = 1000

# --- K-Means Parameters ---
CLUSTER_TYPE = 'minibatch'  # 'minibatch', 'kmeans' or 'opencv'
VOCABULARY_SIZE = 1000  # (k) Number of visual words
MINIBATCH_SIZE = 1024 * 4
RANDOM_SEED = 42

# --- Classifier Parameters ---
CLASSIFIER_TYPE = 'libsvm'  # 'libsvm', 'opencv' or 'xgboost'

FEATURE_TYPES = ('sift', 'orb', 'surf')
CLUSTER_TYPES = ('minibatch', 'kmeans', 'opencv')
CLASSIFIER_TYPES = ('libsvm', 'opencv', 'xgboost')


class ParamGroup():
    '''Plain attribute holder which can be updated from a mapping.'''
    def update(self, values):
        for key, value in values.items():
            if not hasattr(self, key):
                raise ConfigError(f"Unknown parameter '{key}' for {type(self).__name__}")
            setattr(self, key, value)
        return self

    def as_dict(self):
        return dict(vars(self))

    def __repr__(self):
        items = ', '.join(f"{k}={v!r}" for k, v in vars(self).items())
        return f"{type(self).__name__}({items})"


class SiftParams(ParamGroup):
    def __init__(self):
        self.nfeatures = SIFT_NFEATURES
        self.detection_threshold = 0.04  # contrastThreshold
        self.edge_threshold = 10.0


class OrbParams(ParamGroup):
    def __init__(self):
        self.nfeatures = ORB_NFEATURES


class SurfParams(ParamGroup):
    def __init__(self):
        self.hessian_threshold = 500.0
        self.n_octaves = 4
        self.n_layers = 2
        self.extended = True


class ClusterParams(ParamGroup):
    def __init__(self):
        self.num_clusters = VOCABULARY_SIZE
        self.num_pass = 1  # k-means restarts (n_init / attempts)
        self.max_iter = 100
        self.batch_size = MINIBATCH_SIZE
        self.eps = 1e-4
        self.random_state = RANDOM_SEED


class SVMParams(ParamGroup):
    def __init__(self):
        self.type = 'c_svc'  # 'c_svc' or 'nu_svc'
        self.kernel = 'rbf'  # 'linear', 'poly', 'rbf' or 'sigmoid'
        self.degree = 3
        self.gamma = 'scale'
        self.coef0 = 0.0
        self.C = 1.0
        self.nu = 0.5
        self.p = 0.1
        self.cache = 200  # MB
        self.eps = 1e-3
        self.shrinking = True
        self.probability = False
        self.iterations = 1000  # OpenCV termination criteria
        self.k_fold = 0  # OpenCV trainAuto folds, 0 or 1 trains with the given parameters
        self.cross_validation = 0  # libsvm style cross validation report, 0 disables it


class XGBParams(ParamGroup):
    def __init__(self):
        self.n_estimators = 200
        self.learning_rate = 0.1
        self.max_depth = 5
        self.device = 'cpu'  # 'cuda' for GPU
        self.random_state = RANDOM_SEED


class OptimizationParams(ParamGroup):
    def __init__(self):
        self.num_steps = 0  # 0 disables the dictionary search
        self.cluster_repeat = 1
        self.cluster_step = 100


class BoFParameters(ParamGroup):
    GROUPS = ('sift_params', 'orb_params', 'surf_params', 'clust_params',
              'svm_params', 'xgb_params', 'opt_params')

    def __init__(self, **kwargs):
        self.feature_type = FEATURE_TYPE
        self.cluster_type = CLUSTER_TYPE
        self.classifier_type = CLASSIFIER_TYPE
        self.feature_length = None  # taken from the extractor when None
        self.n_jobs = 1
        self.verbose = True
        self.preprocess = None  # optional callable applied to every grayscale image

        self.sift_params = SiftParams()
        self.orb_params = OrbParams()
        self.surf_params = SurfParams()
        self.clust_params = ClusterParams()
        self.svm_params = SVMParams()
        self.xgb_params = XGBParams()
        self.opt_params = OptimizationParams()

        self.update(kwargs)

    def update(self, values):
        for key, value in values.items():
            if key in self.GROUPS and isinstance(value, dict):
                getattr(self, key).update(value)
            elif hasattr(self, key):
                setattr(self, key, value)
            else:
                raise ConfigError(f"Unknown parameter '{key}'")
        self.validate()
        return self

    def validate(self):
        if self.feature_type not in FEATURE_TYPES:
            raise ConfigError(f"feature_type must be one of {FEATURE_TYPES}, got {self.feature_type!r}")
        if self.cluster_type not in CLUSTER_TYPES:
            raise ConfigError(f"cluster_type must be one of {CLUSTER_TYPES}, got {self.cluster_type!r}")
        if self.classifier_type not in CLASSIFIER_TYPES:
            raise ConfigError(f"classifier_type must be one of {CLASSIFIER_TYPES}, got {self.classifier_type!r}")
        if self.opt_params.num_steps < 0 or self.opt_params.cluster_repeat < 1:
            raise ConfigError("num_steps must be >= 0 and cluster_repeat >= 1")

    def as_dict(self):
        out = {}
        for key, value in vars(self).items():
            if key == 'preprocess':
                continue
            out[key] = value.as_dict() if isinstance(value, ParamGroup) else value
        return out


def load_parameters(path):
    '''
    path:       YAML file; top level keys are BoFParameters attributes, nested mappings
                update the parameter groups (e.g. clust_params: {num_clusters: 400})
    '''
    with open(path, 'r') as f:
        values = yaml.safe_load(f) or {}
    if not isinstance(values, dict):
        raise ConfigError(f"{path} does not contain a mapping of parameters")
    return BoFParameters(**values)


def save_parameters(params, path):
    with open(path, 'w') as f:
        yaml.safe_dump(params.as_dict(), f, sort_keys=False)
