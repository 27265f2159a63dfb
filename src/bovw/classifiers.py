#Code by Christopher Kaelin, 2025
# This code is licensed under the MIT License - see the LICENSE file for details.
'''
Classifier backends trained on BoVW histograms.

Every backend is stateless: fit() returns a model handle owned by the caller and predict()
takes that handle back. Training failures raise InfeasibleParameters.
'''
import cv2
import joblib
import numpy as np
import xgboost as xgb
from scipy.sparse import csr_matrix
from sklearn.model_selection import cross_val_score
from sklearn.preprocessing import LabelEncoder
from sklearn.svm import SVC, NuSVC

from .config import SVMParams, XGBParams
from .exceptions import BoFError, InfeasibleParameters, NotTrained
from .histogram import encode_sparse


def _opencv_ml():
    if not hasattr(cv2, 'ml'):
        raise BoFError("The opencv classifier needs an OpenCV 4 build with the cv2.ml module")
    return cv2.ml


class BaseClassifier():
    name = 'base'

    def __init__(self, params=None, verbose=False):
        self.params = params
        self.verbose = verbose

    def encode_sparse(self, histogram):
        return encode_sparse(histogram)

    def fit(self, X, y):
        raise NotImplementedError

    def predict(self, model, X):
        raise NotImplementedError

    def _check_model(self, model):
        if model is None:
            raise NotTrained(f"The {self.name} classifier has not been trained")

    def save_model(self, model, path):
        self._check_model(model)
        joblib.dump(model, path)

    def load_model(self, path):
        return joblib.load(path)


class LibSVMClassifier(BaseClassifier):
    '''SVC/NuSVC trained on sparse input, zero bins are never stored.'''
    name = 'libsvm'

    def __init__(self, params=None, verbose=False):
        super().__init__(params if params is not None else SVMParams(), verbose)

    def to_sparse(self, X):
        X = np.atleast_2d(X)
        data, indices, indptr = [], [], [0]
        for row in X:
            for index, value in self.encode_sparse(row):
                if index == -1:
                    break
                indices.append(index - 1)
                data.append(value)
            indptr.append(len(indices))
        return csr_matrix((np.asarray(data, dtype=np.float64), np.asarray(indices, dtype=np.int32), indptr),
                          shape=X.shape)

    def _estimator(self):
        p = self.params
        common = dict(kernel=p.kernel, degree=p.degree, gamma=p.gamma, coef0=p.coef0,
                      cache_size=p.cache, tol=p.eps, shrinking=p.shrinking, probability=p.probability)
        if p.type == 'nu_svc':
            return NuSVC(nu=p.nu, **common)
        return SVC(C=p.C, **common)

    def fit(self, X, y):
        if self.verbose:
            print("Training SVM Classifier (libSVM)...")
        X_sparse = self.to_sparse(X)
        y = np.asarray(y)
        if np.unique(y).shape[0] < 2:
            raise InfeasibleParameters("SVM training needs at least two classes")
        try:
            if self.params.cross_validation > 1:
                scores = cross_val_score(self._estimator(), X_sparse, y, cv=self.params.cross_validation)
                if self.verbose:
                    print(f"Cross validation accuracy ({self.params.cross_validation} folds): {scores.mean():.4f}")
            model = self._estimator().fit(X_sparse, y)
        except ValueError as e:
            print("SVM Parameters are not feasible!")
            raise InfeasibleParameters(str(e)) from e
        if self.verbose:
            print("Training successful!")
        return model

    def predict(self, model, X):
        self._check_model(model)
        return model.predict(self.to_sparse(X))


class OpenCVSVMClassifier(BaseClassifier):
    name = 'opencv'

    # names in cv2.ml, looked up when training so the module imports without the ml build
    SVM_TYPES = {'c_svc': 'SVM_C_SVC', 'nu_svc': 'SVM_NU_SVC'}
    KERNELS = {'linear': 'SVM_LINEAR', 'poly': 'SVM_POLY', 'rbf': 'SVM_RBF', 'sigmoid': 'SVM_SIGMOID'}

    def __init__(self, params=None, verbose=False):
        super().__init__(params if params is not None else SVMParams(), verbose)

    def _gamma(self, X):
        gamma = self.params.gamma
        if gamma == 'scale':
            var = X.var()
            return 1.0 / (X.shape[1] * var) if var > 0 else 1.0
        if gamma == 'auto':
            return 1.0 / X.shape[1]
        return float(gamma)

    def fit(self, X, y):
        if self.verbose:
            print("Training SVM Classifier (OpenCV)...")
        p = self.params
        samples = np.ascontiguousarray(X, dtype=np.float32)
        responses = np.asarray(y, dtype=np.int32).reshape(-1, 1)
        if np.unique(responses).shape[0] < 2:
            raise InfeasibleParameters("SVM training needs at least two classes")

        ml = _opencv_ml()
        model = ml.SVM_create()
        try:
            model.setType(getattr(ml, self.SVM_TYPES[p.type]))
            model.setKernel(getattr(ml, self.KERNELS[p.kernel]))
        except KeyError as e:
            raise InfeasibleParameters(f"Unsupported SVM setting {e}") from e
        model.setDegree(p.degree)
        model.setGamma(self._gamma(samples))
        model.setCoef0(p.coef0)
        model.setC(p.C)
        model.setNu(p.nu)
        model.setP(p.p)
        model.setTermCriteria((cv2.TERM_CRITERIA_MAX_ITER + cv2.TERM_CRITERIA_EPS, p.iterations, p.eps))

        try:
            if p.k_fold > 1:
                trained = model.trainAuto(samples, ml.ROW_SAMPLE, responses, p.k_fold)
            else:
                trained = model.train(samples, ml.ROW_SAMPLE, responses)
        except cv2.error as e:
            raise InfeasibleParameters(str(e)) from e
        if not trained:
            print("Training failed...")
            raise InfeasibleParameters("OpenCV SVM training failed")
        if self.verbose:
            print("Training successful...")
        return model

    def predict(self, model, X):
        self._check_model(model)
        _, results = model.predict(np.ascontiguousarray(X, dtype=np.float32))
        return results.ravel().astype(np.int64)

    def save_model(self, model, path):
        self._check_model(model)
        model.save(str(path))

    def load_model(self, path):
        return _opencv_ml().SVM_load(str(path))


class XGBoostClassifier(BaseClassifier):
    '''Gradient boosted trees. The model handle is a (LabelEncoder, XGBClassifier) pair.'''
    name = 'xgboost'

    def __init__(self, params=None, verbose=False):
        super().__init__(params if params is not None else XGBParams(), verbose)

    def fit(self, X, y):
        if self.verbose:
            print("Training XGBoost Classifier...")
        p = self.params
        label_encoder = LabelEncoder()
        y_encoded = label_encoder.fit_transform(np.asarray(y))
        if label_encoder.classes_.shape[0] < 2:
            raise InfeasibleParameters("XGBoost training needs at least two classes")

        booster = xgb.XGBClassifier(n_estimators=p.n_estimators,
                                    learning_rate=p.learning_rate,
                                    max_depth=p.max_depth,
                                    tree_method='hist',
                                    device=p.device,
                                    random_state=p.random_state)
        try:
            booster.fit(np.asarray(X, dtype=np.float32), y_encoded)
        except (xgb.core.XGBoostError, ValueError) as e:
            raise InfeasibleParameters(str(e)) from e
        return label_encoder, booster

    def predict(self, model, X):
        self._check_model(model)
        label_encoder, booster = model
        return label_encoder.inverse_transform(booster.predict(np.asarray(X, dtype=np.float32)).astype(int))


CLASSIFIERS = {
    'libsvm': LibSVMClassifier,
    'opencv': OpenCVSVMClassifier,
    'xgboost': XGBoostClassifier,
}


def get_classifier(params):
    '''Classifier backend selected by params.classifier_type.'''
    group = params.xgb_params if params.classifier_type == 'xgboost' else params.svm_params
    return CLASSIFIERS[params.classifier_type](group, verbose=params.verbose)
