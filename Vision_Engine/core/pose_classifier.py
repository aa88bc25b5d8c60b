"""
Pose Classifier Module

Small feed-forward network (scikit-learn MLP) trained interactively on pose
feature vectors, with an XGBoost backend as an alternative. Follows the
add data -> normalize -> train -> classify lifecycle. ModelRegistry holds the
trained model shared between the training and testing views.
"""

import logging
import threading
import time
import warnings
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional, Dict, Any, Sequence

import joblib
import numpy as np
from sklearn.base import clone
from sklearn.exceptions import ConvergenceWarning
from sklearn.metrics import accuracy_score, log_loss
from sklearn.model_selection import StratifiedKFold, cross_val_score
from sklearn.neural_network import MLPClassifier
from sklearn.pipeline import Pipeline
from sklearn.preprocessing import StandardScaler
from xgboost import XGBClassifier

from Vision_Engine import config
from Vision_Engine.errors import ModelNotTrainedError, TrainingError

logger = logging.getLogger(__name__)

EpochCallback = Callable[[int, int, Optional[float]], None]


# -----------------------------------------------------------------------------
# Data Classes
# -----------------------------------------------------------------------------

@dataclass
class PredictionResult:
    label: str
    confidence: float
    timestamp: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {'label': self.label, 'confidence': self.confidence, 'timestamp': self.timestamp}


@dataclass
class TrainingReport:
    """Summary of one training run."""
    num_samples: int
    num_classes: int
    labels: List[str]
    epochs: int
    final_loss: Optional[float]
    train_accuracy: float
    duration_seconds: float
    cv_accuracy_mean: Optional[float] = None
    cv_accuracy_std: Optional[float] = None
    trained_at: str = field(default_factory=lambda: datetime.now().isoformat())

    def to_dict(self) -> Dict[str, Any]:
        return {
            'num_samples': self.num_samples,
            'num_classes': self.num_classes,
            'labels': self.labels,
            'epochs': self.epochs,
            'final_loss': self.final_loss,
            'train_accuracy': self.train_accuracy,
            'duration_seconds': self.duration_seconds,
            'cv_accuracy_mean': self.cv_accuracy_mean,
            'cv_accuracy_std': self.cv_accuracy_std,
            'trained_at': self.trained_at
        }


# -----------------------------------------------------------------------------
# Classifier
# -----------------------------------------------------------------------------

class PoseClassifier:
    """Buffers labelled feature vectors and trains a classifier on them."""
    BACKENDS = ('mlp', 'xgboost')

    def __init__(self, input_size: int = config.FEATURE_SIZE, epochs: int = config.EPOCHS,
                 learning_rate: float = config.LEARNING_RATE, hidden_units: int = config.HIDDEN_UNITS,
                 batch_size: int = config.BATCH_SIZE, backend: str = config.CLASSIFIER_BACKEND,
                 model_path: Optional[Path] = None):
        if backend not in self.BACKENDS:
            raise ValueError(f"Unknown backend '{backend}', expected one of {self.BACKENDS}")

        self.input_size = input_size
        self.epochs = epochs
        self.learning_rate = learning_rate
        self.hidden_units = hidden_units
        self.batch_size = batch_size
        self.backend = backend

        self.pipeline: Optional[Pipeline] = None
        self.classes: List[str] = []
        self.trained_at: Optional[str] = None
        self._scaler: Optional[StandardScaler] = None
        self._inputs: List[List[float]] = []
        self._labels: List[str] = []
        self._is_trained = False
        self._is_normalized = False
        self._lock = threading.RLock()

        if model_path and Path(model_path).exists():
            self.load_model(model_path)

    # -------------------------------------------------------------------------
    # Training buffer
    # -------------------------------------------------------------------------

    def add_data(self, inputs: Sequence[float], label: str):
        """Append one labelled feature vector to the training buffer."""
        if len(inputs) != self.input_size:
            raise ValueError(f"Expected {self.input_size} inputs, got {len(inputs)}")
        label = str(label).strip()
        if not label:
            raise ValueError("Label must not be empty")

        with self._lock:
            self._inputs.append([float(v) for v in inputs])
            self._labels.append(label)
            self._is_normalized = False

    def remove_label(self, label: str) -> int:
        """Drop all buffered samples for a label. Returns how many were removed."""
        with self._lock:
            keep = [i for i, l in enumerate(self._labels) if l != label]
            removed = len(self._labels) - len(keep)
            self._inputs = [self._inputs[i] for i in keep]
            self._labels = [self._labels[i] for i in keep]
            if removed:
                self._is_normalized = False
        return removed

    def normalize_data(self):
        """Fit the feature scaler on the buffered data."""
        with self._lock:
            if not self._inputs:
                raise TrainingError("No training data found. Record some poses first.")
            self._scaler = StandardScaler().fit(np.array(self._inputs, dtype=float))
            self._is_normalized = True

    # -------------------------------------------------------------------------
    # Training
    # -------------------------------------------------------------------------

    def train(self, on_epoch: Optional[EpochCallback] = None, validate: bool = False) -> TrainingReport:
        """Train on the buffered data. on_epoch(epoch, total, loss) reports progress."""
        with self._lock:
            X_raw = np.array(self._inputs, dtype=float)
            labels = list(self._labels)

        if not labels:
            raise TrainingError("No training data found. Record some poses first.")
        classes = sorted(set(labels))
        if len(classes) < 2:
            raise TrainingError(f"Need at least 2 different poses to train, have {len(classes)}: "
                                f"{', '.join(classes)}")

        if not self._is_normalized:
            self.normalize_data()

        y = np.array([classes.index(l) for l in labels])
        X = self._scaler.transform(X_raw)

        start = time.time()
        logger.info("Training %s classifier on %d samples for %d poses", self.backend, len(y), len(classes))
        if self.backend == 'mlp':
            estimator, final_loss = self._fit_mlp(X, y, len(classes), on_epoch)
        else:
            estimator, final_loss = self._fit_xgboost(X, y, on_epoch)

        pipeline = Pipeline([('scaler', self._scaler), ('classifier', estimator)])
        train_accuracy = float(accuracy_score(y, pipeline.predict(X_raw)))

        report = TrainingReport(
            num_samples=len(y),
            num_classes=len(classes),
            labels=classes,
            epochs=self.epochs,
            final_loss=final_loss,
            train_accuracy=train_accuracy,
            duration_seconds=time.time() - start
        )

        if validate:
            scores = self._cross_validate(X_raw, y)
            if scores is not None:
                report.cv_accuracy_mean = float(np.mean(scores))
                report.cv_accuracy_std = float(np.std(scores))

        with self._lock:
            self.pipeline = pipeline
            self.classes = classes
            self.trained_at = report.trained_at
            self._is_trained = True

        logger.info("Training complete: accuracy=%.3f loss=%s", train_accuracy, final_loss)
        return report

    def _create_estimator(self, num_samples: int):
        if self.backend == 'mlp':
            return MLPClassifier(
                hidden_layer_sizes=(self.hidden_units,),
                learning_rate_init=self.learning_rate,
                batch_size=max(1, min(self.batch_size, num_samples)),
                max_iter=self.epochs,
                solver='adam',
                random_state=42
            )
        return XGBClassifier(
            n_estimators=150,
            max_depth=6,
            learning_rate=0.1,
            min_child_weight=2,
            subsample=0.8,
            colsample_bytree=0.8,
            reg_alpha=0.1,
            reg_lambda=1.0,
            random_state=42,
            n_jobs=-1,
            verbosity=0
        )

    def _fit_mlp(self, X: np.ndarray, y: np.ndarray, num_classes: int, on_epoch: Optional[EpochCallback]):
        model = self._create_estimator(len(y))
        class_ids = np.arange(num_classes)
        rng = np.random.default_rng(42)

        for epoch in range(1, self.epochs + 1):
            order = rng.permutation(len(y))
            model.partial_fit(X[order], y[order], classes=class_ids)
            if on_epoch:
                on_epoch(epoch, self.epochs, float(model.loss_))
        return model, float(model.loss_)

    def _fit_xgboost(self, X: np.ndarray, y: np.ndarray, on_epoch: Optional[EpochCallback]):
        model = self._create_estimator(len(y))
        model.fit(X, y)
        loss = float(log_loss(y, model.predict_proba(X), labels=np.unique(y)))
        if on_epoch:
            on_epoch(self.epochs, self.epochs, loss)
        return model, loss

    def _cross_validate(self, X: np.ndarray, y: np.ndarray) -> Optional[np.ndarray]:
        folds = min(5, int(np.min(np.bincount(y))))
        if len(y) < 10 or folds < 2:
            return None
        pipeline = Pipeline([('scaler', StandardScaler()),
                             ('classifier', clone(self._create_estimator(len(y))))])
        cv = StratifiedKFold(n_splits=folds, shuffle=True, random_state=42)
        with warnings.catch_warnings():
            warnings.simplefilter('ignore', category=ConvergenceWarning)
            return cross_val_score(pipeline, X, y, cv=cv, scoring='accuracy')

    # -------------------------------------------------------------------------
    # Inference
    # -------------------------------------------------------------------------

    def classify(self, inputs: Sequence[float]) -> List[PredictionResult]:
        """Return every class with its probability, most likely first."""
        with self._lock:
            if not self._is_trained or self.pipeline is None:
                raise ModelNotTrainedError("Model is not trained")
            pipeline, classes = self.pipeline, list(self.classes)

        X = np.asarray(inputs, dtype=float).reshape(1, -1)
        if X.shape[1] != self.input_size:
            raise ValueError(f"Expected {self.input_size} inputs, got {X.shape[1]}")

        probabilities = pipeline.predict_proba(X)[0]
        results = [PredictionResult(label, float(prob)) for label, prob in zip(classes, probabilities)]
        return sorted(results, key=lambda r: r.confidence, reverse=True)

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    def reset(self):
        with self._lock:
            self._inputs = []
            self._labels = []
            self._scaler = None
            self.pipeline = None
            self.classes = []
            self.trained_at = None
            self._is_trained = False
            self._is_normalized = False

    def save_model(self, path: Path):
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with self._lock:
            joblib.dump({
                'pipeline': self.pipeline,
                'classes': self.classes,
                'is_trained': self._is_trained,
                'input_size': self.input_size,
                'backend': self.backend,
                'trained_at': self.trained_at
            }, path)

    def load_model(self, path: Path):
        data = joblib.load(path)
        with self._lock:
            self.pipeline = data['pipeline']
            self.classes = list(data['classes'])
            self.input_size = data.get('input_size', self.input_size)
            self.backend = data.get('backend', self.backend)
            self.trained_at = data.get('trained_at')
            self._is_trained = data.get('is_trained', True)

    @property
    def is_trained(self) -> bool:
        return self._is_trained

    @property
    def is_normalized(self) -> bool:
        return self._is_normalized

    @property
    def sample_count(self) -> int:
        return len(self._labels)

    @property
    def labels(self) -> List[str]:
        return sorted(set(self._labels))

    @property
    def label_counts(self) -> Dict[str, int]:
        return dict(Counter(self._labels))


# -----------------------------------------------------------------------------
# Shared model handle
# -----------------------------------------------------------------------------

class ModelRegistry:
    """Trained model shared across views, backed by a model file on disk."""

    NO_MODEL = "No trained model found. Please train a model first."

    def __init__(self, model_path: Optional[Path] = None):
        self.model_path = Path(model_path) if model_path else None
        self._model: Optional[PoseClassifier] = None
        self._trained_at: Optional[float] = None
        self._status = self.NO_MODEL
        self._lock = threading.Lock()

    def publish(self, classifier: PoseClassifier, persist: bool = True):
        if not classifier.is_trained:
            raise ModelNotTrainedError("Only trained models can be shared")
        with self._lock:
            self._model = classifier
            self._trained_at = time.time()
            self._status = "Model loaded from training session"
        if persist and self.model_path:
            classifier.save_model(self.model_path)
            logger.info("Model saved to %s", self.model_path)

    def get(self) -> Optional[PoseClassifier]:
        return self._model

    def clear(self, delete_file: bool = False):
        with self._lock:
            self._model = None
            self._trained_at = None
            self._status = "Model cleared. Please train a new model."
        if delete_file and self.model_path and self.model_path.exists():
            self.model_path.unlink()

    def refresh(self) -> Optional[PoseClassifier]:
        """Return the shared model, loading it from disk when none is held."""
        with self._lock:
            if self._model is not None:
                self._status = "Model refreshed from training session"
                return self._model

            if self.model_path and self.model_path.exists():
                try:
                    classifier = PoseClassifier(model_path=self.model_path)
                except (OSError, KeyError, ValueError) as e:
                    logger.error("Failed to load model from %s: %s", self.model_path, e)
                    self._status = "Model file could not be loaded. Please retrain."
                    return None
                if classifier.is_trained:
                    self._model = classifier
                    self._trained_at = self.model_path.stat().st_mtime
                    self._status = f"Model loaded from {self.model_path.name}"
                    return classifier

            self._status = self.NO_MODEL
            return None

    @property
    def status(self) -> str:
        return self._status

    @property
    def is_available(self) -> bool:
        return self._model is not None

    @property
    def trained_at(self) -> Optional[float]:
        return self._trained_at
