"""
Prediction Loop Module

Classifies live detection results at a bounded rate and only surfaces
predictions that clear the confidence threshold.
"""

import logging
import threading
import time
from collections import Counter, deque
from typing import Callable, List, Optional, Dict, Sequence

from Vision_Engine import config
from Vision_Engine.core.keypoints import Pose, extract_pose_features
from Vision_Engine.core.pose_classifier import ModelRegistry, PoseClassifier, PredictionResult

logger = logging.getLogger(__name__)

SENTINEL_LABELS = frozenset([
    'no_model', 'no_pose', 'invalid_features', 'classification_error', 'no_results', 'exception'
])


def classify_pose(poses: Sequence[Pose], classifier: Optional[PoseClassifier]) -> PredictionResult:
    """Best prediction for the first pose, or a sentinel label with zero confidence."""
    if classifier is None or not classifier.is_trained:
        return PredictionResult('no_model', 0.0)
    if not poses or not poses[0].keypoints:
        return PredictionResult('no_pose', 0.0)

    inputs = extract_pose_features(poses, classifier.input_size)
    if len(inputs) != classifier.input_size:
        return PredictionResult('invalid_features', 0.0)

    try:
        results = classifier.classify(inputs)
    except ValueError as e:
        logger.error("Classification error: %s", e)
        return PredictionResult('classification_error', 0.0)
    except Exception:
        logger.exception("Classification exception")
        return PredictionResult('exception', 0.0)

    if not results:
        return PredictionResult('no_results', 0.0)
    best = results[0]
    return PredictionResult(best.label or 'unknown', best.confidence or 0.0)


def confidence_band(confidence: float) -> str:
    if confidence > 0.8:
        return 'high'
    elif confidence > 0.6:
        return 'medium'
    elif confidence > 0.4:
        return 'low'
    return 'very_low'


class PredictionLoop:
    """Time-debounced, confidence-gated classification of the latest poses."""

    def __init__(self, registry: ModelRegistry, interval_ms: float = config.PREDICTION_INTERVAL_MS,
                 confidence_threshold: float = config.CONFIDENCE_THRESHOLD,
                 history_size: int = config.PREDICTION_HISTORY_SIZE,
                 clear_after_ms: float = config.CLEAR_PREDICTION_AFTER_MS,
                 clock: Callable[[], float] = time.time):
        self.registry = registry
        self.interval_ms = interval_ms
        self.confidence_threshold = confidence_threshold
        self.clear_after_ms = clear_after_ms
        self.current: Optional[PredictionResult] = None
        self.history: deque = deque(maxlen=history_size)
        self.total_predictions = 0

        self._clock = clock
        self._poses: List[Pose] = []
        self._last_prediction_ms = 0.0
        self._lock = threading.Lock()

    def _now_ms(self) -> float:
        return self._clock() * 1000

    def update(self, poses: Sequence[Pose]) -> Optional[PredictionResult]:
        """Detection listener: remember the poses and classify if due."""
        with self._lock:
            self._poses = list(poses or [])
        return self.tick()

    def tick(self) -> Optional[PredictionResult]:
        """Returns the newly surfaced prediction, if any."""
        now = self._now_ms()
        with self._lock:
            if now - self._last_prediction_ms < self.interval_ms:
                return None

            model = self.registry.get()
            if model is None or not model.is_trained:
                return None

            if not self._poses:
                if self.current is not None and now - self.current.timestamp > self.clear_after_ms:
                    self.current = None
                return None

            self._last_prediction_ms = now
            poses = self._poses

        result = classify_pose(poses, model)
        if result.label in SENTINEL_LABELS or result.confidence < self.confidence_threshold:
            return None

        prediction = PredictionResult(result.label, result.confidence, timestamp=now)
        with self._lock:
            self.current = prediction
            self.history.appendleft(prediction)
            self.total_predictions += 1
        return prediction

    # -------------------------------------------------------------------------
    # Controls
    # -------------------------------------------------------------------------

    def set_interval(self, interval_ms: float):
        if interval_ms <= 0:
            raise ValueError("Prediction interval must be positive")
        self.interval_ms = interval_ms

    def set_confidence_threshold(self, threshold: float):
        if not 0.1 <= threshold <= 1.0:
            raise ValueError("Confidence threshold must be between 0.1 and 1.0")
        self.confidence_threshold = threshold

    def clear_history(self):
        with self._lock:
            self.history.clear()
            self.total_predictions = 0
            self.current = None

    def clear_current(self):
        with self._lock:
            self.current = None

    def restart(self):
        """Drop the current prediction and classify on the next tick."""
        with self._lock:
            self.current = None
            self._last_prediction_ms = 0.0
        logger.info("Prediction loop restarted")

    def label_distribution(self) -> Dict[str, int]:
        with self._lock:
            return dict(Counter(p.label for p in self.history))
