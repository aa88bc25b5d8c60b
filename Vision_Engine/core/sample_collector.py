"""
Sample Collector Module

Turns detection callbacks into labelled training samples. A recording window
opens after a countdown, accepts frames of at least fair quality at a bounded
rate, and closes itself once the per-pose sample count is reached.
"""

import logging
import threading
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional, Dict, Any, Sequence, Tuple

from Vision_Engine import config
from Vision_Engine.core.keypoints import Pose, PoseQuality, assess_pose_quality, extract_pose_features
from Vision_Engine.core.pose_classifier import PoseClassifier, ModelRegistry
from Vision_Engine.errors import CollectionError

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Enums & Data Classes
# -----------------------------------------------------------------------------

class RecordingState(Enum):
    IDLE = "idle"
    COUNTDOWN = "countdown"
    RECORDING = "recording"


@dataclass
class TrainingSession:
    """Samples recorded for one pose name."""
    id: str
    pose: str
    samples_collected: int
    timestamp: float
    quality: PoseQuality
    features: List[List[float]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'pose': self.pose,
            'samples_collected': self.samples_collected,
            'timestamp': self.timestamp,
            'quality': self.quality.value
        }


def _median_quality(qualities: Sequence[PoseQuality]) -> PoseQuality:
    """Median by rank. An empty list counts as fair."""
    if not qualities:
        return PoseQuality.FAIR
    ranks = sorted(q.rank for q in qualities)
    median = ranks[len(ranks) // 2]
    return next(q for q in PoseQuality if q.rank == median)


# -----------------------------------------------------------------------------
# Collector
# -----------------------------------------------------------------------------

class SampleCollector:
    """Gates detection results into the classifier's training buffer."""

    def __init__(self, classifier: PoseClassifier, registry: Optional[ModelRegistry] = None,
                 samples_per_pose: int = config.SAMPLES_PER_POSE,
                 countdown_seconds: float = config.COUNTDOWN_SECONDS,
                 min_sample_interval: float = config.MIN_SAMPLE_INTERVAL,
                 min_samples_per_pose: int = config.MIN_SAMPLES_PER_POSE,
                 min_quality: PoseQuality = PoseQuality.FAIR,
                 clock: Callable[[], float] = time.monotonic):
        self.classifier = classifier
        self.registry = registry
        self.samples_per_pose = samples_per_pose
        self.countdown_seconds = countdown_seconds
        self.min_sample_interval = min_sample_interval
        self.min_samples_per_pose = min_samples_per_pose
        self.min_quality = min_quality

        self.sessions: List[TrainingSession] = []
        self.current_quality = PoseQuality.POOR

        self._clock = clock
        self._state = RecordingState.IDLE
        self._pose_name = ""
        self._countdown_ends: Optional[float] = None
        self._last_sample_time: Optional[float] = None
        self._samples: List[List[float]] = []
        self._qualities: List[PoseQuality] = []
        self._lock = threading.RLock()

    # -------------------------------------------------------------------------
    # Recording window
    # -------------------------------------------------------------------------

    def start_recording(self, pose_name: str):
        """Begin the countdown for a new pose. Raises CollectionError if rejected."""
        pose_name = (pose_name or "").strip()
        if not pose_name:
            raise CollectionError("Please enter a pose name first!")

        with self._lock:
            if self._state is not RecordingState.IDLE:
                raise CollectionError(f"Already {self._state.value} for '{self._pose_name}'")
            if any(s.pose == pose_name for s in self.sessions):
                raise CollectionError("This pose has already been recorded! Use a different name.")

            self._pose_name = pose_name
            self._samples = []
            self._qualities = []
            self._last_sample_time = None
            if self.countdown_seconds > 0:
                self._state = RecordingState.COUNTDOWN
                self._countdown_ends = self._clock() + self.countdown_seconds
            else:
                self._open_window()
        logger.info("Recording requested for pose '%s'", pose_name)

    def _open_window(self):
        self._state = RecordingState.RECORDING
        self._countdown_ends = None
        logger.info("Recording window open for pose '%s'", self._pose_name)

    def _advance(self):
        """Move from countdown to recording once the countdown has elapsed."""
        if self._state is RecordingState.COUNTDOWN and self._clock() >= self._countdown_ends:
            self._open_window()

    def stop_recording(self) -> Optional[TrainingSession]:
        """Cancel a countdown or close the window, keeping any samples taken."""
        with self._lock:
            self._advance()
            if self._state is RecordingState.RECORDING and self._samples:
                return self._close_window()
            self._reset_window()
            return None

    def _close_window(self) -> TrainingSession:
        session = TrainingSession(
            id=uuid.uuid4().hex,
            pose=self._pose_name,
            samples_collected=len(self._samples),
            timestamp=time.time(),
            quality=self._session_quality(),
            features=list(self._samples)
        )
        self.sessions.append(session)
        logger.info("Saved %d samples for pose '%s'", session.samples_collected, session.pose)
        self._reset_window()
        return session

    def _session_quality(self) -> PoseQuality:
        return _median_quality(self._qualities)

    def _reset_window(self):
        self._state = RecordingState.IDLE
        self._pose_name = ""
        self._countdown_ends = None
        self._last_sample_time = None
        self._samples = []
        self._qualities = []

    # -------------------------------------------------------------------------
    # Detection callback
    # -------------------------------------------------------------------------

    def on_poses(self, poses: Sequence[Pose]) -> bool:
        """Detection listener. Returns True when the frame became a sample."""
        quality = assess_pose_quality(poses)
        with self._lock:
            self.current_quality = quality
            self._advance()

            if self._state is not RecordingState.RECORDING:
                return False
            if not poses or not poses[0].keypoints:
                return False
            if len(self._samples) >= self.samples_per_pose:
                return False
            if not quality.at_least(self.min_quality):
                return False

            now = self._clock()
            if self._last_sample_time is not None and now - self._last_sample_time < self.min_sample_interval:
                return False

            features = extract_pose_features(poses, self.classifier.input_size)
            self.classifier.add_data(features, self._pose_name)
            self._samples.append(features)
            self._qualities.append(quality)
            self._last_sample_time = now

            if len(self._samples) >= self.samples_per_pose:
                self._close_window()
            return True

    # -------------------------------------------------------------------------
    # Sessions
    # -------------------------------------------------------------------------

    def remove_session(self, session_id: str) -> bool:
        with self._lock:
            session = next((s for s in self.sessions if s.id == session_id), None)
            if session is None:
                return False
            self.sessions.remove(session)
            self.classifier.remove_label(session.pose)
            return True

    def training_readiness(self) -> Tuple[bool, str]:
        with self._lock:
            poses = sorted({s.pose for s in self.sessions})
            if len(poses) < 2:
                return False, (f"Please record at least 2 different poses! You currently have "
                               f"{len(poses)} unique pose(s): {', '.join(poses)}")
            short = [s.pose for s in self.sessions if s.samples_collected < self.min_samples_per_pose]
            if short:
                return False, (f"Insufficient training data. Each pose needs at least "
                               f"{self.min_samples_per_pose} samples: {', '.join(short)}")
            if self._state is not RecordingState.IDLE:
                return False, "Finish recording before training."
            return True, f"Ready to train on {self.total_samples} samples for {len(poses)} poses"

    def reset(self):
        """Clear all recorded poses, the training buffer and the shared model."""
        with self._lock:
            self._reset_window()
            self.sessions = []
            self.classifier.reset()
            if self.registry is not None:
                self.registry.clear(delete_file=True)
        logger.info("All training data reset")

    # -------------------------------------------------------------------------
    # Dataset I/O
    # -------------------------------------------------------------------------

    def to_dataset(self) -> Dict[str, Any]:
        with self._lock:
            samples = [
                {'label': s.pose, 'features': f, 'quality': s.quality.value,
                 'recorded_at': datetime.fromtimestamp(s.timestamp).isoformat()}
                for s in self.sessions for f in s.features
            ]
            return {
                'metadata': {
                    'created_at': datetime.now().isoformat(),
                    'total_samples': len(samples),
                    'samples_per_label': {s.pose: s.samples_collected for s in self.sessions},
                    'labels': [s.pose for s in self.sessions],
                    'feature_size': self.classifier.input_size
                },
                'samples': samples
            }

    def load_dataset(self, data: Dict[str, Any], merge: bool = False) -> int:
        """Add samples from to_dataset() output as sessions. Returns samples loaded.

        Labels that are already recorded are skipped, or appended to the
        existing session when merge is True. Raises CollectionError before
        anything is added if a sample is malformed.
        """
        samples = data.get('samples', data) if isinstance(data, dict) else data
        grouped: Dict[str, List[List[float]]] = {}
        qualities: Dict[str, List[PoseQuality]] = {}
        for i, sample in enumerate(samples):
            label = str(sample.get('label') or '').strip()
            features = sample.get('features')
            if not label or features is None or len(features) != self.classifier.input_size:
                raise CollectionError(f"Sample {i} is invalid: expected a label and "
                                      f"{self.classifier.input_size} features")
            try:
                quality = PoseQuality(sample.get('quality', PoseQuality.FAIR.value))
            except ValueError:
                quality = PoseQuality.FAIR
            grouped.setdefault(label, []).append([float(v) for v in features])
            qualities.setdefault(label, []).append(quality)

        loaded = 0
        with self._lock:
            for label, features in grouped.items():
                existing = next((s for s in self.sessions if s.pose == label), None)
                if existing is not None and not merge:
                    logger.warning("Skipping '%s' from dataset: already recorded", label)
                    continue

                for f in features:
                    self.classifier.add_data(f, label)
                if existing is None:
                    self.sessions.append(TrainingSession(
                        id=uuid.uuid4().hex, pose=label, samples_collected=len(features),
                        timestamp=time.time(), quality=_median_quality(qualities[label]), features=features
                    ))
                else:
                    previous = existing.samples_collected
                    existing.features.extend(features)
                    existing.samples_collected = len(existing.features)
                    existing.quality = _median_quality([existing.quality] * previous + qualities[label])
                loaded += len(features)
        return loaded

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def state(self) -> RecordingState:
        with self._lock:
            self._advance()
            return self._state

    @property
    def countdown_remaining(self) -> int:
        """Whole seconds left on the countdown, 0 when not counting down."""
        with self._lock:
            self._advance()
            if self._state is not RecordingState.COUNTDOWN:
                return 0
            remaining = self._countdown_ends - self._clock()
            return max(1, int(remaining + 0.999))

    @property
    def pose_name(self) -> str:
        return self._pose_name

    @property
    def samples_collected(self) -> int:
        return len(self._samples)

    @property
    def is_recording(self) -> bool:
        return self.state is RecordingState.RECORDING

    @property
    def total_samples(self) -> int:
        return sum(s.samples_collected for s in self.sessions)
