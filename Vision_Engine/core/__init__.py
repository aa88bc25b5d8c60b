"""Session lifecycle, sample collection and classification."""
from .keypoints import (Keypoint, Pose, PoseQuality, KEYPOINT_NAMES, SKELETON_EDGES,
                        extract_pose_features, normalize_keypoints, assess_pose_quality)
from .pose_classifier import PoseClassifier, ModelRegistry, PredictionResult, TrainingReport
from .capture_session import CameraSource, CaptureSession, CaptureSessionManager
from .sample_collector import SampleCollector, TrainingSession, RecordingState
from .prediction_loop import PredictionLoop, classify_pose, confidence_band, SENTINEL_LABELS
