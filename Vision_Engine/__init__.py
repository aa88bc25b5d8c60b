"""
Vision Engine
Capture sessions, sample collection, pose classification and live prediction.
"""

from .core.capture_session import CameraSource, CaptureSession, CaptureSessionManager
from .core.keypoints import Keypoint, Pose, PoseQuality
from .core.pose_classifier import PoseClassifier, ModelRegistry, PredictionResult
from .core.prediction_loop import PredictionLoop
from .core.sample_collector import SampleCollector

# Detector pulls in MediaPipe (import when needed)
# from .detectors.pose_detector import BodyPoseDetector
