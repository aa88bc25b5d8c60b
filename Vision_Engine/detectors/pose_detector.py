"""
Pose Detector Module
MediaPipe Pose Landmarker wrapper returning 17 body keypoints per person.
Uses the MediaPipe Tasks API (0.10+).
"""

import logging
import ssl
import urllib.request
from pathlib import Path
from typing import List

import certifi
import cv2
import numpy as np

# MediaPipe Tasks API
import mediapipe as mp
from mediapipe.tasks import python as mp_python
from mediapipe.tasks.python import vision

from Vision_Engine import config
from Vision_Engine.core.keypoints import Keypoint, Pose, KEYPOINT_NAMES

logger = logging.getLogger(__name__)


class BodyPoseDetector:
    """MediaPipe Pose Landmarker reduced to the 17-keypoint body layout."""

    # Pose Landmarker index for each entry of KEYPOINT_NAMES
    LANDMARK_INDICES = [0, 2, 5, 7, 8, 11, 12, 13, 14, 15, 16, 23, 24, 25, 26, 27, 28]

    MODEL_URLS = {
        0: "https://storage.googleapis.com/mediapipe-models/pose_landmarker/pose_landmarker_lite/float16/latest/pose_landmarker_lite.task",
        1: "https://storage.googleapis.com/mediapipe-models/pose_landmarker/pose_landmarker_full/float16/latest/pose_landmarker_full.task",
        2: "https://storage.googleapis.com/mediapipe-models/pose_landmarker/pose_landmarker_heavy/float16/latest/pose_landmarker_heavy.task",
    }
    MODEL_DIR = config.ROOT_DIR / "models"

    def __init__(self, min_detection_confidence: float = config.MIN_POSE_DETECTION_CONFIDENCE,
                 min_tracking_confidence: float = config.MIN_TRACKING_CONFIDENCE,
                 model_complexity: int = 0, max_poses: int = 1):
        """
        Initialize the pose detector using MediaPipe Tasks API.

        Args:
            min_detection_confidence: Minimum confidence for detection
            min_tracking_confidence: Minimum confidence for tracking
            model_complexity: 0=Lite, 1=Full, 2=Heavy
            max_poses: Maximum number of people to return
        """
        if model_complexity not in self.MODEL_URLS:
            raise ValueError(f"model_complexity must be one of {sorted(self.MODEL_URLS)}")
        self.model_url = self.MODEL_URLS[model_complexity]
        self.model_path = self.MODEL_DIR / Path(self.model_url).name
        self._ensure_model()

        options = vision.PoseLandmarkerOptions(
            base_options=mp_python.BaseOptions(model_asset_path=str(self.model_path)),
            running_mode=vision.RunningMode.VIDEO,
            num_poses=max_poses,
            min_pose_detection_confidence=min_detection_confidence,
            min_tracking_confidence=min_tracking_confidence,
            output_segmentation_masks=False
        )

        self.landmarker = vision.PoseLandmarker.create_from_options(options)
        self._detection_count = 0
        self._last_timestamp_ms = 0

    def _ensure_model(self):
        """Download model if not present."""
        if self.model_path.exists():
            return

        logger.info("Downloading pose model from %s", self.model_url)
        self.model_path.parent.mkdir(parents=True, exist_ok=True)

        try:
            ssl_context = ssl.create_default_context(cafile=certifi.where())
            with urllib.request.urlopen(self.model_url, context=ssl_context) as response:
                with open(self.model_path, 'wb') as f:
                    f.write(response.read())
        except OSError as e:
            raise RuntimeError(f"Failed to download model: {e}\n"
                               f"Please manually download from:\n{self.model_url}\n"
                               f"And save to: {self.model_path}") from e
        logger.info("Model saved to %s", self.model_path)

    def detect(self, frame: np.ndarray, timestamp: float) -> List[Pose]:
        """Detect people in a BGR frame. Keypoints are in frame pixels."""
        h, w = frame.shape[:2]
        rgb_frame = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
        mp_image = mp.Image(image_format=mp.ImageFormat.SRGB, data=rgb_frame)

        # MediaPipe requires strictly increasing timestamps
        timestamp_ms = int(timestamp)
        if timestamp_ms <= self._last_timestamp_ms:
            timestamp_ms = self._last_timestamp_ms + 1
        self._last_timestamp_ms = timestamp_ms

        result = self.landmarker.detect_for_video(mp_image, timestamp_ms)
        if not result.pose_landmarks:
            return []

        self._detection_count += 1
        return [self._to_pose(landmarks, w, h) for landmarks in result.pose_landmarks]

    def _to_pose(self, landmarks, width: int, height: int) -> Pose:
        keypoints = []
        for name, idx in zip(KEYPOINT_NAMES, self.LANDMARK_INDICES):
            lm = landmarks[idx]
            confidence = getattr(lm, 'visibility', None)
            if confidence is None:
                confidence = getattr(lm, 'presence', 0.0) or 0.0
            keypoints.append(Keypoint(x=lm.x * width, y=lm.y * height,
                                      confidence=float(confidence), name=name))
        score = sum(kp.confidence for kp in keypoints) / len(keypoints)
        return Pose(keypoints=keypoints, score=score)

    @property
    def detection_count(self) -> int:
        return self._detection_count

    def close(self):
        """Release resources."""
        if hasattr(self, 'landmarker'):
            self.landmarker.close()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()
