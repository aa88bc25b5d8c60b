"""
Keypoints Module

Pose data types shared by the detector, the sample collector and the
classifier, plus feature extraction and pose-quality assessment.
Coordinates are canvas pixels; confidence is 0-1.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Sequence, Dict, Any, Tuple

from Vision_Engine import config


# -----------------------------------------------------------------------------
# Constants
# -----------------------------------------------------------------------------

KEYPOINT_NAMES = [
    'nose', 'left_eye', 'right_eye', 'left_ear', 'right_ear',
    'left_shoulder', 'right_shoulder', 'left_elbow', 'right_elbow',
    'left_wrist', 'right_wrist', 'left_hip', 'right_hip',
    'left_knee', 'right_knee', 'left_ankle', 'right_ankle'
]

# Index pairs into KEYPOINT_NAMES
SKELETON_EDGES: List[Tuple[int, int]] = [
    (0, 1), (0, 2), (1, 3), (2, 4),
    (5, 6), (5, 7), (7, 9), (6, 8), (8, 10),
    (5, 11), (6, 12), (11, 12),
    (11, 13), (13, 15), (12, 14), (14, 16)
]


# -----------------------------------------------------------------------------
# Enums & Data Classes
# -----------------------------------------------------------------------------

class PoseQuality(Enum):
    """Detection quality of a frame, best first."""
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"

    @property
    def rank(self) -> int:
        return {PoseQuality.POOR: 0, PoseQuality.FAIR: 1,
                PoseQuality.GOOD: 2, PoseQuality.EXCELLENT: 3}[self]

    def at_least(self, other: 'PoseQuality') -> bool:
        return self.rank >= other.rank


@dataclass
class Keypoint:
    x: float
    y: float
    confidence: float
    name: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {'x': self.x, 'y': self.y, 'confidence': self.confidence, 'name': self.name}


@dataclass
class Pose:
    """One detected person."""
    keypoints: List[Keypoint] = field(default_factory=list)
    score: float = 0.0

    def keypoint(self, name: str) -> Keypoint:
        return self.keypoints[KEYPOINT_NAMES.index(name)]

    def to_dict(self) -> Dict[str, Any]:
        return {'score': self.score, 'keypoints': [kp.to_dict() for kp in self.keypoints]}


# -----------------------------------------------------------------------------
# Features
# -----------------------------------------------------------------------------

def extract_pose_features(poses: Sequence[Pose], size: int = config.FEATURE_SIZE) -> List[float]:
    """Flatten (x, y) of the first pose into a fixed-length vector."""
    if not poses or not poses[0].keypoints:
        return [0.0] * size

    inputs: List[float] = []
    for kp in poses[0].keypoints:
        if kp is None:
            inputs.extend([0.0, 0.0])
        else:
            inputs.extend([float(kp.x or 0.0), float(kp.y or 0.0)])

    if len(inputs) < size:
        inputs.extend([0.0] * (size - len(inputs)))
    return inputs[:size]


def normalize_keypoints(keypoints: Sequence[Keypoint], width: float, height: float) -> List[float]:
    """Scale to 0-1 by canvas size and keep confidence: [x, y, c, x, y, c, ...]."""
    if not keypoints:
        return []
    normalized: List[float] = []
    for kp in keypoints:
        normalized.extend([kp.x / width, kp.y / height, kp.confidence or 0.0])
    return normalized


def assess_pose_quality(poses: Sequence[Pose],
                        threshold: float = config.KEYPOINT_CONFIDENCE_THRESHOLD) -> PoseQuality:
    """Grade the first pose by keypoint completeness and average confidence."""
    if not poses or not poses[0].keypoints:
        return PoseQuality.POOR

    keypoints = poses[0].keypoints
    valid = [kp for kp in keypoints if kp is not None and kp.confidence > threshold]
    if not valid:
        return PoseQuality.POOR

    completeness = len(valid) / len(keypoints)
    avg_confidence = sum(kp.confidence for kp in valid) / len(valid)

    if completeness > 0.9 and avg_confidence > 0.8:
        return PoseQuality.EXCELLENT
    elif completeness > 0.8 and avg_confidence > 0.7:
        return PoseQuality.GOOD
    elif completeness > 0.6 and avg_confidence > 0.5:
        return PoseQuality.FAIR
    return PoseQuality.POOR
