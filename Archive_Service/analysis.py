"""
Pose-frame analysis for archived videos.

Compares frames ten apart to flag movements and scores each sampled frame
for risky positions. Keypoints are 17-point body layouts ({x, y, confidence}
in image pixels, image y pointing down).
"""

import math
from typing import Any, Dict, List, Optional, Sequence, Tuple

from Vision_Engine import config
from Vision_Engine.core.keypoints import KEYPOINT_NAMES

FRAME_STRIDE = 10

GUARD_PASS_CONFIDENCE = 0.85
TRIANGLE_CONFIDENCE = 0.78

HIP_TRAVEL_RATIO = 0.5        # hip travel, in torso lengths, that counts as a pass
ANKLE_TO_HEAD_RATIO = 1.0     # ankles within this many torso lengths of the nose
LEAN_ANGLE_DEG = 45.0         # torso lean from vertical that counts as a deviation

_INDEX = {name: i for i, name in enumerate(KEYPOINT_NAMES)}

Point = Tuple[float, float]


def _point(keypoints: Sequence[Dict[str, float]], name: str,
           threshold: float = config.KEYPOINT_CONFIDENCE_THRESHOLD) -> Optional[Point]:
    idx = _INDEX[name]
    if idx >= len(keypoints):
        return None
    kp = keypoints[idx]
    if kp.get('confidence', 0.0) <= threshold:
        return None
    return kp['x'], kp['y']


def _midpoint(keypoints, left: str, right: str) -> Optional[Point]:
    a, b = _point(keypoints, left), _point(keypoints, right)
    if a and b:
        return (a[0] + b[0]) / 2, (a[1] + b[1]) / 2
    return a or b


def _distance(a: Point, b: Point) -> float:
    return math.hypot(a[0] - b[0], a[1] - b[1])


def _torso(keypoints) -> Tuple[Optional[Point], Optional[Point], Optional[float]]:
    shoulders = _midpoint(keypoints, 'left_shoulder', 'right_shoulder')
    hips = _midpoint(keypoints, 'left_hip', 'right_hip')
    length = _distance(shoulders, hips) if shoulders and hips else None
    return shoulders, hips, length if length else None


# -----------------------------------------------------------------------------
# Movements
# -----------------------------------------------------------------------------

def detect_guard_pass(before, after) -> bool:
    """Hips travel more than half a torso length between the two frames."""
    _, hips_before, torso = _torso(before)
    _, hips_after, _ = _torso(after)
    if not (hips_before and hips_after and torso):
        return False
    return _distance(hips_before, hips_after) > HIP_TRAVEL_RATIO * torso


def detect_triangle_attempt(before, after) -> bool:
    """Both ankles rise above the hips and close to the head."""
    _, hips, torso = _torso(after)
    nose = _point(after, 'nose')
    ankles = [_point(after, 'left_ankle'), _point(after, 'right_ankle')]
    if not (hips and torso and nose) or None in ankles:
        return False

    _, hips_before, _ = _torso(before)
    was_grounded = hips_before is None or any(
        a is None or a[1] > hips_before[1]
        for a in (_point(before, 'left_ankle'), _point(before, 'right_ankle'))
    )
    raised = all(a[1] < hips[1] and _distance(a, nose) < ANKLE_TO_HEAD_RATIO * torso for a in ankles)
    return was_grounded and raised


# -----------------------------------------------------------------------------
# Risks
# -----------------------------------------------------------------------------

def assess_risks(keypoints) -> Dict[str, bool]:
    shoulders, hips, torso = _torso(keypoints)
    nose = _point(keypoints, 'nose')

    neck_exposed = bool(nose and shoulders and nose[1] > shoulders[1])

    poor_posture = False
    if shoulders and hips and torso:
        lean = math.degrees(math.atan2(abs(shoulders[0] - hips[0]), abs(hips[1] - shoulders[1])))
        poor_posture = lean > LEAN_ANGLE_DEG

    vulnerable_position = bool(shoulders and hips and hips[1] < shoulders[1])

    return {
        'neck_exposed': neck_exposed,
        'poor_posture': poor_posture,
        'vulnerable_position': vulnerable_position
    }


def analyze_pose_frames(frames: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Movements and risk counters for frames ordered by frame index."""
    movements = []
    risk_metrics = {'neck_exposure': 0, 'posture_deviations': 0, 'vulnerable_positions': 0}

    for i in range(0, len(frames) - FRAME_STRIDE, FRAME_STRIDE):
        frame, next_frame = frames[i], frames[i + FRAME_STRIDE]
        before, after = frame.get('keypoints'), next_frame.get('keypoints')
        if not before or not after:
            continue

        if detect_guard_pass(before, after):
            movements.append({'type': 'Guard Pass', 'start_frame': frame['frame_index'],
                              'end_frame': next_frame['frame_index'], 'confidence': GUARD_PASS_CONFIDENCE})
        if detect_triangle_attempt(before, after):
            movements.append({'type': 'Triangle Attempt', 'start_frame': frame['frame_index'],
                              'end_frame': next_frame['frame_index'], 'confidence': TRIANGLE_CONFIDENCE})

        risks = assess_risks(before)
        risk_metrics['neck_exposure'] += risks['neck_exposed']
        risk_metrics['posture_deviations'] += risks['poor_posture']
        risk_metrics['vulnerable_positions'] += risks['vulnerable_position']

    return {'movements': movements, 'risk_metrics': risk_metrics}
