"""
Overlay Renderer

Draws the skeleton, recording indicator, countdown, pose quality and
prediction panel on canvas frames. Uses OpenCV.
"""

import math
from typing import Optional, Sequence

import cv2
import numpy as np

from Vision_Engine import config
from Vision_Engine.core.keypoints import Pose, PoseQuality, SKELETON_EDGES
from Vision_Engine.core.pose_classifier import PredictionResult
from Vision_Engine.core.prediction_loop import confidence_band


class OverlayRenderer:
    """OpenCV overlay renderer for pose capture views."""

    # BGR
    COLORS = {
        'skeleton': (255, 255, 255), 'joint': (100, 255, 200), 'joint_recording': (100, 100, 255),
        'recording': (0, 0, 255), 'text_bg': (30, 30, 30), 'text': (255, 255, 255),
        'warning': (0, 165, 255), 'accent': (212, 0, 255)
    }
    BAND_COLORS = {
        'high': (0, 255, 0), 'medium': (0, 255, 255), 'low': (0, 165, 255), 'very_low': (0, 0, 255)
    }
    QUALITY_COLORS = {
        PoseQuality.EXCELLENT: (0, 255, 0), PoseQuality.GOOD: (47, 255, 173),
        PoseQuality.FAIR: (0, 165, 255), PoseQuality.POOR: (0, 0, 255)
    }

    def __init__(self, show_skeleton: bool = True, threshold: float = config.KEYPOINT_CONFIDENCE_THRESHOLD):
        self.show_skeleton = show_skeleton
        self.threshold = threshold
        self._frame_count = 0

    def draw_poses(self, frame: np.ndarray, poses: Sequence[Pose], emphasized: bool = False,
                   color: Optional[tuple] = None) -> np.ndarray:
        self._frame_count += 1
        if not self.show_skeleton:
            return frame

        line_color = color or self.COLORS['skeleton']
        joint_color = color or (self.COLORS['joint_recording'] if emphasized else self.COLORS['joint'])
        thickness = 4 if emphasized else 2
        radius = 6 if emphasized else 4

        for pose in poses:
            kps = pose.keypoints
            for a, b in SKELETON_EDGES:
                if a >= len(kps) or b >= len(kps):
                    continue
                if kps[a].confidence > self.threshold and kps[b].confidence > self.threshold:
                    cv2.line(frame, (int(kps[a].x), int(kps[a].y)), (int(kps[b].x), int(kps[b].y)),
                             line_color, thickness)
            for kp in kps:
                if kp.confidence > self.threshold:
                    center = (int(kp.x), int(kp.y))
                    cv2.circle(frame, center, radius, joint_color, -1)
                    cv2.circle(frame, center, max(1, radius // 3), (255, 255, 255), -1)
        return frame

    def draw_recording(self, frame: np.ndarray, pose_name: str, collected: int, target: int) -> np.ndarray:
        pulse = (math.sin(self._frame_count * 0.3) + 1) / 2
        cv2.circle(frame, (30, 30), int(12 + pulse * 5), self.COLORS['recording'], -1)
        self._panel(frame, 60, 15, 340, 30)
        cv2.putText(frame, f"REC '{pose_name}': {collected}/{target} samples", (70, 36),
                    cv2.FONT_HERSHEY_SIMPLEX, 0.55, self.COLORS['text'], 1)
        return frame

    def draw_countdown(self, frame: np.ndarray, seconds: int) -> np.ndarray:
        h, w = frame.shape[:2]
        overlay = frame.copy()
        cv2.rectangle(overlay, (0, 0), (w, h), (0, 0, 0), -1)
        cv2.addWeighted(overlay, 0.4, frame, 0.6, 0, frame)
        cv2.putText(frame, str(seconds), (w // 2 - 30, h // 2 + 30), cv2.FONT_HERSHEY_SIMPLEX, 3.0,
                    self.COLORS['accent'], 6)
        cv2.putText(frame, "Get ready...", (w // 2 - 80, h // 2 + 80), cv2.FONT_HERSHEY_SIMPLEX, 0.8,
                    self.COLORS['text'], 2)
        return frame

    def draw_quality(self, frame: np.ndarray, quality: PoseQuality) -> np.ndarray:
        w = frame.shape[1]
        color = self.QUALITY_COLORS[quality]
        cv2.circle(frame, (w - 25, 25), 10, color, -1)
        cv2.putText(frame, quality.value.upper(), (w - 130, 31), cv2.FONT_HERSHEY_SIMPLEX, 0.5, color, 1)
        return frame

    def draw_prediction(self, frame: np.ndarray, prediction: Optional[PredictionResult],
                        threshold: float, now_ms: Optional[float] = None) -> np.ndarray:
        if prediction is None:
            self._panel(frame, 10, 10, 330, 60)
            cv2.putText(frame, "Analyzing pose...", (20, 35), cv2.FONT_HERSHEY_SIMPLEX, 0.6,
                        self.COLORS['warning'], 1)
            cv2.putText(frame, f"Minimum confidence: {threshold:.0%}", (20, 58),
                        cv2.FONT_HERSHEY_SIMPLEX, 0.45, self.COLORS['text'], 1)
            return frame

        color = self.BAND_COLORS[confidence_band(prediction.confidence)]
        self._panel(frame, 10, 10, 330, 110)
        cv2.putText(frame, prediction.label, (20, 45), cv2.FONT_HERSHEY_SIMPLEX, 1.0, color, 2)
        cv2.putText(frame, f"Confidence: {prediction.confidence:.1%}", (20, 72),
                    cv2.FONT_HERSHEY_SIMPLEX, 0.5, self.COLORS['text'], 1)

        bar_x, bar_y, bar_w, bar_h = 20, 85, 300, 12
        cv2.rectangle(frame, (bar_x, bar_y), (bar_x + bar_w, bar_y + bar_h), (60, 60, 60), -1)
        cv2.rectangle(frame, (bar_x, bar_y), (bar_x + int(bar_w * prediction.confidence), bar_y + bar_h),
                      color, -1)
        if now_ms is not None and prediction.timestamp is not None:
            age = (now_ms - prediction.timestamp) / 1000
            cv2.putText(frame, f"{age:.1f}s ago", (250, 72), cv2.FONT_HERSHEY_SIMPLEX, 0.4,
                        self.COLORS['text'], 1)
        return frame

    def draw_message(self, frame: np.ndarray, message: str) -> np.ndarray:
        h = frame.shape[0]
        self._panel(frame, 10, h - 50, 420, 40)
        cv2.putText(frame, message, (20, h - 25), cv2.FONT_HERSHEY_SIMPLEX, 0.5, self.COLORS['warning'], 1)
        return frame

    def _panel(self, frame, x, y, w, h):
        overlay = frame.copy()
        cv2.rectangle(overlay, (x, y), (x + w, y + h), self.COLORS['text_bg'], -1)
        cv2.addWeighted(overlay, 0.75, frame, 0.25, 0, frame)
