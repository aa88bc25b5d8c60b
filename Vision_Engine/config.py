"""
Pose Studio Configuration

Central tunables for capture, sample collection, training and prediction.
"""

import os
from pathlib import Path

ROOT_DIR = Path(__file__).parent.parent

# =============================================================================
# Camera / Canvas
# =============================================================================
CAMERA_ID = 0
CANVAS_WIDTH = 640
CANVAS_HEIGHT = 480
WARMUP_SECONDS = 1.0        # Wait for stable video before starting detection

# =============================================================================
# Pose Detection
# =============================================================================
KEYPOINT_CONFIDENCE_THRESHOLD = 0.3   # Keypoints below this are not drawn or counted
MIN_POSE_DETECTION_CONFIDENCE = 0.5
MIN_TRACKING_CONFIDENCE = 0.5

# =============================================================================
# Sample Collection
# =============================================================================
SAMPLES_PER_POSE = 30
COUNTDOWN_SECONDS = 3
MIN_SAMPLE_INTERVAL = 0.05  # seconds between accepted samples
MIN_SAMPLES_PER_POSE = 10   # required per pose before training

# =============================================================================
# Classifier
# =============================================================================
FEATURE_SIZE = 34           # 17 keypoints * (x, y)
EPOCHS = 15
LEARNING_RATE = 0.03
HIDDEN_UNITS = 12
BATCH_SIZE = 4
CLASSIFIER_BACKEND = "mlp"  # Options: "mlp", "xgboost"

MODEL_PATH = Path(os.environ.get("POSE_STUDIO_MODEL_PATH", ROOT_DIR / "models" / "pose_classifier.pkl"))
DATASET_DIR = ROOT_DIR / "training_data"

# =============================================================================
# Prediction
# =============================================================================
PREDICTION_INTERVAL_MS = 500
CONFIDENCE_THRESHOLD = 0.4
PREDICTION_HISTORY_SIZE = 50
CLEAR_PREDICTION_AFTER_MS = 2000

# =============================================================================
# Archive Service
# =============================================================================
ARCHIVE_DIR = Path(os.environ.get("POSE_ARCHIVE_DIR", ROOT_DIR / "data" / "archive"))
MAX_VIDEO_UPLOAD_BYTES = 100 * 1024 * 1024
MAX_TRAINING_UPLOAD_BYTES = 200 * 1024 * 1024
ALLOWED_VIDEO_TYPES = ("video/mp4", "video/webm", "video/avi", "video/mov")
