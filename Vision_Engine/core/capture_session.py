"""
Capture Session Module

Owns the camera, the canvas the keypoints are expressed in, and the pose
detector. CaptureSessionManager keeps at most one live session so that
switching views never leaves a second camera or detector running.
"""

import logging
import threading
import time
from typing import Callable, List, Optional, Tuple

import cv2
import numpy as np

from Vision_Engine import config
from Vision_Engine.core.keypoints import Pose
from Vision_Engine.errors import CameraUnavailableError

logger = logging.getLogger(__name__)

PoseListener = Callable[[List[Pose]], None]


class CameraSource:
    """OpenCV webcam wrapper."""

    def __init__(self, camera_id: int = config.CAMERA_ID, width: int = config.CANVAS_WIDTH,
                 height: int = config.CANVAS_HEIGHT):
        self.camera_id = camera_id
        self.width = width
        self.height = height
        self._cap: Optional[cv2.VideoCapture] = None

    def open(self):
        cap = cv2.VideoCapture(self.camera_id)
        cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.width)
        cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.height)
        if not cap.isOpened():
            cap.release()
            raise CameraUnavailableError(f"Could not open camera {self.camera_id}")
        self._cap = cap

    def read(self) -> Tuple[bool, Optional[np.ndarray]]:
        if self._cap is None:
            return False, None
        return self._cap.read()

    def release(self):
        if self._cap is not None:
            self._cap.release()
            self._cap = None

    @property
    def is_open(self) -> bool:
        return self._cap is not None and self._cap.isOpened()


class CaptureSession:
    """One camera + canvas + detector bundle bound to a view."""

    def __init__(self, view: str, detector_factory: Callable[[], object], source=None,
                 canvas_size: Tuple[int, int] = (config.CANVAS_WIDTH, config.CANVAS_HEIGHT),
                 warmup_seconds: float = config.WARMUP_SECONDS, clock: Callable[[], float] = time.monotonic):
        self.view = view
        self.canvas_size = canvas_size
        self.source = source
        self.warmup_seconds = warmup_seconds
        self.status = "Initializing..."
        self.latest_poses: List[Pose] = []
        self.frame_count = 0

        self._detector_factory = detector_factory
        self._detector = None
        self._detector_error: Optional[Exception] = None
        self._clock = clock
        self._started_at: Optional[float] = None
        self._listeners: List[PoseListener] = []
        self._active = False
        self._lock = threading.RLock()
        # Held for the whole of detect() and close() so they never overlap
        self._detect_lock = threading.Lock()

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def start(self) -> 'CaptureSession':
        with self._lock:
            if self._active:
                return self
            if self.source is not None:
                self.status = "Requesting camera access..."
                try:
                    self.source.open()
                except CameraUnavailableError:
                    self.status = "Camera access failed. Please check permissions."
                    raise
            self._started_at = self._clock()
            self._active = True
            self.status = "Waiting for stable video..." if self.warmup_seconds > 0 else self.status
            logger.info("Capture session started for view '%s'", self.view)
        return self

    def _ensure_detector(self) -> bool:
        """Create the detector once the warm-up period is over.

        A failed initialization is recorded and not retried for the rest of
        the session.
        """
        if self._detector is not None:
            return True
        if self._detector_error is not None:
            return False
        if self._clock() - self._started_at < self.warmup_seconds:
            return False

        self.status = "Initializing pose detection..."
        try:
            self._detector = self._detector_factory()
        except Exception as e:
            self.status = "Error initializing pose detection."
            self._detector_error = e
            logger.exception("Detector initialization failed for view '%s'", self.view)
            return False
        self.status = "Ready"
        return True

    def stop(self):
        # Waits for an in-flight detect() before closing the detector
        with self._detect_lock, self._lock:
            if not self._active and self._detector is None:
                return
            self._active = False
            if self._detector is not None:
                try:
                    self._detector.close()
                except Exception:
                    logger.exception("Error closing detector for view '%s'", self.view)
                self._detector = None
            if self.source is not None:
                self.source.release()
            self._listeners.clear()
            self.latest_poses = []
            self.status = "Stopped"
            logger.info("Capture session stopped for view '%s'", self.view)

    # -------------------------------------------------------------------------
    # Frames
    # -------------------------------------------------------------------------

    def add_listener(self, listener: PoseListener):
        with self._lock:
            self._listeners.append(listener)

    def remove_listener(self, listener: PoseListener):
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def fit_to_canvas(self, frame: np.ndarray) -> np.ndarray:
        width, height = self.canvas_size
        if frame.shape[1] != width or frame.shape[0] != height:
            frame = cv2.resize(frame, (width, height))
        return frame

    def process_frame(self, frame: np.ndarray, timestamp_ms: Optional[float] = None) -> List[Pose]:
        """Run detection on one frame and deliver the result to listeners."""
        with self._lock:
            if not self._active or not self._ensure_detector():
                return []
            detector = self._detector
            listeners = list(self._listeners)

        frame = self.fit_to_canvas(frame)
        if timestamp_ms is None:
            timestamp_ms = time.time() * 1000
        with self._detect_lock:
            if not self._active or self._detector is not detector:
                return []
            poses = detector.detect(frame, timestamp_ms) or []

        with self._lock:
            # Session may have been stopped while the detector was running
            if not self._active:
                return []
            self.latest_poses = poses
            self.frame_count += 1

        for listener in listeners:
            listener(poses)
        return poses

    def read_and_process(self) -> Tuple[Optional[np.ndarray], List[Pose]]:
        """Pull one frame from the owned source. Returns (canvas frame, poses)."""
        if self.source is None:
            raise CameraUnavailableError("Session has no frame source")
        ok, frame = self.source.read()
        if not ok or frame is None:
            raise CameraUnavailableError("Could not read frame")
        frame = self.fit_to_canvas(frame)
        return frame, self.process_frame(frame)

    @property
    def is_active(self) -> bool:
        return self._active

    @property
    def is_ready(self) -> bool:
        return self._active and self._detector is not None

    @property
    def detector_error(self) -> Optional[Exception]:
        return self._detector_error


class CaptureSessionManager:
    """Hands out the single live capture session."""

    def __init__(self, detector_factory: Callable[[], object],
                 canvas_size: Tuple[int, int] = (config.CANVAS_WIDTH, config.CANVAS_HEIGHT),
                 warmup_seconds: float = config.WARMUP_SECONDS, clock: Callable[[], float] = time.monotonic):
        self.detector_factory = detector_factory
        self.canvas_size = canvas_size
        self.warmup_seconds = warmup_seconds
        self._clock = clock
        self._active: Optional[CaptureSession] = None
        self._lock = threading.Lock()

    def open(self, view: str, source=None) -> CaptureSession:
        """Stop whatever session is running and start a fresh one for view."""
        with self._lock:
            if self._active is not None:
                logger.info("Releasing capture session of view '%s' for '%s'", self._active.view, view)
                self._active.stop()
                self._active = None

            session = CaptureSession(view, self.detector_factory, source=source,
                                     canvas_size=self.canvas_size,
                                     warmup_seconds=self.warmup_seconds, clock=self._clock)
            session.start()
            self._active = session
            return session

    def close(self, view: Optional[str] = None):
        with self._lock:
            if self._active is None:
                return
            if view is not None and self._active.view != view:
                return
            self._active.stop()
            self._active = None

    def release(self, session: CaptureSession):
        """Stop session, clearing the active slot only if it still holds it."""
        with self._lock:
            session.stop()
            if self._active is session:
                self._active = None

    @property
    def active(self) -> Optional[CaptureSession]:
        return self._active

    @property
    def active_view(self) -> Optional[str]:
        return self._active.view if self._active else None
