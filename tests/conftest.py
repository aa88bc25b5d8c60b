import numpy as np
import pytest

from Vision_Engine.core.keypoints import Keypoint, Pose, KEYPOINT_NAMES


class FakeClock:
    """Manually advanced clock in seconds."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class FakeDetector:
    """Returns a scripted list of poses for every frame."""

    def __init__(self, poses=None):
        self.poses = poses if poses is not None else []
        self.calls = 0
        self.closed = False

    def detect(self, frame, timestamp):
        self.calls += 1
        return list(self.poses)

    def close(self):
        self.closed = True


class FakeSource:
    def __init__(self, fail: bool = False, frame_shape=(480, 640, 3)):
        self.fail = fail
        self.frame_shape = frame_shape
        self.opened = False
        self.released = False

    def open(self):
        from Vision_Engine.errors import CameraUnavailableError
        if self.fail:
            raise CameraUnavailableError("no camera")
        self.opened = True

    def read(self):
        return True, np.zeros(self.frame_shape, dtype=np.uint8)

    def release(self):
        self.released = True


def make_pose(confidence: float = 0.95, offset: float = 0.0, count: int = 17) -> Pose:
    keypoints = [Keypoint(x=100 + 10 * i + offset, y=50 + 20 * i + offset, confidence=confidence, name=name)
                 for i, name in enumerate(KEYPOINT_NAMES[:count])]
    return Pose(keypoints=keypoints, score=confidence)


def make_features(center: float, spread: float = 1.0, seed: int = 0, size: int = 34):
    rng = np.random.default_rng(seed)
    return list(center + rng.normal(0, spread, size))


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def detector():
    return FakeDetector([make_pose()])


@pytest.fixture
def good_pose():
    return make_pose()


@pytest.fixture
def two_class_data():
    """Two well separated clusters of 20 samples each."""
    data = [(make_features(0.0, seed=i), 'guard') for i in range(20)]
    data += [(make_features(50.0, seed=100 + i), 'mount') for i in range(20)]
    return data
