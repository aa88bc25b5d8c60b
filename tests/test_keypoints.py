from Vision_Engine.core.keypoints import (Keypoint, Pose, PoseQuality, KEYPOINT_NAMES, SKELETON_EDGES,
                                         extract_pose_features, normalize_keypoints, assess_pose_quality)

from conftest import make_pose


def test_keypoint_layout():
    assert len(KEYPOINT_NAMES) == 17
    assert KEYPOINT_NAMES[0] == 'nose'
    assert all(0 <= a < 17 and 0 <= b < 17 for a, b in SKELETON_EDGES)


def test_features_from_first_pose():
    pose = make_pose()
    other = make_pose(offset=500)
    features = extract_pose_features([pose, other])

    assert len(features) == 34
    assert features[0] == pose.keypoints[0].x
    assert features[1] == pose.keypoints[0].y
    assert features[-1] == pose.keypoints[-1].y


def test_features_without_pose_are_zeros():
    assert extract_pose_features([]) == [0.0] * 34
    assert extract_pose_features([Pose()]) == [0.0] * 34


def test_features_pad_and_truncate():
    short = extract_pose_features([make_pose(count=5)])
    assert len(short) == 34
    assert short[10:] == [0.0] * 24

    assert len(extract_pose_features([make_pose()], size=20)) == 20


def test_normalize_keypoints():
    kps = [Keypoint(320, 240, 0.9), Keypoint(640, 0, 0.5)]
    assert normalize_keypoints(kps, 640, 480) == [0.5, 0.5, 0.9, 1.0, 0.0, 0.5]
    assert normalize_keypoints([], 640, 480) == []


def test_quality_grades():
    assert assess_pose_quality([make_pose(0.95)]) is PoseQuality.EXCELLENT
    assert assess_pose_quality([make_pose(0.75)]) is PoseQuality.GOOD
    assert assess_pose_quality([make_pose(0.55)]) is PoseQuality.FAIR
    assert assess_pose_quality([make_pose(0.45)]) is PoseQuality.POOR


def test_quality_uses_completeness():
    pose = make_pose(0.95)
    # 12 of 17 confident keypoints is ~0.71 completeness
    for kp in pose.keypoints[:5]:
        kp.confidence = 0.1
    assert assess_pose_quality([pose]) is PoseQuality.FAIR


def test_quality_poor_without_valid_keypoints():
    assert assess_pose_quality([]) is PoseQuality.POOR
    assert assess_pose_quality([make_pose(0.2)]) is PoseQuality.POOR


def test_quality_ordering():
    assert PoseQuality.EXCELLENT.at_least(PoseQuality.FAIR)
    assert PoseQuality.FAIR.at_least(PoseQuality.FAIR)
    assert not PoseQuality.POOR.at_least(PoseQuality.FAIR)
