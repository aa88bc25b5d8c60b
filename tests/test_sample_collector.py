import pytest

from Vision_Engine.core.keypoints import PoseQuality
from Vision_Engine.core.pose_classifier import PoseClassifier, ModelRegistry
from Vision_Engine.core.sample_collector import SampleCollector, RecordingState
from Vision_Engine.errors import CollectionError

from conftest import make_pose


@pytest.fixture
def classifier():
    return PoseClassifier()


@pytest.fixture
def collector(classifier, clock):
    return SampleCollector(classifier, samples_per_pose=5, countdown_seconds=3,
                           min_sample_interval=0.05, min_samples_per_pose=3, clock=clock)


def record(collector, clock, name, frames=5, pose=None):
    pose = pose or make_pose()
    collector.start_recording(name)
    clock.advance(3)
    for _ in range(frames):
        collector.on_poses([pose])
        clock.advance(0.1)


def test_rejects_blank_name(collector):
    with pytest.raises(CollectionError, match="pose name"):
        collector.start_recording("   ")
    assert collector.state is RecordingState.IDLE


def test_rejects_duplicate_name(collector, clock):
    record(collector, clock, 'guard')
    with pytest.raises(CollectionError, match="already been recorded"):
        collector.start_recording('guard')


def test_rejects_start_while_busy(collector):
    collector.start_recording('guard')
    with pytest.raises(CollectionError):
        collector.start_recording('mount')


def test_countdown_then_recording(collector, clock):
    collector.start_recording('guard')
    assert collector.state is RecordingState.COUNTDOWN
    assert collector.countdown_remaining == 3

    # Frames during the countdown are not samples
    assert not collector.on_poses([make_pose()])

    clock.advance(1.2)
    assert collector.countdown_remaining == 2
    clock.advance(2.0)
    assert collector.state is RecordingState.RECORDING
    assert collector.samples_collected == 0
    assert collector.pose_name == 'guard'


def test_zero_countdown_opens_immediately(classifier, clock):
    collector = SampleCollector(classifier, countdown_seconds=0, clock=clock)
    collector.start_recording('guard')
    assert collector.is_recording


def test_window_closes_at_sample_target(collector, classifier, clock):
    record(collector, clock, 'guard', frames=8)

    assert collector.state is RecordingState.IDLE
    assert len(collector.sessions) == 1
    session = collector.sessions[0]
    assert session.pose == 'guard'
    assert session.samples_collected == 5
    assert session.quality is PoseQuality.EXCELLENT
    assert classifier.sample_count == 5


def test_samples_are_rate_limited(collector, clock):
    collector.start_recording('guard')
    clock.advance(3)
    assert collector.on_poses([make_pose()])
    clock.advance(0.01)
    assert not collector.on_poses([make_pose()])
    clock.advance(0.05)
    assert collector.on_poses([make_pose()])
    assert collector.samples_collected == 2


def test_poor_quality_and_missing_poses_rejected(collector, clock):
    collector.start_recording('guard')
    clock.advance(3)
    assert not collector.on_poses([])
    assert not collector.on_poses([make_pose(confidence=0.4)])
    assert collector.current_quality is PoseQuality.POOR
    assert collector.samples_collected == 0


def test_stop_keeps_partial_session(collector, clock):
    record(collector, clock, 'guard', frames=2)
    session = collector.stop_recording()

    assert session is not None and session.samples_collected == 2
    assert collector.state is RecordingState.IDLE


def test_stop_during_countdown_discards(collector):
    collector.start_recording('guard')
    assert collector.stop_recording() is None
    assert collector.sessions == []
    assert collector.state is RecordingState.IDLE


def test_training_readiness(collector, clock):
    ready, message = collector.training_readiness()
    assert not ready and "at least 2" in message

    record(collector, clock, 'guard')
    record(collector, clock, 'mount', frames=2)
    collector.stop_recording()
    ready, message = collector.training_readiness()
    assert not ready and "mount" in message

    record(collector, clock, 'triangle')
    collector.remove_session(next(s.id for s in collector.sessions if s.pose == 'mount'))
    ready, _ = collector.training_readiness()
    assert ready


def test_remove_session_drops_samples(collector, classifier, clock):
    record(collector, clock, 'guard')
    record(collector, clock, 'mount')

    assert collector.remove_session(collector.sessions[0].id)
    assert classifier.labels == ['mount']
    assert not collector.remove_session('missing')


def test_reset_clears_everything(classifier, clock, tmp_path):
    registry = ModelRegistry(tmp_path / "model.pkl")
    collector = SampleCollector(classifier, registry, samples_per_pose=3, countdown_seconds=0, clock=clock)
    collector.start_recording('guard')
    collector.on_poses([make_pose()])

    collector.reset()
    assert collector.state is RecordingState.IDLE
    assert collector.sessions == []
    assert classifier.sample_count == 0
    assert not registry.is_available


def test_reset_removes_saved_model(classifier, clock, tmp_path, two_class_data):
    model = PoseClassifier()
    for features, label in two_class_data:
        model.add_data(features, label)
    model.train()

    registry = ModelRegistry(tmp_path / "model.pkl")
    registry.publish(model)
    assert (tmp_path / "model.pkl").exists()

    SampleCollector(classifier, registry, clock=clock).reset()
    assert not (tmp_path / "model.pkl").exists()
    assert registry.refresh() is None


def test_dataset_roundtrip(collector, clock):
    record(collector, clock, 'guard')
    record(collector, clock, 'mount', pose=make_pose(offset=40))
    dataset = collector.to_dataset()

    assert dataset['metadata']['total_samples'] == 10
    assert dataset['metadata']['samples_per_label'] == {'guard': 5, 'mount': 5}
    assert len(dataset['samples'][0]['features']) == 34

    other = SampleCollector(PoseClassifier())
    assert other.load_dataset(dataset) == 10
    assert other.classifier.label_counts == {'guard': 5, 'mount': 5}
    assert [s.quality for s in other.sessions] == [PoseQuality.EXCELLENT, PoseQuality.EXCELLENT]
    # Labels that already exist are skipped
    assert other.load_dataset(dataset) == 0


def dataset_of(label, count, size=34, quality='good'):
    return {'samples': [{'label': label, 'features': [float(i)] * size, 'quality': quality}
                        for i in range(count)]}


def test_load_dataset_merges_same_label(collector):
    assert collector.load_dataset(dataset_of('guard', 5)) == 5
    assert collector.load_dataset(dataset_of('guard', 5, quality='excellent'), merge=True) == 5

    assert len(collector.sessions) == 1
    assert collector.sessions[0].samples_collected == 10
    assert len(collector.sessions[0].features) == 10
    assert collector.classifier.label_counts == {'guard': 10}


def test_load_dataset_rejects_bad_samples_untouched(collector):
    data = dataset_of('guard', 1)
    data['samples'].append({'label': 'guard', 'features': [0.0] * 10})
    with pytest.raises(CollectionError):
        collector.load_dataset(data)
    assert collector.sessions == []
    assert collector.classifier.sample_count == 0

    with pytest.raises(CollectionError):
        collector.load_dataset({'samples': [{'features': [0.0] * 34}]})
    assert collector.classifier.sample_count == 0
