import pytest

from Vision_Engine.core.pose_classifier import PoseClassifier, ModelRegistry, PredictionResult
from Vision_Engine.core.prediction_loop import PredictionLoop, classify_pose, confidence_band

from conftest import make_pose


class StubClassifier:
    """Trained-looking classifier with a fixed answer."""
    input_size = 34
    is_trained = True

    def __init__(self, label='guard', confidence=0.9, error=None):
        self.label = label
        self.confidence = confidence
        self.error = error
        self.calls = 0

    def classify(self, inputs):
        self.calls += 1
        if self.error:
            raise self.error
        return [PredictionResult(self.label, self.confidence), PredictionResult('other', 1 - self.confidence)]


class StubRegistry(ModelRegistry):
    def __init__(self, model=None):
        super().__init__()
        self._model = model


@pytest.fixture
def model():
    return StubClassifier()


@pytest.fixture
def loop(model, clock):
    return PredictionLoop(StubRegistry(model), interval_ms=500, confidence_threshold=0.4,
                          history_size=3, clear_after_ms=2000, clock=clock)


def test_classify_pose_sentinels(model):
    assert classify_pose([make_pose()], None).label == 'no_model'
    assert classify_pose([make_pose()], PoseClassifier()).label == 'no_model'
    assert classify_pose([], model).label == 'no_pose'
    assert classify_pose([make_pose()], StubClassifier(error=ValueError("bad"))).label == 'classification_error'
    assert classify_pose([make_pose()], StubClassifier(error=RuntimeError("boom"))).label == 'exception'

    best = classify_pose([make_pose()], model)
    assert (best.label, best.confidence) == ('guard', 0.9)


def test_confidence_bands():
    assert confidence_band(0.95) == 'high'
    assert confidence_band(0.7) == 'medium'
    assert confidence_band(0.5) == 'low'
    assert confidence_band(0.4) == 'very_low'


def test_prediction_is_debounced(loop, model, clock):
    assert loop.update([make_pose()]) is not None
    clock.advance(0.2)
    assert loop.update([make_pose()]) is None
    assert model.calls == 1

    clock.advance(0.4)
    prediction = loop.update([make_pose()])
    assert prediction.label == 'guard'
    assert prediction.timestamp == clock() * 1000
    assert loop.total_predictions == 2


def test_low_confidence_is_not_surfaced(clock):
    loop = PredictionLoop(StubRegistry(StubClassifier(confidence=0.3)), clock=clock)
    assert loop.update([make_pose()]) is None
    assert loop.current is None
    assert loop.total_predictions == 0


def test_no_model_means_no_prediction(clock):
    loop = PredictionLoop(StubRegistry(None), clock=clock)
    assert loop.update([make_pose()]) is None


def test_history_is_newest_first_and_bounded(loop, model, clock):
    for label in ['a', 'b', 'c', 'd']:
        model.label = label
        loop.update([make_pose()])
        clock.advance(1)

    assert [p.label for p in loop.history] == ['d', 'c', 'b']
    assert loop.total_predictions == 4
    assert loop.label_distribution() == {'d': 1, 'c': 1, 'b': 1}


def test_stale_prediction_clears_without_poses(loop, clock):
    loop.update([make_pose()])
    clock.advance(1)
    loop.update([])
    assert loop.current is not None

    clock.advance(1.5)
    loop.update([])
    assert loop.current is None
    assert len(loop.history) == 1


def test_threshold_and_interval_validation(loop):
    with pytest.raises(ValueError):
        loop.set_confidence_threshold(0.05)
    with pytest.raises(ValueError):
        loop.set_confidence_threshold(1.5)
    with pytest.raises(ValueError):
        loop.set_interval(0)

    loop.set_confidence_threshold(0.95)
    loop.set_interval(100)
    assert loop.update([make_pose()]) is None


def test_clear_history_and_restart(loop, model, clock):
    loop.update([make_pose()])
    loop.clear_history()
    assert loop.current is None
    assert len(loop.history) == 0
    assert loop.total_predictions == 0

    loop.restart()
    assert loop.update([make_pose()]) is not None
    assert model.calls == 2
