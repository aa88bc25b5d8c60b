import pytest

from Vision_Engine.core.pose_classifier import PoseClassifier, ModelRegistry
from Vision_Engine.errors import ModelNotTrainedError, TrainingError

from conftest import make_features


def trained(two_class_data, **kwargs):
    classifier = PoseClassifier(**kwargs)
    for features, label in two_class_data:
        classifier.add_data(features, label)
    classifier.train()
    return classifier


def test_add_data_validates_input():
    classifier = PoseClassifier()
    with pytest.raises(ValueError):
        classifier.add_data([0.0] * 10, 'guard')
    with pytest.raises(ValueError):
        classifier.add_data([0.0] * 34, '  ')

    classifier.add_data([0.0] * 34, 'guard')
    assert classifier.sample_count == 1
    assert classifier.labels == ['guard']


def test_train_requires_data():
    with pytest.raises(TrainingError):
        PoseClassifier().train()


def test_train_requires_two_classes():
    classifier = PoseClassifier()
    for i in range(5):
        classifier.add_data(make_features(0.0, seed=i), 'guard')
    with pytest.raises(TrainingError):
        classifier.train()


def test_train_reports_every_epoch(two_class_data):
    classifier = PoseClassifier(epochs=5)
    for features, label in two_class_data:
        classifier.add_data(features, label)

    epochs = []
    report = classifier.train(on_epoch=lambda epoch, total, loss: epochs.append((epoch, total)))

    assert epochs == [(i, 5) for i in range(1, 6)]
    assert classifier.is_trained
    assert classifier.is_normalized
    assert report.num_samples == 40
    assert report.labels == ['guard', 'mount']
    assert report.final_loss is not None


def test_classify_separates_clusters(two_class_data):
    classifier = trained(two_class_data, epochs=30)

    results = classifier.classify(make_features(50.0, seed=999))
    assert [r.label for r in results][0] == 'mount'
    assert results[0].confidence >= results[1].confidence
    assert sum(r.confidence for r in results) == pytest.approx(1.0)


def test_classify_before_training():
    with pytest.raises(ModelNotTrainedError):
        PoseClassifier().classify([0.0] * 34)


def test_classify_rejects_wrong_size(two_class_data):
    classifier = trained(two_class_data)
    with pytest.raises(ValueError):
        classifier.classify([0.0] * 12)


def test_xgboost_backend(two_class_data):
    classifier = trained(two_class_data, backend='xgboost')
    assert classifier.classify(make_features(0.0, seed=7))[0].label == 'guard'


def test_unknown_backend():
    with pytest.raises(ValueError):
        PoseClassifier(backend='svm')


def test_validation_scores(two_class_data):
    classifier = PoseClassifier()
    for features, label in two_class_data:
        classifier.add_data(features, label)
    report = classifier.train(validate=True)
    assert report.cv_accuracy_mean is not None
    assert 0.0 <= report.cv_accuracy_mean <= 1.0


def test_remove_label(two_class_data):
    classifier = PoseClassifier()
    for features, label in two_class_data:
        classifier.add_data(features, label)
    classifier.normalize_data()

    assert classifier.remove_label('guard') == 20
    assert classifier.labels == ['mount']
    assert not classifier.is_normalized
    assert classifier.remove_label('guard') == 0


def test_reset(two_class_data):
    classifier = trained(two_class_data)
    classifier.reset()
    assert not classifier.is_trained
    assert classifier.sample_count == 0


def test_save_and_load(two_class_data, tmp_path):
    classifier = trained(two_class_data, epochs=30)
    path = tmp_path / "model.pkl"
    classifier.save_model(path)

    loaded = PoseClassifier(model_path=path)
    assert loaded.is_trained
    assert loaded.classes == ['guard', 'mount']
    sample = make_features(0.0, seed=5)
    assert loaded.classify(sample)[0].label == classifier.classify(sample)[0].label


# -----------------------------------------------------------------------------
# Registry
# -----------------------------------------------------------------------------

def test_registry_publish_requires_trained_model():
    registry = ModelRegistry()
    with pytest.raises(ModelNotTrainedError):
        registry.publish(PoseClassifier())
    assert not registry.is_available
    assert registry.status == ModelRegistry.NO_MODEL


def test_registry_publish_and_refresh_from_disk(two_class_data, tmp_path):
    path = tmp_path / "models" / "pose_classifier.pkl"
    ModelRegistry(path).publish(trained(two_class_data))
    assert path.exists()

    # A fresh registry (another process or view) picks the model up from disk
    other = ModelRegistry(path)
    assert other.get() is None
    model = other.refresh()
    assert model is not None and model.is_trained
    assert other.is_available


def test_registry_clear(two_class_data, tmp_path):
    path = tmp_path / "model.pkl"
    registry = ModelRegistry(path)
    registry.publish(trained(two_class_data))

    registry.clear(delete_file=True)
    assert registry.get() is None
    assert not path.exists()
    assert registry.refresh() is None


def test_registry_without_file():
    registry = ModelRegistry()
    assert registry.refresh() is None
    assert not registry.is_available
