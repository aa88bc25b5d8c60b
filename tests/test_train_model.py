import json

from Vision_Engine.training.train_model import ModelTrainer


def write_dataset(path, label, count, size=34):
    samples = [{'label': label, 'features': [float(i)] * size, 'quality': 'good'} for i in range(count)]
    path.write_text(json.dumps({'metadata': {}, 'samples': samples}))
    return str(path)


def test_load_data_combines_files_with_same_label(tmp_path):
    paths = [write_dataset(tmp_path / "monday.json", 'guard', 5),
             write_dataset(tmp_path / "tuesday.json", 'guard', 5),
             write_dataset(tmp_path / "mount.json", 'mount', 4)]
    trainer = ModelTrainer(paths, model_output=str(tmp_path / "model.pkl"))

    assert trainer.load_data() == 14
    assert trainer.classifier.label_counts == {'guard': 10, 'mount': 4}
    assert sorted(s.pose for s in trainer.collector.sessions) == ['guard', 'mount']


def test_load_data_skips_malformed_file(tmp_path):
    bad = tmp_path / "bad.json"
    bad.write_text(json.dumps({'samples': [{'label': 'guard', 'features': [1.0, 2.0]}]}))
    paths = [str(bad), write_dataset(tmp_path / "mount.json", 'mount', 3), str(tmp_path / "missing.json")]
    trainer = ModelTrainer(paths, model_output=str(tmp_path / "model.pkl"))

    assert trainer.load_data() == 3
    assert trainer.classifier.label_counts == {'mount': 3}
