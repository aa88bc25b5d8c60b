#!/usr/bin/env python3
"""
Model Trainer - Train the pose classifier from recorded datasets.

Usage:
    python -m Vision_Engine.training.train_model --data training_data/pose_data_*.json

This script:
1. Loads one or more datasets written by the data collector
2. Trains the classifier epoch by epoch
3. Evaluates with cross-validation and a classification report
4. Saves the model where the dashboard and demo load it from
"""

import json
from collections import Counter
from pathlib import Path
from typing import Any, Dict, List, Optional

import numpy as np
from sklearn.metrics import classification_report, confusion_matrix

from Vision_Engine import config
from Vision_Engine.core.pose_classifier import PoseClassifier, ModelRegistry, TrainingReport
from Vision_Engine.core.sample_collector import SampleCollector
from Vision_Engine.errors import CollectionError, TrainingError


class ModelTrainer:
    """Command-line wrapper around PoseClassifier.train()."""

    def __init__(self, data_paths: List[str], model_output: str = str(config.MODEL_PATH),
                 epochs: int = config.EPOCHS, learning_rate: float = config.LEARNING_RATE,
                 hidden_units: int = config.HIDDEN_UNITS, batch_size: int = config.BATCH_SIZE,
                 backend: str = config.CLASSIFIER_BACKEND):
        self.data_paths = [Path(p) for p in data_paths]
        self.model_output = Path(model_output)

        self.classifier = PoseClassifier(epochs=epochs, learning_rate=learning_rate,
                                         hidden_units=hidden_units, batch_size=batch_size, backend=backend)
        self.collector = SampleCollector(self.classifier)
        self.report: Optional[TrainingReport] = None
        self.results: Dict[str, Any] = {}

    def load_data(self) -> int:
        """Load every dataset file. Returns the number of samples loaded."""
        loaded = 0
        for path in self.data_paths:
            if not path.exists():
                print(f"❌ Data file not found: {path}")
                continue
            print(f"📂 Loading data from {path}")
            with open(path) as f:
                data = json.load(f)
            try:
                count = self.collector.load_dataset(data, merge=True)
            except CollectionError as e:
                print(f"❌ Skipping {path}: {e}")
                continue
            print(f"   Loaded {count} samples")
            loaded += count

        if not loaded:
            print("   Record some poses first:")
            print("   python -m Vision_Engine.training.data_collector --poses <pose> <pose>")
        return loaded

    def analyze_data(self):
        print("\n📊 Data Analysis")
        print("=" * 50)
        print("\nLabel Distribution:")
        for label, count in sorted(self.classifier.label_counts.items()):
            print(f"  {label:25s} {count:4d} {'█' * (count // 2)}")

        ready, message = self.collector.training_readiness()
        print(f"\n   {'✅' if ready else '⚠️ '} {message}")

    def train(self) -> Dict[str, Any]:
        if not self.load_data():
            return {}
        self.analyze_data()

        print("\n🏋️ Training Model")
        print("=" * 50)
        print(f"   Backend: {self.classifier.backend}")
        print(f"   Samples: {self.classifier.sample_count}")
        print(f"   Epochs: {self.classifier.epochs}  Learning rate: {self.classifier.learning_rate}  "
              f"Hidden units: {self.classifier.hidden_units}  Batch size: {self.classifier.batch_size}")

        def on_epoch(epoch: int, total: int, loss: Optional[float]):
            loss_text = f"{loss:.4f}" if loss is not None else "-"
            print(f"   Epoch {epoch:3d}/{total}  loss={loss_text}")

        try:
            self.report = self.classifier.train(on_epoch=on_epoch, validate=True)
        except TrainingError as e:
            print(f"❌ Training failed: {e}")
            return {}

        self.results = self.report.to_dict()
        self.results['backend'] = self.classifier.backend
        self.results['samples_per_label'] = self.classifier.label_counts

        print(f"\n   Training accuracy: {self.report.train_accuracy:.3f}")
        if self.report.cv_accuracy_mean is not None:
            print(f"   CV Accuracy: {self.report.cv_accuracy_mean:.3f} (±{self.report.cv_accuracy_std:.3f})")
        else:
            print("   CV skipped: not enough samples per pose")

        self._detailed_evaluation()
        return self.results

    def _detailed_evaluation(self):
        """Classification report and confusion matrix on the training buffer."""
        print("\n📈 Detailed Evaluation")
        print("=" * 50)

        X, y_true = [], []
        for session in self.collector.sessions:
            X.extend(session.features)
            y_true.extend([session.pose] * len(session.features))
        y_pred = [self.classifier.classify(features)[0].label for features in X]
        labels = self.classifier.classes

        print("\nClassification Report:")
        print(classification_report(y_true, y_pred, labels=labels, zero_division=0))

        print("Confusion Matrix:")
        cm = confusion_matrix(y_true, y_pred, labels=labels)
        print(f"\n{'':<20} " + "".join(f"{name[:8]:>10}" for name in labels))
        for name, row in zip(labels, cm):
            print(f"{name:<20} " + "".join(f"{val:>10}" for val in row))

        predicted = Counter(y_pred)
        agreement = np.mean([t == p for t, p in zip(y_true, y_pred)]) if y_true else 0.0
        print(f"\n   Agreement: {agreement:.1%}  Most predicted: {predicted.most_common(1)}")

    def save_model(self):
        if not self.classifier.is_trained:
            print("❌ No trained model to save!")
            return

        ModelRegistry(self.model_output).publish(self.classifier)
        print(f"\n✅ Model saved to {self.model_output}")

        results_path = self.model_output.parent / "training_results.json"
        with open(results_path, 'w') as f:
            json.dump(self.results, f, indent=2)
        print(f"   Training results saved to {results_path}")

    def run(self):
        print("\n" + "=" * 60)
        print("  ◉ POSE STUDIO MODEL TRAINER")
        print("=" * 60)

        results = self.train()
        if not results:
            return

        self.save_model()
        print("\n" + "=" * 60)
        print("  ✅ TRAINING COMPLETE!")
        print("=" * 60)
        print(f"\n  Poses: {', '.join(results['labels'])}")
        print(f"  Training accuracy: {results['train_accuracy']:.1%}")
        print(f"\n  Model saved to: {self.model_output}")
        print("  Try it live with: python demo_opencv.py")


def main():
    import argparse

    parser = argparse.ArgumentParser(description="Train the pose classifier")
    parser.add_argument("--data", "-d", nargs="+", required=True, help="Dataset JSON file(s)")
    parser.add_argument("--output", "-o", default=str(config.MODEL_PATH), help="Model output path")
    parser.add_argument("--epochs", type=int, default=config.EPOCHS)
    parser.add_argument("--learning-rate", type=float, default=config.LEARNING_RATE)
    parser.add_argument("--hidden-units", type=int, default=config.HIDDEN_UNITS)
    parser.add_argument("--batch-size", type=int, default=config.BATCH_SIZE)
    parser.add_argument("--backend", choices=PoseClassifier.BACKENDS, default=config.CLASSIFIER_BACKEND)
    args = parser.parse_args()

    trainer = ModelTrainer(
        args.data, model_output=args.output, epochs=args.epochs, learning_rate=args.learning_rate,
        hidden_units=args.hidden_units, batch_size=args.batch_size, backend=args.backend
    )
    trainer.run()


if __name__ == "__main__":
    main()
