#!/usr/bin/env python3
"""
Pose Studio - Standalone OpenCV Demo
Run this to test a trained pose classifier without Streamlit.

Usage: python demo_opencv.py

Controls:
    q - Quit
    c - Clear prediction history
    s - Toggle skeleton
    + - Raise confidence threshold
    - - Lower confidence threshold
"""

import argparse
import logging
import time

import cv2

from Vision_Engine import config
from Vision_Engine.core.capture_session import CameraSource, CaptureSessionManager
from Vision_Engine.core.pose_classifier import ModelRegistry
from Vision_Engine.core.prediction_loop import PredictionLoop
from Vision_Engine.detectors.pose_detector import BodyPoseDetector
from Vision_Engine.errors import CameraUnavailableError
from Streamlit_App.components.overlay_renderer import OverlayRenderer


def parse_args():
    parser = argparse.ArgumentParser(description="Pose Studio OpenCV Demo")
    parser.add_argument("--camera", "-c", type=int, default=config.CAMERA_ID, help="Camera ID")
    parser.add_argument("--model", default=str(config.MODEL_PATH), help="Trained model path")
    parser.add_argument("--complexity", type=int, choices=[0, 1, 2], default=1, help="Detector complexity")
    parser.add_argument("--threshold", type=float, default=config.CONFIDENCE_THRESHOLD,
                        help="Minimum confidence to show a prediction")
    return parser.parse_args()


class PoseStudioDemo:
    THRESHOLD_STEP = 0.1

    def __init__(self, camera_id=config.CAMERA_ID, model_path=config.MODEL_PATH, complexity=1,
                 threshold=config.CONFIDENCE_THRESHOLD):
        print("Pose Studio - Initializing...")
        self.camera_id = camera_id
        self.registry = ModelRegistry(model_path)
        if self.registry.refresh() is None:
            print(f"   ⚠️  {self.registry.status}")
            print("   Train one with: python -m Vision_Engine.training.train_model --data <dataset.json>")
        else:
            print(f"   ✓ {self.registry.status} ({', '.join(self.registry.get().classes)})")

        self.loop = PredictionLoop(self.registry, confidence_threshold=threshold)
        self.manager = CaptureSessionManager(
            detector_factory=lambda: BodyPoseDetector(model_complexity=complexity)
        )
        self.overlay = OverlayRenderer()

        self.fps = 0.0
        self.frame_count = 0
        self.last_fps_time = time.time()

    def run(self):
        try:
            session = self.manager.open("demo", source=CameraSource(self.camera_id))
        except CameraUnavailableError as e:
            print(f"❌ {e}")
            return
        session.add_listener(self.loop.update)

        print("✅ Ready! Press 'q' to quit, 'c' to clear history, '+'/'-' to change threshold")
        cv2.namedWindow("Pose Studio - Live Testing", cv2.WINDOW_NORMAL)

        try:
            while True:
                try:
                    frame, poses = session.read_and_process()
                except CameraUnavailableError:
                    break

                output = self.render(frame, poses, session)
                cv2.imshow("Pose Studio - Live Testing", output)

                key = cv2.waitKey(1) & 0xFF
                if key == ord('q'):
                    break
                elif key == ord('c'):
                    self.loop.clear_history()
                    print("🧹 Prediction history cleared")
                elif key == ord('s'):
                    self.overlay.show_skeleton = not self.overlay.show_skeleton
                elif key in (ord('+'), ord('=')):
                    self.change_threshold(self.THRESHOLD_STEP)
                elif key in (ord('-'), ord('_')):
                    self.change_threshold(-self.THRESHOLD_STEP)
        finally:
            self.cleanup()

    def render(self, frame, poses, session):
        output = self.overlay.draw_poses(frame.copy(), poses)

        if not session.is_ready:
            return self.overlay.draw_message(output, session.status)
        if not self.registry.is_available:
            return self.overlay.draw_message(output, "No trained model - press q and train one")

        output = self.overlay.draw_prediction(output, self.loop.current, self.loop.confidence_threshold,
                                              now_ms=time.time() * 1000)

        self.frame_count += 1
        if time.time() - self.last_fps_time >= 1.0:
            self.fps = self.frame_count / (time.time() - self.last_fps_time)
            self.frame_count = 0
            self.last_fps_time = time.time()

        h = output.shape[0]
        cv2.putText(output, f"FPS: {self.fps:.1f}  Predictions: {self.loop.total_predictions}",
                    (10, h - 15), cv2.FONT_HERSHEY_SIMPLEX, 0.5, (0, 255, 255), 1)
        return output

    def change_threshold(self, delta):
        threshold = round(min(1.0, max(0.1, self.loop.confidence_threshold + delta)), 2)
        self.loop.set_confidence_threshold(threshold)
        print(f"🎚️  Confidence threshold: {threshold:.0%}")

    def cleanup(self):
        self.manager.close()
        cv2.destroyAllWindows()
        distribution = self.loop.label_distribution()
        if distribution:
            print("\n📊 Recent predictions:")
            for label, count in sorted(distribution.items(), key=lambda kv: -kv[1]):
                print(f"   {label}: {count}")
        print("👋 Done!")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    args = parse_args()
    PoseStudioDemo(args.camera, args.model, args.complexity, args.threshold).run()
