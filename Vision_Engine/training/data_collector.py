#!/usr/bin/env python3
"""
Data Collector - Record labelled pose samples from the webcam.

Usage:
    python -m Vision_Engine.training.data_collector --poses guard mount triangle

Controls:
    1-9    : Select the pose to record (from --poses)
    SPACE  : Start the countdown and record the selected pose
    X      : Stop recording early (keeps samples taken so far)
    S      : Save all recorded poses to JSON
    R      : Reset (clear all recorded poses)
    Q      : Quit
"""

import json
from datetime import datetime
from pathlib import Path
from typing import List, Optional

import cv2

from Vision_Engine import config
from Vision_Engine.core.capture_session import CameraSource, CaptureSessionManager
from Vision_Engine.core.pose_classifier import PoseClassifier
from Vision_Engine.core.sample_collector import SampleCollector, RecordingState
from Vision_Engine.detectors.pose_detector import BodyPoseDetector
from Vision_Engine.errors import CameraUnavailableError, CollectionError
from Streamlit_App.components.overlay_renderer import OverlayRenderer


class DataCollector:
    """Keyboard-driven recording loop around SampleCollector."""

    WINDOW_NAME = "Pose Studio Data Collector"

    COLOR_GREEN = (0, 255, 0)
    COLOR_RED = (0, 0, 255)
    COLOR_YELLOW = (0, 255, 255)
    COLOR_WHITE = (255, 255, 255)
    COLOR_GRAY = (128, 128, 128)

    def __init__(self, poses: List[str], output_dir: str = str(config.DATASET_DIR),
                 camera_id: int = config.CAMERA_ID, samples_per_pose: int = config.SAMPLES_PER_POSE):
        self.poses = poses[:9]
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.camera_id = camera_id

        self.classifier = PoseClassifier()
        self.collector = SampleCollector(self.classifier, samples_per_pose=samples_per_pose)
        self.manager = CaptureSessionManager(detector_factory=lambda: BodyPoseDetector(model_complexity=1))
        self.renderer = OverlayRenderer()

        self.current_pose: Optional[str] = self.poses[0] if self.poses else None
        self._was_recording = False

    def collect(self):
        try:
            session = self.manager.open("collector", source=CameraSource(self.camera_id))
        except CameraUnavailableError as e:
            print(f"❌ Error: {e}")
            return

        session.add_listener(self.collector.on_poses)
        self._print_instructions()
        cv2.namedWindow(self.WINDOW_NAME, cv2.WINDOW_NORMAL)

        try:
            while True:
                try:
                    frame, poses = session.read_and_process()
                except CameraUnavailableError as e:
                    print(f"❌ Error: {e}")
                    break

                self._report_finished_window()
                cv2.imshow(self.WINDOW_NAME, self._draw_ui(frame, poses, session.status, session.is_ready))

                key = cv2.waitKey(1) & 0xFF
                if ord('1') <= key <= ord('9'):
                    idx = key - ord('1')
                    if idx < len(self.poses):
                        self.current_pose = self.poses[idx]
                        print(f"📌 Pose set to: [{idx + 1}] {self.current_pose}")
                elif key == ord(' '):
                    self._start()
                elif key in (ord('x'), ord('X')):
                    finished = self.collector.stop_recording()
                    self._was_recording = False
                    if finished:
                        print(f"🛑 Stopped early: {finished.samples_collected} samples for '{finished.pose}'")
                    else:
                        print("🛑 Recording cancelled")
                elif key in (ord('s'), ord('S')):
                    self._save_data()
                elif key in (ord('r'), ord('R')):
                    self._reset_data()
                elif key in (ord('q'), ord('Q')):
                    break
        finally:
            self.manager.close()
            cv2.destroyAllWindows()
            print("\n👋 Data collector closed")

    def _start(self):
        if not self.current_pose:
            print("⚠️  Select a pose first! Press 1-9.")
            return
        try:
            self.collector.start_recording(self.current_pose)
        except CollectionError as e:
            print(f"⚠️  {e}")
            return
        self._was_recording = True
        print(f"⏳ Recording '{self.current_pose}' in {self.collector.countdown_seconds}s - get into position!")

    def _report_finished_window(self):
        """Print once when the collector closes the window on its own."""
        if self._was_recording and self.collector.state is RecordingState.IDLE:
            self._was_recording = False
            if self.collector.sessions:
                last = self.collector.sessions[-1]
                print(f"✅ Recorded {last.samples_collected} samples for '{last.pose}' "
                      f"(quality: {last.quality.value})")

    def _draw_ui(self, frame, poses, status: str, ready: bool):
        display = frame.copy()
        h, w = display.shape[:2]
        state = self.collector.state

        display = self.renderer.draw_poses(display, poses, emphasized=state is RecordingState.RECORDING)
        display = self.renderer.draw_quality(display, self.collector.current_quality)

        if not ready:
            display = self.renderer.draw_message(display, status)
        elif state is RecordingState.COUNTDOWN:
            display = self.renderer.draw_countdown(display, self.collector.countdown_remaining)
        elif state is RecordingState.RECORDING:
            display = self.renderer.draw_recording(display, self.collector.pose_name,
                                                   self.collector.samples_collected,
                                                   self.collector.samples_per_pose)
        else:
            label = f"Pose: {self.current_pose}" if self.current_pose else "Pose: NOT SET (press 1-9)"
            cv2.putText(display, label, (10, 30), cv2.FONT_HERSHEY_SIMPLEX, 0.6,
                        self.COLOR_GREEN if self.current_pose else self.COLOR_RED, 2)

        # Per-pose counts
        recorded = {s.pose: s.samples_collected for s in self.collector.sessions}
        y = h - 20 - 18 * len(self.poses)
        cv2.putText(display, "SPACE=Record | X=Stop | S=Save | R=Reset | Q=Quit", (10, y),
                    cv2.FONT_HERSHEY_SIMPLEX, 0.45, self.COLOR_YELLOW, 1)
        for i, pose in enumerate(self.poses):
            color = self.COLOR_GREEN if pose == self.current_pose else self.COLOR_GRAY
            cv2.putText(display, f"[{i + 1}] {pose}: {recorded.get(pose, 0)}", (10, y + 18 * (i + 1)),
                        cv2.FONT_HERSHEY_SIMPLEX, 0.45, color, 1)
        return display

    def _save_data(self):
        if not self.collector.sessions:
            print("⚠️  No data to save!")
            return

        dataset = self.collector.to_dataset()
        filepath = self.output_dir / f"pose_data_{datetime.now().strftime('%Y%m%d_%H%M%S')}.json"
        with open(filepath, 'w') as f:
            json.dump(dataset, f, indent=2)

        print(f"\n✅ Saved {dataset['metadata']['total_samples']} samples to {filepath}")
        print("   Breakdown:")
        for label, count in dataset['metadata']['samples_per_label'].items():
            print(f"     {label}: {count}")

    def _reset_data(self):
        total = self.collector.total_samples
        if not total:
            print("ℹ️  No data to reset")
            return
        self.collector.reset()
        self._was_recording = False
        print(f"🔄 Reset! Cleared {total} samples.")

    def _print_instructions(self):
        print("\n" + "=" * 60)
        print("  ◉ POSE STUDIO DATA COLLECTOR")
        print("=" * 60)
        print("\n🏷️  Poses:")
        for i, pose in enumerate(self.poses, 1):
            print(f"   [{i}] {pose}")
        print("\n⌨️  Controls:")
        print("   1-9    = Select pose")
        print(f"   SPACE  = Record {self.collector.samples_per_pose} samples after a "
              f"{self.collector.countdown_seconds}s countdown")
        print("   X      = Stop recording early")
        print("   S      = Save data to file")
        print("   R      = Reset (clear all data)")
        print("   Q      = Quit")
        print("\n💡 Tips:")
        print("   • Move slightly while holding the pose for varied samples")
        print("   • Keep your whole body in frame")
        print("=" * 60 + "\n")


def main():
    import argparse

    parser = argparse.ArgumentParser(description="Record labelled pose samples")
    parser.add_argument("--poses", "-p", nargs="+", required=True, help="Pose names (up to 9)")
    parser.add_argument("--output", "-o", default=str(config.DATASET_DIR), help="Output directory")
    parser.add_argument("--camera", "-c", type=int, default=config.CAMERA_ID, help="Camera device ID")
    parser.add_argument("--samples", "-n", type=int, default=config.SAMPLES_PER_POSE,
                        help="Samples per pose")
    args = parser.parse_args()

    DataCollector(args.poses, output_dir=args.output, camera_id=args.camera,
                  samples_per_pose=args.samples).collect()


if __name__ == "__main__":
    main()
