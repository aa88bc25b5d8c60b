"""
Pose Studio - Pose Capture & Classification
Main Streamlit Dashboard Application

Run with: streamlit run Streamlit_App/app.py
"""

import json
import logging
import time

import av
import streamlit as st
from streamlit_webrtc import webrtc_streamer, VideoProcessorBase, WebRtcMode

from Vision_Engine import config
from Vision_Engine.core.capture_session import CaptureSessionManager
from Vision_Engine.core.pose_classifier import PoseClassifier, ModelRegistry
from Vision_Engine.core.prediction_loop import PredictionLoop
from Vision_Engine.core.sample_collector import SampleCollector, RecordingState
from Vision_Engine.detectors.pose_detector import BodyPoseDetector
from Vision_Engine.errors import CollectionError, TrainingError
from Streamlit_App.components.overlay_renderer import OverlayRenderer
from Streamlit_App.components.charts import (create_confidence_gauge, create_samples_chart,
                                             create_prediction_timeline)

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

VIEWS = {"pose": "🧍 Pose Detection", "training": "🎯 Training", "testing": "🧪 Testing"}
MEDIA_CONSTRAINTS = {
    "video": {"width": config.CANVAS_WIDTH, "height": config.CANVAS_HEIGHT, "facingMode": "user"},
    "audio": False
}

# Page config
st.set_page_config(
    page_title="Pose Studio - Pose Capture & Classification",
    page_icon="◉",
    layout="wide",
    initial_sidebar_state="expanded"
)

# Custom CSS - clean, minimal UI
st.markdown("""
<style>
    @import url('https://fonts.googleapis.com/css2?family=DM+Sans:wght@400;500;600;700&display=swap');

    .stApp { background: #f8fafc; }
    h1, h2, h3 { font-family: 'DM Sans', sans-serif !important; color: #0f172a !important; }

    .metric-card {
        background: #fff;
        border: 1px solid #e2e8f0;
        border-radius: 12px;
        padding: 20px;
        margin: 12px 0;
        box-shadow: 0 1px 3px rgba(0,0,0,0.05);
    }

    .metric-value { font-family: 'DM Sans', sans-serif; font-size: 2rem; font-weight: 600; }
    [data-testid="stSidebar"] { background: #f1f5f9; }
</style>
""", unsafe_allow_html=True)


class PoseStudio:
    """Process-wide state shared by every view and video processor."""

    def __init__(self):
        self.registry = ModelRegistry(config.MODEL_PATH)
        self.classifier = PoseClassifier()
        self.collector = SampleCollector(self.classifier, self.registry)
        self.prediction_loop = PredictionLoop(self.registry)
        self.sessions = CaptureSessionManager(detector_factory=BodyPoseDetector)
        self.last_report = None


@st.cache_resource
def get_studio() -> PoseStudio:
    return PoseStudio()


# -----------------------------------------------------------------------------
# Video processors
# -----------------------------------------------------------------------------

class PoseVideoProcessor(VideoProcessorBase):
    """WebRTC processor that claims the capture session for its view."""
    view = "pose"

    def __init__(self):
        self.studio = get_studio()
        self.renderer = OverlayRenderer()
        self.session = self.studio.sessions.open(self.view)
        self.attach(self.session)

    def attach(self, session):
        """Register detection listeners for this view. Plain detection needs none."""

    def recv(self, frame: av.VideoFrame) -> av.VideoFrame:
        img = self.session.fit_to_canvas(frame.to_ndarray(format="bgr24"))

        if not self.session.is_active:
            img = self.renderer.draw_message(img, "Camera in use by another view")
            return av.VideoFrame.from_ndarray(img, format="bgr24")

        poses = self.session.process_frame(img, time.time() * 1000)
        if not self.session.is_ready:
            img = self.renderer.draw_message(img, self.session.status)
        else:
            img = self.render(img, poses)
        return av.VideoFrame.from_ndarray(img, format="bgr24")

    def render(self, img, poses):
        img = self.renderer.draw_poses(img, poses)
        if not poses:
            img = self.renderer.draw_message(img, "Position yourself in frame")
        return img

    def on_ended(self):
        self.studio.sessions.release(self.session)


class TrainingVideoProcessor(PoseVideoProcessor):
    view = "training"

    def attach(self, session):
        session.add_listener(self.studio.collector.on_poses)

    def render(self, img, poses):
        collector = self.studio.collector
        state = collector.state
        img = self.renderer.draw_poses(img, poses, emphasized=state is RecordingState.RECORDING)
        img = self.renderer.draw_quality(img, collector.current_quality)

        if state is RecordingState.COUNTDOWN:
            img = self.renderer.draw_countdown(img, collector.countdown_remaining)
        elif state is RecordingState.RECORDING:
            img = self.renderer.draw_recording(img, collector.pose_name, collector.samples_collected,
                                               collector.samples_per_pose)
        if not poses:
            img = self.renderer.draw_message(img, "Position yourself in frame to start training")
        return img


class TestingVideoProcessor(PoseVideoProcessor):
    view = "testing"

    def attach(self, session):
        self.studio.registry.refresh()
        session.add_listener(self.studio.prediction_loop.update)

    def render(self, img, poses):
        loop = self.studio.prediction_loop
        img = self.renderer.draw_poses(img, poses)
        if self.studio.registry.is_available:
            img = self.renderer.draw_prediction(img, loop.current, loop.confidence_threshold,
                                                now_ms=time.time() * 1000)
        else:
            img = self.renderer.draw_message(img, "No trained model - train one first")
        return img


def video_stream(view: str, processor):
    return webrtc_streamer(
        key=f"pose-studio-{view}",
        mode=WebRtcMode.SENDRECV,
        video_processor_factory=processor,
        media_stream_constraints=MEDIA_CONSTRAINTS,
        async_processing=True
    )


# -----------------------------------------------------------------------------
# Views
# -----------------------------------------------------------------------------

def render_pose_view(studio: PoseStudio):
    col_video, col_info = st.columns([1.2, 1])
    with col_video:
        st.markdown("### 📹 Live Pose Detection")
        video_stream("pose", PoseVideoProcessor)

    with col_info:
        st.markdown("### 📊 Detection")

        @st.fragment(run_every=1.0)
        def live_detection():
            session = studio.sessions.active
            if session is None or session.view != "pose":
                st.info("Start the camera to see detected keypoints")
                return
            st.caption(f"Status: {session.status}")
            poses = session.latest_poses
            st.metric("People detected", len(poses))
            if poses:
                st.metric("Pose confidence", f"{poses[0].score:.0%}")
                st.dataframe([kp.to_dict() for kp in poses[0].keypoints], use_container_width=True)

        live_detection()


def render_training_view(studio: PoseStudio):
    collector = studio.collector
    classifier = studio.classifier

    st.markdown("### 🎯 Data Collection")
    c1, c2, c3 = st.columns([3, 1, 1])
    with c1:
        pose_name = st.text_input("Pose name", placeholder="e.g. guard, mount, triangle",
                                  label_visibility="collapsed")
    with c2:
        if st.button("🎬 Start Recording", use_container_width=True):
            try:
                collector.start_recording(pose_name)
                st.success(f"Get ready! Recording '{pose_name.strip()}' in {collector.countdown_seconds}s")
            except CollectionError as e:
                st.warning(str(e))
    with c3:
        if st.button("🛑 Stop", use_container_width=True):
            session = collector.stop_recording()
            if session:
                st.success(f"Saved {session.samples_collected} samples for '{session.pose}'")

    col_video, col_data = st.columns([1.2, 1])
    with col_video:
        video_stream("training", TrainingVideoProcessor)
        st.caption("💡 Hold the pose and move naturally to collect diverse samples.")

    with col_data:
        @st.fragment(run_every=1.0)
        def live_collection():
            state = collector.state
            if state is RecordingState.COUNTDOWN:
                st.info(f"Starting in {collector.countdown_remaining}...")
            elif state is RecordingState.RECORDING:
                st.progress(collector.samples_collected / collector.samples_per_pose,
                            text=f"Recording '{collector.pose_name}': "
                                 f"{collector.samples_collected}/{collector.samples_per_pose}")
            st.caption(f"Pose quality: **{collector.current_quality.value}**")

            st.markdown(f"#### 📊 Collected Data ({len(collector.sessions)} poses)")
            if collector.sessions:
                st.plotly_chart(create_samples_chart(
                    {s.pose: s.samples_collected for s in collector.sessions}, collector.samples_per_pose
                ), use_container_width=True)
            else:
                st.caption("No training data collected yet.")

        live_collection()

        for session in list(collector.sessions):
            cols = st.columns([4, 1])
            cols[0].markdown(f"**{session.pose}** · {session.samples_collected} samples · "
                             f"{session.quality.value}")
            if cols[1].button("🗑️", key=f"remove-{session.id}"):
                collector.remove_session(session.id)
                st.rerun()

    st.divider()
    st.markdown("### 🧠 Model Training")

    with st.expander("⚙️ Advanced settings"):
        s1, s2, s3, s4 = st.columns(4)
        classifier.epochs = s1.number_input("Epochs", 1, 200, classifier.epochs)
        classifier.learning_rate = s2.number_input("Learning rate", 0.001, 0.1, classifier.learning_rate,
                                                   step=0.001, format="%.3f")
        classifier.hidden_units = s3.number_input("Hidden units", 2, 128, classifier.hidden_units)
        classifier.batch_size = s4.number_input("Batch size", 1, 64, classifier.batch_size)

    ready, message = collector.training_readiness()
    t1, t2, t3 = st.columns([2, 1, 1])
    with t1:
        train_clicked = st.button("🚀 Train Model", disabled=not ready, use_container_width=True)
        if not ready:
            st.caption(message)
    with t2:
        st.download_button("💾 Export samples", json.dumps(collector.to_dataset(), indent=2),
                           file_name="pose_data.json", mime="application/json",
                           disabled=not collector.sessions, use_container_width=True)
    with t3:
        confirm = st.checkbox("Confirm reset")
        if st.button("🗑️ Reset All", disabled=not confirm, use_container_width=True):
            collector.reset()
            studio.last_report = None
            st.rerun()

    if train_clicked:
        progress = st.progress(0, text="Training...")

        def on_epoch(epoch, total, loss):
            text = f"Epoch {epoch}/{total}" + (f" · loss {loss:.4f}" if loss is not None else "")
            progress.progress(epoch / total, text=text)

        try:
            studio.last_report = classifier.train(on_epoch=on_epoch)
            studio.registry.publish(classifier)
        except TrainingError as e:
            st.error(f"Training failed: {e}")

    if studio.last_report:
        report = studio.last_report
        st.success(f"🎉 Trained on {report.num_samples} samples for {report.num_classes} poses "
                   f"(training accuracy {report.train_accuracy:.0%}). Switch to Testing to try it out!")


def render_testing_view(studio: PoseStudio):
    loop = studio.prediction_loop
    registry = studio.registry
    registry.refresh()

    status_col, refresh_col, clear_col = st.columns([3, 1, 1])
    with status_col:
        (st.success if registry.is_available else st.error)(registry.status)
    with refresh_col:
        if st.button("🔄 Refresh Model", use_container_width=True):
            registry.refresh()
            st.rerun()
    with clear_col:
        if st.button("🧹 Clear Stored Model", use_container_width=True):
            registry.clear(delete_file=True)
            loop.clear_current()
            st.rerun()

    with st.sidebar:
        st.markdown("### 🧪 Prediction")
        loop.set_confidence_threshold(st.slider("Confidence threshold", 0.1, 1.0,
                                                float(loop.confidence_threshold), 0.1))
        loop.set_interval(st.select_slider("Prediction interval (ms)", [100, 250, 500, 1000, 2000],
                                           value=int(loop.interval_ms)))
        if st.button("Clear history", use_container_width=True):
            loop.clear_history()
        if st.button("Restart loop", use_container_width=True):
            loop.restart()

    col_video, col_charts = st.columns([1.2, 1])
    with col_video:
        video_stream("testing", TestingVideoProcessor)

    with col_charts:
        @st.fragment(run_every=1.0)
        def live_predictions():
            current = loop.current
            st.plotly_chart(create_confidence_gauge(current.label if current else "",
                                                    current.confidence if current else 0.0,
                                                    loop.confidence_threshold),
                            use_container_width=True)
            history = list(loop.history)
            st.metric("Predictions", loop.total_predictions)
            if len(history) >= 2:
                st.plotly_chart(create_prediction_timeline(history), use_container_width=True)
            else:
                st.caption("Prediction history will appear once poses are recognised")

        live_predictions()


def main():
    col1, col2 = st.columns([3, 1])
    with col1:
        st.markdown("# Pose Studio\n*Capture, train and recognise your own poses*")

    studio = get_studio()

    with st.sidebar:
        st.markdown("## ⚙️ View")
        view = st.radio("View", list(VIEWS), format_func=VIEWS.get, label_visibility="collapsed")
        active = studio.sessions.active_view
        st.caption(f"Camera: {VIEWS[active] if active else 'idle'}")
        st.divider()

    # Only the selected view may hold the camera
    if studio.sessions.active_view not in (None, view):
        studio.sessions.close()

    if view == "pose":
        render_pose_view(studio)
    elif view == "training":
        render_training_view(studio)
    else:
        render_testing_view(studio)

    st.markdown("---")
    st.markdown('<div style="text-align:center;color:#94a3b8;font-size:0.8rem;">'
                'Pose Studio • Keypoints are processed locally</div>', unsafe_allow_html=True)


if __name__ == "__main__":
    main()
