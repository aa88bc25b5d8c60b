"""Streamlit UI components."""
from .overlay_renderer import OverlayRenderer
from .charts import create_confidence_gauge, create_samples_chart, create_prediction_timeline
