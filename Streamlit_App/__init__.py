"""Streamlit dashboard for pose capture, training and live testing."""
