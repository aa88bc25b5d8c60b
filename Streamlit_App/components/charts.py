"""Plotly chart components for the dashboard."""

import plotly.graph_objects as go
from typing import Dict, List

from Vision_Engine.core.pose_classifier import PredictionResult

# Light theme colors (app uses #f8fafc background)
TEXT_COLOR = "#334155"
GRID_COLOR = "rgba(0,0,0,0.08)"
TICK_COLOR = "#64748b"
BORDER_COLOR = "#94a3b8"

BAND_COLORS = {'high': "#059669", 'medium': "#ca8a04", 'low': "#d97706", 'very_low': "#dc2626"}


def _color_for(confidence: float) -> str:
    if confidence > 0.8:
        return BAND_COLORS['high']
    elif confidence > 0.6:
        return BAND_COLORS['medium']
    elif confidence > 0.4:
        return BAND_COLORS['low']
    return BAND_COLORS['very_low']


def create_confidence_gauge(label: str, confidence: float, threshold: float) -> go.Figure:
    """Gauge of the current prediction confidence, with the threshold marked."""
    color = _color_for(confidence)

    fig = go.Figure(go.Indicator(
        mode="gauge+number",
        value=confidence * 100,
        domain={'x': [0, 1], 'y': [0, 1]},
        title={'text': label or "No prediction", 'font': {'size': 16, 'color': TEXT_COLOR}},
        number={'font': {'size': 32, 'color': color}, 'suffix': '%'},
        gauge={
            'axis': {'range': [0, 100], 'tickcolor': TICK_COLOR},
            'bar': {'color': color},
            'bgcolor': "rgba(0,0,0,0)",
            'bordercolor': BORDER_COLOR,
            'steps': [
                {'range': [0, 40], 'color': 'rgba(220,38,38,0.12)'},
                {'range': [40, 60], 'color': 'rgba(217,119,6,0.12)'},
                {'range': [60, 80], 'color': 'rgba(202,138,4,0.12)'},
                {'range': [80, 100], 'color': 'rgba(5,150,105,0.12)'}
            ],
            'threshold': {'line': {'color': TEXT_COLOR, 'width': 2}, 'value': threshold * 100}
        }
    ))

    fig.update_layout(
        paper_bgcolor='rgba(0,0,0,0)', plot_bgcolor='rgba(0,0,0,0)',
        font={'color': TEXT_COLOR}, height=220, margin=dict(l=20, r=20, t=40, b=20)
    )
    return fig


def create_samples_chart(samples_per_pose: Dict[str, int], target: int) -> go.Figure:
    """Horizontal bars of recorded samples per pose."""
    poses = list(samples_per_pose.keys())
    counts = [samples_per_pose[p] for p in poses]

    fig = go.Figure(go.Bar(
        x=counts, y=poses, orientation='h',
        marker=dict(color=["#059669" if c >= target else "#d97706" for c in counts]),
        text=[str(c) for c in counts], textposition='inside'
    ))
    fig.add_vline(x=target, line_dash="dash", line_color=BORDER_COLOR)

    fig.update_layout(
        paper_bgcolor='rgba(0,0,0,0)', plot_bgcolor='rgba(0,0,0,0)',
        font={'color': TEXT_COLOR}, height=max(120, 40 * len(poses) + 60), showlegend=False,
        margin=dict(l=90, r=20, t=30, b=20),
        xaxis=dict(showgrid=True, gridcolor=GRID_COLOR, title="Samples"),
        yaxis=dict(showgrid=False),
        title=dict(text="Samples per pose", font=dict(size=14), x=0.5)
    )
    return fig


def create_prediction_timeline(history: List[PredictionResult]) -> go.Figure:
    """Confidence of surfaced predictions over time, one trace per label."""
    fig = go.Figure()
    ordered = sorted((p for p in history if p.timestamp is not None), key=lambda p: p.timestamp)

    if ordered:
        base = ordered[0].timestamp
        for label in sorted({p.label for p in ordered}):
            points = [p for p in ordered if p.label == label]
            fig.add_trace(go.Scatter(
                x=[(p.timestamp - base) / 1000 for p in points],
                y=[p.confidence * 100 for p in points],
                mode='markers+lines', name=label
            ))

    fig.update_layout(
        paper_bgcolor='rgba(0,0,0,0)', plot_bgcolor='rgba(0,0,0,0)',
        font={'color': TEXT_COLOR}, height=250, margin=dict(l=40, r=20, t=20, b=40),
        xaxis=dict(title="Time (s)", showgrid=True, gridcolor=GRID_COLOR),
        yaxis=dict(title="Confidence (%)", range=[0, 100], showgrid=True, gridcolor=GRID_COLOR),
        legend=dict(orientation="h", y=1.1, x=0.5, xanchor="center")
    )
    return fig
