"""Matplotlib charts for a processed session."""

from __future__ import annotations

import logging
from typing import Optional, Sequence

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import numpy as np

from ..analysis.kinematics import KinematicSeries
from ..analysis.scoring import ATTRIBUTES, SwingScore
from ..analysis.signal_processing import fill_drops
from ..protocols.events import ProtocolEvent

logger = logging.getLogger(__name__)

SWING_COLOR = "#2196F3"


def swing_curve_chart(
    series: KinematicSeries,
    events: Sequence[ProtocolEvent],
    output_path: str,
    title: str = "Wrist velocity",
) -> str:
    """Wrist velocity over time with swing windows shaded and contacts marked.

    Banana frames are marked along the bottom axis. Returns the written path, or
    an empty string when there is nothing to plot.
    """
    if len(series) < 2:
        return ""

    frames = np.asarray(series.frame_indices)
    speed = fill_drops(series.series("max_wrist_kmh"))
    banana = np.array([f.is_banana for f in series], dtype=bool)

    fig, ax = plt.subplots(figsize=(12, 4))
    ax.plot(frames, speed, "b-", linewidth=1.5, label="wrist km/h")
    ax.fill_between(frames, np.nan_to_num(speed), alpha=0.2, color="blue")

    swings = [e for e in events if e.is_swing]
    for i, ev in enumerate(swings):
        ax.axvspan(ev.start_frame, ev.end_frame, alpha=0.12, color=SWING_COLOR,
                   label="swing" if i == 0 else None)
        contact = getattr(ev.metadata, "contact_frame", None)
        if contact is not None:
            ax.axvline(contact, color="red", linestyle="--", linewidth=1.5, alpha=0.7,
                       label="contact" if i == 0 else None)
            ax.annotate(ev.label, xy=(contact, np.nanmax(speed) if np.any(np.isfinite(speed)) else 0),
                        fontsize=8, ha="center", va="bottom")

    if banana.any():
        ax.plot(frames[banana], np.zeros(int(banana.sum())), "rx", markersize=4, label="banana frame")

    ax.set_xlabel("Frame", fontsize=11)
    ax.set_ylabel("Velocity (km/h)", fontsize=11)
    ax.set_title(title, fontsize=13, fontweight="bold")
    ax.legend(fontsize=9)
    ax.grid(True, alpha=0.3)

    plt.tight_layout()
    plt.savefig(output_path, dpi=150, bbox_inches="tight")
    plt.close(fig)
    logger.debug(f"wrote {output_path}")
    return output_path


def attribute_radar_chart(
    score: SwingScore,
    output_path: str,
    title: Optional[str] = None,
) -> str:
    """Radar chart of the five 0-100 swing attributes."""
    labels = [a.capitalize() for a in ATTRIBUTES]
    values = list(score.metrics.values())

    n = len(labels)
    angles = np.linspace(0, 2 * np.pi, n, endpoint=False).tolist()
    values_plot = values + [values[0]]
    angles_plot = angles + [angles[0]]

    fig, ax = plt.subplots(figsize=(6, 6), subplot_kw=dict(polar=True))
    ax.fill(angles_plot, values_plot, alpha=0.25, color=SWING_COLOR)
    ax.plot(angles_plot, values_plot, "o-", linewidth=2, color=SWING_COLOR)

    ax.set_xticks(angles)
    ax.set_xticklabels(labels, fontsize=11, fontweight="bold")
    ax.set_ylim(0, 100)
    ax.set_yticks([20, 40, 60, 80, 100])
    ax.set_yticklabels(["20", "40", "60", "80", "100"], fontsize=9, color="gray")
    ax.set_title(title or f"{score.event_id}: SAI {score.sai_score} ({score.rating_tier})",
                 fontsize=13, fontweight="bold", pad=20)

    for angle, val in zip(angles, values):
        ax.annotate(f"{val:.0f}", xy=(angle, val), fontsize=10, fontweight="bold",
                    ha="center", va="bottom")

    plt.tight_layout()
    plt.savefig(output_path, dpi=150, bbox_inches="tight")
    plt.close(fig)
    return output_path
