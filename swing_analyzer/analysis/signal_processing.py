"""1-D signal helpers for kinematic curves.

Signals are float arrays with NaN marking missing samples.
"""

from __future__ import annotations

from typing import List

import numpy as np

# 5-frame smoothing kernel for display curves
GAUSSIAN_KERNEL = np.array([0.1, 0.2, 0.4, 0.2, 0.1])


def fill_gaps(values: np.ndarray, max_gap: int = 3) -> np.ndarray:
    """Linearly interpolate interior NaN runs of at most ``max_gap`` samples.

    Longer runs, and runs touching either end of the signal, become 0.0: a
    signal that disappears for a long time carries no motion evidence.
    """
    out = np.asarray(values, dtype=np.float64).copy()
    n = len(out)
    i = 0
    while i < n:
        if not np.isnan(out[i]):
            i += 1
            continue
        j = i
        while j < n and np.isnan(out[j]):
            j += 1
        run = j - i
        if 0 < i and j < n and run <= max_gap:
            left, right = out[i - 1], out[j]
            for k in range(run):
                out[i + k] = left + (right - left) * (k + 1) / (run + 1)
        else:
            out[i:j] = 0.0
        i = j
    return out


def unwrap_degrees(values: np.ndarray) -> np.ndarray:
    """Remove ±360 jumps from an angle signal (degrees); NaN samples are dropped.

    A torso seen from behind sits near ±180 and jitters across the seam, so
    spans and means of orientation are only meaningful after unwrapping.
    """
    vals = np.asarray(values, dtype=np.float64)
    vals = vals[~np.isnan(vals)]
    if vals.size == 0:
        return vals
    return np.degrees(np.unwrap(np.radians(vals)))


def moving_average(values: np.ndarray, window: int = 3) -> np.ndarray:
    """Centered moving average; the window shrinks at the edges and skips NaN."""
    vals = np.asarray(values, dtype=np.float64)
    if window <= 1 or len(vals) == 0:
        return vals.copy()
    half = window // 2
    out = np.full(len(vals), np.nan)
    for i in range(len(vals)):
        if np.isnan(vals[i]):
            continue
        seg = vals[max(0, i - half): i + half + 1]
        seg = seg[~np.isnan(seg)]
        out[i] = float(seg.mean()) if seg.size else np.nan
    return out


def fill_drops(values: np.ndarray) -> np.ndarray:
    """Fill single-frame dropouts and apply light Gaussian smoothing.

    A sample is a dropout when it is below 30% of its neighbours' mean while the
    neighbours agree with each other. Real valleys are left alone.
    """
    vals = np.asarray(values, dtype=np.float64).copy()
    if len(vals) < 5:
        return vals
    for i in range(1, len(vals) - 1):
        prev, curr, nxt = vals[i - 1], vals[i], vals[i + 1]
        if np.isnan(prev) or np.isnan(curr) or np.isnan(nxt):
            continue
        avg = 0.5 * (prev + nxt)
        if avg > 5.0 and curr < 0.3 * avg and abs(prev - nxt) < 0.5 * avg:
            vals[i] = avg

    half = len(GAUSSIAN_KERNEL) // 2
    out = np.full(len(vals), np.nan)
    for i in range(len(vals)):
        if np.isnan(vals[i]):
            continue
        total = weight = 0.0
        for k in range(-half, half + 1):
            j = i + k
            if 0 <= j < len(vals) and not np.isnan(vals[j]):
                total += vals[j] * GAUSSIAN_KERNEL[k + half]
                weight += GAUSSIAN_KERNEL[k + half]
        out[i] = total / weight
    return out


def find_peaks(values: np.ndarray, min_value: float, min_distance: int = 1) -> List[int]:
    """Strict local maxima above ``min_value``.

    Peaks closer than ``min_distance`` samples collapse onto the higher one.
    """
    vals = np.asarray(values, dtype=np.float64)
    peaks: List[int] = []
    for i in range(1, len(vals) - 1):
        prev, curr, nxt = vals[i - 1], vals[i], vals[i + 1]
        if np.isnan(prev) or np.isnan(curr) or np.isnan(nxt):
            continue
        if curr < min_value or curr <= prev or curr <= nxt:
            continue
        if peaks and i - peaks[-1] < min_distance:
            if curr > vals[peaks[-1]]:
                peaks[-1] = i
            continue
        peaks.append(i)
    return peaks
