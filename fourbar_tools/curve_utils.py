"""
curve_utils.py - Helpers for sampled coupler curves.

Curves are (n, D) float arrays, D = 2 for planar and 3 for spherical
linkages. Solver output may contain NaN rows where the loop cannot close.

Main functions:
  - get_valid_part(): longest contiguous finite run
  - is_closed(): first point equals last point
  - closed_lin(): close a curve with a straight segment back to the start
  - closed_rev(): close an open curve by walking it back in reverse
  - curve_length(): polyline arc length
"""
from __future__ import annotations

import numpy as np


def as_curve(curve) -> np.ndarray:
    """Coerce a point sequence to a float (n, D) array."""
    arr = np.asarray(curve, dtype=np.float64)
    if arr.ndim == 1:
        arr = arr.reshape(0, 2) if arr.size == 0 else arr.reshape(1, -1)
    if arr.ndim != 2:
        raise ValueError(f'Curve must be 2-D (n, dim), got shape {arr.shape}')
    return arr


def get_valid_part(curve) -> np.ndarray:
    """
    Return the longest contiguous run of finite points.

    Runs are split at every non-finite point; the first of several equally
    long runs wins.
    """
    arr = as_curve(curve)
    if len(arr) == 0:
        return arr
    finite = np.all(np.isfinite(arr), axis=1)
    if finite.all():
        return arr
    best_start, best_len = 0, 0
    run_start = None
    for i, ok in enumerate(finite):
        if ok and run_start is None:
            run_start = i
        elif not ok and run_start is not None:
            if i - run_start > best_len:
                best_start, best_len = run_start, i - run_start
            run_start = None
    if run_start is not None and len(arr) - run_start > best_len:
        best_start, best_len = run_start, len(arr) - run_start
    return arr[best_start:best_start + best_len]


def is_closed(curve) -> bool:
    arr = as_curve(curve)
    if len(arr) == 0:
        return False
    return bool(np.array_equal(arr[0], arr[-1]))


def closed_lin(curve) -> np.ndarray:
    """Append the first point unless the curve already ends on it."""
    arr = as_curve(curve)
    if len(arr) == 0 or is_closed(arr):
        return arr
    return np.vstack([arr, arr[:1]])


def closed_rev(curve) -> np.ndarray:
    """Close an open curve by tracing it back to its first point."""
    arr = as_curve(curve)
    if len(arr) < 2:
        return arr
    return np.vstack([arr, arr[-2::-1]])


def curve_length(curve) -> float:
    arr = as_curve(curve)
    if len(arr) < 2:
        return 0.0
    return float(np.sum(np.linalg.norm(np.diff(arr, axis=0), axis=1)))
