"""Loss terms of the learning loop. All functions are pure and return floats >= 0."""

from __future__ import annotations

from typing import Sequence

import numpy as np

from .aggregator import CompletionEvent, completion_arrays
from .errors import TargetShapeError


def bin_loss(
    y_hat: Sequence[float],
    target: Sequence[float],
    gains: Sequence[float],
    lambda_g: float = 0.01,
) -> float:
    """``sum_b (y_hat[b] - target[b])**2 + lambda_g * sum_b gains[b]**2``."""
    y_hat = np.asarray(y_hat, dtype=np.float64)
    target = np.asarray(target, dtype=np.float64)
    gains = np.asarray(gains, dtype=np.float64)
    if target.shape != y_hat.shape:
        raise TargetShapeError(y_hat.size, target.size, source="bin_loss target")
    diff = y_hat - target
    return float(np.dot(diff, diff) + lambda_g * np.dot(gains, gains))


def spike_rate_loss(observed: float, target: float) -> float:
    diff = float(observed) - float(target)
    return diff * diff


def radial_misses(completions: Sequence[CompletionEvent], radius: float) -> np.ndarray:
    """``| |pos_j| - radius |`` for every completion."""
    if not completions:
        return np.zeros(0, dtype=np.float64)
    _, positions, _ = completion_arrays(completions)
    return np.abs(np.hypot(positions[:, 0], positions[:, 1]) - radius)


def boundary_loss(completions: Sequence[CompletionEvent], radius: float, eps: float = 0.01) -> float:
    """``mean_j max(0, | |pos_j| - radius | - eps)``; 0 without completions."""
    if not completions:
        return 0.0
    return float(np.mean(np.maximum(0.0, radial_misses(completions, radius) - eps)))


def total_loss(
    bin_loss: float,
    spike_loss: float,
    boundary_loss: float,
    spike_weight: float,
    boundary_weight: float,
) -> float:
    return bin_loss + spike_weight * spike_loss + boundary_weight * boundary_loss


__all__ = ["bin_loss", "spike_rate_loss", "radial_misses", "boundary_loss", "total_loss"]
