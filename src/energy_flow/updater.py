"""
Bounded heuristic update rules for the learnable parameters.

These are not gradients of the simulator. Each rule nudges one parameter in
the direction its observed statistic calls for, by a fixed learning-rate
step, and clamps the result to the parameter's ``(min, max)`` bound. Every
rule is a pure function returning the new value.
"""

from __future__ import annotations

import math
from typing import Sequence, Tuple

import numpy as np

from .errors import TargetShapeError

Bound = Tuple[float, float]


def clamp(value: float, bounds: Bound) -> float:
    low, high = bounds
    if math.isnan(value):
        # a NaN statistic must not leak past the bound
        return low
    return min(max(value, low), high)


def update_gains(
    gains: Sequence[float],
    y_hat: Sequence[float],
    target: Sequence[float],
    learning_rate: float,
    bounds: Bound,
) -> np.ndarray:
    """``gain[b] -= lr * 2 * (y_hat[b] - target[b])``, clamped per bin."""
    gains = np.asarray(gains, dtype=np.float64)
    y_hat = np.asarray(y_hat, dtype=np.float64)
    target = np.asarray(target, dtype=np.float64)
    if y_hat.shape != gains.shape:
        raise TargetShapeError(gains.size, y_hat.size, source="update_gains y_hat")
    if target.shape != gains.shape:
        raise TargetShapeError(gains.size, target.size, source="update_gains target")
    updated = gains - learning_rate * 2.0 * (y_hat - target)
    updated = np.where(np.isnan(updated), bounds[0], updated)
    return np.clip(updated, bounds[0], bounds[1])


def update_lif_threshold(
    threshold: float,
    observed_rate: float,
    target_rate: float,
    learning_rate: float,
    bounds: Bound,
    margin: float = 0.02,
) -> float:
    """Raise the threshold when spiking too often, lower it when too rarely."""
    if observed_rate > target_rate + margin:
        threshold += learning_rate
    elif observed_rate < target_rate - margin:
        threshold -= learning_rate
    return clamp(threshold, bounds)


def update_radial_bias(
    radial_bias: float,
    completion_rate: float,
    mean_radial_miss: float,
    learning_rate: float,
    bounds: Bound,
    target_completion_rate: float = 0.9,
    miss_threshold: float = 0.1,
) -> float:
    """Push harder outward while particles fail to reach the boundary; ease off on overshoot."""
    if completion_rate < target_completion_rate or mean_radial_miss > miss_threshold:
        radial_bias += learning_rate
    elif completion_rate > 0.98 and mean_radial_miss < 0.05:
        radial_bias -= learning_rate * 0.5
    return clamp(radial_bias, bounds)


def update_spike_kick(
    spike_kick: float,
    mean_radial_miss: float,
    bin_loss_trend: float,
    learning_rate: float,
    bounds: Bound,
    miss_threshold: float = 0.1,
) -> float:
    """Kick harder while particles undershoot; back off when the bin loss worsens at low miss."""
    if mean_radial_miss > miss_threshold:
        spike_kick += learning_rate
    elif bin_loss_trend > 0.0 and mean_radial_miss < 0.05:
        spike_kick -= learning_rate * 0.5
    return clamp(spike_kick, bounds)


__all__ = [
    "clamp",
    "update_gains",
    "update_lif_threshold",
    "update_radial_bias",
    "update_spike_kick",
]
