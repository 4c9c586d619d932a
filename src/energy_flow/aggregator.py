"""
Completion aggregator.

Several particles can land in the same bin during an epoch, and stray ones
pollute a naive per-bin sum. The aggregator instead computes, for every bin,
a weighted mean of the energies that landed there. Each completion's weight
is the product of three factors raised to configured exponents:

* distance:  ``exp(-| |pos| - R | / sigma_r)``, landing exactly on the boundary
* energy:    ``exp(-|E - target[b]| / sigma_e)`` when a target is supplied,
             otherwise ``E / (max E + eps)``
* alignment: ``exp(-angular_distance(initial_bin, b) / tau)`` when the seed's
             starting bin is known, otherwise 1

``y_hat[b] = sum(w * E) / sum(w)`` over the completions in bin ``b``, and 0
for bins that received nothing.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import numpy as np

from .config import AggregatorConfig
from .errors import TargetShapeError

EPS = 1e-8


@dataclass(frozen=True)
class CompletionEvent:
    """One particle's landing on the boundary (or forced projection at the step limit)."""

    particle_id: int
    bin_index: int
    position: Tuple[float, float]
    energy: float
    spiked: bool
    initial_bin_index: Optional[int] = None
    forced: bool = False

    @property
    def radius(self) -> float:
        return math.hypot(self.position[0], self.position[1])


def angular_distance(a, b, bins: int):
    """Shortest arc, in radians, between the centres of bins ``a`` and ``b``."""
    diff = np.abs(np.asarray(a) - np.asarray(b))
    wrapped = np.minimum(diff, bins - diff)
    out = wrapped / bins * (2.0 * math.pi)
    return float(out) if np.ndim(out) == 0 else out


def completion_arrays(completions: Sequence[CompletionEvent]):
    """Bins, positions (N, 2) and energies of ``completions`` as arrays."""
    n = len(completions)
    bins = np.fromiter((c.bin_index for c in completions), dtype=np.int64, count=n)
    positions = np.array([c.position for c in completions], dtype=np.float64).reshape(n, 2)
    energies = np.fromiter((c.energy for c in completions), dtype=np.float64, count=n)
    return bins, positions, energies


def aggregate(
    completions: Sequence[CompletionEvent],
    targets: Optional[Sequence[float]],
    config: AggregatorConfig,
    bins: int,
) -> np.ndarray:
    """Weighted per-bin energy estimate ``y_hat`` of length ``bins``."""
    y_hat = np.zeros(bins, dtype=np.float64)
    weights = np.zeros(bins, dtype=np.float64)
    if targets is not None:
        targets = np.asarray(targets, dtype=np.float64)
        if targets.shape != (bins,):
            raise TargetShapeError(bins, int(targets.size), source="aggregator targets")
    if not completions:
        return y_hat

    b, positions, energies = completion_arrays(completions)
    initial = np.fromiter(
        (-1 if c.initial_bin_index is None else c.initial_bin_index for c in completions),
        dtype=np.int64,
        count=len(completions),
    )

    # completions outside the histogram carry no information for any bin
    valid = (b >= 0) & (b < bins)
    max_energy = energies.max()
    b, positions, energies, initial = b[valid], positions[valid], energies[valid], initial[valid]

    r = np.hypot(positions[:, 0], positions[:, 1])
    w_dist = np.exp(-np.abs(r - config.radius) / config.sigma_r)

    if targets is not None:
        w_energy = np.exp(-np.abs(energies - targets[b]) / config.sigma_e)
    else:
        w_energy = energies / (max_energy + EPS)

    has_initial = initial >= 0
    w_align = np.ones_like(energies)
    if has_initial.any():
        ang = angular_distance(initial[has_initial], b[has_initial], bins)
        w_align[has_initial] = np.exp(-np.asarray(ang) / config.tau)

    w = w_dist ** config.alpha * w_energy ** config.beta * w_align ** config.gamma

    np.add.at(y_hat, b, w * energies)
    np.add.at(weights, b, w)
    filled = weights > 0.0
    y_hat[filled] /= weights[filled]
    y_hat[~filled] = 0.0
    return y_hat


__all__ = ["CompletionEvent", "angular_distance", "completion_arrays", "aggregate"]
