"""Angular projection of particles onto the boundary histogram."""

from __future__ import annotations

import math

import numpy as np
from numba import njit

from .geometry import TWO_PI, vec_length


@njit(cache=True)
def bin_index(theta: float, bins: int) -> int:
    """
    Map an angle in radians to one of ``bins`` equal-width sectors.

    The angle is wrapped into [0, 2*pi) with a floored modulo, so the result
    is 2*pi-periodic and always lies in [0, bins).
    """
    if not math.isfinite(theta):
        return 0
    t = theta % TWO_PI
    # rounding can leave t == 2*pi for tiny negative angles
    if t >= TWO_PI:
        t = 0.0
    idx = int(math.floor(t / TWO_PI * bins))
    if idx < 0:
        return 0
    if idx > bins - 1:
        return bins - 1
    return idx


@njit(cache=True)
def bin_indices(thetas: np.ndarray, bins: int) -> np.ndarray:
    out = np.empty(thetas.shape[0], dtype=np.int64)
    for i in range(thetas.shape[0]):
        out[i] = bin_index(thetas[i], bins)
    return out


@njit(cache=True)
def position_bin(x: float, y: float, bins: int) -> int:
    return bin_index(math.atan2(y, x), bins)


@njit(cache=True)
def project_if_needed(x: float, y: float, energy: float, radius: float, outputs: np.ndarray) -> int:
    """
    Deposit ``max(0, energy)`` into the bin under (x, y) if the point lies on
    or beyond the boundary. Returns the bin index, or -1 if nothing happened.
    """
    if vec_length(x, y) >= radius:
        b = position_bin(x, y, outputs.shape[0])
        outputs[b] += max(0.0, energy)
        return b
    return -1


@njit(cache=True)
def force_project(x: float, y: float, energy: float, outputs: np.ndarray) -> int:
    """Deposit energy at the bin under (x, y) regardless of radius."""
    b = position_bin(x, y, outputs.shape[0])
    outputs[b] += max(0.0, energy)
    return b


__all__ = [
    "bin_index",
    "bin_indices",
    "position_bin",
    "project_if_needed",
    "force_project",
]
