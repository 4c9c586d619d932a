"""
Geometry and random-number primitives shared by the stepper and the seeder.

All helpers are scalar ``numba.njit`` functions so that they can be inlined
into the step kernel and still be called from plain Python.

The generator is a 32-bit xorshift whose state lives in a one-element int64
array. Every draw goes through the same kernel-side functions whether the
caller is Python or compiled code, so a given seed always produces the same
stream on every code path.
"""

from __future__ import annotations

import math
from typing import Tuple

import numpy as np
from numba import njit

###############################################################################
# Constants
###############################################################################

MASK32 = 0xFFFFFFFF
GOLDEN_GAMMA = 0x9E3779B9
UINT32_MAX_F = 4294967295.0
TWO_PI = 2.0 * math.pi

###############################################################################
# Vector helpers
###############################################################################


@njit(cache=True)
def vec_length(x: float, y: float) -> float:
    """Euclidean length of (x, y); never negative."""
    return math.sqrt(max(0.0, x * x + y * y))


@njit(cache=True)
def normalize_or_zero(x: float, y: float) -> Tuple[float, float]:
    """Unit vector along (x, y), or (0, 0) for the zero vector."""
    length = vec_length(x, y)
    if length > 0.0:
        return x / length, y / length
    return 0.0, 0.0


@njit(cache=True)
def clamp_magnitude(x: float, y: float, max_len: float) -> Tuple[float, float]:
    """Scale (x, y) down so that its length does not exceed ``max_len``."""
    length = vec_length(x, y)
    if length > max_len and length > 0.0:
        scale = max_len / length
        return x * scale, y * scale
    return x, y


@njit(cache=True)
def rotate(x: float, y: float, angle: float) -> Tuple[float, float]:
    """Rotate (x, y) counter-clockwise by ``angle`` radians."""
    c = math.cos(angle)
    s = math.sin(angle)
    return x * c - y * s, x * s + y * c


###############################################################################
# xorshift32 generator
###############################################################################


def seed_state(seed: int) -> int:
    """Initial generator state for ``seed`` (low 32 bits offset by the golden gamma)."""
    state = ((int(seed) & MASK32) + GOLDEN_GAMMA) & MASK32
    if state == 0:
        # xorshift never leaves the all-zero state
        state = GOLDEN_GAMMA
    return state


@njit(cache=True)
def next_u32(state: np.ndarray) -> int:
    x = state[0]
    x ^= (x << 13) & MASK32
    x ^= x >> 17
    x ^= (x << 5) & MASK32
    state[0] = x
    return x


@njit(cache=True)
def next_float01(state: np.ndarray) -> float:
    """Uniform float in [0, 1]."""
    return next_u32(state) / UINT32_MAX_F


@njit(cache=True)
def next_uniform(state: np.ndarray, low: float, high: float) -> float:
    return low + (high - low) * next_float01(state)


class FlowRNG:
    """Small deterministic generator consumed in particle order by the router."""

    def __init__(self, seed: int = 0) -> None:
        self.seed = int(seed)
        self.state = np.array([seed_state(seed)], dtype=np.int64)

    def next_u32(self) -> int:
        return int(next_u32(self.state))

    def next_float01(self) -> float:
        return float(next_float01(self.state))

    def next_uniform(self, low: float, high: float) -> float:
        return float(next_uniform(self.state, low, high))

    def get_state(self) -> int:
        return int(self.state[0])

    def set_state(self, value: int) -> None:
        value = int(value) & MASK32
        if value == 0:
            raise ValueError("xorshift state must be non-zero")
        self.state[0] = value

    def copy(self) -> "FlowRNG":
        clone = FlowRNG(self.seed)
        clone.state[0] = self.state[0]
        return clone


__all__ = [
    "TWO_PI",
    "vec_length",
    "normalize_or_zero",
    "clamp_magnitude",
    "rotate",
    "seed_state",
    "next_u32",
    "next_float01",
    "next_uniform",
    "FlowRNG",
]
