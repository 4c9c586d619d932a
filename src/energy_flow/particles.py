"""
Particle records, the per-epoch simulation state and the seeder.

``FlowState`` keeps its particles as parallel numpy arrays (ids, position,
velocity, energy, membrane) so that the step kernel can update them in
place; ``FlowParticle`` is the record view used at the API boundary.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import List, Sequence, Tuple

import numpy as np

from .config import FlowConfig, SeedLayout
from .geometry import normalize_or_zero

SEED_NUDGE = 0.05  # initial outward speed of a seed
SEED_MARGIN = 0.999  # seeds stay strictly inside the boundary


@dataclass
class FlowParticle:
    id: int
    pos: Tuple[float, float]
    vel: Tuple[float, float]
    energy: float
    V: float = 0.0


class FlowState:
    """All live particles of one epoch plus the boundary histogram."""

    def __init__(self, particles: Sequence[FlowParticle], bins: int, step: int = 0) -> None:
        n = len(particles)
        self.step = step
        self.ids = np.empty(n, dtype=np.int64)
        self.px = np.empty(n, dtype=np.float64)
        self.py = np.empty(n, dtype=np.float64)
        self.vx = np.empty(n, dtype=np.float64)
        self.vy = np.empty(n, dtype=np.float64)
        self.energy = np.empty(n, dtype=np.float64)
        self.membrane = np.empty(n, dtype=np.float64)
        for i, p in enumerate(particles):
            self.ids[i] = p.id
            self.px[i], self.py[i] = p.pos
            self.vx[i], self.vy[i] = p.vel
            self.energy[i] = p.energy
            self.membrane[i] = p.V
        self.count = n
        self.outputs = np.zeros(bins, dtype=np.float64)

    def __len__(self) -> int:
        return self.count

    @property
    def is_empty(self) -> bool:
        return self.count == 0

    @property
    def particles(self) -> List[FlowParticle]:
        return [
            FlowParticle(
                id=int(self.ids[i]),
                pos=(float(self.px[i]), float(self.py[i])),
                vel=(float(self.vx[i]), float(self.vy[i])),
                energy=float(self.energy[i]),
                V=float(self.membrane[i]),
            )
            for i in range(self.count)
        ]

    def positions(self) -> np.ndarray:
        """(N, 2) copy of the live particle positions."""
        return np.column_stack((self.px[: self.count], self.py[: self.count]))

    def clear(self) -> None:
        self.count = 0


def make_seeds(energies: Sequence[float], cfg: FlowConfig) -> List[FlowParticle]:
    """
    Place one particle per input energy around the origin.

    Particle ``i`` of ``N`` sits at angle ``2*pi*i/N``; on a ring every seed
    is at ``r0 = min(seed_radius, 0.999 * radius)``, on a disk seed ``i`` is
    at ``r0 * sqrt((i + 1) / N)`` so that seeds cover the disk with uniform
    area density. Each seed starts with a small outward velocity, zero
    membrane potential and energy ``max(0, energies[i])``.
    """
    n = len(energies)
    if n == 0:
        return []
    r0 = max(0.0, min(cfg.seed_radius, cfg.radius * SEED_MARGIN))

    particles: List[FlowParticle] = []
    for i, e in enumerate(energies):
        theta = 2.0 * math.pi * i / n
        r = r0 if cfg.seed_layout is SeedLayout.RING else r0 * math.sqrt((i + 1) / n)
        x = r * math.cos(theta)
        y = r * math.sin(theta)
        dx, dy = normalize_or_zero(x, y)
        particles.append(
            FlowParticle(
                id=i,
                pos=(x, y),
                vel=(SEED_NUDGE * dx, SEED_NUDGE * dy),
                # np.maximum keeps NaN visible to the router's invariant check
                energy=float(np.maximum(0.0, float(e))),
                V=0.0,
            )
        )
    return particles


__all__ = ["FlowParticle", "FlowState", "make_seeds"]
