"""
Flow router: advances energy-carrying particles through the plane.

Each step, for every live particle in order:

1. leaky-integrate-and-fire membrane update and spike decision,
2. outward drift, optional spike kick and positional noise on the velocity,
   clamped to ``max_speed``,
3. position integration and energy decay,
4. removal if the energy fell below the floor, or projection onto the
   boundary histogram once the particle reached the radius.

The per-particle update is a ``numba.njit`` kernel over the struct-of-arrays
``FlowState``. Random draws come from one shared xorshift stream consumed in
particle order, which makes a run bit-for-bit reproducible from its seed.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
from numba import njit

from .aggregator import CompletionEvent
from .config import FlowConfig
from .errors import SimulationError
from .geometry import (
    TWO_PI,
    FlowRNG,
    clamp_magnitude,
    next_float01,
    next_uniform,
    normalize_or_zero,
    rotate,
)
from .particles import FlowParticle, FlowState, make_seeds
from .projector import force_project, position_bin, project_if_needed

logger = logging.getLogger(__name__)

###############################################################################
# Constants
###############################################################################

DRIVE_NOISE_SCALE = 0.1
BRIDGE_SEED_OFFSET = 0xA5A5A5A5
UINT64_MASK = 0xFFFFFFFFFFFFFFFF

STATUS_ALIVE = 0
STATUS_PROJECTED = 1
STATUS_DEAD = 2

###############################################################################
# Step kernel
###############################################################################


@njit(cache=True)
def _step_kernel(
    ids, px, py, vx, vy, energy, membrane, count, outputs,
    decay, threshold, reset_value, radius,
    radial_bias, spike_kick, noise_std_pos, noise_std_dir, max_speed,
    energy_alpha, energy_floor,
    rng_state,
    ev_id, ev_px, ev_py, ev_vx, ev_vy, ev_energy, ev_v, ev_spiked, ev_bin, ev_status,
):
    """
    Advance ``count`` particles by one step, compacting survivors in place.

    Returns the number of survivors, or ``-(i + 1)`` if particle ``i`` ended
    the step with a non-finite or negative quantity. Event arrays are filled
    for every processed particle in input order.
    """
    bins = outputs.shape[0]
    kept = 0
    for i in range(count):
        x = px[i]
        y = py[i]
        ux = vx[i]
        uy = vy[i]
        e = energy[i]
        v = membrane[i]

        # LIF membrane
        energy_norm = min(max(e / bins, 0.0), 1.0)
        drive_noise = (next_float01(rng_state) - 0.5) * DRIVE_NOISE_SCALE
        v_next = decay * v + energy_norm + drive_noise
        spiked = False
        if v_next >= threshold:
            v = reset_value
            spiked = True
        else:
            v = max(0.0, v_next)

        # outward direction; random at the origin
        dx, dy = normalize_or_zero(x, y)
        if dx == 0.0 and dy == 0.0:
            ang = next_uniform(rng_state, 0.0, TWO_PI)
            dx = math.cos(ang)
            dy = math.sin(ang)

        ux += radial_bias * dx
        uy += radial_bias * dy
        if spiked:
            jitter = next_uniform(rng_state, -math.pi, math.pi) * noise_std_dir
            kx, ky = rotate(dx, dy, jitter)
            ux += spike_kick * kx
            uy += spike_kick * ky
        noise_ang = next_uniform(rng_state, -math.pi, math.pi)
        ux += math.cos(noise_ang) * noise_std_pos
        uy += math.sin(noise_ang) * noise_std_pos
        ux, uy = clamp_magnitude(ux, uy, max_speed)

        x += ux
        y += uy
        e *= energy_alpha

        ev_id[i] = ids[i]
        ev_px[i] = x
        ev_py[i] = y
        ev_vx[i] = ux
        ev_vy[i] = uy
        ev_energy[i] = e
        ev_v[i] = v
        ev_spiked[i] = spiked
        ev_bin[i] = -1

        ok = (
            math.isfinite(x) and math.isfinite(y)
            and math.isfinite(ux) and math.isfinite(uy)
            and math.isfinite(v) and math.isfinite(e) and e >= 0.0
        )
        if not ok:
            return -(i + 1)

        if e < energy_floor:
            ev_status[i] = STATUS_DEAD
            continue

        b = project_if_needed(x, y, e, radius, outputs)
        if b >= 0:
            ev_bin[i] = b
            ev_status[i] = STATUS_PROJECTED
            continue

        ev_status[i] = STATUS_ALIVE
        ids[kept] = ids[i]
        px[kept] = x
        py[kept] = y
        vx[kept] = ux
        vy[kept] = uy
        energy[kept] = e
        membrane[kept] = v
        kept += 1
    return kept


###############################################################################
# Events
###############################################################################


@dataclass(frozen=True)
class StepEvent:
    """What happened to one particle during one step."""

    id: int
    pos: Tuple[float, float]
    vel: Tuple[float, float]
    energy: float
    V: float
    spiked: bool
    projected_bin: Optional[int] = None
    died: bool = False
    forced: bool = False


@dataclass
class FlowTrace:
    """Every step's events of one run plus its final histogram."""

    steps: List[List[StepEvent]] = field(default_factory=list)
    outputs: Optional[np.ndarray] = None
    completions: List[CompletionEvent] = field(default_factory=list)

    @property
    def steps_run(self) -> int:
        return len(self.steps)

    @property
    def total_spikes(self) -> int:
        return sum(1 for events in self.steps for e in events if e.spiked)

    @property
    def particle_steps(self) -> int:
        return sum(1 for events in self.steps for e in events if not e.forced)


def completions_from_events(
    events: Sequence[StepEvent], start_bins: Optional[Dict[int, int]] = None
) -> List[CompletionEvent]:
    """Completion records for every event that deposited energy."""
    start_bins = start_bins or {}
    return [
        CompletionEvent(
            particle_id=e.id,
            bin_index=e.projected_bin,
            position=e.pos,
            energy=e.energy,
            spiked=e.spiked,
            initial_bin_index=start_bins.get(e.id),
            forced=e.forced,
        )
        for e in events
        if e.projected_bin is not None
    ]


def initial_bins(particles: Sequence[FlowParticle], bins: int) -> Dict[int, int]:
    """Bin under each particle's starting position, keyed by particle id."""
    return {p.id: int(position_bin(p.pos[0], p.pos[1], bins)) for p in particles}


###############################################################################
# Router
###############################################################################


class FlowRouter:
    """
    Stepper for one immutable :class:`FlowConfig`.

    The router owns its generator; pass ``rng`` to continue an existing
    stream instead of seeding a new one.
    """

    def __init__(self, cfg: FlowConfig, seed: int = 0, rng: Optional[FlowRNG] = None) -> None:
        self.cfg = cfg
        self.rng = rng if rng is not None else FlowRNG(seed)
        self.surrogate = cfg.lif.surrogate

    def new_state(self, particles: Sequence[FlowParticle]) -> FlowState:
        return FlowState(particles, bins=self.cfg.bins)

    def _advance(self, state: FlowState) -> Optional[Tuple[np.ndarray, ...]]:
        n = state.count
        if n == 0:
            state.step += 1
            return None
        ev_id = np.empty(n, dtype=np.int64)
        ev_px = np.empty(n, dtype=np.float64)
        ev_py = np.empty(n, dtype=np.float64)
        ev_vx = np.empty(n, dtype=np.float64)
        ev_vy = np.empty(n, dtype=np.float64)
        ev_energy = np.empty(n, dtype=np.float64)
        ev_v = np.empty(n, dtype=np.float64)
        ev_spiked = np.zeros(n, dtype=np.bool_)
        ev_bin = np.full(n, -1, dtype=np.int64)
        ev_status = np.zeros(n, dtype=np.int64)

        lif = self.cfg.lif
        dyn = self.cfg.dynamics
        kept = _step_kernel(
            state.ids, state.px, state.py, state.vx, state.vy,
            state.energy, state.membrane, n, state.outputs,
            lif.decay, lif.threshold, lif.reset_value, self.cfg.radius,
            dyn.radial_bias, dyn.spike_kick, dyn.noise_std_pos, dyn.noise_std_dir,
            dyn.max_speed, dyn.energy_alpha, dyn.energy_floor,
            self.rng.state,
            ev_id, ev_px, ev_py, ev_vx, ev_vy, ev_energy, ev_v, ev_spiked, ev_bin, ev_status,
        )
        if kept < 0:
            raise self._invariant_error(
                -kept - 1, state.step, ev_id, ev_px, ev_py, ev_vx, ev_vy, ev_energy, ev_v
            )
        state.count = kept
        state.step += 1
        return ev_id, ev_px, ev_py, ev_vx, ev_vy, ev_energy, ev_v, ev_spiked, ev_bin, ev_status

    @staticmethod
    def _invariant_error(i, step, ev_id, ev_px, ev_py, ev_vx, ev_vy, ev_energy, ev_v) -> SimulationError:
        checks = (
            ("energy", ev_energy[i]),
            ("membrane", ev_v[i]),
            ("position.x", ev_px[i]),
            ("position.y", ev_py[i]),
            ("velocity.x", ev_vx[i]),
            ("velocity.y", ev_vy[i]),
        )
        for name, value in checks:
            if not math.isfinite(value) or (name == "energy" and value < 0.0):
                return SimulationError(int(ev_id[i]), step, name, float(value))
        return SimulationError(int(ev_id[i]), step, "state", float("nan"))

    def step(self, state: FlowState) -> None:
        """Advance every particle by one step, projecting or removing in place."""
        self._advance(state)

    def step_with_events(self, state: FlowState) -> List[StepEvent]:
        """Same as :meth:`step`, returning one event per processed particle."""
        buffers = self._advance(state)
        if buffers is None:
            return []
        ev_id, ev_px, ev_py, ev_vx, ev_vy, ev_energy, ev_v, ev_spiked, ev_bin, ev_status = buffers
        events = []
        for i in range(ev_id.shape[0]):
            b = int(ev_bin[i])
            events.append(
                StepEvent(
                    id=int(ev_id[i]),
                    pos=(float(ev_px[i]), float(ev_py[i])),
                    vel=(float(ev_vx[i]), float(ev_vy[i])),
                    energy=float(ev_energy[i]),
                    V=float(ev_v[i]),
                    spiked=bool(ev_spiked[i]),
                    projected_bin=b if b >= 0 else None,
                    died=int(ev_status[i]) == STATUS_DEAD,
                )
            )
        return events

    def finalize(self, state: FlowState) -> List[StepEvent]:
        """Force-project every surviving particle and empty the state."""
        events = []
        for i in range(state.count):
            x = float(state.px[i])
            y = float(state.py[i])
            e = float(state.energy[i])
            b = force_project(x, y, e, state.outputs)
            events.append(
                StepEvent(
                    id=int(state.ids[i]),
                    pos=(x, y),
                    vel=(float(state.vx[i]), float(state.vy[i])),
                    energy=e,
                    V=float(state.membrane[i]),
                    spiked=False,
                    projected_bin=int(b),
                    forced=True,
                )
            )
        if events:
            logger.debug("force-projected %d survivors at step %d", len(events), state.step)
        state.clear()
        return events

    def run(self, particles: Sequence[FlowParticle]) -> np.ndarray:
        """Run for at most ``T`` steps and return the filled histogram."""
        state = self.new_state(particles)
        t = 0
        while t < self.cfg.T and not state.is_empty:
            self.step(state)
            t += 1
        self.finalize(state)
        return state.outputs

    def trace(self, particles: Sequence[FlowParticle], steps: Optional[int] = None) -> FlowTrace:
        """Run like :meth:`run` while recording every step's events."""
        limit = self.cfg.T if steps is None else steps
        start_bins = initial_bins(particles, self.cfg.bins)
        state = self.new_state(particles)
        trace = FlowTrace()
        while state.step < limit and not state.is_empty:
            events = self.step_with_events(state)
            trace.steps.append(events)
            trace.completions.extend(completions_from_events(events, start_bins))
        forced = self.finalize(state)
        if forced:
            trace.steps.append(forced)
            trace.completions.extend(completions_from_events(forced, start_bins))
        trace.outputs = state.outputs
        return trace

    def membrane_activation(self, state: FlowState, beta: float = 1.0) -> np.ndarray:
        """Surrogate activation of ``V - threshold`` for each live particle."""
        x = state.membrane[: state.count] - self.cfg.lif.threshold
        return np.atleast_1d(self.surrogate.forward(x, beta=beta))


def simulate(energies: Sequence[float], cfg: FlowConfig, seed: int = 0) -> np.ndarray:
    """Seed particles from ``energies``, run one router and return its histogram."""
    particles = make_seeds(energies, cfg)
    router = FlowRouter(cfg, seed=(int(seed) + BRIDGE_SEED_OFFSET) & UINT64_MASK)
    return router.run(particles)


__all__ = [
    "StepEvent",
    "FlowTrace",
    "FlowRouter",
    "completions_from_events",
    "initial_bins",
    "simulate",
]
