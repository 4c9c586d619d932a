"""
Configuration blocks for the flow router and the learning loop.

Every block is a frozen dataclass validated in ``__post_init__``; an invalid
value raises :class:`~energy_flow.errors.ConfigError` before any simulation
state exists. Blocks are passed explicitly to the objects that need them.
"""

from __future__ import annotations

import dataclasses
import math
import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Tuple

import numpy as np

from . import utils
from .errors import ConfigError
from .surrogate import Surrogate

###############################################################################
# Validation helpers
###############################################################################


def _require_int(name: str, value: Any, minimum: int) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, np.integer)):
        raise ConfigError(name, f"expected an integer, got {value!r}")
    if value < minimum:
        raise ConfigError(name, f"must be >= {minimum}, got {value}")


def _require_finite(name: str, value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float, np.integer, np.floating)):
        raise ConfigError(name, f"expected a number, got {value!r}")
    if not math.isfinite(value):
        raise ConfigError(name, f"must be finite, got {value}")
    return float(value)


def _require_range(
    name: str,
    value: Any,
    low: float,
    high: float,
    *,
    low_open: bool = False,
    high_open: bool = False,
) -> None:
    v = _require_finite(name, value)
    too_low = v <= low if low_open else v < low
    too_high = v >= high if high_open else v > high
    if too_low or too_high:
        lb = "(" if low_open else "["
        rb = ")" if high_open else "]"
        raise ConfigError(name, f"must lie in {lb}{low}, {high}{rb}, got {v}")


def _as_pair(name: str, value: Any) -> Tuple[float, float]:
    try:
        low, high = value
    except (TypeError, ValueError):
        raise ConfigError(name, f"expected a (min, max) pair, got {value!r}") from None
    low = _require_finite(f"{name}[0]", low)
    high = _require_finite(f"{name}[1]", high)
    if low > high:
        raise ConfigError(name, f"min {low} exceeds max {high}")
    return low, high


###############################################################################
# Flow configuration
###############################################################################


class SeedLayout(str, Enum):
    RING = "ring"
    DISK = "disk"

    @classmethod
    def from_name(cls, name: "str | SeedLayout") -> "SeedLayout":
        if isinstance(name, SeedLayout):
            return name
        try:
            return cls(name)
        except ValueError:
            raise ConfigError("seed_layout", f"unknown layout {name!r} (expected 'ring' or 'disk')") from None


@dataclass(frozen=True)
class LIFParams:
    """Leaky-integrate-and-fire membrane parameters."""

    decay: float = 0.9
    threshold: float = 0.8
    reset_value: float = 0.0
    surrogate: Surrogate = Surrogate.FAST_SIGMOID

    def __post_init__(self) -> None:
        object.__setattr__(self, "surrogate", Surrogate.from_name(self.surrogate))
        _require_range("lif.decay", self.decay, 0.0, 1.0, low_open=True, high_open=True)
        _require_range("lif.threshold", self.threshold, 0.0, 1.0, low_open=True)
        _require_finite("lif.reset_value", self.reset_value)


@dataclass(frozen=True)
class DynamicsParams:
    """Drift, noise and energy-decay parameters of a particle."""

    radial_bias: float = 0.15
    noise_std_pos: float = 0.01
    noise_std_dir: float = 0.05
    max_speed: float = 1.0
    energy_alpha: float = 0.95
    energy_floor: float = 1e-5
    spike_kick: float = 0.5

    def __post_init__(self) -> None:
        _require_finite("dynamics.radial_bias", self.radial_bias)
        _require_range("dynamics.noise_std_pos", self.noise_std_pos, 0.0, math.inf, high_open=True)
        _require_range("dynamics.noise_std_dir", self.noise_std_dir, 0.0, math.inf, high_open=True)
        _require_range("dynamics.max_speed", self.max_speed, 0.0, math.inf, low_open=True, high_open=True)
        _require_range("dynamics.energy_alpha", self.energy_alpha, 0.0, 1.0, low_open=True)
        _require_range("dynamics.energy_floor", self.energy_floor, 0.0, math.inf, high_open=True)
        _require_range("dynamics.spike_kick", self.spike_kick, 0.0, math.inf, high_open=True)


@dataclass(frozen=True)
class FlowConfig:
    """
    Geometry, step budget and particle dynamics of one router.

    ``seed_radius`` may equal ``radius``; the seeder keeps particles strictly
    inside the boundary by clamping to ``0.999 * radius``.
    """

    T: int = 32
    radius: float = 10.0
    bins: int = 8
    seed_layout: SeedLayout = SeedLayout.RING
    seed_radius: float = 1.0
    lif: LIFParams = field(default_factory=LIFParams)
    dynamics: DynamicsParams = field(default_factory=DynamicsParams)

    def __post_init__(self) -> None:
        object.__setattr__(self, "seed_layout", SeedLayout.from_name(self.seed_layout))
        _require_int("T", self.T, 1)
        _require_int("bins", self.bins, 1)
        _require_range("radius", self.radius, 0.0, math.inf, low_open=True, high_open=True)
        _require_range("seed_radius", self.seed_radius, 0.0, self.radius)
        if not isinstance(self.lif, LIFParams):
            raise ConfigError("lif", f"expected LIFParams, got {type(self.lif).__name__}")
        if not isinstance(self.dynamics, DynamicsParams):
            raise ConfigError("dynamics", f"expected DynamicsParams, got {type(self.dynamics).__name__}")

    def with_parameters(self, params: Any) -> "FlowConfig":
        """Copy of this config with the learnable scalars of ``params`` baked in."""
        return dataclasses.replace(
            self,
            lif=dataclasses.replace(self.lif, threshold=float(params.lif_threshold)),
            dynamics=dataclasses.replace(
                self.dynamics,
                radial_bias=float(params.radial_bias),
                spike_kick=float(params.spike_kick),
            ),
        )


def validate_bins(cfg: FlowConfig, base: int) -> None:
    """Reject a router whose bin count differs from the encoder's base."""
    if cfg.bins != base:
        raise ConfigError("bins", f"must equal the encoder base {base}, got {cfg.bins}")


###############################################################################
# Learning configuration
###############################################################################


class RngPolicy(str, Enum):
    """What happens to the generator when the router is rebuilt between epochs."""

    RESET = "reset"
    CONTINUE = "continue"

    @classmethod
    def from_name(cls, name: "str | RngPolicy") -> "RngPolicy":
        if isinstance(name, RngPolicy):
            return name
        try:
            return cls(name)
        except ValueError:
            raise ConfigError("rng_policy", f"unknown policy {name!r} (expected 'reset' or 'continue')") from None


@dataclass(frozen=True)
class AggregatorConfig:
    """Shape of the completion weighting (see :mod:`energy_flow.aggregator`)."""

    sigma_r: float = 2.5
    sigma_e: float = 5.0
    alpha: float = 1.0
    beta: float = 1.0
    gamma: float = 0.5
    tau: float = 1.0
    radius: float = 10.0

    def __post_init__(self) -> None:
        for name in ("sigma_r", "sigma_e", "tau", "radius"):
            _require_range(f"aggregator.{name}", getattr(self, name), 0.0, math.inf, low_open=True, high_open=True)
        for name in ("alpha", "beta", "gamma"):
            _require_range(f"aggregator.{name}", getattr(self, name), 0.0, math.inf, high_open=True)


@dataclass(frozen=True)
class LearningRates:
    gain: float = 0.01
    lif: float = 0.02
    dynamics: float = 0.005

    def __post_init__(self) -> None:
        for name in ("gain", "lif", "dynamics"):
            _require_range(f"lr.{name}", getattr(self, name), 0.0, math.inf, high_open=True)


@dataclass(frozen=True)
class LossWeights:
    spike: float = 0.1
    boundary: float = 0.05

    def __post_init__(self) -> None:
        for name in ("spike", "boundary"):
            _require_range(f"weights.{name}", getattr(self, name), 0.0, math.inf, high_open=True)


@dataclass(frozen=True)
class Bounds:
    """Inclusive (min, max) bounds of every learnable parameter."""

    theta: Tuple[float, float] = (0.5, 1.0)
    radial_bias: Tuple[float, float] = (0.0, 0.5)
    spike_kick: Tuple[float, float] = (0.0, 1.0)
    gain: Tuple[float, float] = (0.1, 2.0)

    def __post_init__(self) -> None:
        for name in ("theta", "radial_bias", "spike_kick", "gain"):
            object.__setattr__(self, name, _as_pair(f"bounds.{name}", getattr(self, name)))
        # learned values are baked back into LIFParams / DynamicsParams
        low, high = self.theta
        if low <= 0.0 or high > 1.0:
            raise ConfigError("bounds.theta", f"must lie within (0, 1], got {self.theta}")
        if self.spike_kick[0] < 0.0:
            raise ConfigError("bounds.spike_kick", f"must be non-negative, got {self.spike_kick}")


@dataclass(frozen=True)
class LearningConfig:
    enabled: bool = True
    epochs: int = 20
    steps_per_epoch: int = 10
    target_spike_rate: float = 0.2
    learning_rates: LearningRates = field(default_factory=LearningRates)
    loss_weights: LossWeights = field(default_factory=LossWeights)
    bounds: Bounds = field(default_factory=Bounds)
    aggregator: AggregatorConfig = field(default_factory=AggregatorConfig)
    gain_regularization: float = 0.01
    boundary_eps: float = 0.01
    spike_margin: float = 0.02
    target_completion_rate: float = 0.9
    miss_threshold: float = 0.1
    rng_policy: RngPolicy = RngPolicy.RESET

    def __post_init__(self) -> None:
        object.__setattr__(self, "rng_policy", RngPolicy.from_name(self.rng_policy))
        if not isinstance(self.enabled, bool):
            raise ConfigError("enabled", f"expected a boolean, got {self.enabled!r}")
        _require_int("epochs", self.epochs, 1)
        _require_int("steps_per_epoch", self.steps_per_epoch, 1)
        _require_range("target_spike_rate", self.target_spike_rate, 0.0, 1.0)
        _require_range("target_completion_rate", self.target_completion_rate, 0.0, 1.0)
        for name in ("gain_regularization", "boundary_eps", "spike_margin", "miss_threshold"):
            _require_range(name, getattr(self, name), 0.0, math.inf, high_open=True)


###############################################################################
# Loading from dictionaries / files
###############################################################################


def _build(cls, data: Mapping[str, Any] | None, section: str, nested: Dict[str, Any] | None = None):
    data = dict(data or {})
    names = {f.name for f in dataclasses.fields(cls)}
    unknown = sorted(set(data) - names)
    if unknown:
        raise ConfigError(section, f"unknown keys {unknown}")
    data.update(nested or {})
    try:
        return cls(**data)
    except TypeError as exc:
        raise ConfigError(section, str(exc)) from exc


def flow_config_from_dict(data: Mapping[str, Any]) -> FlowConfig:
    data = dict(data)
    lif = _build(LIFParams, data.pop("lif", None), "flow.lif")
    dynamics = _build(DynamicsParams, data.pop("dynamics", None), "flow.dynamics")
    return _build(FlowConfig, data, "flow", {"lif": lif, "dynamics": dynamics})


def learning_config_from_dict(data: Mapping[str, Any], radius: float) -> LearningConfig:
    """Build a LearningConfig; the aggregator radius defaults to the flow radius."""
    data = dict(data)
    aggregator_data = dict(data.pop("aggregator", None) or {})
    aggregator_data.setdefault("radius", radius)
    nested = {
        "learning_rates": _build(LearningRates, data.pop("lr", None), "learning.lr"),
        "loss_weights": _build(LossWeights, data.pop("weights", None), "learning.weights"),
        "bounds": _build(Bounds, data.pop("bounds", None), "learning.bounds"),
        "aggregator": _build(AggregatorConfig, aggregator_data, "learning.aggregator"),
    }
    return _build(LearningConfig, data, "learning", nested)


def load_config(path: str | os.PathLike[str]) -> Tuple[FlowConfig, LearningConfig]:
    """Read a JSON/TOML file with ``flow`` and ``learning`` sections."""
    params = utils.load_params(path)
    unknown = sorted(set(params) - {"flow", "learning"})
    if unknown:
        raise ConfigError("root", f"unknown sections {unknown}")
    flow = flow_config_from_dict(params.get("flow", {}))
    learning = learning_config_from_dict(params.get("learning", {}), radius=flow.radius)
    return flow, learning


__all__ = [
    "SeedLayout",
    "LIFParams",
    "DynamicsParams",
    "FlowConfig",
    "validate_bins",
    "RngPolicy",
    "AggregatorConfig",
    "LearningRates",
    "LossWeights",
    "Bounds",
    "LearningConfig",
    "flow_config_from_dict",
    "learning_config_from_dict",
    "load_config",
]
