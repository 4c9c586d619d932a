"""
Online learning loop around the flow router.

One epoch seeds particles from the input energies, runs the router with
event tracking, aggregates the completions into a per-bin estimate, scores
it against the target, applies the heuristic update rules and rebuilds the
router with the new parameters for the next epoch.
"""

from __future__ import annotations

import dataclasses
import logging
import math
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from . import losses, updater
from .aggregator import CompletionEvent, aggregate
from .config import Bounds, ConfigError, FlowConfig, LearningConfig, RngPolicy
from .errors import SimulationError, TargetShapeError
from .particles import make_seeds
from .router import FlowRouter, completions_from_events, initial_bins

logger = logging.getLogger(__name__)


@dataclass
class LearnableParameters:
    gains: np.ndarray
    lif_threshold: float
    radial_bias: float
    spike_kick: float

    @classmethod
    def initial(cls, bins: int, lif_threshold: float, radial_bias: float, spike_kick: float) -> "LearnableParameters":
        return cls(
            gains=np.ones(bins, dtype=np.float64),
            lif_threshold=float(lif_threshold),
            radial_bias=float(radial_bias),
            spike_kick=float(spike_kick),
        )

    def copy(self) -> "LearnableParameters":
        return dataclasses.replace(self, gains=np.array(self.gains, dtype=np.float64))

    def within(self, bounds: Bounds) -> bool:
        def inside(value, pair):
            return bool(np.all((pair[0] <= value) & (value <= pair[1])))

        return (
            inside(self.gains, bounds.gain)
            and inside(self.lif_threshold, bounds.theta)
            and inside(self.radial_bias, bounds.radial_bias)
            and inside(self.spike_kick, bounds.spike_kick)
        )

    def apply_gains(self, y_hat: Sequence[float]) -> np.ndarray:
        """Per-bin corrected read-out ``gains * y_hat``."""
        return self.gains * np.asarray(y_hat, dtype=np.float64)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "gains": [float(g) for g in self.gains],
            "lifThreshold": float(self.lif_threshold),
            "radialBias": float(self.radial_bias),
            "spikeKick": float(self.spike_kick),
        }


@dataclass(frozen=True)
class BinStatistics:
    mean: float
    variance: float
    min: float
    max: float

    @classmethod
    def of(cls, values: Sequence[float]) -> "BinStatistics":
        values = np.asarray(values, dtype=np.float64)
        if values.size == 0:
            return cls(0.0, 0.0, 0.0, 0.0)
        return cls(
            mean=float(values.mean()),
            variance=float(values.var()),
            min=float(values.min()),
            max=float(values.max()),
        )

    def to_dict(self) -> Dict[str, float]:
        return {"mean": self.mean, "variance": self.variance, "min": self.min, "max": self.max}


@dataclass(frozen=True)
class ParameterDeltas:
    gain_mean: float
    gain_variance: float
    lif_threshold: float
    radial_bias: float
    spike_kick: float

    @classmethod
    def between(cls, old: LearnableParameters, new: LearnableParameters) -> "ParameterDeltas":
        gain_deltas = new.gains - old.gains
        return cls(
            gain_mean=float(gain_deltas.mean()) if gain_deltas.size else 0.0,
            gain_variance=float(gain_deltas.var()) if gain_deltas.size else 0.0,
            lif_threshold=new.lif_threshold - old.lif_threshold,
            radial_bias=new.radial_bias - old.radial_bias,
            spike_kick=new.spike_kick - old.spike_kick,
        )

    def to_dict(self) -> Dict[str, float]:
        return {
            "gainMean": self.gain_mean,
            "gainVariance": self.gain_variance,
            "lifThreshold": self.lif_threshold,
            "radialBias": self.radial_bias,
            "spikeKick": self.spike_kick,
        }


@dataclass(frozen=True)
class LearningMetrics:
    """Write-once summary of one epoch."""

    epoch: int
    total_loss: float
    bin_loss: float
    spike_loss: float
    boundary_loss: float
    spike_rate: float
    completion_rate: float
    mean_radial_miss: float
    nonzero_bins: int
    y_hat_stats: BinStatistics
    param_deltas: ParameterDeltas

    def to_dict(self) -> Dict[str, Any]:
        return {
            "epoch": self.epoch,
            "totalLoss": self.total_loss,
            "binLoss": self.bin_loss,
            "spikeLoss": self.spike_loss,
            "boundaryLoss": self.boundary_loss,
            "spikeRate": self.spike_rate,
            "completionRate": self.completion_rate,
            "meanRadialMiss": self.mean_radial_miss,
            "nonzeroBins": self.nonzero_bins,
            "yHatStats": self.y_hat_stats.to_dict(),
            "paramDeltas": self.param_deltas.to_dict(),
        }


class FlowLearningLoop:
    """Owns the learnable parameters and the router they are baked into."""

    def __init__(self, flow_config: FlowConfig, learning_config: LearningConfig, seed: int = 0) -> None:
        if not math.isclose(learning_config.aggregator.radius, flow_config.radius):
            raise ConfigError(
                "aggregator.radius",
                f"must equal the flow radius {flow_config.radius}, got {learning_config.aggregator.radius}",
            )
        self.flow_config = flow_config
        self.learning_config = learning_config
        self.seed = int(seed)
        self.params = LearnableParameters.initial(
            bins=flow_config.bins,
            lif_threshold=flow_config.lif.threshold,
            radial_bias=flow_config.dynamics.radial_bias,
            spike_kick=flow_config.dynamics.spike_kick,
        )
        self.router = FlowRouter(flow_config, seed=self.seed)
        self.previous_bin_loss = math.inf
        self.last_y_hat: Optional[np.ndarray] = None
        self.last_completions: List[CompletionEvent] = []

    @property
    def parameters(self) -> LearnableParameters:
        return self.params.copy()

    def load_parameters(self, params: LearnableParameters) -> None:
        """Adopt ``params`` (e.g. from a checkpoint) and rebuild the router."""
        gains = np.asarray(params.gains, dtype=np.float64)
        if gains.shape != (self.flow_config.bins,):
            raise TargetShapeError(self.flow_config.bins, gains.size, source="parameter gains")
        params = dataclasses.replace(params, gains=gains).copy()
        if not params.within(self.learning_config.bounds):
            raise ConfigError("params", "loaded parameters lie outside the configured bounds")
        self.params = params
        self._rebuild_router()

    def resume(self, params: LearnableParameters, bin_loss: float) -> None:
        """Pick up after a checkpointed epoch whose bin loss was ``bin_loss``."""
        self.load_parameters(params)
        self.previous_bin_loss = float(bin_loss)

    def run_epoch(self, epoch: int, energies: Sequence[float], targets: Sequence[float]) -> LearningMetrics:
        cfg = self.flow_config
        lc = self.learning_config
        targets = np.asarray(targets, dtype=np.float64)
        if targets.shape != (cfg.bins,):
            raise TargetShapeError(cfg.bins, targets.size, source="epoch targets")

        seeds = make_seeds(energies, self.router.cfg)
        start_bins = initial_bins(seeds, cfg.bins)
        state = self.router.new_state(seeds)

        completions: List[CompletionEvent] = []
        total_spikes = 0
        particle_steps = 0
        for _ in range(lc.steps_per_epoch):
            if state.is_empty:
                break
            events = self.router.step_with_events(state)
            particle_steps += len(events)
            total_spikes += sum(1 for e in events if e.spiked)
            completions.extend(completions_from_events(events, start_bins))
        completions.extend(completions_from_events(self.router.finalize(state), start_bins))

        y_hat = aggregate(completions, targets, lc.aggregator, cfg.bins)

        spike_rate = total_spikes / particle_steps if particle_steps else 0.0
        # forced survivors are not arrivals, but their miss distance still counts
        arrivals = sum(1 for c in completions if not c.forced)
        completion_rate = arrivals / len(seeds) if seeds else 0.0
        misses = losses.radial_misses(completions, cfg.radius)
        mean_radial_miss = float(misses.mean()) if misses.size else 0.0

        bin_loss = losses.bin_loss(y_hat, targets, self.params.gains, lambda_g=lc.gain_regularization)
        spike_loss = losses.spike_rate_loss(spike_rate, lc.target_spike_rate)
        boundary_loss = losses.boundary_loss(completions, cfg.radius, eps=lc.boundary_eps)
        total = losses.total_loss(
            bin_loss,
            spike_loss,
            boundary_loss,
            spike_weight=lc.loss_weights.spike,
            boundary_weight=lc.loss_weights.boundary,
        )

        old = self.params.copy()
        if lc.enabled:
            self._update_parameters(y_hat, targets, spike_rate, completion_rate, mean_radial_miss, bin_loss)
        self.previous_bin_loss = bin_loss
        deltas = ParameterDeltas.between(old, self.params)
        self._rebuild_router()

        self.last_y_hat = y_hat
        self.last_completions = completions

        metrics = LearningMetrics(
            epoch=epoch,
            total_loss=total,
            bin_loss=bin_loss,
            spike_loss=spike_loss,
            boundary_loss=boundary_loss,
            spike_rate=spike_rate,
            completion_rate=completion_rate,
            mean_radial_miss=mean_radial_miss,
            nonzero_bins=int(np.count_nonzero(y_hat > 0.0)),
            y_hat_stats=BinStatistics.of(y_hat),
            param_deltas=deltas,
        )
        logger.info(
            "epoch %d: loss=%.4f bin=%.4f spike=%.4f boundary=%.4f spike_rate=%.3f "
            "completion=%.3f miss=%.3f theta=%.3f bias=%.3f kick=%.3f",
            epoch, total, bin_loss, spike_loss, boundary_loss, spike_rate,
            completion_rate, mean_radial_miss,
            self.params.lif_threshold, self.params.radial_bias, self.params.spike_kick,
        )
        return metrics

    def _update_parameters(self, y_hat, targets, spike_rate, completion_rate, mean_radial_miss, bin_loss) -> None:
        lc = self.learning_config
        rates = lc.learning_rates
        bounds = lc.bounds
        p = self.params
        p.gains = updater.update_gains(p.gains, y_hat, targets, rates.gain, bounds.gain)
        p.lif_threshold = updater.update_lif_threshold(
            p.lif_threshold,
            observed_rate=spike_rate,
            target_rate=lc.target_spike_rate,
            learning_rate=rates.lif,
            bounds=bounds.theta,
            margin=lc.spike_margin,
        )
        p.radial_bias = updater.update_radial_bias(
            p.radial_bias,
            completion_rate=completion_rate,
            mean_radial_miss=mean_radial_miss,
            learning_rate=rates.dynamics,
            bounds=bounds.radial_bias,
            target_completion_rate=lc.target_completion_rate,
            miss_threshold=lc.miss_threshold,
        )
        p.spike_kick = updater.update_spike_kick(
            p.spike_kick,
            mean_radial_miss=mean_radial_miss,
            bin_loss_trend=bin_loss - self.previous_bin_loss,
            learning_rate=rates.dynamics,
            bounds=bounds.spike_kick,
            miss_threshold=lc.miss_threshold,
        )

    def _rebuild_router(self) -> None:
        cfg = self.flow_config.with_parameters(self.params)
        if self.learning_config.rng_policy is RngPolicy.CONTINUE:
            self.router = FlowRouter(cfg, rng=self.router.rng)
        else:
            self.router = FlowRouter(cfg, seed=self.seed)
        logger.debug(
            "router rebuilt (rng=%s): threshold=%.4f radial_bias=%.4f spike_kick=%.4f",
            self.learning_config.rng_policy.value,
            cfg.lif.threshold,
            cfg.dynamics.radial_bias,
            cfg.dynamics.spike_kick,
        )


@dataclass
class TrainingReport:
    """Outcome of :func:`train`: every completed epoch, the last checkpoint and what stopped it."""

    metrics: List[LearningMetrics] = field(default_factory=list)
    last_checkpoint: Optional[Path] = None
    error: Optional[Exception] = None

    @property
    def halted(self) -> bool:
        return self.error is not None

    @property
    def last_good(self) -> Optional[LearningMetrics]:
        return self.metrics[-1] if self.metrics else None


def train(
    loop: FlowLearningLoop,
    energies: Sequence[float],
    targets: Sequence[float],
    epochs: Optional[int] = None,
    checkpoint_dir: Optional[str | os.PathLike[str]] = None,
    start_epoch: int = 0,
) -> TrainingReport:
    """
    Run ``epochs`` epochs (default: the configured count), checkpointing each
    one when ``checkpoint_dir`` is given.

    A :class:`SimulationError` or a failed checkpoint write halts training;
    the report then holds the metrics and checkpoint of the last good epoch.
    Configuration and shape errors are raised before the first epoch runs.
    """
    from .checkpoint import RouterLearningState, save_checkpoint, save_summary

    if epochs is None:
        epochs = loop.learning_config.epochs
    targets = np.asarray(targets, dtype=np.float64)
    if targets.shape != (loop.flow_config.bins,):
        raise TargetShapeError(loop.flow_config.bins, targets.size, source="training targets")

    report = TrainingReport()
    for epoch in range(start_epoch, start_epoch + epochs):
        try:
            metrics = loop.run_epoch(epoch, energies, targets)
        except SimulationError as exc:
            logger.error("epoch %d aborted: %s", epoch, exc)
            report.error = exc
            break
        report.metrics.append(metrics)
        if checkpoint_dir is None:
            continue
        try:
            report.last_checkpoint = save_checkpoint(
                RouterLearningState(epoch=epoch, params=loop.parameters, metrics=metrics),
                checkpoint_dir,
            )
        except OSError as exc:
            logger.error("checkpoint for epoch %d failed: %s", epoch, exc)
            report.error = exc
            break

    if checkpoint_dir is not None and report.metrics:
        try:
            save_summary(report.metrics, checkpoint_dir)
        except OSError as exc:
            logger.error("summary write failed: %s", exc)
            if report.error is None:
                report.error = exc
    if report.halted and report.last_good is not None:
        logger.warning("training halted; last good epoch %d", report.last_good.epoch)
    return report


__all__ = [
    "LearnableParameters",
    "BinStatistics",
    "ParameterDeltas",
    "LearningMetrics",
    "FlowLearningLoop",
    "TrainingReport",
    "train",
]
