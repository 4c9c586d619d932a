"""
Checkpoint and target file I/O.

A checkpoint is one JSON document per epoch::

    {"epoch": 3,
     "params": {"gains": [...], "lifThreshold": .., "radialBias": .., "spikeKick": ..},
     "metrics": {"epoch": 3, "totalLoss": .., ..., "yHatStats": {...}, "paramDeltas": {...}}}

Loading validates the full shape and raises :class:`CheckpointError` naming
the offending field. Missing files surface as ``FileNotFoundError``.
"""

from __future__ import annotations

import json
import logging
import math
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

import numpy as np

from .errors import CheckpointError, TargetParseError, TargetShapeError
from .learning import BinStatistics, LearnableParameters, LearningMetrics, ParameterDeltas

logger = logging.getLogger(__name__)

CHECKPOINT_PATTERN = "learning_epoch_{epoch:04d}.json"
SUMMARY_NAME = "learning_summary.json"
_CHECKPOINT_RE = re.compile(r"^learning_epoch_(\d+)\.json$")


@dataclass
class RouterLearningState:
    epoch: int
    params: LearnableParameters
    metrics: LearningMetrics

    def to_dict(self) -> Dict[str, Any]:
        return {
            "epoch": self.epoch,
            "params": self.params.to_dict(),
            "metrics": self.metrics.to_dict(),
        }


###############################################################################
# Decoding helpers
###############################################################################


class _Reader:
    """Pulls typed fields out of a decoded JSON object, tracking the field path."""

    def __init__(self, path: str) -> None:
        self.path = path

    def fail(self, field: str, message: str) -> CheckpointError:
        return CheckpointError(self.path, field, message)

    def mapping(self, data: Any, field: str) -> Mapping[str, Any]:
        if not isinstance(data, Mapping):
            raise self.fail(field, f"expected an object, got {type(data).__name__}")
        return data

    def get(self, data: Mapping[str, Any], key: str, prefix: str) -> Any:
        field = f"{prefix}.{key}" if prefix else key
        if key not in data:
            raise self.fail(field, "missing")
        return data[key]

    def number(self, data: Mapping[str, Any], key: str, prefix: str = "") -> float:
        value = self.get(data, key, prefix)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise self.fail(f"{prefix}.{key}" if prefix else key, f"expected a number, got {value!r}")
        return float(value)

    def integer(self, data: Mapping[str, Any], key: str, prefix: str = "") -> int:
        value = self.get(data, key, prefix)
        if isinstance(value, bool) or not isinstance(value, int):
            raise self.fail(f"{prefix}.{key}" if prefix else key, f"expected an integer, got {value!r}")
        return value

    def numbers(self, data: Mapping[str, Any], key: str, prefix: str = "") -> List[float]:
        field = f"{prefix}.{key}" if prefix else key
        value = self.get(data, key, prefix)
        if not isinstance(value, list):
            raise self.fail(field, f"expected a list, got {type(value).__name__}")
        for i, v in enumerate(value):
            if isinstance(v, bool) or not isinstance(v, (int, float)):
                raise self.fail(f"{field}[{i}]", f"expected a number, got {v!r}")
        return [float(v) for v in value]


def _params_from_dict(reader: _Reader, data: Any) -> LearnableParameters:
    data = reader.mapping(data, "params")
    return LearnableParameters(
        gains=np.asarray(reader.numbers(data, "gains", "params"), dtype=np.float64),
        lif_threshold=reader.number(data, "lifThreshold", "params"),
        radial_bias=reader.number(data, "radialBias", "params"),
        spike_kick=reader.number(data, "spikeKick", "params"),
    )


def _metrics_from_dict(reader: _Reader, data: Any, prefix: str = "metrics") -> LearningMetrics:
    data = reader.mapping(data, prefix)
    stats = reader.mapping(reader.get(data, "yHatStats", prefix), f"{prefix}.yHatStats")
    deltas = reader.mapping(reader.get(data, "paramDeltas", prefix), f"{prefix}.paramDeltas")
    sp = f"{prefix}.yHatStats"
    dp = f"{prefix}.paramDeltas"
    return LearningMetrics(
        epoch=reader.integer(data, "epoch", prefix),
        total_loss=reader.number(data, "totalLoss", prefix),
        bin_loss=reader.number(data, "binLoss", prefix),
        spike_loss=reader.number(data, "spikeLoss", prefix),
        boundary_loss=reader.number(data, "boundaryLoss", prefix),
        spike_rate=reader.number(data, "spikeRate", prefix),
        completion_rate=reader.number(data, "completionRate", prefix),
        mean_radial_miss=reader.number(data, "meanRadialMiss", prefix),
        nonzero_bins=reader.integer(data, "nonzeroBins", prefix),
        y_hat_stats=BinStatistics(
            mean=reader.number(stats, "mean", sp),
            variance=reader.number(stats, "variance", sp),
            min=reader.number(stats, "min", sp),
            max=reader.number(stats, "max", sp),
        ),
        param_deltas=ParameterDeltas(
            gain_mean=reader.number(deltas, "gainMean", dp),
            gain_variance=reader.number(deltas, "gainVariance", dp),
            lif_threshold=reader.number(deltas, "lifThreshold", dp),
            radial_bias=reader.number(deltas, "radialBias", dp),
            spike_kick=reader.number(deltas, "spikeKick", dp),
        ),
    )


def _read_json(path: Path) -> Any:
    text = path.read_text(encoding="utf-8")
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise CheckpointError(str(path), "<document>", f"invalid JSON: {exc}") from exc


def _write_json(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")


###############################################################################
# Checkpoints
###############################################################################


def checkpoint_path(directory: str | os.PathLike[str], epoch: int) -> Path:
    return Path(directory) / CHECKPOINT_PATTERN.format(epoch=epoch)


def save_checkpoint(state: RouterLearningState, directory: str | os.PathLike[str]) -> Path:
    """Write ``state`` as ``learning_epoch_NNNN.json`` under ``directory``."""
    path = checkpoint_path(directory, state.epoch)
    _write_json(path, state.to_dict())
    logger.info("checkpoint written: %s", path)
    return path


def load_checkpoint(path: str | os.PathLike[str], bins: Optional[int] = None) -> RouterLearningState:
    """
    Read a checkpoint back. With ``bins`` given, the gain vector must have
    exactly that many entries.
    """
    path = Path(path)
    reader = _Reader(str(path))
    data = reader.mapping(_read_json(path), "<document>")
    state = RouterLearningState(
        epoch=reader.integer(data, "epoch"),
        params=_params_from_dict(reader, reader.get(data, "params", "")),
        metrics=_metrics_from_dict(reader, reader.get(data, "metrics", "")),
    )
    if bins is not None and state.params.gains.size != bins:
        raise reader.fail("params.gains", f"expected {bins} gains, got {state.params.gains.size}")
    logger.debug("checkpoint loaded: %s (epoch %d)", path, state.epoch)
    return state


def find_latest_checkpoint(directory: str | os.PathLike[str]) -> Optional[Path]:
    """Checkpoint with the highest epoch number in ``directory``, if any."""
    directory = Path(directory)
    if not directory.is_dir():
        return None
    best = None
    best_epoch = -1
    for entry in directory.iterdir():
        m = _CHECKPOINT_RE.match(entry.name)
        if m and entry.is_file() and int(m.group(1)) > best_epoch:
            best_epoch = int(m.group(1))
            best = entry
    return best


def save_summary(metrics: Sequence[LearningMetrics], directory: str | os.PathLike[str]) -> Path:
    path = Path(directory) / SUMMARY_NAME
    _write_json(path, [m.to_dict() for m in metrics])
    logger.info("summary written: %s (%d epochs)", path, len(metrics))
    return path


def load_summary(path: str | os.PathLike[str]) -> List[LearningMetrics]:
    path = Path(path)
    if path.is_dir():
        path = path / SUMMARY_NAME
    reader = _Reader(str(path))
    data = _read_json(path)
    if not isinstance(data, list):
        raise reader.fail("<document>", "expected a list of epoch metrics")
    return [_metrics_from_dict(reader, item, prefix=f"[{i}]") for i, item in enumerate(data)]


###############################################################################
# Targets
###############################################################################


def targets_from_energies(energies: Sequence[float], bins: int) -> np.ndarray:
    """Sum each energy into bin ``floor(energy) mod bins``; non-finite energies are skipped."""
    out = np.zeros(bins, dtype=np.float64)
    for e in energies:
        e = float(e)
        if not math.isfinite(e):
            continue
        out[int(math.floor(e)) % bins] += e
    return out


def _check_length(values: List[float], bins: Optional[int], source: str) -> np.ndarray:
    if bins is not None and len(values) != bins:
        raise TargetShapeError(bins, len(values), source=source)
    return np.asarray(values, dtype=np.float64)


def load_target_json(path: str | os.PathLike[str], bins: Optional[int] = None) -> np.ndarray:
    path = Path(path)
    text = path.read_text(encoding="utf-8")
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise TargetParseError(str(path), exc.lineno, exc.msg) from exc
    if not isinstance(data, list):
        raise TargetParseError(str(path), 1, text.strip()[:40])
    values = []
    for v in data:
        if isinstance(v, bool) or not isinstance(v, (int, float)):
            raise TargetParseError(str(path), 1, repr(v))
        values.append(float(v))
    return _check_length(values, bins, str(path))


def load_target_text(path: str | os.PathLike[str], bins: Optional[int] = None) -> np.ndarray:
    """One float per line; blank lines are ignored."""
    path = Path(path)
    values = []
    with path.open("r", encoding="utf-8") as fh:
        for lineno, line in enumerate(fh, start=1):
            stripped = line.strip()
            if not stripped:
                continue
            try:
                values.append(float(stripped))
            except ValueError as exc:
                raise TargetParseError(str(path), lineno, stripped) from exc
    return _check_length(values, bins, str(path))


def load_target(path: str | os.PathLike[str], bins: Optional[int] = None) -> np.ndarray:
    """Dispatch on the suffix: ``.json`` is a JSON array, anything else line-delimited text."""
    if Path(path).suffix.lower() == ".json":
        return load_target_json(path, bins)
    return load_target_text(path, bins)


__all__ = [
    "RouterLearningState",
    "CHECKPOINT_PATTERN",
    "SUMMARY_NAME",
    "checkpoint_path",
    "save_checkpoint",
    "load_checkpoint",
    "find_latest_checkpoint",
    "save_summary",
    "load_summary",
    "targets_from_energies",
    "load_target_json",
    "load_target_text",
    "load_target",
]
