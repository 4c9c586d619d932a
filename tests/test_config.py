"""
Tests for configuration, surrogates, results files and text reports.
"""

import dataclasses
import json
import math

import numpy as np
import pytest

from energy_flow import (
    Bounds,
    ConfigError,
    DynamicsParams,
    FlowConfig,
    LearningConfig,
    LIFParams,
    RngPolicy,
    SeedLayout,
    Surrogate,
    load_config,
    validate_bins,
)
from energy_flow.config import AggregatorConfig, flow_config_from_dict, learning_config_from_dict
from energy_flow.learning import LearnableParameters
from energy_flow.report import format_histogram, format_metrics, format_summary
from energy_flow.router import FlowRouter
from energy_flow.particles import make_seeds
from energy_flow.utils import FlowResult, load_flow_result, save_flow_result
from test_checkpoint import make_metrics


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


def test_defaults_are_valid():
    cfg = FlowConfig()
    assert cfg.seed_layout is SeedLayout.RING
    assert cfg.lif.surrogate is Surrogate.FAST_SIGMOID
    assert cfg.dynamics.spike_kick == 0.5
    learning = LearningConfig()
    assert learning.rng_policy is RngPolicy.RESET
    assert learning.bounds.theta == (0.5, 1.0)


@pytest.mark.parametrize(
    "factory",
    [
        lambda: FlowConfig(T=0),
        lambda: FlowConfig(bins=0),
        lambda: FlowConfig(radius=0.0),
        lambda: FlowConfig(radius=10.0, seed_radius=10.5),
        lambda: FlowConfig(seed_radius=-1.0),
        lambda: FlowConfig(seed_layout="spiral"),
        lambda: LIFParams(decay=1.0),
        lambda: LIFParams(decay=0.0),
        lambda: LIFParams(threshold=0.0),
        lambda: LIFParams(threshold=1.5),
        lambda: LIFParams(surrogate="relu"),
        lambda: DynamicsParams(max_speed=0.0),
        lambda: DynamicsParams(energy_alpha=1.5),
        lambda: DynamicsParams(energy_floor=-1.0),
        lambda: DynamicsParams(radial_bias=math.nan),
        lambda: Bounds(theta=(0.9, 0.5)),
        lambda: Bounds(theta=(0.0, 1.0)),
        lambda: Bounds(spike_kick=(-0.1, 1.0)),
        lambda: AggregatorConfig(sigma_r=0.0),
        lambda: LearningConfig(epochs=0),
        lambda: LearningConfig(target_spike_rate=1.5),
        lambda: LearningConfig(rng_policy="sometimes"),
    ],
)
def test_invalid_values_rejected(factory):
    with pytest.raises(ConfigError):
        factory()


def test_seed_radius_may_equal_radius():
    assert FlowConfig(radius=5.0, seed_radius=5.0).seed_radius == 5.0


def test_validate_bins():
    validate_bins(FlowConfig(bins=10), 10)
    with pytest.raises(ConfigError) as excinfo:
        validate_bins(FlowConfig(bins=8), 10)
    assert excinfo.value.field == "bins"


def test_with_parameters():
    cfg = FlowConfig()
    params = LearnableParameters.initial(cfg.bins, 0.9, 0.3, 0.25)
    new = cfg.with_parameters(params)
    assert new.lif.threshold == 0.9
    assert new.dynamics.radial_bias == 0.3
    assert new.dynamics.spike_kick == 0.25
    assert new.lif.decay == cfg.lif.decay
    # the original is untouched
    assert cfg.lif.threshold == 0.8


def test_config_from_dicts():
    flow = flow_config_from_dict(
        {"T": 12, "bins": 10, "seed_layout": "disk", "lif": {"surrogate": "tanh_clip"}, "dynamics": {"spike_kick": 0.3}}
    )
    assert flow.T == 12
    assert flow.seed_layout is SeedLayout.DISK
    assert flow.lif.surrogate is Surrogate.TANH_CLIP
    assert flow.dynamics.spike_kick == 0.3
    learning = learning_config_from_dict(
        {"epochs": 4, "rng_policy": "continue", "lr": {"gain": 0.5}, "bounds": {"gain": [0.2, 3.0]}},
        radius=flow.radius,
    )
    assert learning.epochs == 4
    assert learning.rng_policy is RngPolicy.CONTINUE
    assert learning.learning_rates.gain == 0.5
    assert learning.bounds.gain == (0.2, 3.0)
    assert learning.aggregator.radius == flow.radius


def test_unknown_keys_rejected():
    with pytest.raises(ConfigError):
        flow_config_from_dict({"bins": 8, "colour": "red"})
    with pytest.raises(ConfigError):
        learning_config_from_dict({"lr": {"gains": 0.1}}, radius=10.0)


def test_load_config_toml(tmp_path):
    path = tmp_path / "flow.toml"
    path.write_text(
        "[flow]\nT = 5\nradius = 4.0\nbins = 6\n\n"
        "[flow.lif]\nthreshold = 0.7\n\n"
        "[learning]\nepochs = 3\n\n"
        "[learning.aggregator]\nsigma_r = 1.5\n"
    )
    flow, learning = load_config(path)
    assert (flow.T, flow.radius, flow.bins) == (5, 4.0, 6)
    assert flow.lif.threshold == 0.7
    assert learning.epochs == 3
    assert learning.aggregator.sigma_r == 1.5
    assert learning.aggregator.radius == 4.0


def test_load_config_json(tmp_path):
    path = tmp_path / "flow.json"
    path.write_text(json.dumps({"flow": {"bins": 10}}))
    flow, learning = load_config(path)
    assert flow.bins == 10
    assert learning == LearningConfig(aggregator=AggregatorConfig(radius=flow.radius))


def test_load_config_unknown_section(tmp_path):
    path = tmp_path / "flow.json"
    path.write_text(json.dumps({"flow": {}, "extra": {}}))
    with pytest.raises(ConfigError):
        load_config(path)


def test_shipped_config_loads():
    from pathlib import Path

    path = Path(__file__).resolve().parents[1] / "configs" / "flow.toml"
    flow, learning = load_config(path)
    assert flow.bins == 8
    assert learning.epochs == 20


# ---------------------------------------------------------------------------
# Surrogates
# ---------------------------------------------------------------------------


def test_fast_sigmoid():
    s = Surrogate.FAST_SIGMOID
    assert s.forward(0.0) == 1.0
    assert s.forward(1.0, beta=2.0) == pytest.approx(1.0 / 3.0)
    assert s.backward(0.0, beta=2.0) == pytest.approx(2.0)
    assert s.backward(1.0) == pytest.approx(0.25)


def test_tanh_clip():
    s = Surrogate.TANH_CLIP
    assert s.forward(-1.0) == 0.0
    assert s.forward(0.5) == pytest.approx(math.tanh(0.5))
    assert s.backward(-1.0) == 0.0
    assert s.backward(0.5, beta=2.0) == pytest.approx(2.0 / math.cosh(1.0) ** 2)


def test_surrogate_arrays():
    x = np.array([-1.0, 0.0, 1.0])
    out = Surrogate.TANH_CLIP.forward(x)
    assert out.shape == (3,)
    assert out[0] == 0.0 and out[1] == 0.0
    assert Surrogate.from_name("fast_sigmoid") is Surrogate.FAST_SIGMOID


# ---------------------------------------------------------------------------
# Results files and reports
# ---------------------------------------------------------------------------


def test_flow_result_round_trip(tmp_path):
    result = FlowResult(
        outputs=np.arange(8, dtype=float),
        positions=np.array([[1.0, 2.0], [3.0, 4.0]]),
        energies=np.array([0.5, 1.5]),
        meta={"seed": 3, "bins": 8},
    )
    path = tmp_path / "out" / "run.npz"
    save_flow_result(path, result)
    loaded = load_flow_result(path)
    assert np.array_equal(loaded.outputs, result.outputs)
    assert np.array_equal(loaded.positions, result.positions)
    assert np.array_equal(loaded.energies, result.energies)
    assert loaded.meta == {"seed": 3, "bins": 8}
    with pytest.raises(FileExistsError):
        save_flow_result(path, result, overwrite=False)


def test_format_histogram():
    text = format_histogram([0.0, 2.0, 4.0], width=4)
    lines = text.splitlines()
    assert len(lines) == 3
    assert lines[0].endswith("| ")
    assert lines[1].endswith("##")
    assert lines[2].endswith("####")


def test_format_summary_with_trace(energies):
    cfg = FlowConfig(T=10, bins=8)
    trace = FlowRouter(cfg, seed=0).trace(make_seeds(energies, cfg))
    text = format_summary(trace.outputs, trace)
    assert "bins           : 8" in text
    assert "completions    : 8" in text
    assert text.count("bin ") == 8


def test_format_metrics():
    line = format_metrics(make_metrics(7))
    assert line.startswith("[epoch    7]")
    assert "completion=0.875" in line
    assert "nonzero=6" in line


def test_dataclass_replace_revalidates():
    with pytest.raises(ConfigError):
        dataclasses.replace(FlowConfig(), bins=-2)
