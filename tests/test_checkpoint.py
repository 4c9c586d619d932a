"""
Tests for checkpoint and target file I/O.
"""

import json

import numpy as np
import pytest

from energy_flow import CheckpointError, TargetParseError, TargetShapeError
from energy_flow.checkpoint import (
    RouterLearningState,
    checkpoint_path,
    find_latest_checkpoint,
    load_checkpoint,
    load_summary,
    load_target,
    load_target_json,
    load_target_text,
    save_checkpoint,
    save_summary,
    targets_from_energies,
)
from energy_flow.learning import BinStatistics, LearnableParameters, LearningMetrics, ParameterDeltas


def make_metrics(epoch=3):
    return LearningMetrics(
        epoch=epoch,
        total_loss=12.345678,
        bin_loss=11.5,
        spike_loss=0.64,
        boundary_loss=0.123,
        spike_rate=1.0,
        completion_rate=0.875,
        mean_radial_miss=0.0421,
        nonzero_bins=6,
        y_hat_stats=BinStatistics(mean=9.1, variance=4.2, min=0.0, max=21.7),
        param_deltas=ParameterDeltas(
            gain_mean=-0.013, gain_variance=1e-4, lif_threshold=0.02, radial_bias=0.005, spike_kick=-0.0025
        ),
    )


def make_state(epoch=3, bins=8):
    params = LearnableParameters(
        gains=np.linspace(0.5, 1.5, bins), lif_threshold=0.82, radial_bias=0.155, spike_kick=0.4975
    )
    return RouterLearningState(epoch=epoch, params=params, metrics=make_metrics(epoch))


def test_checkpoint_round_trip(tmp_path):
    state = make_state()
    path = save_checkpoint(state, tmp_path)
    assert path.name == "learning_epoch_0003.json"
    loaded = load_checkpoint(path, bins=8)
    assert loaded.epoch == state.epoch
    assert loaded.params.gains == pytest.approx(state.params.gains, abs=1e-5)
    assert loaded.params.lif_threshold == pytest.approx(state.params.lif_threshold, abs=1e-5)
    assert loaded.params.radial_bias == pytest.approx(state.params.radial_bias, abs=1e-5)
    assert loaded.params.spike_kick == pytest.approx(state.params.spike_kick, abs=1e-5)
    assert loaded.metrics == state.metrics


def test_checkpoint_json_shape(tmp_path):
    path = save_checkpoint(make_state(), tmp_path)
    data = json.loads(path.read_text())
    assert set(data) == {"epoch", "params", "metrics"}
    assert set(data["params"]) == {"gains", "lifThreshold", "radialBias", "spikeKick"}
    assert set(data["metrics"]["yHatStats"]) == {"mean", "variance", "min", "max"}
    assert set(data["metrics"]["paramDeltas"]) == {
        "gainMean", "gainVariance", "lifThreshold", "radialBias", "spikeKick"
    }


def test_missing_field_is_named(tmp_path):
    path = save_checkpoint(make_state(), tmp_path)
    data = json.loads(path.read_text())
    del data["metrics"]["paramDeltas"]["spikeKick"]
    path.write_text(json.dumps(data))
    with pytest.raises(CheckpointError) as excinfo:
        load_checkpoint(path)
    assert excinfo.value.field == "metrics.paramDeltas.spikeKick"


def test_wrong_type_is_named(tmp_path):
    path = save_checkpoint(make_state(), tmp_path)
    data = json.loads(path.read_text())
    data["params"]["gains"][2] = "x"
    path.write_text(json.dumps(data))
    with pytest.raises(CheckpointError) as excinfo:
        load_checkpoint(path)
    assert excinfo.value.field == "params.gains[2]"


def test_gain_count_mismatch(tmp_path):
    path = save_checkpoint(make_state(bins=4), tmp_path)
    with pytest.raises(CheckpointError) as excinfo:
        load_checkpoint(path, bins=8)
    assert excinfo.value.field == "params.gains"


def test_corrupt_checkpoint(tmp_path):
    path = tmp_path / "learning_epoch_0000.json"
    path.write_text("{not json")
    with pytest.raises(CheckpointError):
        load_checkpoint(path)
    path.write_text("[1, 2, 3]")
    with pytest.raises(CheckpointError):
        load_checkpoint(path)


def test_missing_checkpoint(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_checkpoint(tmp_path / "nope.json")


def test_find_latest_uses_epoch_number(tmp_path):
    assert find_latest_checkpoint(tmp_path) is None
    assert find_latest_checkpoint(tmp_path / "missing") is None
    for epoch in (2, 10, 3):
        save_checkpoint(make_state(epoch=epoch), tmp_path)
    (tmp_path / "learning_summary.json").write_text("[]")
    (tmp_path / "notes.json").write_text("{}")
    assert find_latest_checkpoint(tmp_path) == checkpoint_path(tmp_path, 10)


def test_summary_round_trip(tmp_path):
    metrics = [make_metrics(0), make_metrics(1)]
    path = save_summary(metrics, tmp_path)
    assert load_summary(path) == metrics
    assert load_summary(tmp_path) == metrics


def test_summary_must_be_a_list(tmp_path):
    path = tmp_path / "learning_summary.json"
    path.write_text("{}")
    with pytest.raises(CheckpointError):
        load_summary(path)


# ---------------------------------------------------------------------------
# Targets
# ---------------------------------------------------------------------------


def test_targets_from_energies():
    out = targets_from_energies([10, 20, 15, 8, 12, 18, 22, 14], 8)
    expected = np.zeros(8)
    expected[[0, 2, 4, 6, 7]] = [8.0, 28.0, 32.0, 36.0, 15.0]
    assert out.tolist() == expected.tolist()


def test_targets_from_energies_skips_non_finite():
    out = targets_from_energies([1.5, float("nan"), float("inf")], 4)
    assert out.tolist() == [0.0, 1.5, 0.0, 0.0]


def test_target_json(tmp_path):
    path = tmp_path / "target.json"
    path.write_text(json.dumps([1, 2.5, 3, 4]))
    assert load_target_json(path, bins=4).tolist() == [1.0, 2.5, 3.0, 4.0]
    assert load_target(path, bins=4).tolist() == [1.0, 2.5, 3.0, 4.0]
    with pytest.raises(TargetShapeError) as excinfo:
        load_target(path, bins=8)
    assert (excinfo.value.expected, excinfo.value.actual) == (8, 4)


def test_target_json_rejects_non_numbers(tmp_path):
    path = tmp_path / "target.json"
    path.write_text(json.dumps({"a": 1}))
    with pytest.raises(TargetParseError):
        load_target_json(path)
    path.write_text(json.dumps([1, "two"]))
    with pytest.raises(TargetParseError):
        load_target_json(path)


def test_target_text(tmp_path):
    path = tmp_path / "target.txt"
    path.write_text("1.0\n\n2.0\n  3.5  \n4\n")
    assert load_target_text(path, bins=4).tolist() == [1.0, 2.0, 3.5, 4.0]
    assert load_target(path).tolist() == [1.0, 2.0, 3.5, 4.0]
    with pytest.raises(TargetShapeError):
        load_target(path, bins=3)


def test_target_text_parse_error(tmp_path):
    path = tmp_path / "target.txt"
    path.write_text("1.0\n2.0\nabc\n")
    with pytest.raises(TargetParseError) as excinfo:
        load_target_text(path)
    assert excinfo.value.line == 3
    assert excinfo.value.content == "abc"
