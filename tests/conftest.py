"""
Shared configurations for the energy_flow tests.
"""

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT / "src") not in sys.path:
    sys.path.insert(0, str(ROOT / "src"))

from energy_flow import (  # noqa: E402
    AggregatorConfig,
    Bounds,
    DynamicsParams,
    FlowConfig,
    LearningConfig,
    LearningRates,
    LIFParams,
    LossWeights,
)

ENERGIES = [10.0, 20.0, 15.0, 8.0, 12.0, 18.0, 22.0, 14.0]


@pytest.fixture
def energies():
    return list(ENERGIES)


@pytest.fixture
def flow_cfg():
    return FlowConfig(
        T=10,
        radius=10.0,
        bins=8,
        seed_radius=1.0,
        lif=LIFParams(decay=0.9, threshold=0.8, reset_value=0.0, surrogate="fast_sigmoid"),
        dynamics=DynamicsParams(
            radial_bias=0.15,
            noise_std_pos=0.01,
            noise_std_dir=0.05,
            max_speed=1.0,
            energy_alpha=0.95,
            energy_floor=1e-5,
        ),
    )


@pytest.fixture
def learning_cfg():
    return LearningConfig(
        enabled=True,
        epochs=20,
        steps_per_epoch=10,
        target_spike_rate=0.2,
        learning_rates=LearningRates(gain=0.01, lif=0.02, dynamics=0.005),
        loss_weights=LossWeights(spike=0.1, boundary=0.05),
        bounds=Bounds(theta=(0.5, 1.0), radial_bias=(0.0, 0.5), spike_kick=(0.0, 1.0), gain=(0.1, 2.0)),
        aggregator=AggregatorConfig(sigma_r=2.5, sigma_e=5.0, alpha=1.0, beta=1.0, gamma=0.5, tau=1.0, radius=10.0),
    )
