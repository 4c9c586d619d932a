"""
Energy Flow Router - spiking particle flow with online parameter learning

This package provides:
- FlowRouter: steps energy-carrying particles with leaky integrate-and-fire
  dynamics and projects them onto an angular histogram at the boundary
- FlowLearningLoop: aggregates completions per bin and tunes gains,
  threshold, radial bias and spike kick towards a target distribution
- checkpoint: per-epoch JSON checkpoints and target file loaders
"""

from .config import (
    AggregatorConfig,
    Bounds,
    DynamicsParams,
    FlowConfig,
    LearningConfig,
    LearningRates,
    LIFParams,
    LossWeights,
    RngPolicy,
    SeedLayout,
    load_config,
    validate_bins,
)
from .errors import (
    CheckpointError,
    ConfigError,
    FlowError,
    SimulationError,
    TargetParseError,
    TargetShapeError,
)
from .geometry import FlowRNG
from .surrogate import Surrogate
from .particles import FlowParticle, FlowState, make_seeds
from .router import FlowRouter, FlowTrace, StepEvent, simulate
from .aggregator import CompletionEvent, aggregate
from .learning import (
    FlowLearningLoop,
    LearnableParameters,
    LearningMetrics,
    TrainingReport,
    train,
)
from .checkpoint import (
    RouterLearningState,
    find_latest_checkpoint,
    load_checkpoint,
    load_target,
    save_checkpoint,
    targets_from_energies,
)
from . import losses, updater, utils

__all__ = [
    # Configuration
    "FlowConfig",
    "LIFParams",
    "DynamicsParams",
    "SeedLayout",
    "LearningConfig",
    "AggregatorConfig",
    "LearningRates",
    "LossWeights",
    "Bounds",
    "RngPolicy",
    "load_config",
    "validate_bins",
    # Errors
    "FlowError",
    "ConfigError",
    "TargetShapeError",
    "TargetParseError",
    "CheckpointError",
    "SimulationError",
    # Simulation
    "FlowRNG",
    "Surrogate",
    "FlowParticle",
    "FlowState",
    "make_seeds",
    "FlowRouter",
    "FlowTrace",
    "StepEvent",
    "simulate",
    # Learning
    "CompletionEvent",
    "aggregate",
    "FlowLearningLoop",
    "LearnableParameters",
    "LearningMetrics",
    "TrainingReport",
    "train",
    # I/O
    "RouterLearningState",
    "save_checkpoint",
    "load_checkpoint",
    "find_latest_checkpoint",
    "targets_from_energies",
    "load_target",
    # Modules
    "losses",
    "updater",
    "utils",
]
