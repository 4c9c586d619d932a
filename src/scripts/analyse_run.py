"""
Loss-curve analysis of a learning run.

Reads learning_summary.json from a checkpoint directory, fits a linear trend
to the total loss over epochs and plots every loss term together with the
spike and completion rates.
"""
from __future__ import annotations

import argparse
import sys
from pathlib import Path

import numpy as np
from matplotlib import pyplot as plt
from scipy.stats import linregress

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT / "src") not in sys.path:
    sys.path.insert(0, str(ROOT / "src"))

from energy_flow.checkpoint import load_summary  # type: ignore[import]
from energy_flow.learning import LearningMetrics  # type: ignore[import]


def loss_trend(metrics: list[LearningMetrics]) -> tuple[float, float, float]:
    """
    Linear fit of total loss against epoch.

    Returns:
        Tuple of (slope, intercept, r_squared)
    """
    if len(metrics) < 2:
        raise ValueError(f"Need at least 2 epochs for a trend fit, got {len(metrics)}")
    epochs = np.array([m.epoch for m in metrics], dtype=np.float64)
    losses = np.array([m.total_loss for m in metrics], dtype=np.float64)
    mask = np.isfinite(losses)
    if mask.sum() < 2:
        raise ValueError("Fewer than 2 finite loss values")
    fit = linregress(epochs[mask], losses[mask])
    return float(fit.slope), float(fit.intercept), float(fit.rvalue ** 2)


def plot_losses(metrics: list[LearningMetrics], trend: tuple[float, float, float], output: str | None, show: bool):
    epochs = np.array([m.epoch for m in metrics])
    fig, (ax_loss, ax_rate) = plt.subplots(1, 2, figsize=(11, 4.5))

    ax_loss.plot(epochs, [m.total_loss for m in metrics], "o-", label="total")
    ax_loss.plot(epochs, [m.bin_loss for m in metrics], "--", label="bin")
    ax_loss.plot(epochs, [m.spike_loss for m in metrics], "--", label="spike")
    ax_loss.plot(epochs, [m.boundary_loss for m in metrics], "--", label="boundary")
    slope, intercept, r2 = trend
    ax_loss.plot(epochs, slope * epochs + intercept, "k:", label=f"trend {slope:+.4f}/epoch (R²={r2:.2f})")
    ax_loss.set_xlabel("epoch")
    ax_loss.set_ylabel("loss")
    ax_loss.legend(fontsize=8)
    ax_loss.set_title("Losses")

    ax_rate.plot(epochs, [m.spike_rate for m in metrics], "o-", label="spike rate")
    ax_rate.plot(epochs, [m.completion_rate for m in metrics], "s-", label="completion rate")
    ax_rate.plot(epochs, [m.mean_radial_miss for m in metrics], "^-", label="mean radial miss")
    ax_rate.set_xlabel("epoch")
    ax_rate.legend(fontsize=8)
    ax_rate.set_title("Rates")

    fig.tight_layout()
    if output:
        Path(output).parent.mkdir(parents=True, exist_ok=True)
        fig.savefig(output, dpi=150, bbox_inches="tight")
        print(f"Saved figure to {output}")
    if show:
        plt.show()
    plt.close(fig)


def main():
    parser = argparse.ArgumentParser(description="Analyse the loss curves of a learning run")
    parser.add_argument("run", help="Checkpoint directory or learning_summary.json")
    parser.add_argument("--out", default=None, help="Output image path (default: <run>/losses.png)")
    parser.add_argument("--show", action="store_true", help="Show plot interactively")
    args = parser.parse_args()

    run = Path(args.run)
    metrics = load_summary(run)
    print(f"Loaded {len(metrics)} epochs from {run}")

    slope, intercept, r2 = loss_trend(metrics)
    first, last = metrics[0], metrics[-1]
    print(f"   total loss: {first.total_loss:.4f} -> {last.total_loss:.4f}")
    print(f"   trend: {slope:+.5f} per epoch (intercept {intercept:.4f}, R^2 {r2:.3f})")
    print(f"   final spike rate {last.spike_rate:.3f}, completion rate {last.completion_rate:.3f}")

    output = args.out
    if output is None:
        output = str((run if run.is_dir() else run.parent) / "losses.png")
    plot_losses(metrics, (slope, intercept, r2), output, args.show)


if __name__ == "__main__":
    main()
