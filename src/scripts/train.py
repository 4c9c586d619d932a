#!/usr/bin/env python3
"""
Flow Learning Runner

Runs the online learning loop for a number of epochs, writing one JSON
checkpoint per epoch plus a learning_summary.json. Targets come from a file
(--target) or are derived from the input energies.
"""

import argparse
import logging
import sys
import time
from pathlib import Path

# Add src/ to path
ROOT = Path(__file__).resolve().parents[2]
if str(ROOT / "src") not in sys.path:
    sys.path.insert(0, str(ROOT / "src"))

from energy_flow import (
    FlowConfig,
    FlowLearningLoop,
    LearningConfig,
    find_latest_checkpoint,
    load_checkpoint,
    load_config,
    load_target,
    targets_from_energies,
    train,
    utils,
)
from energy_flow.report import format_histogram, format_metrics

DEFAULT_ENERGIES = [10.0, 20.0, 15.0, 8.0, 12.0, 18.0, 22.0, 14.0]


def main():
    parser = argparse.ArgumentParser(
        description="Train the flow router parameters towards a target histogram",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--config", type=str, default=None, help="JSON/TOML file with [flow] and [learning]")
    parser.add_argument("--energies", type=float, nargs="+", default=DEFAULT_ENERGIES, help="Input energies")
    parser.add_argument(
        "--target",
        type=str,
        default=None,
        help="Target file (.json array or one float per line); derived from energies if omitted",
    )
    parser.add_argument("--epochs", type=int, default=None, help="Override the configured epoch count")
    parser.add_argument("--seed", type=int, default=42, help="Random seed (default: 42)")
    parser.add_argument(
        "--out",
        type=str,
        default=None,
        help="Checkpoint directory (auto-generated under results/ if not provided)",
    )
    parser.add_argument(
        "--resume", action="store_true", help="Continue from the latest checkpoint in --out (requires --out)"
    )
    parser.add_argument("--verbose", action="store_true", help="Debug logging")

    args = parser.parse_args()
    if args.resume and args.out is None:
        parser.error("--resume needs --out pointing at an existing checkpoint directory")
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    if args.config:
        flow_cfg, learning_cfg = load_config(args.config)
    else:
        flow_cfg = FlowConfig()
        learning_cfg = LearningConfig()

    if args.target:
        targets = load_target(args.target, bins=flow_cfg.bins)
    else:
        targets = targets_from_energies(args.energies, flow_cfg.bins)

    if args.out is None:
        args.out = str(Path("results") / f"learning_S{args.seed}_{utils.now_str()}")

    loop = FlowLearningLoop(flow_cfg, learning_cfg, seed=args.seed)
    start_epoch = 0
    if args.resume:
        latest = find_latest_checkpoint(args.out)
        if latest is None:
            print(f"No checkpoint found in {args.out}; starting fresh")
        else:
            state = load_checkpoint(latest, bins=flow_cfg.bins)
            loop.resume(state.params, state.metrics.bin_loss)
            start_epoch = state.epoch + 1
            print(f"Resuming from {latest} (epoch {state.epoch})")

    print(f"Training: epochs={args.epochs or learning_cfg.epochs}, bins={flow_cfg.bins}, seed={args.seed}")
    start_time = time.time()
    report = train(
        loop,
        args.energies,
        targets,
        epochs=args.epochs,
        checkpoint_dir=args.out,
        start_epoch=start_epoch,
    )
    elapsed_time = time.time() - start_time

    for m in report.metrics:
        print(format_metrics(m))

    if report.halted:
        print(f"\nTraining halted: {report.error}")
        if report.last_good is not None:
            print(f"   Last good epoch: {report.last_good.epoch}")
            print(f"   Last checkpoint: {report.last_checkpoint}")
        return 1

    params = loop.parameters
    print(f"\nTraining completed in {elapsed_time:.2f} seconds")
    print(
        f"   theta={params.lif_threshold:.4f} radial_bias={params.radial_bias:.4f} "
        f"spike_kick={params.spike_kick:.4f}"
    )
    if loop.last_y_hat is not None:
        print("   corrected read-out (gains * y_hat):")
        print(format_histogram(params.apply_gains(loop.last_y_hat)))
    print(f"   Checkpoints saved to: {args.out}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
