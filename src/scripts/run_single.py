#!/usr/bin/env python3
"""
Single Flow Simulation Runner

Seeds one particle per input energy, routes them to the boundary and prints
the resulting angular histogram. The run is saved as a compressed .npz.
"""

import argparse
import logging
import sys
import time
from pathlib import Path

import numpy as np

# Add src/ to path
ROOT = Path(__file__).resolve().parents[2]
if str(ROOT / "src") not in sys.path:
    sys.path.insert(0, str(ROOT / "src"))

from energy_flow import FlowConfig, FlowRouter, load_config, make_seeds, utils
from energy_flow.report import format_summary
from energy_flow.router import BRIDGE_SEED_OFFSET, UINT64_MASK

DEFAULT_ENERGIES = [10.0, 20.0, 15.0, 8.0, 12.0, 18.0, 22.0, 14.0]


def main():
    parser = argparse.ArgumentParser(
        description="Run a single energy flow simulation",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="JSON/TOML file with a [flow] section (defaults if omitted)",
    )
    parser.add_argument(
        "--energies",
        type=float,
        nargs="+",
        default=DEFAULT_ENERGIES,
        help="Input energies, one particle each",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=42,
        help="Random seed for reproducibility (default: 42)",
    )
    parser.add_argument(
        "--out",
        type=str,
        default=None,
        help="Output .npz file path (auto-generated if not provided)",
    )
    parser.add_argument("--verbose", action="store_true", help="Debug logging")

    args = parser.parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    cfg = load_config(args.config)[0] if args.config else FlowConfig()

    print(f"Running flow simulation: particles={len(args.energies)}, bins={cfg.bins}, seed={args.seed}")
    start_time = time.time()

    # same generator seed as energy_flow.simulate
    router = FlowRouter(cfg, seed=(args.seed + BRIDGE_SEED_OFFSET) & UINT64_MASK)
    trace = router.trace(make_seeds(args.energies, cfg))

    elapsed_time = time.time() - start_time

    if args.out is None:
        output_dir = Path("results")
        output_dir.mkdir(exist_ok=True)
        args.out = str(output_dir / f"flow_B{cfg.bins}_S{args.seed}_{utils.now_str()}.npz")

    positions = np.array([c.position for c in trace.completions], dtype=np.float64).reshape(-1, 2)
    result = utils.FlowResult(
        outputs=trace.outputs,
        positions=positions,
        energies=np.array([c.energy for c in trace.completions], dtype=np.float64),
        meta={
            "seed": args.seed,
            "bins": cfg.bins,
            "T": cfg.T,
            "radius": cfg.radius,
            "input_energies": list(args.energies),
            "steps_run": trace.steps_run,
        },
    )
    utils.save_flow_result(args.out, result)

    print(format_summary(trace.outputs, trace))
    print(f"\nSimulation completed in {elapsed_time:.2f} seconds")
    print(f"   Output saved to: {args.out}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
