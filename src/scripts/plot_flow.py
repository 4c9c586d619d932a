# src/scripts/plot_flow.py
import argparse
import os
import sys
from pathlib import Path

import matplotlib.pyplot as plt
import numpy as np

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT / "src") not in sys.path:
    sys.path.insert(0, str(ROOT / "src"))

from energy_flow import FlowConfig, FlowRouter, load_config, make_seeds  # type: ignore[import]
from energy_flow.router import BRIDGE_SEED_OFFSET, UINT64_MASK, FlowTrace  # type: ignore[import]

DEFAULT_ENERGIES = [10.0, 20.0, 15.0, 8.0, 12.0, 18.0, 22.0, 14.0]


def trajectories(trace: FlowTrace) -> dict:
    """Positions of each particle id in step order."""
    paths = {}
    for events in trace.steps:
        for e in events:
            paths.setdefault(e.id, []).append(e.pos)
    return {pid: np.asarray(pts, dtype=np.float64) for pid, pts in paths.items()}


def render(trace: FlowTrace, cfg: FlowConfig, seeds, title=None, output=None, dpi=150, show=False):
    fig = plt.figure(figsize=(11, 5))
    ax = fig.add_subplot(1, 2, 1)
    polar = fig.add_subplot(1, 2, 2, projection="polar")

    # Left: paths inside the boundary circle
    ax.add_patch(plt.Circle((0.0, 0.0), cfg.radius, fill=False, color="black", lw=1.0))
    cmap = plt.get_cmap("viridis")
    paths = trajectories(trace)
    start = {p.id: p.pos for p in seeds}
    for k, (pid, pts) in enumerate(sorted(paths.items())):
        if pid in start:
            pts = np.vstack([start[pid], pts])
        color = cmap(k / max(len(paths) - 1, 1))
        ax.plot(pts[:, 0], pts[:, 1], "-", color=color, lw=1.0)
        ax.plot(pts[0, 0], pts[0, 1], "o", color=color, ms=3)
    for c in trace.completions:
        ax.plot(c.position[0], c.position[1], "x" if c.forced else "*", color="crimson", ms=6)
    lim = cfg.radius * 1.1
    ax.set_xlim(-lim, lim)
    ax.set_ylim(-lim, lim)
    ax.set_aspect("equal")
    ax.set_title("Particle paths")

    # Right: angular histogram
    bins = cfg.bins
    width = 2.0 * np.pi / bins
    angles = np.arange(bins) * width + width / 2.0
    polar.bar(angles, trace.outputs, width=width * 0.9, bottom=0.0, color="steelblue", edgecolor="black")
    polar.set_title("Boundary histogram")

    if title:
        fig.suptitle(title)
    fig.tight_layout()

    if output:
        os.makedirs(os.path.dirname(output) if os.path.dirname(output) else ".", exist_ok=True)
        plt.savefig(output, dpi=dpi, bbox_inches="tight")
        print(f"Saved figure to {output}")
    if show:
        plt.show()
    plt.close(fig)


def main():
    parser = argparse.ArgumentParser(description="Plot particle paths and the boundary histogram of one run")
    parser.add_argument("--config", default=None, help="JSON/TOML file with a [flow] section")
    parser.add_argument("--energies", type=float, nargs="+", default=DEFAULT_ENERGIES, help="Input energies")
    parser.add_argument("--seed", type=int, default=42, help="Random seed (default: 42)")
    parser.add_argument("--out", default="results/flow.png", help="Output image path")
    parser.add_argument("--dpi", type=int, default=150, help="DPI for output file (default: 150)")
    parser.add_argument("--show", action="store_true", help="Show plot interactively")
    args = parser.parse_args()

    cfg = load_config(args.config)[0] if args.config else FlowConfig()
    seeds = make_seeds(args.energies, cfg)
    router = FlowRouter(cfg, seed=(args.seed + BRIDGE_SEED_OFFSET) & UINT64_MASK)
    trace = router.trace(seeds)

    title = f"bins={cfg.bins}, T={cfg.T}, R={cfg.radius:g}, seed={args.seed}"
    render(trace, cfg, seeds, title=title, output=args.out, dpi=args.dpi, show=args.show)


if __name__ == "__main__":
    main()
