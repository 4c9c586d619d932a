"""Plain-text summaries for scripts and logs."""

from __future__ import annotations

from typing import Optional, Sequence

import numpy as np

from .learning import LearningMetrics
from .router import FlowTrace

BAR_WIDTH = 40


def format_histogram(outputs: Sequence[float], width: int = BAR_WIDTH) -> str:
    """One line per bin: index, value and a bar scaled to the largest bin."""
    outputs = np.asarray(outputs, dtype=np.float64)
    peak = float(outputs.max()) if outputs.size else 0.0
    lines = []
    for b, value in enumerate(outputs):
        n = int(round(width * value / peak)) if peak > 0 else 0
        lines.append(f"  bin {b:3d} | {value:10.4f} | {'#' * n}")
    return "\n".join(lines)


def format_summary(outputs: Sequence[float], trace: Optional[FlowTrace] = None) -> str:
    """Totals of one run followed by the per-bin histogram."""
    outputs = np.asarray(outputs, dtype=np.float64)
    lines = [
        f"bins           : {outputs.size}",
        f"total energy   : {outputs.sum():.4f}",
        f"nonzero bins   : {int(np.count_nonzero(outputs))}",
    ]
    if trace is not None:
        forced = sum(1 for c in trace.completions if c.forced)
        lines += [
            f"steps run      : {trace.steps_run}",
            f"completions    : {len(trace.completions)} ({forced} forced)",
            f"spikes         : {trace.total_spikes}",
        ]
    lines.append("histogram:")
    lines.append(format_histogram(outputs))
    return "\n".join(lines)


def format_metrics(m: LearningMetrics) -> str:
    return (
        f"[epoch {m.epoch:4d}] loss={m.total_loss:.4f} (bin={m.bin_loss:.4f} "
        f"spike={m.spike_loss:.4f} boundary={m.boundary_loss:.4f}) "
        f"spike_rate={m.spike_rate:.3f} completion={m.completion_rate:.3f} "
        f"miss={m.mean_radial_miss:.3f} nonzero={m.nonzero_bins}"
    )


__all__ = ["format_histogram", "format_summary", "format_metrics"]
