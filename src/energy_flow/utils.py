# src/energy_flow/utils.py
from __future__ import annotations

import json
import os
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import numpy as np

try:  # Python 3.11+
    import tomllib
except ModuleNotFoundError:  # pragma: no cover
    tomllib = None  # type: ignore


@dataclass
class FlowResult:
    """Common container for one simulation's outputs."""

    outputs: Optional[np.ndarray] = None
    positions: Optional[np.ndarray] = None
    energies: Optional[np.ndarray] = None
    meta: Optional[Dict[str, Any]] = None

    def ensure_meta(self) -> Dict[str, Any]:
        if self.meta is None:
            self.meta = {}
        return self.meta


def now_str() -> str:
    return time.strftime("%Y%m%d-%H%M%S")


def save_flow_result(
    path: str | os.PathLike[str], result: FlowResult, *, overwrite: bool = True
) -> None:
    """Serialize a FlowResult to a compressed .npz file."""
    if not overwrite and Path(path).exists():
        raise FileExistsError(f"{path} already exists")
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    out: Dict[str, Any] = {}
    if result.outputs is not None:
        out["outputs"] = np.asarray(result.outputs, dtype=np.float64)
    if result.positions is not None:
        out["positions"] = np.asarray(result.positions, dtype=np.float64).reshape(-1, 2)
    if result.energies is not None:
        out["energies"] = np.asarray(result.energies, dtype=np.float64)

    # metadata goes in as JSON so that loading never needs pickle
    out["meta"] = np.array(json.dumps(result.meta or {}, sort_keys=True))
    np.savez_compressed(path, **out)


def load_flow_result(path: str | os.PathLike[str]) -> FlowResult:
    """Load a .npz written by :func:`save_flow_result`."""
    with np.load(path, allow_pickle=False) as data:
        outputs = data["outputs"].astype(float) if "outputs" in data else None
        positions = data["positions"].astype(float) if "positions" in data else None
        energies = data["energies"].astype(float) if "energies" in data else None
        meta = json.loads(str(data["meta"])) if "meta" in data else {}
    return FlowResult(outputs=outputs, positions=positions, energies=energies, meta=meta)


def load_params(path: str | os.PathLike[str]) -> Dict[str, Any]:
    """
    Load simulation parameters from JSON or TOML.
    """
    path = str(path)
    with open(path, "rb") as fh:
        data = fh.read()
    suffix = Path(path).suffix.lower()
    if suffix in {".json", ""}:
        return json.loads(data.decode("utf-8"))
    if suffix in {".toml", ".tml"}:
        if tomllib is None:
            raise RuntimeError("tomllib is unavailable; cannot parse TOML files")
        return tomllib.loads(data.decode("utf-8"))
    raise ValueError(f"Unsupported parameter file format: {suffix}")
