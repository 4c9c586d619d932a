"""Error types raised by the flow router and its learning loop."""

from __future__ import annotations

from typing import Optional


class FlowError(Exception):
    """Base class for every error raised by ``energy_flow``."""


class ConfigError(FlowError, ValueError):
    """A configuration value is out of range or inconsistent."""

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        super().__init__(f"{field}: {message}")


class TargetShapeError(FlowError, ValueError):
    """A per-bin vector does not have one entry per bin."""

    def __init__(self, expected: int, actual: int, source: Optional[str] = None) -> None:
        self.expected = expected
        self.actual = actual
        self.source = source
        where = f" in {source}" if source else ""
        super().__init__(
            f"Target bin count mismatch{where}: expected {expected}, got {actual}"
        )


class TargetParseError(FlowError, ValueError):
    """A line of a target file could not be parsed as a float."""

    def __init__(self, path: str, line: int, content: str) -> None:
        self.path = path
        self.line = line
        self.content = content
        super().__init__(f"{path}:{line}: cannot parse {content!r} as a float")


class CheckpointError(FlowError):
    """A checkpoint file is unreadable or does not have the expected shape."""

    def __init__(self, path: str, field: str, message: str) -> None:
        self.path = path
        self.field = field
        super().__init__(f"{path}: field '{field}': {message}")


class SimulationError(FlowError, RuntimeError):
    """A numerical invariant of the simulation was violated."""

    def __init__(self, particle_id: int, step: int, quantity: str, value: float) -> None:
        self.particle_id = particle_id
        self.step = step
        self.quantity = quantity
        self.value = value
        super().__init__(
            f"invalid {quantity}={value!r} for particle {particle_id} at step {step}"
        )


__all__ = [
    "FlowError",
    "ConfigError",
    "TargetShapeError",
    "TargetParseError",
    "CheckpointError",
    "SimulationError",
]
