"""
Surrogate activations approximating the Heaviside spike function.

The router resolves the configured name to a ``Surrogate`` member once, at
construction time; callers never dispatch on the raw string.
"""

from __future__ import annotations

from enum import Enum

import numpy as np

from .errors import ConfigError


class Surrogate(str, Enum):
    FAST_SIGMOID = "fast_sigmoid"
    TANH_CLIP = "tanh_clip"

    @classmethod
    def from_name(cls, name: "str | Surrogate") -> "Surrogate":
        if isinstance(name, Surrogate):
            return name
        try:
            return cls(name)
        except ValueError:
            valid = ", ".join(member.value for member in cls)
            raise ConfigError("lif.surrogate", f"unknown surrogate {name!r} (expected one of {valid})") from None

    def forward(self, x, beta: float = 1.0):
        """Activation in [0, 1]; accepts scalars or arrays."""
        x = np.asarray(x, dtype=np.float64)
        if self is Surrogate.FAST_SIGMOID:
            out = 1.0 / (1.0 + np.abs(beta * x))
        else:
            out = np.maximum(0.0, np.tanh(beta * x))
        return out.item() if out.ndim == 0 else out

    def backward(self, x, beta: float = 1.0):
        """Derivative of :meth:`forward` with respect to ``x``."""
        x = np.asarray(x, dtype=np.float64)
        if self is Surrogate.FAST_SIGMOID:
            denom = 1.0 + np.abs(beta * x)
            out = beta / (denom * denom)
        else:
            bx = beta * x
            sech = 1.0 / np.cosh(bx)
            out = np.where(np.tanh(bx) > 0.0, beta * sech * sech, 0.0)
        return out.item() if out.ndim == 0 else out


__all__ = ["Surrogate"]
