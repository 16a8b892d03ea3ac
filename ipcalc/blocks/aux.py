# aux.py
# Shared pieces for the calculated-quantities engine: norm types, the global
# algorithmic options and small numerics helpers.

from __future__ import annotations

# =========================
# Standard library
# =========================
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, Mapping, Optional

# =========================
# Third-party
# =========================
import numpy as np

EPS_MACH = float(np.finfo(float).eps)


# ======================================
# Errors
# ======================================
class InternalError(RuntimeError):
    """Unrecoverable misuse of the engine (uninitialized, wrong shapes, missing input)."""


# ======================================
# Enums
# ======================================
class NormType(Enum):
    """Norms understood by `calc_norm_of_type`."""

    NORM_1 = "1"
    NORM_2 = "2"
    NORM_MAX = "max"

    @classmethod
    def parse(cls, value: "NormType | str | int | float") -> "NormType":
        if isinstance(value, NormType):
            return value
        key = str(value).strip().lower()
        aliases = {"1": "1", "1-norm": "1", "l1": "1",
                   "2": "2", "2-norm": "2", "l2": "2",
                   "max": "max", "inf": "max", "max-norm": "max", "linf": "max"}
        if key not in aliases:
            raise ValueError(f"Unknown norm type: {value!r}")
        return cls(aliases[key])


def calc_norm_of_type(norm_type: NormType, *vecs: np.ndarray) -> float:
    """
    Norm of the stacked vectors `[v_1; v_2; ...]` without materializing the stack.

    Empty vectors contribute nothing; the norm of nothing is 0.
    """
    norm_type = NormType.parse(norm_type)
    if norm_type is NormType.NORM_1:
        return float(sum(float(np.sum(np.abs(v))) for v in vecs))
    if norm_type is NormType.NORM_2:
        return float(np.sqrt(sum(float(np.dot(v, v)) for v in vecs)))
    out = 0.0
    for v in vecs:
        if v.size:
            out = max(out, float(np.max(np.abs(v))))
    return out


# ======================================
# Global configuration
# ======================================
@dataclass(frozen=True)
class QuantitiesConfig:
    """
    Algorithmic parameters of the calculated-quantities engine.

    Notes
    -----
    • constr_viol_normtype : norm used by curr/trial_constraint_violation.
    • s_max   : ceiling in the optimality-error scaling factors s_d, s_c.
    • kappa_d : weight of the linear damping term in the barrier objective (0 disables).
    • s_move  : fraction of max(1, |bound|) a too-small slack may be moved by.
    """

    constr_viol_normtype: NormType = NormType.NORM_1
    s_max: float = 100.0
    kappa_d: float = 1e-5
    s_move: float = EPS_MACH ** 0.75

    def __post_init__(self):
        object.__setattr__(self, "constr_viol_normtype", NormType.parse(self.constr_viol_normtype))
        if not self.s_max > 0:
            raise ValueError(f"s_max must be positive, got {self.s_max}")
        if self.kappa_d < 0:
            raise ValueError(f"kappa_d must be non-negative, got {self.kappa_d}")
        if self.s_move < 0:
            raise ValueError(f"s_move must be non-negative, got {self.s_move}")

    # option name -> field name
    _OPTION_NAMES = {
        "constr_viol_normtype": "constr_viol_normtype",
        "s_max": "s_max",
        "kappa_d": "kappa_d",
        "slack_move": "s_move",
    }

    @classmethod
    def from_options(cls, options: Mapping[str, object], prefix: str = "") -> "QuantitiesConfig":
        """
        Build a config from a flat option mapping.

        A key `prefix + name` wins over the bare `name`, so several engines
        (e.g. the restoration phase) can share one option dict.
        """
        kw: Dict[str, object] = {}
        for opt, attr in cls._OPTION_NAMES.items():
            if prefix and (prefix + opt) in options:
                kw[attr] = options[prefix + opt]
            elif opt in options:
                kw[attr] = options[opt]
        for attr in ("s_max", "kappa_d", "s_move"):
            if attr in kw:
                kw[attr] = float(kw[attr])
        unknown = [k for k in options if _strip(k, prefix) not in cls._OPTION_NAMES]
        if unknown:
            logging.debug(f"[QuantitiesConfig] ignoring options: {sorted(unknown)}")
        return cls(**kw)


def _strip(key: str, prefix: str) -> str:
    return key[len(prefix):] if prefix and key.startswith(prefix) else key


# ======================================
# Small numerics
# ======================================
def _as_float_array(a) -> np.ndarray:
    return np.asarray(a, dtype=float)


def frozen(a) -> np.ndarray:
    """Fresh 1-D float copy of `a`, marked read-only."""
    out = np.array(a, dtype=float).ravel()
    out.setflags(write=False)
    return out


def check_dim(name: str, v: Optional[np.ndarray], dim: int) -> np.ndarray:
    if v is None:
        raise InternalError(f"{name} is required but None was given")
    v = _as_float_array(v)
    if v.ndim != 1 or v.shape[0] != dim:
        raise InternalError(f"{name} has shape {v.shape}, expected ({dim},)")
    return v


def asum(vecs: Iterable[np.ndarray]) -> float:
    return float(sum(float(np.sum(np.abs(v))) for v in vecs))
