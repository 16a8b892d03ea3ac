# state.py
# Iterates and the optimizer state that hands them to the engine.

from __future__ import annotations

import dataclasses
import itertools
import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np

from .aux import InternalError, check_dim, frozen
from .model import Model

_TAGS = itertools.count(1)

_FIELDS = ("x", "s", "y_c", "y_d", "z_L", "z_U", "v_L", "v_U")
_PRIMAL = ("x", "s")


# ------------------ iterate ------------------
@dataclass(frozen=True, eq=False)
class Iterate:
    """
    Immutable primal-dual point.

    Every construction draws a fresh generation `tag`; caches compare iterates
    by tag, never by value. Component arrays are read-only and may be shared
    between iterates (see `replace`).
    """

    x: np.ndarray
    s: np.ndarray
    y_c: np.ndarray
    y_d: np.ndarray
    z_L: np.ndarray
    z_U: np.ndarray
    v_L: np.ndarray
    v_U: np.ndarray
    tag: int = dataclasses.field(init=False)

    def __post_init__(self):
        for name in _FIELDS:
            v = getattr(self, name)
            if not (isinstance(v, np.ndarray) and not v.flags.writeable and v.dtype == float and v.ndim == 1):
                object.__setattr__(self, name, frozen(v))
        object.__setattr__(self, "tag", next(_TAGS))

    @classmethod
    def zeros(cls, model: Model) -> "Iterate":
        return cls(
            x=np.zeros(model.n), s=np.zeros(model.m_d),
            y_c=np.zeros(model.m_c), y_d=np.zeros(model.m_d),
            z_L=np.zeros(model.x_L.size), z_U=np.zeros(model.x_U.size),
            v_L=np.zeros(model.d_L.size), v_U=np.zeros(model.d_U.size),
        )

    def replace(self, **changes) -> "Iterate":
        """New iterate (new tag) sharing every component not given in `changes`."""
        return dataclasses.replace(self, **changes)

    def axpy(self, alpha_primal: float, step: "Iterate", alpha_dual: Optional[float] = None) -> "Iterate":
        """`self + alpha*step`, with a separate step length for the multipliers if given."""
        alpha_dual = alpha_primal if alpha_dual is None else alpha_dual
        changes = {}
        for name in _FIELDS:
            a = alpha_primal if name in _PRIMAL else alpha_dual
            changes[name] = getattr(self, name) + a * getattr(step, name)
        return self.replace(**changes)

    def check_dims(self, model: Model, what: str = "iterate") -> None:
        dims = dict(
            x=model.n, s=model.m_d, y_c=model.m_c, y_d=model.m_d,
            z_L=model.x_L.size, z_U=model.x_U.size, v_L=model.d_L.size, v_U=model.d_U.size,
        )
        for name, dim in dims.items():
            check_dim(f"{what}.{name}", getattr(self, name), dim)


# ------------------ optimizer state ------------------
class OptimizerState:
    """
    Holder of the live iterates: current point, trial point, search direction
    (`delta`, itself an `Iterate`) and the barrier parameter.

    There is at most one iterate per role. Accepting the trial point makes it
    the current one and drops the trial; old iterates are never kept.
    """

    def __init__(self, model: Model, curr: Iterate, mu: float = 0.1):
        curr.check_dims(model, "curr")
        if not mu >= 0:
            raise ValueError(f"mu must be non-negative, got {mu}")
        self.model = model
        self._curr = curr
        self._trial: Optional[Iterate] = None
        self._delta: Optional[Iterate] = None
        self._mu = float(mu)
        self.iter_count = 0

    @property
    def curr(self) -> Iterate:
        return self._curr

    @property
    def trial(self) -> Optional[Iterate]:
        return self._trial

    @property
    def delta(self) -> Optional[Iterate]:
        return self._delta

    @property
    def mu(self) -> float:
        return self._mu

    def set_mu(self, mu: float) -> None:
        if not mu >= 0:
            raise ValueError(f"mu must be non-negative, got {mu}")
        self._mu = float(mu)

    def set_trial(self, trial: Iterate) -> None:
        trial.check_dims(self.model, "trial")
        self._trial = trial

    def set_delta(self, delta: Iterate) -> None:
        delta.check_dims(self.model, "delta")
        self._delta = delta

    def set_trial_from_step(self, alpha_primal: float, alpha_dual: Optional[float] = None) -> Iterate:
        """Trial point `curr + alpha*delta`."""
        if self._delta is None:
            raise InternalError("set_trial_from_step called before a step was set")
        self._trial = self._curr.axpy(alpha_primal, self._delta, alpha_dual)
        return self._trial

    def accept_trial_point(self) -> None:
        if self._trial is None:
            raise InternalError("accept_trial_point called without a trial point")
        logging.debug(f"[OptimizerState] accept trial tag={self._trial.tag} (was curr tag={self._curr.tag})")
        self._curr = self._trial
        self._trial = None
        self._delta = None
        self.iter_count += 1
