# safeguard.py
# Slack safeguarding and damping indicators for the barrier objective.

from __future__ import annotations

import logging
from typing import Tuple

import numpy as np

from .aux import EPS_MACH
from .model import Model

TINY = float(np.finfo(float).tiny)


def safe_slack_floor(mu: float) -> float:
    """Smallest slack value that is left untouched at barrier parameter `mu`."""
    return max(EPS_MACH * min(1.0, mu), TINY)


def calculate_safe_slack(
    slack: np.ndarray,
    bound: np.ndarray,
    mult: np.ndarray,
    mu: float,
    s_move: float,
) -> Tuple[np.ndarray, int]:
    """
    Push slacks that dropped below `safe_slack_floor(mu)` back into the interior.

    A flagged coordinate i moves by

        min(mu / mult_i - slack_i,  s_move * max(1, |bound_i|))

    i.e. towards the central-path value mu / mult_i, but never by more than a
    small fraction of the bound magnitude; the result is never below the floor.
    Non-positive multipliers give no central-path target and the coordinate
    is only lifted to the floor.

    Returns
    -------
    slack, n_adjusted : np.ndarray, int
        `slack` itself when nothing was adjusted, a corrected copy otherwise.
    """
    if slack.size == 0:
        return slack, 0
    s_min = safe_slack_floor(mu)
    bad = ~(slack >= s_min)
    n_bad = int(np.count_nonzero(bad))
    if n_bad == 0:
        return slack, 0

    sl = slack[bad]
    m = mult[bad]
    target = np.where(m > 0, mu / np.where(m > 0, m, 1.0), sl)
    cap = s_move * np.maximum(1.0, np.abs(bound[bad]))
    shift = np.minimum(target - sl, cap)
    shift = np.maximum(shift, s_min - sl)

    out = np.array(slack, dtype=float)
    out[bad] = np.maximum(sl + shift, s_min)
    logging.debug(f"[safe_slack] moved {n_bad} slack(s); min before={float(np.min(sl)):.3e}, floor={s_min:.3e}")
    return out, n_bad


def compute_damping_indicators(model: Model) -> Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
    """
    0/1 vectors in the compressed bound spaces selecting variables with a
    finite bound on one side only:

    - dampind_x_L : entries of x_L whose variable has no upper bound,
    - dampind_x_U : entries of x_U whose variable has no lower bound,
    - dampind_s_L, dampind_s_U : the same for the slacks s.
    """
    hasL, hasU = model.has_x_L(), model.has_x_U()
    hasdL, hasdU = model.has_d_L(), model.has_d_U()

    dampind_x_L = np.asarray(model.Px_L.T @ (~hasU).astype(float)).ravel()
    dampind_x_U = np.asarray(model.Px_U.T @ (~hasL).astype(float)).ravel()
    dampind_s_L = np.asarray(model.Pd_L.T @ (~hasdU).astype(float)).ravel()
    dampind_s_U = np.asarray(model.Pd_U.T @ (~hasdL).astype(float)).ravel()
    for v in (dampind_x_L, dampind_x_U, dampind_s_L, dampind_s_U):
        v.setflags(write=False)
    return dampind_x_L, dampind_x_U, dampind_s_L, dampind_s_U
