# toy.py
# Bound-constrained quadratic  min sum(x_i^2)  s.t.  x >= 0, no general constraints.

from __future__ import annotations

import numpy as np

from ipcalc.blocks.model import Model


def toy_bound_model(n: int = 2) -> Model:
    return Model(
        lambda x: float(np.dot(x, x)),
        lambda x: 2.0 * np.asarray(x, dtype=float),
        n=n,
        hess=lambda x, y_c, y_d: 2.0 * np.eye(n),
        lb=np.zeros(n),
    )
