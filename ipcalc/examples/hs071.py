# hs071.py
# Hock-Schittkowski problem 71:
#   min  x1*x4*(x1 + x2 + x3) + x3
#   s.t. x1*x2*x3*x4 >= 25
#        x1^2 + x2^2 + x3^2 + x4^2 = 40
#        1 <= x <= 5
# Optimum x* ~ (1.00000000, 4.74299963, 3.82114998, 1.37940829), f* ~ 17.0140173.

from __future__ import annotations

import numpy as np
import scipy.sparse as sp

from ipcalc.blocks.model import Model

X0 = np.array([1.0, 5.0, 5.0, 1.0])


def f(x: np.ndarray) -> float:
    x1, x2, x3, x4 = x
    return x1 * x4 * (x1 + x2 + x3) + x3


def grad_f(x: np.ndarray) -> np.ndarray:
    x1, x2, x3, x4 = x
    return np.array([
        x4 * (2.0 * x1 + x2 + x3),
        x1 * x4,
        x1 * x4 + 1.0,
        x1 * (x1 + x2 + x3),
    ])


def c(x: np.ndarray) -> np.ndarray:
    return np.array([np.dot(x, x) - 40.0])


def jac_c(x: np.ndarray) -> sp.csr_matrix:
    return sp.csr_matrix(2.0 * x.reshape(1, -1))


def d(x: np.ndarray) -> np.ndarray:
    return np.array([np.prod(x)])


def jac_d(x: np.ndarray) -> sp.csr_matrix:
    x1, x2, x3, x4 = x
    return sp.csr_matrix(np.array([[x2 * x3 * x4, x1 * x3 * x4, x1 * x2 * x4, x1 * x2 * x3]]))


def hess(x: np.ndarray, y_c: np.ndarray, y_d: np.ndarray) -> np.ndarray:
    """Dense Hessian of f + y_c*c + y_d*d."""
    x1, x2, x3, x4 = x
    H = np.array([
        [2.0 * x4, x4, x4, 2.0 * x1 + x2 + x3],
        [x4, 0.0, 0.0, x1],
        [x4, 0.0, 0.0, x1],
        [2.0 * x1 + x2 + x3, x1, x1, 0.0],
    ])
    H += 2.0 * y_c[0] * np.eye(4)

    Hd = np.zeros((4, 4))
    for i in range(4):
        for j in range(4):
            if i != j:
                Hd[i, j] = np.prod([x[k] for k in range(4) if k not in (i, j)])
    return H + y_d[0] * Hd


def hs071_model() -> Model:
    return Model(
        f, grad_f, n=4,
        c=c, jac_c=jac_c, d=d, jac_d=jac_d, hess=hess,
        m_c=1, m_d=1,
        lb=np.full(4, 1.0), ub=np.full(4, 5.0),
        dl=np.array([25.0]), du=None,
    )
