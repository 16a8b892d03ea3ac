# model.py
# NLP model collaborator: problem functions, bounds and bound-selection maps.

from __future__ import annotations

from typing import Callable, Optional, Tuple

import numpy as np
import scipy.sparse as sp

from .aux import InternalError, _as_float_array


def expansion_matrix(mask: np.ndarray) -> sp.csr_matrix:
    """
    Sparse 0/1 matrix P (full × compressed) for the True entries of `mask`.

    `P.T @ v` picks the selected coordinates of a full vector, `P @ w` scatters
    a compressed vector back with zeros elsewhere.
    """
    mask = np.asarray(mask, dtype=bool).ravel()
    idx = np.flatnonzero(mask)
    k = idx.size
    return sp.csr_matrix((np.ones(k), (idx, np.arange(k))), shape=(mask.size, k))


def _bounds(lo, hi, dim: int, what: str) -> Tuple[np.ndarray, np.ndarray]:
    lo = np.full(dim, -np.inf) if lo is None or np.size(lo) == 0 else _as_float_array(lo).ravel()
    hi = np.full(dim, +np.inf) if hi is None or np.size(hi) == 0 else _as_float_array(hi).ravel()
    if lo.size != dim or hi.size != dim:
        raise ValueError(f"{what} bounds must have length {dim}, got {lo.size} and {hi.size}")
    if np.any(lo > hi):
        raise ValueError(f"{what} lower bound exceeds upper bound")
    return lo, hi


class Model:
    """
    Problem functions of

        min f(x)  s.t.  c(x) = 0,  d_L <= d(x) <= d_U,  x_L <= x <= x_U

    with the usual interior-point reformulation d(x) - s = 0, d_L <= s <= d_U.

    Only the finite bounds are stored (compressed vectors `x_L, x_U, d_L,
    d_U`); the matrices `Px_L, Px_U, Pd_L, Pd_U` map between compressed and
    full dimension. Every evaluation is counted so callers can see how often
    the functions were really called.
    """

    __slots__ = (
        "n", "m_c", "m_d",
        "_f", "_grad_f", "_c", "_d", "_jac_c", "_jac_d", "_hess",
        "x_L", "x_U", "d_L", "d_U",
        "Px_L", "Px_U", "Pd_L", "Pd_U",
        "f_evals", "grad_f_evals", "c_evals", "d_evals",
        "jac_c_evals", "jac_d_evals", "h_evals",
    )

    def __init__(
        self,
        f: Callable,
        grad_f: Callable,
        n: int,
        c: Optional[Callable] = None,
        jac_c: Optional[Callable] = None,
        d: Optional[Callable] = None,
        jac_d: Optional[Callable] = None,
        hess: Optional[Callable] = None,
        *,
        m_c: int = 0,
        m_d: int = 0,
        lb: Optional[np.ndarray] = None,
        ub: Optional[np.ndarray] = None,
        dl: Optional[np.ndarray] = None,
        du: Optional[np.ndarray] = None,
    ):
        if n is None or n <= 0:
            raise ValueError(f"Number of variables n must be positive, got {n}")
        if not callable(f) or not callable(grad_f):
            raise ValueError("Objective f and its gradient must be callable")
        if m_c > 0 and not (callable(c) and callable(jac_c)):
            raise ValueError("m_c > 0 requires callables c and jac_c")
        if m_d > 0 and not (callable(d) and callable(jac_d)):
            raise ValueError("m_d > 0 requires callables d and jac_d")

        self.n, self.m_c, self.m_d = int(n), int(m_c), int(m_d)
        self._f, self._grad_f = f, grad_f
        self._c, self._jac_c = c, jac_c
        self._d, self._jac_d = d, jac_d
        self._hess = hess

        lb, ub = _bounds(lb, ub, self.n, "x")
        dl, du = _bounds(dl, du, self.m_d, "d")
        hasL, hasU = np.isfinite(lb), np.isfinite(ub)
        hasdL, hasdU = np.isfinite(dl), np.isfinite(du)

        self.x_L, self.x_U = lb[hasL], ub[hasU]
        self.d_L, self.d_U = dl[hasdL], du[hasdU]
        self.Px_L, self.Px_U = expansion_matrix(hasL), expansion_matrix(hasU)
        self.Pd_L, self.Pd_U = expansion_matrix(hasdL), expansion_matrix(hasdU)
        for v in (self.x_L, self.x_U, self.d_L, self.d_U):
            v.setflags(write=False)

        self.reset_counters()

    def reset_counters(self) -> None:
        self.f_evals = self.grad_f_evals = 0
        self.c_evals = self.d_evals = 0
        self.jac_c_evals = self.jac_d_evals = 0
        self.h_evals = 0

    # ---------- bound masks (full dimension) ----------
    def has_x_L(self) -> np.ndarray:
        return np.asarray(self.Px_L.sum(axis=1)).ravel() > 0

    def has_x_U(self) -> np.ndarray:
        return np.asarray(self.Px_U.sum(axis=1)).ravel() > 0

    def has_d_L(self) -> np.ndarray:
        return np.asarray(self.Pd_L.sum(axis=1)).ravel() > 0

    def has_d_U(self) -> np.ndarray:
        return np.asarray(self.Pd_U.sum(axis=1)).ravel() > 0

    # ---------- evaluations ----------
    def objective(self, x: np.ndarray) -> float:
        self.f_evals += 1
        return float(self._f(x))

    def objective_gradient(self, x: np.ndarray) -> np.ndarray:
        self.grad_f_evals += 1
        return _as_float_array(self._grad_f(x)).ravel()

    def constraints_c(self, x: np.ndarray) -> np.ndarray:
        if self.m_c == 0:
            return np.zeros(0)
        self.c_evals += 1
        return _as_float_array(self._c(x)).ravel()

    def constraints_d(self, x: np.ndarray) -> np.ndarray:
        if self.m_d == 0:
            return np.zeros(0)
        self.d_evals += 1
        return _as_float_array(self._d(x)).ravel()

    def jacobian_c(self, x: np.ndarray):
        if self.m_c == 0:
            return sp.csr_matrix((0, self.n))
        self.jac_c_evals += 1
        return self._jac_c(x)

    def jacobian_d(self, x: np.ndarray):
        if self.m_d == 0:
            return sp.csr_matrix((0, self.n))
        self.jac_d_evals += 1
        return self._jac_d(x)

    def exact_hessian(self, x: np.ndarray, y_c: np.ndarray, y_d: np.ndarray):
        """Hessian of f(x) + y_c^T c(x) + y_d^T d(x)."""
        if self._hess is None:
            raise InternalError("Model was built without a Hessian callable")
        self.h_evals += 1
        return self._hess(x, y_c, y_d)
