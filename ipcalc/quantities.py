# quantities.py
# Calculated quantities of a primal-dual interior-point method.
# - slacks (with safeguarding), barrier objective and its gradients
# - constraint residuals, Jacobian products, constraint violation
# - complementarity, infeasibilities, scaled optimality errors, centrality
# - fraction-to-the-boundary step sizes and primal-dual sigma vectors
# Every quantity is memoized on the identity of the inputs it was computed from.
from __future__ import annotations

import functools
import logging
from typing import Callable, Dict, Mapping, Optional, Sequence, Tuple

import numpy as np
import scipy.sparse as sp

from .blocks.aux import (
    InternalError,
    NormType,
    QuantitiesConfig,
    asum,
    calc_norm_of_type,
    check_dim,
    frozen,
)
from .blocks.cache import CachedResults
from .blocks.model import Model
from .blocks.safeguard import calculate_safe_slack, compute_damping_indicators
from .blocks.state import Iterate, OptimizerState

EPS_DIV = 1e-16

# ------------------ cache sizes ------------------
# Quantities asked for with caller-supplied vectors keep two entries so that
# alternating requests (e.g. y_d and a step) do not evict each other.
_CACHE_SIZES: Dict[str, int] = dict(
    curr_slack_x_L=1, curr_slack_x_U=1, curr_slack_s_L=1, curr_slack_s_U=1,
    trial_slack_x_L=1, trial_slack_x_U=1, trial_slack_s_L=1, trial_slack_s_U=1,
    curr_f=1, trial_f=1, curr_grad_f=1,
    curr_barrier_obj=1, trial_barrier_obj=1,
    curr_grad_barrier_obj_x=1, curr_grad_barrier_obj_s=1,
    curr_c=1, trial_c=1, curr_d=1, trial_d=1, curr_d_minus_s=1, trial_d_minus_s=1,
    curr_jac_c=1, curr_jac_d=1,
    curr_jac_cT_times_vec=2, curr_jac_dT_times_vec=2,
    curr_jac_c_times_vec=1, curr_jac_d_times_vec=1,
    curr_constraint_violation=1, trial_constraint_violation=1,
    curr_exact_hessian=1,
    curr_grad_lag_x=1, curr_grad_lag_s=1,
    curr_compl_x_L=1, curr_compl_x_U=1, curr_compl_s_L=1, curr_compl_s_U=1,
    curr_relaxed_compl_x_L=1, curr_relaxed_compl_x_U=1,
    curr_relaxed_compl_s_L=1, curr_relaxed_compl_s_U=1,
    curr_primal_infeasibility=3, trial_primal_infeasibility=3,
    curr_dual_infeasibility=3, curr_complementarity=6,
    curr_centrality_measure=1, curr_nlp_error=1, curr_barrier_error=1,
    curr_primal_dual_error=1, curr_relaxed_primal_dual_error=1,
    primal_frac_to_the_bound=5, dual_frac_to_the_bound=5, slack_frac_to_the_bound=5,
    curr_sigma_x=1, curr_sigma_s=1,
    curr_avrg_compl=1, trial_avrg_compl=1, curr_gradBarrTDelta=1,
)

# family -> (expansion matrix, compressed bound, primal component, multiplier, +1 lower / -1 upper)
_SLACK_FAMILIES: Dict[str, Tuple[str, str, str, str, int]] = {
    "x_L": ("Px_L", "x_L", "x", "z_L", +1),
    "x_U": ("Px_U", "x_U", "x", "z_U", -1),
    "s_L": ("Pd_L", "d_L", "s", "v_L", +1),
    "s_U": ("Pd_U", "d_U", "s", "v_U", -1),
}


# ------------------ tiny numerics ------------------
def _max_step_ftb(z: np.ndarray, dz: np.ndarray, tau: float) -> float:
    """Largest alpha in (0, 1] with z + alpha*dz >= (1 - tau)*z."""
    if z.size == 0 or dz.size == 0:
        return 1.0
    neg = dz < 0
    if not np.any(neg):
        return 1.0
    return float(min(1.0, tau * np.min(-z[neg] / np.minimum(dz[neg], -EPS_DIV))))


def _select(P, v: np.ndarray) -> np.ndarray:
    return np.asarray(P.T @ v).ravel()


def _scatter(P, v: np.ndarray) -> np.ndarray:
    return np.asarray(P @ v).ravel()


def calc_centrality_measure(
    compl_x_L: np.ndarray,
    compl_x_U: np.ndarray,
    compl_s_L: np.ndarray,
    compl_s_U: np.ndarray,
) -> float:
    """
    xi = min(compl) / mean(compl), capped at 1.

    Close to 1 when all complementarity products are alike (well centered),
    close to 0 when one pair is much nearer to zero than the rest. With no
    complementarity pairs at all the point is taken as perfectly centered.
    """
    parts = [v for v in (compl_x_L, compl_x_U, compl_s_L, compl_s_U) if v.size]
    if not parts:
        return 1.0
    n_compl = sum(v.size for v in parts)
    min_compl = min(float(np.min(v)) for v in parts)
    avrg_compl = sum(float(np.sum(v)) for v in parts) / n_compl
    if avrg_compl <= 0.0:
        return 0.0 if min_compl < avrg_compl else 1.0
    return float(min(1.0, min_compl / avrg_compl))


def compute_optimality_error_scaling(
    y_c: np.ndarray, y_d: np.ndarray,
    z_L: np.ndarray, z_U: np.ndarray,
    v_L: np.ndarray, v_U: np.ndarray,
    s_max: float,
) -> Tuple[float, float]:
    """
    Scaling factors (s_d, s_c) for dual infeasibility and complementarity.

    Both are the average absolute multiplier divided by s_max, floored at 1,
    so large multipliers only relax the error once they exceed s_max.
    """
    n_all = sum(v.size for v in (y_c, y_d, z_L, z_U, v_L, v_U))
    if n_all == 0:
        s_d = 1.0
    else:
        s_d = max(s_max, asum((y_c, y_d, z_L, z_U, v_L, v_U)) / n_all) / s_max

    n_bnd = sum(v.size for v in (z_L, z_U, v_L, v_U))
    if n_bnd == 0:
        s_c = 1.0
    else:
        s_c = max(s_max, asum((z_L, z_U, v_L, v_U)) / n_bnd) / s_max
    return float(s_d), float(s_c)


def _requires_init(fn: Callable) -> Callable:
    @functools.wraps(fn)
    def wrapper(self, *args, **kwargs):
        if not self._initialized:
            raise InternalError(f"{fn.__name__} called before CalculatedQuantities.initialize()")
        return fn(self, *args, **kwargs)
    return wrapper


# ------------------ engine ------------------
class CalculatedQuantities:
    """
    Derived quantities of the interior-point iteration, computed on demand.

    Parameters
    ----------
    model : Model
        Problem functions, bounds and bound-selection matrices.
    state : OptimizerState
        Current / trial iterates, search direction and barrier parameter.

    Notes
    -----
    `initialize` must be called before any accessor. Every accessor looks up
    its own `CachedResults` keyed on the exact input objects (iterate
    components, caller vectors) plus scalar parameters (mu, tau, norm type),
    so repeated requests within an iteration evaluate the problem functions
    once, and requests after the optimizer moved on recompute. Current-point
    and trial-point versions of the same quantity consult each other's cache,
    so accepting a trial point does not re-evaluate anything at it.

    Returned vectors are read-only and may be shared between callers.
    """

    def __init__(self, model: Model, state: OptimizerState):
        if model is None or state is None:
            raise InternalError("CalculatedQuantities needs a model and an optimizer state")
        self.model = model
        self.state = state
        self.cfg: Optional[QuantitiesConfig] = None
        self._initialized = False
        self._caches: Dict[str, CachedResults] = {
            name: CachedResults(size, name) for name, size in _CACHE_SIZES.items()
        }
        self._num_adjusted: Dict[str, int] = dict.fromkeys(_SLACK_FAMILIES, 0)
        self.dampind_x_L = self.dampind_x_U = None
        self.dampind_s_L = self.dampind_s_U = None

    # ---------- init & cfg ----------
    def initialize(
        self,
        config: Optional[QuantitiesConfig | Mapping[str, object]] = None,
        prefix: str = "",
    ) -> bool:
        """Take the algorithmic options (a config or a flat option dict) and reset all caches."""
        if config is None:
            config = QuantitiesConfig()
        elif not isinstance(config, QuantitiesConfig):
            config = QuantitiesConfig.from_options(config, prefix)
        self.cfg = config

        for cache in self._caches.values():
            cache.clear()
        self.reset_adjusted_trial_slacks()
        (self.dampind_x_L, self.dampind_x_U,
         self.dampind_s_L, self.dampind_s_U) = compute_damping_indicators(self.model)

        self._initialized = True
        logging.info(
            f"[CalculatedQuantities] initialized: constr_viol_normtype={config.constr_viol_normtype.value}, "
            f"s_max={config.s_max:g}, kappa_d={config.kappa_d:g}, s_move={config.s_move:g}"
        )
        return True

    def cache_stats(self) -> Dict[str, Tuple[int, int]]:
        """(hits, misses) per quantity."""
        return {name: (c.hits, c.misses) for name, c in self._caches.items()}

    # ---------- helpers ----------
    def _curr(self) -> Iterate:
        return self.state.curr

    def _trial(self) -> Iterate:
        trial = self.state.trial
        if trial is None:
            raise InternalError("trial quantity requested but the optimizer state has no trial point")
        return trial

    def _delta(self) -> Iterate:
        delta = self.state.delta
        if delta is None:
            raise InternalError("step-based quantity requested but the optimizer state has no step")
        return delta

    def _cached(self, name: str, deps: Sequence, compute: Callable, scalars: Sequence = ()):
        return self._caches[name].get_or_compute(deps, compute, scalars)

    def _shared(self, name: str, other: str, deps: Sequence, compute: Callable, scalars: Sequence = ()):
        """Like `_cached`, but reuse a result of the sibling curr/trial cache for identical inputs."""
        def fetch():
            found, value = self._caches[other].get_cached(deps, scalars)
            return value if found else compute()
        return self._caches[name].get_or_compute(deps, fetch, scalars)

    @staticmethod
    def _check_tau(tau: float) -> float:
        if not 0.0 < tau <= 1.0:
            raise InternalError(f"fraction-to-the-boundary tau must lie in (0, 1], got {tau}")
        return float(tau)

    # =====================================================================
    # Slacks
    # =====================================================================
    def _compute_slack(self, family: str, it: Iterate) -> np.ndarray:
        P_name, bound_name, point, mult, side = _SLACK_FAMILIES[family]
        bound = getattr(self.model, bound_name)
        proj = _select(getattr(self.model, P_name), getattr(it, point))
        slack = proj - bound if side > 0 else bound - proj
        slack, n_adj = calculate_safe_slack(slack, bound, getattr(it, mult), self.state.mu, self.cfg.s_move)
        if n_adj:
            self._num_adjusted[family] += n_adj
            logging.debug(f"[CalculatedQuantities] adjusted {n_adj} slack(s) for {family} at iterate tag={it.tag}")
        return frozen(slack)

    def _slack(self, family: str, role: str) -> np.ndarray:
        it = self._curr() if role == "curr" else self._trial()
        other = "trial" if role == "curr" else "curr"
        point = getattr(it, _SLACK_FAMILIES[family][2])
        return self._shared(
            f"{role}_slack_{family}", f"{other}_slack_{family}", (point,),
            lambda: self._compute_slack(family, it),
        )

    @_requires_init
    def curr_slack_x_L(self) -> np.ndarray:
        return self._slack("x_L", "curr")

    @_requires_init
    def curr_slack_x_U(self) -> np.ndarray:
        return self._slack("x_U", "curr")

    @_requires_init
    def curr_slack_s_L(self) -> np.ndarray:
        return self._slack("s_L", "curr")

    @_requires_init
    def curr_slack_s_U(self) -> np.ndarray:
        return self._slack("s_U", "curr")

    @_requires_init
    def trial_slack_x_L(self) -> np.ndarray:
        return self._slack("x_L", "trial")

    @_requires_init
    def trial_slack_x_U(self) -> np.ndarray:
        return self._slack("x_U", "trial")

    @_requires_init
    def trial_slack_s_L(self) -> np.ndarray:
        return self._slack("s_L", "trial")

    @_requires_init
    def trial_slack_s_U(self) -> np.ndarray:
        return self._slack("s_U", "trial")

    def adjusted_trial_slacks(self) -> int:
        """Number of slack entries moved by the safeguard since the last reset."""
        return int(sum(self._num_adjusted.values()))

    def adjusted_slacks(self) -> Dict[str, int]:
        return dict(self._num_adjusted)

    def reset_adjusted_trial_slacks(self) -> None:
        for k in self._num_adjusted:
            self._num_adjusted[k] = 0

    # =====================================================================
    # Objective
    # =====================================================================
    @_requires_init
    def curr_f(self) -> float:
        x = self._curr().x
        return self._shared("curr_f", "trial_f", (x,), lambda: self.model.objective(x))

    @_requires_init
    def trial_f(self) -> float:
        x = self._trial().x
        return self._shared("trial_f", "curr_f", (x,), lambda: self.model.objective(x))

    @_requires_init
    def curr_grad_f(self) -> np.ndarray:
        x = self._curr().x
        return self._cached("curr_grad_f", (x,), lambda: frozen(self.model.objective_gradient(x)))

    # =====================================================================
    # Barrier objective
    # =====================================================================
    def _calc_barrier_term(
        self,
        mu: float,
        slack_x_L: np.ndarray,
        slack_x_U: np.ndarray,
        slack_s_L: np.ndarray,
        slack_s_U: np.ndarray,
    ) -> float:
        term = 0.0
        for slack in (slack_x_L, slack_x_U, slack_s_L, slack_s_U):
            term -= float(np.sum(np.log(slack)))
        term *= mu

        kappa_d = self.cfg.kappa_d
        if kappa_d > 0:
            damping = (
                float(self.dampind_x_L @ slack_x_L) + float(self.dampind_x_U @ slack_x_U)
                + float(self.dampind_s_L @ slack_s_L) + float(self.dampind_s_U @ slack_s_U)
            )
            term += kappa_d * mu * damping
        return term

    @_requires_init
    def curr_barrier_obj(self) -> float:
        it, mu = self._curr(), self.state.mu

        def compute():
            return self.curr_f() + self._calc_barrier_term(
                mu, self.curr_slack_x_L(), self.curr_slack_x_U(),
                self.curr_slack_s_L(), self.curr_slack_s_U(),
            )

        return self._shared("curr_barrier_obj", "trial_barrier_obj", (it.x, it.s), compute, (mu,))

    @_requires_init
    def trial_barrier_obj(self) -> float:
        it, mu = self._trial(), self.state.mu

        def compute():
            return self.trial_f() + self._calc_barrier_term(
                mu, self.trial_slack_x_L(), self.trial_slack_x_U(),
                self.trial_slack_s_L(), self.trial_slack_s_U(),
            )

        return self._shared("trial_barrier_obj", "curr_barrier_obj", (it.x, it.s), compute, (mu,))

    @_requires_init
    def curr_grad_barrier_obj_x(self) -> np.ndarray:
        it, mu = self._curr(), self.state.mu
        m = self.model

        def compute():
            g = np.array(self.curr_grad_f())
            g -= mu * _scatter(m.Px_L, 1.0 / self.curr_slack_x_L())
            g += mu * _scatter(m.Px_U, 1.0 / self.curr_slack_x_U())
            if self.cfg.kappa_d > 0:
                g += self.cfg.kappa_d * mu * (_scatter(m.Px_L, self.dampind_x_L) - _scatter(m.Px_U, self.dampind_x_U))
            return frozen(g)

        return self._cached("curr_grad_barrier_obj_x", (it.x,), compute, (mu,))

    @_requires_init
    def curr_grad_barrier_obj_s(self) -> np.ndarray:
        it, mu = self._curr(), self.state.mu
        m = self.model

        def compute():
            g = -mu * _scatter(m.Pd_L, 1.0 / self.curr_slack_s_L())
            g += mu * _scatter(m.Pd_U, 1.0 / self.curr_slack_s_U())
            if self.cfg.kappa_d > 0:
                g += self.cfg.kappa_d * mu * (_scatter(m.Pd_L, self.dampind_s_L) - _scatter(m.Pd_U, self.dampind_s_U))
            return frozen(g)

        return self._cached("curr_grad_barrier_obj_s", (it.s,), compute, (mu,))

    @_requires_init
    def curr_gradBarrTDelta(self) -> float:
        """Directional derivative of the barrier objective along the current step."""
        it, delta, mu = self._curr(), self._delta(), self.state.mu

        def compute():
            return float(self.curr_grad_barrier_obj_x() @ delta.x + self.curr_grad_barrier_obj_s() @ delta.s)

        return self._cached("curr_gradBarrTDelta", (it.x, it.s, delta.x, delta.s), compute, (mu,))

    # =====================================================================
    # Constraints
    # =====================================================================
    @_requires_init
    def curr_c(self) -> np.ndarray:
        x = self._curr().x
        return self._shared("curr_c", "trial_c", (x,), lambda: frozen(self.model.constraints_c(x)))

    @_requires_init
    def trial_c(self) -> np.ndarray:
        x = self._trial().x
        return self._shared("trial_c", "curr_c", (x,), lambda: frozen(self.model.constraints_c(x)))

    @_requires_init
    def curr_d(self) -> np.ndarray:
        x = self._curr().x
        return self._shared("curr_d", "trial_d", (x,), lambda: frozen(self.model.constraints_d(x)))

    @_requires_init
    def trial_d(self) -> np.ndarray:
        x = self._trial().x
        return self._shared("trial_d", "curr_d", (x,), lambda: frozen(self.model.constraints_d(x)))

    @_requires_init
    def curr_d_minus_s(self) -> np.ndarray:
        it = self._curr()
        return self._shared("curr_d_minus_s", "trial_d_minus_s", (it.x, it.s),
                            lambda: frozen(self.curr_d() - it.s))

    @_requires_init
    def trial_d_minus_s(self) -> np.ndarray:
        it = self._trial()
        return self._shared("trial_d_minus_s", "curr_d_minus_s", (it.x, it.s),
                            lambda: frozen(self.trial_d() - it.s))

    @_requires_init
    def curr_jac_c(self):
        x = self._curr().x
        return self._cached("curr_jac_c", (x,), lambda: self.model.jacobian_c(x))

    @_requires_init
    def curr_jac_d(self):
        x = self._curr().x
        return self._cached("curr_jac_d", (x,), lambda: self.model.jacobian_d(x))

    @_requires_init
    def curr_jac_cT_times_vec(self, vec: np.ndarray) -> np.ndarray:
        vec = check_dim("vec", vec, self.model.m_c)
        x = self._curr().x
        return self._cached("curr_jac_cT_times_vec", (x, vec),
                            lambda: frozen(_select(self.curr_jac_c(), vec)))

    @_requires_init
    def curr_jac_dT_times_vec(self, vec: np.ndarray) -> np.ndarray:
        vec = check_dim("vec", vec, self.model.m_d)
        x = self._curr().x
        return self._cached("curr_jac_dT_times_vec", (x, vec),
                            lambda: frozen(_select(self.curr_jac_d(), vec)))

    @_requires_init
    def curr_jac_cT_times_curr_y_c(self) -> np.ndarray:
        return self.curr_jac_cT_times_vec(self._curr().y_c)

    @_requires_init
    def curr_jac_dT_times_curr_y_d(self) -> np.ndarray:
        return self.curr_jac_dT_times_vec(self._curr().y_d)

    @_requires_init
    def curr_jac_c_times_vec(self, vec: np.ndarray) -> np.ndarray:
        vec = check_dim("vec", vec, self.model.n)
        x = self._curr().x
        return self._cached("curr_jac_c_times_vec", (x, vec),
                            lambda: frozen(_scatter(self.curr_jac_c(), vec)))

    @_requires_init
    def curr_jac_d_times_vec(self, vec: np.ndarray) -> np.ndarray:
        vec = check_dim("vec", vec, self.model.n)
        x = self._curr().x
        return self._cached("curr_jac_d_times_vec", (x, vec),
                            lambda: frozen(_scatter(self.curr_jac_d(), vec)))

    @_requires_init
    def curr_constraint_violation(self) -> float:
        """Constraint violation for the globalization; norm per `constr_viol_normtype`."""
        it = self._curr()
        return self._shared(
            "curr_constraint_violation", "trial_constraint_violation", (it.x, it.s),
            lambda: calc_norm_of_type(self.cfg.constr_viol_normtype, self.curr_c(), self.curr_d_minus_s()),
        )

    @_requires_init
    def trial_constraint_violation(self) -> float:
        it = self._trial()
        return self._shared(
            "trial_constraint_violation", "curr_constraint_violation", (it.x, it.s),
            lambda: calc_norm_of_type(self.cfg.constr_viol_normtype, self.trial_c(), self.trial_d_minus_s()),
        )

    @_requires_init
    def constr_viol_normtype(self) -> NormType:
        return self.cfg.constr_viol_normtype

    # =====================================================================
    # Hessian
    # =====================================================================
    @_requires_init
    def curr_exact_hessian(self):
        it = self._curr()
        return self._cached("curr_exact_hessian", (it.x, it.y_c, it.y_d),
                            lambda: self.model.exact_hessian(it.x, it.y_c, it.y_d))

    @_requires_init
    def zero_hessian(self):
        """Matrix with the type and sparsity structure of the Hessian, all values zero."""
        H = self.curr_exact_hessian()
        if sp.issparse(H):
            Z = H.copy()
            if hasattr(Z, "data"):
                Z.data = np.zeros_like(Z.data)
                return Z
            return Z * 0.0
        return np.zeros_like(np.asarray(H, dtype=float))

    # =====================================================================
    # Optimality error components
    # =====================================================================
    @_requires_init
    def curr_grad_lag_x(self) -> np.ndarray:
        """grad f + J_c^T y_c + J_d^T y_d - P_L z_L + P_U z_U."""
        it = self._curr()
        m = self.model

        def compute():
            g = np.array(self.curr_grad_f())
            g += self.curr_jac_cT_times_curr_y_c()
            g += self.curr_jac_dT_times_curr_y_d()
            g -= _scatter(m.Px_L, it.z_L)
            g += _scatter(m.Px_U, it.z_U)
            return frozen(g)

        return self._cached("curr_grad_lag_x", (it.x, it.y_c, it.y_d, it.z_L, it.z_U), compute)

    @_requires_init
    def curr_grad_lag_s(self) -> np.ndarray:
        """P_U v_U - P_L v_L - y_d."""
        it = self._curr()
        m = self.model

        def compute():
            return frozen(_scatter(m.Pd_U, it.v_U) - _scatter(m.Pd_L, it.v_L) - it.y_d)

        return self._cached("curr_grad_lag_s", (it.y_d, it.v_L, it.v_U), compute)

    def _compl(self, family: str, relaxed: bool) -> np.ndarray:
        it, mu = self._curr(), self.state.mu
        point, mult = _SLACK_FAMILIES[family][2], _SLACK_FAMILIES[family][3]
        slack_fn = getattr(self, f"curr_slack_{family}")
        deps = (getattr(it, point), getattr(it, mult))
        if not relaxed:
            return self._cached(f"curr_compl_{family}", deps,
                                lambda: frozen(slack_fn() * getattr(it, mult)))
        return self._cached(f"curr_relaxed_compl_{family}", deps,
                            lambda: frozen(self._compl(family, False) - mu), (mu,))

    @_requires_init
    def curr_compl_x_L(self) -> np.ndarray:
        return self._compl("x_L", False)

    @_requires_init
    def curr_compl_x_U(self) -> np.ndarray:
        return self._compl("x_U", False)

    @_requires_init
    def curr_compl_s_L(self) -> np.ndarray:
        return self._compl("s_L", False)

    @_requires_init
    def curr_compl_s_U(self) -> np.ndarray:
        return self._compl("s_U", False)

    @_requires_init
    def curr_relaxed_compl_x_L(self) -> np.ndarray:
        return self._compl("x_L", True)

    @_requires_init
    def curr_relaxed_compl_x_U(self) -> np.ndarray:
        return self._compl("x_U", True)

    @_requires_init
    def curr_relaxed_compl_s_L(self) -> np.ndarray:
        return self._compl("s_L", True)

    @_requires_init
    def curr_relaxed_compl_s_U(self) -> np.ndarray:
        return self._compl("s_U", True)

    @_requires_init
    def curr_primal_infeasibility(self, norm_type: NormType = NormType.NORM_MAX) -> float:
        it, norm_type = self._curr(), NormType.parse(norm_type)
        return self._shared(
            "curr_primal_infeasibility", "trial_primal_infeasibility", (it.x, it.s),
            lambda: calc_norm_of_type(norm_type, self.curr_c(), self.curr_d_minus_s()), (norm_type,),
        )

    @_requires_init
    def trial_primal_infeasibility(self, norm_type: NormType = NormType.NORM_MAX) -> float:
        it, norm_type = self._trial(), NormType.parse(norm_type)
        return self._shared(
            "trial_primal_infeasibility", "curr_primal_infeasibility", (it.x, it.s),
            lambda: calc_norm_of_type(norm_type, self.trial_c(), self.trial_d_minus_s()), (norm_type,),
        )

    @_requires_init
    def curr_dual_infeasibility(self, norm_type: NormType = NormType.NORM_MAX) -> float:
        it, norm_type = self._curr(), NormType.parse(norm_type)
        return self._cached(
            "curr_dual_infeasibility", (it,),
            lambda: calc_norm_of_type(norm_type, self.curr_grad_lag_x(), self.curr_grad_lag_s()), (norm_type,),
        )

    @_requires_init
    def curr_complementarity(self, mu: float, norm_type: NormType = NormType.NORM_MAX) -> float:
        """Norm of all complementarity products, each shifted by -mu."""
        it, norm_type, mu = self._curr(), NormType.parse(norm_type), float(mu)

        def compute():
            vecs = [self.curr_compl_x_L(), self.curr_compl_x_U(), self.curr_compl_s_L(), self.curr_compl_s_U()]
            if mu != 0.0:
                vecs = [v - mu for v in vecs]
            return calc_norm_of_type(norm_type, *vecs)

        return self._cached("curr_complementarity", (it,), compute, (mu, norm_type))

    def calc_centrality_measure(self, compl_x_L, compl_x_U, compl_s_L, compl_s_U) -> float:
        return calc_centrality_measure(compl_x_L, compl_x_U, compl_s_L, compl_s_U)

    @_requires_init
    def curr_centrality_measure(self) -> float:
        it = self._curr()
        return self._cached(
            "curr_centrality_measure", (it,),
            lambda: calc_centrality_measure(self.curr_compl_x_L(), self.curr_compl_x_U(),
                                            self.curr_compl_s_L(), self.curr_compl_s_U()),
        )

    @_requires_init
    def curr_optimality_error_scaling(self) -> Tuple[float, float]:
        it = self._curr()
        return compute_optimality_error_scaling(it.y_c, it.y_d, it.z_L, it.z_U, it.v_L, it.v_U, self.cfg.s_max)

    def _scaled_error(self, mu: float) -> float:
        s_d, s_c = self.curr_optimality_error_scaling()
        dual = self.curr_dual_infeasibility(NormType.NORM_MAX) / s_d
        primal = self.curr_primal_infeasibility(NormType.NORM_MAX)
        compl = self.curr_complementarity(mu, NormType.NORM_MAX) / s_c
        logging.debug(f"[CalculatedQuantities] error(mu={mu:g}): dual={dual:.3e} primal={primal:.3e} compl={compl:.3e} "
                      f"(s_d={s_d:.3g}, s_c={s_c:.3g})")
        return float(max(dual, primal, compl))

    @_requires_init
    def curr_nlp_error(self) -> float:
        """Scaled optimality error of the original NLP (unrelaxed complementarity)."""
        it = self._curr()
        return self._cached("curr_nlp_error", (it,), lambda: self._scaled_error(0.0))

    @_requires_init
    def curr_barrier_error(self) -> float:
        """Scaled optimality error of the barrier problem at the current mu."""
        it, mu = self._curr(), self.state.mu
        return self._cached("curr_barrier_error", (it,), lambda: self._scaled_error(mu), (mu,))

    @_requires_init
    def curr_primal_dual_error(self) -> float:
        it = self._curr()
        return self._cached(
            "curr_primal_dual_error", (it,),
            lambda: (self.curr_primal_infeasibility(NormType.NORM_1)
                     + self.curr_dual_infeasibility(NormType.NORM_1)
                     + self.curr_complementarity(0.0, NormType.NORM_1)),
        )

    @_requires_init
    def curr_relaxed_primal_dual_error(self) -> float:
        it, mu = self._curr(), self.state.mu
        return self._cached(
            "curr_relaxed_primal_dual_error", (it,),
            lambda: (self.curr_primal_infeasibility(NormType.NORM_1)
                     + self.curr_dual_infeasibility(NormType.NORM_1)
                     + self.curr_complementarity(mu, NormType.NORM_1)),
            (mu,),
        )

    @staticmethod
    def _avrg(vecs: Sequence[np.ndarray]) -> float:
        n = sum(v.size for v in vecs)
        if n == 0:
            return 0.0
        return float(sum(float(np.sum(v)) for v in vecs) / n)

    @_requires_init
    def curr_avrg_compl(self) -> float:
        it = self._curr()
        return self._cached(
            "curr_avrg_compl", (it,),
            lambda: self._avrg([self.curr_compl_x_L(), self.curr_compl_x_U(),
                                self.curr_compl_s_L(), self.curr_compl_s_U()]),
        )

    @_requires_init
    def trial_avrg_compl(self) -> float:
        it = self._trial()
        return self._cached(
            "trial_avrg_compl", (it,),
            lambda: self._avrg([self.trial_slack_x_L() * it.z_L, self.trial_slack_x_U() * it.z_U,
                                self.trial_slack_s_L() * it.v_L, self.trial_slack_s_U() * it.v_U]),
        )

    # =====================================================================
    # Fraction to the boundary
    # =====================================================================
    @staticmethod
    def _calc_frac_to_bound(slack_L, P_L, slack_U, P_U, delta: np.ndarray, tau: float) -> float:
        return min(
            _max_step_ftb(slack_L, _select(P_L, delta), tau),
            _max_step_ftb(slack_U, -_select(P_U, delta), tau),
        )

    @_requires_init
    def primal_frac_to_the_bound(self, tau: float, delta_x: np.ndarray, delta_s: np.ndarray) -> float:
        tau, m = self._check_tau(tau), self.model
        delta_x = check_dim("delta_x", delta_x, m.n)
        delta_s = check_dim("delta_s", delta_s, m.m_d)
        it = self._curr()

        def compute():
            return min(
                self._calc_frac_to_bound(self.curr_slack_x_L(), m.Px_L, self.curr_slack_x_U(), m.Px_U, delta_x, tau),
                self._calc_frac_to_bound(self.curr_slack_s_L(), m.Pd_L, self.curr_slack_s_U(), m.Pd_U, delta_s, tau),
            )

        return self._cached("primal_frac_to_the_bound", (it.x, it.s, delta_x, delta_s), compute, (tau,))

    @_requires_init
    def curr_primal_frac_to_the_bound(self, tau: float) -> float:
        delta = self._delta()
        return self.primal_frac_to_the_bound(tau, delta.x, delta.s)

    @_requires_init
    def dual_frac_to_the_bound(
        self,
        tau: float,
        delta_z_L: np.ndarray,
        delta_z_U: np.ndarray,
        delta_v_L: np.ndarray,
        delta_v_U: np.ndarray,
    ) -> float:
        tau, m, it = self._check_tau(tau), self.model, self._curr()
        delta_z_L = check_dim("delta_z_L", delta_z_L, m.x_L.size)
        delta_z_U = check_dim("delta_z_U", delta_z_U, m.x_U.size)
        delta_v_L = check_dim("delta_v_L", delta_v_L, m.d_L.size)
        delta_v_U = check_dim("delta_v_U", delta_v_U, m.d_U.size)

        def compute():
            return min(
                _max_step_ftb(it.z_L, delta_z_L, tau),
                _max_step_ftb(it.z_U, delta_z_U, tau),
                _max_step_ftb(it.v_L, delta_v_L, tau),
                _max_step_ftb(it.v_U, delta_v_U, tau),
            )

        deps = (it.z_L, it.z_U, it.v_L, it.v_U, delta_z_L, delta_z_U, delta_v_L, delta_v_U)
        return self._cached("dual_frac_to_the_bound", deps, compute, (tau,))

    @_requires_init
    def curr_dual_frac_to_the_bound(self, tau: float) -> float:
        delta = self._delta()
        return self.dual_frac_to_the_bound(tau, delta.z_L, delta.z_U, delta.v_L, delta.v_U)

    @_requires_init
    def slack_frac_to_the_bound(
        self,
        tau: float,
        delta_x_L: np.ndarray,
        delta_x_U: np.ndarray,
        delta_s_L: np.ndarray,
        delta_s_U: np.ndarray,
    ) -> float:
        """Fraction to the boundary for steps given directly in the slacks."""
        tau, m, it = self._check_tau(tau), self.model, self._curr()
        delta_x_L = check_dim("delta_x_L", delta_x_L, m.x_L.size)
        delta_x_U = check_dim("delta_x_U", delta_x_U, m.x_U.size)
        delta_s_L = check_dim("delta_s_L", delta_s_L, m.d_L.size)
        delta_s_U = check_dim("delta_s_U", delta_s_U, m.d_U.size)

        def compute():
            return min(
                _max_step_ftb(self.curr_slack_x_L(), delta_x_L, tau),
                _max_step_ftb(self.curr_slack_x_U(), delta_x_U, tau),
                _max_step_ftb(self.curr_slack_s_L(), delta_s_L, tau),
                _max_step_ftb(self.curr_slack_s_U(), delta_s_U, tau),
            )

        deps = (it.x, it.s, delta_x_L, delta_x_U, delta_s_L, delta_s_U)
        return self._cached("slack_frac_to_the_bound", deps, compute, (tau,))

    # =====================================================================
    # Sigma vectors
    # =====================================================================
    @_requires_init
    def curr_sigma_x(self) -> np.ndarray:
        """P_L (z_L / slack_x_L) + P_U (z_U / slack_x_U)."""
        it, m = self._curr(), self.model
        return self._cached(
            "curr_sigma_x", (it.x, it.z_L, it.z_U),
            lambda: frozen(_scatter(m.Px_L, it.z_L / self.curr_slack_x_L())
                           + _scatter(m.Px_U, it.z_U / self.curr_slack_x_U())),
        )

    @_requires_init
    def curr_sigma_s(self) -> np.ndarray:
        it, m = self._curr(), self.model
        return self._cached(
            "curr_sigma_s", (it.s, it.v_L, it.v_U),
            lambda: frozen(_scatter(m.Pd_L, it.v_L / self.curr_slack_s_L())
                           + _scatter(m.Pd_U, it.v_U / self.curr_slack_s_U())),
        )

    # =====================================================================
    # Norms
    # =====================================================================
    @staticmethod
    def calc_norm_of_type(norm_type: NormType, *vecs: np.ndarray) -> float:
        return calc_norm_of_type(norm_type, *vecs)
