# test_hs071.py
# Quantities at an interior point of HS071 checked against hand-written formulas.

import numpy as np
import pytest
import scipy.sparse as sp

from ipcalc.blocks.aux import NormType
from ipcalc.blocks.state import Iterate, OptimizerState
from ipcalc.examples.hs071 import grad_f, hs071_model
from ipcalc.quantities import CalculatedQuantities, compute_optimality_error_scaling

MU = 0.1
X = np.array([1.5, 4.5, 4.0, 1.5])
S = np.array([30.0])
Y_C = np.array([0.5])
Y_D = np.array([-0.2])
Z_L = np.array([0.1, 0.2, 0.3, 0.4])
Z_U = np.array([0.05, 0.1, 0.2, 0.3])
V_L = np.array([0.7])


@pytest.fixture
def setup():
    m = hs071_model()
    curr = Iterate.zeros(m).replace(x=X, s=S, y_c=Y_C, y_d=Y_D, z_L=Z_L, z_U=Z_U, v_L=V_L)
    st = OptimizerState(m, curr, mu=MU)
    q = CalculatedQuantities(m, st)
    q.initialize()
    return m, st, q


def _jac_d_row(x):
    return np.array([x[1] * x[2] * x[3], x[0] * x[2] * x[3], x[0] * x[1] * x[3], x[0] * x[1] * x[2]])


def test_structure(setup):
    m, st, q = setup
    assert (m.x_L.size, m.x_U.size, m.d_L.size, m.d_U.size) == (4, 4, 1, 0)
    np.testing.assert_array_equal(q.dampind_x_L, np.zeros(4))
    np.testing.assert_array_equal(q.dampind_x_U, np.zeros(4))
    np.testing.assert_array_equal(q.dampind_s_L, [1.0])
    assert q.dampind_s_U.size == 0


def test_slacks_and_constraints(setup):
    m, st, q = setup
    np.testing.assert_allclose(q.curr_slack_x_L(), X - 1.0)
    np.testing.assert_allclose(q.curr_slack_x_U(), 5.0 - X)
    np.testing.assert_allclose(q.curr_slack_s_L(), [5.0])
    np.testing.assert_allclose(q.curr_c(), [0.75])
    np.testing.assert_allclose(q.curr_d(), [40.5])
    np.testing.assert_allclose(q.curr_d_minus_s(), [10.5])
    assert q.curr_constraint_violation() == pytest.approx(11.25)
    assert q.curr_primal_infeasibility(NormType.NORM_MAX) == pytest.approx(10.5)
    assert q.curr_primal_infeasibility(NormType.NORM_2) == pytest.approx(np.hypot(0.75, 10.5))


def test_barrier_objective(setup):
    m, st, q = setup
    kd = q.cfg.kappa_d
    logs = np.sum(np.log(X - 1.0)) + np.sum(np.log(5.0 - X)) + np.log(5.0)
    f = X[0] * X[3] * (X[0] + X[1] + X[2]) + X[2]
    assert q.curr_barrier_obj() == pytest.approx(f - MU * logs + kd * MU * 5.0)

    gx = grad_f(X) - MU / (X - 1.0) + MU / (5.0 - X)
    np.testing.assert_allclose(q.curr_grad_barrier_obj_x(), gx)
    np.testing.assert_allclose(q.curr_grad_barrier_obj_s(), [-MU / 5.0 + kd * MU])


def test_lagrangian_gradient(setup):
    m, st, q = setup
    expected = grad_f(X) + 2.0 * X * Y_C[0] + _jac_d_row(X) * Y_D[0] - Z_L + Z_U
    np.testing.assert_allclose(q.curr_grad_lag_x(), expected)
    np.testing.assert_allclose(q.curr_grad_lag_s(), [-V_L[0] - Y_D[0]])
    np.testing.assert_allclose(q.curr_jac_cT_times_curr_y_c(), 2.0 * X * Y_C[0])
    np.testing.assert_allclose(q.curr_jac_dT_times_curr_y_d(), _jac_d_row(X) * Y_D[0])
    assert q.curr_dual_infeasibility(NormType.NORM_MAX) == pytest.approx(
        max(np.max(np.abs(expected)), abs(V_L[0] + Y_D[0])))


def test_jacobian_products(setup):
    m, st, q = setup
    v = np.array([1.0, -1.0, 2.0, 0.5])
    np.testing.assert_allclose(q.curr_jac_c_times_vec(v), [2.0 * X @ v])
    np.testing.assert_allclose(q.curr_jac_d_times_vec(v), [_jac_d_row(X) @ v])
    assert sp.issparse(q.curr_jac_c())
    q.curr_jac_c()
    q.curr_grad_lag_x()
    assert m.jac_c_evals == 1
    assert m.jac_d_evals == 1


def test_errors(setup):
    m, st, q = setup
    sl_L, sl_U = X - 1.0, 5.0 - X
    compl = np.concatenate([sl_L * Z_L, sl_U * Z_U, 5.0 * V_L])
    grad_lag = np.concatenate([q.curr_grad_lag_x(), q.curr_grad_lag_s()])

    s_d, s_c = compute_optimality_error_scaling(Y_C, Y_D, Z_L, Z_U, V_L, np.zeros(0), 100.0)
    assert (s_d, s_c) == (1.0, 1.0)

    nlp_err = max(np.max(np.abs(grad_lag)), 10.5, np.max(compl))
    assert q.curr_nlp_error() == pytest.approx(nlp_err)
    barrier_err = max(np.max(np.abs(grad_lag)), 10.5, np.max(np.abs(compl - MU)))
    assert q.curr_barrier_error() == pytest.approx(barrier_err)

    pd_err = 11.25 + np.sum(np.abs(grad_lag)) + np.sum(compl)
    assert q.curr_primal_dual_error() == pytest.approx(pd_err)
    rpd_err = 11.25 + np.sum(np.abs(grad_lag)) + np.sum(np.abs(compl - MU))
    assert q.curr_relaxed_primal_dual_error() == pytest.approx(rpd_err)

    assert q.curr_avrg_compl() == pytest.approx(np.mean(compl))
    assert q.curr_centrality_measure() == pytest.approx(np.min(compl) / np.mean(compl))


def test_large_multipliers_relax_error():
    big = np.full(2, 1000.0)
    empty = np.zeros(0)
    s_d, s_c = compute_optimality_error_scaling(big, empty, big, empty, empty, empty, 100.0)
    assert s_d == pytest.approx(10.0)
    assert s_c == pytest.approx(10.0)
    s_d, s_c = compute_optimality_error_scaling(empty, empty, empty, empty, empty, empty, 100.0)
    assert (s_d, s_c) == (1.0, 1.0)


def test_sigma(setup):
    m, st, q = setup
    np.testing.assert_allclose(q.curr_sigma_x(), Z_L / (X - 1.0) + Z_U / (5.0 - X))
    np.testing.assert_allclose(q.curr_sigma_s(), V_L / 5.0)


def test_hessian(setup):
    m, st, q = setup
    H = q.curr_exact_hessian()
    assert H.shape == (4, 4)
    np.testing.assert_allclose(H, H.T)
    np.testing.assert_array_equal(q.zero_hessian(), np.zeros((4, 4)))
    assert m.h_evals == 1


def test_primal_fraction_to_the_boundary_with_step(setup):
    m, st, q = setup
    step = Iterate.zeros(m).replace(x=np.array([-1.0, 0.0, 0.0, 0.0]), s=np.array([-10.0]))
    st.set_delta(step)
    # x1 hits its lower bound at 0.5, s at 0.5 as well; x4 unaffected
    assert q.curr_primal_frac_to_the_bound(0.99) == pytest.approx(0.99 * 0.5)
    assert q.curr_gradBarrTDelta() == pytest.approx(
        float(q.curr_grad_barrier_obj_x() @ step.x + q.curr_grad_barrier_obj_s() @ step.s))

    st.set_trial_from_step(0.4)
    assert q.trial_primal_infeasibility(NormType.NORM_MAX) == pytest.approx(
        abs(np.prod(X + 0.4 * step.x) - (S[0] - 4.0)))
