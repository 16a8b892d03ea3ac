# test_model_state.py
# NLP model bookkeeping, iterates and the optimizer state.

import numpy as np
import pytest

from ipcalc.blocks.aux import InternalError
from ipcalc.blocks.model import Model, expansion_matrix
from ipcalc.blocks.state import Iterate, OptimizerState
from ipcalc.examples.hs071 import X0, hs071_model


def _quad(n=3, **kw):
    return Model(lambda x: float(x @ x), lambda x: 2 * x, n=n, **kw)


def test_expansion_matrix_select_and_scatter():
    P = expansion_matrix([True, False, True])
    assert P.shape == (3, 2)
    v = np.array([1.0, 2.0, 3.0])
    np.testing.assert_array_equal(P.T @ v, [1.0, 3.0])
    np.testing.assert_array_equal(P @ np.array([7.0, 8.0]), [7.0, 0.0, 8.0])


def test_model_compresses_finite_bounds():
    m = _quad(lb=[0.0, -np.inf, 1.0], ub=[np.inf, 2.0, 3.0])
    np.testing.assert_array_equal(m.x_L, [0.0, 1.0])
    np.testing.assert_array_equal(m.x_U, [2.0, 3.0])
    np.testing.assert_array_equal(m.has_x_L(), [True, False, True])
    np.testing.assert_array_equal(m.has_x_U(), [False, True, True])
    assert m.Pd_L.shape == (0, 0) and m.d_L.size == 0


def test_model_validation():
    with pytest.raises(ValueError):
        _quad(n=0)
    with pytest.raises(ValueError):
        _quad(m_c=1)
    with pytest.raises(ValueError):
        _quad(lb=[0.0, 0.0])
    with pytest.raises(ValueError):
        _quad(lb=[1.0, 1.0, 1.0], ub=[0.0, 2.0, 2.0])


def test_model_counts_evaluations():
    m = hs071_model()
    m.objective(X0)
    m.objective_gradient(X0)
    m.constraints_c(X0)
    m.jacobian_d(X0)
    assert (m.f_evals, m.grad_f_evals, m.c_evals, m.jac_d_evals) == (1, 1, 1, 1)
    m.reset_counters()
    assert m.f_evals == 0


def test_model_without_constraints_or_hessian():
    m = _quad()
    assert m.constraints_c(np.ones(3)).size == 0
    assert m.jacobian_d(np.ones(3)).shape == (0, 3)
    assert m.c_evals == 0
    with pytest.raises(InternalError):
        m.exact_hessian(np.ones(3), np.zeros(0), np.zeros(0))


def test_iterate_is_immutable_and_tagged():
    m = hs071_model()
    it = Iterate.zeros(m)
    assert not it.x.flags.writeable
    with pytest.raises(Exception):
        it.x = np.ones(4)
    step = it.replace(x=np.ones(4), z_L=np.ones(4))
    moved = it.axpy(0.5, step, alpha_dual=0.25)
    np.testing.assert_allclose(moved.x, 0.5)
    np.testing.assert_allclose(moved.z_L, 0.25)
    assert len({it.tag, step.tag, moved.tag}) == 3


def test_state_trial_accept_cycle():
    m = hs071_model()
    curr = Iterate.zeros(m).replace(x=X0)
    st = OptimizerState(m, curr, mu=0.1)
    with pytest.raises(InternalError):
        st.accept_trial_point()
    with pytest.raises(InternalError):
        st.set_trial_from_step(1.0)

    st.set_delta(Iterate.zeros(m).replace(x=np.ones(4)))
    trial = st.set_trial_from_step(0.5)
    np.testing.assert_allclose(trial.x, X0 + 0.5)
    st.accept_trial_point()
    assert st.curr is trial
    assert st.trial is None and st.delta is None
    assert st.iter_count == 1


def test_state_validates_dimensions_and_mu():
    m = hs071_model()
    curr = Iterate.zeros(m)
    with pytest.raises(InternalError):
        OptimizerState(m, curr.replace(x=np.ones(3)))
    st = OptimizerState(m, curr)
    with pytest.raises(InternalError):
        st.set_trial(curr.replace(y_c=np.ones(2)))
    with pytest.raises(ValueError):
        st.set_mu(-1.0)
