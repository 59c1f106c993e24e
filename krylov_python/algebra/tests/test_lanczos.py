import pytest
import numpy as np
import scipy.sparse as sps

from krylov_python.algebra.eigen import LanczosRecurrence, LanczosMatrix, SpectralEstimate, SpectralError
from krylov_python.algebra.solvers.cg import CgSolver

def _lanczos_tridiagonal(a, v, k):
    '''
    Explicit Lanczos process with full reorthogonalization, k steps.
    '''
    n       = len(v)
    q       = np.zeros((n, k + 1))
    alpha   = []
    beta    = []
    q[:, 0] = v / np.linalg.norm(v)
    for j in range(k):
        w   = a @ q[:, j]
        aj  = q[:, j] @ w
        w   = w - aj * q[:, j]
        if j > 0:
            w = w - beta[-1] * q[:, j - 1]
        w   = w - q[:, :j + 1] @ (q[:, :j + 1].T @ w)
        bj  = np.linalg.norm(w)
        alpha.append(aj)
        beta.append(bj)
        q[:, j + 1] = w / bj
    off = np.asarray(beta[:-1])
    return np.diag(alpha) + np.diag(off, 1) + np.diag(off, -1)

# -----------------------------------------------------------------------------

class TestLanczosMatrix:

    def test_matrix_form(self):
        t       = LanczosMatrix([0.5, -1.0], [2.0, 3.0, 4.0])
        dense   = t.matrix_form()
        np.testing.assert_allclose(dense, [[2.0, 0.5, 0.0],
                                           [0.5, 3.0, -1.0],
                                           [0.0, -1.0, 4.0]])
        sparse  = t.matrix_form(sparse=True)
        assert sps.issparse(sparse)
        np.testing.assert_allclose(sparse.toarray(), dense)

    def test_eigenvalues_match_dense_solver(self):
        np.random.seed(1)
        delta   = np.random.rand(12) + 2.0
        gamma   = np.random.randn(11)
        t       = LanczosMatrix(gamma, delta)
        exact   = np.linalg.eigvalsh(t.matrix_form())

        np.testing.assert_allclose(t.eigenvalues(), exact, rtol=1e-10)
        assert t.min_eigenvalue() == pytest.approx(exact[0], rel=1e-10)
        assert t.max_eigenvalue() == pytest.approx(exact[-1], rel=1e-10)
        assert t.condition_number() == pytest.approx(exact[-1] / exact[0], rel=1e-10)

    def test_single_entry(self):
        t = LanczosMatrix([], [2.5])
        assert t.size == 1
        assert t.min_eigenvalue() == 2.5
        assert t.max_eigenvalue() == 2.5
        assert t.condition_number() == 1.0
        np.testing.assert_allclose(t.eigenvalues(), [2.5])

    @pytest.mark.parametrize("gamma, delta", [
        ([1.0, 2.0], [1.0, 2.0]),
        ([], []),
        ([1.0], [1.0]),
    ])
    def test_invalid_lengths(self, gamma, delta):
        with pytest.raises(ValueError):
            LanczosMatrix(gamma, delta)

    def test_eigenvalues_cached_copy(self):
        t       = LanczosMatrix([1.0], [2.0, 2.0])
        eigs    = t.eigenvalues()
        eigs[0] = 100.0
        np.testing.assert_allclose(t.eigenvalues(), [1.0, 3.0])

# -----------------------------------------------------------------------------

class TestLanczosRecurrence:

    def test_protocol(self):
        rec = LanczosRecurrence()
        assert rec.pending is None
        rec.reset(capacity_hint=10)
        assert rec.pending == 0.0
        assert rec.capacity_hint == 10
        assert rec.is_empty()

        rec.add_step_length(0.5)
        np.testing.assert_allclose(rec.delta, [2.0])
        assert rec.pending is None

        rec.add_direction_update(0.5, 0.25)
        np.testing.assert_allclose(rec.gamma, [-1.0])
        assert rec.pending == pytest.approx(0.5)
        # the open entry has no diagonal yet, T_1 has no off-diagonal
        assert rec.matrix().size == 1

        rec.add_step_length(0.25)
        np.testing.assert_allclose(rec.delta, [2.0, 4.5])
        assert len(rec) == 2
        np.testing.assert_allclose(rec.matrix().matrix_form(), [[2.0, -1.0], [-1.0, 4.5]])

    def test_out_of_order(self):
        rec = LanczosRecurrence()
        with pytest.raises(RuntimeError):
            rec.add_step_length(1.0)

        rec.reset()
        with pytest.raises(RuntimeError):
            rec.add_direction_update(1.0, 0.5)

    def test_empty_matrix(self):
        rec = LanczosRecurrence()
        rec.reset()
        with pytest.raises(ValueError):
            rec.matrix()

    def test_clear(self):
        rec = LanczosRecurrence()
        rec.reset()
        rec.add_step_length(1.0)
        rec.clear()
        assert rec.steps == 0
        assert rec.pending is None

# -----------------------------------------------------------------------------

class TestCgLanczosEquivalence:

    @pytest.mark.parametrize("k", [1, 3, 5])
    def test_matches_explicit_lanczos(self, k):
        '''
        The tridiagonal matrix built from the CG scalars after k steps has the
        same eigenvalues as the one of the explicit Lanczos process started
        from r_0 = b.
        '''
        n       = 12
        np.random.seed(4)
        q, _    = np.linalg.qr(np.random.randn(n, n))
        a       = q @ np.diag(np.linspace(1.0, 20.0, n)) @ q.T
        a       = 0.5 * (a + a.T)
        b       = np.random.randn(n)

        solver  = CgSolver(a, tol=1e-14, max_iters=k, calc_eigenvalues=True)
        solver.solve(b)
        assert solver.lanczos.steps == k

        expected = np.linalg.eigvalsh(_lanczos_tridiagonal(a, b, k))
        np.testing.assert_allclose(solver.get_eigenvalues(), expected, rtol=1e-8)

# -----------------------------------------------------------------------------

class TestSpectralEstimate:

    def test_failed(self):
        est = SpectralEstimate.failed(SpectralError.NO_DATA)
        assert not est.ok
        assert est.eigenvalues.size == 0
        assert np.isnan(est.condition_number)
        assert "no" in est.error.message.lower()

    def test_ok(self):
        est = SpectralEstimate(np.array([1.0, 2.0]), 1.0, 2.0, 2.0)
        assert est.ok
        assert est.error is None
