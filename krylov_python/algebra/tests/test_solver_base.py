import pytest
import numpy as np

from krylov_python.algebra.operators import FunctionOperator, MatrixOperator
from krylov_python.algebra.preconditioners import JacobiPreconditioner, IdentityPreconditioner
from krylov_python.algebra.solver import (IterativeSolver, SolverError, SolverErrorMsg, SolverStatus,
                                        SolverType, SolverResult)
from krylov_python.algebra.solvers import choose_solver
from krylov_python.algebra.solvers.cg import CgSolver

class TestConstruction:

    def test_matrix_free_requires_dimension(self):
        with pytest.raises(TypeError):
            CgSolver(lambda x: x)
        solver = CgSolver(lambda x: 2.0 * x, n=4)
        assert solver.size == 4
        assert isinstance(solver.precond, IdentityPreconditioner)

    def test_non_square(self):
        with pytest.raises(SolverError) as exc_info:
            CgSolver(np.ones((3, 4)))
        assert exc_info.value.code is SolverErrorMsg.DIM_MISMATCH

    def test_precond_from_identifier(self):
        solver = CgSolver(np.diag([2.0, 4.0]), precond="jacobi")
        assert isinstance(solver.precond, JacobiPreconditioner)
        assert solver.precond.is_set
        np.testing.assert_allclose(solver.precond.apply(np.ones(2)), [0.5, 0.25])

    def test_precond_needs_matrix(self):
        with pytest.raises(SolverError) as exc_info:
            CgSolver(FunctionOperator(lambda x: x, 3), precond=JacobiPreconditioner())
        assert exc_info.value.code is SolverErrorMsg.PRECOND_INVALID
        # the identity needs no matrix
        solver = CgSolver(FunctionOperator(lambda x: x, 3), precond=IdentityPreconditioner())
        assert solver.precond.shape == (3, 3)

    def test_precond_shape_mismatch(self):
        with pytest.raises(SolverError) as exc_info:
            CgSolver(np.eye(3), precond=np.eye(4))
        assert exc_info.value.code is SolverErrorMsg.DIM_MISMATCH

    def test_explicit_inverse_matrix(self):
        solver = CgSolver(np.diag([2.0, 4.0]), precond=np.diag([0.5, 0.25]))
        assert isinstance(solver.precond, MatrixOperator)
        result = solver.solve(np.ones(2))
        assert result.converged
        assert result.iterations == 1

    @pytest.mark.parametrize("kwargs", [{"tol": 0.0}, {"tol": -1e-3}, {"max_iters": -1}])
    def test_invalid_settings(self, kwargs):
        with pytest.raises(SolverError) as exc_info:
            CgSolver(np.eye(2), **kwargs)
        assert exc_info.value.code is SolverErrorMsg.INVALID_INPUT

class TestBookkeeping:

    def test_initial_state(self):
        solver = CgSolver(np.eye(3), tol=1e-6, max_iters=7)
        assert isinstance(solver, IterativeSolver)
        assert solver.solver_type is SolverType.CG
        assert solver.status is SolverStatus.UNINITIALIZED
        assert solver.iterations == 0
        assert solver.tolerance == 1e-6
        assert solver.max_iterations == 7

    def test_solve_records_state(self):
        a       = np.diag([1.0, 2.0, 4.0])
        b       = np.array([1.0, 2.0, 3.0])
        solver  = CgSolver(a, tol=1e-10)
        result  = solver.solve(b)

        assert isinstance(result, SolverResult)
        assert solver.rhs_norm == pytest.approx(np.linalg.norm(b))
        assert solver.error < 1e-10
        assert solver.iterations == result.iterations
        assert result.residual_norm == pytest.approx(solver.error * solver.rhs_norm)
        np.testing.assert_allclose(solver.residual, b - a @ result.x, atol=1e-12)

    def test_zero_max_iterations(self):
        result = CgSolver(np.eye(3), max_iters=0).solve(np.ones(3))
        assert not result.converged
        assert result.iterations == 0
        assert result.status is SolverStatus.MAX_ITERATIONS_REACHED
        np.testing.assert_array_equal(result.x, np.zeros(3))

    def test_column_vector_rhs(self):
        result = CgSolver(np.diag([2.0, 4.0])).solve(np.ones((2, 1)))
        assert result.x.shape == (2,)
        np.testing.assert_allclose(result.x, [0.5, 0.25])

    def test_integer_rhs(self):
        result = CgSolver(np.diag([2.0, 4.0])).solve(np.array([2, 4]))
        assert result.x.dtype == np.float64
        np.testing.assert_allclose(result.x, [1.0, 1.0])

    @pytest.mark.parametrize("b, x0", [
        (np.ones(4), None),
        (np.ones(3), np.ones(4)),
        (np.ones((3, 2)), None),
    ])
    def test_dimension_mismatch(self, b, x0):
        solver = CgSolver(np.eye(3))
        with pytest.raises(SolverError) as exc_info:
            solver.solve(b, x0)
        assert exc_info.value.code is SolverErrorMsg.DIM_MISMATCH

class TestOptions:

    def test_defaults(self):
        opts = CgSolver.default_options()
        assert opts["MaxIterations"] == 1000
        assert opts["Tolerance"] == 1e-10
        assert opts["CalcEigenvalues"] is False
        assert opts["CheckBreakdown"] is True

    def test_set_options(self, monkeypatch):
        solver      = CgSolver(np.eye(2))
        messages    = []
        monkeypatch.setattr(solver._logger, "warning", lambda msg, *args, **kwargs: messages.append(msg))

        solver.set_options({"MaxIterations": 5, "Tolerance": 1e-6, "CalcEigenvalues": True,
                            "CheckBreakdown": False, "Preconditioner": "ilu"})
        opts = solver.options()
        assert opts["MaxIterations"] == 5
        assert opts["Tolerance"] == 1e-6
        assert opts["CalcEigenvalues"] is True
        assert opts["CheckBreakdown"] is False
        assert len(messages) == 1
        assert "Preconditioner" in messages[0]

class TestErrors:

    def test_message_format(self):
        err = SolverError(SolverErrorMsg.DIM_MISMATCH, "bad shape")
        assert str(err) == "[SolverError DIM_MISMATCH (106)]: bad shape"
        assert SolverError(SolverErrorMsg.MAT_NOT_SET).message == "Mat Not Set"

    def test_status_terminal(self):
        terminal = {s for s in SolverStatus if s.is_terminal}
        assert terminal == {SolverStatus.CONVERGED, SolverStatus.MAX_ITERATIONS_REACHED, SolverStatus.BREAKDOWN}

# -----------------------------------------------------------------------------

class TestChooseSolver:

    @pytest.mark.parametrize("solver_id", ["cg", "CG", 1, SolverType.CG, CgSolver])
    def test_identifiers(self, solver_id):
        solver = choose_solver(solver_id, np.eye(3), tol=1e-6)
        assert isinstance(solver, CgSolver)
        assert solver.tolerance == 1e-6

    def test_instance_passthrough(self):
        solver = CgSolver(np.eye(3))
        assert choose_solver(solver) is solver

    def test_kwargs_filtered(self):
        solver = choose_solver("cg", np.eye(3), precond="jacobi", calc_eigenvalues=True, restart=20)
        assert solver.calc_eigenvalues
        assert isinstance(solver.precond, JacobiPreconditioner)

    def test_missing_matrix(self):
        with pytest.raises(SolverError) as exc_info:
            choose_solver("cg")
        assert exc_info.value.code is SolverErrorMsg.MAT_NOT_SET

    def test_unknown(self):
        with pytest.raises(ValueError):
            choose_solver("gmres", np.eye(3))
        with pytest.raises(TypeError):
            choose_solver(2.5, np.eye(3))

    def test_repr_and_detail(self):
        solver = choose_solver("cg", np.eye(3))
        assert "CgSolver" in repr(solver)
        assert "CG" in solver.detail()
