import pytest
import numpy as np
import scipy.sparse as sps
import scipy.sparse.linalg as spsla

from krylov_python.algebra.operators import (LinearOperator, MatrixOperator, FunctionOperator, IdentityOperator,
                                            ScaledOperator, SumOperator, ProductOperator, as_operator)

class TestMatrixOperator:

    def setup_method(self):
        np.random.seed(0)
        self.a = np.random.randn(5, 5)
        self.x = np.random.randn(5)

    def test_dense(self):
        op = MatrixOperator(self.a)
        np.testing.assert_allclose(op.apply(self.x), self.a @ self.x)
        np.testing.assert_allclose(op(self.x), self.a @ self.x)
        assert op.shape == (5, 5)
        assert not op.is_sparse
        assert not op.compiled

    def test_shift(self):
        op = MatrixOperator(self.a, sigma=2.0)
        np.testing.assert_allclose(op.apply(self.x), self.a @ self.x + 2.0 * self.x)
        np.testing.assert_allclose(op.to_dense(), self.a + 2.0 * np.eye(5), atol=1e-14)
        np.testing.assert_allclose(op.diagonal(), np.diag(self.a) + 2.0)
        # the matrix itself is not shifted
        np.testing.assert_array_equal(op.matrix, self.a)

    def test_sparse(self):
        a_sp    = sps.csr_matrix(self.a)
        op      = MatrixOperator(a_sp)
        assert op.is_sparse
        np.testing.assert_allclose(op.apply(self.x), self.a @ self.x)
        np.testing.assert_allclose(op.diagonal(), np.diag(self.a))

    def test_compiled(self):
        op = MatrixOperator(self.a, compile=True)
        assert op.compiled
        np.testing.assert_allclose(op.apply(self.x), self.a @ self.x, rtol=1e-12)

        # real matrix, complex vector
        z = self.x + 1j * np.random.randn(5)
        np.testing.assert_allclose(op.apply(z), self.a @ z, rtol=1e-12)

        # integer matrix is promoted
        op_int = MatrixOperator(np.arange(9).reshape(3, 3), compile=True)
        np.testing.assert_allclose(op_int.apply(np.ones(3)), [3.0, 12.0, 21.0])

    def test_rectangular_shape(self):
        op = MatrixOperator(np.ones((3, 4)))
        assert op.rows() == 3
        assert op.cols() == 4

    def test_not_a_matrix(self):
        with pytest.raises(ValueError):
            MatrixOperator(np.ones(3))

# -----------------------------------------------------------------------------

class TestOperators:

    def test_function_operator(self):
        op = FunctionOperator(lambda x: 3.0 * x, 4)
        np.testing.assert_allclose(op.apply(np.ones(4)), 3.0 * np.ones(4))
        np.testing.assert_allclose(op.to_dense(), 3.0 * np.eye(4))
        with pytest.raises(ValueError):
            FunctionOperator(lambda x: x, -1)

    def test_identity_returns_copy(self):
        op  = IdentityOperator(3)
        x   = np.arange(3.0)
        y   = op.apply(x)
        np.testing.assert_array_equal(x, y)
        assert y is not x

    def test_composites(self):
        np.random.seed(2)
        a, b    = np.random.randn(4, 4), np.random.randn(4, 4)
        oa, ob  = MatrixOperator(a), MatrixOperator(b)

        np.testing.assert_allclose(ScaledOperator(oa, -2.0).to_dense(), -2.0 * a, atol=1e-14)
        np.testing.assert_allclose(SumOperator(oa, ob).to_dense(), a + b, atol=1e-14)
        np.testing.assert_allclose(ProductOperator(oa, ob).to_dense(), a @ b, atol=1e-12)

    def test_composite_shape_mismatch(self):
        with pytest.raises(ValueError):
            SumOperator(IdentityOperator(3), IdentityOperator(4))
        with pytest.raises(ValueError):
            ProductOperator(MatrixOperator(np.ones((3, 2))), MatrixOperator(np.ones((3, 2))))
        with pytest.raises(ValueError):
            SumOperator()

# -----------------------------------------------------------------------------

class TestAsOperator:

    def test_passthrough(self):
        op = IdentityOperator(3)
        assert as_operator(op) is op

    def test_arrays(self):
        assert isinstance(as_operator(np.eye(3)), MatrixOperator)
        assert isinstance(as_operator(sps.eye(3, format='csr')), MatrixOperator)

    def test_scipy_linear_operator(self):
        d   = np.array([1.0, 2.0, 3.0])
        lo  = spsla.LinearOperator((3, 3), matvec=lambda x: d * x)
        op  = as_operator(lo)
        assert isinstance(op, LinearOperator)
        np.testing.assert_allclose(op.apply(np.ones(3)), d)

    def test_callable(self):
        op = as_operator(lambda x: 2.0 * x, n=3)
        assert op.shape == (3, 3)
        with pytest.raises(TypeError):
            as_operator(lambda x: x)

    def test_unknown(self):
        with pytest.raises(TypeError):
            as_operator("not an operator")
