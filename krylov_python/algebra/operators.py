'''
file:       krylov_python/algebra/operators.py

Linear operators accessed only through their action on vectors,

$$
x \\mapsto A x.
$$

The iterative solvers never need the entries of the system matrix or of the
preconditioner, only the ``apply`` capability. Both the system operator and
every preconditioner implement the same interface, so a preconditioner can be
any operator (for example a coarse solve wrapped in a ``FunctionOperator``).

Provides:
    - LinearOperator        : abstract interface ``apply(x) -> y``, ``rows()``, ``cols()``
    - MatrixOperator        : dense NumPy or SciPy sparse matrix, optional shift sigma
    - FunctionOperator      : matrix-free wrapper of a callable
    - IdentityOperator      : x -> x
    - ScaledOperator        : x -> c A x
    - SumOperator           : x -> (A_1 + ... + A_k) x
    - ProductOperator       : x -> A_1 (A_2 (... A_k x))
    - as_operator           : coerce matrices/callables into operators
'''

from abc import ABC, abstractmethod
from typing import Callable, Optional, Union, Any

import numba
import numpy as np
import scipy.sparse as sps
import scipy.sparse.linalg as spsla

from .utils import Array

# -----------------------------------------------------------------------------
#! Type hints
# -----------------------------------------------------------------------------

MatVecFunc      = Callable[[Array], Array]

# -----------------------------------------------------------------------------
#! Interface
# -----------------------------------------------------------------------------

class LinearOperator(ABC):
    '''
    Abstract linear operator. Concrete classes implement ``apply`` and ``rows``;
    square operators report the same number of columns.
    '''

    @abstractmethod
    def apply(self, x: Array) -> Array:
        """
        Apply the operator to the vector x.

        Args:
            x (Array):
                Input vector of length ``cols()``.
        Returns:
            Array:
                Output vector of length ``rows()``.
        """
        raise NotImplementedError

    @abstractmethod
    def rows(self) -> int:
        ''' Dimension of the output space. '''
        raise NotImplementedError

    def cols(self) -> int:
        ''' Dimension of the input space (problem dimension). '''
        return self.rows()

    @property
    def shape(self):
        return (self.rows(), self.cols())

    def __call__(self, x: Array) -> Array:
        return self.apply(x)

    def to_dense(self) -> Array:
        """
        Materialize the operator by applying it to the unit vectors.

        Costs ``cols()`` applications, intended for small problems and tests.
        """
        n       = self.cols()
        eye     = np.eye(n)
        cols    = [np.asarray(self.apply(eye[:, i])) for i in range(n)]
        return np.stack(cols, axis=1) if cols else np.zeros((self.rows(), 0))

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(shape={self.shape})"

# -----------------------------------------------------------------------------
#! Matrix based operators
# -----------------------------------------------------------------------------

@numba.njit(cache=True)
def _matvec_kernel(mat, x):
    n, m    = mat.shape
    out     = np.zeros(n, dtype=mat.dtype)
    for i in range(n):
        for j in range(m):
            out[i] += mat[i, j] * x[j]
    return out

def _compile_dense_matvec(a: Array) -> MatVecFunc:
    '''
    Wrap the Numba kernel for the dense product. Both operands are promoted to
    a common dtype before entering the kernel (real matrix times complex vector).
    '''
    mat = np.ascontiguousarray(a)

    def matvec(x: Array) -> Array:
        dt = np.result_type(mat.dtype, x.dtype)
        if not np.issubdtype(dt, np.inexact):
            dt = np.float64
        m  = mat if mat.dtype == dt else mat.astype(dt)
        return _matvec_kernel(m, np.ascontiguousarray(x, dtype=dt))
    return matvec

class MatrixOperator(LinearOperator):
    '''
    Operator defined by an explicit matrix, ``x -> (A + sigma I) x``.

    The matrix may be a dense NumPy array or any SciPy sparse matrix/array.
    With ``compile=True`` the dense product runs through a Numba kernel.
    '''

    def __init__(self,
                a           : Union[Array, sps.spmatrix],
                sigma       : Optional[float]   = None,
                compile     : bool              = False):
        if a.ndim != 2:
            raise ValueError(f"Matrix must be two-dimensional, got shape {a.shape}")

        self._is_sparse     = sps.issparse(a)
        self._a             = a if self._is_sparse else np.asarray(a)
        self._sigma         = sigma if sigma else None
        self._compiled      = False

        if compile and not self._is_sparse:
            self._matvec    = _compile_dense_matvec(self._a)
            self._compiled  = True
        else:
            mat             = self._a
            self._matvec    = lambda x: mat @ x

    def apply(self, x: Array) -> Array:
        y = self._matvec(x)
        if self._sigma is not None:
            y = y + self._sigma * x
        return y

    def rows(self) -> int:
        return self._a.shape[0]

    def cols(self) -> int:
        return self._a.shape[1]

    @property
    def matrix(self):
        ''' The wrapped matrix (without the shift). '''
        return self._a

    @property
    def sigma(self) -> Optional[float]:
        return self._sigma

    @property
    def is_sparse(self) -> bool:
        return self._is_sparse

    @property
    def compiled(self) -> bool:
        ''' Is the product running through the Numba kernel? '''
        return self._compiled

    def diagonal(self) -> Array:
        ''' Diagonal of A + sigma I, used by the Jacobi preconditioner. '''
        diag = np.asarray(self._a.diagonal()).reshape(-1)
        return diag + self._sigma if self._sigma is not None else diag

    def __repr__(self) -> str:
        kind = "sparse" if self._is_sparse else ("dense, numba" if self._compiled else "dense")
        return f"MatrixOperator(shape={self.shape}, {kind}, sigma={self._sigma})"

class FunctionOperator(LinearOperator):
    '''
    Matrix-free operator wrapping a function ``x -> A x`` of a known dimension.
    '''

    def __init__(self, func: MatVecFunc, n: int, m: Optional[int] = None):
        if n < 0:
            raise ValueError(f"Operator dimension must be non-negative, got {n}")
        self._func  = func
        self._n     = int(n)
        self._m     = int(m) if m is not None else int(n)

    def apply(self, x: Array) -> Array:
        return self._func(x)

    def rows(self) -> int:
        return self._n

    def cols(self) -> int:
        return self._m

class IdentityOperator(LinearOperator):
    ''' The identity, apply returns a copy of the input. '''

    def __init__(self, n: int):
        self._n = int(n)

    def apply(self, x: Array) -> Array:
        return np.array(x, copy=True)

    def rows(self) -> int:
        return self._n

# -----------------------------------------------------------------------------
#! Composite operators
# -----------------------------------------------------------------------------

class ScaledOperator(LinearOperator):
    ''' x -> scalar * A x '''

    def __init__(self, op: LinearOperator, scalar: float):
        self._op        = op
        self._scalar    = scalar

    def apply(self, x: Array) -> Array:
        return self._scalar * self._op.apply(x)

    def rows(self) -> int:
        return self._op.rows()

    def cols(self) -> int:
        return self._op.cols()

class SumOperator(LinearOperator):
    ''' x -> sum_i A_i x, all operators must share the shape. '''

    def __init__(self, *ops: LinearOperator):
        if not ops:
            raise ValueError("SumOperator needs at least one operator")
        shape = ops[0].shape
        for op in ops[1:]:
            if op.shape != shape:
                raise ValueError(f"Shape mismatch in SumOperator: {op.shape} vs {shape}")
        self._ops = ops

    def apply(self, x: Array) -> Array:
        y = self._ops[0].apply(x)
        for op in self._ops[1:]:
            y = y + op.apply(x)
        return y

    def rows(self) -> int:
        return self._ops[0].rows()

    def cols(self) -> int:
        return self._ops[0].cols()

class ProductOperator(LinearOperator):
    '''
    x -> A_1 A_2 ... A_k x, the rightmost operator is applied first.

    ``ProductOperator(precond, mat)`` is the preconditioned operator M^{-1} A.
    '''

    def __init__(self, *ops: LinearOperator):
        if not ops:
            raise ValueError("ProductOperator needs at least one operator")
        for left, right in zip(ops[:-1], ops[1:]):
            if left.cols() != right.rows():
                raise ValueError(f"Shape mismatch in ProductOperator: {left.shape} @ {right.shape}")
        self._ops = ops

    def apply(self, x: Array) -> Array:
        y = x
        for op in reversed(self._ops):
            y = op.apply(y)
        return y

    def rows(self) -> int:
        return self._ops[0].rows()

    def cols(self) -> int:
        return self._ops[-1].cols()

# -----------------------------------------------------------------------------
#! Coercion
# -----------------------------------------------------------------------------

def as_operator(obj: Any, n: Optional[int] = None) -> LinearOperator:
    """
    Coerce ``obj`` into a LinearOperator.

    Args:
        obj (Any):
            - LinearOperator (also any preconditioner): returned unchanged
            - NumPy array or SciPy sparse matrix: wrapped in MatrixOperator
            - scipy.sparse.linalg.LinearOperator: wrapped through its matvec
            - callable: wrapped in FunctionOperator, requires ``n``
        n (int, optional):
            Dimension, required for plain callables.
    Returns:
        LinearOperator
    Raises:
        TypeError:
            If the object cannot be interpreted as an operator.
    """
    if isinstance(obj, LinearOperator):
        return obj
    if sps.issparse(obj) or isinstance(obj, np.ndarray):
        return MatrixOperator(obj)
    if isinstance(obj, spsla.LinearOperator):
        rows, cols = obj.shape
        return FunctionOperator(obj.matvec, rows, cols)
    if callable(obj):
        if n is None:
            raise TypeError("A callable operator needs its dimension 'n'.")
        return FunctionOperator(obj, n)
    raise TypeError(f"Cannot interpret {type(obj)} as a linear operator. "
                    "Expected LinearOperator, ndarray, sparse matrix or callable.")

# -----------------------------------------------------------------------------
#! EOF
# -----------------------------------------------------------------------------
