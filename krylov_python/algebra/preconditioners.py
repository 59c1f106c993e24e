'''
file:       krylov_python/algebra/preconditioners.py

This module contains the preconditioners M for the iterative solvers of
symmetric positive definite systems Ax = b. The solver works with the
preconditioned operator

M^{-1}Ax = M^{-1}b,

and the only thing it needs from M is the action r -> M^{-1}r. Every
preconditioner is therefore a LinearOperator: it is set up once from a matrix
(static setup kernel -> dictionary of precomputed data) and then applied
repeatedly (static apply kernel).

The goal is for the preconditioned operator to have a smaller condition number
than A, the Lanczos estimate of the CG solver measures exactly that.
'''

import inspect
from abc import abstractmethod
from enum import Enum, unique
from typing import Union, Optional, Any, Type, Tuple, Dict

import numpy as np
import scipy.linalg as sla
import scipy.sparse as sps
import scipy.sparse.linalg as spsla

from .operators import LinearOperator, MatrixOperator
from .utils import Array
from ..common.flog import get_global_logger, Logger

# ---------------------------------------------------------------------

_TOLERANCE_SMALL        = 1e-13
_TOLERANCE_BIG          = 1e13

@unique
class PreconditionerType(Enum):
    """
    Enumeration of the symmetric preconditioner types.
    """
    IDENTITY            = 0
    JACOBI              = 1
    INCOMPLETE_CHOLESKY = 2
    COMPLETE_CHOLESKY   = 3

# ---------------------------------------------------------------------
#! Preconditioners
# ---------------------------------------------------------------------

class Preconditioner(LinearOperator):
    """
    Abstract base class for preconditioners M used in iterative solvers.

    Provides the framework for setting up the preconditioner from a matrix A
    (dense or sparse) and applying the inverse operation M^{-1}r.

    Attributes:
        sigma (float):
            Regularization parameter added during setup, M is built from A + sigma*I.
        type (PreconditionerType):
            The specific type of the preconditioner. Set by subclass.
        is_set (bool):
            True once the precomputed data exists.
    """

    _type : Optional[PreconditionerType]    = None
    _name : str                             = "General Preconditioner"
    _dcol : str                             = "yellow"

    # -----------------------------------------------------------------

    def __init__(self, n: Optional[int] = None):
        self._logger : Logger           = get_global_logger()
        self._sigma                     = 0.0
        self._n                         = n
        self._precomputed_data          : Optional[Dict[str, Any]] = None

    # -----------------------------------------------------------------
    #! Logging
    # -----------------------------------------------------------------

    def log(self, msg : str, log : Union[int, str] = Logger.LEVELS_R['info'],
        lvl : int = 0, color : str = "white", append_msg = True):
        """
        Log the message, prefixed with the preconditioner name.
        """
        if isinstance(log, str):
            log = Logger.LEVELS_R[log]
        if append_msg:
            msg = f"[{self._name}] {msg}"
        self._logger.say(msg, log=log, lvl=lvl, color=color)

    # -----------------------------------------------------------------
    #! Properties
    # -----------------------------------------------------------------

    @property
    def name(self) -> str:
        return self._name

    @property
    def type(self) -> Optional[PreconditionerType]:
        return self._type

    @property
    def sigma(self) -> float:
        return self._sigma

    @property
    def is_set(self) -> bool:
        return self._precomputed_data is not None

    @property
    def precomputed_data(self) -> Dict[str, Any]:
        ''' Data computed by the setup kernel (empty before ``set``). '''
        return dict(self._precomputed_data) if self._precomputed_data is not None else {}

    # -----------------------------------------------------------------
    #! Static kernels
    # -----------------------------------------------------------------

    @staticmethod
    @abstractmethod
    def _setup_standard_kernel(a: Any, sigma: float, **kwargs) -> Dict[str, Any]:
        ''' Compute the data needed for the application of M^{-1} built from A + sigma*I. '''
        raise NotImplementedError

    @staticmethod
    @abstractmethod
    def _apply_kernel(r: Array, **precomputed_data: Any) -> Array:
        ''' Apply M^{-1} using the precomputed data. '''
        raise NotImplementedError

    # -----------------------------------------------------------------
    #! Setup and application
    # -----------------------------------------------------------------

    def set(self, a: Any, sigma: float = 0.0, **kwargs) -> "Preconditioner":
        """
        Set up the preconditioner from the matrix A.

        Parameters:
            a (Array | sparse matrix | MatrixOperator):
                The (square) matrix. A shift carried by a MatrixOperator is
                added to ``sigma``.
            sigma (float):
                Regularization, the preconditioner is built from A + sigma*I.
            **kwargs:
                Passed to the setup kernel of the concrete class.
        Returns:
            Preconditioner:
                self, for chaining.
        """
        if isinstance(a, MatrixOperator):
            sigma   = sigma + (a.sigma or 0.0)
            a       = a.matrix
        if not sps.issparse(a):
            a = np.asarray(a)
        if a.ndim != 2 or a.shape[0] != a.shape[1]:
            raise ValueError(f"Preconditioner setup requires a square matrix, got shape {a.shape}")

        self._sigma             = float(sigma)
        self._n                 = a.shape[0]
        self._precomputed_data  = self.__class__._setup_standard_kernel(a, self._sigma, **self._setup_kwargs(kwargs))
        self.log(f"Set up for n={self._n}, sigma={self._sigma}", log='debug', lvl=1, color=self._dcol)
        return self

    def _setup_kwargs(self, kwargs: dict) -> dict:
        ''' Instance defaults for the setup kernel, overridden by explicit kwargs. '''
        return kwargs

    def apply(self, r: Array) -> Array:
        if self._precomputed_data is None:
            raise RuntimeError(f"{self._name} has not been set up. Call set(a) first.")
        return self.__class__._apply_kernel(r, **self._precomputed_data)

    def rows(self) -> int:
        if self._n is None:
            raise RuntimeError(f"{self._name} has no dimension before set(a).")
        return self._n

    # -----------------------------------------------------------------

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(n={self._n}, sigma={self._sigma}, set={self.is_set})"

    def __str__(self) -> str:
        return f"{self._name} (sigma={self._sigma})"

# =====================================================================
#! Identity preconditioner
# =====================================================================

class IdentityPreconditioner(Preconditioner):
    """
    Identity Preconditioner. M = I, M^{-1}r = r.

    Needs no setup data, only the dimension (given directly or taken from ``set``).
    """
    _name = "Identity Preconditioner"
    _type = PreconditionerType.IDENTITY

    def __init__(self, n: Optional[int] = None):
        super().__init__(n=n)
        if n is not None:
            self._precomputed_data = {}

    @staticmethod
    def _setup_standard_kernel(a: Any, sigma: float, **kwargs) -> Dict[str, Any]:
        return {}

    @staticmethod
    def _apply_kernel(r: Array, **precomputed_data: Any) -> Array:
        return np.array(r, copy=True)

# =====================================================================
#! Jacobi preconditioner
# =====================================================================

class JacobiPreconditioner(Preconditioner):
    """
    Jacobi (Diagonal) Preconditioner. M = diag(A + sigma*I).

    Math:
        M       = diag(A) + sigma*I = D + sigma*I
        M^{-1}r = [1 / (A_ii + sigma)] * r_i

    Diagonal entries smaller than ``tol_small`` in magnitude are treated as
    zero and the corresponding component of M^{-1}r is set to zero.

    References:
        - Saad, Y. (2003). Iterative Methods for Sparse Linear Systems (2nd ed.). SIAM. Chapter 10.
    """
    _name = "Jacobi Preconditioner"
    _type = PreconditionerType.JACOBI

    def __init__(self,
                n                       : Optional[int] = None,
                tol_small               : float         = _TOLERANCE_SMALL,
                zero_replacement        : float         = _TOLERANCE_BIG):
        super().__init__(n=n)
        self._tol_small         = tol_small
        self._zero              = zero_replacement

    # -----------------------------------------------------------------

    @staticmethod
    def _static_compute_inv_diag(diag_a         : Array,
                                sigma           : float,
                                tol_small       : float,
                                zero_replacement: float) -> Array:
        """
        Compute the inverse diagonal 1 / (A_ii + sigma) safely.

        Parameters:
            diag_a (Array):
                Diagonal of the matrix A.
            sigma (float):
                Regularization parameter.
            tol_small (float):
                Tolerance for small values.
            zero_replacement (float):
                Value to replace small values with before the inversion.
        Returns:
            Array:
                The inverse diagonal, zero where the diagonal is (close to) zero.
        """
        reg_diag        = diag_a + sigma
        is_small        = np.abs(reg_diag) < tol_small
        safe_diag       = np.where(is_small, zero_replacement, reg_diag)
        inv_diag        = 1.0 / safe_diag
        return np.where(is_small, 0.0, inv_diag)

    @staticmethod
    def _setup_standard_kernel(a: Any, sigma: float, **kwargs) -> Dict[str, Any]:
        tol_small           = kwargs.get('tol_small', _TOLERANCE_SMALL)
        zero_replacement    = kwargs.get('zero_replacement', _TOLERANCE_BIG)
        diag_a              = np.asarray(a.diagonal()).reshape(-1)
        inv_diag            = JacobiPreconditioner._static_compute_inv_diag(
            diag_a, sigma, tol_small, zero_replacement
        )
        return {'inv_diag': inv_diag}

    @staticmethod
    def _apply_kernel(r: Array, **precomputed_data: Any) -> Array:
        inv_diag    = precomputed_data.get('inv_diag', None)
        if inv_diag is None:
            raise ValueError("Jacobi apply kernel requires 'inv_diag' in precomputed_data.")
        if r.ndim != 1 or r.shape[0] != inv_diag.shape[0]:
            raise ValueError(f"Shape mismatch in Jacobi apply: r={r.shape}, inv_diag={inv_diag.shape}")
        return inv_diag * r

    def _setup_kwargs(self, kwargs: dict) -> dict:
        kwargs.setdefault('tol_small', self._tol_small)
        kwargs.setdefault('zero_replacement', self._zero)
        return kwargs

    # -----------------------------------------------------------------

    @property
    def tol_small(self) -> float:
        return self._tol_small

    @property
    def zero_replacement(self) -> float:
        return self._zero

# =====================================================================
#! Complete Cholesky factorization
# =====================================================================

class CholeskyPreconditioner(Preconditioner):
    """
    Cholesky Preconditioner using the complete Cholesky decomposition.

    M = L L^H with L the lower Cholesky factor of A + sigma*I. The application
    of M^{-1} solves two triangular systems:
    1. Solve L y = r for y (forward substitution)
    2. Solve L^H z = y for z (backward substitution)

    With sigma = 0 this is the exact inverse, CG then converges in one step.
    Sparse matrices are densified, the factorization is meant for small and
    moderate problems.

    References:
        - Golub, G. H., & Van Loan, C. F. (2013). Matrix Computations (4th ed.). JHU Press. Chapter 4.
    """
    _name = "Cholesky Preconditioner"
    _type = PreconditionerType.COMPLETE_CHOLESKY

    @staticmethod
    def _setup_standard_kernel(a: Any, sigma: float, **kwargs) -> Dict[str, Any]:
        """
        Computes the Cholesky factor L of the matrix A + sigma*I.

        Raises:
            numpy.linalg.LinAlgError:
                If A + sigma*I is not positive definite.
        """
        a_dense = a.toarray() if sps.issparse(a) else a
        if not np.issubdtype(a_dense.dtype, np.inexact):
            a_dense = a_dense.astype(np.float64)
        a_reg   = a_dense + sigma * np.eye(a_dense.shape[0], dtype=a_dense.dtype)
        try:
            l_factor = sla.cholesky(a_reg, lower=True, check_finite=False)
        except np.linalg.LinAlgError as e:
            get_global_logger().error(f"[{CholeskyPreconditioner._name}] Cholesky decomposition failed: {e}. "
                                    f"Matrix might not be positive definite after regularization (sigma={sigma}).")
            raise
        return {'l': l_factor}

    @staticmethod
    def _apply_kernel(r: Array, **precomputed_data: Any) -> Array:
        l = precomputed_data.get('l')
        if l is None:
            raise ValueError("Cholesky apply kernel requires 'l' in precomputed_data.")
        if r.shape[0] != l.shape[0]:
            raise ValueError(f"Shape mismatch in Cholesky apply: r ({r.shape[0]}) vs L ({l.shape[0]})")

        lh  = np.conjugate(l).T if np.iscomplexobj(l) else l.T
        y   = sla.solve_triangular(l, r, lower=True, check_finite=False)
        return sla.solve_triangular(lh, y, lower=False, check_finite=False)

# =====================================================================
#! Incomplete Cholesky Preconditioner (using ILU Proxy)
# =====================================================================

class IncompleteCholeskyPreconditioner(Preconditioner):
    """
    Incomplete Cholesky Preconditioner (approximated by ILU).

    SciPy has no IC(0) routine, SuperLU's incomplete LU (``spilu``) is used
    as a proxy. The factors keep (approximately) the sparsity pattern of A,
    controlled by ``fill_factor`` and ``drop_tol``. Dense inputs are converted
    to CSC.

    The factorization runs in the natural ordering without row pivoting
    (``permc_spec="NATURAL"``, ``diag_pivot_thresh=0``), so no permutation
    breaks the symmetry CG relies on. With dropping, the incomplete factors
    are still only approximately symmetric.

    References:
        - Saad, Y. (2003). Iterative Methods for Sparse Linear Systems (2nd ed.). SIAM. Chapter 10.
        - SciPy documentation for `scipy.sparse.linalg.spilu`.
    """
    _name = "Incomplete Cholesky Preconditioner (ILU Proxy)"
    _type = PreconditionerType.INCOMPLETE_CHOLESKY

    def __init__(self,
                n           : Optional[int]     = None,
                fill_factor : float             = 1.0,
                drop_tol    : Optional[float]   = None):
        super().__init__(n=n)
        self.fill_factor    = fill_factor
        self.drop_tol       = drop_tol

    # -----------------------------------------------------------------
    #! Properties
    # -----------------------------------------------------------------

    @property
    def fill_factor(self) -> float:
        ''' The fill factor passed to spilu (default 1.0). '''
        return self._fill_factor

    @fill_factor.setter
    def fill_factor(self, value: float):
        if value <= 0:
            raise ValueError("fill_factor must be positive.")
        self._fill_factor = value

    @property
    def drop_tol(self) -> Optional[float]:
        ''' The drop tolerance passed to spilu (default None, SciPy's default). '''
        return self._drop_tol

    @drop_tol.setter
    def drop_tol(self, value: Optional[float]):
        if value is not None and value < 0:
            raise ValueError("drop_tol must be non-negative.")
        self._drop_tol = value

    # -----------------------------------------------------------------

    @staticmethod
    def _setup_standard_kernel(a: Any, sigma: float, **kwargs) -> Dict[str, Any]:
        a_sparse = a.tocsc() if sps.issparse(a) else sps.csc_matrix(a)
        if not np.issubdtype(a_sparse.dtype, np.inexact):
            a_sparse = a_sparse.astype(np.float64)
        if sigma != 0.0:
            a_sparse = a_sparse + sigma * sps.identity(a_sparse.shape[0], dtype=a_sparse.dtype, format='csc')

        try:
            ilu_obj = spsla.spilu(a_sparse,
                                drop_tol            = kwargs.get('drop_tol', None),
                                fill_factor         = kwargs.get('fill_factor', 1.0),
                                permc_spec          = 'NATURAL',
                                diag_pivot_thresh   = 0.0)
        except RuntimeError as e:
            get_global_logger().error(f"[{IncompleteCholeskyPreconditioner._name}] ILU decomposition failed: {e}. "
                                    "Matrix might be singular.")
            raise
        return {'ilu_obj': ilu_obj}

    @staticmethod
    def _apply_kernel(r: Array, **precomputed_data: Any) -> Array:
        ilu_obj = precomputed_data.get('ilu_obj')
        if ilu_obj is None:
            raise ValueError("ILU apply kernel requires 'ilu_obj' in precomputed_data.")
        return ilu_obj.solve(r)

    def _setup_kwargs(self, kwargs: dict) -> dict:
        kwargs.setdefault('fill_factor', self._fill_factor)
        kwargs.setdefault('drop_tol', self._drop_tol)
        return kwargs

# =====================================================================
#! Choose wisely
# =====================================================================

def _resolve_precond_type(precond_id: Any) -> PreconditionerType:
    """
    Helper to convert string/int/Enum id to a PreconditionerType member.

    Raises:
        ValueError:
            If the id is not recognized.
        TypeError:
            If the id is of an unsupported type.
    """
    if isinstance(precond_id, PreconditionerType):
        return precond_id
    if isinstance(precond_id, str):
        name = precond_id.strip().replace('-', '_').replace(' ', '_').upper()
        try:
            return PreconditionerType[name]
        except KeyError as e:
            raise ValueError(f"Unknown preconditioner name: '{precond_id}'.") from e
    if isinstance(precond_id, int) and not isinstance(precond_id, bool):
        try:
            return PreconditionerType(precond_id)
        except ValueError as e:
            raise ValueError(f"Unknown preconditioner value: {precond_id}.") from e
    raise TypeError(f"Unsupported type for precond_id: {type(precond_id)}. Expected Enum, str, or int.")

def _get_precond_class(precond_type: PreconditionerType) -> Type[Preconditioner]:
    ''' Map the Enum type to the preconditioner class. '''
    match precond_type:
        case PreconditionerType.IDENTITY:
            return IdentityPreconditioner
        case PreconditionerType.JACOBI:
            return JacobiPreconditioner
        case PreconditionerType.INCOMPLETE_CHOLESKY:
            return IncompleteCholeskyPreconditioner
        case PreconditionerType.COMPLETE_CHOLESKY:
            return CholeskyPreconditioner
        case _:
            raise ValueError(f"Preconditioner type {precond_type} not handled.")

# =====================================================================
#! Main Factory Function
# =====================================================================

def choose_precond(precond_id: Any, **kwargs) -> Optional[Preconditioner]:
    """
    Factory function to select and instantiate a preconditioner.

    Args:
        precond_id (Any):
            Identifier (instance, Enum, str, int) or None.
        **kwargs:
            Constructor arguments (e.g. n, tol_small, fill_factor). Unknown
            arguments are ignored with a warning.
    Returns:
        Preconditioner | None:
            An instance of the selected preconditioner, None for None.

    Example:
        >>> m = choose_precond("jacobi").set(a)
        >>> z = m(r)
    """
    if precond_id is None:
        return None

    logger = get_global_logger()
    if isinstance(precond_id, Preconditioner):
        if kwargs:
            logger.warning(f"Preconditioner instance provided; ignoring kwargs: {kwargs}")
        return precond_id

    target_class    = _get_precond_class(_resolve_precond_type(precond_id))
    valid_args      = inspect.signature(target_class.__init__).parameters
    filtered_kwargs = {k: v for k, v in kwargs.items() if k in valid_args and k != 'self'}
    ignored_kwargs  = {k: v for k, v in kwargs.items() if k not in filtered_kwargs}
    if ignored_kwargs:
        logger.warning(f"Ignoring invalid kwargs for {target_class.__name__}: {ignored_kwargs}")
    return target_class(**filtered_kwargs)

# =====================================================================
#! End of File
# =====================================================================
