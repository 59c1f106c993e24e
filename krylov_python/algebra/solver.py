'''
file:       krylov_python/algebra/solver.py

Defines the base class and helper structures for the iterative solution of

$$
Ax = b,
$$

with a symmetric positive (semi)definite operator A, optionally preconditioned,

$$
M^{-1}Ax = M^{-1}b.
$$

An iterative solver is a small state machine. ``init_iteration(b, x)``
prepares the recurrence for the initial guess x, ``step(x)`` performs one
iteration updating x in place, and both report whether the stopping
criterion

$$
\\frac{\\|r_k\\|}{\\|b\\|} < \\mathrm{tol}
$$

is met. The base class owns the bookkeeping (tolerance, iteration cap,
right-hand-side norm, current error, status) and the top-level loop
``solve``; concrete methods (CG, ...) implement the recurrence.
'''

import threading
from abc import ABC, abstractmethod
from enum import Enum, unique
from typing import Optional, Any, Union, NamedTuple, Tuple, Dict, List

import numpy as np

from .operators import LinearOperator, MatrixOperator, as_operator
from .preconditioners import Preconditioner, IdentityPreconditioner, choose_precond
from .utils import Array, DEFAULT_NP_FLOAT_TYPE, ensure_vector, vnorm
from ..common.flog import get_global_logger, Logger

# -----------------------------------------------------------------------------

@unique
class SolverType(Enum):
    """
    Enumeration class for the different types of iterative solvers.
    """
    CG              = 1 # (Preconditioned) Conjugate gradient

@unique
class SolverStatus(Enum):
    """
    State of the iteration. CONVERGED, MAX_ITERATIONS_REACHED and BREAKDOWN are terminal.
    """
    UNINITIALIZED           = 0
    INITIALIZING            = 1
    ITERATING               = 2
    CONVERGED               = 3
    MAX_ITERATIONS_REACHED  = 4
    BREAKDOWN               = 5

    @property
    def is_terminal(self) -> bool:
        return self in (SolverStatus.CONVERGED, SolverStatus.MAX_ITERATIONS_REACHED, SolverStatus.BREAKDOWN)

    def __str__(self):
        return self.name.replace('_', ' ').lower()

# -----------------------------------------------------------------------------
#! Errors
# -----------------------------------------------------------------------------

class SolverErrorMsg(Enum):
    '''
    Enumeration class for solver error messages.
    '''
    MAT_NOT_SET         = 102
    CONV_FAILED         = 105
    DIM_MISMATCH        = 106
    METHOD_NOT_IMPL     = 109
    PRECOND_INVALID     = 110
    INVALID_INPUT       = 112
    BREAKDOWN           = 114
    SOLVE_IN_PROGRESS   = 115
    NOT_INITIALIZED     = 116

    def __str__(self):
        return self.name.replace('_', ' ').title()

    def __repr__(self):
        return f"<{self.__class__.__name__}.{self.name}: '{str(self)}'>"

class SolverError(Exception):
    '''
    Base class for exceptions in the solver module.
    '''
    def __init__(self, code: SolverErrorMsg, message: Optional[str] = None):
        self.code       = code
        self.message    = message if message else str(code)
        super().__init__(self.message)

    def __str__(self):
        return f"[SolverError {self.code.name} ({self.code.value})]: {self.message}"

    def __repr__(self):
        return self.__str__()

class BreakdownError(SolverError):
    '''
    The recurrence hit a zero, negative or non-finite denominator. For CG this
    means the operator or the preconditioner is not positive definite (or the
    iterates were corrupted by NaN/Inf).
    '''
    def __init__(self, message: Optional[str] = None, iteration: Optional[int] = None):
        super().__init__(SolverErrorMsg.BREAKDOWN, message)
        self.iteration = iteration

class SolverResult(NamedTuple):
    '''
    Stores the result of a solve.

    Attributes:
        x (Array):
            The computed solution vector.
        converged (bool):
            Whether the solver reached the desired tolerance.
        iterations (int):
            The number of iterations (calls to ``step``) performed.
        residual_norm (Optional[float]):
            The norm of the final (recurrence) residual ||b - Ax||.
        status (SolverStatus):
            Terminal state of the iteration.
    '''
    x               : Array
    converged       : bool
    iterations      : int
    residual_norm   : Optional[float]
    status          : Optional[SolverStatus] = None

# -----------------------------------------------------------------------------
#! Iterative Solver Abstract Base Class
# -----------------------------------------------------------------------------

class IterativeSolver(ABC):
    '''
    Abstract base class for iterative solvers of

    $$
    Ax = b.
    $$

    The system operator may be given as a dense or sparse matrix, a
    ``LinearOperator`` or a callable (then ``n`` is required). The
    preconditioner may be None (identity), a ``Preconditioner`` (set up from
    the matrix automatically if it has not been set up yet), a preconditioner
    identifier understood by ``choose_precond`` or any ``LinearOperator``.

    One instance owns its work buffers: a second ``solve`` on the same
    instance while one is running raises SolverError(SOLVE_IN_PROGRESS).
    '''
    _solver_type    : Optional[SolverType]  = None  # To be set by concrete subclasses
    _name           : str                   = "Iterative Solver"
    _dcol           : str                   = "blue"

    def __init__(self,
                mat             : Any,
                precond         : Any               = None,
                tol             : float             = 1e-10,
                max_iters       : int               = 1000,
                *,
                n               : Optional[int]     = None,
                verbose         : bool              = False):
        '''
        Args:
            mat (Any):
                The system operator A.
            precond (Any, optional):
                The preconditioner M^{-1}, identity if None.
            tol (float):
                Relative tolerance, convergence if ||r|| / ||b|| < tol.
            max_iters (int):
                Maximum number of iterations.
            n (int, optional):
                Dimension, required when ``mat`` is a plain callable.
            verbose (bool):
                Report the convergence through the logger.
        '''
        self._logger    : Logger            = get_global_logger()
        self._mat       : LinearOperator    = as_operator(mat, n)
        if self._mat.rows() != self._mat.cols():
            raise SolverError(SolverErrorMsg.DIM_MISMATCH, f"System operator must be square, got shape {self._mat.shape}")
        self._n                             = self._mat.cols()
        self._precond   : LinearOperator    = self._setup_precond(precond)

        self.set_tolerance(tol)
        self.set_max_iterations(max_iters)
        self._verbose                       = verbose

        # iteration state
        self._num_iter                      = 0
        self._rhs_norm                      = 0.0
        self._error                         = float('nan')
        self._status                        = SolverStatus.UNINITIALIZED
        self._lock                          = threading.Lock()

    # -------------------------------------------------------------------------

    def _setup_precond(self, precond: Any) -> LinearOperator:
        ''' Resolve the preconditioner argument into a ready-to-apply operator. '''
        n = self._n
        if precond is None:
            return IdentityPreconditioner(n)

        if not isinstance(precond, LinearOperator) and isinstance(precond, (str, int, Enum)):
            precond = choose_precond(precond)

        if isinstance(precond, Preconditioner) and not precond.is_set:
            if isinstance(self._mat, MatrixOperator):
                precond.set(self._mat)
            elif isinstance(precond, IdentityPreconditioner):
                precond = IdentityPreconditioner(n)
            else:
                raise SolverError(SolverErrorMsg.PRECOND_INVALID,
                        f"{precond.name} needs a matrix for its setup, the system operator is matrix-free. "
                        "Call precond.set(a) before passing it to the solver.")

        precond = as_operator(precond, n)
        if precond.shape != (n, n):
            raise SolverError(SolverErrorMsg.DIM_MISMATCH,
                        f"Preconditioner shape {precond.shape} does not match the system dimension {n}")
        return precond

    # -------------------------------------------------------------------------
    #! Logging
    # -------------------------------------------------------------------------

    def log(self, msg : str, log : Union[int, str] = Logger.LEVELS_R['info'],
        lvl : int = 0, color : str = "white", append_msg = True):
        """
        Log the message, prefixed with the solver name.
        """
        if isinstance(log, str):
            log = Logger.LEVELS_R[log]
        if append_msg:
            msg = f"[{self._name}] {msg}"
        self._logger.say(msg, log=log, lvl=lvl, color=color)

    # -------------------------------------------------------------------------
    #! Properties and configuration
    # -------------------------------------------------------------------------

    @property
    def solver_type(self) -> Optional[SolverType]:
        return self._solver_type

    @property
    def mat(self) -> LinearOperator:
        return self._mat

    @property
    def precond(self) -> LinearOperator:
        return self._precond

    @property
    def size(self) -> int:
        return self._n

    @property
    def tolerance(self) -> float:
        return self._tol

    @property
    def max_iterations(self) -> int:
        return self._max_iters

    @property
    def iterations(self) -> int:
        ''' Iterations of the last (or current) solve. '''
        return self._num_iter

    @property
    def error(self) -> float:
        ''' Current relative residual norm ||r|| / ||b||. '''
        return self._error

    @property
    def rhs_norm(self) -> float:
        return self._rhs_norm

    @property
    def status(self) -> SolverStatus:
        return self._status

    @property
    def verbose(self) -> bool:
        return self._verbose

    @verbose.setter
    def verbose(self, value: bool):
        self._verbose = bool(value)

    def set_tolerance(self, tol: float):
        if not tol > 0:
            raise SolverError(SolverErrorMsg.INVALID_INPUT, f"Tolerance must be positive, got {tol}")
        self._tol = float(tol)

    def set_max_iterations(self, max_iters: int):
        if int(max_iters) < 0:
            raise SolverError(SolverErrorMsg.INVALID_INPUT, f"Maximum number of iterations must be non-negative, got {max_iters}")
        self._max_iters = int(max_iters)

    # -------------------------------------------------------------------------

    @classmethod
    def default_options(cls) -> Dict[str, Any]:
        ''' Option names and default values understood by ``set_options``. '''
        return {
            "MaxIterations" : 1000,
            "Tolerance"     : 1e-10,
            "Verbose"       : False,
        }

    def options(self) -> Dict[str, Any]:
        ''' Current values of the options. '''
        return {
            "MaxIterations" : self._max_iters,
            "Tolerance"     : self._tol,
            "Verbose"       : self._verbose,
        }

    def set_options(self, opts: Dict[str, Any]) -> "IterativeSolver":
        """
        Set the solver options from a dictionary (keys as in ``default_options``).
        Unknown keys are ignored with a warning.
        """
        for key, value in opts.items():
            if not self._set_option(key, value):
                self._logger.warning(f"[{self._name}] Ignoring unknown option '{key}'")
        return self

    def _set_option(self, key: str, value: Any) -> bool:
        match key:
            case "MaxIterations":
                self.set_max_iterations(value)
            case "Tolerance":
                self.set_tolerance(value)
            case "Verbose":
                self._verbose = bool(value)
            case _:
                return False
        return True

    # -------------------------------------------------------------------------
    #! State machine
    # -------------------------------------------------------------------------

    def _check_rhs(self, b: Any) -> Array:
        try:
            return ensure_vector(b, self._n, name="Right-hand side")
        except ValueError as e:
            raise SolverError(SolverErrorMsg.DIM_MISMATCH, str(e)) from e

    def init_iteration(self, b: Array, x: Array) -> bool:
        """
        Prepare a new solve for the right-hand side b and initial guess x.

        Resets the iteration count and computes ||b||. A zero right-hand side
        has the exact solution x = 0, which is written into x and reported as
        converged.

        Args:
            b (Array):
                Right-hand side of length n.
            x (Array):
                Initial guess, a floating point NumPy array of length n,
                updated in place by ``step``.
        Returns:
            bool:
                True if x already satisfies the stopping criterion.
        Raises:
            SolverError:
                DIM_MISMATCH / INVALID_INPUT for incompatible vectors.
        """
        b = self._check_rhs(b)
        if not isinstance(x, np.ndarray) or x.ndim != 1 or x.shape[0] != self._n:
            raise SolverError(SolverErrorMsg.DIM_MISMATCH,
                        f"Initial guess must be a NumPy array of shape ({self._n},), got {getattr(x, 'shape', type(x))}")
        if not np.issubdtype(x.dtype, np.inexact) or (np.iscomplexobj(b) and not np.iscomplexobj(x)):
            raise SolverError(SolverErrorMsg.INVALID_INPUT,
                        f"Initial guess of dtype {x.dtype} cannot be updated in place for a right-hand side of dtype {b.dtype}")

        self._status    = SolverStatus.INITIALIZING
        self._num_iter  = 0
        self._rhs_norm  = vnorm(b)
        if self._rhs_norm == 0.0:
            x[...]          = 0
            self._error     = 0.0
            self._status    = SolverStatus.CONVERGED
            return True
        return False

    @abstractmethod
    def step(self, x: Array) -> bool:
        """
        Perform one iteration, updating x in place and incrementing the
        iteration count. In a terminal state no work is done.

        Returns:
            bool:
                True if the stopping criterion is met.
        """
        raise NotImplementedError(str(SolverErrorMsg.METHOD_NOT_IMPL))

    def finalize_iteration(self, x: Array):
        ''' Hook called once at the end of ``solve``. '''
        pass

    # -------------------------------------------------------------------------
    #! Solve
    # -------------------------------------------------------------------------

    def _prepare_x0(self, b: Array, x0: Optional[Any]) -> Array:
        dtype = np.result_type(b.dtype, DEFAULT_NP_FLOAT_TYPE)
        if x0 is None:
            return np.zeros(self._n, dtype=dtype)
        try:
            x0 = ensure_vector(x0, self._n, name="Initial guess")
        except ValueError as e:
            raise SolverError(SolverErrorMsg.DIM_MISMATCH, str(e)) from e
        return np.array(x0, dtype=np.result_type(dtype, x0.dtype), copy=True)

    def _run(self, b: Any, x0: Optional[Any], history: Optional[List[float]]) -> SolverResult:
        if not self._lock.acquire(blocking=False):
            raise SolverError(SolverErrorMsg.SOLVE_IN_PROGRESS,
                        f"{self._name} instance is already solving, use a separate instance per concurrent solve.")
        try:
            b           = self._check_rhs(b)
            x           = self._prepare_x0(b, x0)
            converged   = self.init_iteration(b, x)
            if history is not None:
                history.append(self._error)

            try:
                while not converged and self._num_iter < self._max_iters:
                    converged       = self.step(x)
                    if history is not None:
                        history.append(self._error)
            except BreakdownError as e:
                self.log(f"Breakdown after {self._num_iter} iterations: {e.message}", log='error', color='red')
                raise

            if converged:
                self._status = SolverStatus.CONVERGED
                self.log(f"Converged in {self._num_iter} iterations, relative residual {self._error:.3e}",
                        lvl=1, color=self._dcol, log='info' if self._verbose else 'debug')
            else:
                self._status = SolverStatus.MAX_ITERATIONS_REACHED
                self.log(f"Did not converge within {self._max_iters} iterations, relative residual {self._error:.3e} "
                        f"(tolerance {self._tol:.1e})", log='warning', color='yellow')

            self.finalize_iteration(x)
            return SolverResult(x               = x,
                                converged       = converged,
                                iterations      = self._num_iter,
                                residual_norm   = self._error * self._rhs_norm,
                                status          = self._status)
        finally:
            self._lock.release()

    def solve(self, b: Any, x0: Optional[Any] = None) -> SolverResult:
        """
        Solve Ax = b.

        Args:
            b (Any):
                Right-hand side of length n.
            x0 (Any, optional):
                Initial guess (copied), zero if None.
        Returns:
            SolverResult:
                Solution, convergence flag, iterations, residual norm and status.
        Raises:
            BreakdownError:
                If breakdown detection is enabled and the recurrence breaks down.
            SolverError:
                On invalid input or a concurrent solve on this instance.
        """
        return self._run(b, x0, None)

    def solve_detailed(self, b: Any, x0: Optional[Any] = None) -> Tuple[SolverResult, Array]:
        """
        Solve Ax = b and record the relative residual after the initialization
        and after every iteration.

        Returns:
            (SolverResult, Array):
                The result and the error history of length ``iterations + 1``.
        """
        history: List[float] = []
        result = self._run(b, x0, history)
        return result, np.asarray(history, dtype=np.float64)

    # -------------------------------------------------------------------------

    def detail(self) -> str:
        ''' Human readable description of the configuration. '''
        return (f"{self._name}\n"
                f"    size            : {self._n}\n"
                f"    operator        : {self._mat!r}\n"
                f"    preconditioner  : {self._precond!r}\n"
                f"    tolerance       : {self._tol:.3e}\n"
                f"    max iterations  : {self._max_iters}\n"
                f"    status          : {self._status}")

    def __repr__(self) -> str:
        return (f"{self.__class__.__name__}(n={self._n}, tol={self._tol:.1e}, "
                f"max_iters={self._max_iters}, status={self._status.name})")

# -----------------------------------------------------------------------------
#! EOF
# -----------------------------------------------------------------------------
