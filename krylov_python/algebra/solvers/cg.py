r'''
file:       krylov_python/algebra/solvers/cg.py

Implements the preconditioned Conjugate Gradient (CG) iteration for linear
systems :math:`Ax = b` with a symmetric positive-definite (SPD) operator
:math:`A`, together with the Lanczos estimate of the spectrum of
:math:`M^{-1}A` obtained from the CG scalars for free.

Mathematical Formulation (Preconditioned CG):
-------------------------------------------
1.  Initialize:
    *   :math:`r_0 = b - Ax_0`              (initial residual)
    *   :math:`z_0 = M^{-1}r_0`             (apply preconditioner)
    *   :math:`p_0 = z_0`                   (initial search direction)
    *   :math:`\rho_0 = r_0^T z_0`

2.  Iterate :math:`k = 0, 1, 2, \dots` until convergence:
    *   :math:`q_k = A p_k`
    *   :math:`\alpha_k = \rho_k / (p_k^T q_k)`         (step length)
    *   :math:`x_{k+1} = x_k + \alpha_k p_k`            (update solution)
    *   :math:`r_{k+1} = r_k - \alpha_k q_k`            (update residual)
    *   Check convergence: :math:`\|r_{k+1}\|_2 < \epsilon \|b\|_2`
    *   :math:`z_{k+1} = M^{-1} r_{k+1}`
    *   :math:`\rho_{k+1} = r_{k+1}^T z_{k+1}`, :math:`\beta_k = \rho_{k+1} / \rho_k`
    *   :math:`p_{k+1} = z_{k+1} + \beta_k p_k`

The residual is updated by the recurrence and never recomputed from
:math:`b - Ax`, so it drifts slowly away from the true residual.

Lanczos coefficients (see ``eigen/lanczos.py``): the diagonal entry
:math:`\delta_k = \beta_{k-1}/\alpha_{k-1} + 1/\alpha_k` is completed with
:math:`1/\alpha_k` in step k, *before* the convergence check, while
:math:`\gamma_k = -\sqrt{\beta_k}/\alpha_k` and the next partial diagonal
:math:`\beta_k/\alpha_k` are only produced when step k does not converge.

References:
-----------
    - Hestenes, M. R., & Stiefel, E. (1952). Methods of Conjugate Gradients for
        Solving Linear Systems. J. Res. Nat. Bur. Standards, 49(6), 409.
    - Saad, Y. (2003). Iterative Methods for Sparse Linear Systems (2nd ed.). SIAM. Chapter 6.
'''

from typing import Optional, Any, Dict

import numpy as np

from ..solver import (IterativeSolver, SolverType, SolverStatus, SolverError,
                    SolverErrorMsg, BreakdownError)
from ..eigen.lanczos import LanczosRecurrence
from ..eigen.result import SpectralEstimate, SpectralError
from ..utils import Array, vnorm

# -----------------------------------------------------------------------------

_BREAKDOWN_TOL = 1e-14

# -----------------------------------------------------------------------------
#! Conjugate gradient
# -----------------------------------------------------------------------------

class CgSolver(IterativeSolver):
    '''
    Preconditioned Conjugate Gradient solver with optional Lanczos spectral
    estimation.

    Example:
        >>> solver = CgSolver(a, precond="jacobi", tol=1e-10, calc_eigenvalues=True)
        >>> result = solver.solve(b)
        >>> result.converged, solver.get_condition_number()

    The iteration can also be driven by hand:
        >>> x = np.zeros(n)
        >>> done = solver.init_iteration(b, x)
        >>> while not done and solver.iterations < 100:
        ...     done = solver.step(x)

    Breakdown detection (``check_breakdown=True``) raises BreakdownError when
    p^T A p is not positive relative to ||p|| ||A p|| (tolerance
    ``breakdown_tol``) or when r^T M^{-1} r is not positive, i.e. when A or M
    is not positive definite. With ``check_breakdown=False`` the plain
    recurrence runs and NaN/Inf only shows up as non-convergence.
    '''
    _solver_type    = SolverType.CG
    _name           = "CG"

    def __init__(self,
                mat                 : Any,
                precond             : Any               = None,
                tol                 : float             = 1e-10,
                max_iters           : int               = 1000,
                *,
                n                   : Optional[int]     = None,
                calc_eigenvalues    : bool              = False,
                check_breakdown     : bool              = True,
                breakdown_tol       : float             = _BREAKDOWN_TOL,
                verbose             : bool              = False):
        super().__init__(mat, precond, tol, max_iters, n=n, verbose=verbose)
        self._calc_eigs         = bool(calc_eigenvalues)    # flag for the next solve
        self._eigs_active       = False                     # flag of the current/last solve
        self._check_breakdown   = bool(check_breakdown)
        self._breakdown_tol     = float(breakdown_tol)
        self._lanczos           = LanczosRecurrence()

        # work vectors
        self._res               : Optional[Array] = None    # r
        self._dir               : Optional[Array] = None    # p
        self._pre               : Optional[Array] = None    # z = M^{-1} r
        self._tmp               : Optional[Array] = None    # q = A p
        self._rho               = 0.0

    # -------------------------------------------------------------------------
    #! Configuration
    # -------------------------------------------------------------------------

    def set_calc_eigenvalues(self, flag: bool) -> "CgSolver":
        ''' Enable the Lanczos estimate for the following solves (not retroactive). '''
        self._calc_eigs = bool(flag)
        return self

    @property
    def calc_eigenvalues(self) -> bool:
        return self._calc_eigs

    @property
    def check_breakdown(self) -> bool:
        return self._check_breakdown

    @check_breakdown.setter
    def check_breakdown(self, value: bool):
        self._check_breakdown = bool(value)

    @property
    def lanczos(self) -> LanczosRecurrence:
        ''' Lanczos coefficients of the last solve. '''
        return self._lanczos

    @property
    def residual(self) -> Optional[Array]:
        ''' Recurrence residual r of the current/last solve. '''
        return self._res

    @classmethod
    def default_options(cls) -> Dict[str, Any]:
        opts = super().default_options()
        opts.update({
            "CalcEigenvalues"   : False,
            "CheckBreakdown"    : True,
        })
        return opts

    def options(self) -> Dict[str, Any]:
        opts = super().options()
        opts.update({
            "CalcEigenvalues"   : self._calc_eigs,
            "CheckBreakdown"    : self._check_breakdown,
        })
        return opts

    def _set_option(self, key: str, value: Any) -> bool:
        match key:
            case "CalcEigenvalues":
                self.set_calc_eigenvalues(value)
            case "CheckBreakdown":
                self.check_breakdown = value
            case _:
                return super()._set_option(key, value)
        return True

    # -------------------------------------------------------------------------
    #! Breakdown
    # -------------------------------------------------------------------------

    def _breakdown(self, msg: str):
        self._status = SolverStatus.BREAKDOWN
        raise BreakdownError(msg, iteration=self._num_iter)

    def _check_curvature(self, pq: float):
        ''' p^T A p must be finite and (relatively) positive. '''
        if not np.isfinite(pq):
            self._breakdown(f"p^T A p is not finite ({pq}) at iteration {self._num_iter}.")
        scale = vnorm(self._dir) * vnorm(self._tmp)
        if pq <= self._breakdown_tol * scale:
            self._breakdown(f"p^T A p = {pq:.4e} is not positive (relative to {scale:.4e}) at iteration "
                            f"{self._num_iter}, the operator is not positive definite.")

    def _check_rho(self, rho: float):
        ''' r^T M^{-1} r must be finite and positive for a nonzero residual. '''
        if not np.isfinite(rho) or rho <= 0.0:
            self._breakdown(f"r^T M^(-1) r = {rho} is not positive at iteration {self._num_iter}, "
                            "the preconditioner is not positive definite.")

    # -------------------------------------------------------------------------
    #! State machine
    # -------------------------------------------------------------------------

    def init_iteration(self, b: Array, x: Array) -> bool:
        self._status        = SolverStatus.INITIALIZING
        self._eigs_active   = self._calc_eigs
        if self._eigs_active:
            self._lanczos.reset(self._max_iters // 3)
        else:
            self._lanczos.clear()

        if super().init_iteration(b, x):
            return True

        b               = self._check_rhs(b)
        self._res       = b - self._mat.apply(x)
        self._error     = vnorm(self._res) / self._rhs_norm
        if self._error < self._tol:
            self._status = SolverStatus.CONVERGED
            return True

        self._pre       = self._precond.apply(self._res)
        self._dir       = np.array(self._pre, copy=True)
        self._rho       = np.real(np.vdot(self._res, self._pre))
        if self._check_breakdown:
            self._check_rho(self._rho)

        self._status    = SolverStatus.ITERATING
        return False

    def step(self, x: Array) -> bool:
        if self._status.is_terminal:
            return self._status is SolverStatus.CONVERGED
        if self._status is not SolverStatus.ITERATING:
            raise SolverError(SolverErrorMsg.NOT_INITIALIZED, "Call init_iteration(b, x) before step(x).")

        self._num_iter += 1
        self._tmp   = self._mat.apply(self._dir)
        pq          = np.real(np.vdot(self._dir, self._tmp))
        if self._check_breakdown:
            self._check_curvature(pq)

        with np.errstate(divide='ignore', invalid='ignore'):
            alpha   = self._rho / pq
            if self._eigs_active:
                self._lanczos.add_step_length(alpha)

            x          += alpha * self._dir
            self._res  -= alpha * self._tmp

        self._error = vnorm(self._res) / self._rhs_norm
        if self._error < self._tol:
            self._status = SolverStatus.CONVERGED
            return True

        self._pre   = self._precond.apply(self._res)
        rho_old     = self._rho
        self._rho   = np.real(np.vdot(self._res, self._pre))
        if self._check_breakdown:
            self._check_rho(self._rho)

        with np.errstate(divide='ignore', invalid='ignore'):
            beta    = self._rho / rho_old
            if self._eigs_active:
                self._lanczos.add_direction_update(alpha, beta)

            self._dir  *= beta
            self._dir  += self._pre

        if self._verbose:
            self.log(f"iteration {self._num_iter}: relative residual {self._error:.4e}", log='debug', lvl=2)
        return False

    def finalize_iteration(self, x: Array):
        if self._eigs_active and self._verbose and self._lanczos.steps > 0:
            est = self.estimate_spectrum()
            if not est.ok:
                self.log(f"Lanczos estimate unavailable: {est.error.message}", log='warning', color='yellow')
                return
            self.log(f"Lanczos estimate after {self._lanczos.steps} steps: "
                    f"lambda in [{est.min_eigenvalue:.4e}, {est.max_eigenvalue:.4e}], "
                    f"condition number {est.condition_number:.4e}", lvl=1, color=self._dcol)

    # -------------------------------------------------------------------------
    #! Spectral estimation
    # -------------------------------------------------------------------------

    def estimate_spectrum(self) -> SpectralEstimate:
        """
        Spectral estimate of M^{-1}A from the Lanczos coefficients of the last solve.

        Returns:
            SpectralEstimate:
                ``error`` is NOT_ENABLED if the last solve (or, before any
                solve, the configuration) has the estimation switched off,
                NO_DATA if no CG step has been completed and NON_FINITE if
                the unguarded recurrence left NaN/Inf in the coefficients.
        """
        enabled = self._eigs_active if self._status is not SolverStatus.UNINITIALIZED else self._calc_eigs
        if not enabled:
            return SpectralEstimate.failed(SpectralError.NOT_ENABLED)
        if self._lanczos.steps == 0:
            return SpectralEstimate.failed(SpectralError.NO_DATA)

        t       = self._lanczos.matrix()
        if not (np.all(np.isfinite(t.delta)) and np.all(np.isfinite(t.gamma))):
            return SpectralEstimate.failed(SpectralError.NON_FINITE)
        eigs    = t.eigenvalues()
        return SpectralEstimate(eigenvalues       = eigs,
                                min_eigenvalue    = t.min_eigenvalue(),
                                max_eigenvalue    = t.max_eigenvalue(),
                                condition_number  = t.condition_number())

    def get_condition_number(self) -> float:
        """
        Condition number estimate of M^{-1}A, or -1.0 (with a logged warning)
        if no spectral data is available.
        """
        est = self.estimate_spectrum()
        if est.error is not None:
            self._logger.warning(f"[{self._name}] Condition number not available: {est.error.message}")
            return -1.0
        return est.condition_number

    def get_eigenvalues(self) -> Array:
        """
        Ritz values (ascending), or an empty array (with a logged warning) if
        no spectral data is available.
        """
        est = self.estimate_spectrum()
        if est.error is not None:
            self._logger.warning(f"[{self._name}] Eigenvalues not available: {est.error.message}")
        return est.eigenvalues

    # -------------------------------------------------------------------------

    def detail(self) -> str:
        return (super().detail() + "\n"
                f"    eigenvalues     : {self._calc_eigs}\n"
                f"    check breakdown : {self._check_breakdown}")

# -----------------------------------------------------------------------------
#! EOF
# -----------------------------------------------------------------------------
