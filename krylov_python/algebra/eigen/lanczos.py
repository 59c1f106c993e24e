'''
file:       krylov_python/algebra/eigen/lanczos.py

Lanczos tridiagonal matrix reconstructed from the scalar coefficients of the
(preconditioned) Conjugate Gradient recurrence.

CG with step lengths alpha_k and direction updates beta_k implicitly runs the
Lanczos process on M^{-1}A. The Lanczos matrix

$$
T_k =
\\begin{pmatrix}
\\delta_0 & \\gamma_0 &          &              \\\\
\\gamma_0 & \\delta_1 & \\ddots   &              \\\\
         & \\ddots   & \\ddots   & \\gamma_{k-2} \\\\
         &          & \\gamma_{k-2} & \\delta_{k-1}
\\end{pmatrix},
\\qquad
\\delta_j = \\frac{\\beta_{j-1}}{\\alpha_{j-1}} + \\frac{1}{\\alpha_j},
\\quad
\\gamma_j = -\\frac{\\sqrt{\\beta_j}}{\\alpha_j},
$$

with delta_0 = 1/alpha_0, has Ritz values approximating the extreme
eigenvalues of M^{-1}A.

The diagonal entry delta_j is assembled in two different CG steps: the
beta/alpha part when the direction is updated at the end of step j-1, the
1/alpha part once alpha_j is known in step j. ``LanczosRecurrence`` keeps the
half-assembled entry explicitly as ``pending`` so that only finished entries
ever enter T_k.

References:
    - Golub, G. H., & Van Loan, C. F. (2013). Matrix Computations (4th ed.). Section 11.3.
    - Saad, Y. (2003). Iterative Methods for Sparse Linear Systems (2nd ed.). Section 6.7.3.
'''

from typing import List, Optional, Sequence

import numpy as np
import scipy.linalg as sla
import scipy.sparse as sps
from numpy.typing import NDArray

# ----------------------------------------------------------------------------------------
#! Recurrence state
# ----------------------------------------------------------------------------------------

class LanczosRecurrence:
    """
    Accumulates the Lanczos coefficients from the CG scalars.

    State:
        delta   : finalized diagonal entries
        gamma   : off-diagonal entries
        pending : the open diagonal entry (None when no entry is open)

    Protocol per solve:
        reset()                         -> pending = 0
        CG step k:
            add_step_length(alpha_k)    -> delta.append(pending + 1/alpha_k), pending = None
            (not converged)
            add_direction_update(alpha_k, beta_k)
                                        -> gamma.append(-sqrt(beta_k)/alpha_k), pending = beta_k/alpha_k
    """

    def __init__(self):
        self._delta         : List[float]       = []
        self._gamma         : List[float]       = []
        self._pending       : Optional[float]   = None
        self._capacity_hint : int               = 0

    # ------------------------------------------------------------------------------------

    def reset(self, capacity_hint: int = 0):
        """
        Clear the sequences and open the first diagonal entry with value 0.

        Args:
            capacity_hint (int):
                Expected number of steps. Informational only, Python lists grow on demand.
        """
        self._delta.clear()
        self._gamma.clear()
        self._pending       = 0.0
        self._capacity_hint = max(int(capacity_hint), 0)

    def clear(self):
        ''' Drop everything, no entry is left open. '''
        self._delta.clear()
        self._gamma.clear()
        self._pending       = None

    def add_step_length(self, alpha: float):
        ''' Finalize the pending diagonal entry with 1/alpha. '''
        if self._pending is None:
            raise RuntimeError("No pending Lanczos diagonal entry, call reset() or add_direction_update() first.")
        self._delta.append(float(self._pending + 1.0 / np.float64(alpha)))
        self._pending = None

    def add_direction_update(self, alpha: float, beta: float):
        ''' Append the off-diagonal entry of this step and open the next diagonal entry with beta/alpha. '''
        if self._pending is not None:
            raise RuntimeError("The pending Lanczos diagonal entry has not been finalized by add_step_length().")
        self._gamma.append(float(-np.sqrt(np.float64(beta)) / alpha))
        self._pending = float(np.float64(beta) / alpha)

    # ------------------------------------------------------------------------------------

    @property
    def steps(self) -> int:
        ''' Number of finalized diagonal entries, i.e. the size of T_k. '''
        return len(self._delta)

    @property
    def pending(self) -> Optional[float]:
        return self._pending

    @property
    def delta(self) -> NDArray:
        return np.asarray(self._delta, dtype=np.float64)

    @property
    def gamma(self) -> NDArray:
        return np.asarray(self._gamma, dtype=np.float64)

    @property
    def capacity_hint(self) -> int:
        return self._capacity_hint

    def is_empty(self) -> bool:
        return self.steps == 0

    def matrix(self) -> "LanczosMatrix":
        """
        The Lanczos matrix T_k of the finalized entries.

        The off-diagonal of the last direction update belongs to an unfinished
        entry and is not part of T_k.

        Raises:
            ValueError:
                If no Lanczos step has been completed.
        """
        k = self.steps
        if k == 0:
            raise ValueError("No completed Lanczos step, the Lanczos matrix is undefined.")
        return LanczosMatrix(self._gamma[:k - 1], self._delta)

    def __len__(self) -> int:
        return self.steps

    def __repr__(self) -> str:
        return f"LanczosRecurrence(steps={self.steps}, pending={self._pending})"

# ----------------------------------------------------------------------------------------
#! Tridiagonal matrix
# ----------------------------------------------------------------------------------------

class LanczosMatrix:
    """
    Symmetric tridiagonal matrix T with T[i, i] = delta[i] and
    T[i, i+1] = T[i+1, i] = gamma[i].

    Args:
        gamma (Sequence[float]):
            Off-diagonal, length n - 1.
        delta (Sequence[float]):
            Diagonal, length n >= 1.
    """

    def __init__(self, gamma: Sequence[float], delta: Sequence[float]):
        self._delta = np.asarray(delta, dtype=np.float64).reshape(-1)
        self._gamma = np.asarray(gamma, dtype=np.float64).reshape(-1)
        if self._delta.size == 0:
            raise ValueError("The Lanczos matrix needs at least one diagonal entry.")
        if self._gamma.size != self._delta.size - 1:
            raise ValueError(f"Off-diagonal has length {self._gamma.size}, expected {self._delta.size - 1}.")
        self._eigenvalues: Optional[NDArray] = None

    @property
    def size(self) -> int:
        return self._delta.size

    @property
    def delta(self) -> NDArray:
        return self._delta.copy()

    @property
    def gamma(self) -> NDArray:
        return self._gamma.copy()

    # ------------------------------------------------------------------------------------

    def matrix_form(self, sparse: bool = False):
        """
        Explicit symmetric form of T.

        Args:
            sparse (bool):
                Return a scipy.sparse CSR matrix instead of a dense array.
        """
        if sparse:
            return sps.diags([self._gamma, self._delta, self._gamma], offsets=[-1, 0, 1],
                            shape=(self.size, self.size), format='csr')
        t = np.diag(self._delta)
        if self.size > 1:
            t += np.diag(self._gamma, k=1) + np.diag(self._gamma, k=-1)
        return t

    def eigenvalues(self) -> NDArray:
        ''' All eigenvalues of T in ascending order (dense symmetric solver on the explicit form). '''
        if self._eigenvalues is None:
            self._eigenvalues = sla.eigh(self.matrix_form(), eigvals_only=True)
        return self._eigenvalues.copy()

    def _extreme_eigenvalue(self, index: int) -> float:
        if self.size == 1:
            return float(self._delta[0])
        w = sla.eigh_tridiagonal(self._delta, self._gamma, eigvals_only=True,
                                select='i', select_range=(index, index))
        return float(w[0])

    def min_eigenvalue(self) -> float:
        return self._extreme_eigenvalue(0)

    def max_eigenvalue(self) -> float:
        return self._extreme_eigenvalue(self.size - 1)

    def condition_number(self) -> float:
        """
        Ratio of the largest to the smallest eigenvalue.

        Returns inf when the smallest eigenvalue is zero (singular T).
        """
        lmin = self.min_eigenvalue()
        lmax = self.max_eigenvalue()
        if lmin == 0.0:
            return float('inf')
        return lmax / lmin

    def __repr__(self) -> str:
        return f"LanczosMatrix(size={self.size})"

# ----------------------------------------------------------------------------------------
#! EOF
# ----------------------------------------------------------------------------------------
