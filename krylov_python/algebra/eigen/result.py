"""
Spectral Estimate Result Types

Result container for the spectral information recovered from a Krylov solve.
"""

from enum import Enum, unique
from typing import Optional, NamedTuple

import numpy as np
from numpy.typing import NDArray

@unique
class SpectralError(Enum):
    """
    Why no spectral estimate is available.
    """
    NOT_ENABLED = 1     # estimation was switched off for the last solve
    NO_DATA     = 2     # no solve has completed a Lanczos step yet
    NON_FINITE  = 3     # the coefficients contain NaN or Inf

    def __str__(self):
        return self.name.replace('_', ' ').title()

    @property
    def message(self) -> str:
        match self:
            case SpectralError.NOT_ENABLED:
                return ("Eigenvalues were not computed, set set_calc_eigenvalues(True) "
                        "and call solve with an arbitrary right hand side.")
            case SpectralError.NO_DATA:
                return ("No completed Lanczos step is available, the last solve converged "
                        "before the first iteration or no solve has been performed.")
            case SpectralError.NON_FINITE:
                return ("The Lanczos coefficients are not finite, the last solve produced NaN or Inf "
                        "(operator or preconditioner not positive definite with check_breakdown=False).")

# ---------------------------------------------------------------------------------

class SpectralEstimate(NamedTuple):
    r"""
    Spectral estimate of the (preconditioned) operator M^{-1}A.

    Attributes:
        eigenvalues:
            Eigenvalues of the Lanczos matrix T_k, ascending. Empty when unavailable.
        min_eigenvalue:
            Smallest Ritz value (NaN when unavailable).
        max_eigenvalue:
            Largest Ritz value (NaN when unavailable).
        condition_number:
            max_eigenvalue / min_eigenvalue (NaN when unavailable).
        error:
            None on success, otherwise the reason the estimate is missing.
    """
    eigenvalues         : NDArray
    min_eigenvalue      : float
    max_eigenvalue      : float
    condition_number    : float
    error               : Optional[SpectralError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def failed(cls, error: SpectralError) -> "SpectralEstimate":
        return cls(np.zeros(0), float('nan'), float('nan'), float('nan'), error)

    def __repr__(self):
        if self.error is not None:
            return f"SpectralEstimate(error={self.error.name})"
        return (f"SpectralEstimate(k={len(self.eigenvalues)}, "
                f"min={self.min_eigenvalue:.6g}, max={self.max_eigenvalue:.6g}, "
                f"cond={self.condition_number:.6g})")

# ------------------------------------------------------------------------------------------------
#! EOF
# ------------------------------------------------------------------------------------------------
