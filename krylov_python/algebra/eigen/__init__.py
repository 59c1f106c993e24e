"""
Spectral estimation from Krylov recurrences.

- LanczosRecurrence : Lanczos coefficients accumulated from the CG scalars
- LanczosMatrix     : the symmetric tridiagonal matrix and its eigenvalues
- SpectralEstimate  : result container, SpectralError for missing data
"""

from .lanczos import LanczosRecurrence, LanczosMatrix
from .result import SpectralEstimate, SpectralError

__all__ = ["LanczosRecurrence", "LanczosMatrix", "SpectralEstimate", "SpectralError"]
