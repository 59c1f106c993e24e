# file        :   krylov_python/algebra/utils.py

'''
This module provides the numerical configuration shared by the operators,
preconditioners and solvers.

- It reads the process environment once at import time
  (``PY_FLOATING_POINT`` selects the default floating point precision).
- It provides the ``Array`` type alias and small helpers for validating
  vectors passed to the solvers.
'''

import os
from typing import Optional, Type, TypeAlias, Any

import numpy as np

# ---------------------------------------------------------------------
#! Enviroment variable names
# ---------------------------------------------------------------------

PY_FLOATING_POINT_STR   : str               = "PY_FLOATING_POINT"

# ---------------------------------------------------------------------
#! SET VARIABLES
# ---------------------------------------------------------------------

PREFER_32BIT            : bool              = os.environ.get(PY_FLOATING_POINT_STR, "64bit").lower() in ["32bit", "32", "float32", "float"]

DEFAULT_NP_FLOAT_TYPE   : Type              = np.float32 if PREFER_32BIT else np.float64

#! Type Aliases
Array                   : TypeAlias         = np.ndarray

# ---------------------------------------------------------------------
#! Helpers
# ---------------------------------------------------------------------

def ensure_vector(x        : Any,
                n           : Optional[int]     = None,
                dtype       : Optional[Type]    = None,
                name        : str               = "vector") -> Array:
    """
    Convert ``x`` into a one-dimensional NumPy array.

    Column vectors of shape (n, 1) are flattened, anything with more than one
    column is rejected since the solvers handle a single right-hand side.

    Parameters:
        x (Any):
            Array-like input.
        n (int, optional):
            Expected length.
        dtype (Type, optional):
            Target dtype. Integer inputs are promoted to the default float type.
        name (str):
            Name used in the error message.
    Returns:
        Array:
            The vector (a view of ``x`` whenever no conversion was needed).
    Raises:
        ValueError:
            If the shape is not compatible.
    """
    arr = np.asarray(x, dtype=dtype)
    if dtype is None and not np.issubdtype(arr.dtype, np.inexact):
        arr = arr.astype(DEFAULT_NP_FLOAT_TYPE)
    if arr.ndim == 2 and arr.shape[1] == 1:
        arr = arr.reshape(-1)
    if arr.ndim != 1:
        raise ValueError(f"{name} must be one-dimensional, got shape {arr.shape}")
    if n is not None and arr.shape[0] != n:
        raise ValueError(f"{name} has length {arr.shape[0]}, expected {n}")
    return arr

def vnorm(x: Array) -> float:
    ''' Euclidean norm as a Python float. '''
    return float(np.sqrt(np.real(np.vdot(x, x))))

# ---------------------------------------------------------------------
#! EOF
# ---------------------------------------------------------------------
