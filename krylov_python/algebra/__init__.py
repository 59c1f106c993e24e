"""
A module for iterative linear algebra.

Key functionalities provided include:
    - Linear operators accessed through their action on vectors (dense, sparse, matrix-free).
    - Preconditioners for symmetric positive definite systems.
    - The preconditioned Conjugate Gradient solver with Lanczos spectral estimation.

This module uses lazy imports, submodules are only loaded when accessed.

# -----------------------------------------------------------------------------------------------
Description     : Iterative Algebra Module with Lazy Imports
# -----------------------------------------------------------------------------------------------
"""

from typing import TYPE_CHECKING
import importlib

# -----------------------------------------------------------------------------------------------
# Lazy Import Configuration
# -----------------------------------------------------------------------------------------------

# Mapping of attribute names to their module paths and actual attribute names
_LAZY_IMPORTS = {
    # Solver-related imports
    'SolverType'            : ('.solver', 'SolverType'),
    'SolverStatus'          : ('.solver', 'SolverStatus'),
    'SolverError'           : ('.solver', 'SolverError'),
    'SolverErrorMsg'        : ('.solver', 'SolverErrorMsg'),
    'SolverResult'          : ('.solver', 'SolverResult'),
    'BreakdownError'        : ('.solver', 'BreakdownError'),
    'IterativeSolver'       : ('.solver', 'IterativeSolver'),
    'CgSolver'              : ('.solvers.cg', 'CgSolver'),
    'choose_solver'         : ('.solvers', 'choose_solver'),
    # Operators and preconditioners
    'LinearOperator'        : ('.operators', 'LinearOperator'),
    'MatrixOperator'        : ('.operators', 'MatrixOperator'),
    'FunctionOperator'      : ('.operators', 'FunctionOperator'),
    'as_operator'           : ('.operators', 'as_operator'),
    'Preconditioner'        : ('.preconditioners', 'Preconditioner'),
    'choose_precond'        : ('.preconditioners', 'choose_precond'),
    # Spectral estimation
    'LanczosMatrix'         : ('.eigen.lanczos', 'LanczosMatrix'),
    'SpectralEstimate'      : ('.eigen.result', 'SpectralEstimate'),
    # Utility imports from common
    'get_logger'            : ('..common.flog', 'get_global_logger'),
    # Submodules (lazy)
    'solvers'               : ('.solvers', None),
    'operators'             : ('.operators', None),
    'preconditioners'       : ('.preconditioners', None),
    'eigen'                 : ('.eigen', None),
    'utils'                 : ('.utils', None),
}

# Cache for lazily loaded modules/attributes
_LAZY_CACHE = {}

# For type checking, import types without runtime overhead
if TYPE_CHECKING:
    from .solver import SolverType, SolverStatus, SolverError, SolverErrorMsg, SolverResult, BreakdownError, IterativeSolver
    from .solvers import choose_solver
    from .solvers.cg import CgSolver
    from .operators import LinearOperator, MatrixOperator, FunctionOperator, as_operator
    from .preconditioners import Preconditioner, choose_precond
    from .eigen.lanczos import LanczosMatrix
    from .eigen.result import SpectralEstimate
    from ..common.flog import get_global_logger as get_logger

# -----------------------------------------------------------------------------------------------
# Lazy Import Implementation
# -----------------------------------------------------------------------------------------------

def _lazy_import(name: str):
    """
    Lazily import a module or attribute based on _LAZY_IMPORTS configuration.
    """
    if name in _LAZY_CACHE:
        return _LAZY_CACHE[name]

    if name not in _LAZY_IMPORTS:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

    module_path, attr_name  = _LAZY_IMPORTS[name]
    module                  = importlib.import_module(module_path, package=__name__)
    result                  = module if attr_name is None else getattr(module, attr_name)

    _LAZY_CACHE[name] = result
    return result

def __getattr__(name: str):
    """
    Module-level __getattr__ for lazy imports.
    """
    return _lazy_import(name)

def __dir__():
    return sorted(list(globals().keys()) + list(_LAZY_IMPORTS.keys()))

__all__ = list(_LAZY_IMPORTS.keys())

# -----------------------------------------------------------------------------------------------
#! EOF
# -----------------------------------------------------------------------------------------------
