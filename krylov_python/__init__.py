# krylov_python/__init__.py

"""
Krylov Python - preconditioned Conjugate Gradient with Lanczos spectral estimation.

Solves A x = b for symmetric positive (semi)definite operators accessed only
through their action on vectors, and recovers the extreme eigenvalues and the
condition number of the preconditioned operator from the CG coefficients.

Modules:
--------
- algebra   : Operators, preconditioners, the CG solver and the Lanczos estimator
- common    : Logging

Examples:
---------
>>> import numpy as np
>>> from krylov_python.algebra.solvers.cg import CgSolver
>>> solver = CgSolver(np.diag([1.0, 2.0, 4.0]), calc_eigenvalues=True)
>>> result = solver.solve(np.ones(3))
>>> result.x, solver.get_condition_number()

Version : 0.1.0
License : MIT
"""

import importlib

# Package metadata
__version__         = "0.1.0"
__license__         = "MIT"

MODULE_DESCRIPTION  = "Preconditioned Conjugate Gradient solver with embedded Lanczos spectral estimation."

# List of available modules (not imported by default)
__all__             = ["algebra", "common", "CgSolver", "choose_solver", "choose_precond"]

_ALIASES            = {
    "CgSolver"          : (".algebra.solvers.cg", "CgSolver"),
    "choose_solver"     : (".algebra.solvers", "choose_solver"),
    "choose_precond"    : (".algebra.preconditioners", "choose_precond"),
}

def get_module_description(module_name):
    """
    Get the description of a specific module in the krylov_python package.
    """
    descriptions = {
        "algebra"   : "Linear operators, preconditioners, the CG solver and the Lanczos spectral estimator.",
        "common"    : "Console and file logging.",
    }
    return descriptions.get(module_name, "Module not found.")

# Lazy import subpackages on attribute access (PEP 562)
def __getattr__(name):
    if name in _ALIASES:
        module_path, attr = _ALIASES[name]
        return getattr(importlib.import_module(module_path, __name__), attr)
    if name in __all__:
        return importlib.import_module(f".{name}", __name__)
    raise AttributeError(f"module '{__name__}' has no attribute '{name}'")

def __dir__():
    return sorted(list(globals().keys()) + __all__)

# ---------------------------------------------------------------------
#! EOF
# ---------------------------------------------------------------------
