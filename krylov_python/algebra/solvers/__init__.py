'''
Iterative solvers for symmetric positive definite linear systems.

Initialization file for the solvers module. Exports the solver classes,
the SolverType enum, and the choose_solver factory function.
----------------------------------------------------------------
File        : krylov_python/algebra/solvers/__init__.py
Description : Factory function to choose and instantiate an iterative solver
              from a name, SolverType, integer code, class or instance. The
              concrete solver modules are imported lazily.
----------------------------------------------------------------
'''

import inspect
import importlib
from typing import Union, Any, Type

from ..solver import (IterativeSolver, SolverResult, SolverError, SolverErrorMsg,
                    SolverType, SolverStatus, BreakdownError)
from ...common.flog import get_global_logger

# -----------------------------------------------------------------------------
# Lazy Loading Configuration
# -----------------------------------------------------------------------------

_LAZY_MODULES = {
    'CgSolver'                  : '.cg',
}

# -----------------------------------------------------------------------------

def _resolve_solver_type(solver_id: Union[str, int, SolverType]) -> SolverType:
    if isinstance(solver_id, SolverType):
        return solver_id
    if isinstance(solver_id, str):
        name = solver_id.strip().replace('-', '_').upper()
        if name in SolverType.__members__:
            return SolverType[name]
        raise ValueError(f"Unknown solver identifier: '{solver_id}'")
    if isinstance(solver_id, int) and not isinstance(solver_id, bool):
        try:
            return SolverType(solver_id)
        except ValueError as e:
            raise ValueError(f"Unknown solver value: {solver_id}") from e
    raise TypeError(f"Unsupported type for solver_id: {type(solver_id)}")

def choose_solver(solver_id     : Union[str, int, SolverType, Type[IterativeSolver], IterativeSolver],
                mat             : Any   = None,
                precond         : Any   = None,
                **kwargs) -> IterativeSolver:
    """
    Factory function to select and instantiate an iterative solver.

    Parameters
    ----------
    solver_id : Union[str, int, SolverType, Type[IterativeSolver], IterativeSolver]
        Identifier for the solver. An instance is returned unchanged.
    mat : Any
        The system operator (matrix, sparse matrix, LinearOperator or callable).
    precond : Any, optional
        Preconditioner (instance, identifier or operator), identity if None.
    **kwargs
        Further constructor arguments (tol, max_iters, calc_eigenvalues, ...).
        Arguments the target constructor does not accept are dropped with a warning.

    Returns
    -------
    IterativeSolver
        An instance of the selected solver class.

    Examples
    --------
    >>> solver = choose_solver("cg", a, precond="jacobi", tol=1e-8)
    >>> solver = choose_solver(SolverType.CG, a, calc_eigenvalues=True)
    """
    logger = get_global_logger()

    if isinstance(solver_id, IterativeSolver):
        if mat is not None or precond is not None or kwargs:
            logger.warning("Solver instance provided; ignoring the remaining arguments.")
        return solver_id

    if isinstance(solver_id, type) and issubclass(solver_id, IterativeSolver):
        target_class = solver_id
    else:
        match _resolve_solver_type(solver_id):
            case SolverType.CG:
                from .cg import CgSolver as target_class
            case other:
                raise NotImplementedError(f"Solver type {other} is defined but not mapped to a class.")

    if mat is None:
        raise SolverError(SolverErrorMsg.MAT_NOT_SET, "choose_solver needs the system operator 'mat'.")

    valid_params    = inspect.signature(target_class.__init__).parameters
    filtered_kwargs = {k: v for k, v in kwargs.items() if k in valid_params and k != 'self'}
    ignored_kwargs  = {k: v for k, v in kwargs.items() if k not in filtered_kwargs}
    if ignored_kwargs:
        logger.warning(f"Ignoring invalid kwargs for {target_class.__name__}: {ignored_kwargs}")
    return target_class(mat, precond, **filtered_kwargs)

# -----------------------------------------------------------------------------
# Module-level __getattr__ for Lazy Imports
# -----------------------------------------------------------------------------

def __getattr__(name):
    """
    Lazy import of solver classes when accessed directly (e.g. solvers.CgSolver).
    """
    if name in _LAZY_MODULES:
        module = importlib.import_module(_LAZY_MODULES[name], package=__name__)
        return getattr(module, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

__all__ = [
    'IterativeSolver', 'SolverResult', 'SolverError', 'SolverErrorMsg', 'SolverType',
    'SolverStatus', 'BreakdownError', 'choose_solver',
    'CgSolver',
]

# -----------------------------------------------------------------------------
#! EOF
# -----------------------------------------------------------------------------
