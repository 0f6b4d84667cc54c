"""Nonlinear program container and solvers.

Available solvers:
- 'scipy': SciPy SLSQP (default) or trust-constr
"""

from sktrajopt.solvers.base import BaseSolver
from sktrajopt.solvers.base import SolutionResult
from sktrajopt.solvers.base import SolverResult
from sktrajopt.solvers.mathematical_program import Binding
from sktrajopt.solvers.mathematical_program import FunctionEvaluator
from sktrajopt.solvers.mathematical_program import MathematicalProgram


def create_solver(solver_type='scipy', **kwargs):
    """Create a nonlinear program solver.

    Parameters
    ----------
    solver_type : str
        Solver type. Only ``'scipy'`` is available.
    **kwargs
        Solver-specific options.

    Returns
    -------
    BaseSolver
        Solver instance.
    """
    if solver_type == 'scipy':
        from sktrajopt.solvers.scipy_solver import ScipySolver
        return ScipySolver(**kwargs)
    else:
        raise ValueError(f"Unknown solver type: {solver_type}")


__all__ = [
    'BaseSolver',
    'Binding',
    'FunctionEvaluator',
    'MathematicalProgram',
    'SolutionResult',
    'SolverResult',
    'create_solver',
]


# Lazy import for direct access
def __getattr__(name):
    if name == 'ScipySolver':
        from sktrajopt.solvers.scipy_solver import ScipySolver
        return ScipySolver
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
