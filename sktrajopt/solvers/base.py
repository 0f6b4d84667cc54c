"""Base solver interface for nonlinear programs."""

from abc import ABC
from abc import abstractmethod
import enum

import numpy as np


class SolutionResult(enum.Enum):
    """Status reported by a solve.

    Only ``SOLUTION_FOUND`` means the returned point is feasible and
    locally optimal; callers must check it before trusting a solution.
    """

    SOLUTION_FOUND = 'solution_found'
    INFEASIBLE_CONSTRAINTS = 'infeasible_constraints'
    ITERATION_LIMIT = 'iteration_limit'
    UNKNOWN_ERROR = 'unknown_error'

    @property
    def success(self):
        return self is SolutionResult.SOLUTION_FOUND


class SolverResult:
    """Result of a nonlinear program solve.

    Attributes
    ----------
    x : ndarray
        Last iterate of the flat decision vector.
    status : SolutionResult
        Solve status.
    cost : float
        Final cost value.
    iterations : int
        Number of iterations.
    message : str
        Status message.
    info : dict
        Additional solver-specific information.
    """

    def __init__(
        self,
        x,
        status=SolutionResult.SOLUTION_FOUND,
        cost=0.0,
        iterations=0,
        message='',
        info=None,
    ):
        self.x = np.asarray(x, dtype=np.float64)
        self.status = status
        self.cost = cost
        self.iterations = iterations
        self.message = message
        self.info = info or {}

    @property
    def success(self):
        return self.status.success

    def __repr__(self):
        return '<SolverResult status={} cost={:.6g} iterations={}>'.format(
            self.status.name, self.cost, self.iterations)


class BaseSolver(ABC):
    """Abstract base class for nonlinear program solvers.

    Subclasses must implement the `solve` method.
    """

    def __init__(self, verbose=False):
        """Initialize solver.

        Parameters
        ----------
        verbose : bool
            Print optimization progress.
        """
        self.verbose = verbose

    @abstractmethod
    def solve(self, program, initial_guess=None):
        """Solve a mathematical program.

        Parameters
        ----------
        program : MathematicalProgram
            Program definition.
        initial_guess : ndarray, optional
            Flat initial decision vector. Defaults to
            ``program.initial_guess``.

        Returns
        -------
        SolverResult
            Optimization result.
        """
        pass

    def _validate_initial_guess(self, initial_guess, program):
        """Validate the flat initial guess.

        Raises
        ------
        ValueError
            If the guess size is incorrect.
        """
        if initial_guess is None:
            initial_guess = program.initial_guess
        initial_guess = np.asarray(initial_guess, dtype=np.float64)
        expected_shape = (program.num_vars,)

        if initial_guess.shape != expected_shape:
            raise ValueError(
                f"Initial guess shape {initial_guess.shape} does not match "
                f"expected shape {expected_shape}"
            )

        return initial_guess
