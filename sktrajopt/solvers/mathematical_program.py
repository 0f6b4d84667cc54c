"""Nonlinear program container.

Decision variables are integer index arrays into one flat decision
vector, so a handle can be sliced, stacked and reshaped with plain NumPy
before it is bound to a cost or constraint. Matrix handles are laid out
column-major: one column (for example one knot of a trajectory) is a
contiguous block of the decision vector.

Values of costs and constraints are evaluated with the ``numpy``
backend; their Jacobians are taken with the program's differentiation
backend (``jax`` forward mode by default).
"""

from logging import getLogger

import numpy as np

from sktrajopt.backend import get_backend
from sktrajopt.errors import DimensionMismatchError
from sktrajopt.errors import SequencingError


logger = getLogger(__name__)


class FunctionEvaluator(object):
    """Wrap a plain callable ``fn(x)`` as an evaluator.

    The callable must only use operators and methods shared by NumPy and
    JAX arrays (``+``, ``*``, ``@``, indexing...), since it is evaluated
    with both.
    """

    def __init__(self, fn, num_outputs=None, name=None):
        self.fn = fn
        self.num_outputs = num_outputs
        self.name = name or getattr(fn, '__name__', 'function')

    def eval(self, x, backend=None):
        return self.fn(x)


def _as_evaluator(evaluator):
    if hasattr(evaluator, 'eval'):
        return evaluator
    if callable(evaluator):
        return FunctionEvaluator(evaluator)
    raise TypeError(
        'expected a callable or an object with eval(), got {}'.format(
            type(evaluator).__name__))


class Binding(object):
    """Evaluator bound to a subset of the decision variables.

    Attributes
    ----------
    evaluator : object
        Object exposing ``eval(x, backend)``.
    variables : numpy.ndarray
        Flat indices of the bound decision variables, in evaluation order.
    lower_bound, upper_bound : numpy.ndarray or None
        Constraint bounds; None for costs.
    name : str
        Name used in logs.
    """

    def __init__(self, evaluator, variables, lower_bound=None,
                 upper_bound=None, name=None):
        self.evaluator = evaluator
        self.variables = variables
        self.lower_bound = lower_bound
        self.upper_bound = upper_bound
        self.name = name or getattr(evaluator, 'name', None) \
            or evaluator.__class__.__name__

    @property
    def num_outputs(self):
        if self.lower_bound is None:
            return 1
        return self.lower_bound.size

    def evaluate(self, x):
        """Value of the bound evaluator at the flat decision vector ``x``."""
        backend = get_backend('numpy')
        value = self.evaluator.eval(x[self.variables], backend)
        return np.atleast_1d(np.asarray(value, dtype=np.float64)).ravel()

    def jacobian(self, x, backend):
        """Jacobian with respect to the bound variables, (outputs, vars)."""
        backend = get_backend(backend)

        def fn(local):
            return self.evaluator.eval(local, backend)

        jac = backend.jacobian(fn)(x[self.variables])
        return np.asarray(jac, dtype=np.float64).reshape(
            self.num_outputs, self.variables.size)

    def __repr__(self):
        return '<Binding {} on {} variables>'.format(
            self.name, self.variables.size)


class MathematicalProgram(object):
    """Decision variables, costs and constraints of a nonlinear program.

    Parameters
    ----------
    backend : str, optional
        Backend used to differentiate costs and constraints. Default is
        ``'jax'``; ``'numpy'`` uses finite differences.

    Examples
    --------
    >>> prog = MathematicalProgram()
    >>> x = prog.new_continuous_variables(2, name='x')
    >>> prog.add_cost(lambda z: (z[0] - 1.0) ** 2 + (z[1] - 2.0) ** 2, x)
    >>> prog.add_constraint(lambda z: z[:1] + z[1:], 1.0, 1.0, x)
    >>> prog.solve()
    <SolutionResult.SOLUTION_FOUND: 'solution_found'>
    >>> prog.get_solution(x)
    array([0., 1.])
    """

    def __init__(self, backend=None):
        self._backend_name = backend or 'jax'
        self._num_vars = 0
        self._variable_names = []
        self._initial_guess = np.zeros(0)
        self.bounding_box_constraints = []
        self.constraints = []
        self.costs = []
        self.solver_result = None

    @property
    def num_vars(self):
        return self._num_vars

    @property
    def jacobian_backend(self):
        return get_backend(self._backend_name)

    @property
    def variable_names(self):
        return list(self._variable_names)

    @property
    def initial_guess(self):
        return self._initial_guess.copy()

    # === Variables ===

    def new_continuous_variables(self, rows, cols=None, name='x'):
        """Allocate decision variables.

        Parameters
        ----------
        rows : int
            Number of rows (or the vector length when ``cols`` is None).
        cols : int, optional
            Number of columns of a matrix handle.
        name : str
            Base name; entries are named ``name(i)`` or ``name(i,j)``.

        Returns
        -------
        numpy.ndarray of int
            Handle of shape ``(rows,)`` or ``(rows, cols)``.
        """
        if rows < 0 or (cols is not None and cols < 0):
            raise ValueError('variable dimensions must be non-negative')
        size = rows if cols is None else rows * cols
        indices = np.arange(self._num_vars, self._num_vars + size)
        if cols is None:
            self._variable_names.extend(
                '{}({})'.format(name, i) for i in range(rows))
        else:
            indices = indices.reshape((rows, cols), order='F')
            self._variable_names.extend(
                '{}({},{})'.format(name, i, j)
                for j in range(cols) for i in range(rows))
        self._num_vars += size
        self._initial_guess = np.concatenate(
            [self._initial_guess, np.zeros(size)])
        return indices

    def _flatten(self, variables):
        variables = np.asarray(variables)
        if variables.size and not np.issubdtype(variables.dtype, np.integer):
            raise TypeError('decision variable handles must be integer arrays')
        flat = variables.astype(int).ravel(order='F')
        if flat.size and (flat.min() < 0 or flat.max() >= self._num_vars):
            raise IndexError('decision variable handle out of range')
        return flat

    def _broadcast(self, name, value, shape):
        try:
            value = np.broadcast_to(
                np.asarray(value, dtype=np.float64), shape)
        except ValueError as e:
            raise DimensionMismatchError(
                '{} of shape {} does not match expected shape {}'.format(
                    name, np.shape(value), shape)) from e
        return value.ravel(order='F')

    # === Constraints and costs ===

    def add_bounding_box_constraint(self, lower_bound, upper_bound,
                                    variables):
        """Bound decision variables elementwise.

        Scalars broadcast over the handle. Several boxes on the same
        variable intersect.
        """
        flat = self._flatten(variables)
        lower = self._broadcast('lower_bound', lower_bound,
                                np.shape(variables))
        upper = self._broadcast('upper_bound', upper_bound,
                                np.shape(variables))
        binding = Binding(None, flat, lower, upper, name='bounding_box')
        self.bounding_box_constraints.append(binding)
        return binding

    def add_constraint(self, evaluator, lower_bound, upper_bound, variables,
                       name=None):
        """Add ``lower_bound <= evaluator(x[variables]) <= upper_bound``.

        Parameters
        ----------
        evaluator : callable or object with ``eval(x, backend)``
            Vector valued, differentiable through the backend.
        lower_bound, upper_bound : float or array-like
            Bounds on every output; equal bounds give an equality.
        variables : array-like of int
            Decision variable handle; flattened column-major.
        name : str, optional
            Name used in logs.

        Returns
        -------
        Binding
        """
        evaluator = _as_evaluator(evaluator)
        flat = self._flatten(variables)
        num_inputs = getattr(evaluator, 'num_inputs', None)
        if num_inputs is not None and num_inputs != flat.size:
            raise DimensionMismatchError(
                '{} expects {} inputs, got {} variables'.format(
                    name or evaluator.__class__.__name__,
                    num_inputs, flat.size))
        num_outputs = getattr(evaluator, 'num_outputs', None)
        if num_outputs is None:
            value = evaluator.eval(
                self._initial_guess[flat], get_backend('numpy'))
            num_outputs = np.atleast_1d(value).size
        lower = self._broadcast('lower_bound', lower_bound, (num_outputs,))
        upper = self._broadcast('upper_bound', upper_bound, (num_outputs,))
        binding = Binding(evaluator, flat, lower, upper, name=name)
        self.constraints.append(binding)
        logger.debug('added constraint %s (%d rows)', binding.name,
                     num_outputs)
        return binding

    def add_cost(self, evaluator, variables, name=None):
        """Add a scalar cost ``evaluator(x[variables])``."""
        evaluator = _as_evaluator(evaluator)
        binding = Binding(evaluator, self._flatten(variables), name=name)
        self.costs.append(binding)
        logger.debug('added cost %s', binding.name)
        return binding

    def variable_bounds(self):
        """Intersection of all bounding boxes as ``(lower, upper)``."""
        lower = np.full(self._num_vars, -np.inf)
        upper = np.full(self._num_vars, np.inf)
        for binding in self.bounding_box_constraints:
            np.maximum.at(lower, binding.variables, binding.lower_bound)
            np.minimum.at(upper, binding.variables, binding.upper_bound)
        return lower, upper

    # === Solving ===

    def set_initial_guess(self, variables, values):
        flat = self._flatten(variables)
        self._initial_guess[flat] = self._broadcast(
            'values', values, np.shape(variables))

    def solve(self, solver=None, initial_guess=None):
        """Solve the program.

        Parameters
        ----------
        solver : BaseSolver or str, optional
            Solver instance or name for :func:`create_solver`. Defaults to
            SciPy SLSQP.
        initial_guess : array-like, optional
            Flat initial decision vector; defaults to the stored guess.

        Returns
        -------
        SolutionResult
        """
        from sktrajopt.solvers import create_solver

        if solver is None or isinstance(solver, str):
            solver = create_solver(solver or 'scipy')
        result = solver.solve(self, initial_guess)
        self.solver_result = result
        if result.success:
            logger.info('solve finished: %s after %d iterations (cost %g)',
                        result.status.name, result.iterations, result.cost)
        else:
            logger.warning('solve failed: %s (%s)',
                           result.status.name, result.message)
        return result.status

    def get_solution(self, variables):
        """Values of a decision variable handle at the last solver iterate.

        The values are those of the last solve regardless of its status;
        check the status returned by :meth:`solve` first.

        Raises
        ------
        SequencingError
            If the program has not been solved yet.
        """
        if self.solver_result is None:
            raise SequencingError('get_solution called before solve')
        variables = np.asarray(variables)
        return self.solver_result.x[variables.astype(int)]

    def __repr__(self):
        return ('<MathematicalProgram vars={} costs={} constraints={} '
                'bounding_boxes={}>').format(
                    self._num_vars, len(self.costs), len(self.constraints),
                    len(self.bounding_box_constraints))
