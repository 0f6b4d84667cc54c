"""SciPy SLSQP / trust-constr solver for nonlinear programs."""

from logging import getLogger

import numpy as np
from scipy.optimize import BFGS
from scipy.optimize import Bounds
from scipy.optimize import minimize
from scipy.optimize import NonlinearConstraint

from sktrajopt.solvers.base import BaseSolver
from sktrajopt.solvers.base import SolutionResult
from sktrajopt.solvers.base import SolverResult


logger = getLogger(__name__)

# SLSQP exit modes
_SLSQP_STATUS = {
    0: SolutionResult.SOLUTION_FOUND,
    4: SolutionResult.INFEASIBLE_CONSTRAINTS,
    9: SolutionResult.ITERATION_LIMIT,
}


class ScipySolver(BaseSolver):
    """SciPy based solver for :class:`MathematicalProgram`.

    Costs are summed into one objective and all generic constraints are
    stacked; bounding boxes become variable bounds. Gradients and
    Jacobians come from the program's differentiation backend.

    Parameters
    ----------
    method : str
        ``'SLSQP'`` (default) or ``'trust-constr'``.
    max_iterations : int
        Maximum number of iterations.
    ftol : float
        Precision goal for the objective function (``gtol`` for
        trust-constr).
    constraint_tolerance : float
        Largest constraint violation accepted as feasible.
    verbose : bool
        Print optimization progress.
    options : dict, optional
        Extra options passed to :func:`scipy.optimize.minimize`.
    """

    def __init__(
        self,
        method='SLSQP',
        max_iterations=500,
        ftol=1e-8,
        constraint_tolerance=1e-6,
        verbose=False,
        options=None,
    ):
        super().__init__(verbose=verbose)
        if method not in ('SLSQP', 'trust-constr'):
            raise ValueError(f"Unsupported scipy method: {method}")
        self.method = method
        self.max_iterations = max_iterations
        self.ftol = ftol
        self.constraint_tolerance = constraint_tolerance
        self.options = options or {}

    def solve(self, program, initial_guess=None):
        """Solve the program.

        Parameters
        ----------
        program : MathematicalProgram
            Program definition.
        initial_guess : ndarray, optional
            Flat initial decision vector.

        Returns
        -------
        SolverResult
            Optimization result. ``x`` is the last iterate even when the
            solve failed.
        """
        x_init = self._validate_initial_guess(initial_guess, program)
        backend = program.jacobian_backend
        lower, upper = program.variable_bounds()
        if np.any(lower > upper):
            logger.warning('bounding boxes are empty for %d variables',
                           int(np.sum(lower > upper)))
            return SolverResult(
                x=x_init,
                status=SolutionResult.INFEASIBLE_CONSTRAINTS,
                cost=np.nan,
                message='inconsistent bounding box constraints',
            )
        x_init = np.clip(x_init, lower, upper)
        bounds = Bounds(lower, upper)

        obj_scipy, obj_jac_scipy = _scipinize(
            _build_objective(program, backend))
        constraint_fn, c_lower, c_upper = _build_constraints(
            program, backend)

        logger.info(
            'solving %d variables, %d constraint rows with %s (%s derivatives)',
            program.num_vars, c_lower.size, self.method, backend.name)

        if self.method == 'SLSQP':
            result = self._solve_slsqp(
                obj_scipy, obj_jac_scipy, x_init, bounds,
                constraint_fn, c_lower, c_upper)
            status = _SLSQP_STATUS.get(
                result.status, SolutionResult.UNKNOWN_ERROR)
        else:
            result = self._solve_trust_constr(
                obj_scipy, obj_jac_scipy, x_init, bounds,
                constraint_fn, c_lower, c_upper)
            if result.status == 0:
                status = SolutionResult.ITERATION_LIMIT
            elif result.status in (1, 2):
                status = SolutionResult.SOLUTION_FOUND
            else:
                status = SolutionResult.UNKNOWN_ERROR

        violation = _constraint_violation(
            result.x, lower, upper, constraint_fn, c_lower, c_upper)
        if status.success and violation > self.constraint_tolerance:
            status = SolutionResult.INFEASIBLE_CONSTRAINTS

        return SolverResult(
            x=result.x,
            status=status,
            cost=float(result.fun),
            iterations=int(getattr(result, 'nit', 0)),
            message=str(getattr(result, 'message', '')),
            info={
                'scipy_result': result,
                'constraint_violation': violation,
            },
        )

    def _solve_slsqp(self, obj, obj_jac, x_init, bounds,
                     constraint_fn, c_lower, c_upper):
        eq = np.isfinite(c_lower) & (c_lower == c_upper)
        has_lower = ~eq & np.isfinite(c_lower)
        has_upper = ~eq & np.isfinite(c_upper)

        def eq_constraint(x):
            values, jac = constraint_fn(x)
            return values[eq] - c_lower[eq], jac[eq]

        def ineq_constraint(x):
            values, jac = constraint_fn(x)
            f = np.hstack((values[has_lower] - c_lower[has_lower],
                           c_upper[has_upper] - values[has_upper]))
            grad = np.vstack((jac[has_lower], -jac[has_upper]))
            return f, grad

        constraints = []
        if np.any(eq):
            eq_scipy, eq_jac_scipy = _scipinize(eq_constraint)
            constraints.append(
                {'type': 'eq', 'fun': eq_scipy, 'jac': eq_jac_scipy})
        if np.any(has_lower) or np.any(has_upper):
            ineq_scipy, ineq_jac_scipy = _scipinize(ineq_constraint)
            constraints.append(
                {'type': 'ineq', 'fun': ineq_scipy, 'jac': ineq_jac_scipy})

        options = {
            'maxiter': self.max_iterations,
            'ftol': self.ftol,
            'disp': self.verbose,
        }
        options.update(self.options)
        return minimize(
            obj, x_init,
            method='SLSQP',
            jac=obj_jac,
            bounds=bounds,
            constraints=constraints,
            options=options,
        )

    def _solve_trust_constr(self, obj, obj_jac, x_init, bounds,
                            constraint_fn, c_lower, c_upper):
        constraints = []
        if c_lower.size:
            con_scipy, con_jac_scipy = _scipinize(constraint_fn)
            constraints.append(NonlinearConstraint(
                con_scipy, c_lower, c_upper, jac=con_jac_scipy, hess=BFGS()))
        options = {
            'maxiter': self.max_iterations,
            'gtol': self.ftol,
            'verbose': 2 if self.verbose else 0,
        }
        options.update(self.options)
        return minimize(
            obj, x_init,
            method='trust-constr',
            jac=obj_jac,
            hess=BFGS(),
            bounds=bounds,
            constraints=constraints,
            options=options,
        )


def _build_objective(program, backend):
    n = program.num_vars
    costs = list(program.costs)

    def objective(x):
        f = 0.0
        grad = np.zeros(n)
        for binding in costs:
            f += float(binding.evaluate(x)[0])
            np.add.at(grad, binding.variables,
                      binding.jacobian(x, backend)[0])
        return f, grad

    return objective


def _build_constraints(program, backend):
    """Stack all generic constraints into one ``(values, jacobian)`` map."""
    n = program.num_vars
    bindings = list(program.constraints)
    if bindings:
        c_lower = np.concatenate([b.lower_bound for b in bindings])
        c_upper = np.concatenate([b.upper_bound for b in bindings])
    else:
        c_lower = np.zeros(0)
        c_upper = np.zeros(0)

    def constraint_fn(x):
        values = np.zeros(c_lower.size)
        jac = np.zeros((c_lower.size, n))
        row = 0
        for binding in bindings:
            k = binding.num_outputs
            values[row:row + k] = binding.evaluate(x)
            local = binding.jacobian(x, backend)
            # Repeated variables in one binding accumulate.
            for col, var in enumerate(binding.variables):
                jac[row:row + k, var] += local[:, col]
            row += k
        return values, jac

    return constraint_fn, c_lower, c_upper


def _constraint_violation(x, lower, upper, constraint_fn, c_lower, c_upper):
    violation = max(0.0, float(np.max(lower - x, initial=0.0)),
                    float(np.max(x - upper, initial=0.0)))
    if c_lower.size:
        values, _ = constraint_fn(x)
        with np.errstate(invalid='ignore'):
            violation = max(
                violation,
                float(np.max(np.nan_to_num(c_lower - values, nan=0.0,
                                           neginf=0.0), initial=0.0)),
                float(np.max(np.nan_to_num(values - c_upper, nan=0.0,
                                           neginf=0.0), initial=0.0)))
    return violation


def _scipinize(fun):
    """Convert function returning (f, jac) to scipy format.

    Parameters
    ----------
    fun : callable
        Function returning (value, jacobian).

    Returns
    -------
    f_scipy : callable
        Function returning value.
    jac_scipy : callable
        Function returning jacobian.
    """
    cache = {}

    def compute(x):
        key = np.asarray(x, dtype=np.float64).tobytes()
        if key not in cache:
            cache[key] = fun(np.array(x, dtype=np.float64))
            # Keep cache small
            if len(cache) > 100:
                oldest = next(iter(cache))
                del cache[oldest]
        return cache[key]

    def f_scipy(x):
        return compute(x)[0]

    def jac_scipy(x):
        return compute(x)[1]

    return f_scipy, jac_scipy
