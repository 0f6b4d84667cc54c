"""Multiple shooting trajectory optimization for multibody systems."""

from logging import getLogger

import numpy as np

from sktrajopt.errors import ConfigurationError
from sktrajopt.errors import DimensionMismatchError
from sktrajopt.errors import SequencingError
from sktrajopt.kinematics import KinematicsCacheHelper
from sktrajopt.kinematics import KinematicsCacheWithVHelper
from sktrajopt.solvers import MathematicalProgram
from sktrajopt.trajectory_optimization.direct_transcription import \
    DirectTranscriptionConstraint
from sktrajopt.trajectory_optimization.generalized_constraint_force import \
    JointLimitConstraintForceEvaluator
from sktrajopt.trajectory_optimization.generalized_constraint_force import \
    PositionConstraintForceEvaluator


logger = getLogger(__name__)


class _JointLimitComplementarity(object):
    """``[(q - lower) * lambda_lower; (upper - q) * lambda_upper]``."""

    def __init__(self, lower, upper):
        self.lower = lower
        self.upper = upper
        self.num_joints = lower.size
        self.num_inputs = 3 * self.num_joints
        self.num_outputs = 2 * self.num_joints
        self.name = 'joint_limit_complementarity'

    def eval(self, x, backend):
        n = self.num_joints
        q = x[:n]
        lambda_lower = x[n:2 * n]
        lambda_upper = x[2 * n:]
        return backend.concatenate([
            (q - backend.array(self.lower)) * lambda_lower,
            (backend.array(self.upper) - q) * lambda_upper])


class _RunningCost(object):
    """``h * fn(x, u)`` on the packed input ``[h; q; v; u]``."""

    def __init__(self, fn, num_states, num_inputs):
        self.fn = fn
        self.num_states = num_states
        self.num_inputs = 1 + num_states + num_inputs
        self.name = getattr(fn, '__name__', 'running_cost')

    def eval(self, x, backend):
        state = x[1:1 + self.num_states]
        control = x[1 + self.num_states:]
        return x[0] * self.fn(state, control)


class _PositionConstraintResidual(object):
    """Loop closure residual ``phi(q)`` at one knot."""

    def __init__(self, model):
        self.model = model
        self.kinematics_helper = KinematicsCacheHelper(model)
        self.num_inputs = model.num_positions
        self.num_outputs = model.num_position_constraints
        self.name = 'position_constraint'

    def eval(self, q, backend):
        kinsol = self.kinematics_helper.update_kinematics(q, backend)
        return self.model.position_constraints(kinsol)


class RigidBodyTreeMultipleShooting(object):
    """Direct transcription of a constrained multibody trajectory.

    The trajectory is sampled at ``num_time_samples`` knots. Knot ``k``
    carries positions ``q_k``, velocities ``v_k`` and inputs ``u_k``;
    interval ``i`` between knots ``i`` and ``i + 1`` carries a timestep
    ``h_i`` and the constraint force multipliers acting at knot ``i + 1``.
    :meth:`compile` ties neighbouring knots together with one backward
    Euler :class:`DirectTranscriptionConstraint` per interval.

    Parameters
    ----------
    model : MultibodyModel
        Dynamics engine.
    num_time_samples : int
        Number of knots ``N``, at least 2.
    minimum_timestep, maximum_timestep : float
        Bounds of every timestep, ``0 < minimum <= maximum``.
    backend : str, optional
        Differentiation backend of the program (``'jax'`` by default).
    solver : BaseSolver or str, optional
        Solver used by :meth:`solve`. Defaults to SciPy SLSQP.

    Examples
    --------
    >>> from sktrajopt.models import FiveBarLinkage
    >>> model = FiveBarLinkage()
    >>> traj_opt = RigidBodyTreeMultipleShooting(model, 5, 0.01, 0.1)
    >>> q = traj_opt.generalized_positions()
    >>> traj_opt.add_bounding_box_constraint(0.0, 0.0, q[0, 0])
    >>> traj_opt.add_bounding_box_constraint(np.pi / 2, np.pi / 2, q[0, -1])
    >>> traj_opt.add_running_cost(lambda x, u: u @ u)
    >>> traj_opt.compile()
    >>> traj_opt.solve()
    <SolutionResult.SOLUTION_FOUND: 'solution_found'>
    >>> times = traj_opt.get_sample_times()
    """

    def __init__(self, model, num_time_samples, minimum_timestep,
                 maximum_timestep, backend=None, solver=None):
        if num_time_samples < 2:
            raise ConfigurationError(
                f"num_time_samples must be at least 2, got {num_time_samples}")
        if not minimum_timestep > 0:
            raise ConfigurationError(
                f"minimum_timestep must be positive, got {minimum_timestep}")
        if minimum_timestep > maximum_timestep:
            raise ConfigurationError(
                f"minimum_timestep {minimum_timestep} exceeds "
                f"maximum_timestep {maximum_timestep}")

        self._model = model
        self._num_time_samples = int(num_time_samples)
        self.minimum_timestep = float(minimum_timestep)
        self.maximum_timestep = float(maximum_timestep)
        self._solver = solver
        self._program = MathematicalProgram(backend=backend)

        N = self._num_time_samples
        prog = self._program
        self._h_vars = prog.new_continuous_variables(N - 1, name='h')
        self._q_vars = prog.new_continuous_variables(
            model.num_positions, N, name='q')
        self._v_vars = prog.new_continuous_variables(
            model.num_velocities, N, name='v')
        self._u_vars = prog.new_continuous_variables(
            model.num_actuators, N, name='u')
        self._position_lambda_vars = prog.new_continuous_variables(
            model.num_position_constraints, N - 1, name='lambda')

        prog.add_bounding_box_constraint(
            self.minimum_timestep, self.maximum_timestep, self._h_vars)
        prog.set_initial_guess(
            self._h_vars,
            0.5 * (self.minimum_timestep + self.maximum_timestep))

        # (evaluator, multiplier handle) pairs per interval
        self._interval_evaluators = [[] for _ in range(N - 1)]
        self._direct_transcription_constraints = []
        self._compiled = False

    def __repr__(self):
        return '<{} N={} model={} compiled={}>'.format(
            self.__class__.__name__, self._num_time_samples,
            self._model.__class__.__name__, self._compiled)

    # === Properties ===

    @property
    def model(self):
        return self._model

    @property
    def program(self):
        return self._program

    @property
    def num_time_samples(self):
        return self._num_time_samples

    @property
    def compiled(self):
        return self._compiled

    @property
    def direct_transcription_constraints(self):
        return tuple(self._direct_transcription_constraints)

    @property
    def backend(self):
        return self._program.jacobian_backend

    @property
    def solver(self):
        return self._solver

    # === Decision variable handles ===

    def _check_knot(self, knot):
        if not 0 <= knot < self._num_time_samples:
            raise IndexError(
                f"knot {knot} out of range [0, {self._num_time_samples})")
        return int(knot)

    def _check_interval(self, interval):
        if not 0 <= interval < self._num_time_samples - 1:
            raise IndexError(
                f"interval {interval} out of range "
                f"[0, {self._num_time_samples - 1})")
        return int(interval)

    def generalized_positions(self):
        """Handle of all positions, shape (nq, N)."""
        return self._q_vars

    def generalized_position(self, knot):
        return self._q_vars[:, self._check_knot(knot)]

    def generalized_velocities(self):
        """Handle of all velocities, shape (nv, N)."""
        return self._v_vars

    def generalized_velocity(self, knot):
        return self._v_vars[:, self._check_knot(knot)]

    def input(self, knot=None):
        """Handle of the inputs at ``knot``, or of all inputs (nu, N)."""
        if knot is None:
            return self._u_vars
        return self._u_vars[:, self._check_knot(knot)]

    def state(self, knot):
        """Handle of ``[q; v]`` at ``knot``."""
        knot = self._check_knot(knot)
        return np.concatenate([self._q_vars[:, knot], self._v_vars[:, knot]])

    def timesteps(self):
        """Handle of all timesteps, shape (N - 1,)."""
        return self._h_vars

    def timestep(self, interval):
        return self._h_vars[self._check_interval(interval)]

    def position_constraint_forces(self):
        """Handle of the position constraint multipliers, shape (nc, N - 1).

        Column ``i`` belongs to interval ``i`` and acts at knot ``i + 1``.
        """
        return self._position_lambda_vars

    def position_constraint_force(self, interval):
        return self._position_lambda_vars[:, self._check_interval(interval)]

    def generalized_constraint_forces(self, interval):
        """Stacked multiplier handle bound into the interval's constraint.

        The position constraint multipliers come first, then those of every
        evaluator added to the interval in registration order.

        Raises
        ------
        SequencingError
            If called before :meth:`compile`.
        """
        interval = self._check_interval(interval)
        if not self._compiled:
            raise SequencingError(
                'generalized constraint forces are assembled by compile()')
        return self._interval_lambda(interval)

    def _interval_lambda(self, interval):
        handles = [self._position_lambda_vars[:, interval]]
        handles.extend(
            handle for _, handle in self._interval_evaluators[interval])
        return np.concatenate(handles)

    # === Constraint force plug-ins ===

    def add_generalized_constraint_force_evaluator(self, interval, evaluator):
        """Add a constraint force acting at the right knot of ``interval``.

        Parameters
        ----------
        interval : int
            Interval index in ``[0, N - 1)``.
        evaluator : GeneralizedConstraintForceEvaluator
            Force evaluator for the model of this optimization.

        Returns
        -------
        numpy.ndarray of int
            Handle of the new multipliers, shape (num_multipliers,).
        """
        if self._compiled:
            raise SequencingError(
                'cannot add constraint force evaluators after compile()')
        interval = self._check_interval(interval)
        if evaluator.num_outputs != self._model.num_velocities:
            raise DimensionMismatchError(
                f"evaluator returns {evaluator.num_outputs} forces, expected "
                f"{self._model.num_velocities}")
        count = len(self._interval_evaluators[interval])
        handle = self._program.new_continuous_variables(
            evaluator.num_multipliers,
            name=f"lambda_{interval}_{count + 1}")
        self._interval_evaluators[interval].append((evaluator, handle))
        logger.debug('interval %d: added %s with %d multipliers',
                     interval, evaluator.__class__.__name__,
                     evaluator.num_multipliers)
        return handle

    def add_joint_limit_implicit_constraint(
            self, interval, joint_index, num_joints,
            joint_lower_bound, joint_upper_bound):
        """Enforce joint limits at knot ``interval + 1`` with limit forces.

        Adds multipliers ``[lambda_lower; lambda_upper] >= 0``, bounds the
        joints of knot ``interval + 1`` to the limits, the complementarity
        condition

        .. math::
            (q - q_{lower}) \\lambda_{lower} = 0, \\quad
            (q_{upper} - q) \\lambda_{upper} = 0

        and the joint limit force ``lambda_lower - lambda_upper`` to the
        interval's dynamics.

        Parameters
        ----------
        interval : int
            Interval index in ``[0, N - 1)``.
        joint_index : int
            First limited joint.
        num_joints : int
            Number of consecutive limited joints.
        joint_lower_bound, joint_upper_bound : float or array-like
            Finite limits, scalars or ``(num_joints,)`` arrays.

        Returns
        -------
        numpy.ndarray of int
            Handle of ``[lambda_lower; lambda_upper]``, shape
            ``(2 * num_joints,)``.

        Notes
        -----
        Complementarity is imposed as a product equality, which does not
        stop both multipliers of a joint from being positive when the
        limits coincide.
        """
        if self._compiled:
            raise SequencingError(
                'cannot add joint limit constraints after compile()')
        interval = self._check_interval(interval)
        if num_joints < 1 or joint_index < 0 \
                or joint_index + num_joints > self._model.num_positions:
            raise IndexError(
                f"joints [{joint_index}, {joint_index + num_joints}) out of "
                f"range for {self._model.num_positions} positions")
        lower = np.broadcast_to(
            np.asarray(joint_lower_bound, dtype=np.float64),
            (num_joints,)).copy()
        upper = np.broadcast_to(
            np.asarray(joint_upper_bound, dtype=np.float64),
            (num_joints,)).copy()
        if not (np.all(np.isfinite(lower)) and np.all(np.isfinite(upper))):
            raise ConfigurationError('joint limits must be finite')
        if np.any(lower > upper):
            raise ConfigurationError(
                f"joint lower bound {lower} exceeds upper bound {upper}")

        evaluator = JointLimitConstraintForceEvaluator(
            self._model, joint_index, num_joints)
        lambda_vars = self.add_generalized_constraint_force_evaluator(
            interval, evaluator)
        q_vars = self._q_vars[joint_index:joint_index + num_joints,
                              interval + 1]

        prog = self._program
        prog.add_bounding_box_constraint(0.0, np.inf, lambda_vars)
        prog.add_bounding_box_constraint(lower, upper, q_vars)
        prog.add_constraint(
            _JointLimitComplementarity(lower, upper), 0.0, 0.0,
            np.concatenate([q_vars, lambda_vars]),
            name=f"joint_limit_complementarity_{interval}")
        return lambda_vars

    # === Compile and solve ===

    def compile(self):
        """Add one direct transcription constraint per interval.

        Each constraint owns a velocity kinematics cache, and its position
        constraint force evaluator owns a position-only cache. Extra
        evaluators follow in registration order.

        Raises
        ------
        SequencingError
            If called twice.
        """
        if self._compiled:
            raise SequencingError('compile() may only be called once')
        model = self._model
        q, v, u, h = self._q_vars, self._v_vars, self._u_vars, self._h_vars
        for i in range(self._num_time_samples - 1):
            constraint = DirectTranscriptionConstraint(
                model, KinematicsCacheWithVHelper(model))
            constraint.add_generalized_constraint_force_evaluator(
                PositionConstraintForceEvaluator(
                    model, KinematicsCacheHelper(model)))
            for evaluator, _ in self._interval_evaluators[i]:
                constraint.add_generalized_constraint_force_evaluator(
                    evaluator)
            variables = np.concatenate([
                h[i:i + 1], q[:, i], v[:, i], q[:, i + 1], v[:, i + 1],
                u[:, i + 1], self._interval_lambda(i)])
            self._program.add_constraint(
                constraint, constraint.lower_bound, constraint.upper_bound,
                variables, name=f"direct_transcription_{i}")
            self._direct_transcription_constraints.append(constraint)
        self._compiled = True
        logger.info(
            'compiled %d direct transcription constraints over %d variables',
            len(self._direct_transcription_constraints),
            self._program.num_vars)

    def solve(self):
        """Solve the transcribed program.

        Returns
        -------
        SolutionResult

        Raises
        ------
        SequencingError
            If called before :meth:`compile`.
        """
        if not self._compiled:
            raise SequencingError('solve() called before compile()')
        return self._program.solve(self._solver)

    def get_solution(self, variables):
        """Values of ``variables`` at the last iterate, in the handle's shape.

        Raises
        ------
        SequencingError
            If no solve has run yet.
        """
        values = self._program.get_solution(variables)
        if not self._program.solver_result.success:
            logger.warning('reading the solution of a failed solve (%s)',
                           self._program.solver_result.status.name)
        return values

    def get_sample_times(self):
        """Knot times ``[0, h_0, h_0 + h_1, ...]``, shape (N,)."""
        h = self.get_solution(self._h_vars)
        return np.concatenate([[0.0], np.cumsum(h)])

    def get_state_samples(self):
        """Solved ``[q; v]`` at every knot, shape (nq + nv, N)."""
        return np.vstack([self.get_solution(self._q_vars),
                          self.get_solution(self._v_vars)])

    def get_input_samples(self):
        """Solved inputs at every knot, shape (nu, N)."""
        return self.get_solution(self._u_vars)

    # === Costs, constraints and initial guess ===

    def add_bounding_box_constraint(self, lower_bound, upper_bound,
                                    variables):
        return self._program.add_bounding_box_constraint(
            lower_bound, upper_bound, variables)

    def add_constraint(self, evaluator, lower_bound, upper_bound, variables,
                       name=None):
        return self._program.add_constraint(
            evaluator, lower_bound, upper_bound, variables, name=name)

    def add_cost(self, evaluator, variables, name=None):
        return self._program.add_cost(evaluator, variables, name=name)

    def add_running_cost(self, fn, name=None):
        """Add the integral cost ``sum_i h_i * fn(x_i, u_i)``.

        The sum runs over intervals ``0..N-2`` with ``x_i = [q_i; v_i]``.
        ``fn`` must be built from operators shared by NumPy and JAX arrays,
        for example ``lambda x, u: u @ u``.

        Returns
        -------
        list of Binding
        """
        model = self._model
        cost = _RunningCost(
            fn, model.num_positions + model.num_velocities,
            model.num_actuators)
        bindings = []
        for i in range(self._num_time_samples - 1):
            variables = np.concatenate([
                self._h_vars[i:i + 1], self.state(i), self._u_vars[:, i]])
            bindings.append(self._program.add_cost(
                cost, variables, name=name or f"running_cost_{i}"))
        return bindings

    def add_duration_bounds(self, lower_bound, upper_bound):
        """Bound the total duration ``sum_i h_i``."""
        return self._program.add_constraint(
            lambda h: h.sum(), lower_bound, upper_bound, self._h_vars,
            name='duration')

    def add_equal_time_intervals_constraints(self):
        """Force every timestep to equal the first one."""
        if self._num_time_samples < 3:
            return None
        return self._program.add_constraint(
            lambda h: h[1:] - h[0], 0.0, 0.0, self._h_vars,
            name='equal_time_intervals')

    def add_position_constraints(self, knots=None):
        """Enforce the model's loop closures ``phi(q_k) = 0`` at knots.

        Parameters
        ----------
        knots : iterable of int, optional
            Knots to constrain; all knots by default.

        Returns
        -------
        list of Binding
        """
        if self._model.num_position_constraints == 0:
            return []
        if knots is None:
            knots = range(self._num_time_samples)
        bindings = []
        for knot in knots:
            bindings.append(self._program.add_constraint(
                _PositionConstraintResidual(self._model), 0.0, 0.0,
                self.generalized_position(knot),
                name=f"position_constraint_{knot}"))
        return bindings

    def set_initial_guess(self, variables, values):
        self._program.set_initial_guess(variables, values)

    def set_initial_trajectory(self, timesteps=None, positions=None,
                               velocities=None, inputs=None):
        """Seed the initial guess of whole trajectories.

        Parameters
        ----------
        timesteps : float or array-like, shape (N - 1,), optional
        positions : array-like, shape (nq, N), optional
        velocities : array-like, shape (nv, N), optional
        inputs : array-like, shape (nu, N), optional
        """
        for handle, values in ((self._h_vars, timesteps),
                               (self._q_vars, positions),
                               (self._v_vars, velocities),
                               (self._u_vars, inputs)):
            if values is not None:
                self._program.set_initial_guess(handle, values)


__all__ = ['RigidBodyTreeMultipleShooting']
