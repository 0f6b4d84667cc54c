"""Backward Euler transcription of constrained multibody dynamics.

For one interval of length ``h`` between a left knot ``(q_l, v_l)`` and a
right knot ``(q_r, v_r)`` with input ``u_r`` and multipliers ``lambda``,
the residual is

.. math::
    r_q &= q_r - q_l - v_r h \\\\
    r_v &= M(q_r)(v_r - v_l)
           - \\left(B u_r + \\sum_j f_j(q_r, \\lambda^{(j)})
           - c(q_r, v_r)\\right) h

and the constraint requires ``[r_q; r_v] = 0``. All dynamics terms are
evaluated at the right knot.
"""

import numpy as np

from sktrajopt.backend import get_backend
from sktrajopt.errors import check_size
from sktrajopt.errors import DimensionMismatchError
from sktrajopt.errors import SequencingError
from sktrajopt.kinematics import KinematicsCacheWithVHelper


class DirectTranscriptionConstraint(object):
    """Implicit (backward Euler) integration residual of one interval.

    The input is the composite vector
    ``[h, q_l, v_l, q_r, v_r, u_r, lambda]`` where ``lambda`` stacks the
    multipliers of every registered generalized constraint force
    evaluator in registration order. See :meth:`composite_eval_input`.

    Parameters
    ----------
    model : MultibodyModel
        Dynamics engine.
    kinematics_helper : KinematicsCacheWithVHelper, optional
        Kinematics cache for the right knot. A private one is created when
        omitted.

    Examples
    --------
    >>> constraint = DirectTranscriptionConstraint(model)
    >>> constraint.add_generalized_constraint_force_evaluator(
    ...     PositionConstraintForceEvaluator(model))
    >>> x = constraint.composite_eval_input(h, q_l, v_l, q_r, v_r, u_r, lam)
    >>> residual = constraint.eval(x, backend='numpy')
    """

    def __init__(self, model, kinematics_helper=None):
        self.model = model
        if kinematics_helper is None:
            kinematics_helper = KinematicsCacheWithVHelper(model)
        self.kinematics_helper = kinematics_helper
        self._actuator_matrix = np.asarray(
            model.actuator_selection_matrix, dtype=np.float64)
        self._evaluators = []
        self._num_lambda = 0
        self._evaluated = False

    @property
    def evaluators(self):
        return tuple(self._evaluators)

    @property
    def num_lambda(self):
        return self._num_lambda

    @property
    def num_inputs(self):
        model = self.model
        return (1 + 2 * model.num_positions + 2 * model.num_velocities
                + model.num_actuators + self._num_lambda)

    @property
    def num_outputs(self):
        return self.model.num_positions + self.model.num_velocities

    @property
    def lower_bound(self):
        return np.zeros(self.num_outputs)

    @property
    def upper_bound(self):
        return np.zeros(self.num_outputs)

    def add_generalized_constraint_force_evaluator(self, evaluator):
        """Append an evaluator; its multipliers follow the existing ones.

        Raises
        ------
        SequencingError
            If the constraint has already been evaluated.
        """
        if self._evaluated:
            raise SequencingError(
                'cannot add a constraint force evaluator after the '
                'transcription constraint has been evaluated')
        if evaluator.num_outputs != self.model.num_velocities:
            raise DimensionMismatchError(
                f"evaluator returns {evaluator.num_outputs} forces, expected "
                f"{self.model.num_velocities}")
        self._evaluators.append(evaluator)
        self._num_lambda += evaluator.num_multipliers

    def composite_eval_input(self, h, q_l, v_l, q_r, v_r, u_r, lambda_r):
        """Pack the arguments of :meth:`eval` into one vector.

        Returns
        -------
        x : numpy.ndarray, shape (num_inputs,)
        """
        model = self.model
        for name, value, size in (
                ('q_l', q_l, model.num_positions),
                ('v_l', v_l, model.num_velocities),
                ('q_r', q_r, model.num_positions),
                ('v_r', v_r, model.num_velocities),
                ('u_r', u_r, model.num_actuators),
                ('lambda_r', lambda_r, self._num_lambda)):
            check_size(name, np.asarray(value, dtype=np.float64), size)
        return np.concatenate([
            [float(h)], q_l, v_l, q_r, v_r, u_r, lambda_r]).astype(np.float64)

    def eval(self, x, backend=None):
        """Residual ``[r_q; r_v]`` at the composite input ``x``.

        Parameters
        ----------
        x : array, shape (num_inputs,)
            Composite input; may be a JAX tracer.
        backend : str or backend, optional
            Backend (scalar type) of the evaluation.

        Returns
        -------
        residual : array, shape (nq + nv,)
        """
        backend = get_backend(backend)
        check_size('x', x, self.num_inputs)
        self._evaluated = True
        x = backend.array(x)

        nq = self.model.num_positions
        nv = self.model.num_velocities
        nu = self.model.num_actuators
        index = 0
        h = x[index]
        index += 1
        q_l = x[index:index + nq]
        index += nq
        v_l = x[index:index + nv]
        index += nv
        q_r = x[index:index + nq]
        index += nq
        v_r = x[index:index + nv]
        index += nv
        u_r = x[index:index + nu]
        index += nu
        lambda_r = x[index:]

        kinsol = self.kinematics_helper.update_kinematics(q_r, v_r, backend)
        M = self.model.mass_matrix(kinsol)
        c = self.model.dynamics_bias_term(kinsol)

        force = backend.matmul(backend.array(self._actuator_matrix), u_r) - c
        offset = 0
        for evaluator in self._evaluators:
            k = evaluator.num_multipliers
            force = force + evaluator.evaluate_generalized_force(
                q_r, lambda_r[offset:offset + k], backend)
            offset += k

        position_residual = q_r - q_l - v_r * h
        velocity_residual = backend.matmul(M, v_r - v_l) - force * h
        return backend.concatenate([position_residual, velocity_residual])


__all__ = ['DirectTranscriptionConstraint']
