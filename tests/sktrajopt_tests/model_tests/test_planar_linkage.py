import os
import unittest

import numpy as np
from numpy import testing


os.environ.setdefault('JAX_PLATFORMS', 'cpu')

from sktrajopt.backend import get_backend  # noqa: E402
from sktrajopt.errors import ConfigurationError  # noqa: E402
from sktrajopt.errors import DimensionMismatchError  # noqa: E402
from sktrajopt.model import PlanarLinkage  # noqa: E402


GRAVITY = 9.81


def _make_pendulum(length=1.0, mass=2.0, damping=0.0):
    model = PlanarLinkage(gravity=(0.0, -GRAVITY))
    model.add_link('link', length=length, mass=mass, damping=damping,
                   actuated=True)
    return model


def _make_double_pendulum(l1=1.0, l2=0.8, m1=1.5, m2=0.7):
    model = PlanarLinkage(gravity=(0.0, -GRAVITY))
    model.add_link('upper', length=l1, mass=m1, actuated=True)
    model.add_link('lower', parent='upper', length=l2, mass=m2)
    return model


def _double_pendulum_dynamics(q, v, l1=1.0, l2=0.8, m1=1.5, m2=0.7):
    lc1 = 0.5 * l1
    lc2 = 0.5 * l2
    i1 = m1 * l1 ** 2 / 12.0
    i2 = m2 * l2 ** 2 / 12.0
    c2 = np.cos(q[1])
    s2 = np.sin(q[1])
    M = np.array([
        [i1 + i2 + m1 * lc1 ** 2
         + m2 * (l1 ** 2 + lc2 ** 2 + 2 * l1 * lc2 * c2),
         i2 + m2 * (lc2 ** 2 + l1 * lc2 * c2)],
        [i2 + m2 * (lc2 ** 2 + l1 * lc2 * c2),
         i2 + m2 * lc2 ** 2]])
    coriolis = np.array([
        -m2 * l1 * lc2 * s2 * (2 * v[0] * v[1] + v[1] ** 2),
        m2 * l1 * lc2 * s2 * v[0] ** 2])
    gravity = np.array([
        (m1 * lc1 + m2 * l1) * GRAVITY * np.cos(q[0])
        + m2 * lc2 * GRAVITY * np.cos(q[0] + q[1]),
        m2 * lc2 * GRAVITY * np.cos(q[0] + q[1])])
    return M, coriolis + gravity


class TestPlanarLinkageConstruction(unittest.TestCase):

    def test_dimensions(self):
        model = _make_double_pendulum()
        self.assertEqual(model.num_positions, 2)
        self.assertEqual(model.num_velocities, 2)
        self.assertEqual(model.num_actuators, 1)
        self.assertEqual(model.num_position_constraints, 0)
        testing.assert_equal(model.actuator_selection_matrix,
                             np.array([[1.0], [0.0]]))

    def test_duplicate_link(self):
        model = _make_pendulum()
        with self.assertRaises(ConfigurationError):
            model.add_link('link')

    def test_unknown_parent(self):
        model = _make_pendulum()
        with self.assertRaises(KeyError):
            model.add_link('child', parent='missing')
        with self.assertRaises(IndexError):
            model.link_index(3)

    def test_loop_closure_requires_target(self):
        model = _make_pendulum()
        with self.assertRaises(ConfigurationError):
            model.add_loop_closure('link')

    def test_joint_limits(self):
        model = PlanarLinkage()
        model.add_link('a', min_angle=-1.0, max_angle=2.0)
        model.add_link('b', parent='a')
        testing.assert_equal(model.joint_limits_lower, [-1.0, -np.inf])
        testing.assert_equal(model.joint_limits_upper, [2.0, np.inf])


class TestPlanarLinkageDynamics(unittest.TestCase):

    def test_pendulum(self):
        length = 1.2
        mass = 2.0
        model = _make_pendulum(length, mass)
        q = np.array([0.4])
        kinsol = model.compute_kinematics(q, np.array([1.5]),
                                          backend='numpy')
        testing.assert_allclose(model.mass_matrix(kinsol),
                                [[mass * length ** 2 / 3.0]])
        testing.assert_allclose(
            model.dynamics_bias_term(kinsol),
            [mass * GRAVITY * 0.5 * length * np.cos(0.4)])

    def test_double_pendulum_closed_form(self):
        model = _make_double_pendulum()
        q = np.array([0.3, -0.7])
        v = np.array([1.1, -0.4])
        kinsol = model.compute_kinematics(q, v, backend='numpy')
        M_expected, c_expected = _double_pendulum_dynamics(q, v)
        testing.assert_allclose(model.mass_matrix(kinsol), M_expected,
                                atol=1e-12)
        testing.assert_allclose(model.dynamics_bias_term(kinsol),
                                c_expected, atol=1e-12)

    def test_mass_matrix_symmetric_positive_definite(self):
        model = _make_double_pendulum()
        kinsol = model.compute_kinematics(np.array([1.0, 2.0]),
                                          backend='numpy')
        M = model.mass_matrix(kinsol)
        testing.assert_allclose(M, M.T)
        self.assertTrue(np.all(np.linalg.eigvalsh(M) > 0))

    def test_jax_matches_numpy(self):
        model = _make_double_pendulum()
        q = np.array([0.3, -0.7])
        v = np.array([1.1, -0.4])
        kinsol_np = model.compute_kinematics(q, v, backend='numpy')
        kinsol_jax = model.compute_kinematics(q, v, backend='jax')
        testing.assert_allclose(np.asarray(model.mass_matrix(kinsol_jax)),
                                model.mass_matrix(kinsol_np), atol=1e-12)
        testing.assert_allclose(
            np.asarray(model.dynamics_bias_term(kinsol_jax)),
            model.dynamics_bias_term(kinsol_np), atol=1e-12)

    def test_damping(self):
        model = _make_pendulum(damping=0.3)
        kinsol = model.compute_kinematics([0.5 * np.pi], [2.0],
                                          backend='numpy')
        # gravity has no moment with the link pointing up
        testing.assert_allclose(model.dynamics_bias_term(kinsol), [0.6],
                                atol=1e-12)

    def test_external_torque(self):
        model = _make_pendulum()
        kinsol = model.compute_kinematics([0.2], [0.0], backend='numpy')
        c = model.dynamics_bias_term(kinsol)
        c_wrench = model.dynamics_bias_term(
            kinsol, external_wrenches={'link': [0.0, 0.0, 1.5]})
        testing.assert_allclose(c - c_wrench, [1.5])

    def test_bias_term_requires_velocity(self):
        model = _make_pendulum()
        kinsol = model.compute_kinematics([0.2], backend='numpy')
        with self.assertRaises(ValueError):
            model.dynamics_bias_term(kinsol)

    def test_wrong_size(self):
        model = _make_double_pendulum()
        with self.assertRaises(DimensionMismatchError):
            model.compute_kinematics(np.zeros(3), backend='numpy')
        with self.assertRaises(DimensionMismatchError):
            model.compute_kinematics(np.zeros(2), np.zeros(1),
                                     backend='numpy')


class TestPlanarLinkageKinematics(unittest.TestCase):

    def test_point_jacobian_matches_finite_difference(self):
        model = _make_double_pendulum()
        q = np.array([0.3, -0.7])
        kinsol = model.compute_kinematics(q, backend='numpy')
        J = model.point_jacobian(kinsol, 'lower', 0.5)

        backend = get_backend('numpy')

        def position(x):
            return model.point_position(
                model.compute_kinematics(x, backend=backend), 'lower', 0.5)

        testing.assert_allclose(J, backend.jacobian(position)(q), atol=1e-6)

    def test_world_loop_closure(self):
        model = _make_double_pendulum(l1=1.0, l2=1.0)
        model.add_loop_closure('lower', world_point=(1.0, 1.0))
        self.assertEqual(model.num_position_constraints, 2)
        q = np.array([0.0, 0.5 * np.pi])
        kinsol = model.compute_kinematics(q, backend='numpy')
        testing.assert_allclose(model.position_constraints(kinsol),
                                np.zeros(2), atol=1e-12)

        backend = get_backend('numpy')

        def phi(x):
            return model.position_constraints(
                model.compute_kinematics(x, backend=backend))

        testing.assert_allclose(model.position_constraint_jacobian(kinsol),
                                backend.jacobian(phi)(q), atol=1e-6)

    def test_no_closures(self):
        model = _make_double_pendulum()
        kinsol = model.compute_kinematics(np.zeros(2), backend='numpy')
        self.assertEqual(model.position_constraints(kinsol).shape, (0,))
        self.assertEqual(
            model.position_constraint_jacobian(kinsol).shape, (0, 2))


if __name__ == '__main__':
    unittest.main()
