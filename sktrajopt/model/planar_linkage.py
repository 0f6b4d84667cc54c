"""Planar revolute-joint multibody engine with loop closures.

Every link carries one revolute joint. A root link is hinged to the world
at ``joint_position``; a child link is hinged at the tip of its parent.
The absolute angle of link ``k`` is the sum of the joint angles along its
chain, so ``nq == nv`` and the generalized velocities are joint rates.

All dynamics quantities are evaluated with the backend stored in the
kinematics solution, so the same code returns float64 values with the
``numpy`` backend and forward-mode derivatives with the ``jax`` backend.
"""

from logging import getLogger

import numpy as np

from sktrajopt.backend import get_backend
from sktrajopt.errors import check_size
from sktrajopt.errors import ConfigurationError
from sktrajopt.model.multibody import KinematicsSolution
from sktrajopt.model.multibody import MultibodyModel


logger = getLogger(__name__)


class PlanarLink(object):
    """Rigid bar with a revolute joint at its proximal end.

    Parameters
    ----------
    name : str
        Link name.
    parent_index : int or None
        Index of the parent link, None for a link hinged to the world.
    joint_position : array-like, shape (2,)
        World position of the joint of a root link.
    length : float
        Distance from the joint to the tip, where children attach.
    mass : float
        Link mass.
    center_of_mass : float
        Distance of the center of mass from the joint along the link.
    inertia : float
        Rotational inertia about the center of mass.
    damping : float
        Viscous joint damping, enters the bias term as ``damping * v``.
    min_angle, max_angle : float
        Joint limits.
    actuated : bool
        Whether the joint is driven by an actuator.
    """

    def __init__(self, name, parent_index=None, joint_position=(0.0, 0.0),
                 length=1.0, mass=1.0, center_of_mass=None, inertia=None,
                 damping=0.0, min_angle=-np.inf, max_angle=np.inf,
                 actuated=False):
        self.name = name
        self.parent_index = parent_index
        self.joint_position = np.array(joint_position, dtype=np.float64)
        self.length = float(length)
        self.mass = float(mass)
        if center_of_mass is None:
            center_of_mass = 0.5 * self.length
        self.center_of_mass = float(center_of_mass)
        if inertia is None:
            # slender rod about its center
            inertia = self.mass * self.length ** 2 / 12.0
        self.inertia = float(inertia)
        self.damping = float(damping)
        self.min_angle = float(min_angle)
        self.max_angle = float(max_angle)
        self.actuated = actuated

    def __repr__(self):
        return '<PlanarLink {}>'.format(self.name)


class LoopClosure(object):
    """Pin joint tying a point of one link to a point of another link.

    When ``link_b`` is None the point of ``link_a`` is pinned to
    ``world_point`` instead.
    """

    def __init__(self, link_a, distance_a, link_b=None, distance_b=None,
                 world_point=None):
        self.link_a = link_a
        self.distance_a = distance_a
        self.link_b = link_b
        self.distance_b = distance_b
        if world_point is not None:
            world_point = np.array(world_point, dtype=np.float64)
        self.world_point = world_point


class PlanarLinkage(MultibodyModel):
    """Planar tree of revolute joints closed by pin constraints.

    Parameters
    ----------
    gravity : array-like, shape (2,)
        Gravity acceleration in the world frame.
    name : str, optional
        Model name.

    Examples
    --------
    >>> from sktrajopt.model import PlanarLinkage
    >>> model = PlanarLinkage()
    >>> model.add_link('upper', length=1.0, mass=1.0, actuated=True)
    0
    >>> model.add_link('lower', parent='upper', length=1.0, mass=1.0)
    1
    >>> kinsol = model.compute_kinematics([0.1, 0.2], [0.0, 0.0])
    >>> M = model.mass_matrix(kinsol)
    """

    def __init__(self, gravity=(0.0, -9.81), name=None):
        self.name = name or self.__class__.__name__
        self.gravity = np.array(gravity, dtype=np.float64)
        self.link_list = []
        self.loop_closures = []
        self._chains = []

    def __repr__(self):
        return '<{} nq={} nu={} nc={}>'.format(
            self.name, self.num_positions, self.num_actuators,
            self.num_position_constraints)

    # === Model construction ===

    def add_link(self, name, parent=None, joint_position=(0.0, 0.0),
                 **kwargs):
        """Append a link and its joint.

        Parameters
        ----------
        name : str
            Unique link name.
        parent : str or int, optional
            Parent link; the new joint sits at the parent's tip.
        joint_position : array-like, shape (2,)
            World position of the joint when ``parent`` is None.
        **kwargs
            Forwarded to :class:`PlanarLink`.

        Returns
        -------
        index : int
            Index of the new joint in ``q`` and ``v``.
        """
        if any(link.name == name for link in self.link_list):
            raise ConfigurationError(
                "link '{}' already exists".format(name))
        parent_index = None
        if parent is not None:
            parent_index = self.link_index(parent)
        link = PlanarLink(name, parent_index=parent_index,
                          joint_position=joint_position, **kwargs)
        index = len(self.link_list)
        self.link_list.append(link)

        chain = [index] if parent_index is None \
            else self._chains[parent_index] + [index]
        self._chains.append(chain)
        logger.debug('added link %s (parent=%s)', name, parent)
        return index

    def add_loop_closure(self, link_a, link_b=None, distance_a=None,
                         distance_b=None, world_point=None):
        """Pin a point of ``link_a`` to a point of ``link_b``.

        Each closure adds two scalar position constraints. Distances are
        measured from the joint along the link and default to the tip.

        Parameters
        ----------
        link_a : str or int
            First link.
        link_b : str or int, optional
            Second link. If None, ``world_point`` must be given.
        distance_a, distance_b : float, optional
            Pinned point on each link.
        world_point : array-like, shape (2,), optional
            Fixed world point used when ``link_b`` is None.
        """
        index_a = self.link_index(link_a)
        if distance_a is None:
            distance_a = self.link_list[index_a].length
        index_b = None
        if link_b is not None:
            index_b = self.link_index(link_b)
            if distance_b is None:
                distance_b = self.link_list[index_b].length
        elif world_point is None:
            raise ConfigurationError(
                'either link_b or world_point is required')
        self.loop_closures.append(LoopClosure(
            index_a, float(distance_a), index_b,
            None if distance_b is None else float(distance_b),
            world_point))

    def link_index(self, link):
        if isinstance(link, (int, np.integer)):
            if not 0 <= link < len(self.link_list):
                raise IndexError('link index {} out of range'.format(link))
            return int(link)
        for i, candidate in enumerate(self.link_list):
            if candidate.name == link:
                return i
        raise KeyError("no link named '{}'".format(link))

    # === Dimensions ===

    @property
    def num_positions(self):
        return len(self.link_list)

    @property
    def num_velocities(self):
        return len(self.link_list)

    @property
    def num_actuators(self):
        return sum(1 for link in self.link_list if link.actuated)

    @property
    def num_position_constraints(self):
        return 2 * len(self.loop_closures)

    @property
    def actuator_selection_matrix(self):
        actuated = [i for i, link in enumerate(self.link_list)
                    if link.actuated]
        B = np.zeros((self.num_velocities, len(actuated)))
        for column, index in enumerate(actuated):
            B[index, column] = 1.0
        return B

    @property
    def joint_limits_lower(self):
        return np.array([link.min_angle for link in self.link_list])

    @property
    def joint_limits_upper(self):
        return np.array([link.max_angle for link in self.link_list])

    # === Kinematics ===

    def compute_kinematics(self, q, v=None, backend=None):
        backend = get_backend(backend)
        n = self.num_positions
        check_size('q', q, n)
        q = backend.array(q)
        if v is not None:
            check_size('v', v, n)
            v = backend.array(v)

        angles = []
        origins = []
        directions = []
        angular_velocities = [] if v is not None else None
        for k, link in enumerate(self.link_list):
            p = link.parent_index
            if p is None:
                angle = q[k]
                origin = backend.array(link.joint_position)
            else:
                angle = angles[p] + q[k]
                origin = origins[p] + self.link_list[p].length * directions[p]
            angles.append(angle)
            origins.append(origin)
            directions.append(
                backend.stack([backend.cos(angle), backend.sin(angle)]))
            if v is not None:
                if p is None:
                    angular_velocities.append(v[k])
                else:
                    angular_velocities.append(angular_velocities[p] + v[k])

        return KinematicsSolution(q, v, backend, data={
            'angles': angles,
            'origins': origins,
            'directions': directions,
            'angular_velocities': angular_velocities,
        })

    def point_position(self, kinsol, link, distance):
        """World position of the point ``distance`` along ``link``."""
        k = self.link_index(link)
        return (kinsol.data['origins'][k]
                + distance * kinsol.data['directions'][k])

    def point_jacobian(self, kinsol, link, distance):
        """Translational Jacobian (2, nv) of a point on ``link``."""
        k = self.link_index(link)
        backend = kinsol.backend
        position = self.point_position(kinsol, k, distance)
        origins = kinsol.data['origins']
        chain = self._chains[k]
        zero = 0.0 * position[0]
        columns = []
        for j in range(self.num_velocities):
            if j in chain:
                # z x (p - o_j)
                rel = position - origins[j]
                columns.append(backend.stack([-rel[1], rel[0]]))
            else:
                columns.append(backend.stack([zero, zero]))
        return backend.stack(columns, axis=1)

    def point_bias_acceleration(self, kinsol, link, distance):
        """Velocity product term ``Jdot v`` of a point on ``link``."""
        if not kinsol.has_velocity:
            raise ValueError(
                'bias acceleration requires kinematics with velocities')
        k = self.link_index(link)
        directions = kinsol.data['directions']
        omegas = kinsol.data['angular_velocities']
        acceleration = 0.0 * directions[k]
        for j in self._chains[k]:
            length = distance if j == k else self.link_list[j].length
            acceleration = acceleration \
                - length * omegas[j] ** 2 * directions[j]
        return acceleration

    def angular_jacobian(self, link):
        """Constant (nv,) row mapping ``v`` to the link's angular rate."""
        k = self.link_index(link)
        row = np.zeros(self.num_velocities)
        row[self._chains[k]] = 1.0
        return row

    # === Dynamics ===

    def mass_matrix(self, kinsol):
        backend = kinsol.backend
        n = self.num_velocities
        M = backend.zeros((n, n))
        for k, link in enumerate(self.link_list):
            Jc = self.point_jacobian(kinsol, k, link.center_of_mass)
            Jw = backend.array(self.angular_jacobian(k))
            M = M + link.mass * backend.matmul(Jc.T, Jc) \
                + link.inertia * backend.outer(Jw, Jw)
        return M

    def dynamics_bias_term(self, kinsol, external_wrenches=None):
        """Bias term ``c(q, v)``.

        Parameters
        ----------
        kinsol : KinematicsSolution
            Kinematics computed with velocities.
        external_wrenches : dict, optional
            Maps link name (or index) to a world frame wrench
            ``(fx, fy, torque)`` applied at the link's center of mass.

        Returns
        -------
        c : array, shape (nv,)
        """
        if not kinsol.has_velocity:
            raise ValueError(
                'dynamics_bias_term requires kinematics with velocities')
        backend = kinsol.backend
        gravity = backend.array(self.gravity)
        c = backend.zeros(self.num_velocities)
        for k, link in enumerate(self.link_list):
            Jc = self.point_jacobian(kinsol, k, link.center_of_mass)
            bias = self.point_bias_acceleration(
                kinsol, k, link.center_of_mass)
            c = c + link.mass * backend.matmul(Jc.T, bias - gravity)

        damping = np.array([link.damping for link in self.link_list])
        if np.any(damping != 0.0):
            c = c + backend.array(damping) * kinsol.v

        for link, wrench in (external_wrenches or {}).items():
            k = self.link_index(link)
            check_size('wrench', wrench, 3)
            wrench = backend.array(wrench)
            Jc = self.point_jacobian(
                kinsol, k, self.link_list[k].center_of_mass)
            Jw = backend.array(self.angular_jacobian(k))
            c = c - backend.matmul(Jc.T, wrench[:2]) - Jw * wrench[2]
        return c

    def _closure_points(self, kinsol, closure):
        position_a = self.point_position(
            kinsol, closure.link_a, closure.distance_a)
        if closure.link_b is None:
            position_b = kinsol.backend.array(closure.world_point)
        else:
            position_b = self.point_position(
                kinsol, closure.link_b, closure.distance_b)
        return position_a, position_b

    def position_constraints(self, kinsol):
        backend = kinsol.backend
        if not self.loop_closures:
            return backend.zeros(0)
        residuals = []
        for closure in self.loop_closures:
            position_a, position_b = self._closure_points(kinsol, closure)
            residuals.append(position_a - position_b)
        return backend.concatenate(residuals)

    def position_constraint_jacobian(self, kinsol):
        backend = kinsol.backend
        if not self.loop_closures:
            return backend.zeros((0, self.num_velocities))
        rows = []
        for closure in self.loop_closures:
            J = self.point_jacobian(kinsol, closure.link_a,
                                    closure.distance_a)
            if closure.link_b is not None:
                J = J - self.point_jacobian(kinsol, closure.link_b,
                                            closure.distance_b)
            rows.append(J)
        return backend.concatenate(rows, axis=0)
