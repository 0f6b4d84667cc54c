import numpy as np

from sktrajopt.model.planar_linkage import PlanarLinkage


class FiveBarLinkage(PlanarLinkage):
    """Planar five-bar linkage.

    Two two-link arms are hinged to the ground ``ground_length`` apart
    and pinned together at their tips; the ground is the fifth bar. Only
    the left shoulder is actuated.

    Joint order is ``[left_proximal, left_distal, right_proximal,
    right_distal]``, which gives 4 generalized positions, 1 actuator and
    2 position constraints.
    """

    def __init__(self, ground_length=0.5, link_length=0.5, link_mass=0.1,
                 gravity=(0.0, -9.81)):
        super(FiveBarLinkage, self).__init__(
            gravity=gravity, name='five_bar')
        self.add_link('left_proximal', joint_position=(0.0, 0.0),
                      length=link_length, mass=link_mass, actuated=True)
        self.add_link('left_distal', parent='left_proximal',
                      length=link_length, mass=link_mass)
        self.add_link('right_proximal',
                      joint_position=(ground_length, 0.0),
                      length=link_length, mass=link_mass)
        self.add_link('right_distal', parent='right_proximal',
                      length=link_length, mass=link_mass)
        self.add_loop_closure('left_distal', 'right_distal')

    def reset_pose(self):
        """Symmetric assembled configuration with the tips above ground.

        Both proximal links point straight up and the distal links meet
        above the middle of the ground bar.

        Returns
        -------
        q : numpy.ndarray, shape (4,)
        """
        ground = self.link_list[2].joint_position[0]
        length = self.link_list[1].length
        height = np.sqrt(max(length ** 2 - 0.25 * ground ** 2, 0.0))
        distal = np.arctan2(height, 0.5 * ground)
        return np.array([0.5 * np.pi, distal - 0.5 * np.pi,
                         0.5 * np.pi, 0.5 * np.pi - distal])
