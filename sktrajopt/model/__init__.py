from sktrajopt.model.multibody import KinematicsSolution
from sktrajopt.model.multibody import MultibodyModel
from sktrajopt.model.planar_linkage import LoopClosure
from sktrajopt.model.planar_linkage import PlanarLink
from sktrajopt.model.planar_linkage import PlanarLinkage


__all__ = [
    'KinematicsSolution',
    'LoopClosure',
    'MultibodyModel',
    'PlanarLink',
    'PlanarLinkage',
]
