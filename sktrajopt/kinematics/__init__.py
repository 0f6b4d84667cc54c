"""Kinematics caching for residual evaluation.

Kinematics themselves are computed by the model
(:meth:`sktrajopt.model.MultibodyModel.compute_kinematics`); the helpers
here avoid recomputing them when several terms of one residual read the
same configuration.
"""

from sktrajopt.kinematics.cache import KinematicsCacheHelper
from sktrajopt.kinematics.cache import KinematicsCacheWithVHelper


__all__ = [
    'KinematicsCacheHelper',
    'KinematicsCacheWithVHelper',
]
