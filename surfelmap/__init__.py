"""Surfel-map reconstruction utilities: camera settings, surfel packing, odometry updates and deformation graphs."""

__version__ = "0.1.0"