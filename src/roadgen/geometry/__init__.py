"""
Geometry Module

Vector arithmetic and segment tests shared by the spatial index,
the turtles and the constraint repair pipeline.
"""

from .geometry_utils import (
    NODE_EPSILON,
    PARALLEL_EPSILON,
    as_point,
    distance,
    midpoint,
    normalize,
    rotate_vector,
    direction_from_angle,
    perpendicular,
    angle_between,
    axis_angle,
    points_close,
    point_in_rect,
    intersect_segments,
    segment_intersects_rect,
)

__all__ = [
    'NODE_EPSILON',
    'PARALLEL_EPSILON',
    'as_point',
    'distance',
    'midpoint',
    'normalize',
    'rotate_vector',
    'direction_from_angle',
    'perpendicular',
    'angle_between',
    'axis_angle',
    'points_close',
    'point_in_rect',
    'intersect_segments',
    'segment_intersects_rect',
]
