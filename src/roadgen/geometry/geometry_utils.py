"""
Geometry utilities for road network synthesis.

Points are plain ``numpy`` float arrays of shape (2,). Every function here
returns fresh arrays and never mutates its inputs.
"""

import math
from typing import Optional, Sequence, Union

import numpy as np
from shapely.geometry import LineString, box

# Node identity tolerance (city units, per axis)
NODE_EPSILON = 0.1
# Threshold on |r x s| below which two segments are treated as parallel
PARALLEL_EPSILON = 0.01

PointLike = Union[np.ndarray, Sequence[float]]


def as_point(p: PointLike) -> np.ndarray:
    """Copy a point-like value into a float array of shape (2,)."""
    point = np.array(p, dtype=float)
    if point.shape != (2,):
        raise ValueError(f"Expected a 2D point, got shape {point.shape}")
    return point


def distance(a: PointLike, b: PointLike) -> float:
    """Euclidean distance between two points."""
    return math.hypot(b[0] - a[0], b[1] - a[1])


def midpoint(a: PointLike, b: PointLike) -> np.ndarray:
    """Point halfway between ``a`` and ``b``."""
    return np.array(((a[0] + b[0]) / 2.0, (a[1] + b[1]) / 2.0))


def normalize(v: PointLike) -> np.ndarray:
    """
    Unit vector with the direction of ``v``.

    The zero vector has no direction and is returned unchanged.
    """
    vec = as_point(v)
    length = np.linalg.norm(vec)
    if length == 0:
        return vec
    return vec / length


def rotate_vector(v: PointLike, degrees: float) -> np.ndarray:
    """Rotate ``v`` counter-clockwise by ``degrees``."""
    rad = math.radians(degrees)
    c, s = math.cos(rad), math.sin(rad)
    rotation = np.array([[c, -s], [s, c]])
    return rotation @ as_point(v)


def direction_from_angle(degrees: float) -> np.ndarray:
    """Unit vector pointing ``degrees`` counter-clockwise from +x."""
    rad = math.radians(degrees)
    return np.array((math.cos(rad), math.sin(rad)))


def perpendicular(v: PointLike) -> np.ndarray:
    """``v`` turned 90 degrees counter-clockwise."""
    return np.array((-v[1], v[0]), dtype=float)


def angle_between(u: PointLike, v: PointLike) -> float:
    """
    Angle in degrees between two direction vectors.

    Args:
        u: First direction
        v: Second direction

    Returns:
        Angle in range [0, 180]; 0 if either vector is zero
    """
    u_norm = normalize(u)
    v_norm = normalize(v)
    if not u_norm.any() or not v_norm.any():
        return 0.0

    # Clamp to [-1, 1] to handle numerical errors
    dot_product = np.clip(np.dot(u_norm, v_norm), -1.0, 1.0)
    return math.degrees(math.acos(dot_product))


def axis_angle(u: PointLike, v: PointLike) -> float:
    """Angle in degrees between two undirected axes, in range [0, 90]."""
    angle = angle_between(u, v)
    return min(angle, 180.0 - angle)


def points_close(a: PointLike, b: PointLike, epsilon: float = NODE_EPSILON) -> bool:
    """True if ``a`` and ``b`` differ by less than ``epsilon`` on both axes."""
    return abs(a[0] - b[0]) < epsilon and abs(a[1] - b[1]) < epsilon


def point_in_rect(p: PointLike, corner_bl: PointLike, corner_tr: PointLike) -> bool:
    """True if ``p`` lies inside the closed axis-aligned rectangle."""
    return (corner_bl[0] <= p[0] <= corner_tr[0]
            and corner_bl[1] <= p[1] <= corner_tr[1])


def _cross(a, b) -> float:
    return a[0] * b[1] - a[1] * b[0]


def intersect_segments(
    p1: PointLike,
    p2: PointLike,
    q1: PointLike,
    q2: PointLike,
    epsilon: float = PARALLEL_EPSILON
) -> Optional[np.ndarray]:
    """
    Intersection point of segments p1-p2 and q1-q2.

    Both segments are parametrized as ``p + t*r`` and ``q + u*s``. When
    ``|r x s|`` falls below ``epsilon`` the segments are parallel; collinear
    ones still intersect if their extents overlap, in which case the point of
    the overlap closest to ``p1`` is returned.

    Args:
        p1, p2: Endpoints of the first segment
        q1, q2: Endpoints of the second segment
        epsilon: Parallel/collinear tolerance on the cross products

    Returns:
        Intersection point, or None if the segments do not meet
    """
    px, py = float(p1[0]), float(p1[1])
    r = (float(p2[0]) - px, float(p2[1]) - py)
    s = (float(q2[0]) - float(q1[0]), float(q2[1]) - float(q1[1]))
    qp = (float(q1[0]) - px, float(q1[1]) - py)

    rxs = _cross(r, s)
    qpxr = _cross(qp, r)

    if abs(rxs) < epsilon:
        if abs(qpxr) >= epsilon:
            return None  # parallel, never touching

        rr = r[0] * r[0] + r[1] * r[1]
        if rr == 0:
            return None

        # Project the second segment onto the first one's parameter line
        t0 = (qp[0] * r[0] + qp[1] * r[1]) / rr
        t1 = t0 + (s[0] * r[0] + s[1] * r[1]) / rr
        low, high = min(t0, t1), max(t0, t1)
        if low > 1.0 or high < 0.0:
            return None

        t = max(0.0, low)
        return np.array((px + t * r[0], py + t * r[1]))

    t = _cross(qp, s) / rxs
    u = qpxr / rxs
    if 0.0 <= t <= 1.0 and 0.0 <= u <= 1.0:
        return np.array((px + t * r[0], py + t * r[1]))
    return None


def segment_intersects_rect(
    p1: PointLike,
    p2: PointLike,
    corner_bl: PointLike,
    corner_tr: PointLike
) -> bool:
    """
    Check whether a segment touches a closed axis-aligned rectangle.

    True if either endpoint lies inside the rectangle or the segment crosses
    or touches one of its four sides.
    """
    if point_in_rect(p1, corner_bl, corner_tr) or point_in_rect(p2, corner_bl, corner_tr):
        return True
    if p1[0] == p2[0] and p1[1] == p2[1]:
        return False

    rect = box(corner_bl[0], corner_bl[1], corner_tr[0], corner_tr[1])
    return rect.intersects(LineString([tuple(p1), tuple(p2)]))
