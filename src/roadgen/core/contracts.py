#!/usr/bin/env python3
"""
Road Network Contracts Module

Data contracts shared by the cell index, the constraint repair pipeline
and the road generator, with validation of their invariants.
"""

import math
import logging
from dataclasses import dataclass, field
from typing import List, Dict, Optional

import numpy as np
from shapely.geometry import LineString, Point

from ..geometry.geometry_utils import (
    NODE_EPSILON,
    PARALLEL_EPSILON,
    PointLike,
    as_point,
    distance,
    midpoint,
    normalize,
    intersect_segments,
    segment_intersects_rect,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Node:
    """Immutable graph node; identity is ``node_id``."""
    node_id: int
    x: float
    y: float

    def __post_init__(self):
        """Validate contract invariants."""
        if not (math.isfinite(self.x) and math.isfinite(self.y)):
            raise ValueError(f"Node {self.node_id}: coordinates must be finite")

    @classmethod
    def at(cls, node_id: int, position: PointLike) -> 'Node':
        return cls(node_id, float(position[0]), float(position[1]))

    @property
    def position(self) -> np.ndarray:
        return np.array((self.x, self.y))

    @property
    def geometry(self) -> Point:
        return Point(self.x, self.y)

    def equals(self, other: 'Node', epsilon: float = NODE_EPSILON) -> bool:
        """Positional equality within ``epsilon`` on both axes."""
        return abs(self.x - other.x) < epsilon and abs(self.y - other.y) < epsilon

    def distance_from(self, position: PointLike) -> float:
        return distance((self.x, self.y), position)


@dataclass(eq=False)
class Edge:
    """
    A directed road segment from ``endpoint1`` to ``endpoint2``.

    A proposed edge has no id; the generator assigns one when the edge is
    accepted, after which it is no longer mutated. Only the constraint repair
    pipeline moves ``endpoint2`` or clears ``expandable``.
    """
    endpoint1: np.ndarray
    endpoint2: np.ndarray
    highway: bool = False
    edge_id: Optional[int] = None
    expandable: bool = True

    def __post_init__(self):
        self.endpoint1 = as_point(self.endpoint1)
        self.endpoint2 = as_point(self.endpoint2)

    @property
    def length(self) -> float:
        return distance(self.endpoint1, self.endpoint2)

    @property
    def midpoint(self) -> np.ndarray:
        return midpoint(self.endpoint1, self.endpoint2)

    @property
    def direction(self) -> np.ndarray:
        """Unit vector from endpoint1 toward endpoint2."""
        return normalize(self.endpoint2 - self.endpoint1)

    @property
    def geometry(self) -> LineString:
        return LineString([tuple(self.endpoint1), tuple(self.endpoint2)])

    def closest_endpoint(self, position: PointLike) -> np.ndarray:
        if distance(self.endpoint1, position) <= distance(self.endpoint2, position):
            return self.endpoint1.copy()
        return self.endpoint2.copy()

    def equals(self, other: 'Edge', epsilon: float = NODE_EPSILON) -> bool:
        """
        Positional equality within ``epsilon``, ignoring direction.
        """
        def close(a, b):
            return abs(a[0] - b[0]) <= epsilon and abs(a[1] - b[1]) <= epsilon

        same = close(self.endpoint1, other.endpoint1) and close(self.endpoint2, other.endpoint2)
        flipped = close(self.endpoint1, other.endpoint2) and close(self.endpoint2, other.endpoint1)
        return same or flipped

    def intersect_segment(
        self,
        q1: PointLike,
        q2: PointLike,
        epsilon: float = PARALLEL_EPSILON
    ) -> Optional[np.ndarray]:
        return intersect_segments(self.endpoint1, self.endpoint2, q1, q2, epsilon)

    def intersect_edge(self, other: 'Edge', epsilon: float = PARALLEL_EPSILON) -> Optional[np.ndarray]:
        return self.intersect_segment(other.endpoint1, other.endpoint2, epsilon)

    def intersect_quad(self, corner_bl: PointLike, corner_tr: PointLike) -> bool:
        """True if the edge lies in or crosses the rectangle (bottom-left, top-right)."""
        return segment_intersects_rect(self.endpoint1, self.endpoint2, corner_bl, corner_tr)

    def copy(self) -> 'Edge':
        return Edge(
            endpoint1=self.endpoint1.copy(),
            endpoint2=self.endpoint2.copy(),
            highway=self.highway,
            edge_id=self.edge_id,
            expandable=self.expandable
        )

    def __repr__(self) -> str:
        kind = "highway" if self.highway else "street"
        return (f"Edge(id={self.edge_id}, {kind}, "
                f"({self.endpoint1[0]:.2f}, {self.endpoint1[1]:.2f}) -> "
                f"({self.endpoint2[0]:.2f}, {self.endpoint2[1]:.2f}))")


class IdAllocator:
    """Hands out monotonically increasing node and edge ids."""

    def __init__(self):
        self.next_node = 0
        self.next_edge = 0

    def node_id(self) -> int:
        allocated = self.next_node
        self.next_node += 1
        return allocated

    def edge_id(self) -> int:
        allocated = self.next_edge
        self.next_edge += 1
        return allocated


@dataclass(frozen=True)
class GenerationResult:
    """Snapshot of a finished generation run."""
    highways: List[Edge]
    streets: List[Edge]
    index: 'CellIndex'
    phase: str
    rounds: Dict[str, int] = field(default_factory=dict)

    def __post_init__(self):
        """Validate contract invariants."""
        for edge in list(self.highways) + list(self.streets):
            if edge.edge_id is None:
                raise ValueError(f"GenerationResult: edge without id {edge!r}")
            if edge.length == 0:
                raise ValueError(f"GenerationResult: zero-length edge {edge.edge_id}")

    @property
    def nodes(self) -> List[Node]:
        return self.index.all_nodes()

    @property
    def edge_count(self) -> int:
        return len(self.highways) + len(self.streets)

    def to_geodataframe(self):
        """All roads as a GeoDataFrame, highways first."""
        from ..growth.state_export import roads_to_geodataframe
        return roads_to_geodataframe(self.highways, self.streets)

    def to_graph(self):
        """Road network as a networkx graph keyed by node id."""
        from ..growth.state_export import build_road_graph
        return build_road_graph(self.highways, self.streets, self.index)
