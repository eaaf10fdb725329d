"""Constraint repair for proposed road segments.

Every proposed edge passes through bounds, water and nearby-road checks
before it is accepted. Each stage may shorten, extend or snap the edge's far
endpoint in place, and each returns ``(is_valid, reason)`` so a rejection
can be logged and dropped by the growth loop.
"""

import math
import logging
from typing import Iterable, Optional, Tuple

import numpy as np

from ..core.config import GeneratorConfig
from ..core.contracts import Edge
from ..geometry.geometry_utils import distance, intersect_segments, points_close
from ..spatial.cell_index import CellIndex

logger = logging.getLogger(__name__)


class ConstraintRepair:
    """
    Bounds, water and nearby-road repair against a shared cell index.

    The repair pipeline only reads the index; accepted edges are written by
    the generator.
    """

    def __init__(self, index: CellIndex, sampler, config: GeneratorConfig):
        self.index = index
        self.sampler = sampler
        self.config = config
        self.settings = config.repair
        self.water_level = config.terrain.water_level

    def is_dry(self, position) -> bool:
        return self.sampler.elevation(position) > self.water_level

    def min_length(self, edge: Edge) -> float:
        if edge.highway:
            return self.settings.min_highway_length
        return self.settings.min_street_length

    def repair_edge(self, edge: Edge) -> Tuple[bool, str]:
        """Main repair entry point.

        Runs every stage in order; the first veto rejects the edge.

        Args:
            edge: Proposed edge, mutated in place

        Returns:
            Tuple of (is_valid, reason_message)
        """
        if edge.length == 0:
            return False, "Zero-length segment"

        valid, reason = self.fix_for_bounds(edge)
        if not valid:
            return False, reason

        # Highways allowed to overshoot lead off the map; the far end is not sampled
        off_map = self.index.out_of_bounds(edge.endpoint2)

        valid, reason = self.fix_for_water(edge, off_map)
        if not valid:
            return False, reason

        valid, reason = self.fix_for_nearby_roads(edge, off_map)
        if not valid:
            return False, reason

        return True, "Valid"

    def fix_for_bounds(self, edge: Edge) -> Tuple[bool, str]:
        """Keep the far endpoint inside city space.

        Walks the far endpoint back toward the start until it is in bounds.
        Highways may instead run off the map when overshoot is allowed.

        Args:
            edge: Proposed edge

        Returns:
            Tuple of (is_valid, reason_message)
        """
        if self.index.out_of_bounds(edge.endpoint1):
            return False, "Segment starts outside city bounds"

        if not self.index.out_of_bounds(edge.endpoint2):
            return True, "Valid"

        if edge.highway and self.config.highway.allow_overshoot:
            return True, "Highway leads off the map"

        steps = self.settings.bounds_steps
        increment = (edge.endpoint2 - edge.endpoint1) / steps
        for i in range(steps - 1, 0, -1):
            candidate = edge.endpoint1 + increment * i
            if not self.index.out_of_bounds(candidate):
                edge.endpoint2 = candidate
                return True, "Shortened to fit city bounds"

        return False, "Segment cannot be shortened into city bounds"

    def fix_for_water(self, edge: Edge, off_map: bool = False) -> Tuple[bool, str]:
        """Keep roads out of water.

        A highway ending in water first tries to bridge forward to land within
        the maximum highway length. A local street is truncated before the
        first submerged sample along it. Anything still ending in water walks
        its far endpoint back to the first dry sample.

        Args:
            edge: Proposed edge
            off_map: Far endpoint deliberately lies outside city space

        Returns:
            Tuple of (is_valid, reason_message)
        """
        if edge.highway:
            if off_map or self.is_dry(edge.endpoint2):
                return True, "Valid"

            direction = edge.direction
            probe_step = self.config.highway.water_probe_step
            probe = edge.endpoint2.copy()
            while distance(edge.endpoint1, probe) + probe_step <= self.config.highway.max_length:
                probe = probe + direction * probe_step
                if self.index.out_of_bounds(probe):
                    break
                if self.is_dry(probe):
                    edge.endpoint2 = probe
                    return True, "Bridged across water"
        else:
            steps = self.settings.water_steps
            increment = (edge.endpoint2 - edge.endpoint1) / steps
            for i in range(1, steps + 1):
                if not self.is_dry(edge.endpoint1 + increment * i):
                    edge.endpoint2 = edge.endpoint1 + increment * (i - 1)
                    if edge.length < self.min_length(edge):
                        return False, "Street runs into water"
                    return True, "Truncated before water"
            return True, "Valid"

        steps = self.settings.water_steps
        increment = (edge.endpoint1 - edge.endpoint2) / steps
        for i in range(1, steps):
            candidate = edge.endpoint2 + increment * i
            if self.is_dry(candidate):
                edge.endpoint2 = candidate
                break
        else:
            return False, "Segment ends in water"

        length = edge.length
        if length < self.min_length(edge):
            return False, f"Too short after water repair: {length:.1f} < {self.min_length(edge):.1f}"
        return True, "Pulled back to shore"

    def fix_for_nearby_roads(self, edge: Edge, off_map: bool = False) -> Tuple[bool, str]:
        """Connect the edge to surrounding infrastructure.

        Truncates at the first crossing with an existing road, snaps the far
        end to a close node, rejects what ends up too short and finally tries
        to extend a still-dangling edge onto a nearby road.

        Args:
            edge: Proposed edge
            off_map: Far endpoint deliberately lies outside city space

        Returns:
            Tuple of (is_valid, reason_message)
        """
        epsilon = self.settings.node_epsilon
        nearby = self.index.edges_for_edge(edge)

        for existing in nearby:
            if edge.equals(existing, epsilon):
                return False, f"Duplicates existing road {existing.edge_id}"

        hit = self.closest_intersection(edge, nearby)
        if hit is not None:
            node = self.index.node_at_position(hit)
            if node is not None:
                hit = node.position
            if not points_close(hit, edge.endpoint2, epsilon):
                edge.endpoint2 = hit
            edge.expandable = False

        if edge.expandable and not off_map:
            self.snap_to_node(edge)

        length = edge.length
        if length < self.min_length(edge):
            return False, f"Too short after intersection repair: {length:.1f} < {self.min_length(edge):.1f}"

        if edge.expandable and not off_map and self.settings.extension_radius > 0:
            self.extend_to_network(edge)

        return True, "Valid"

    def closest_intersection(
        self,
        edge: Edge,
        candidates: Iterable[Edge],
        ignore_near: Optional[np.ndarray] = None
    ) -> Optional[np.ndarray]:
        """
        Crossing with ``candidates`` closest to the edge's start.

        A hit on the start point itself belongs to a road through the start
        node. For those roads only the part of the edge past the first
        ``intersection_min_distance`` units is tested, which still catches a
        collinear overlap. Hits within node epsilon of ``ignore_near`` are
        ignored as well.
        """
        epsilon = self.settings.node_epsilon
        gap = self.settings.intersection_min_distance
        probe_start = None
        if edge.length > gap:
            probe_start = edge.endpoint1 + edge.direction * gap

        best = None
        best_distance = math.inf
        for other in candidates:
            point = intersect_segments(edge.endpoint1, edge.endpoint2,
                                       other.endpoint1, other.endpoint2,
                                       self.settings.parallel_epsilon)
            if point is not None and points_close(point, edge.endpoint1, epsilon):
                point = None
                if probe_start is not None:
                    point = intersect_segments(probe_start, edge.endpoint2,
                                               other.endpoint1, other.endpoint2,
                                               self.settings.parallel_epsilon)
            if point is None:
                continue
            if ignore_near is not None and points_close(point, ignore_near, epsilon):
                continue
            d = distance(edge.endpoint1, point)
            if d < best_distance:
                best = point
                best_distance = d
        return best

    def snap_to_node(self, edge: Edge) -> bool:
        """
        Snap the far endpoint onto the nearest node within a length-scaled radius.

        The snap is skipped if the snapped segment would cross another road.

        Returns:
            True if the edge now ends on an existing node
        """
        epsilon = self.settings.node_epsilon
        threshold = edge.length * self.settings.snap_factor
        node = self.index.nearest_node(edge.endpoint2, max_distance=threshold, exclude=edge.endpoint1)
        if node is None:
            return False

        target = node.position
        if points_close(target, edge.endpoint2, epsilon):
            edge.endpoint2 = target
            edge.expandable = False
            return True

        trial = Edge(edge.endpoint1, target, highway=edge.highway)
        if trial.length < epsilon:
            return False
        crossing = self.closest_intersection(trial, self.index.edges_for_edge(trial), ignore_near=target)
        if crossing is not None:
            return False

        edge.endpoint2 = target
        edge.expandable = False
        return True

    def extend_to_network(self, edge: Edge) -> bool:
        """
        Try to lengthen a dangling edge so it reaches a nearby road or node.

        The extension goes through the bounds, water and intersection checks
        and is only kept if it ends on existing infrastructure.

        Returns:
            True if the edge was extended
        """
        radius = self.settings.extension_radius
        trial = Edge(edge.endpoint2, edge.endpoint2 + edge.direction * radius, highway=edge.highway)

        if self.index.out_of_bounds(trial.endpoint2):
            return False
        if not self._dry_along(trial):
            return False

        hit = self.closest_intersection(trial, self.index.edges_for_edge(trial))
        if hit is not None:
            node = self.index.node_at_position(hit)
            target = node.position if node is not None else hit
        else:
            node = self.index.nearest_node(trial.endpoint2,
                                           max_distance=radius * self.settings.snap_factor,
                                           exclude=edge.endpoint2)
            if node is None:
                return False
            target = node.position

        extended = Edge(edge.endpoint1, target, highway=edge.highway)
        if extended.length <= edge.length:
            return False
        if self.closest_intersection(extended, self.index.edges_for_edge(extended), ignore_near=target) is not None:
            return False

        logger.debug(f"Extended {edge!r} by {extended.length - edge.length:.1f} to reach the network")
        edge.endpoint2 = target
        edge.expandable = False
        return True

    def _dry_along(self, edge: Edge) -> bool:
        steps = self.settings.water_steps
        increment = (edge.endpoint2 - edge.endpoint1) / steps
        return all(self.is_dry(edge.endpoint1 + increment * i) for i in range(1, steps + 1))
