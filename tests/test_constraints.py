#!/usr/bin/env python3
"""
Unit tests for the constraint repair pipeline.
"""

import unittest
import sys
import os

import numpy as np

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from roadgen.core.config import GeneratorConfig, CityConfig, RepairConfig
from roadgen.core.contracts import Node, Edge, IdAllocator
from roadgen.growth.constraints import ConstraintRepair
from roadgen.spatial.cell_index import CellIndex
from roadgen.utils.raster import RasterSampler

CITY = CityConfig(width=256.0, height=256.0, grid_columns=4, grid_rows=4)


def make_sampler(water_columns=None):
    """Dry 256 x 256 raster at one pixel per city unit, optionally with a water band."""
    elevation = np.full((256, 256), 200.0)
    if water_columns is not None:
        start, stop = water_columns
        elevation[:, start:stop] = 0.0
    population = np.full((256, 256), 100.0)
    return RasterSampler.from_layers(elevation, population, (256, 256))


class RepairTestCase(unittest.TestCase):
    """Shared fixtures for repair tests."""

    repair_config = RepairConfig()
    water_columns = None

    def setUp(self):
        """Set up test fixtures."""
        self.config = GeneratorConfig(city=CITY, repair=self.repair_config)
        self.index = CellIndex(256, 256, 4, 4)
        self.ids = IdAllocator()
        self.repair = ConstraintRepair(self.index, make_sampler(self.water_columns), self.config)

    def add_road(self, p, q, with_nodes=True):
        edge = Edge(p, q, edge_id=self.ids.edge_id())
        if with_nodes:
            for position in (edge.endpoint1, edge.endpoint2):
                self.index.insert_node(Node.at(self.ids.node_id(), position))
        self.index.insert_edge(edge)
        return edge


class TestBoundsRepair(RepairTestCase):
    """Test cases for fix_for_bounds."""

    def test_inside_is_untouched(self):
        """Test an edge entirely in bounds."""
        edge = Edge((10, 10), (50, 10))
        valid, reason = self.repair.fix_for_bounds(edge)
        self.assertTrue(valid, reason)
        np.testing.assert_allclose(edge.endpoint2, (50, 10))

    def test_street_is_shortened(self):
        """Test walking the far endpoint back into bounds."""
        edge = Edge((200, 100), (300, 100))
        valid, reason = self.repair.fix_for_bounds(edge)
        self.assertTrue(valid, reason)
        np.testing.assert_allclose(edge.endpoint2, (250, 100))

    def test_highway_may_overshoot(self):
        """Test that highways are allowed to leave the map."""
        edge = Edge((200, 100), (300, 100), highway=True)
        valid, reason = self.repair.fix_for_bounds(edge)
        self.assertTrue(valid, reason)
        np.testing.assert_allclose(edge.endpoint2, (300, 100))

    def test_start_outside_is_rejected(self):
        """Test edges starting outside city space."""
        valid, reason = self.repair.repair_edge(Edge((-5, 10), (20, 10)))
        self.assertFalse(valid)
        self.assertIn("outside", reason)

    def test_unrepairable_street(self):
        """Test a street whose every sample lies outside."""
        edge = Edge((255, 100), (1255, 100))
        valid, _ = self.repair.fix_for_bounds(edge)
        self.assertFalse(valid)

    def test_zero_length_is_rejected(self):
        """Test degenerate proposals."""
        valid, _ = self.repair.repair_edge(Edge((10, 10), (10, 10)))
        self.assertFalse(valid)


class TestWaterRepair(RepairTestCase):
    """Test cases for fix_for_water with a water band at x in [100, 140)."""

    water_columns = (100, 140)

    def test_street_truncated_before_water(self):
        """Test a street running into water."""
        edge = Edge((80, 50), (120, 50))
        valid, reason = self.repair.fix_for_water(edge)
        self.assertTrue(valid, reason)
        np.testing.assert_allclose(edge.endpoint2, (96, 50))

    def test_street_starting_at_shore_is_rejected(self):
        """Test a street with no dry length."""
        edge = Edge((99, 50), (130, 50))
        valid, _ = self.repair.fix_for_water(edge)
        self.assertFalse(valid)

    def test_highway_bridges_water(self):
        """Test a highway crossing the water band."""
        edge = Edge((50, 50), (110, 50), highway=True)
        valid, reason = self.repair.fix_for_water(edge)
        self.assertTrue(valid, reason)
        np.testing.assert_allclose(edge.endpoint2, (160, 50))

    def test_dry_edges_are_untouched(self):
        """Test edges clear of water."""
        edge = Edge((150, 50), (200, 50), highway=True)
        valid, _ = self.repair.fix_for_water(edge)
        self.assertTrue(valid)
        np.testing.assert_allclose(edge.endpoint2, (200, 50))


class TestAllWater(RepairTestCase):
    """Test cases on a fully submerged raster."""

    water_columns = (0, 256)

    def test_highway_rejected(self):
        """Test that nothing is built on water."""
        valid, _ = self.repair.repair_edge(Edge((50, 50), (150, 50), highway=True))
        self.assertFalse(valid)

        valid, _ = self.repair.repair_edge(Edge((50, 50), (70, 50)))
        self.assertFalse(valid)


class TestNearbyRoadRepair(RepairTestCase):
    """Test cases for fix_for_nearby_roads."""

    def test_truncated_at_crossing(self):
        """Test that a crossing road becomes the new endpoint."""
        self.add_road((100, 0), (100, 200))
        edge = Edge((50, 100), (150, 100))
        valid, reason = self.repair.repair_edge(edge)
        self.assertTrue(valid, reason)
        np.testing.assert_allclose(edge.endpoint2, (100, 100))
        self.assertFalse(edge.expandable)

    def test_closest_crossing_wins(self):
        """Test that the crossing nearest the start is used."""
        self.add_road((120, 0), (120, 200))
        self.add_road((100, 0), (100, 200))
        edge = Edge((50, 100), (150, 100))
        valid, _ = self.repair.repair_edge(edge)
        self.assertTrue(valid)
        np.testing.assert_allclose(edge.endpoint2, (100, 100))

    def test_duplicate_is_rejected(self):
        """Test that an existing road cannot be built again."""
        self.add_road((100, 0), (100, 200))
        valid, reason = self.repair.repair_edge(Edge((100, 200), (100, 0)))
        self.assertFalse(valid)
        self.assertIn("Duplicates", reason)

    def test_shared_start_is_not_a_crossing(self):
        """Test roads leaving an existing node."""
        self.add_road((100, 100), (100, 200))
        edge = Edge((100, 100), (150, 100))
        valid, reason = self.repair.repair_edge(edge)
        self.assertTrue(valid, reason)
        np.testing.assert_allclose(edge.endpoint2, (150, 100))
        self.assertTrue(edge.expandable)

    def test_too_short_after_crossing(self):
        """Test a crossing right after the start."""
        self.add_road((100, 0), (100, 200))
        valid, reason = self.repair.repair_edge(Edge((98, 50), (140, 50)))
        self.assertFalse(valid)
        self.assertIn("short", reason.lower())

    def test_crossing_just_past_start(self):
        """Test that a crossing inside the first unit still counts."""
        self.add_road((100, 0), (100, 200))
        valid, reason = self.repair.repair_edge(Edge((99.5, 50), (140, 50)))
        self.assertFalse(valid)
        self.assertIn("short", reason.lower())

    def test_start_on_road_interior(self):
        """Test a street leaving the middle of an existing road."""
        self.add_road((100, 0), (100, 200))
        edge = Edge((100, 100), (150, 100))
        valid, reason = self.repair.repair_edge(edge)
        self.assertTrue(valid, reason)
        np.testing.assert_allclose(edge.endpoint2, (150, 100))

    def test_overlap_from_shared_node(self):
        """Test a proposal running back along a road from its end node."""
        self.add_road((100, 0), (100, 200))
        valid, reason = self.repair.repair_edge(Edge((100, 200), (100, 150)))
        self.assertFalse(valid)
        self.assertIn("short", reason.lower())

    def test_snap_to_nearby_node(self):
        """Test snapping the far end onto a close node."""
        self.index.insert_node(Node.at(0, (60, 62)))
        edge = Edge((60, 40), (60, 58.5))
        valid, reason = self.repair.repair_edge(edge)
        self.assertTrue(valid, reason)
        np.testing.assert_allclose(edge.endpoint2, (60, 62))
        self.assertFalse(edge.expandable)

    def test_extension_reaches_road(self):
        """Test extending a dangling street onto a road just ahead."""
        self.add_road((100, 0), (100, 200))
        edge = Edge((80, 50), (95, 50))
        valid, reason = self.repair.repair_edge(edge)
        self.assertTrue(valid, reason)
        np.testing.assert_allclose(edge.endpoint2, (100, 50))
        self.assertFalse(edge.expandable)

    def test_no_extension_when_nothing_ahead(self):
        """Test that extensions which would dangle are dropped."""
        edge = Edge((80, 50), (95, 50))
        valid, _ = self.repair.repair_edge(edge)
        self.assertTrue(valid)
        np.testing.assert_allclose(edge.endpoint2, (95, 50))
        self.assertTrue(edge.expandable)


class TestShortStreets(RepairTestCase):
    """Test cases with a very small minimum street length."""

    repair_config = RepairConfig(min_street_length=0.25)

    def test_truncated_just_past_start(self):
        """Test truncation at a crossing inside the first unit."""
        self.add_road((100, 0), (100, 200))
        edge = Edge((99.5, 50), (140, 50))
        valid, reason = self.repair.repair_edge(edge)
        self.assertTrue(valid, reason)
        np.testing.assert_allclose(edge.endpoint2, (100, 50))
        self.assertFalse(edge.expandable)


class TestSnapRevert(RepairTestCase):
    """Test cases for snaps that would cross another road."""

    repair_config = RepairConfig(extension_radius=0)

    def test_snap_reverted_across_road(self):
        """Test that a snap crossing a road is skipped."""
        self.index.insert_node(Node.at(0, (62, 61)))
        self.add_road((55, 59), (70, 59.5), with_nodes=False)

        edge = Edge((60, 40), (60, 58))
        valid, reason = self.repair.repair_edge(edge)
        self.assertTrue(valid, reason)
        np.testing.assert_allclose(edge.endpoint2, (60, 58))
        self.assertTrue(edge.expandable)


if __name__ == '__main__':
    unittest.main()
