#!/usr/bin/env python3
"""
Integration tests for the RoadGenerator.
"""

import math
import random
import unittest
import sys
import os

import numpy as np

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from roadgen.core.config import (
    GeneratorConfig, CityConfig, SeedingConfig, HighwayConfig, GridConfig
)
from roadgen.core.contracts import Edge, GenerationResult
from roadgen.growth.actions import GridAction
from roadgen.growth.road_generator import RoadGenerator, GenerationPhase
from roadgen.growth.turtle import Turtle
from roadgen.utils.raster import RasterSampler


def flat_sampler(elevation=200.0, population=100.0, size=256):
    return RasterSampler.from_layers(
        np.full((16, 16), elevation), np.full((16, 16), population), (size, size)
    )


class BearingSampler:
    """Dry terrain whose population depends only on the bearing from ``origin``."""

    def __init__(self, origin, weights, spread=5.0):
        self.origin = np.asarray(origin, dtype=float)
        self.weights = weights  # {bearing in degrees: population}
        self.spread = spread

    def elevation(self, position):
        return 200.0

    def population(self, position):
        dx, dy = position[0] - self.origin[0], position[1] - self.origin[1]
        bearing = math.degrees(math.atan2(dy, dx))
        for target, weight in self.weights.items():
            if abs(bearing - target) < self.spread:
                return weight
        return 0.0


class ScriptedRandom(random.Random):
    """Random source replaying fixed grid actions and branch draws."""

    def __init__(self, actions=(), draws=()):
        super().__init__(0)
        self.actions = list(actions)
        self.draws = list(draws)

    def choices(self, population, weights=None, *, cum_weights=None, k=1):
        return [self.actions.pop(0)]

    def random(self):
        return self.draws.pop(0)


def small_config(**overrides):
    """Small city with few rounds so end-to-end runs stay fast."""
    settings = dict(
        city=CityConfig(width=256.0, height=256.0, grid_columns=4, grid_rows=4),
        highway=HighwayConfig(max_rounds=5),
        grid=GridConfig(max_rounds=3, max_blocks=5),
        seed=11,
    )
    settings.update(overrides)
    return GeneratorConfig(**settings)


class TestGeneratorConstruction(unittest.TestCase):
    """Test cases for generator construction."""

    def test_missing_sampler(self):
        """Test that a raster source is required."""
        with self.assertRaises(ValueError):
            RoadGenerator(small_config(), None)

    def test_mismatched_sampler(self):
        """Test that the raster must cover the configured city."""
        with self.assertRaises(ValueError):
            RoadGenerator(small_config(), flat_sampler(size=512))

    def test_malformed_config(self):
        """Test that invalid configuration fails before generation."""
        with self.assertRaises(ValueError):
            RoadGenerator(GeneratorConfig(city=CityConfig(width=-1)), flat_sampler())

    def test_set_start_position(self):
        """Test locking the start position."""
        generator = RoadGenerator(small_config(), flat_sampler())
        generator.set_start_position((30, 128))
        self.assertTrue(generator.start_locked)

        with self.assertRaises(ValueError):
            generator.set_start_position((300, 128))


class TestSeeding(unittest.TestCase):
    """Test cases for the seeding phase."""

    def test_locked_start(self):
        """Test seeding from a locked start position."""
        config = small_config(seeding=SeedingConfig(start_position=(30.0, 128.0), lock_start=True))
        generator = RoadGenerator(config, flat_sampler())
        self.assertTrue(generator.seed())

        self.assertEqual(len(generator.turtles), 1)
        turtle = generator.turtles[0]
        np.testing.assert_allclose(turtle.position, (30, 128))
        # Uniform population: the first probed heading already faces the centre
        np.testing.assert_allclose(turtle.orientation, (1, 0), atol=1e-12)
        self.assertIsNotNone(generator.index.node_at_position((30, 128)))

    def test_heading_turns_toward_centre(self):
        """Test that headings pointing away from the centre are replaced."""
        config = small_config(seeding=SeedingConfig(start_position=(180.0, 128.0), lock_start=True))
        generator = RoadGenerator(config, flat_sampler())
        generator.seed()
        np.testing.assert_allclose(generator.turtles[0].orientation, (-1, 0), atol=1e-12)

    def test_random_start_near_edges(self):
        """Test that random starts are biased to the map edges."""
        generator = RoadGenerator(small_config(), flat_sampler())
        self.assertTrue(generator.seed())
        x, y = generator.start_position
        for value in (x, y):
            self.assertTrue(2.56 <= value <= 25.6 or 232.96 <= value <= 256.0, value)

    def test_no_dry_start(self):
        """Test that an all-water map ends seeding cleanly."""
        generator = RoadGenerator(small_config(), flat_sampler(elevation=0.0))
        self.assertFalse(generator.seed())
        self.assertEqual(generator.phase, GenerationPhase.DONE)


class TestHighwayGrowth(unittest.TestCase):
    """Test cases for highway growth."""

    def setUp(self):
        """Set up test fixtures."""
        config = small_config(seeding=SeedingConfig(start_position=(30.0, 128.0), lock_start=True))
        self.generator = RoadGenerator(config, flat_sampler())

    def test_search_offsets_favour_straight(self):
        """Test heading evaluation order."""
        offsets = self.generator._search_offsets()
        self.assertEqual(offsets[0], 0)
        self.assertEqual(len(offsets), 9)
        self.assertEqual(sorted(offsets), [-45, -33.75, -22.5, -11.25, 0, 11.25, 22.5, 33.75, 45])

    def test_first_segment(self):
        """Test the first highway segment on flat terrain."""
        self.generator.seed()
        turtle = self.generator.turtles[0]
        self.generator.branch_highway(turtle)
        self.assertEqual(self.generator.turtles_to_add, [])

        self.assertTrue(self.generator.draw_highway(turtle))
        self.assertEqual(len(self.generator.highways), 1)
        edge = self.generator.highways[0]
        np.testing.assert_allclose(edge.endpoint1, (30, 128))
        np.testing.assert_allclose(edge.endpoint2, (130, 128))
        self.assertTrue(edge.highway)
        self.assertEqual(edge.edge_id, 0)
        np.testing.assert_allclose(turtle.position, (130, 128))

    def test_turtle_stops_off_map(self):
        """Test that a highway leaving the map is kept but ends its turtle."""
        turtle = Turtle((230, 128), (1, 0))
        self.assertFalse(self.generator.draw_highway(turtle))
        self.assertEqual(len(self.generator.highways), 1)
        np.testing.assert_allclose(self.generator.highways[0].endpoint2, (330, 128))

    def test_grow_highways_respects_round_cap(self):
        """Test the highway round cap."""
        self.generator.seed()
        self.generator.grow_highways()
        self.assertLessEqual(self.generator.rounds['highway'], 5)
        self.assertGreaterEqual(len(self.generator.highways), 1)
        self.assertEqual(self.generator.turtles, [])

    def test_odd_divisions_still_score_straight(self):
        """Test that an odd fan still includes the straight-ahead heading."""
        config = small_config(highway=HighwayConfig(max_rounds=5, search_divisions=3))
        generator = RoadGenerator(config, flat_sampler())
        offsets = generator._search_offsets()
        self.assertEqual(offsets, [0, -15, 15, -45, 45])

        # Straight ahead earns the extra look-ahead, so flat terrain keeps the heading
        turtle = Turtle((60, 128), (1, 0))
        generator.branch_highway(turtle)
        np.testing.assert_allclose(turtle.orientation, (1, 0), atol=1e-12)
        self.assertEqual(turtle.rotation_total, 0)
        self.assertEqual(generator.turtles_to_add, [])


class TestHighwaySteering(unittest.TestCase):
    """Test cases for highway turning and forking."""

    origin = (60.0, 128.0)

    def make_generator(self, weights, **highway):
        config = small_config(highway=HighwayConfig(**highway))
        return RoadGenerator(config, BearingSampler(self.origin, weights))

    def test_turns_and_forks_toward_runner_up(self):
        """Test a fork toward a diverging runner-up heading."""
        generator = self.make_generator({45.0: 100.0, -45.0: 50.0})
        turtle = Turtle(self.origin, (1, 0))
        generator.branch_highway(turtle)

        diagonal = math.sqrt(0.5)
        np.testing.assert_allclose(turtle.orientation, (diagonal, diagonal), atol=1e-9)
        self.assertEqual(turtle.rotation_total, 45)

        self.assertEqual(len(generator.turtles_to_add), 1)
        child = generator.turtles_to_add[0]
        np.testing.assert_allclose(child.position, self.origin)
        np.testing.assert_allclose(child.orientation, (diagonal, -diagonal), atol=1e-9)
        self.assertEqual(child.rotation_total, 0)
        self.assertTrue(child.is_highway)

    def test_fork_keeps_straight_child(self):
        """Test that a sharp best turn leaves a child going straight."""
        generator = self.make_generator({45.0: 100.0, -45.0: 50.0}, branch_threshold=30.0)
        turtle = Turtle(self.origin, (1, 0))
        generator.branch_highway(turtle)

        self.assertEqual(len(generator.turtles_to_add), 1)
        np.testing.assert_allclose(generator.turtles_to_add[0].orientation, (1, 0), atol=1e-12)
        self.assertEqual(turtle.rotation_total, 45)

    def test_rotation_cap(self):
        """Test that a lineage near its rotation limit stops turning."""
        generator = self.make_generator({45.0: 100.0, -45.0: 50.0})
        turtle = Turtle(self.origin, (1, 0), rotation_total=120.0)
        generator.branch_highway(turtle)

        # 120 + 45 would exceed the 150 degree cap
        np.testing.assert_allclose(turtle.orientation, (1, 0), atol=1e-12)
        self.assertEqual(turtle.rotation_total, 120)
        # The fork still happens, with a fresh budget
        self.assertEqual(len(generator.turtles_to_add), 1)
        self.assertEqual(generator.turtles_to_add[0].rotation_total, 0)

    def test_no_fork_for_close_headings(self):
        """Test that neighbouring best headings do not fork."""
        generator = self.make_generator({45.0: 100.0, 33.75: 50.0})
        turtle = Turtle(self.origin, (1, 0))
        generator.branch_highway(turtle)

        self.assertEqual(generator.turtles_to_add, [])
        self.assertEqual(turtle.rotation_total, 45)


class TestGridGrowth(unittest.TestCase):
    """Test cases for grid seeding and growth."""

    def setUp(self):
        """Set up test fixtures."""
        config = small_config(grid=GridConfig(max_rounds=3, max_blocks=5, randomness=False))
        self.generator = RoadGenerator(config, flat_sampler())

    def test_grid_axes(self):
        """Test axis choice against the global grid direction."""
        heading, step = self.generator.grid_axes((1, 0))
        np.testing.assert_allclose(np.abs(heading), (0, 1), atol=1e-12)
        np.testing.assert_allclose(np.abs(step), (1, 0), atol=1e-12)

        heading, step = self.generator.grid_axes((0, 1))
        np.testing.assert_allclose(np.abs(heading), (1, 0), atol=1e-12)
        np.testing.assert_allclose(np.abs(step), (0, 1), atol=1e-12)

    def test_grid_axes_follow_road_outside_tolerance(self):
        """Test that roads far from the global axes keep their own frame."""
        config = small_config(grid=GridConfig(alignment_tolerance=10))
        generator = RoadGenerator(config, flat_sampler())
        direction = np.array((1.0, 1.0)) / np.sqrt(2)
        heading, step = generator.grid_axes(direction)
        np.testing.assert_allclose(step, direction)
        np.testing.assert_allclose(heading, (-direction[1], direction[0]))

    def test_branch_grid_samples(self):
        """Test grid seeding along one highway."""
        edge = Edge((30, 128), (130, 128), highway=True)
        self.generator._commit_edge(edge, self.generator.highways)
        self.generator.branch_grid(edge)

        # Samples every 20 units, excluding both endpoints, two turtles each
        self.assertEqual(len(self.generator.grid_turtles), 8)
        xs = sorted({float(t.position[0]) for t in self.generator.grid_turtles})
        np.testing.assert_allclose(xs, [50, 70, 90, 110])
        for turtle in self.generator.grid_turtles:
            self.assertEqual(turtle.phase, 0)
            self.assertIsNotNone(self.generator.index.node_at_position(turtle.position))

    def test_first_grid_round(self):
        """Test phase-0 turtles laying spines."""
        turtle = Turtle((50, 128), (0, 1), phase=0, step_length=20, step_direction=(1, 0))
        successors = self.generator.draw_grid(turtle)

        self.assertEqual(len(successors), 1)
        follower = successors[0]
        self.assertEqual(follower.phase, 1)
        np.testing.assert_allclose(follower.position, (50, 148))
        self.assertEqual(len(self.generator.streets), 1)
        self.assertFalse(self.generator.streets[0].highway)

    def test_follower_draws_cross_and_forward(self):
        """Test a phase-1 turtle."""
        turtle = Turtle((50, 148), (0, 1), phase=1, step_length=20, step_direction=(1, 0))
        successors = self.generator.draw_grid(turtle)

        self.assertEqual(len(successors), 1)
        self.assertIs(successors[0], turtle)
        self.assertEqual(turtle.phase, 2)
        np.testing.assert_allclose(turtle.position, (50, 168))
        ends = sorted(tuple(np.round(e.endpoint2, 6)) for e in self.generator.streets)
        self.assertEqual(ends, [(50.0, 168.0), (70.0, 148.0)])

    def test_lineage_ends_at_block_cap(self):
        """Test that turtles past the block cap stop."""
        turtle = Turtle((50, 148), (0, 1), phase=5, step_length=20, step_direction=(1, 0))
        self.assertEqual(self.generator.draw_grid(turtle), [])


class TestGridActions(unittest.TestCase):
    """Test cases for the random follow-up actions of grid turtles."""

    def make_generator(self, actions=(), draws=()):
        config = small_config(grid=GridConfig(max_rounds=3, max_blocks=5))
        return RoadGenerator(config, flat_sampler(), rng=ScriptedRandom(actions, draws))

    def follower(self):
        return Turtle((50, 148), (0, 1), phase=1, step_length=20, step_direction=(1, 0))

    def test_turn(self):
        """Test that TURN swaps heading and step side."""
        generator = self.make_generator(actions=[GridAction.TURN])
        turtle = self.follower()
        successors = generator.draw_grid(turtle)

        self.assertEqual(len(successors), 1)
        self.assertIs(successors[0], turtle)
        np.testing.assert_allclose(turtle.position, (50, 168))
        np.testing.assert_allclose(turtle.orientation, (1, 0), atol=1e-12)
        np.testing.assert_allclose(turtle.step_direction, (0, -1), atol=1e-12)
        self.assertEqual(turtle.phase, 2)

    def test_branch(self):
        """Test that BRANCH adds a sibling stepping the other way."""
        generator = self.make_generator(actions=[GridAction.BRANCH])
        turtle = self.follower()
        successors = generator.draw_grid(turtle)

        self.assertEqual(len(successors), 2)
        self.assertIs(successors[0], turtle)
        sibling = successors[1]
        self.assertIsNot(sibling, turtle)
        np.testing.assert_allclose(sibling.position, (50, 168))
        np.testing.assert_allclose(sibling.orientation, (0, 1), atol=1e-12)
        np.testing.assert_allclose(sibling.step_direction, (-1, 0), atol=1e-12)
        np.testing.assert_allclose(turtle.step_direction, (1, 0), atol=1e-12)
        self.assertEqual(sibling.phase, 2)

    def test_continue(self):
        """Test that CONTINUE keeps the turtle unchanged apart from its advance."""
        generator = self.make_generator(actions=[GridAction.CONTINUE])
        turtle = self.follower()
        successors = generator.draw_grid(turtle)

        self.assertEqual(len(successors), 1)
        np.testing.assert_allclose(turtle.orientation, (0, 1), atol=1e-12)
        np.testing.assert_allclose(turtle.step_direction, (1, 0), atol=1e-12)

    def test_spine_spawns_opposite_follower(self):
        """Test the branch trial when a lineage leaves its highway."""
        generator = self.make_generator(draws=[0.1])
        turtle = Turtle((50, 128), (0, 1), phase=0, step_length=20, step_direction=(1, 0))
        successors = generator.draw_grid(turtle)

        self.assertEqual(len(successors), 2)
        follower, opposite = successors
        for successor in successors:
            self.assertEqual(successor.phase, 1)
            np.testing.assert_allclose(successor.position, (50, 148))
        np.testing.assert_allclose(follower.step_direction, (1, 0), atol=1e-12)
        np.testing.assert_allclose(opposite.step_direction, (-1, 0), atol=1e-12)

    def test_spine_without_opposite_follower(self):
        """Test a failed branch trial."""
        generator = self.make_generator(draws=[0.9])
        turtle = Turtle((50, 128), (0, 1), phase=0, step_length=20, step_direction=(1, 0))
        self.assertEqual(len(generator.draw_grid(turtle)), 1)


class TestGenerateRoads(unittest.TestCase):
    """End-to-end generation tests."""

    def test_flat_dry_map(self):
        """Test that a fixed start on a flat dry map yields roads."""
        config = small_config(seeding=SeedingConfig(start_position=(30.0, 128.0), lock_start=True))
        result = RoadGenerator(config, flat_sampler()).generate_roads()

        self.assertIsInstance(result, GenerationResult)
        self.assertEqual(result.phase, 'done')
        self.assertGreaterEqual(len(result.highways), 1)
        self.assertGreater(len(result.streets), 0)
        self.assertTrue(all(e.highway for e in result.highways))
        self.assertFalse(any(e.highway for e in result.streets))

    def test_road_lists(self):
        """Test the main and small road accessors."""
        config = small_config(seeding=SeedingConfig(start_position=(30.0, 128.0), lock_start=True))
        generator = RoadGenerator(config, flat_sampler())
        result = generator.generate_roads()

        main, small = generator.main_roads(), generator.small_roads()
        self.assertEqual(len(main), len(result.highways))
        self.assertEqual(len(small), len(result.streets))
        for ours, theirs in zip(main + small, result.highways + result.streets):
            self.assertIs(ours, theirs)

        # Accessors hand out copies of the lists
        main.clear()
        self.assertEqual(len(generator.main_roads()), len(result.highways))

    def test_generated_network_invariants(self):
        """Test properties that hold for every committed edge."""
        config = small_config(seeding=SeedingConfig(start_position=(30.0, 128.0), lock_start=True))
        generator = RoadGenerator(config, flat_sampler())
        result = generator.generate_roads()
        edges = result.highways + result.streets

        ids = [e.edge_id for e in edges]
        self.assertEqual(len(ids), len(set(ids)))
        for edge in edges:
            self.assertGreater(edge.length, 0)
            self.assertFalse(generator.out_of_bounds(edge.endpoint1))
            self.assertIsNotNone(result.index.node_at_position(edge.endpoint1))
        for street in result.streets:
            self.assertFalse(generator.out_of_bounds(street.endpoint2))
            self.assertGreaterEqual(street.length, config.repair.min_street_length)

        for i, edge in enumerate(edges):
            for other in edges[i + 1:]:
                self.assertFalse(edge.equals(other, config.repair.node_epsilon))

    def test_all_water_map(self):
        """Test that an all-water map yields no highways."""
        result = RoadGenerator(small_config(), flat_sampler(elevation=0.0)).generate_roads()
        self.assertEqual(result.highways, [])
        self.assertEqual(result.streets, [])
        self.assertEqual(result.phase, 'done')

    def test_locked_start_in_water(self):
        """Test a locked start surrounded by water."""
        config = small_config(seeding=SeedingConfig(start_position=(30.0, 128.0), lock_start=True))
        result = RoadGenerator(config, flat_sampler(elevation=0.0)).generate_roads()
        self.assertEqual(result.highways, [])

    def test_grid_disabled(self):
        """Test highway-only generation."""
        config = small_config(grid=GridConfig(enabled=False))
        result = RoadGenerator(config, flat_sampler()).generate_roads()
        self.assertEqual(result.streets, [])
        self.assertEqual(result.rounds['grid'], 0)

    def test_halts_within_round_caps(self):
        """Test that generation always halts."""
        config = small_config(
            highway=HighwayConfig(max_rounds=2),
            grid=GridConfig(max_rounds=1)
        )
        result = RoadGenerator(config, flat_sampler()).generate_roads()
        self.assertLessEqual(result.rounds['highway'], 2)
        self.assertLessEqual(result.rounds['grid'], 1)

    def test_zero_round_caps(self):
        """Test that zero round caps produce no roads."""
        config = small_config(highway=HighwayConfig(max_rounds=0))
        result = RoadGenerator(config, flat_sampler()).generate_roads()
        self.assertEqual(result.highways, [])
        self.assertEqual(result.streets, [])

    def test_deterministic_with_seed(self):
        """Test that equal seeds produce equal networks."""
        def endpoints(result):
            return [(tuple(e.endpoint1), tuple(e.endpoint2)) for e in result.highways + result.streets]

        first = RoadGenerator(small_config(seed=5), flat_sampler()).generate_roads()
        second = RoadGenerator(small_config(seed=5), flat_sampler()).generate_roads()
        self.assertEqual(endpoints(first), endpoints(second))

    def test_injected_random_source(self):
        """Test that an injected random source drives generation."""
        first = RoadGenerator(small_config(), flat_sampler(), rng=random.Random(3)).generate_roads()
        second = RoadGenerator(small_config(), flat_sampler(), rng=random.Random(3)).generate_roads()
        self.assertEqual(len(first.highways), len(second.highways))
        self.assertEqual(len(first.streets), len(second.streets))

    def test_generate_twice_resets(self):
        """Test that repeated runs start from a clean index."""
        config = small_config(seeding=SeedingConfig(start_position=(30.0, 128.0), lock_start=True),
                              grid=GridConfig(max_rounds=2, max_blocks=5, randomness=False))
        generator = RoadGenerator(config, flat_sampler())
        first = generator.generate_roads()
        second = generator.generate_roads()
        self.assertEqual(len(first.highways), len(second.highways))
        self.assertEqual(len(first.streets), len(second.streets))
        self.assertEqual(second.highways[0].edge_id, 0)


if __name__ == '__main__':
    unittest.main()
