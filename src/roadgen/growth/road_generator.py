"""Main orchestrator for procedural road network generation.

This module implements the RoadGenerator class that seeds a highway turtle,
grows population-seeking highways, seeds a street grid along them and grows
the grid, repairing every proposed segment against terrain and the roads
already built.
"""

import random
import logging
from enum import Enum
from typing import List, Optional, Tuple

import numpy as np

from .actions import GridAction, GridActionTable
from .constraints import ConstraintRepair
from .turtle import HIGHWAY_PHASE, Turtle
from ..core.config import GeneratorConfig
from ..core.contracts import Edge, GenerationResult, IdAllocator, Node
from ..geometry.geometry_utils import (
    PointLike,
    angle_between,
    as_point,
    axis_angle,
    direction_from_angle,
    distance,
    normalize,
    perpendicular,
)
from ..spatial.cell_index import CellIndex

logger = logging.getLogger(__name__)


class GenerationPhase(Enum):
    """Generator states, in the order they are visited."""
    SEEDING = "seeding"
    HIGHWAY_GROWTH = "highway_growth"
    GRID_SEEDING = "grid_seeding"
    GRID_GROWTH = "grid_growth"
    DONE = "done"


class RoadGenerator:
    """Main API for procedural road generation.

    Drives generation through its phases:
    1. Seeding a single highway turtle near the map edge
    2. Growing highways toward population
    3. Seeding street grid turtles along every highway
    4. Growing the street grid block by block

    Every proposed segment goes through ``ConstraintRepair`` before it is
    committed to the cell index.
    """

    def __init__(
        self,
        config: Optional[GeneratorConfig] = None,
        sampler=None,
        rng: Optional[random.Random] = None
    ):
        """Initialize the generator.

        Args:
            config: Validated generator configuration (defaults if omitted)
            sampler: Raster source with ``elevation`` and ``population`` lookups
            rng: Random source; a ``random.Random`` seeded from ``config.seed``
                is created when omitted
        """
        self.config = config or GeneratorConfig()
        city = self.config.city

        if sampler is None:
            raise ValueError("RoadGenerator: a raster sampler is required")
        if not (callable(getattr(sampler, 'elevation', None))
                and callable(getattr(sampler, 'population', None))):
            raise ValueError("RoadGenerator: sampler must provide elevation() and population()")
        sampler_size = getattr(sampler, 'city_size', None)
        if sampler_size is not None and tuple(float(v) for v in sampler_size) != (float(city.width), float(city.height)):
            raise ValueError(
                f"RoadGenerator: sampler covers city {tuple(sampler_size)}, "
                f"configured city is {(city.width, city.height)}"
            )

        self.sampler = sampler
        self.random = rng or random.Random(self.config.seed)
        self.actions = GridActionTable.from_config(self.config.grid)

        self.start_position: Optional[np.ndarray] = None
        self.start_locked = self.config.seeding.lock_start
        if self.config.seeding.start_position is not None:
            self.start_position = as_point(self.config.seeding.start_position)

        self.reset()
        logger.info(f"Initialized RoadGenerator for {city.width:g}x{city.height:g} city "
                    f"with seed {self.config.seed}")

    def reset(self):
        """Drop all generated roads and turtles; the start position is kept."""
        city = self.config.city
        self.index = CellIndex(city.width, city.height, city.grid_columns, city.grid_rows,
                               node_epsilon=self.config.repair.node_epsilon)
        self.ids = IdAllocator()
        self.repair = ConstraintRepair(self.index, self.sampler, self.config)
        self.highways: List[Edge] = []
        self.streets: List[Edge] = []
        self.turtles: List[Turtle] = []
        self.turtles_to_add: List[Turtle] = []
        self.grid_turtles: List[Turtle] = []
        self.phase = GenerationPhase.SEEDING
        self.rounds = {'highway': 0, 'grid': 0}

    # ------------------------------------------------------------------
    # Terrain helpers
    # ------------------------------------------------------------------

    @property
    def water_level(self) -> float:
        return self.config.terrain.water_level

    @property
    def cell_width(self) -> float:
        return self.index.cell_width

    def elevation(self, position: PointLike) -> float:
        return self.sampler.elevation(position)

    def population(self, position: PointLike) -> float:
        return self.sampler.population(position)

    def is_dry(self, position: PointLike) -> bool:
        return self.elevation(position) > self.water_level

    def out_of_bounds(self, position: PointLike) -> bool:
        return self.index.out_of_bounds(position)

    def main_roads(self) -> List[Edge]:
        """Committed highways, in commit order."""
        return list(self.highways)

    def small_roads(self) -> List[Edge]:
        """Committed local streets, in commit order."""
        return list(self.streets)

    # ------------------------------------------------------------------
    # Seeding
    # ------------------------------------------------------------------

    def set_start_position(self, position: PointLike, lock: bool = True):
        """Fix the start of the first highway.

        Raises:
            ValueError: If the position lies outside city space
        """
        position = as_point(position)
        if self.out_of_bounds(position):
            raise ValueError(f"Start position ({position[0]}, {position[1]}) is outside city bounds")
        self.start_position = position
        self.start_locked = lock

    def seed(self) -> bool:
        """Place the first highway turtle.

        Returns:
            False if no dry start position could be found
        """
        self.phase = GenerationPhase.SEEDING

        if self.start_locked and self.start_position is not None:
            start = self.start_position.copy()
        else:
            start = self._random_start()
            if start is None:
                logger.warning(f"No dry start position found after "
                               f"{self.config.seeding.max_start_attempts} attempts; no roads generated")
                self.phase = GenerationPhase.DONE
                return False
            self.start_position = start

        heading = self._initial_heading(start)
        self.turtles = [Turtle(start, heading, phase=HIGHWAY_PHASE)]
        self.turtles_to_add = []
        self._insert_node(start)

        logger.info(f"Seeded highway at ({start[0]:.1f}, {start[1]:.1f}) "
                    f"heading ({heading[0]:.2f}, {heading[1]:.2f})")
        return True

    def _random_start(self) -> Optional[np.ndarray]:
        """Roll start positions biased toward the map edges until one is dry."""
        width, height = self.config.city.width, self.config.city.height
        for _ in range(self.config.seeding.max_start_attempts):
            x = self.random.random() * 0.09 * width + 0.01 * width
            y = self.random.random() * 0.09 * height + 0.01 * height
            if self.random.random() <= 0.5:
                x += 0.9 * width
            if self.random.random() <= 0.5:
                y += 0.9 * height
            candidate = np.array((x, y))
            if self.is_dry(candidate):
                return candidate
        return None

    def _initial_heading(self, start: np.ndarray) -> np.ndarray:
        """Heading toward the most populated dry probe, kept facing the centre."""
        city = self.config.city
        to_centre = normalize(np.array((city.width / 2, city.height / 2)) - start)

        best_direction = None
        best_weight = -1.0
        for angle in np.arange(0.0, 360.0, self.config.seeding.heading_step):
            direction = direction_from_angle(angle)
            probe = start + direction * self.cell_width
            if self.out_of_bounds(probe) or not self.is_dry(probe):
                continue
            weight = self.population(probe)
            if weight > best_weight:
                best_weight = weight
                best_direction = direction

        if not to_centre.any():
            return best_direction if best_direction is not None else np.array((1.0, 0.0))
        if best_direction is None or angle_between(best_direction, to_centre) > 90:
            return to_centre
        return best_direction

    # ------------------------------------------------------------------
    # Highways
    # ------------------------------------------------------------------

    def grow_highways(self):
        """Run highway rounds until no turtle is active or the round cap is hit."""
        self.phase = GenerationPhase.HIGHWAY_GROWTH
        settings = self.config.highway

        for round_index in range(settings.max_rounds):
            if not self.turtles:
                break

            for turtle in self.turtles:
                self.branch_highway(turtle)

            survivors = [turtle for turtle in self.turtles if self.draw_highway(turtle)]

            room = max(settings.max_active_turtles - len(survivors), 0)
            spawned = self.turtles_to_add[:room]
            if len(self.turtles_to_add) > room:
                logger.debug(f"Dropped {len(self.turtles_to_add) - room} highway branches "
                             f"at the active turtle cap")
            self.turtles = survivors + spawned
            self.turtles_to_add = []
            self.rounds['highway'] = round_index + 1

            if self.config.logging.log_round_progress:
                logger.debug(f"Highway round {round_index + 1}: {len(self.highways)} segments, "
                             f"{len(self.turtles)} active turtles")

        self.turtles = []
        logger.info(f"Highway growth finished: {len(self.highways)} segments "
                    f"after {self.rounds['highway']} rounds")

    def _search_offsets(self) -> List[float]:
        """Candidate heading offsets, straight ahead first."""
        settings = self.config.highway
        half = settings.search_angle / 2
        increment = settings.search_angle / settings.search_divisions
        offsets = {round(-half + i * increment, 9) for i in range(settings.search_divisions + 1)}
        # Odd division counts straddle zero
        offsets.add(0.0)
        return sorted(offsets, key=lambda a: (abs(a), a))

    def _accumulate(self, probe: Turtle, origin: np.ndarray, count: int, step: float) -> float:
        weight = 0.0
        for _ in range(count):
            probe.move_forward(step)
            if self.out_of_bounds(probe.position):
                break
            if self.is_dry(probe.position):
                weight += self.population(probe.position) / distance(probe.position, origin)
        return weight

    def branch_highway(self, turtle: Turtle):
        """Steer a highway turtle toward population and queue branches.

        Scores a fan of headings by population weighted with inverse
        distance, turns toward the best one within the rotation budget and
        queues a child turtle when the runner-up heading is also attractive.
        """
        settings = self.config.highway
        origin = turtle.position
        increment = settings.search_radius / settings.search_steps

        best_weight = second_weight = -1.0
        best_rotation = second_rotation = 0.0
        straight_weight = 0.0

        for offset in self._search_offsets():
            probe = turtle.clone()
            probe.rotate(offset)
            weight = self._accumulate(probe, origin, settings.search_steps, increment)
            if offset == 0:
                weight += self._accumulate(probe, origin, settings.search_steps // 2,
                                           settings.search_radius / (4 * settings.search_steps))
                straight_weight = weight

            if weight > best_weight:
                second_weight, second_rotation = best_weight, best_rotation
                best_weight, best_rotation = weight, offset
            elif weight > second_weight:
                second_weight, second_rotation = weight, offset

        threshold = settings.branch_threshold
        if (abs(best_rotation) > threshold
                and abs(straight_weight - second_weight) < abs(straight_weight - best_weight)):
            child = turtle.branch()
            self.turtles_to_add.append(child)
        elif abs(best_rotation - second_rotation) > 1.5 * threshold:
            child = turtle.branch()
            child.rotate(second_rotation)
            self.turtles_to_add.append(child)

        if best_rotation != 0:
            turtle.try_rotate(best_rotation, settings.max_rotation)

    def draw_highway(self, turtle: Turtle) -> bool:
        """Propose one highway segment from the turtle.

        Returns:
            True if the turtle stays active
        """
        edge = Edge(turtle.position, turtle.position + turtle.orientation * self.config.highway.segment_length,
                    highway=True)
        accepted, reason = self.repair.repair_edge(edge)
        if not accepted:
            logger.debug(f"Highway segment from ({turtle.position[0]:.1f}, {turtle.position[1]:.1f}) "
                         f"rejected: {reason}")
            return False

        self._commit_edge(edge, self.highways)
        turtle.set_position(edge.endpoint2)
        return edge.expandable and not self.out_of_bounds(edge.endpoint2)

    # ------------------------------------------------------------------
    # Street grid
    # ------------------------------------------------------------------

    def grid_axes(self, direction: PointLike) -> Tuple[np.ndarray, np.ndarray]:
        """Pick (heading, step) axes for a grid seeded along ``direction``."""
        settings = self.config.grid
        tolerance = settings.alignment_tolerance
        direction = normalize(direction)
        global_axis = direction_from_angle(settings.global_angle)
        global_perp = perpendicular(global_axis)
        local_perp = perpendicular(direction)

        if axis_angle(local_perp, global_axis) < tolerance:
            return global_axis, global_perp
        if axis_angle(direction, global_axis) < tolerance:
            return global_perp, global_axis
        return local_perp, direction

    def seed_grid(self):
        """Queue opposed grid turtles at regular samples along every highway."""
        self.phase = GenerationPhase.GRID_SEEDING
        self.grid_turtles = []
        for edge in list(self.highways):
            self.branch_grid(edge)
        logger.info(f"Seeded {len(self.grid_turtles)} grid turtles along {len(self.highways)} highways")

    def branch_grid(self, edge: Edge):
        settings = self.config.grid
        length = edge.length
        step = max(settings.min_step_length, length / settings.max_blocks)
        heading, cross = self.grid_axes(edge.direction)
        epsilon = self.config.repair.node_epsilon

        walker = Turtle(edge.endpoint1, edge.direction, phase=0)
        travelled = step
        while travelled < length - epsilon:
            walker.move_forward(step)
            travelled += step
            position = walker.position
            if self.out_of_bounds(position):
                break
            if not self.is_dry(position):
                continue

            self._insert_node(position)
            for direction in (heading, -heading):
                if len(self.grid_turtles) >= settings.max_grid_turtles:
                    return
                self.grid_turtles.append(Turtle(position, direction, phase=0,
                                                step_length=settings.block_length,
                                                step_direction=cross))

    def grow_grid(self):
        """Run grid rounds until no grid turtle is active or the round cap is hit."""
        self.phase = GenerationPhase.GRID_GROWTH
        settings = self.config.grid

        for round_index in range(settings.max_rounds):
            if not self.grid_turtles:
                break

            next_round: List[Turtle] = []
            for turtle in self.grid_turtles:
                for successor in self.draw_grid(turtle):
                    if len(next_round) < settings.max_grid_turtles:
                        next_round.append(successor)
            self.grid_turtles = next_round
            self.rounds['grid'] = round_index + 1

            if self.config.logging.log_round_progress:
                logger.debug(f"Grid round {round_index + 1}: {len(self.streets)} streets, "
                             f"{len(self.grid_turtles)} active turtles")

        self.grid_turtles = []
        logger.info(f"Grid growth finished: {len(self.streets)} streets "
                    f"after {self.rounds['grid']} rounds")

    def draw_grid(self, turtle: Turtle) -> List[Turtle]:
        """Advance one grid turtle.

        Returns:
            Turtles that stay active next round
        """
        settings = self.config.grid
        if turtle.phase >= settings.max_blocks:
            return []

        if turtle.phase == 0:
            spine = Edge(turtle.position, turtle.position + turtle.orientation * settings.block_width)
            if not self._try_street(spine) or not spine.expandable:
                return []

            follower = turtle.clone()
            follower.set_position(spine.endpoint2)
            follower.phase = 1
            successors = [follower]
            if self.actions.should_branch(self.random):
                opposite = follower.clone()
                opposite.step_direction = -follower.step_direction
                successors.append(opposite)
            return successors

        cross = Edge(turtle.position, turtle.position + turtle.step_direction * turtle.step_length)
        self._try_street(cross)

        forward = Edge(turtle.position, turtle.position + turtle.orientation * settings.block_width)
        if not self._try_street(forward):
            return []
        turtle.set_position(forward.endpoint2)
        turtle.phase += 1
        if not forward.expandable:
            return []

        successors = [turtle]
        action = self.actions.select(self.random)
        if action is GridAction.TURN:
            heading = turtle.orientation.copy()
            turtle.set_orientation(turtle.step_direction)
            turtle.step_direction = -heading
        elif action is GridAction.BRANCH:
            sibling = turtle.clone()
            sibling.step_direction = -turtle.step_direction
            successors.append(sibling)
        return successors

    def _try_street(self, edge: Edge) -> bool:
        accepted, reason = self.repair.repair_edge(edge)
        if not accepted:
            logger.debug(f"Street {edge!r} rejected: {reason}")
            return False
        self._commit_edge(edge, self.streets)
        return True

    # ------------------------------------------------------------------
    # Index writes
    # ------------------------------------------------------------------

    def _insert_node(self, position: PointLike) -> Optional[Node]:
        """Existing node at ``position``, or a newly inserted one; None off the grid."""
        existing = self.index.node_at_position(position)
        if existing is not None:
            return existing
        if self.index.cell_number(position) is None:
            return None

        node = Node.at(self.ids.node_id(), position)
        self.index.insert_node(node)
        return node

    def _commit_edge(self, edge: Edge, roads: List[Edge]):
        """Assign an id, insert endpoints and edge into the index and record it."""
        edge.edge_id = self.ids.edge_id()
        self._insert_node(edge.endpoint1)
        self._insert_node(edge.endpoint2)
        if not self.index.insert_edge(edge):
            logger.debug(f"Edge {edge.edge_id} touches no index cell")
        roads.append(edge)

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def generate_roads(self) -> GenerationResult:
        """Run every phase from a clean state.

        Returns:
            GenerationResult with highways, streets and the populated index
        """
        self.reset()
        logger.info("Starting road generation")

        if self.seed():
            self.grow_highways()
            if self.config.grid.enabled:
                self.seed_grid()
                self.grow_grid()

        self.phase = GenerationPhase.DONE
        logger.info(f"Generation finished: {len(self.highways)} highways, "
                    f"{len(self.streets)} streets, {self.index.node_count} nodes")
        return self.result()

    def result(self) -> GenerationResult:
        return GenerationResult(
            highways=self.main_roads(),
            streets=self.small_roads(),
            index=self.index,
            phase=self.phase.value,
            rounds=dict(self.rounds)
        )
