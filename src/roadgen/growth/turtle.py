"""Turtle: the stateful cursor that drives segment-by-segment growth.

A negative ``phase`` marks a highway turtle; a non-negative one marks a grid
turtle at that depth. Turtles are values: branching always clones.
"""

from dataclasses import dataclass, field

import numpy as np

from ..geometry.geometry_utils import PointLike, as_point, normalize, rotate_vector

HIGHWAY_PHASE = -1


@dataclass
class Turtle:
    position: np.ndarray
    orientation: np.ndarray
    phase: int = HIGHWAY_PHASE
    step_length: float = 0.0
    step_direction: np.ndarray = field(default_factory=lambda: np.zeros(2))
    rotation_total: float = 0.0

    def __post_init__(self):
        self.position = as_point(self.position)
        self.orientation = normalize(self.orientation)
        self.step_direction = as_point(self.step_direction)

    @property
    def is_highway(self) -> bool:
        return self.phase < 0

    def move_forward(self, distance: float):
        """Translate along the current orientation."""
        self.position = self.position + self.orientation * distance

    def rotate(self, degrees: float):
        """Rotate the orientation counter-clockwise."""
        self.orientation = normalize(rotate_vector(self.orientation, degrees))

    def try_rotate(self, degrees: float, cap: float) -> bool:
        """
        Rotate only if the lineage's cumulative rotation stays under ``cap``.

        Returns:
            True if the turtle turned
        """
        if abs(self.rotation_total + degrees) >= cap:
            return False
        self.rotate(degrees)
        self.rotation_total += degrees
        return True

    def set_position(self, position: PointLike):
        self.position = as_point(position)

    def set_orientation(self, orientation: PointLike):
        self.orientation = normalize(orientation)

    def clone(self) -> 'Turtle':
        return Turtle(
            position=self.position.copy(),
            orientation=self.orientation.copy(),
            phase=self.phase,
            step_length=self.step_length,
            step_direction=self.step_direction.copy(),
            rotation_total=self.rotation_total
        )

    def branch(self) -> 'Turtle':
        """Clone that starts a new lineage with a fresh rotation budget."""
        child = self.clone()
        child.rotation_total = 0.0
        return child
