"""Grid growth action types and weighted selection.

After a grid turtle lays a forward segment it picks one follow-up action
from a weighted table. The draw uses the generator's ``random.Random``, so a
seeded (or scripted) random source makes grid growth reproducible.
"""

import random
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Tuple


class GridAction(Enum):
    """Follow-up actions available to a grid turtle."""
    CONTINUE = "continue"  # keep marching along the current heading
    TURN = "turn"          # turn 90 degrees toward the step side
    BRANCH = "branch"      # also spawn a lineage stepping the other way


@dataclass(frozen=True)
class GridActionTable:
    """
    Explicit weights for each grid action.

    Weights are relative and need not sum to one. With ``randomness``
    disabled every draw yields CONTINUE.
    """
    continue_weight: float = 0.6
    turn_weight: float = 0.2
    branch_weight: float = 0.2
    randomness: bool = True

    def __post_init__(self):
        """Validate contract invariants."""
        if min(self.continue_weight, self.turn_weight, self.branch_weight) < 0:
            raise ValueError("GridActionTable: weights must be non-negative")
        if self.continue_weight + self.turn_weight + self.branch_weight <= 0:
            raise ValueError("GridActionTable: at least one weight must be positive")

    @classmethod
    def from_config(cls, grid_config) -> 'GridActionTable':
        return cls(
            continue_weight=grid_config.continue_weight,
            turn_weight=grid_config.turn_weight,
            branch_weight=grid_config.branch_weight,
            randomness=grid_config.randomness
        )

    def entries(self) -> List[Tuple[GridAction, float]]:
        return [
            (GridAction.CONTINUE, self.continue_weight),
            (GridAction.TURN, self.turn_weight),
            (GridAction.BRANCH, self.branch_weight),
        ]

    def probabilities(self) -> Dict[GridAction, float]:
        total = self.continue_weight + self.turn_weight + self.branch_weight
        return {action: weight / total for action, weight in self.entries()}

    def select(self, rng: random.Random) -> GridAction:
        """Draw one action."""
        if not self.randomness:
            return GridAction.CONTINUE
        actions, weights = zip(*self.entries())
        return rng.choices(actions, weights=weights, k=1)[0]

    def should_branch(self, rng: random.Random) -> bool:
        """Independent branch trial used when a grid lineage first leaves its highway."""
        if not self.randomness:
            return False
        return rng.random() < self.probabilities()[GridAction.BRANCH]
