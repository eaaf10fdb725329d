"""
Growth Module

Turtles, grid actions, constraint repair and the phased road generator.
"""

from .turtle import Turtle, HIGHWAY_PHASE
from .actions import GridAction, GridActionTable
from .constraints import ConstraintRepair
from .road_generator import RoadGenerator, GenerationPhase
from .state_export import roads_to_geodataframe, build_road_graph

__all__ = [
    'Turtle',
    'HIGHWAY_PHASE',
    'GridAction',
    'GridActionTable',
    'ConstraintRepair',
    'RoadGenerator',
    'GenerationPhase',
    'roads_to_geodataframe',
    'build_road_graph',
]
