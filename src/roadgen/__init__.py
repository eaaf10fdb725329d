"""
roadgen: procedural road network generation.

Grows population-seeking highways and a street grid over an elevation and
population raster.
"""

from .core.config import GeneratorConfig, get_default_config, create_config_from_file
from .core.contracts import Node, Edge, GenerationResult
from .growth.road_generator import RoadGenerator, GenerationPhase
from .spatial.cell_index import CellIndex
from .utils.raster import RasterSampler, water_level_from_slider

__version__ = "0.1.0"

__all__ = [
    'GeneratorConfig',
    'get_default_config',
    'create_config_from_file',
    'Node',
    'Edge',
    'GenerationResult',
    'RoadGenerator',
    'GenerationPhase',
    'CellIndex',
    'RasterSampler',
    'water_level_from_slider',
]
