"""
Utilities Module

Raster sampling for the elevation and population inputs.
"""

from .raster import RasterSampler, water_level_from_slider

__all__ = [
    'RasterSampler',
    'water_level_from_slider',
]
