#!/usr/bin/env python3
"""
Raster Sampling Utilities

Elevation and population lookups over an externally produced RGBA raster
(for example a framebuffer read back from a noise renderer).
"""

import math
import logging
from typing import Optional, Sequence, Tuple, Union

import numpy as np

from ..geometry.geometry_utils import PointLike

logger = logging.getLogger(__name__)

POPULATION_CHANNEL = 0
ELEVATION_CHANNEL = 1
RGBA_CHANNELS = 4


def water_level_from_slider(level: float) -> float:
    """Convert a 0-5 water slider setting to raw raster intensity."""
    return level * 255.0 / 5.0


class RasterSampler:
    """
    Samples population and elevation at city-space coordinates.

    City coordinates are rescaled to raster pixels by the ratio of raster to
    city dimensions. Row ``j`` of the raster covers city y in
    ``[j, j + 1) * city_height / raster_height``.
    """

    def __init__(
        self,
        data: Union[np.ndarray, bytes, Sequence[int]],
        city_size: Tuple[float, float],
        data_size: Optional[Tuple[int, int]] = None
    ):
        """
        Args:
            data: (H, W, C) array with C >= 2, or a flat RGBA buffer
            city_size: (width, height) of city space
            data_size: (width, height) in pixels; required for flat buffers
        """
        if data is None:
            raise ValueError("RasterSampler: raster data is required")

        city_width, city_height = city_size
        if city_width <= 0 or city_height <= 0:
            raise ValueError(f"RasterSampler: city size must be positive, got {city_size}")
        self.city_size = (float(city_width), float(city_height))

        if isinstance(data, (bytes, bytearray, memoryview)):
            array = np.frombuffer(bytes(data), dtype=np.uint8)
        else:
            array = np.asarray(data)

        if array.ndim == 1:
            if data_size is None:
                raise ValueError("RasterSampler: data_size is required for a flat buffer")
            width, height = (int(v) for v in data_size)
            if width <= 0 or height <= 0:
                raise ValueError(f"RasterSampler: data size must be positive, got {data_size}")
            expected = width * height * RGBA_CHANNELS
            if array.size != expected:
                raise ValueError(
                    f"RasterSampler: flat buffer has {array.size} values, "
                    f"expected {expected} for {width}x{height} RGBA"
                )
            array = array.reshape(height, width, RGBA_CHANNELS)

        if array.ndim != 3 or array.shape[0] == 0 or array.shape[1] == 0:
            raise ValueError(f"RasterSampler: expected an (H, W, C) raster, got shape {array.shape}")
        if array.shape[2] <= ELEVATION_CHANNEL:
            raise ValueError("RasterSampler: raster needs population and elevation channels")
        if data_size is not None and tuple(data_size) != (array.shape[1], array.shape[0]):
            raise ValueError(
                f"RasterSampler: data_size {tuple(data_size)} does not match raster "
                f"{array.shape[1]}x{array.shape[0]}"
            )

        self.data = array.astype(float)
        self.data_size = (array.shape[1], array.shape[0])
        logger.debug(f"Raster sampler over {self.data_size[0]}x{self.data_size[1]} pixels "
                     f"for city {self.city_size[0]}x{self.city_size[1]}")

    @classmethod
    def from_layers(
        cls,
        elevation: np.ndarray,
        population: np.ndarray,
        city_size: Tuple[float, float]
    ) -> 'RasterSampler':
        """Build a sampler from separate (H, W) elevation and population layers."""
        elevation = np.asarray(elevation, dtype=float)
        population = np.asarray(population, dtype=float)
        if elevation.shape != population.shape or elevation.ndim != 2:
            raise ValueError(
                f"RasterSampler: layers must be matching 2D arrays, got "
                f"{elevation.shape} and {population.shape}"
            )
        stacked = np.zeros(elevation.shape + (RGBA_CHANNELS,))
        stacked[..., POPULATION_CHANNEL] = population
        stacked[..., ELEVATION_CHANNEL] = elevation
        return cls(stacked, city_size)

    def _pixel(self, point: PointLike) -> Tuple[int, int]:
        width, height = self.data_size
        col = math.floor(point[0] / self.city_size[0] * width)
        row = math.floor(point[1] / self.city_size[1] * height)
        return min(max(col, 0), width - 1), min(max(row, 0), height - 1)

    def sample(self, point: PointLike, channel: int) -> float:
        col, row = self._pixel(point)
        return float(self.data[row, col, channel])

    def elevation(self, point: PointLike) -> float:
        return self.sample(point, ELEVATION_CHANNEL)

    def population(self, point: PointLike) -> float:
        return self.sample(point, POPULATION_CHANNEL)
