#!/usr/bin/env python3
"""
Configuration System for Road Network Generation

Centralized configuration management for the road generator.
Provides type-safe configuration with validation and defaults.
"""

import os
import json
import logging
from dataclasses import dataclass, field, asdict
from typing import Dict, Any, Optional, List, Tuple

import yaml

logger = logging.getLogger(__name__)


@dataclass
class CityConfig:
    """Dimensions of city space and of the cell grid covering it."""
    width: float = 512.0
    height: float = 512.0
    grid_columns: int = 8
    grid_rows: int = 8

    @property
    def cell_width(self) -> float:
        return self.width / self.grid_columns


@dataclass
class TerrainConfig:
    """Raster interpretation."""
    water_level: float = 25.5  # raw raster intensity (0-255)


@dataclass
class SeedingConfig:
    """Configuration for choosing the start position and heading."""
    start_position: Optional[Tuple[float, float]] = None
    lock_start: bool = False
    max_start_attempts: int = 100
    heading_step: float = 30.0  # degrees


@dataclass
class HighwayConfig:
    """Configuration for population-seeking highway growth."""
    search_angle: float = 90.0  # degrees, full fan width
    search_divisions: int = 8
    search_radius: float = 100.0
    search_steps: int = 6
    branch_threshold: float = 45.0  # degrees
    segment_length: float = 100.0
    max_length: float = 300.0  # longest highway segment after water repair
    water_probe_step: float = 25.0
    max_rotation: float = 150.0  # degrees, cumulative per lineage
    max_rounds: int = 20
    max_active_turtles: int = 64
    allow_overshoot: bool = True


@dataclass
class GridConfig:
    """Configuration for the secondary street grid."""
    enabled: bool = True
    block_length: float = 20.0
    block_width: float = 20.0
    max_blocks: int = 20
    min_step_length: float = 10.0
    max_rounds: int = 20
    global_angle: float = 0.0  # degrees
    alignment_tolerance: float = 45.0  # degrees
    randomness: bool = True
    continue_weight: float = 0.6
    turn_weight: float = 0.2
    branch_weight: float = 0.2
    max_grid_turtles: int = 4096


@dataclass
class RepairConfig:
    """Tolerances and limits of the constraint repair pipeline."""
    node_epsilon: float = 0.1
    parallel_epsilon: float = 0.01
    bounds_steps: int = 4
    water_steps: int = 10
    snap_factor: float = 0.25
    intersection_min_distance: float = 1.0
    min_highway_length: float = 10.0
    min_street_length: float = 5.0
    extension_radius: float = 10.0


@dataclass
class LoggingConfig:
    """Configuration for logging and debugging."""
    log_level: str = "INFO"
    log_round_progress: bool = True


@dataclass
class GeneratorConfig:
    """
    Master configuration class for road generation.

    Validated on construction so that malformed values fail here rather
    than deep inside a growth round.
    """
    city: CityConfig = field(default_factory=CityConfig)
    terrain: TerrainConfig = field(default_factory=TerrainConfig)
    seeding: SeedingConfig = field(default_factory=SeedingConfig)
    highway: HighwayConfig = field(default_factory=HighwayConfig)
    grid: GridConfig = field(default_factory=GridConfig)
    repair: RepairConfig = field(default_factory=RepairConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    seed: Optional[int] = None

    def __post_init__(self):
        """Validate configuration after initialization."""
        self._validate_config()

    def _validate_config(self):
        """Validate configuration parameters."""
        # City space
        if self.city.width <= 0 or self.city.height <= 0:
            raise ValueError("city width and height must be positive")
        if self.city.grid_columns <= 0 or self.city.grid_rows <= 0:
            raise ValueError("grid_columns and grid_rows must be positive")
        if self.city.cell_width <= 0:
            raise ValueError("cell width must be positive")

        # Seeding
        if self.seeding.lock_start and self.seeding.start_position is None:
            raise ValueError("lock_start requires a start_position")
        if self.seeding.start_position is not None:
            if len(self.seeding.start_position) != 2:
                raise ValueError("start_position must be an (x, y) pair")
            x, y = self.seeding.start_position
            if not (0 <= x <= self.city.width and 0 <= y <= self.city.height):
                raise ValueError(f"start_position {self.seeding.start_position} lies outside city space")
        if self.seeding.max_start_attempts <= 0:
            raise ValueError("max_start_attempts must be positive")
        if self.seeding.heading_step <= 0:
            raise ValueError("heading_step must be positive")

        # Highways
        if self.highway.search_radius <= 0:
            raise ValueError("search_radius must be positive")
        if self.highway.search_steps <= 0:
            raise ValueError("search_steps must be positive")
        if self.highway.search_divisions <= 0:
            raise ValueError("search_divisions must be positive")
        if self.highway.search_angle < 0:
            raise ValueError("search_angle must be non-negative")
        if self.highway.segment_length <= 0:
            raise ValueError("highway segment_length must be positive")
        if self.highway.max_length < self.highway.segment_length:
            raise ValueError("highway max_length must be at least segment_length")
        if self.highway.water_probe_step <= 0:
            raise ValueError("water_probe_step must be positive")
        if self.highway.max_rounds < 0:
            raise ValueError("highway max_rounds must be non-negative")
        if self.highway.max_active_turtles <= 0:
            raise ValueError("max_active_turtles must be positive")

        # Grid
        if self.grid.block_length <= 0 or self.grid.block_width <= 0:
            raise ValueError("grid block_length and block_width must be positive")
        if self.grid.min_step_length <= 0:
            raise ValueError("grid min_step_length must be positive")
        if self.grid.max_blocks <= 0:
            raise ValueError("grid max_blocks must be positive")
        if self.grid.max_rounds < 0:
            raise ValueError("grid max_rounds must be non-negative")
        if not (0 <= self.grid.alignment_tolerance <= 90):
            raise ValueError("alignment_tolerance must be between 0 and 90 degrees")
        weights = (self.grid.continue_weight, self.grid.turn_weight, self.grid.branch_weight)
        if any(w < 0 for w in weights):
            raise ValueError("grid action weights must be non-negative")
        if sum(weights) <= 0:
            raise ValueError("at least one grid action weight must be positive")
        if self.grid.max_grid_turtles <= 0:
            raise ValueError("max_grid_turtles must be positive")

        # Repair
        if self.repair.node_epsilon <= 0 or self.repair.parallel_epsilon <= 0:
            raise ValueError("repair epsilons must be positive")
        if self.repair.bounds_steps <= 1 or self.repair.water_steps <= 1:
            raise ValueError("bounds_steps and water_steps must be greater than 1")
        if self.repair.snap_factor < 0:
            raise ValueError("snap_factor must be non-negative")
        if self.repair.intersection_min_distance < 0:
            raise ValueError("intersection_min_distance must be non-negative")
        if self.repair.min_highway_length <= 0 or self.repair.min_street_length <= 0:
            raise ValueError("minimum segment lengths must be positive")
        if self.repair.extension_radius < 0:
            raise ValueError("extension_radius must be non-negative")

        # Validate logging level
        valid_log_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if self.logging.log_level.upper() not in valid_log_levels:
            raise ValueError(f"log_level must be one of {valid_log_levels}")

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> 'GeneratorConfig':
        """
        Create configuration from dictionary.

        Supports nested dictionary structures; missing sections use defaults.
        """
        seeding_dict = dict(config_dict.get('seeding', {}))
        if seeding_dict.get('start_position') is not None:
            seeding_dict['start_position'] = tuple(seeding_dict['start_position'])

        return cls(
            city=CityConfig(**config_dict.get('city', {})),
            terrain=TerrainConfig(**config_dict.get('terrain', {})),
            seeding=SeedingConfig(**seeding_dict),
            highway=HighwayConfig(**config_dict.get('highway', {})),
            grid=GridConfig(**config_dict.get('grid', {})),
            repair=RepairConfig(**config_dict.get('repair', {})),
            logging=LoggingConfig(**config_dict.get('logging', {})),
            seed=config_dict.get('seed')
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to a plain (YAML/JSON friendly) dictionary."""
        config_dict = asdict(self)
        start = config_dict['seeding']['start_position']
        if start is not None:
            config_dict['seeding']['start_position'] = list(start)
        return config_dict

    def validate_compatibility(self) -> List[str]:
        """
        Validate configuration compatibility and return warnings.

        Returns list of warning messages for potential issues.
        """
        warnings = []

        covered_height = self.city.grid_rows * self.city.cell_width
        if covered_height < self.city.height:
            warnings.append(
                f"Cell grid covers {covered_height:.1f} of city height {self.city.height:.1f}; "
                "roads beyond it cannot be indexed"
            )

        if self.highway.segment_length > self.city.cell_width:
            warnings.append("Highway segments longer than a cell slow down intersection queries")

        if self.highway.search_angle / self.highway.search_divisions > 30:
            warnings.append("Coarse highway search fan may miss population peaks")

        if not self.grid.randomness and (self.grid.turn_weight > 0 or self.grid.branch_weight > 0):
            warnings.append("Grid randomness disabled: turn and branch weights are ignored")

        if self.grid.max_grid_turtles > 20000:
            warnings.append("Very high max_grid_turtles may make generation slow")

        return warnings

    def log_configuration_summary(self):
        """Log a summary of the current configuration."""
        logger.info("=== ROAD GENERATOR CONFIGURATION SUMMARY ===")
        logger.info(f"City: {self.city.width}x{self.city.height}, "
                    f"{self.city.grid_columns}x{self.city.grid_rows} cells of {self.city.cell_width:.1f}")
        logger.info(f"Water level: {self.terrain.water_level}")
        logger.info(f"Highways: segment={self.highway.segment_length}, radius={self.highway.search_radius}, "
                    f"rounds={self.highway.max_rounds}")
        logger.info(f"Grid: enabled={self.grid.enabled}, block={self.grid.block_width}x{self.grid.block_length}, "
                    f"rounds={self.grid.max_rounds}, randomness={self.grid.randomness}")

        warnings = self.validate_compatibility()
        if warnings:
            logger.warning("Configuration warnings:")
            for warning in warnings:
                logger.warning(f"  - {warning}")


# Global default configuration instance
DEFAULT_CONFIG = GeneratorConfig()


def get_default_config() -> GeneratorConfig:
    """Get default configuration instance."""
    return DEFAULT_CONFIG


def create_config_from_file(config_path: str) -> GeneratorConfig:
    """
    Create configuration from YAML or JSON file.

    Args:
        config_path: Path to configuration file

    Returns:
        GeneratorConfig instance
    """
    if not os.path.exists(config_path):
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    if config_path.endswith('.yaml') or config_path.endswith('.yml'):
        with open(config_path, 'r') as f:
            config_dict = yaml.safe_load(f) or {}
    elif config_path.endswith('.json'):
        with open(config_path, 'r') as f:
            config_dict = json.load(f)
    else:
        raise ValueError("Configuration file must be .yaml, .yml, or .json")

    return GeneratorConfig.from_dict(config_dict)


def save_config_to_file(config: GeneratorConfig, config_path: str):
    """
    Save configuration to YAML or JSON file.

    Args:
        config: Configuration to save
        config_path: Path to save configuration
    """
    config_dict = config.to_dict()

    if config_path.endswith('.yaml') or config_path.endswith('.yml'):
        with open(config_path, 'w') as f:
            yaml.dump(config_dict, f, default_flow_style=False)
    elif config_path.endswith('.json'):
        with open(config_path, 'w') as f:
            json.dump(config_dict, f, indent=2)
    else:
        raise ValueError("Configuration file must be .yaml, .yml, or .json")
