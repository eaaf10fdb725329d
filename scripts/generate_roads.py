#!/usr/bin/env python3
"""
Road Generation CLI

Generates a road network over an elevation/population raster and writes
the roads as GeoJSON. Without a raster file a synthetic terrain with a
lake and a few population centres is used.
"""

import sys
import json
import argparse
import logging
from pathlib import Path

import numpy as np

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from roadgen.core.config import GeneratorConfig, create_config_from_file
from roadgen.growth.road_generator import RoadGenerator
from roadgen.utils.raster import RasterSampler, RGBA_CHANNELS, water_level_from_slider

logger = logging.getLogger(__name__)


def synthetic_raster(size: int = 256, seed: int = 0) -> np.ndarray:
    """
    Build an (H, W, 4) raster with rolling terrain and population centres.

    Elevation dips into a lake around one corner; population is a sum of
    Gaussian bumps.
    """
    rng = np.random.default_rng(seed)
    ys, xs = np.mgrid[0:size, 0:size] / size

    elevation = 120 + 60 * np.sin(3 * xs) * np.cos(2 * ys)
    lake = np.exp(-(((xs - 0.8) ** 2 + (ys - 0.2) ** 2) / 0.01))
    elevation = np.clip(elevation - 200 * lake, 0, 255)

    population = np.zeros((size, size))
    for cx, cy, spread in rng.uniform((0.2, 0.2, 0.01), (0.8, 0.8, 0.05), size=(4, 3)):
        population += np.exp(-(((xs - cx) ** 2 + (ys - cy) ** 2) / spread))
    population = 255 * population / population.max()

    raster = np.zeros((size, size, RGBA_CHANNELS))
    raster[..., 0] = population
    raster[..., 1] = elevation
    raster[..., 3] = 255
    return raster


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description='Generate a procedural road network',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/generate_roads.py --seed 7
  python scripts/generate_roads.py --config configs/default.yaml --start 40 40 --plot
  python scripts/generate_roads.py --raster terrain.npy --water-level 1
        """
    )

    parser.add_argument('--config', help='YAML or JSON configuration file')
    parser.add_argument('--seed', type=int, help='Random seed (overrides the config file)')
    parser.add_argument('--start', type=float, nargs=2, metavar=('X', 'Y'),
                        help='Lock the first highway to this start position')
    parser.add_argument('--water-level', type=float,
                        help='Water slider setting from 0 to 5 (overrides the config file)')
    parser.add_argument('--raster', help='(H, W, C) raster saved with numpy.save')
    parser.add_argument('--raster-size', type=int, default=256,
                        help='Pixel size of the synthetic raster (default: 256)')
    parser.add_argument('-o', '--output-dir', default='outputs',
                        help='Output directory (default: outputs)')
    parser.add_argument('--plot', action='store_true', help='Also save a PNG preview')
    parser.add_argument('--debug', action='store_true', help='Enable debug logging')

    args = parser.parse_args()

    config_dict = create_config_from_file(args.config).to_dict() if args.config else GeneratorConfig().to_dict()
    if args.seed is not None:
        config_dict['seed'] = args.seed
    if args.start is not None:
        config_dict['seeding']['start_position'] = list(args.start)
        config_dict['seeding']['lock_start'] = True
    if args.water_level is not None:
        config_dict['terrain']['water_level'] = water_level_from_slider(args.water_level)
    config = GeneratorConfig.from_dict(config_dict)

    logging.basicConfig(
        level=logging.DEBUG if args.debug else config.logging.log_level.upper(),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    config.log_configuration_summary()

    if args.raster:
        raster = np.load(args.raster)
        logger.info(f"Loaded raster {raster.shape} from {args.raster}")
    else:
        raster = synthetic_raster(args.raster_size, seed=config.seed or 0)
        logger.info(f"Using synthetic {args.raster_size}x{args.raster_size} raster")

    sampler = RasterSampler(raster, (config.city.width, config.city.height))
    generator = RoadGenerator(config, sampler)
    result = generator.generate_roads()

    output_dir = Path(args.output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    roads = result.to_geodataframe()
    roads_path = output_dir / 'roads.geojson'
    roads.to_file(roads_path, driver='GeoJSON')

    graph = result.to_graph()
    summary = {
        'highways': len(result.highways),
        'streets': len(result.streets),
        'nodes': graph.number_of_nodes(),
        'graph_edges': graph.number_of_edges(),
        'total_length': float(roads['length'].sum()) if len(roads) else 0.0,
        'rounds': result.rounds,
        'start_position': [float(v) for v in generator.start_position] if generator.start_position is not None else None,
    }
    with open(output_dir / 'summary.json', 'w') as f:
        json.dump(summary, f, indent=2)

    print(f"Highways: {summary['highways']}")
    print(f"Streets: {summary['streets']}")
    print(f"Nodes: {summary['nodes']}")
    print(f"Total length: {summary['total_length']:.1f}")
    print(f"Roads written to {roads_path}")

    if args.plot:
        from visualize_roads import plot_roads
        plot_roads(roads, str(output_dir / 'roads.png'), raster=raster,
                   city_size=(config.city.width, config.city.height),
                   water_level=config.terrain.water_level)


if __name__ == '__main__':
    try:
        main()
    except KeyboardInterrupt:
        logger.info("\nInterrupted by user")
        sys.exit(1)
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)
