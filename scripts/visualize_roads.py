#!/usr/bin/env python3
"""
Road Network Visualization CLI

Plots generated highways and streets over the population layer of the
input raster. Usable as a module (``plot_roads``) or from the command line
on a saved road file.
"""

import sys
import argparse
import logging
from pathlib import Path
from typing import Optional

import geopandas as gpd
import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt
import matplotlib.patches as mpatches
from matplotlib.colors import ListedColormap
import numpy as np

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from roadgen.utils.raster import POPULATION_CHANNEL, ELEVATION_CHANNEL

logger = logging.getLogger(__name__)

COLORS = {
    'highway': '#C73E1D',      # Red
    'residential': '#2E86AB',  # Blue
    'water': '#9CC3D5',        # Light blue
}


def plot_roads(
    roads: gpd.GeoDataFrame,
    output_path: str,
    raster: Optional[np.ndarray] = None,
    city_size=(512.0, 512.0),
    water_level: Optional[float] = None,
    title: str = "Generated road network"
) -> str:
    """
    Render roads over the population layer and save the figure.

    Args:
        roads: GeoDataFrame with a ``highway`` class column
        output_path: Image path to write
        raster: Optional (H, W, C) raster drawn underneath
        city_size: (width, height) of city space
        water_level: Raster intensity at or below which cells are water
        title: Plot title

    Returns:
        Path of the saved figure
    """
    fig, ax = plt.subplots(1, 1, figsize=(10, 10))
    width, height = city_size

    if raster is not None:
        ax.imshow(raster[..., POPULATION_CHANNEL], cmap='Greys', origin='lower',
                  extent=(0, width, 0, height), alpha=0.6)
        if water_level is not None:
            water = np.ma.masked_where(raster[..., ELEVATION_CHANNEL] > water_level,
                                       np.ones(raster.shape[:2]))
            ax.imshow(water, cmap=ListedColormap([COLORS['water']]),
                      origin='lower', extent=(0, width, 0, height), alpha=0.8)

    streets = roads[roads['highway'] == 'residential']
    highways = roads[roads['highway'] == 'highway']
    if len(streets) > 0:
        streets.plot(ax=ax, color=COLORS['residential'], linewidth=0.8, alpha=0.8)
    if len(highways) > 0:
        highways.plot(ax=ax, color=COLORS['highway'], linewidth=2.5)

    handles = [
        mpatches.Patch(color=COLORS['highway'], label=f'Highways ({len(highways)})'),
        mpatches.Patch(color=COLORS['residential'], label=f'Streets ({len(streets)})'),
    ]
    ax.legend(handles=handles, loc='upper right')

    ax.set_xlim(0, width)
    ax.set_ylim(0, height)
    ax.set_title(title, fontsize=14, fontweight='bold')
    ax.set_aspect('equal')
    ax.axis('off')

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    plt.tight_layout()
    plt.savefig(output_path, dpi=150, bbox_inches='tight')
    plt.close(fig)

    logger.info(f"Saved road plot to {output_path}")
    return str(output_path)


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description='Plot a generated road network',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/visualize_roads.py outputs/roads.geojson
  python scripts/visualize_roads.py outputs/roads.geojson --raster outputs/raster.npy --water-level 25.5
        """
    )

    parser.add_argument('roads', help='Road file written by generate_roads.py')
    parser.add_argument('-o', '--output', default='outputs/roads.png',
                        help='Image path (default: outputs/roads.png)')
    parser.add_argument('--raster', help='(H, W, C) raster saved with numpy.save')
    parser.add_argument('--size', type=float, nargs=2, default=(512.0, 512.0), metavar=('W', 'H'),
                        help='City size (default: 512 512)')
    parser.add_argument('--water-level', type=float, help='Shade raster cells at or below this elevation')
    parser.add_argument('-v', '--verbose', action='store_true', help='Enable verbose logging')

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    roads = gpd.read_file(args.roads)
    logger.info(f"Loaded {len(roads)} roads from {args.roads}")
    raster = np.load(args.raster) if args.raster else None

    plot_roads(roads, args.output, raster=raster, city_size=tuple(args.size),
               water_level=args.water_level)


if __name__ == '__main__':
    try:
        main()
    except KeyboardInterrupt:
        logger.info("\nInterrupted by user")
        sys.exit(1)
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)
