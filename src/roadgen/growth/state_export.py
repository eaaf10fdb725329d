"""Export layer for generated road networks.

Converts the generator's edge lists into the GeoDataFrame and networkx
views used by the scripts and by downstream analysis.
"""

import logging
from typing import List, Optional

import geopandas as gpd
import pandas as pd
import networkx as nx
from shapely.geometry import LineString, Point

from ..core.contracts import Edge, Node
from ..spatial.cell_index import CellIndex

logger = logging.getLogger(__name__)

ROAD_COLUMNS = ['edge_id', 'highway', 'expandable', 'length', 'geometry']


def edges_to_geodataframe(edges: List[Edge], road_class: str) -> gpd.GeoDataFrame:
    """Build a GeoDataFrame with one row per edge.

    Args:
        edges: Committed edges
        road_class: Value for the ``highway`` column

    Returns:
        GeoDataFrame with ``ROAD_COLUMNS``
    """
    records = [
        {
            'edge_id': edge.edge_id,
            'highway': road_class,
            'expandable': edge.expandable,
            'length': edge.length,
            'geometry': edge.geometry,
        }
        for edge in edges
    ]
    return gpd.GeoDataFrame(records, columns=ROAD_COLUMNS, geometry='geometry')


def roads_to_geodataframe(highways: List[Edge], streets: List[Edge]) -> gpd.GeoDataFrame:
    """All roads in one GeoDataFrame, highways first."""
    frames = [
        edges_to_geodataframe(highways, 'highway'),
        edges_to_geodataframe(streets, 'residential'),
    ]
    roads = gpd.GeoDataFrame(pd.concat(frames, ignore_index=True), geometry='geometry')
    logger.debug(f"Exported {len(highways)} highways and {len(streets)} streets")
    return roads


def _endpoint_node_id(graph: nx.Graph, index: CellIndex, position, fallback_id: int) -> int:
    node = index.node_at_position(position)
    if node is not None:
        node_id, x, y = node.node_id, node.x, node.y
    else:
        # Endpoints off the map have no indexed node
        node_id, x, y = fallback_id, float(position[0]), float(position[1])

    if not graph.has_node(node_id):
        graph.add_node(node_id, geometry=Point(x, y), x=x, y=y)
    return node_id


def _interior_nodes(edge: Edge, index: CellIndex) -> List[Node]:
    """Indexed nodes lying on ``edge`` between its endpoints, in order from endpoint1."""
    line = edge.geometry
    epsilon = index.node_epsilon
    length = line.length
    found = {}
    for cell in index.cells_for_edge(edge):
        for node in index.node_cells[cell]:
            point = node.geometry
            if line.distance(point) >= epsilon:
                continue
            along = line.project(point)
            if epsilon < along < length - epsilon:
                found[node.node_id] = (along, node)
    return [node for _, node in sorted(found.values(), key=lambda item: item[0])]


def build_road_graph(
    highways: List[Edge],
    streets: List[Edge],
    index: CellIndex,
    graph: Optional[nx.Graph] = None
) -> nx.Graph:
    """
    Road network as an undirected graph.

    Nodes are keyed by node id and carry ``geometry``, ``x`` and ``y``. Edge
    endpoints that lie outside city space get negative ids. Every indexed
    node is included, even when no committed edge ends on it.

    Committed roads are never split when a later road ends on them, so each
    road is split here at the indexed nodes lying along it. Graph edges
    cut from the same road share its ``edge_id``.
    """
    graph = graph if graph is not None else nx.Graph()

    for node in index.all_nodes():
        graph.add_node(node.node_id, geometry=node.geometry, x=node.x, y=node.y)

    for road_class, edges in (('highway', highways), ('residential', streets)):
        for edge in edges:
            u = _endpoint_node_id(graph, index, edge.endpoint1, -(2 * edge.edge_id + 1))
            v = _endpoint_node_id(graph, index, edge.endpoint2, -(2 * edge.edge_id + 2))
            stops = [u] + [node.node_id for node in _interior_nodes(edge, index)] + [v]
            for a, b in zip(stops, stops[1:]):
                if a == b:
                    continue
                start = graph.nodes[a]['geometry']
                end = graph.nodes[b]['geometry']
                piece = LineString([start, end])
                graph.add_edge(a, b, edge_id=edge.edge_id, geometry=piece,
                               length=piece.length, highway=road_class)

    logger.debug(f"Road graph has {graph.number_of_nodes()} nodes and {graph.number_of_edges()} edges")
    return graph
