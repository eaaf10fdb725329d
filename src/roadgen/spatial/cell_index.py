#!/usr/bin/env python3
"""
Cell Index Module

Uniform-grid spatial partition of city space. Each cell keeps the nodes
located in it and the edges crossing it, in insertion order.
"""

import math
import logging
from typing import List, Optional, Tuple, Iterable

import numpy as np

from ..core.contracts import Node, Edge
from ..geometry.geometry_utils import NODE_EPSILON, PointLike

logger = logging.getLogger(__name__)


class CellIndex:
    """
    Grid of ``columns * rows`` square cells covering city space.

    Cells are numbered row-major: ``row * columns + column``. A node lives in
    exactly one cell; an edge is stored in every cell it touches. The index
    has a single writer (the generator's commit path); every other caller
    only queries it.
    """

    def __init__(
        self,
        width: float,
        height: float,
        columns: int,
        rows: int,
        node_epsilon: float = NODE_EPSILON
    ):
        if width <= 0 or height <= 0:
            raise ValueError(f"City size must be positive, got {width}x{height}")
        if columns <= 0 or rows <= 0:
            raise ValueError(f"Grid size must be positive, got {columns}x{rows}")

        self.width = float(width)
        self.height = float(height)
        self.columns = int(columns)
        self.rows = int(rows)
        self.cell_width = self.width / self.columns
        if self.cell_width <= 0:
            raise ValueError("Cell width must be positive")
        self.node_epsilon = node_epsilon

        self.node_cells: List[List[Node]] = []
        self.edge_cells: List[List[Edge]] = []
        self.clear()

    def clear(self):
        """Drop every stored node and edge."""
        self.node_cells = [[] for _ in range(self.cell_count)]
        self.edge_cells = [[] for _ in range(self.cell_count)]

    @property
    def cell_count(self) -> int:
        return self.columns * self.rows

    @property
    def node_count(self) -> int:
        return sum(len(cell) for cell in self.node_cells)

    @property
    def edge_count(self) -> int:
        return len(self.all_edges())

    # ------------------------------------------------------------------
    # Cell arithmetic
    # ------------------------------------------------------------------

    def out_of_bounds(self, position: PointLike) -> bool:
        return (position[0] < 0 or position[0] > self.width
                or position[1] < 0 or position[1] > self.height)

    def row_number(self, position: PointLike) -> int:
        row = math.floor(position[1] / self.cell_width)
        # The far border belongs to the last row
        if row == self.rows and position[1] <= self.height:
            row -= 1
        return row

    def column_number(self, position: PointLike) -> int:
        col = math.floor(position[0] / self.cell_width)
        if col == self.columns and position[0] <= self.width:
            col -= 1
        return col

    def cell_number(self, position: PointLike) -> Optional[int]:
        """Cell containing ``position``, or None outside the grid."""
        if self.out_of_bounds(position):
            return None
        row = self.row_number(position)
        col = self.column_number(position)
        if not (0 <= row < self.rows and 0 <= col < self.columns):
            return None
        return row * self.columns + col

    def cell_bounds(self, cell: int) -> Tuple[np.ndarray, np.ndarray]:
        """Bottom-left and top-right corners of ``cell``."""
        row, col = divmod(cell, self.columns)
        corner_bl = np.array((col * self.cell_width, row * self.cell_width))
        corner_tr = np.array(((col + 1) * self.cell_width, (row + 1) * self.cell_width))
        return corner_bl, corner_tr

    def cells_for_edge(self, edge: Edge) -> List[int]:
        """
        Find every cell the edge touches.

        Sweeps the rows and columns spanned by the two endpoints and keeps the
        cells whose rectangle the edge lies in or crosses.
        """
        col1, col2 = sorted((self.column_number(edge.endpoint1), self.column_number(edge.endpoint2)))
        row1, row2 = sorted((self.row_number(edge.endpoint1), self.row_number(edge.endpoint2)))

        col1, col2 = max(col1, 0), min(col2, self.columns - 1)
        row1, row2 = max(row1, 0), min(row2, self.rows - 1)

        cells = []
        for row in range(row1, row2 + 1):
            for col in range(col1, col2 + 1):
                cell = row * self.columns + col
                corner_bl, corner_tr = self.cell_bounds(cell)
                if edge.intersect_quad(corner_bl, corner_tr):
                    cells.append(cell)
        return cells

    def neighbor_cells(self, position: PointLike, reach: int = 1) -> List[int]:
        """Cells in the (2*reach+1)^2 block around the cell of ``position``."""
        row = self.row_number(position)
        col = self.column_number(position)
        cells = []
        for r in range(row - reach, row + reach + 1):
            for c in range(col - reach, col + reach + 1):
                if 0 <= r < self.rows and 0 <= c < self.columns:
                    cells.append(r * self.columns + c)
        return cells

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def insert_node(self, node: Node) -> bool:
        """
        Sort a node into its cell.

        Returns False, storing nothing, if the node is outside the grid or a
        node within ``node_epsilon`` already occupies that position.
        """
        cell = self.cell_number(node.position)
        if cell is None:
            return False

        for existing in self.node_cells[cell]:
            if node.equals(existing, self.node_epsilon):
                return False

        self.node_cells[cell].append(node)
        return True

    def insert_edge(self, edge: Edge) -> bool:
        """Store an edge in every cell it touches; False if it touches none."""
        cells = self.cells_for_edge(edge)
        if not cells:
            return False

        for cell in cells:
            self.edge_cells[cell].append(edge)
        return True

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def node_at_position(self, position: PointLike) -> Optional[Node]:
        """Existing node within ``node_epsilon`` of ``position``."""
        cell = self.cell_number(position)
        if cell is None:
            return None

        for node in self.node_cells[cell]:
            if abs(node.x - position[0]) < self.node_epsilon and abs(node.y - position[1]) < self.node_epsilon:
                return node
        return None

    def nodes_near(self, position: PointLike) -> List[Node]:
        """Nodes in the 3x3 block of cells around ``position``."""
        nodes = []
        for cell in self.neighbor_cells(position):
            nodes.extend(self.node_cells[cell])
        return nodes

    def nearest_node(
        self,
        position: PointLike,
        max_distance: float = math.inf,
        exclude: Optional[PointLike] = None
    ) -> Optional[Node]:
        """
        Closest node in the 3x3 block around ``position``.

        Args:
            position: Query point
            max_distance: Nodes farther than this are ignored
            exclude: Nodes coincident (within epsilon) with this point are skipped

        Returns:
            Nearest node or None
        """
        best = None
        best_distance = max_distance
        for node in self.nodes_near(position):
            if exclude is not None and (abs(node.x - exclude[0]) < self.node_epsilon
                                        and abs(node.y - exclude[1]) < self.node_epsilon):
                continue
            d = node.distance_from(position)
            if d <= best_distance:
                best = node
                best_distance = d
        return best

    def edges_in_cells(self, cells: Iterable[int]) -> List[Edge]:
        """Distinct edges stored in ``cells``, in first-seen order."""
        seen = set()
        edges = []
        for cell in cells:
            for edge in self.edge_cells[cell]:
                if id(edge) not in seen:
                    seen.add(id(edge))
                    edges.append(edge)
        return edges

    def edges_for_edge(self, edge: Edge) -> List[Edge]:
        """Stored edges sharing at least one cell with ``edge``."""
        return self.edges_in_cells(self.cells_for_edge(edge))

    def edges_near(self, position: PointLike, radius: float) -> List[Edge]:
        """Edges stored in cells overlapping the square of half-size ``radius``."""
        x, y = position[0], position[1]
        col1 = max(math.floor((x - radius) / self.cell_width), 0)
        col2 = min(math.floor((x + radius) / self.cell_width), self.columns - 1)
        row1 = max(math.floor((y - radius) / self.cell_width), 0)
        row2 = min(math.floor((y + radius) / self.cell_width), self.rows - 1)

        cells = [row * self.columns + col
                 for row in range(row1, row2 + 1)
                 for col in range(col1, col2 + 1)]
        return self.edges_in_cells(cells)

    def all_nodes(self) -> List[Node]:
        """Every stored node, ordered by id."""
        nodes = [node for cell in self.node_cells for node in cell]
        return sorted(nodes, key=lambda n: n.node_id)

    def all_edges(self) -> List[Edge]:
        return self.edges_in_cells(range(self.cell_count))
